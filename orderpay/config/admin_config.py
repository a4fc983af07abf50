from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "orderpay"
    ENABLE_ADMIN: bool = True
    ADMIN_SECRET: Optional[str] = None   # when set admin routes need X-Admin-Secret

    class Config:
        env_file = ".env"
        extra="ignore"

admin_config = Settings()
