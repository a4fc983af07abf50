from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    DATABASE_URL : str
    MPESA_ENV : str = "sandbox"
    MPESA_CONSUMER_KEY : str
    MPESA_CONSUMER_SECRET : str
    MPESA_SHORTCODE : str
    MPESA_PASSKEY : str
    MPESA_CALLBACK_URL : str
    MPESA_CALLBACK_PATH : str = "/api/v1/payments/callback"
    MPESA_TIMEOUT_SECONDS : float = 10.0
    MPESA_TRANSACTION_DESC : str = "Order Payment"

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
