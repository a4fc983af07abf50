from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import  AsyncSession
from orderpay.db.connection import async_session

async def get_session() -> AsyncGenerator[AsyncSession,None]:
    async with async_session() as session:  # session closes at the end of the with block, uncommitted work is rolled back
        yield session
