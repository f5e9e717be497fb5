from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import  AsyncSession
from sqlmodel import SQLModel
from storefront.db.connection import async_engine, async_session

async def get_session() -> AsyncGenerator[AsyncSession,None]:
    async with async_session() as session:  # closing the session rolls back anything left uncommitted
        yield session


async def create_all_tables():
    import storefront.schema.full_schema  # noqa: F401  registers table metadata
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
