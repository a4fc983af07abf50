def _normalize_db_url(url: str | None) -> str | None:
    # hosted postgres providers hand out "postgres://..." , the async engine needs "postgresql+asyncpg://..."
    if not url:
        return None
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # sqlite+aiosqlite:// and already-async urls pass through
    return url


async def create_all_tables(engine):
    """Create every SQLModel table on the given async engine (used by tests and local dev)."""
    from sqlmodel import SQLModel
    import orderpay.schema.full_schema  # noqa: F401  registers the tables on the metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def drop_all_tables(engine):
    from sqlmodel import SQLModel

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
