"""Shared pytest fixtures for the code store tests."""
import pytest_asyncio

from storage.database import CodeDatabase


@pytest_asyncio.fixture
async def database(tmp_path) -> CodeDatabase:
    db = CodeDatabase(str(tmp_path / "data" / "codes.db"))
    await db.setup_database()
    return db
