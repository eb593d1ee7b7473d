import pytest
import pytest_asyncio

import db
from tests.fakes import AckLog


@pytest_asyncio.fixture
async def store(tmp_path):
    """Fresh SQLite database behind the `db` module for one test."""
    db.configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'reminders.db'}")
    await db.create_all()
    yield db
    await db.dispose_engine()


@pytest.fixture
def ack_log():
    return AckLog()
