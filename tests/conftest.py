"""Shared fixtures: a temporary store and in-memory channel fakes."""

import pytest_asyncio

from pingchain.channels.base import ChannelAdapter
from pingchain.storage.sqlite_store import SQLiteStore


class RecordingChannel(ChannelAdapter):
    """Channel that records every reminder it is asked to deliver."""

    def __init__(self, name: str = "push", ok: bool = True, fail_with: Exception | None = None):
        self.name = name
        self.ok = ok
        self.fail_with = fail_with
        self.sent = []

    async def _deliver(self, reminder):
        self.sent.append(reminder)
        if self.fail_with is not None:
            raise self.fail_with
        return self.ok


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "test.db")
    await s.initialize()
    yield s
    await s.close()
