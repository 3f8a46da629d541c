"""Tests for the session storage adapters."""

import os
import stat

import pytest

from conftest import make_session
from peakauth.integrations.storage import FileSessionStorage, InMemorySessionStorage


class TestInMemoryStorage:
    @pytest.mark.asyncio
    async def test_set_get_clear(self):
        storage = InMemorySessionStorage()
        session = make_session()

        assert await storage.get() is None
        await storage.set(session)
        assert await storage.get() is session
        await storage.clear()
        assert await storage.get() is None


class TestFileStorage:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        session = make_session()
        await FileSessionStorage(tmp_path).set(session)

        loaded = await FileSessionStorage(tmp_path).get()

        assert loaded == session
        assert loaded.token.refresh_token == "RT1"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        storage = FileSessionStorage(tmp_path / "nested")

        assert await storage.get() is None
        await storage.clear()
        await storage.clear()

    @pytest.mark.asyncio
    async def test_clear_removes_file(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set(make_session())

        await storage.clear()

        assert not storage.file_path.exists()
        assert await storage.get() is None

    @pytest.mark.asyncio
    async def test_unreadable_file_is_discarded(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        storage.file_path.write_text("{not json")

        assert await storage.get() is None

    @pytest.mark.asyncio
    async def test_replace_leaves_no_temp_files(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set(make_session(access_token="AT1"))
        await storage.set(make_session(access_token="AT2"))

        assert [p.name for p in tmp_path.iterdir()] == ["auth-session.json"]
        assert (await storage.get()).token.access_token == "AT2"

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    async def test_file_is_private(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set(make_session())

        mode = stat.S_IMODE(storage.file_path.stat().st_mode)
        assert mode == 0o600
