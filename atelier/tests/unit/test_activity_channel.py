from __future__ import annotations

import pytest
from sqlalchemy.exc import SQLAlchemyError

from atelier.services.activity import ActivityChannel, sanitize_metadata


def test_activity_metadata_redacts_credentials() -> None:
    sanitized = sanitize_metadata(
        {
            "api_key": "atlk_abc",
            "nested": {"Authorization": "Bearer abc", "items": [{"password": "pw"}]},
            "reason": "spam",
        }
    )
    assert sanitized["api_key"] == "[REDACTED]"
    assert sanitized["nested"]["Authorization"] == "[REDACTED]"
    assert sanitized["nested"]["items"][0]["password"] == "[REDACTED]"
    assert sanitized["reason"] == "spam"


@pytest.mark.asyncio
async def test_flush_hands_buffered_entries_to_writer() -> None:
    written = []

    async def _writer(entries) -> None:
        written.extend(entries)

    channel = ActivityChannel(writer=_writer, ip_address="10.0.0.1", user_agent="pytest")
    channel.emit(action="group_deleted", entity_type="group", entity_id="g-1", user_id="u-1")
    assert len(channel.pending) == 1
    assert await channel.flush() == 1
    assert channel.pending == ()
    assert written[0].action == "group_deleted"
    assert written[0].ip_address == "10.0.0.1"


@pytest.mark.asyncio
async def test_flush_swallows_store_failures() -> None:
    async def _broken_writer(entries) -> None:
        raise SQLAlchemyError("activity store unavailable")

    channel = ActivityChannel(writer=_broken_writer)
    channel.emit(action="user_suspended", entity_type="user", entity_id="u-2", user_id="u-1")
    assert await channel.flush() == 0
    assert channel.pending == ()


@pytest.mark.asyncio
async def test_flush_without_entries_skips_writer() -> None:
    async def _writer(entries) -> None:
        raise AssertionError("writer should not be called")

    assert await ActivityChannel(writer=_writer).flush() == 0


@pytest.mark.asyncio
async def test_flush_swallows_connection_failures(caplog) -> None:
    async def _unreachable_writer(entries) -> None:
        raise ConnectionRefusedError(111, "Connection refused")

    channel = ActivityChannel(writer=_unreachable_writer)
    channel.emit(action="group_deleted", entity_type="group", entity_id="g-1", user_id="u-1")
    with caplog.at_level("WARNING", logger="atelier.services.activity"):
        assert await channel.flush() == 0
    assert channel.pending == ()
    assert "activity_write_failed actions=group_deleted" in caplog.text
