import json

import pytest

from streakly.events import write_event_best_effort

from fakes import FakeStreakConn


@pytest.mark.asyncio
async def test_event_payload_drops_tokens():
    conn = FakeStreakConn()
    user_id = conn.add_user()

    await write_event_best_effort(
        conn,
        event_type="check_in",
        user_id=user_id,
        payload={"habitId": "h1", "fitbit_access_token": "secret-token", "nested": {"Authorization": "Bearer x"}},
    )

    stored = json.loads(conn.events[0]["payload"])
    assert stored == {"habitId": "h1", "nested": {}}


@pytest.mark.asyncio
async def test_event_without_user_is_skipped():
    conn = FakeStreakConn()

    await write_event_best_effort(conn, event_type="check_in", user_id=None, payload={})

    assert conn.events == []


@pytest.mark.asyncio
async def test_event_write_failure_is_swallowed():
    conn = FakeStreakConn()
    user_id = conn.add_user()
    conn.fail_on = "INSERT INTO events"

    await write_event_best_effort(conn, event_type="check_in", user_id=user_id, payload={"a": 1})

    assert conn.events == []
