"""Realtime channel subscription over the WebSocket endpoint."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.main import app, build_services


@pytest.fixture
def ws_client(session_factory, seed):
    build_services(app, session_factory)
    return TestClient(app)


def _refused(ws_client, url) -> int:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(url):
            pass
    return exc_info.value.code


async def test_assigned_engineer_follows_job(ws_client, seed, make_job):
    job = await make_job()
    with ws_client.websocket_connect(f"/api/ws/job:{job.id}?token={seed.tokens['engineer']}"):
        assert app.state.broadcaster.subscriber_count(f"job:{job.id}") == 1


async def test_other_agency_cannot_follow_job(ws_client, seed, make_job):
    job = await make_job()
    assert _refused(ws_client, f"/api/ws/job:{job.id}?token={seed.tokens['rival_admin']}") == 4003
    assert app.state.broadcaster.subscriber_count(f"job:{job.id}") == 0


async def test_unknown_job_channel(ws_client, seed):
    url = f"/api/ws/job:6f1c2d3e-4b5a-4c6d-8e7f-001122334455?token={seed.tokens['admin']}"
    assert _refused(ws_client, url) == 4004


async def test_engineer_feed_is_private(ws_client, seed):
    channel = f"engineer:{seed.engineer_id}"
    assert _refused(ws_client, f"/api/ws/{channel}?token={seed.tokens['other_engineer']}") == 4003
    assert _refused(ws_client, f"/api/ws/{channel}?token={seed.tokens['rival_admin']}") == 4003

    with ws_client.websocket_connect(f"/api/ws/{channel}?token={seed.tokens['engineer']}"):
        assert app.state.broadcaster.subscriber_count(channel) == 1
    with ws_client.websocket_connect(f"/api/ws/{channel}?token={seed.tokens['manager']}"):
        assert app.state.broadcaster.subscriber_count(channel) >= 1


async def test_token_required(ws_client, seed, make_job):
    job = await make_job()
    assert _refused(ws_client, f"/api/ws/job:{job.id}") == 4001
    assert _refused(ws_client, f"/api/ws/job:{job.id}?token=not-a-session") == 4001
