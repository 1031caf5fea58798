"""Tests for the WebSocket progress hub and the /ws endpoint handler."""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect, status

from certgen.auth.service import create_access_token
from certgen.progress.hub import ProgressHub, hub
from certgen.progress.router import progress_socket


def _socket():
    ws = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


@pytest.mark.unit
class TestProgressHub:
    async def test_connect_sends_greeting(self):
        hub = ProgressHub()
        admin_id = uuid.uuid4()
        ws = _socket()

        await hub.connect(admin_id, ws)

        ws.accept.assert_awaited_once()
        greeting = ws.send_json.await_args.args[0]
        assert greeting["type"] == "connection"
        assert hub.connection_count(admin_id) == 1

    async def test_progress_reaches_every_tab_of_the_admin(self):
        hub = ProgressHub()
        admin_id, other_id = uuid.uuid4(), uuid.uuid4()
        tabs = [_socket(), _socket()]
        stranger = _socket()
        for ws in tabs:
            await hub.connect(admin_id, ws)
        await hub.connect(other_id, stranger)

        await hub.bulk_download_progress(admin_id, status="processing", processed=1, total=2)

        for ws in tabs:
            message = ws.send_json.await_args.args[0]
            assert message["type"] == "progress"
            assert message["data"]["operation"] == "bulk_download"
            assert message["data"]["processed"] == 1
        assert stranger.send_json.await_count == 1

    async def test_dead_socket_is_dropped(self):
        hub = ProgressHub()
        admin_id = uuid.uuid4()
        ws = _socket()
        await hub.connect(admin_id, ws)
        ws.send_json.side_effect = RuntimeError("socket closed")

        await hub.bulk_download_error(admin_id, "boom")

        assert hub.connection_count(admin_id) == 0

    async def test_send_without_connections_is_a_noop(self):
        await ProgressHub().bulk_download_complete(uuid.uuid4(), status="completed")

    def test_disconnect(self):
        hub = ProgressHub()
        admin_id = uuid.uuid4()
        hub._connections[str(admin_id)].add(ws := _socket())

        hub.disconnect(admin_id, ws)

        assert hub.connection_count(admin_id) == 0


@pytest.mark.integration
class TestProgressSocket:
    async def test_missing_token_is_rejected(self, db_session):
        ws = _socket()

        await progress_socket(ws, token=None, db=db_session)

        ws.close.assert_awaited_once()
        assert ws.close.await_args.kwargs["code"] == status.WS_1008_POLICY_VIOLATION
        ws.accept.assert_not_awaited()

    async def test_invalid_token_is_rejected(self, db_session):
        ws = _socket()

        await progress_socket(ws, token="not-a-jwt", db=db_session)

        assert ws.close.await_args.kwargs["code"] == status.WS_1008_POLICY_VIOLATION

    async def test_unknown_admin_is_rejected(self, db_session):
        ws = _socket()
        token = create_access_token(subject=str(uuid.uuid4()))

        await progress_socket(ws, token=token, db=db_session)

        assert ws.close.await_args.kwargs["code"] == status.WS_1008_POLICY_VIOLATION

    async def test_ping_and_disconnect(self, db_session, admin):
        ws = _socket()
        ws.receive_text = AsyncMock(side_effect=["ping", WebSocketDisconnect()])

        await progress_socket(ws, token=create_access_token(subject=str(admin.id)), db=db_session)

        ws.accept.assert_awaited_once()
        ws.send_json.assert_any_await({"type": "pong"})
        assert hub.connection_count(admin.id) == 0

    async def test_receive_error_unregisters_socket(self, db_session, admin):
        ws = _socket()
        ws.receive_text = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(RuntimeError):
            await progress_socket(ws, token=create_access_token(subject=str(admin.id)), db=db_session)

        assert hub.connection_count(admin.id) == 0
