"""
Tests for the live ConnectionManager

Tests cover:
- State transitions on open, error and close
- Fixed-delay reconnect with at most one pending timer
- Re-join of the active conversation after (re)open
- Frame validation and dispatch
- Outbound sends only while connected
- Teardown releasing socket and timer together
"""

import asyncio

import pytest

from aitu_connect.chat_sync import (
    ConnectionHealth,
    ConnectionManager,
    ConnectionState,
    DEFAULT_RECONNECT_DELAY,
    JoinFrame,
    OutboundMessageFrame,
)

from conftest import FakeConnector, push_frame, settle


# ===== ConnectionHealth Tests =====

class TestConnectionHealth:
    """Tests for ConnectionHealth dataclass"""

    def test_initial_state(self):
        health = ConnectionHealth()
        assert health.last_connected is None
        assert health.consecutive_failures == 0
        assert health.total_reconnects == 0
        assert health.frames_dropped == 0

    def test_record_open_resets_failures(self):
        health = ConnectionHealth()
        health.record_failure("refused")
        health.record_failure("refused again")

        health.record_open()

        assert health.consecutive_failures == 0
        assert health.last_error is None
        assert health.last_connected is not None

    def test_to_dict(self):
        health = ConnectionHealth()
        health.record_reconnect()

        result = health.to_dict()

        assert result["total_reconnects"] == 1
        assert result["last_connected"] is None


# ===== State machine =====

class TestConnectLifecycle:
    """connect() / open / close transitions"""

    def test_starts_disconnected(self, connection):
        assert connection.state == ConnectionState.DISCONNECTED
        assert not connection.is_connected
        assert not connection.has_pending_reconnect

    def test_default_reconnect_delay_is_three_seconds(self):
        assert DEFAULT_RECONNECT_DELAY == 3.0
        assert ConnectionManager("ws://testserver/api/chat/ws").reconnect_delay == 3.0

    @pytest.mark.asyncio
    async def test_connect_goes_through_connecting(self, connection, connector):
        states = []
        connection.on_state_change(states.append)

        connection.connect()
        assert connection.state == ConnectionState.CONNECTING

        await settle()
        assert connection.state == ConnectionState.CONNECTED
        assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        assert connector.calls == 1

        await connection.close()

    @pytest.mark.asyncio
    async def test_headers_forwarded_to_connector(self, connector):
        manager = ConnectionManager(
            "ws://testserver/api/chat/ws",
            connector=connector,
            headers_provider=lambda: {"Cookie": "sid=abc"},
        )
        manager.connect()
        await settle()

        assert connector.headers == [{"Cookie": "sid=abc"}]
        await manager.close()

    @pytest.mark.asyncio
    async def test_connect_twice_keeps_single_connection(self, connection, connector):
        connection.connect()
        await settle()
        first = connector.latest

        connection.connect()
        await settle()

        assert connector.calls == 2
        assert first.closed
        assert not connector.latest.closed
        assert connection.is_connected
        # Replacing the connection must not schedule a reconnect
        assert not connection.has_pending_reconnect

        await connection.close()

    @pytest.mark.asyncio
    async def test_server_close_disconnects_and_schedules_reconnect(self, connection, connector):
        connection.connect()
        await settle()

        connector.latest.drop()
        await settle()

        assert connection.state == ConnectionState.DISCONNECTED
        assert connection.has_pending_reconnect

        await connection.close()

    @pytest.mark.asyncio
    async def test_read_error_disconnects_then_reconnect_is_scheduled(self, connection, connector):
        connection.connect()
        await settle()

        connector.latest.fail(ConnectionResetError("reset by peer"))
        await settle()

        assert connection.state == ConnectionState.DISCONNECTED
        assert connection.has_pending_reconnect
        assert connection.health.last_error == "reset by peer"

        await connection.close()

    @pytest.mark.asyncio
    async def test_open_failure_schedules_reconnect(self, connection, connector):
        connector.fail_next = 1

        connection.connect()
        await settle()

        assert connection.state == ConnectionState.DISCONNECTED
        assert connection.has_pending_reconnect
        assert connection.health.consecutive_failures == 1

        await connection.close()


# ===== Reconnect timer =====

class TestReconnect:
    """Fixed-delay reconnect"""

    @pytest.mark.asyncio
    async def test_reconnect_scheduled_with_fixed_delay(self, connector):
        manager = ConnectionManager("ws://testserver/api/chat/ws", connector=connector)
        manager.connect()
        await settle()

        loop = asyncio.get_running_loop()
        connector.latest.drop()
        await settle()

        remaining = manager._reconnect_handle.when() - loop.time()
        assert 2.9 < remaining <= 3.0

        await manager.close()
        assert not manager.has_pending_reconnect

    @pytest.mark.asyncio
    async def test_reconnect_fires_after_delay_only(self, connection, connector):
        connection.connect()
        await settle()
        connector.latest.drop()
        await settle()

        await asyncio.sleep(0.05)
        assert connector.calls == 1

        await asyncio.sleep(0.3)
        await settle()
        assert connector.calls == 2
        assert connection.is_connected
        assert connection.health.total_reconnects == 1

        await connection.close()

    @pytest.mark.asyncio
    async def test_connect_cancels_pending_reconnect(self, connection, connector):
        connection.connect()
        await settle()
        connector.latest.drop()
        await settle()
        assert connection.has_pending_reconnect

        connection.connect()
        assert not connection.has_pending_reconnect
        await settle()

        await asyncio.sleep(0.3)
        assert connector.calls == 2

        await connection.close()

    @pytest.mark.asyncio
    async def test_never_more_than_one_pending_timer(self, connection, connector):
        """Repeated open failures keep exactly one timer alive"""
        connector.fail_next = 3
        handles = []

        connection.connect()
        for _ in range(3):
            await settle()
            assert connection.has_pending_reconnect
            handles.append(connection._reconnect_handle)
            connection.connect()

        await settle()
        assert connection.is_connected
        assert not connection.has_pending_reconnect
        assert all(handle.cancelled() for handle in handles)

        await connection.close()

    @pytest.mark.asyncio
    async def test_close_stops_reconnect_loop(self, connection, connector):
        connection.connect()
        await settle()
        connector.latest.drop()
        await settle()

        await connection.close()
        await asyncio.sleep(0.3)

        assert connector.calls == 1
        assert connection.state == ConnectionState.DISCONNECTED
        assert not connection.has_pending_reconnect

    @pytest.mark.asyncio
    async def test_close_releases_open_socket(self, connection, connector):
        connection.connect()
        await settle()
        socket = connector.latest

        await connection.close()

        assert socket.closed
        assert not connection.has_pending_reconnect


# ===== Open callbacks =====

class TestOpenCallbacks:
    """on_open hooks, used for re-joining"""

    @pytest.mark.asyncio
    async def test_open_callback_runs_once_per_open(self, connection, connector):
        calls = []

        async def on_open():
            calls.append(connection.state)

        connection.on_open(on_open)
        connection.connect()
        await settle()

        assert calls == [ConnectionState.CONNECTED]

        connector.latest.drop()
        await asyncio.sleep(0.3)
        await settle()

        assert len(calls) == 2
        await connection.close()

    @pytest.mark.asyncio
    async def test_open_callback_error_keeps_connection(self, connection, connector):
        async def broken():
            raise RuntimeError("boom")

        connection.on_open(broken)
        connection.connect()
        await settle()

        assert connection.is_connected
        await connection.close()


# ===== Inbound frames =====

class TestInboundFrames:
    """Frame parsing and dispatch"""

    @pytest.mark.asyncio
    async def test_message_frames_dispatched_in_order(self, connection, connector):
        received = []
        connection.on_frame(received.append)
        connection.connect()
        await settle()

        for i in range(5):
            connector.latest.push(push_frame(1, f"m{i}"))
        await settle()

        assert [frame.content for frame in received] == ["m0", "m1", "m2", "m3", "m4"]
        await connection.close()

    @pytest.mark.asyncio
    async def test_malformed_frames_dropped_connection_stays_open(self, connection, connector):
        received = []
        connection.on_frame(received.append)
        connection.connect()
        await settle()

        socket = connector.latest
        socket.push("not json at all")
        socket.push("[1, 2, 3]")
        socket.push({"type": "message", "content": "missing fields"})
        socket.push({"type": "typing", "conversation_id": 1})
        socket.push({"no_type": True})
        socket.push("[" * 200000)
        await settle()

        assert received == []
        assert connection.is_connected
        assert not connection.has_pending_reconnect
        assert connection.health.frames_dropped == 6
        assert not socket.closed

        await connection.close()

    @pytest.mark.asyncio
    async def test_frame_callback_error_does_not_break_loop(self, connection, connector):
        received = []

        def broken(frame):
            raise ValueError("bad listener")

        connection.on_frame(broken)
        connection.on_frame(received.append)
        connection.connect()
        await settle()

        connector.latest.push(push_frame(1, "a"))
        connector.latest.push(push_frame(1, "b"))
        await settle()

        assert [frame.content for frame in received] == ["a", "b"]
        assert connection.is_connected
        await connection.close()


# ===== Outbound =====

class TestSend:
    """send() only while connected"""

    @pytest.mark.asyncio
    async def test_send_when_disconnected_is_noop(self, connection, connector):
        sent = await connection.send(JoinFrame(conversation_id=1))

        assert sent is False
        assert connector.calls == 0

    @pytest.mark.asyncio
    async def test_send_while_connecting_is_not_buffered(self, connection, connector):
        connection.connect()
        sent = await connection.send(JoinFrame(conversation_id=1))
        await settle()

        assert sent is False
        assert connector.latest.sent == []
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_when_connected(self, connection, connector):
        connection.connect()
        await settle()

        sent = await connection.send(OutboundMessageFrame(conversation_id=1, content="salem"))

        assert sent is True
        assert connector.latest.sent_frames == [
            {"type": "message", "conversation_id": 1, "content": "salem"}
        ]
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_failure_drops_connection_and_reconnects(self, connection, connector):
        connection.connect()
        await settle()
        connector.latest.fail_send = True

        sent = await connection.send(JoinFrame(conversation_id=1))
        await settle()

        assert sent is False
        assert connection.state == ConnectionState.DISCONNECTED
        assert connection.has_pending_reconnect
        await connection.close()

    def test_get_status(self, connection):
        status = connection.get_status()

        assert status["state"] == "disconnected"
        assert status["reconnect_pending"] is False
        assert status["url"] == "ws://testserver/api/chat/ws"
