"""
Tests for the reconnecting chat client, driven by an in-memory transport.
"""
import asyncio
import json

import pytest

from marketplace_app.realtime.client import ChatClient, ConnectionState, NotificationPreferences

DELAY = 0.05


class FakeTransport:
    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def send(self, data):
        if self.closed:
            raise ConnectionError("closed")
        self.sent.append(json.loads(data))

    async def receive(self):
        return await self.incoming.get()

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def push(self, event):
        self.incoming.put_nowait(json.dumps(event))

    def drop(self):
        """Server side goes away"""
        self.incoming.put_nowait(None)


class FakeConnector:
    def __init__(self, failures=0):
        self.failures = failures
        self.transports = []
        self.attempts = 0

    async def __call__(self, url):
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("server down")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self):
        return self.transports[-1]


@pytest.fixture
def preferences(tmp_path):
    return NotificationPreferences(tmp_path / "notifications.json")


def make_client(connector, preferences, **kwargs):
    kwargs.setdefault("reconnect_delay", DELAY)
    kwargs.setdefault("typing_timeout", 10)
    kwargs.setdefault("play_sound", lambda: None)
    return ChatClient(
        "ws://test/ws?user_id=me",
        user_id="me",
        connector=connector,
        preferences=preferences,
        **kwargs
    )


def new_message(conversation_id, sender_id, content="hi"):
    return {
        "type": "new_message",
        "message": {
            "id": "m1",
            "conversationId": conversation_id,
            "senderId": sender_id,
            "content": content,
            "isRead": False,
            "createdAt": "2025-06-01T10:00:00",
        },
    }


class TestConnectionLifecycle:

    def test_start_connects(self, preferences):
        states = []

        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences, on_state_change=states.append)
            await client.start()
            assert client.state == ConnectionState.CONNECTED
            await client.teardown()

        asyncio.run(scenario())
        assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.DISCONNECTED]

    def test_reconnects_after_drop(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()

            connector.current.drop()
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert client.state == ConnectionState.DISCONNECTED

            await asyncio.sleep(DELAY * 3)
            assert connector.attempts == 2
            assert client.state == ConnectionState.CONNECTED
            await client.teardown()

        asyncio.run(scenario())

    def test_dropped_transport_is_closed(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()
            first = connector.current

            first.drop()
            await asyncio.sleep(DELAY * 3)
            assert first.closed
            assert connector.attempts == 2

            second = connector.current
            await client.teardown()
            assert second.closed

        asyncio.run(scenario())

    def test_no_reconnect_after_teardown(self, preferences):
        """Torn down right after a close: the pending reconnect never fires"""
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()

            connector.current.drop()
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            await client.teardown()

            await asyncio.sleep(DELAY * 4)
            assert connector.attempts == 1
            assert client.state == ConnectionState.DISCONNECTED

        asyncio.run(scenario())

    def test_failed_connect_is_retried(self, preferences):
        async def scenario():
            connector = FakeConnector(failures=2)
            client = make_client(connector, preferences)
            await client.start()
            assert client.state == ConnectionState.DISCONNECTED

            await asyncio.sleep(DELAY * 6)
            assert connector.attempts == 3
            assert client.state == ConnectionState.CONNECTED
            await client.teardown()

        asyncio.run(scenario())

    def test_single_reconnect_timer(self, preferences):
        """Repeated close signals still schedule only one reconnect"""
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()
            stale = connector.current

            stale.drop()
            stale.drop()
            await asyncio.sleep(DELAY * 1.5)
            assert connector.attempts == 2
            await client.teardown()

        asyncio.run(scenario())

    def test_events_from_replaced_socket_are_ignored(self, preferences):
        received = []

        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences, on_new_message=received.append)
            client.current_conversation_id = "c1"
            await client.start()
            old = connector.current

            old.drop()
            await asyncio.sleep(DELAY * 3)
            assert connector.current is not old

            # a late event on the replaced socket
            old.push(new_message("c1", "peer", "ghost"))
            connector.current.push(new_message("c1", "peer", "live"))
            await asyncio.sleep(0.01)
            await client.teardown()

        asyncio.run(scenario())
        assert [m["content"] for m in received] == ["live"]

    def test_teardown_during_handshake_closes_new_socket(self, preferences):
        async def scenario():
            gate = asyncio.Event()
            transport = FakeTransport()

            async def slow_connector(url):
                await gate.wait()
                return transport

            client = make_client(slow_connector, preferences)
            starting = asyncio.ensure_future(client.start())
            await asyncio.sleep(0)
            await client.teardown()
            gate.set()
            await starting

            assert transport.closed
            assert client.state == ConnectionState.DISCONNECTED

        asyncio.run(scenario())

    def test_start_after_teardown_fails(self, preferences):
        async def scenario():
            client = make_client(FakeConnector(), preferences)
            await client.teardown()
            with pytest.raises(RuntimeError):
                await client.start()

        asyncio.run(scenario())


class TestSending:

    def test_send_while_disconnected_is_not_queued(self, preferences):
        errors = []

        async def scenario():
            connector = FakeConnector(failures=1)
            client = make_client(connector, preferences, on_send_error=errors.append)
            client.current_conversation_id = "c1"
            await client.start()

            assert await client.send_chat_message("hello?") is False

            await asyncio.sleep(DELAY * 3)
            assert client.is_connected
            # nothing was replayed after reconnecting
            assert connector.current.sent == []
            await client.teardown()

        asyncio.run(scenario())
        assert len(errors) == 1

    def test_chat_message_frame(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()
            client.current_conversation_id = "c1"

            assert await client.send_chat_message("hello") is True
            assert await client.send_chat_message("   ") is False
            await client.teardown()
            return connector.current.sent

        sent = asyncio.run(scenario())
        assert sent == [{"type": "chat_message", "conversationId": "c1", "senderId": "me", "content": "hello"}]

    def test_sends_use_current_conversation(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()

            client.select_conversation("c1")
            await client.mark_read()
            client.select_conversation("c2")
            await client.mark_read()
            await client.teardown()
            return connector.current.sent

        sent = asyncio.run(scenario())
        assert [frame["conversationId"] for frame in sent] == ["c1", "c2"]
        assert all(frame == {"type": "mark_read", "conversationId": frame["conversationId"], "userId": "me"} for frame in sent)

    def test_local_typing_stops_after_quiet_period(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences, typing_timeout=0.05)
            await client.start()
            client.current_conversation_id = "c1"

            await client.notify_typing()
            await client.notify_typing()
            await asyncio.sleep(0.15)
            await client.teardown()
            return connector.current.sent

        sent = asyncio.run(scenario())
        assert [frame["type"] for frame in sent] == ["typing_start", "typing_stop"]


class TestInboundEvents:

    def test_new_message_dispatch_uses_current_conversation(self, preferences):
        received, activity = [], []

        async def scenario():
            connector = FakeConnector()
            client = make_client(
                connector, preferences,
                on_new_message=received.append,
                on_conversation_activity=activity.append,
            )
            await client.start()

            client.current_conversation_id = "c1"
            connector.current.push(new_message("c1", "peer", "first"))
            await asyncio.sleep(0.01)

            client.current_conversation_id = "c2"
            connector.current.push(new_message("c1", "peer", "background"))
            connector.current.push(new_message("c2", "peer", "second"))
            await asyncio.sleep(0.01)
            await client.teardown()

        asyncio.run(scenario())
        assert [m["content"] for m in received] == ["first", "second"]
        assert activity == ["c1", "c1", "c2"]

    def test_sound_only_for_peer_messages(self, preferences):
        sounds = []

        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences, play_sound=lambda: sounds.append(1))
            await client.start()

            connector.current.push(new_message("c1", "me"))
            connector.current.push(new_message("c1", "peer"))
            await asyncio.sleep(0.01)
            await client.teardown()

        asyncio.run(scenario())
        assert len(sounds) == 1

    def test_sound_respects_saved_preference(self, preferences, tmp_path):
        preferences.sound_enabled = False
        sounds = []

        async def scenario():
            connector = FakeConnector()
            # a fresh object reads the persisted setting back
            stored = NotificationPreferences(tmp_path / "notifications.json")
            client = make_client(connector, stored, play_sound=lambda: sounds.append(1))
            await client.start()
            connector.current.push(new_message("c1", "peer"))
            await asyncio.sleep(0.01)
            await client.teardown()

        asyncio.run(scenario())
        assert sounds == []

    def test_peer_typing_indicator(self, preferences):
        changes = []

        async def scenario():
            connector = FakeConnector()
            client = make_client(
                connector, preferences, typing_timeout=0.05,
                on_typing_change=lambda conversation_id, users: changes.append(users),
            )
            await client.start()
            client.current_conversation_id = "c1"

            connector.current.push({"type": "user_typing", "conversationId": "c1", "userId": "peer"})
            connector.current.push({"type": "user_typing", "conversationId": "c2", "userId": "other"})
            await asyncio.sleep(0.01)
            assert client.typing_users == {"peer"}

            # no refresh: the indicator times out
            await asyncio.sleep(0.1)
            assert client.typing_users == set()
            await client.teardown()

        asyncio.run(scenario())
        assert changes == [{"peer"}, set()]

    def test_stop_typing_event(self, preferences):
        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences)
            await client.start()
            client.current_conversation_id = "c1"

            connector.current.push({"type": "user_typing", "conversationId": "c1", "userId": "peer"})
            connector.current.push({"type": "user_stop_typing", "conversationId": "c1", "userId": "peer"})
            await asyncio.sleep(0.01)
            assert client.typing_users == set()
            await client.teardown()

        asyncio.run(scenario())

    def test_messages_read_and_garbage(self, preferences):
        reads = []

        async def scenario():
            connector = FakeConnector()
            client = make_client(
                connector, preferences,
                on_messages_read=lambda conversation_id, read_by: reads.append((conversation_id, read_by)),
            )
            await client.start()

            connector.current.incoming.put_nowait("not json")
            connector.current.push({"type": "something_new"})
            connector.current.push({"type": "messages_read", "conversationId": "c1", "readBy": "peer"})
            await asyncio.sleep(0.01)
            assert client.is_connected
            await client.teardown()

        asyncio.run(scenario())
        assert reads == [("c1", "peer")]

    def test_failing_callback_keeps_connection(self, preferences):
        def explode(message):
            raise RuntimeError("ui blew up")

        async def scenario():
            connector = FakeConnector()
            client = make_client(connector, preferences, on_new_message=explode)
            await client.start()
            client.current_conversation_id = "c1"

            connector.current.push(new_message("c1", "peer"))
            connector.current.push({"type": "new_message", "message": "not an object"})
            connector.current.push({"type": ["not", "hashable"]})
            await asyncio.sleep(DELAY * 3)

            assert connector.attempts == 1
            assert not connector.current.closed
            assert client.is_connected
            await client.teardown()

        asyncio.run(scenario())


class TestNotificationPreferences:

    def test_defaults_to_enabled(self, tmp_path):
        assert NotificationPreferences(tmp_path / "missing.json").sound_enabled is True

    def test_persists(self, tmp_path):
        path = tmp_path / "prefs" / "notifications.json"
        NotificationPreferences(path).sound_enabled = False

        assert NotificationPreferences(path).sound_enabled is False

    def test_unreadable_file_falls_back(self, tmp_path):
        path = tmp_path / "notifications.json"
        path.write_text("{broken")

        assert NotificationPreferences(path).sound_enabled is True
