"""
Client side of the realtime channel.

ChatClient keeps one websocket open to /ws, reconnects after a fixed
delay when it drops, and dispatches inbound events against whatever
conversation the user is looking at *now*. It is the asyncio
counterpart of a browser chat widget: the UI sets
current_conversation_id and registers callbacks.

Usage:
    client = ChatClient("ws://127.0.0.1:8000/ws?user_id=u1", user_id="u1",
                        on_new_message=render)
    await client.start()
    client.select_conversation(conversation_id)
    await client.send_chat_message("hi")
    ...
    await client.teardown()
"""

import asyncio
import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

import aiohttp

from marketplace_app.config import settings

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Transport(Protocol):
    async def send(self, data: str) -> None: ...

    async def receive(self) -> Optional[str]:
        """Next text frame; None once the socket is closed"""

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


class AiohttpTransport:
    """Transport over an aiohttp client websocket; owns its session"""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self.session = session
        self.ws = ws

    async def send(self, data: str) -> None:
        await self.ws.send_str(data)

    async def receive(self) -> Optional[str]:
        while True:
            msg = await self.ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionError(f"Websocket error: {self.ws.exception()}")
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                return None
            # binary frames are not part of the protocol

    async def close(self) -> None:
        try:
            await self.ws.close()
        finally:
            await self.session.close()


async def aiohttp_connector(url: str) -> AiohttpTransport:
    session = aiohttp.ClientSession()
    try:
        ws = await session.ws_connect(url, heartbeat=30)
    except Exception:
        await session.close()
        raise
    return AiohttpTransport(session, ws)


def terminal_bell():
    sys.stdout.write("\a")
    sys.stdout.flush()


class NotificationPreferences:
    """Locally persisted notification settings (a small JSON file)"""

    DEFAULT_PATH = Path.home() / ".marketplace" / "notifications.json"

    def __init__(self, path: Path = None):
        self.path = Path(path) if path is not None else self.DEFAULT_PATH
        self._data = {"sound_enabled": True}
        self._load()

    @property
    def sound_enabled(self) -> bool:
        return bool(self._data.get("sound_enabled", True))

    @sound_enabled.setter
    def sound_enabled(self, value: bool):
        self._data["sound_enabled"] = bool(value)
        self._save()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                self._data.update(stored)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable notification preferences {self.path}: {e}")

    def _save(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
        except OSError as e:
            logger.warning(f"Could not save notification preferences: {e}")


class ChatClient:
    """
    Reconnecting realtime client.

    States go disconnected -> connecting -> connected -> disconnected ...
    After a drop exactly one reconnect is scheduled (reconnect_delay,
    3 s by default) unless the client was torn down. Every socket event
    handler first checks that its socket is still the current one, so a
    late event from a replaced socket changes nothing.

    Sends are never queued: while not connected they return False and
    on_send_error is called.
    """

    def __init__(
        self,
        url: str,
        user_id: str,
        connector: Connector = aiohttp_connector,
        reconnect_delay: float = None,
        typing_timeout: float = None,
        preferences: NotificationPreferences = None,
        play_sound: Callable[[], None] = terminal_bell,
        on_state_change: Callable[[ConnectionState], None] = None,
        on_new_message: Callable[[Dict[str, Any]], None] = None,
        on_conversation_activity: Callable[[str], None] = None,
        on_typing_change: Callable[[str, Set[str]], None] = None,
        on_messages_read: Callable[[str, str], None] = None,
        on_send_error: Callable[[str], None] = None,
    ):
        self.url = url
        self.user_id = user_id
        self.current_conversation_id: Optional[str] = None

        self.connector = connector
        self.reconnect_delay = settings.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        self.typing_timeout = settings.typing_timeout_seconds if typing_timeout is None else typing_timeout
        self.preferences = preferences or NotificationPreferences()
        self.play_sound = play_sound

        self.on_state_change = on_state_change
        self.on_new_message = on_new_message
        self.on_conversation_activity = on_conversation_activity
        self.on_typing_change = on_typing_change
        self.on_messages_read = on_messages_read
        self.on_send_error = on_send_error

        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._torn_down = False
        self._started = False
        self._tasks: Set[asyncio.Task] = set()
        # closes of dropped transports; awaited, never cancelled, on teardown
        self._closing: Set[asyncio.Task] = set()

        # peer typing indicators of the current conversation
        self._peer_typing: Dict[str, asyncio.TimerHandle] = {}
        # conversation we last sent typing_start for
        self._local_typing: Optional[str] = None
        self._local_typing_handle: Optional[asyncio.TimerHandle] = None
        self._local_typing_sent_at = 0.0

        self.connect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    @property
    def typing_users(self) -> Set[str]:
        """Peers currently typing in the current conversation"""
        return set(self._peer_typing)

    async def start(self):
        """Open the connection (idempotent). Returns after the first attempt."""
        if self._torn_down:
            raise RuntimeError("ChatClient was torn down")
        if self._started:
            return
        self._started = True
        await self._connect()

    async def teardown(self):
        """Stop for good: cancel the reconnect timer and close the socket"""
        if self._torn_down:
            return
        self._torn_down = True

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._cancel_local_typing_timer()
        self._clear_peer_typing(notify=False)

        transport, self._transport = self._transport, None
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()

        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()

        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug(f"Error closing transport on teardown: {e}")
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

        self._set_state(ConnectionState.DISCONNECTED)

    def select_conversation(self, conversation_id: Optional[str]):
        """Switch the conversation the user is looking at"""
        if conversation_id == self.current_conversation_id:
            return
        if self._local_typing is not None:
            self._spawn(self.stop_typing())
        self.current_conversation_id = conversation_id
        self._clear_peer_typing()

    # Outbound

    async def send_chat_message(self, content: str) -> bool:
        conversation_id = self.current_conversation_id
        if not conversation_id or not content or not content.strip():
            return False

        sent = await self._send({
            "type": "chat_message",
            "conversationId": conversation_id,
            "senderId": self.user_id,
            "content": content,
        })
        if sent:
            # the server clears our typing state when the message lands
            self._cancel_local_typing_timer()
            self._local_typing = None
        return sent

    async def notify_typing(self) -> bool:
        """
        Call on every keystroke. Sends typing_start when not yet typing
        and again as a refresh every half timeout; typing_stop follows
        automatically after typing_timeout of quiet.
        """
        conversation_id = self.current_conversation_id
        if not conversation_id or not self.is_connected:
            return False

        loop = asyncio.get_running_loop()
        now = loop.time()
        sent = True
        if self._local_typing != conversation_id or now - self._local_typing_sent_at >= self.typing_timeout / 2:
            sent = await self._send({"type": "typing_start", "conversationId": conversation_id})
            if not sent:
                return False
            self._local_typing = conversation_id
            self._local_typing_sent_at = now

        self._cancel_local_typing_timer()
        self._local_typing_handle = loop.call_later(
            self.typing_timeout, lambda: self._spawn(self.stop_typing())
        )
        return sent

    async def stop_typing(self) -> bool:
        conversation_id = self._local_typing
        self._cancel_local_typing_timer()
        if conversation_id is None:
            return False
        self._local_typing = None
        return await self._send({"type": "typing_stop", "conversationId": conversation_id})

    async def mark_read(self) -> bool:
        conversation_id = self.current_conversation_id
        if not conversation_id:
            return False
        return await self._send({
            "type": "mark_read",
            "conversationId": conversation_id,
            "userId": self.user_id,
        })

    async def _send(self, payload: dict) -> bool:
        transport = self._transport
        if not self.is_connected or transport is None:
            self._report_send_error(f"Not connected, {payload['type']} not sent")
            return False
        try:
            await transport.send(json.dumps(payload))
            return True
        except Exception as e:
            # the reader notices the broken socket and drives the reconnect
            self._report_send_error(f"Send failed: {e}")
            return False

    def _report_send_error(self, reason: str):
        logger.warning(reason)
        if self.on_send_error:
            self.on_send_error(reason)

    # Connection lifecycle

    async def _connect(self):
        if self._torn_down:
            return

        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1
        try:
            transport = await self.connector(self.url)
        except Exception as e:
            logger.warning(f"Connection to {self.url} failed: {e}")
            if not self._torn_down:
                self._set_state(ConnectionState.DISCONNECTED)
                self._schedule_reconnect()
            return

        if self._torn_down:
            # teardown happened during the handshake
            await transport.close()
            return

        self._transport = transport
        self._on_open(transport)
        self._reader = asyncio.ensure_future(self._read_loop(transport))

    async def _read_loop(self, transport: Transport):
        try:
            while True:
                raw = await transport.receive()
                if raw is None:
                    break
                if not self._is_current(transport):
                    return
                self._on_message(transport, raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Connection error: {e}")
        self._on_close(transport)

    def _is_current(self, transport: Transport) -> bool:
        return not self._torn_down and transport is self._transport

    def _on_open(self, transport: Transport):
        if not self._is_current(transport):
            return
        logger.info(f"Connected to {self.url}")
        self._set_state(ConnectionState.CONNECTED)

    def _on_close(self, transport: Transport):
        if not self._is_current(transport):
            return
        logger.info("Connection closed")
        self._transport = None
        closing = asyncio.ensure_future(self._close_quietly(transport))
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)
        self._reader = None
        self._local_typing = None
        self._cancel_local_typing_timer()
        self._clear_peer_typing()
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    async def _close_quietly(self, transport: Transport):
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing dropped transport: {e}")

    def _schedule_reconnect(self):
        if self._torn_down or self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)
        logger.info(f"Reconnecting in {self.reconnect_delay}s")

    def _on_reconnect_timer(self):
        self._reconnect_handle = None
        if self._torn_down:
            return
        self._spawn(self._connect())

    def _set_state(self, state: ConnectionState):
        if state == self._state:
            return
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Inbound

    def _on_message(self, transport: Transport, raw: str):
        handlers = {
            "new_message": self._handle_new_message,
            "user_typing": self._handle_user_typing,
            "user_stop_typing": self._handle_user_stop_typing,
            "messages_read": self._handle_messages_read,
        }
        try:
            event = json.loads(raw)
            event_type = event["type"]
            handler = handlers.get(event_type)
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Ignoring malformed event: {e}")
            return

        if handler is None:
            logger.debug(f"Ignoring event of type {event_type!r}")
            return
        try:
            handler(event)
        except Exception:
            # a failing callback or odd payload must not cost the connection
            logger.exception(f"Error handling {event_type} event")

    def _handle_new_message(self, event: dict):
        message = event.get("message") or {}
        conversation_id = message.get("conversationId")
        sender_id = message.get("senderId")

        if self.on_conversation_activity:
            self.on_conversation_activity(conversation_id)

        if conversation_id == self.current_conversation_id:
            self._drop_peer_typing(sender_id)
            if self.on_new_message:
                self.on_new_message(message)

        if sender_id != self.user_id and self.preferences.sound_enabled:
            try:
                self.play_sound()
            except Exception as e:
                logger.debug(f"Notification sound failed: {e}")

    def _handle_user_typing(self, event: dict):
        user_id = event.get("userId")
        if event.get("conversationId") != self.current_conversation_id or user_id == self.user_id:
            return

        previous = self._peer_typing.get(user_id)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._peer_typing[user_id] = loop.call_later(self.typing_timeout, self._drop_peer_typing, user_id)
        if previous is None:
            self._notify_typing_change()

    def _handle_user_stop_typing(self, event: dict):
        if event.get("conversationId") != self.current_conversation_id:
            return
        self._drop_peer_typing(event.get("userId"))

    def _handle_messages_read(self, event: dict):
        if self.on_messages_read:
            self.on_messages_read(event.get("conversationId"), event.get("readBy"))

    def _drop_peer_typing(self, user_id: str):
        handle = self._peer_typing.pop(user_id, None)
        if handle is None:
            return
        handle.cancel()
        self._notify_typing_change()

    def _clear_peer_typing(self, notify: bool = True):
        if not self._peer_typing:
            return
        for handle in self._peer_typing.values():
            handle.cancel()
        self._peer_typing.clear()
        if notify:
            self._notify_typing_change()

    def _notify_typing_change(self):
        if self.on_typing_change:
            self.on_typing_change(self.current_conversation_id, self.typing_users)

    def _cancel_local_typing_timer(self):
        if self._local_typing_handle is not None:
            self._local_typing_handle.cancel()
            self._local_typing_handle = None
