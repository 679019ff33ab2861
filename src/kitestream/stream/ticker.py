"""Websocket connection supervisor for the tick and order-update stream."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from websocket import ABNF, WebSocketApp, WebSocketException

from kitestream.constants import (
    CLOSE_ABNORMAL,
    CLOSE_NORMAL,
    CONNECT_URL_FORMAT,
    DEFAULT_PING_INTERVAL,
    DEFAULT_WS_ROOT,
    PING_MESSAGE,
    PROTOCOL_ERROR_CODE,
    ConnectionState,
    Mode,
)
from kitestream.data.tick_decoder import decode_frame
from kitestream.errors import DecodeError, NotConnectedError, ProtocolError
from kitestream.stream.callbacks import TickerCallbacks
from kitestream.stream.dispatcher import TextMessageDispatcher
from kitestream.stream.subscriptions import (
    mode_message,
    subscribe_message,
    unsubscribe_message,
)

logger = logging.getLogger(__name__)


class KiteTicker:
    """
    Streaming client for market ticks and order postbacks.

    Lifecycle: ``connect()`` prepares the websocket with credentials in the
    URL, ``run()`` performs the handshake and blocks in the event loop while a
    background thread pings the server, ``stop()`` ends both.

    Usage:
        ticker = KiteTicker(api_key, access_token)
        ticker.callbacks.on_ticks = lambda ws, ticks: print(ticks)
        ticker.callbacks.on_connect = lambda ws: ws.subscribe([408065])
        ticker.connect()
        ticker.run()
    """

    def __init__(
        self,
        api_key: str,
        access_token: str = "",
        *,
        callbacks: TickerCallbacks | None = None,
        root: str = DEFAULT_WS_ROOT,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        default_mode: Mode = Mode.QUOTE,
    ):
        if ping_interval <= 0:
            raise ValueError(f"ping_interval must be positive, got: {ping_interval}")

        self._api_key = api_key
        self._access_token = access_token
        self.root = root.rstrip("/")
        self.ping_interval = ping_interval
        self.default_mode = Mode(default_mode)
        self.callbacks = callbacks or TickerCallbacks()
        self._dispatcher = TextMessageDispatcher(self, self.callbacks)

        self._app: WebSocketApp | None = None
        self._state = ConnectionState.DISCONNECTED

        # Guards the live handle; the keep-alive thread waits on it while disconnected
        self._handle_cond = threading.Condition()
        self._handle: WebSocketApp | None = None

        self._stop_event = threading.Event()
        self._ping_thread: threading.Thread | None = None

        self._last_heartbeat_time: datetime | None = None
        self._last_pong_time: datetime | None = None
        self._subscribed: dict[int, Mode] = {}

    # --- Credentials ---

    @property
    def api_key(self) -> str:
        return self._api_key

    @api_key.setter
    def api_key(self, value: str) -> None:
        self._api_key = value

    @property
    def access_token(self) -> str:
        return self._access_token

    @access_token.setter
    def access_token(self, value: str) -> None:
        self._access_token = value

    @property
    def url(self) -> str:
        """Handshake URL with credentials as query parameters."""
        return CONNECT_URL_FORMAT.format(
            root=self.root,
            api_key=quote(self._api_key, safe=""),
            access_token=quote(self._access_token, safe=""),
        )

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        with self._handle_cond:
            return self._handle is not None

    @property
    def last_heartbeat_time(self) -> datetime | None:
        return self._last_heartbeat_time

    @property
    def last_pong_time(self) -> datetime | None:
        return self._last_pong_time

    @property
    def subscribed_tokens(self) -> dict[int, Mode]:
        """Instrument token -> mode for every token subscribed on this session."""
        return dict(self._subscribed)

    # --- Lifecycle ---

    def connect(self) -> None:
        """Build the websocket with all handlers registered, ready for ``run()``."""
        if self.is_connected():
            raise RuntimeError("Already connected; call stop() first")

        self._stop_event.clear()
        logger.info(f"Connecting to {self.root} (api_key={self._api_key})")
        self._app = WebSocketApp(
            self.url,
            on_open=self._on_open,
            on_data=self._on_data,
            on_close=self._on_close,
            on_error=self._on_error,
            on_pong=self._on_pong,
        )
        self._state = ConnectionState.CONNECTING

    def run(self) -> None:
        """Start the keep-alive thread and block in the websocket event loop."""
        if self._app is None:
            raise NotConnectedError("connect() must be called before run()")

        if self._ping_thread is None or not self._ping_thread.is_alive():
            self._ping_thread = threading.Thread(
                target=self._ping_loop, name="kitestream-keepalive", daemon=True
            )
            self._ping_thread.start()

        try:
            self._app.run_forever()
        finally:
            self._set_handle(None)
            logger.info("Websocket event loop exited")

    def stop(self) -> None:
        """Stop the keep-alive thread and close the socket."""
        logger.info("Stopping ticker")
        self._stop_event.set()
        with self._handle_cond:
            self._handle_cond.notify_all()

        if self._ping_thread is not None and self._ping_thread is not threading.current_thread():
            self._ping_thread.join()

        if self._app is not None:
            try:
                self._app.close()
            except (WebSocketException, OSError) as e:
                logger.warning(f"Error closing websocket: {e}")

        self._set_handle(None)
        self._subscribed.clear()

    # --- Subscriptions ---

    def subscribe(self, tokens: Iterable[int]) -> None:
        """Subscribe to instrument tokens."""
        tokens = [int(token) for token in tokens]
        self._send_text(subscribe_message(tokens))
        for token in tokens:
            self._subscribed.setdefault(token, self.default_mode)
        logger.info(f"Subscribed to {len(tokens)} instruments")

    def unsubscribe(self, tokens: Iterable[int]) -> None:
        """Unsubscribe from instrument tokens."""
        tokens = [int(token) for token in tokens]
        self._send_text(unsubscribe_message(tokens))
        for token in tokens:
            self._subscribed.pop(token, None)
        logger.info(f"Unsubscribed from {len(tokens)} instruments")

    def set_mode(self, mode: Mode | str, tokens: Iterable[int]) -> None:
        """Set the streaming mode for instrument tokens."""
        tokens = [int(token) for token in tokens]
        mode = Mode(mode)
        self._send_text(mode_message(mode, tokens))
        for token in tokens:
            self._subscribed[token] = mode
        logger.info(f"Set mode {mode.value} for {len(tokens)} instruments")

    # --- Internals ---

    def _set_handle(self, handle: WebSocketApp | None) -> None:
        with self._handle_cond:
            self._handle = handle
            self._state = (
                ConnectionState.CONNECTED if handle is not None else ConnectionState.DISCONNECTED
            )
            self._handle_cond.notify_all()

    def _require_connected(self) -> WebSocketApp:
        with self._handle_cond:
            handle = self._handle
        if handle is None:
            raise NotConnectedError("Websocket is not connected")
        return handle

    def _send_text(self, payload: str) -> None:
        handle = self._require_connected()
        try:
            handle.send(payload, opcode=ABNF.OPCODE_TEXT)
        except (WebSocketException, OSError) as e:
            raise NotConnectedError(f"Send failed, connection closed: {e}") from e
        logger.debug(f"Sent control frame: {payload}")

    def _send_ping(self, handle: WebSocketApp) -> bool:
        sock = getattr(handle, "sock", None)
        if sock is None:
            return False
        try:
            sock.ping(PING_MESSAGE)
        except (WebSocketException, OSError) as e:
            # Close raced with the ping; the close handler clears the handle
            logger.debug(f"Ping failed: {e}")
            return False
        logger.debug("Sent ping")
        return True

    def _ping_loop(self) -> None:
        logger.debug(f"Keep-alive loop started (interval {self.ping_interval}s)")
        while not self._stop_event.is_set():
            with self._handle_cond:
                self._handle_cond.wait_for(
                    lambda: self._handle is not None or self._stop_event.is_set()
                )
                handle = self._handle
            if self._stop_event.is_set():
                break
            self._send_ping(handle)
            self._stop_event.wait(self.ping_interval)
        logger.debug("Keep-alive loop stopped")

    # --- Socket handlers ---

    def _on_open(self, ws: WebSocketApp) -> None:
        self._set_handle(ws)
        logger.info("Websocket connected")
        self.callbacks.emit("on_connect", self)

    def _on_data(self, ws: WebSocketApp, data: Any, opcode: int, fin: bool) -> None:
        if opcode == ABNF.OPCODE_BINARY:
            self._handle_binary(data)
        elif opcode == ABNF.OPCODE_TEXT:
            self._handle_text(data)

    def _handle_binary(self, data: bytes) -> None:
        try:
            frame = decode_frame(data)
        except DecodeError as e:
            logger.warning(f"Dropping binary frame of {len(data)} bytes: {e}")
            self.callbacks.emit("on_error", self, PROTOCOL_ERROR_CODE, str(e))
            return

        if frame.heartbeat:
            self._last_heartbeat_time = datetime.now(timezone.utc)
            logger.debug("Heartbeat received")
            return

        for error in frame.errors:
            self.callbacks.emit("on_error", self, PROTOCOL_ERROR_CODE, str(error))

        if frame.ticks:
            self.callbacks.emit("on_ticks", self, frame.ticks)

    def _handle_text(self, data: str | bytes) -> None:
        try:
            self._dispatcher.dispatch(data)
        except ProtocolError as e:
            logger.warning(f"Dropping text frame: {e}")
            self.callbacks.emit("on_error", self, PROTOCOL_ERROR_CODE, str(e))

    def _on_close(self, ws: WebSocketApp, code: int | None, reason: str | bytes | None) -> None:
        self._set_handle(None)

        if code is None:
            code = CLOSE_NORMAL if self._stop_event.is_set() else CLOSE_ABNORMAL
        if isinstance(reason, bytes):
            reason = reason.decode("utf-8", errors="replace")
        reason = reason or ""

        if code != CLOSE_NORMAL:
            logger.warning(f"Websocket closed abnormally: {code} {reason}")
            self.callbacks.emit("on_error", self, code, reason)
        else:
            logger.info("Websocket closed")

        self.callbacks.emit("on_close", self, code, reason)

    def _on_error(self, ws: WebSocketApp, error: Exception) -> None:
        logger.error(f"Websocket transport error: {error}")
        self.callbacks.emit("on_transport_error", self, error)

    def _on_pong(self, ws: WebSocketApp, data: Any) -> None:
        self._last_pong_time = datetime.now(timezone.utc)
        logger.debug("Pong received")
