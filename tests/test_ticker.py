"""Tests for the websocket connection supervisor."""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time
from websocket import ABNF, WebSocketConnectionClosedException

from kitestream.broker.models import Postback
from kitestream.constants import ConnectionState, Mode
from kitestream.errors import NotConnectedError
from kitestream.stream.callbacks import TickerCallbacks
from kitestream.stream.ticker import KiteTicker

RELIANCE = 738561


def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def callbacks():
    return TickerCallbacks(**{name: MagicMock(name=name) for name in TickerCallbacks.names()})


@pytest.fixture
def mock_app_cls():
    with patch("kitestream.stream.ticker.WebSocketApp") as MockApp:
        yield MockApp


@pytest.fixture
def ticker(callbacks, mock_app_cls):
    return KiteTicker("key123", "token456", callbacks=callbacks, ping_interval=0.01)


@pytest.fixture
def connected(ticker, mock_app_cls):
    """Ticker whose socket has completed the handshake."""
    ticker.connect()
    ws = mock_app_cls.return_value
    ticker._on_open(ws)
    return ticker, ws


class TestCredentials:
    def test_url_embeds_credentials(self, ticker) -> None:
        assert ticker.url == "wss://ws.kite.trade/?api_key=key123&access_token=token456"

    def test_setters(self, ticker) -> None:
        ticker.api_key = "other"
        ticker.access_token = "secret"
        assert ticker.api_key == "other"
        assert ticker.access_token == "secret"
        assert "api_key=other&access_token=secret" in ticker.url

    def test_custom_root(self) -> None:
        ticker = KiteTicker("k", "t", root="wss://example.test/")
        assert ticker.url == "wss://example.test/?api_key=k&access_token=t"

    def test_invalid_ping_interval(self) -> None:
        with pytest.raises(ValueError):
            KiteTicker("k", "t", ping_interval=0)


class TestConnect:
    def test_connect_registers_handlers(self, ticker, mock_app_cls) -> None:
        ticker.connect()

        args, kwargs = mock_app_cls.call_args
        assert args[0] == ticker.url
        for name in ("on_open", "on_data", "on_close", "on_error", "on_pong"):
            assert callable(kwargs[name])
        assert ticker.state == ConnectionState.CONNECTING
        assert ticker.is_connected() is False

    def test_on_open(self, connected, callbacks) -> None:
        ticker, _ = connected
        assert ticker.is_connected() is True
        assert ticker.state == ConnectionState.CONNECTED
        callbacks.on_connect.assert_called_once_with(ticker)

    def test_run_without_connect_raises(self, ticker) -> None:
        with pytest.raises(NotConnectedError):
            ticker.run()


class TestSubscriptions:
    @pytest.mark.parametrize(
        "call",
        [
            lambda t: t.subscribe([1]),
            lambda t: t.unsubscribe([1]),
            lambda t: t.set_mode("full", [1]),
        ],
    )
    def test_send_before_connect_raises(self, ticker, mock_app_cls, call) -> None:
        with pytest.raises(NotConnectedError, match="not connected"):
            call(ticker)
        mock_app_cls.return_value.send.assert_not_called()

    def test_send_after_connect_before_open_raises(self, ticker, mock_app_cls) -> None:
        ticker.connect()
        with pytest.raises(NotConnectedError):
            ticker.subscribe([1])
        mock_app_cls.return_value.send.assert_not_called()

    def test_set_mode_payload(self, connected) -> None:
        ticker, ws = connected
        ticker.set_mode("full", [408065])
        ws.send.assert_called_once_with('{"a":"mode","v":["full",[408065]]}', opcode=ABNF.OPCODE_TEXT)

    def test_subscribe_and_unsubscribe(self, connected) -> None:
        ticker, ws = connected
        ticker.subscribe([408065, 884737])
        ws.send.assert_called_with('{"a":"subscribe","v":[408065,884737]}', opcode=ABNF.OPCODE_TEXT)
        assert ticker.subscribed_tokens == {408065: Mode.QUOTE, 884737: Mode.QUOTE}

        ticker.set_mode(Mode.FULL, [408065])
        assert ticker.subscribed_tokens[408065] == Mode.FULL

        ticker.unsubscribe([884737])
        ws.send.assert_called_with('{"a":"unsubscribe","v":[884737]}', opcode=ABNF.OPCODE_TEXT)
        assert ticker.subscribed_tokens == {408065: Mode.FULL}

    def test_send_racing_close_raises_not_connected(self, connected) -> None:
        ticker, ws = connected
        ws.send.side_effect = WebSocketConnectionClosedException("closed")
        with pytest.raises(NotConnectedError):
            ticker.subscribe([1])
        assert ticker.subscribed_tokens == {}


class TestBinaryFrames:
    def test_ticks_delivered(self, connected, callbacks, packets) -> None:
        ticker, ws = connected
        frame = packets.frame(packets.ltp(RELIANCE, 250000), packets.quote(RELIANCE))

        ticker._on_data(ws, frame, ABNF.OPCODE_BINARY, True)

        callbacks.on_ticks.assert_called_once()
        _, ticks = callbacks.on_ticks.call_args.args
        assert [t.mode for t in ticks] == [Mode.LTP, Mode.QUOTE]
        assert ticks[0].last_price == Decimal("2500")

    @freeze_time("2024-03-01 09:15:00")
    def test_heartbeat_updates_time(self, connected, callbacks) -> None:
        ticker, ws = connected
        assert ticker.last_heartbeat_time is None

        ticker._on_data(ws, b"\x00", ABNF.OPCODE_BINARY, True)

        assert ticker.last_heartbeat_time == datetime(2024, 3, 1, 9, 15, tzinfo=timezone.utc)
        callbacks.on_ticks.assert_not_called()

    def test_bad_packet_reported_rest_delivered(self, connected, callbacks, packets) -> None:
        ticker, ws = connected
        frame = packets.frame(packets.ltp(RELIANCE, 1), b"\x01" * 10, packets.ltp(RELIANCE, 2))

        ticker._on_data(ws, frame, ABNF.OPCODE_BINARY, True)

        callbacks.on_error.assert_called_once()
        assert callbacks.on_error.call_args.args[1] == 0
        _, ticks = callbacks.on_ticks.call_args.args
        assert len(ticks) == 2

    def test_malformed_frame_dropped(self, connected, callbacks, packets) -> None:
        ticker, ws = connected
        frame = packets.frame(packets.quote(RELIANCE))[:20]

        ticker._on_data(ws, frame, ABNF.OPCODE_BINARY, True)

        callbacks.on_error.assert_called_once()
        callbacks.on_ticks.assert_not_called()
        assert ticker.is_connected() is True

    def test_failing_tick_callback_does_not_propagate(self, connected, callbacks, packets) -> None:
        ticker, ws = connected
        callbacks.on_ticks.side_effect = RuntimeError("user bug")
        ticker._on_data(ws, packets.frame(packets.ltp(RELIANCE, 1)), ABNF.OPCODE_BINARY, True)
        assert ticker.is_connected() is True


class TestTextFrames:
    def test_order_update(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_data(
            ws,
            '{"type": "order", "data": {"order_id": "1", "status": "OPEN"}}',
            ABNF.OPCODE_TEXT,
            True,
        )
        _, postback = callbacks.on_order_update.call_args.args
        assert isinstance(postback, Postback)
        assert postback.status == "OPEN"

    def test_missing_type_reported(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_data(ws, '{"data": {}}', ABNF.OPCODE_TEXT, True)
        callbacks.on_error.assert_called_once()
        assert callbacks.on_error.call_args.args[1] == 0

    @pytest.mark.parametrize(
        "data",
        [
            {"order_id": "1", "status": "OPEN", "quantity": "abc"},
            {"order_id": "1", "status": "OPEN", "order_timestamp": "garbage"},
        ],
    )
    def test_order_with_bad_fields_reported_as_protocol_error(
        self, connected, callbacks, data: dict
    ) -> None:
        ticker, ws = connected
        ticker._on_data(ws, json.dumps({"type": "order", "data": data}), ABNF.OPCODE_TEXT, True)

        callbacks.on_error.assert_called_once()
        assert callbacks.on_error.call_args.args[1] == 0
        callbacks.on_transport_error.assert_not_called()
        callbacks.on_order_update.assert_not_called()
        assert ticker.is_connected() is True

    def test_malformed_json_reported(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_data(ws, "{oops", ABNF.OPCODE_TEXT, True)
        callbacks.on_error.assert_called_once()


class TestClose:
    def test_normal_close(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_close(ws, 1000, "bye")

        assert ticker.is_connected() is False
        assert ticker.state == ConnectionState.DISCONNECTED
        callbacks.on_error.assert_not_called()
        callbacks.on_close.assert_called_once_with(ticker, 1000, "bye")

    def test_abnormal_close_reports_error(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_close(ws, 1011, b"server error")

        callbacks.on_error.assert_called_once_with(ticker, 1011, "server error")
        callbacks.on_close.assert_called_once_with(ticker, 1011, "server error")

    def test_close_without_code_is_abnormal(self, connected, callbacks) -> None:
        ticker, ws = connected
        ticker._on_close(ws, None, None)
        callbacks.on_error.assert_called_once_with(ticker, 1006, "")

    def test_send_after_close_raises(self, connected) -> None:
        ticker, ws = connected
        ticker._on_close(ws, 1000, "")
        with pytest.raises(NotConnectedError):
            ticker.subscribe([1])

    def test_transport_error(self, connected, callbacks) -> None:
        ticker, ws = connected
        error = ConnectionResetError("reset")
        ticker._on_error(ws, error)
        callbacks.on_transport_error.assert_called_once_with(ticker, error)

    def test_pong_recorded(self, connected) -> None:
        ticker, ws = connected
        ticker._on_pong(ws, b"")
        assert ticker.last_pong_time is not None
        assert ticker.last_pong_time.tzinfo is timezone.utc


class TestKeepAlive:
    def test_ping_failure_is_ignored(self, connected) -> None:
        ticker, ws = connected
        ws.sock.ping.side_effect = WebSocketConnectionClosedException("gone")
        assert ticker._send_ping(ws) is False

    def test_ping_without_socket(self, connected) -> None:
        ticker, ws = connected
        ws.sock = None
        assert ticker._send_ping(ws) is False

    def test_run_pings_and_stop_terminates(self, ticker, mock_app_cls) -> None:
        ticker.connect()
        app = mock_app_cls.return_value
        closed = threading.Event()
        app.close.side_effect = lambda *args, **kwargs: closed.set()

        def run_forever(*args, **kwargs):
            ticker._on_open(app)
            closed.wait(5)
            ticker._on_close(app, 1000, "")

        app.run_forever.side_effect = run_forever

        runner = threading.Thread(target=ticker.run)
        runner.start()

        assert wait_until(lambda: app.sock.ping.call_count >= 2)
        app.sock.ping.assert_called_with("")

        ticker.stop()
        runner.join(2)

        assert not runner.is_alive()
        assert not ticker._ping_thread.is_alive()
        app.close.assert_called()
        assert ticker.is_connected() is False
        assert ticker.subscribed_tokens == {}

    def test_no_ping_while_disconnected(self, ticker, mock_app_cls) -> None:
        ticker.connect()
        app = mock_app_cls.return_value
        closed = threading.Event()
        app.close.side_effect = lambda *args, **kwargs: closed.set()
        app.run_forever.side_effect = lambda *args, **kwargs: closed.wait(5)

        runner = threading.Thread(target=ticker.run)
        runner.start()
        assert wait_until(lambda: ticker._ping_thread is not None)
        time.sleep(0.05)

        app.sock.ping.assert_not_called()

        ticker.stop()
        runner.join(2)
        assert not runner.is_alive()
        assert not ticker._ping_thread.is_alive()

    def test_stop_before_run(self, ticker) -> None:
        ticker.stop()
        assert ticker.is_connected() is False
