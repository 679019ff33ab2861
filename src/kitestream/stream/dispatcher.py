"""Inbound JSON text frame parsing and dispatch."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from kitestream.broker.models import Postback
from kitestream.constants import PROTOCOL_ERROR_CODE, MessageType
from kitestream.errors import ProtocolError

if TYPE_CHECKING:
    from kitestream.stream.callbacks import TickerCallbacks
    from kitestream.stream.ticker import KiteTicker

logger = logging.getLogger(__name__)


def parse_text_message(message: str | bytes) -> tuple[str, dict[str, Any]]:
    """
    Parse a text frame into its message type and JSON object.

    Raises:
        ProtocolError: If the frame is not a JSON object or has no non-empty
            "type" field.
    """
    try:
        payload = json.loads(message)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Malformed JSON text frame: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(payload).__name__}")

    msg_type = payload.get("type")
    if not msg_type or not isinstance(msg_type, str):
        raise ProtocolError(f"Cannot recognise websocket message type {msg_type!r}")

    return msg_type, payload


class TextMessageDispatcher:
    """Routes parsed text frames to the ticker's callbacks."""

    def __init__(self, ticker: KiteTicker, callbacks: TickerCallbacks):
        self.ticker = ticker
        self.callbacks = callbacks

    def dispatch(self, message: str | bytes) -> str:
        """
        Dispatch one text frame.

        Returns:
            The message type.

        Raises:
            ProtocolError: On malformed frames, or an order message whose
                "data" is not an object or holds unparseable field values.
        """
        msg_type, payload = parse_text_message(message)
        text = message.decode("utf-8") if isinstance(message, bytes) else message

        if msg_type == MessageType.ORDER:
            data = payload.get("data")
            if not isinstance(data, dict):
                raise ProtocolError("Order message without a \"data\" object")
            if self.callbacks.on_order_update is not None:
                try:
                    postback = Postback.from_dict(data)
                except (ValueError, TypeError, ArithmeticError) as e:
                    raise ProtocolError(f"Invalid order update: {e}") from e
                self.callbacks.emit("on_order_update", self.ticker, postback)
        elif msg_type == MessageType.MESSAGE:
            self.callbacks.emit("on_message", self.ticker, text)
        elif msg_type == MessageType.ERROR:
            logger.warning(f"Error message from server: {text}")
            self.callbacks.emit("on_error", self.ticker, PROTOCOL_ERROR_CODE, text)
        else:
            logger.debug(f"Ignoring text frame of type {msg_type}")

        return msg_type
