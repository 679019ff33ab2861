"""Outbound subscription control frames.

Every control frame is a JSON object ``{"a": <action>, "v": <value>}`` sent as
a text frame.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from kitestream.constants import ControlAction, Mode


def _tokens(tokens: Iterable[int]) -> list[int]:
    return [int(token) for token in tokens]


def build_control_message(action: ControlAction | str, value: Any) -> str:
    """Serialize a control frame compactly."""
    return json.dumps({"a": ControlAction(action).value, "v": value}, separators=(",", ":"))


def subscribe_message(tokens: Iterable[int]) -> str:
    return build_control_message(ControlAction.SUBSCRIBE, _tokens(tokens))


def unsubscribe_message(tokens: Iterable[int]) -> str:
    return build_control_message(ControlAction.UNSUBSCRIBE, _tokens(tokens))


def mode_message(mode: Mode | str, tokens: Iterable[int]) -> str:
    """
    Build a set-mode frame: ``{"a": "mode", "v": [mode, [tokens...]]}``.

    Raises:
        ValueError: If ``mode`` is not ltp, quote or full.
    """
    return build_control_message(ControlAction.MODE, [Mode(mode).value, _tokens(tokens)])
