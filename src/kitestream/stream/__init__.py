"""Streaming Module.

Websocket client for market ticks and order postbacks.
"""

from kitestream.stream.callbacks import TickerCallbacks
from kitestream.stream.dispatcher import TextMessageDispatcher, parse_text_message
from kitestream.stream.ticker import KiteTicker

__all__ = [
    "KiteTicker",
    "TickerCallbacks",
    "TextMessageDispatcher",
    "parse_text_message",
]
