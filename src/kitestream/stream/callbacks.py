"""Optional application callbacks for the ticker."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kitestream.broker.models import Postback
    from kitestream.data.market_data import Tick
    from kitestream.stream.ticker import KiteTicker

logger = logging.getLogger(__name__)


@dataclass
class TickerCallbacks:
    """
    Handlers invoked by ``KiteTicker``. Each receives the ticker first.

    A handler left as ``None`` is skipped silently.
    """

    on_connect: Callable[[KiteTicker], Any] | None = None
    on_ticks: Callable[[KiteTicker, list[Tick]], Any] | None = None
    on_order_update: Callable[[KiteTicker, Postback], Any] | None = None
    on_message: Callable[[KiteTicker, str], Any] | None = None
    on_error: Callable[[KiteTicker, int, str], Any] | None = None
    on_transport_error: Callable[[KiteTicker, Exception], Any] | None = None
    on_close: Callable[[KiteTicker, int, str], Any] | None = None

    def emit(self, name: str, *args: Any) -> bool:
        """
        Invoke the handler ``name`` if set.

        Exceptions raised by the handler are logged and not propagated, so a
        faulty handler cannot tear down the connection loop.

        Returns:
            True if a handler was called and returned normally.
        """
        handler = getattr(self, name)
        if handler is None:
            return False
        try:
            handler(*args)
        except Exception:
            logger.exception(f"Callback {name} raised")
            return False
        return True

    @classmethod
    def names(cls) -> list[str]:
        return [f.name for f in fields(cls)]
