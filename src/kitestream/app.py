"""kitestream Main Application."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from kitestream.broker.models import Postback
from kitestream.config_loader import AppConfig, load_config_with_overrides
from kitestream.constants import LOG_FORMAT
from kitestream.data.market_data import Tick
from kitestream.stream.callbacks import TickerCallbacks
from kitestream.stream.ticker import KiteTicker

logger = logging.getLogger(__name__)


class TickerApp:
    """Wires configuration, logging and the ticker together for the CLI."""

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        tokens: list[int] | None = None,
        mode: str | None = None,
        tick_sink: Callable[[Tick], None] | None = None,
    ):
        self.config_path = Path(config_path)
        self._tokens_override = tokens
        self._mode_override = mode
        self._tick_sink = tick_sink

        self.config: AppConfig | None = None
        self.ticker: KiteTicker | None = None
        self.tick_count = 0

    def _setup_logging(self) -> None:
        level = self.config.environment.log_level.value if self.config else "INFO"
        logging.basicConfig(level=level, format=LOG_FORMAT)

    def initialize(self) -> KiteTicker:
        """Load config and build the ticker."""
        self.config = load_config_with_overrides(
            self.config_path.absolute(), tokens=self._tokens_override, mode=self._mode_override
        )
        self._setup_logging()
        logger.info("Initializing kitestream...")

        kite = self.config.kite
        if not kite.has_credentials:
            raise ValueError("Kite credentials missing in config (api_key and access_token).")

        callbacks = TickerCallbacks(
            on_connect=self._on_connect,
            on_ticks=self._on_ticks,
            on_order_update=self._on_order_update,
            on_message=self._on_message,
            on_error=self._on_error,
            on_transport_error=self._on_transport_error,
            on_close=self._on_close,
        )
        self.ticker = KiteTicker(
            kite.api_key,
            kite.access_token,
            callbacks=callbacks,
            root=kite.ws_root,
            ping_interval=self.config.stream.ping_interval,
            default_mode=self.config.stream.mode,
        )
        return self.ticker

    def run(self) -> None:
        """Connect and stream until the connection closes or Ctrl-C."""
        ticker = self.ticker or self.initialize()
        try:
            ticker.connect()
            ticker.run()
        finally:
            ticker.stop()
            logger.info(f"Shutdown complete. {self.tick_count} ticks received.")

    # --- Callbacks ---

    def _on_connect(self, ticker: KiteTicker) -> None:
        tokens = self.config.stream.tokens
        if not tokens:
            logger.warning("No instrument tokens configured; nothing to subscribe")
            return
        ticker.subscribe(tokens)
        ticker.set_mode(self.config.stream.mode, tokens)

    def _on_ticks(self, ticker: KiteTicker, ticks: list[Tick]) -> None:
        self.tick_count += len(ticks)
        for tick in ticks:
            logger.info(f"{tick.instrument_token} [{tick.mode.value}] {tick.last_price}")
            if self._tick_sink:
                self._tick_sink(tick)

    def _on_order_update(self, ticker: KiteTicker, postback: Postback) -> None:
        logger.info(
            f"Order {postback.order_id} {postback.status}: "
            f"{postback.transaction_type} {postback.filled_quantity}/{postback.quantity} "
            f"{postback.tradingsymbol}"
        )

    def _on_message(self, ticker: KiteTicker, message: str) -> None:
        logger.info(f"Message: {message}")

    def _on_error(self, ticker: KiteTicker, code: int, message: str) -> None:
        logger.error(f"Stream error {code}: {message}")

    def _on_transport_error(self, ticker: KiteTicker, error: Exception) -> None:
        logger.error(f"Transport error: {error}")

    def _on_close(self, ticker: KiteTicker, code: int, reason: str) -> None:
        logger.info(f"Connection closed: {code} {reason}")
