"""Core constants for kitestream."""

from enum import Enum, IntEnum


class Mode(str, Enum):
    """Tick verbosity mode (ltp < quote < full)."""

    LTP = "ltp"
    QUOTE = "quote"
    FULL = "full"


class Segment(IntEnum):
    """Exchange segment encoded in the low byte of an instrument token."""

    NSE = 1
    NFO = 2
    CDS = 3
    BSE = 4
    BFO = 5
    BSECDS = 6
    MCX = 7
    MCXSX = 8
    INDICES = 9


class ConnectionState(str, Enum):
    """Websocket connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ControlAction(str, Enum):
    """Outbound control frame actions (the "a" key)."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    MODE = "mode"


class MessageType(str, Enum):
    """Inbound text frame types (the "type" key)."""

    ORDER = "order"
    MESSAGE = "message"
    ERROR = "error"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================
# Price scaling
# ============================================

DEFAULT_PRICE_DIVISOR = 100
CDS_PRICE_DIVISOR = 10_000_000

# ============================================
# Connection
# ============================================

DEFAULT_WS_ROOT = "wss://ws.kite.trade"
CONNECT_URL_FORMAT = "{root}/?api_key={api_key}&access_token={access_token}"
DEFAULT_PING_INTERVAL = 3.0
PING_MESSAGE = ""

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006

# Code passed to on_error for protocol and decode failures
PROTOCOL_ERROR_CODE = 0

# ============================================
# Application Constants
# ============================================

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
