# =============================================================================
# PME Notify -- Protocol Constants
# =============================================================================
#
# Values match the backend notification hub (/ws/notifications).
# =============================================================================

CLIENT_VERSION = "0.1.0"

# -- Endpoint ------------------------------------------------------------------

NOTIFICATIONS_PATH = "/ws/notifications"
DEFAULT_HOST = "localhost:8080"

# -- Timing (seconds) --------------------------------------------------------

CONNECTION_TIMEOUT = 10.0
CLOSE_TIMEOUT = 5.0

# -- Reconnection -------------------------------------------------------------

RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_FACTOR = 2.0

# -- Cursor persistence --------------------------------------------------------

CURSOR_STORAGE_KEY = "ws_last_seq"

# -- Messages ------------------------------------------------------------------

MAX_FRAME_SIZE = 4_194_304  # 4 MB, the hub batches its whole send queue
EVENT_QUEUE_SIZE = 1000

# -- Message types -------------------------------------------------------------

MSG_SUBSCRIBE = "subscribe"
MSG_RECOVERY_START = "recovery_start"
MSG_RECOVERY_COMPLETE = "recovery_complete"
MSG_BUFFER_INFO = "buffer_info"

CONTROL_TYPES = frozenset(
    {
        MSG_RECOVERY_START,
        MSG_RECOVERY_COMPLETE,
        MSG_BUFFER_INFO,
    }
)

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_GOING_AWAY = 1001
WS_CLOSE_ABNORMAL = 1006
WS_CLOSE_SERVER_ERROR = 1011

USER_DISCONNECT_REASON = "User requested disconnect"
RECONNECT_REASON = "Reconnecting"

# -- Display -------------------------------------------------------------------

MAX_DISPLAYED_EVENTS = 100
