# =============================================================================
# WS Connector -- Protocol Constants
# =============================================================================

# -- Timing (seconds unless noted) --------------------------------------------

INITIAL_CONNECT_DELAY = 0.001
CONNECTION_TIMEOUT = 10.0
DEFAULT_RECONNECTION_DELAY_MS = 2_000
WAIT_CONNECTED_TIMEOUT = 15.0

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Login exchange -----------------------------------------------------------

LOGIN_REQUEST = "login"
ECHO_REQUEST = "echo"

# -- Group requests ------------------------------------------------------------

GROUP_JOIN = "join"
GROUP_LEAVE = "leave"
GROUP_LEAVE_ALL = "leaveAll"

# -- Hook messages -------------------------------------------------------------

MSG_CONNECTION_ERROR = "connection error"
MSG_CONNECTION_CLOSED = "connection closed"
MSG_INVALID_DATA = "invalid incoming data"

# -- URL schemes ---------------------------------------------------------------

DEFAULT_HOST = "localhost"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_ABNORMAL = 1006
