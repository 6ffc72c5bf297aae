# =============================================================================
# Janus Python Client -- Protocol Constants
# =============================================================================
#
# Verbs and field names follow the Janus REST/WebSocket API.
# =============================================================================

# -- WebSocket -----------------------------------------------------------------

SUBPROTOCOL = "janus-protocol"
MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Timing (seconds) --------------------------------------------------------

TRANSACTION_TIMEOUT = 10.0
KEEPALIVE_INTERVAL = 25.0  # gateway expires idle sessions after 60s by default
CONNECTION_TIMEOUT = 10.0
CLOSE_TIMEOUT = 5.0

# -- Request verbs -------------------------------------------------------------

VERB_CREATE = "create"
VERB_DESTROY = "destroy"
VERB_ATTACH = "attach"
VERB_DETACH = "detach"
VERB_MESSAGE = "message"
VERB_TRICKLE = "trickle"
VERB_HANGUP = "hangup"
VERB_KEEPALIVE = "keepalive"

# -- Reply verbs ---------------------------------------------------------------

REPLY_SUCCESS = "success"
REPLY_ACK = "ack"
REPLY_ERROR = "error"

# -- Session-level events emitted locally --------------------------------------

EVENT_KEEPALIVE_FAILED = "keepalive_failed"
EVENT_TRANSPORT_CLOSED = "transport_closed"

# -- Transaction ids -----------------------------------------------------------

TRANSACTION_PREFIX_BYTES = 6

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_GOING_AWAY = 1001
