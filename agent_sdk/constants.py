"""SDK-wide constants shared by the session engine and the client facade."""

# Frame types on the wire (the ``type`` field of every frame).
FRAME_QUERY = "query"
FRAME_CONTROL_REQUEST = "control_request"
FRAME_CONTROL_RESPONSE = "control_response"

# Subtypes of outbound control requests.
SUBTYPE_INITIALIZE = "initialize"
SUBTYPE_INTERRUPT = "interrupt"
SUBTYPE_SET_PERMISSION_MODE = "set_permission_mode"
SUBTYPE_SET_MODEL = "set_model"

# Subtypes of peer-initiated control requests.
SUBTYPE_CAN_USE_TOOL = "can_use_tool"
SUBTYPE_HOOK_CALLBACK = "hook_callback"

# Seconds a control request waits for its response before it is dropped.
DEFAULT_CONTROL_TIMEOUT = 60.0

# Largest single line StreamTransport will buffer.
MAX_LINE_SIZE = 10 * 1024 * 1024  # 10 MB max
