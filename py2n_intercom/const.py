"""Constants for the 2N Intercom client."""

DOMAIN = "py2n_intercom"

# Config keys
CONF_HOST = "host"
CONF_PORT = "port"
CONF_USERNAME = "username"
CONF_PASSWORD = "password"
CONF_USE_HTTPS = "use_https"
CONF_VERIFY_SSL = "verify_ssl"
CONF_AUTH_METHOD = "auth_method"
CONF_SWITCH_ID = "switch_id"
CONF_DOORBELL_BUTTON = "doorbell_button"
CONF_RTSP_URL = "rtsp_url"
CONF_VIDEO_CODEC = "video_codec"
CONF_FFMPEG_PATH = "ffmpeg_path"
CONF_EVENT_POLL_INTERVAL = "event_poll_interval"
CONF_EVENT_PULL_TIMEOUT = "event_pull_timeout"
CONF_STATE_POLL_INTERVAL = "state_poll_interval"
CONF_INIT_RETRY_DELAY = "init_retry_delay"

# Defaults
DEFAULT_PORT = 80
DEFAULT_HTTPS_PORT = 443
DEFAULT_USE_HTTPS = False
# 2N units ship self-signed certificates.
DEFAULT_VERIFY_SSL = False
DEFAULT_SWITCH_ID = 1
DEFAULT_DOORBELL_BUTTON = "1"
DEFAULT_REQUEST_TIMEOUT = 10  # seconds
DEFAULT_EVENT_POLL_INTERVAL = 1.5  # seconds
DEFAULT_EVENT_PULL_TIMEOUT = 1  # seconds, server-side wait
DEFAULT_STATE_POLL_INTERVAL = 10.0  # seconds
DEFAULT_INIT_RETRY_DELAY = 30.0  # seconds
DEFAULT_SNAPSHOT_WIDTH = 640
DEFAULT_SNAPSHOT_HEIGHT = 480

# First-contact strategy. A Digest challenge from the device is honoured either way.
AUTH_METHOD_BASIC = "basic"
AUTH_METHOD_DIGEST = "digest"
AUTH_METHODS = [AUTH_METHOD_BASIC, AUTH_METHOD_DIGEST]

# 2N HTTP API endpoints
API_SYSTEM_INFO = "/api/system/info"
API_SWITCH_STATUS = "/api/switch/status"
API_SWITCH_CTRL = "/api/switch/ctrl"

API_CAMERA_SNAPSHOT = "/api/camera/snapshot"

# Event logging (long-poll)
API_LOG_CAPS = "/api/log/caps"
API_LOG_SUBSCRIBE = "/api/log/subscribe"
API_LOG_PULL = "/api/log/pull"
API_LOG_UNSUBSCRIBE = "/api/log/unsubscribe"

# Envelope error codes
ERROR_CODE_SUBSCRIPTION_NOT_FOUND = 12

# Switch actions
SWITCH_ACTION_ON = "on"
SWITCH_ACTION_OFF = "off"
SWITCH_ACTION_TRIGGER = "trigger"
SWITCH_ACTIONS = [SWITCH_ACTION_ON, SWITCH_ACTION_OFF, SWITCH_ACTION_TRIGGER]

# Event types
EVENT_KEY_PRESSED = "KeyPressed"
EVENT_KEY_RELEASED = "KeyReleased"
EVENT_MOTION_DETECTED = "MotionDetected"
EVENT_SWITCH_STATE_CHANGED = "SwitchStateChanged"
EVENT_INPUT_CHANGED = "InputChanged"
EVENT_CALL_STATE_CHANGED = "CallStateChanged"

# Events we subscribe to by default (filtered by /api/log/caps when available)
DEFAULT_EVENT_FILTER = [
    EVENT_KEY_PRESSED,
    EVENT_KEY_RELEASED,
    EVENT_SWITCH_STATE_CHANGED,
    EVENT_MOTION_DETECTED,
    EVENT_INPUT_CHANGED,
    EVENT_CALL_STATE_CHANGED,
]

# RTSP stream profile (fixed endpoint on the device)
RTSP_STREAM_PATH = "mjpeg_stream"

# Streaming
VIDEO_CODECS = ["libx264", "h264_omx", "copy"]
DEFAULT_VIDEO_CODEC = "libx264"
FFMPEG_BINARY = "ffmpeg"
FFMPEG_PATH_ENV = "FFMPEG_PATH"
VIDEO_PAYLOAD_TYPE = 99
RTP_PACKET_SIZE = 1316

# SRTP crypto suites as negotiated with the controller.
SRTP_CRYPTO_SUITES = {
    0: "AES_CM_128_HMAC_SHA1_80",
    1: "AES_CM_256_HMAC_SHA1_80",
    2: None,
}
SRTP_CRYPTO_NONE = 2
