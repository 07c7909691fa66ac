# WebSocket subprotocol negotiated with every ndt7 server
SUBPROTOCOL = "net.measurementlab.ndt.v7"

DOWNLOAD = "download"
UPLOAD = "upload"

DOWNLOAD_PATH = "/ndt/v7/download"
UPLOAD_PATH = "/ndt/v7/upload"
ROLE_PATHS = {DOWNLOAD: DOWNLOAD_PATH, UPLOAD: UPLOAD_PATH}

PROTOCOL_DEFAULT = "wss"
PROTOCOLS = ("wss", "ws")
LOCATE_URL_DEFAULT = "https://locate.measurementlab.net/v2/nearest/ndt/ndt7"

CLIENT_LIBRARY_NAME = "ndt7py"

# all durations in seconds
DURATION_DEFAULT = 10.0
TIMEOUT_DEFAULT = 12.0
MEASUREMENT_INTERVAL = 0.25
DISCOVERY_TIMEOUT = 10.0
OPEN_TIMEOUT = 10.0
CLOSE_TIMEOUT = 2.0

INITIAL_MESSAGE_SIZE = 1 << 13    # 8 KiB
MAX_MESSAGE_SIZE = 1 << 23        # 8 MiB
MAX_RECV_MESSAGE_SIZE = 1 << 24   # 16 MiB
GROWTH_FACTOR = 16
INFLIGHT_MESSAGES = 7

# high enough that the upload pacer, not the websocket library, throttles sends
WRITE_LIMIT = (INFLIGHT_MESSAGES + 1) * MAX_MESSAGE_SIZE * 2

POLICY_MESSAGE = ("The M-Lab data policy is applicable and the user "
                  "has not explicitly accepted that data policy.")
