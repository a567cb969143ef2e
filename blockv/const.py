DOMAIN = "blockv"
VERSION = "0.4.0"

DEFAULT_BASE_URL = "https://api.blockv.io"

# HTTP executor
REQUEST_TIMEOUT = 10   # seconds, multiplied by attempt number for each retry
REQUEST_ATTEMPTS = 3   # maximum number of attempts on timeout
AUTH_RETRY_LIMIT = 1   # resends allowed per request after a successful token refresh

# Endpoints
ACCESS_TOKEN_PATH = "/v1/access_token"
LOGIN_PATH = "/v1/user/login"
LOGOUT_PATH = "/v1/user/logout"
INVENTORY_PATH = "/v1/user/inventory"

# Data pool
SAVE_DELAY = 5               # seconds of quiet before a region is written to disk
INVENTORY_PAGE_SIZE = 100    # vatoms requested per inventory page

# Region events
EVENT_SYNCHRONIZING = "synchronizing"
EVENT_STABILIZED = "stabilized"
EVENT_DESTABILIZED = "destabilized"
EVENT_UPDATED = "updated"
EVENT_OBJECT_UPDATED = "object_updated"
EVENT_OBJECT_ADDED = "object_added"
EVENT_OBJECT_REMOVED = "object_removed"
EVENT_WILL_UPDATE = "will_update"
EVENT_ERROR = "error"
EVENT_CLOSED = "closed"

# Built-in region plugin ids
INVENTORY_REGION = "inventory"
CHILDREN_REGION = "children"
