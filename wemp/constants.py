"""Tunables for the official account channel.

Durations are in milliseconds unless the name says otherwise.
"""

CHANNEL_ID = "wemp"

# ── time ────────────────────────────────────────────────────────────────────

# A pairing code must be verified within this window
PAIRING_CODE_EXPIRY_MS = 5 * 60 * 1000

# Refresh the access token this long before it actually expires
ACCESS_TOKEN_REFRESH_ADVANCE_MS = 5 * 60 * 1000
DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS = 7200

# Temporary media lives 3 days on the platform; drop our cached id 1h early
MEDIA_CACHE_EXPIRY_MS = 3 * 24 * 60 * 60 * 1000
MEDIA_CACHE_ADVANCE_EXPIRY_MS = 60 * 60 * 1000

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
MEDIA_DOWNLOAD_TIMEOUT_SECONDS = 30.0
MEDIA_UPLOAD_TIMEOUT_SECONDS = 60.0

# Pause between chunks of one long reply so the client keeps them in order
MESSAGE_CHUNK_DELAY_MS = 300

# ── sizes ───────────────────────────────────────────────────────────────────

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_DATA_URL_BYTES = 3 * 1024 * 1024

# ── text ────────────────────────────────────────────────────────────────────

WECHAT_MESSAGE_TEXT_LIMIT = 600

# How far back from the limit split_message looks for punctuation
PUNCTUATION_SEARCH_RANGE = 100

SPLIT_PUNCTUATION = frozenset("。！？\n；，")

# ── counts ──────────────────────────────────────────────────────────────────

MAX_IMAGES_PER_MESSAGE = 10
MAX_BATCH_USER_INFO = 100
MAX_BLACKLIST_BATCH = 20
