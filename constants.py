SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

CALLBACK_PATH = "/callback"

CONTENT_TYPE_URL_ENCODED = "application/x-www-form-urlencoded"
CONTENT_TYPE_JSON = "application/json"

# Capabilities requested on every login, sent space-joined in `scope`.
DEFAULT_SCOPES = [
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-private",
    "playlist-modify-public",
    "user-read-playback-position",
    "user-top-read",
    "user-read-recently-played",
    "user-library-modify",
    "user-library-read",
    "user-read-email",
    "user-read-private",
]

STATE_BYTES = 16
AUTH_TIMEOUT_SECONDS = 60.0
AUTH_SETTLE_DELAY_SECONDS = 0.05
REFRESH_TIMEOUT_SECONDS = 30.0
REQUEST_TIMEOUT_SECONDS = 30.0
POLL_INTERVAL_SECONDS = 1.0

# Stored expiry layout, always written in UTC.
EXPIRES_AT_FORMAT = "%a %b %d %H:%M:%S UTC %Y"

DEFAULT_MARKET = "US"
