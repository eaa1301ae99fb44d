import os

# --- Backend ---
SUPABASE_URL = os.environ.get("WATCHCORE_SUPABASE_URL", "http://localhost:54321").rstrip("/")
SUPABASE_KEY = os.environ.get("WATCHCORE_SUPABASE_KEY", "")
REST_PREFIX = "/rest/v1"

HEADERS = {
    "User-Agent": "watchcore/0.1",
    "Accept": "application/json",
    "Content-Type": "application/json",
}

REQUEST_TIMEOUT = float(os.environ.get("WATCHCORE_REQUEST_TIMEOUT", "10"))

# --- Playback ---
COMPLETION_THRESHOLD = float(os.environ.get("WATCHCORE_COMPLETION_THRESHOLD", "90"))
EPISODES_PER_PAGE = int(os.environ.get("WATCHCORE_EPISODES_PER_PAGE", "100"))
HISTORY_LIMIT = 20

# Upper bound for the final progress write when a watch view closes.
FLUSH_TIMEOUT = float(os.environ.get("WATCHCORE_FLUSH_TIMEOUT", "2"))

# --- Keyboard ---
NEXT_KEY = "ArrowRight"
PREVIOUS_KEY = "ArrowLeft"
THEATER_KEY = os.environ.get("WATCHCORE_THEATER_KEY", "t")

# Focus targets where shortcuts must not fire (comment box, search field...)
TEXT_INPUT_TAGS = {"input", "textarea", "select"}
