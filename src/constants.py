"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.
"""

# =============================================================================
# Douban Source
# =============================================================================

# Host serving the watched-movie listings
DOUBAN_BASE_URL = "https://movie.douban.com"

# Path template for a user's "watched" (collect) listing
DOUBAN_COLLECT_PATH = "/people/{user_id}/collect"

# Browser-like user agent sent with every request
DOUBAN_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# =============================================================================
# Scraping Configuration
# =============================================================================

# Timeout for a single Douban page request (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS = 20.0

# Maximum number of listing pages fetched per scrape
DEFAULT_MAX_SCRAPE_PAGES = 5

# Delay between page requests to be polite to Douban (seconds)
POLITE_REQUEST_DELAY_SECONDS = 0.5

# Title used when the title anchor is missing or blank
MISSING_TITLE_PLACEHOLDER = "N/A"

# =============================================================================
# Input Constraints
# =============================================================================

# Douban ids are numeric or short slugs
MAX_USER_ID_LENGTH_CHARS = 64

# =============================================================================
# Roast Generation
# =============================================================================

DEFAULT_ROAST_MODEL = "groq:llama3-8b-8192"

# Output token cap for the roast
DEFAULT_ROAST_MAX_TOKENS = 500
