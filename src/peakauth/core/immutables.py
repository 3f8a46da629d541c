"""
Authentication constants for the peakauth package.

This module contains the fixed values shared by the login flow and the
token refresh coordinator: default URLs, recognized API paths, selector
candidate lists for the login form, and the phrases that identify a
credential failure on the rendered page.
"""

from urllib.parse import urljoin

from peakauth.core.codex import SelectorCandidate

# Base URLs
DEFAULT_API_BASE_URL = "https://tpapi.trainingpeaks.com"
DEFAULT_HOME_URL = "https://home.trainingpeaks.com"
DEFAULT_APP_URL = "https://app.trainingpeaks.com"
DEFAULT_LOGIN_URL = urljoin(DEFAULT_HOME_URL, "/login")
DEFAULT_PLATFORM_DOMAIN = "trainingpeaks.com"

# Users API paths
USERS_API_VERSION = "v3"
TOKEN_PATH = f"/users/{USERS_API_VERSION}/token"
USER_PATH = f"/users/{USERS_API_VERSION}/user"
TOKEN_REFRESH_PATH = f"/users/{USERS_API_VERSION}/token/refresh"

# Any URL containing one of these is an API call worth logging and inspecting
API_PATH_MARKERS = ("/api/", "/users/")

# Timeouts (in milliseconds)
DEFAULT_TIMEOUT = 30000
WEB_AUTH_TIMEOUT = 30000
API_AUTH_TIMEOUT = 30000
ELEMENT_WAIT_TIMEOUT = 5000
PAGE_LOAD_TIMEOUT = 2000
LAUNCH_TIMEOUT = 30000
PAGE_WAIT_TIMEOUT = 2000
SELECTOR_CANDIDATE_TIMEOUT = 5000
ERROR_POLL_INTERVAL = 1000

# Token lifetimes (in milliseconds)
TOKEN_REFRESH_WINDOW = 5 * 60 * 1000
TOKEN_DEFAULT_EXPIRATION = 23 * 60 * 60 * 1000

# Refresh cooldown (in milliseconds)
REFRESH_COOLDOWN_BASE = 30000
REFRESH_MAX_BACKOFF = 10 * 60 * 1000

# Login form selectors
COOKIE_CONSENT_SELECTOR = "#onetrust-accept-btn-handler"
USERNAME_SELECTOR = '[data-cy="username"]'

PASSWORD_SELECTORS = (
    SelectorCandidate('[data-cy="password"]', "password (data-cy)"),
    SelectorCandidate("#Password", "password (id)"),
    SelectorCandidate('input[name="Password"]', "password (name)"),
    SelectorCandidate('input[type="password"]', "password (type)"),
)

SUBMIT_SELECTORS = (
    SelectorCandidate("#btnSubmit", "submit (id)"),
    SelectorCandidate('button[type="submit"]', "submit button (type)"),
    SelectorCandidate('input[type="submit"]', "submit input (type)"),
    SelectorCandidate('[data-cy="submit"]', "submit (data-cy)"),
    SelectorCandidate('button:has-text("Sign In")', "submit (Sign In text)"),
    SelectorCandidate('button:has-text("Login")', "submit (Login text)"),
)

# Inline error banners. The dedicated credentials message needs no keyword match.
ERROR_BANNER_SELECTORS = (
    SelectorCandidate('[data-cy="invalid_credentials_message"]', "credentials message", requires_keywords=False),
    SelectorCandidate(".error-message", "error message"),
    SelectorCandidate(".alert-danger", "danger alert"),
    SelectorCandidate(".validation-summary-errors", "validation summary"),
    SelectorCandidate('[role="alert"]', "alert role"),
)

CREDENTIAL_FAILURE_PHRASES = (
    "incorrect",
    "invalid",
    "username or password",
)

PAGE_ERROR_AUTH_TERMS = (
    "unauthorized",
    "unauthorised",
    "forbidden",
    "authentication",
    "authorization",
    "not authenticated",
)

# Platform API headers sent with direct (non-browser) calls
API_HEADERS = {
    "accept": "application/json",
    "content-type": "application/json",
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-site",
    "accept-language": "en-US,en;q=0.9",
}

# Headers never echoed in request logs
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
})

# Header names dropped from cURL output
CURL_SKIPPED_HEADERS = frozenset({
    "user-agent",
    "accept-encoding",
    "accept-language",
    "cache-control",
})

# Context keys masked by the log redaction filter
SENSITIVE_LOG_KEYS = frozenset({
    "password",
    "access_token",
    "accesstoken",
    "refresh_token",
    "refreshtoken",
    "authorization",
    "cookie",
    "token",
})

# Session storage
SESSION_STORAGE_DIR = ".peakauth"
SESSION_FILE_NAME = "auth-session.json"

# User-agent pools
USER_AGENT_BROWSERS = {
    "Chrome": {
        "versions": ("120.0.0.0", "121.0.0.0", "122.0.0.0", "123.0.0.0", "124.0.0.0"),
        "webkit": "537.36",
    },
    "Firefox": {
        "versions": ("120.0", "121.0", "122.0", "123.0", "124.0"),
        "webkit": "537.36",
    },
    "Safari": {
        "versions": ("17.0", "17.1", "17.2", "17.3", "17.4"),
        "webkit": "605.1.15",
    },
}

USER_AGENT_PLATFORMS = (
    "Macintosh; Intel Mac OS X 10_15_7",
    "Macintosh; Intel Mac OS X 14_0_0",
    "Windows NT 10.0; Win64; x64",
    "X11; Linux x86_64",
)

FALLBACK_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
