"""
SSO bridge configuration. Values come from the environment.
Secrets (Discourse SSO secret, Ghost Admin API key) have no defaults.
"""
import os
from urllib.parse import urljoin, urlsplit

# Ghost public site URL — members API, JWKS and the portal live under it
GHOST_URL = os.environ.get("GHOST_URL", "http://127.0.0.1:2368")

# Admin API base; Ghost(Pro) setups sometimes serve admin on a different host
GHOST_ADMIN_URL = os.environ.get("GHOST_ADMIN_URL", "").strip() or GHOST_URL

# "<id>:<hex secret>" as shown in Ghost's custom integration settings
GHOST_ADMIN_API_KEY = os.environ.get("GHOST_ADMIN_API_KEY", "")

# Shared secret configured as "discourse connect secret" on the forum
DISCOURSE_SECRET = os.environ.get("DISCOURSE_SECRET", "")

# "session" (Ghost member cookie) or "jwt" (GhostMember proof token from the browser)
SSO_METHOD = os.environ.get("SSO_METHOD", "session").strip().lower()
SSO_METHODS = {"session", "jwt"}

# Where visitors without a Ghost session are sent. Empty means the Ghost portal account page.
NO_AUTH_REDIRECT = os.environ.get("NO_AUTH_REDIRECT", "")

# Path (relative to GHOST_URL) of the page hosting the browser-side SSO client (jwt method)
JWT_GHOST_SSO_PATH = os.environ.get("JWT_GHOST_SSO_PATH", "")
# Deprecated name for JWT_GHOST_SSO_PATH; only used when the new one is unset
OBSCURE_GHOST_SSO_PATH = os.environ.get("OBSCURE_GHOST_SSO_PATH", "")

LOG_GHOST_REQUESTS = os.environ.get("LOG_GHOST_REQUESTS", "false").strip().lower() in ("1", "true", "yes")

# Seconds per outbound call to Ghost (member lookup, JWKS)
GHOST_REQUEST_TIMEOUT = float(os.environ.get("GHOST_REQUEST_TIMEOUT", "10"))

# Applied when run as `python -m sso_bridge.main`
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

HOST = os.environ.get("HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "3286"))


def validate_config() -> list[str]:
    """Return a list of configuration problems (empty when the service can start)."""
    problems = []
    if not DISCOURSE_SECRET:
        problems.append("DISCOURSE_SECRET is required")
    if not GHOST_URL:
        problems.append("GHOST_URL is required")
    if SSO_METHOD not in SSO_METHODS:
        problems.append(f"SSO_METHOD must be one of {sorted(SSO_METHODS)}, got {SSO_METHOD!r}")
    if SSO_METHOD == "jwt":
        if not GHOST_ADMIN_API_KEY:
            problems.append("GHOST_ADMIN_API_KEY is required for the jwt SSO method")
        elif not _admin_key_well_formed(GHOST_ADMIN_API_KEY):
            problems.append("GHOST_ADMIN_API_KEY must look like <id>:<hex secret>")
    return problems


def _admin_key_well_formed(key: str) -> bool:
    key_id, sep, secret = key.partition(":")
    if not key_id or not sep or not secret:
        return False
    try:
        bytes.fromhex(secret)
    except ValueError:
        return False
    return True


def login_redirect_url() -> str:
    """Target for visitors who are not logged in to Ghost."""
    if NO_AUTH_REDIRECT:
        return NO_AUTH_REDIRECT
    base = GHOST_URL if GHOST_URL.endswith("/") else GHOST_URL + "/"
    return f"{base}#/portal/account"


def jwt_redirect_url() -> str:
    """Absolute URL of the Ghost page that runs the browser half of the jwt handshake."""
    path = JWT_GHOST_SSO_PATH or OBSCURE_GHOST_SSO_PATH
    # Leading period makes the configured absolute path relative to GHOST_URL's path
    return urljoin(GHOST_URL, f".{path}")


_DEFAULT_PORTS = {"http": 80, "https": 443}


def cors_origin() -> str:
    """Serialized origin of the jwt redirect page: lower-case host, default port dropped."""
    parts = urlsplit(jwt_redirect_url())
    scheme = parts.scheme.lower()
    origin = f"{scheme}://{parts.hostname}"
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        origin += f":{parts.port}"
    return origin
