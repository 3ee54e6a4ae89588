"""
Ghost client: the member-store lookups the SSO flows need.
Public members API (cookie session, JWKS) and Admin API (member by email).
"""
import logging
import time

import httpx
import jwt
from pydantic import ValidationError

from sso_bridge.errors import NotAuthenticated, UpstreamUnavailable
from sso_bridge.models import Member
from sso_bridge.urls import resolve_path

logger = logging.getLogger(__name__)

ADMIN_API_VERSION = "v5.0"
# Ghost rejects Admin API tokens valid for longer than 5 minutes
ADMIN_TOKEN_TTL = 300
ADMIN_TOKEN_AUDIENCE = "/admin/"


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.info("ghost %s %s%s -> %s", request.method, request.url.host, request.url.path, response.status_code)


class GhostClient:
    def __init__(
        self,
        public_url: str,
        admin_url: str | None = None,
        admin_api_key: str = "",
        *,
        timeout: float = 10.0,
        log_requests: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.public_url = public_url
        self.admin_url = admin_url or public_url
        self._admin_api_key = admin_api_key
        event_hooks = {"response": [_log_response]} if log_requests else {}
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport, event_hooks=event_hooks)

    @property
    def jwt_issuer(self) -> str:
        """Issuer Ghost puts in member identity tokens."""
        return self.resolve_public("/members/api")

    def resolve_public(self, path: str, fragment: str = "", query: dict[str, str] | None = None) -> str:
        return resolve_path(self.public_url, path, fragment, query)

    def resolve_admin(self, path: str, fragment: str = "", query: dict[str, str] | None = None) -> str:
        return resolve_path(self.admin_url, path, fragment, query)

    def admin_token(self) -> str:
        """Short-lived HS256 token for the Admin API, signed with the integration's hex secret."""
        key_id, _, secret = self._admin_api_key.partition(":")
        now = int(time.time())
        payload = {"iat": now, "exp": now + ADMIN_TOKEN_TTL, "aud": ADMIN_TOKEN_AUDIENCE}
        token = jwt.encode(payload, bytes.fromhex(secret), algorithm="HS256", headers={"kid": key_id})
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token

    def admin_auth_header(self) -> str:
        return f"Ghost {self.admin_token()}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.get(url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Ghost request to %s failed: %s", url, e)
            raise UpstreamUnavailable()

    async def _admin_get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        headers = {
            "Authorization": self.admin_auth_header(),
            "Accept-Version": ADMIN_API_VERSION,
            "Accept": "application/json",
        }
        return await self._get(self.resolve_admin(f"/ghost/api/admin{path}"), params=params, headers=headers)

    async def get_member_from_cookie(self, cookie: str) -> Member:
        """
        Member for the session cookie. 204 (or an empty body) means no member session:
        raises NotAuthenticated. Any other non-200 raises UpstreamUnavailable.
        """
        response = await self._get(self.resolve_public("/members/api/member"), headers={"cookie": cookie})
        if response.status_code == 204:
            raise NotAuthenticated()
        if response.status_code != 200:
            logger.warning("Ghost member lookup returned %s", response.status_code)
            raise UpstreamUnavailable()
        try:
            data = response.json()
        except ValueError:
            raise UpstreamUnavailable()
        if not data:
            raise NotAuthenticated()
        return _parse_member(data)

    async def get_member_by_email(self, email: str) -> Member | None:
        """Exactly one Admin API match for email, or None."""
        escaped = email.replace("\\", "\\\\").replace("'", "\\'")
        response = await self._admin_get(
            "/members/",
            params={"filter": f"email:'{escaped}'", "include": "tiers"},
        )
        if response.status_code == 404:
            return None
        members = _admin_resource(response, "members")
        if len(members) != 1:
            return None
        return _parse_member(members[0])

    async def get_jwks(self) -> list[dict]:
        """Raw JWK dicts from Ghost's members JWKS endpoint."""
        response = await self._get(self.resolve_public("/members/.well-known/jwks.json"))
        if response.status_code != 200:
            logger.warning("Ghost JWKS fetch returned %s", response.status_code)
            raise UpstreamUnavailable()
        try:
            keys = response.json()["keys"]
        except (ValueError, KeyError, TypeError):
            raise UpstreamUnavailable()
        if not isinstance(keys, list):
            raise UpstreamUnavailable()
        return keys


def _admin_resource(response: httpx.Response, name: str) -> list:
    if response.status_code != 200:
        logger.warning("Ghost Admin API returned %s", response.status_code)
        raise UpstreamUnavailable()
    try:
        items = response.json()[name]
    except (ValueError, KeyError, TypeError):
        raise UpstreamUnavailable()
    return items if isinstance(items, list) else []


def _parse_member(data) -> Member:
    try:
        return Member.model_validate(data)
    except ValidationError as e:
        logger.warning("Unexpected member shape from Ghost: %s", e.error_count())
        raise UpstreamUnavailable()


_ghost_client: GhostClient | None = None


def get_ghost_client() -> GhostClient:
    """Dependency: shared Ghost client built from config."""
    global _ghost_client
    if _ghost_client is None:
        from sso_bridge import config

        _ghost_client = GhostClient(
            config.GHOST_URL,
            config.GHOST_ADMIN_URL,
            config.GHOST_ADMIN_API_KEY,
            timeout=config.GHOST_REQUEST_TIMEOUT,
            log_requests=config.LOG_GHOST_REQUESTS,
        )
    return _ghost_client


async def close_ghost_client() -> None:
    """Close the shared client and drop the member key set bound to it."""
    global _ghost_client
    from sso_bridge.jwks import reset_member_keys

    reset_member_keys()
    if _ghost_client is not None:
        await _ghost_client.aclose()
        _ghost_client = None
