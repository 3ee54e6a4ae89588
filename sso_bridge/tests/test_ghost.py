"""Tests for the Ghost member-store client."""
import httpx
import jwt
import pytest

from sso_bridge.errors import NotAuthenticated, UpstreamUnavailable
from sso_bridge.ghost import ADMIN_TOKEN_AUDIENCE, GhostClient

from conftest import member_json

ADMIN_KEY_ID = "6489a1c0ffee"
ADMIN_SECRET = "ab" * 32


def _client(handler, public_url="https://blog.example/", admin_url=None) -> GhostClient:
    return GhostClient(
        public_url,
        admin_url,
        f"{ADMIN_KEY_ID}:{ADMIN_SECRET}",
        transport=httpx.MockTransport(handler),
    )


def test_resolve_public_keeps_site_subpath():
    ghost = _client(lambda r: httpx.Response(200), public_url="https://example.com/blog/")
    assert ghost.resolve_public("/members/api/member") == "https://example.com/blog/members/api/member"
    assert ghost.resolve_public("/", "/portal/account") == "https://example.com/blog/#/portal/account"
    assert ghost.jwt_issuer == "https://example.com/blog/members/api"


def test_resolve_admin_falls_back_to_public_url():
    ghost = _client(lambda r: httpx.Response(200))
    assert ghost.resolve_admin("/ghost/api/admin/members/") == "https://blog.example/ghost/api/admin/members/"
    other = _client(lambda r: httpx.Response(200), admin_url="https://admin.example")
    assert other.resolve_admin("/ghost/api/admin/members/") == "https://admin.example/ghost/api/admin/members/"


def test_admin_token_is_signed_with_hex_secret():
    ghost = _client(lambda r: httpx.Response(200))
    token = ghost.admin_token()
    assert jwt.get_unverified_header(token)["kid"] == ADMIN_KEY_ID
    claims = jwt.decode(token, bytes.fromhex(ADMIN_SECRET), algorithms=["HS256"], audience=ADMIN_TOKEN_AUDIENCE)
    assert claims["exp"] - claims["iat"] == 300
    assert ghost.admin_auth_header().startswith("Ghost ")


@pytest.mark.asyncio
async def test_member_from_cookie_forwards_cookie():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["cookie"] = request.headers.get("cookie")
        return httpx.Response(200, json=member_json())

    member = await _client(handler).get_member_from_cookie("ghost-members-ssr=abc")
    assert member.email == "a@b.com"
    assert member.uuid == "u1"
    assert seen["url"] == "https://blog.example/members/api/member"
    assert seen["cookie"] == "ghost-members-ssr=abc"


@pytest.mark.asyncio
async def test_member_from_cookie_204_is_not_authenticated():
    ghost = _client(lambda r: httpx.Response(204))
    with pytest.raises(NotAuthenticated):
        await ghost.get_member_from_cookie("c=1")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 404, 500, 502])
async def test_member_from_cookie_other_status_is_upstream_error(status):
    ghost = _client(lambda r: httpx.Response(status))
    with pytest.raises(UpstreamUnavailable):
        await ghost.get_member_from_cookie("c=1")


@pytest.mark.asyncio
async def test_member_from_cookie_transport_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        await _client(handler).get_member_from_cookie("c=1")


@pytest.mark.asyncio
async def test_member_from_cookie_unexpected_shape_is_upstream_error():
    ghost = _client(lambda r: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(UpstreamUnavailable):
        await ghost.get_member_from_cookie("c=1")


@pytest.mark.asyncio
async def test_member_by_email_uses_admin_filter():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["filter"] = request.url.params.get("filter")
        seen["auth"] = request.headers.get("authorization")
        seen["version"] = request.headers.get("accept-version")
        return httpx.Response(200, json={"members": [member_json()]})

    member = await _client(handler).get_member_by_email("a@b.com")
    assert member is not None and member.email == "a@b.com"
    assert seen["path"] == "/ghost/api/admin/members/"
    assert seen["filter"] == "email:'a@b.com'"
    assert seen["auth"].startswith("Ghost ")
    assert seen["version"] == "v5.0"


@pytest.mark.asyncio
async def test_member_by_email_escapes_quotes():
    seen = {}

    def handler(request):
        seen["filter"] = request.url.params.get("filter")
        return httpx.Response(200, json={"members": []})

    await _client(handler).get_member_by_email("o'neil@b.com")
    assert seen["filter"] == "email:'o\\'neil@b.com'"


@pytest.mark.asyncio
@pytest.mark.parametrize("members", [[], [member_json(), member_json(uuid="u2")]])
async def test_member_by_email_requires_exactly_one_match(members):
    ghost = _client(lambda r: httpx.Response(200, json={"members": members}))
    assert await ghost.get_member_by_email("a@b.com") is None


@pytest.mark.asyncio
async def test_member_by_email_not_found():
    ghost = _client(lambda r: httpx.Response(404, json={"errors": [{"type": "NotFoundError"}]}))
    assert await ghost.get_member_by_email("a@b.com") is None


@pytest.mark.asyncio
async def test_member_by_email_server_error_propagates():
    ghost = _client(lambda r: httpx.Response(500))
    with pytest.raises(UpstreamUnavailable):
        await ghost.get_member_by_email("a@b.com")


@pytest.mark.asyncio
async def test_get_jwks():
    def handler(request):
        assert request.url.path == "/members/.well-known/jwks.json"
        return httpx.Response(200, json={"keys": [{"kid": "a"}]})

    assert await _client(handler).get_jwks() == [{"kid": "a"}]


@pytest.mark.asyncio
async def test_get_jwks_bad_body_is_upstream_error():
    ghost = _client(lambda r: httpx.Response(200, json={"nope": []}))
    with pytest.raises(UpstreamUnavailable):
        await ghost.get_jwks()
