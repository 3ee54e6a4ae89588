"""
Discourse SSO endpoint (GET /sso). Two flows, one per deployment:

session: Discourse -> here; Ghost member cookie identifies the visitor; 302 back to Discourse.
jwt:     Discourse -> here -> 302 to the Ghost page hosting the browser client ->
         browser calls back here with from_client and `Authorization: GhostMember <jwt>` ->
         JSON {redirect} the browser navigates to.

No server-side state links the two jwt round trips; they share only the sso/sig values.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from sso_bridge import config
from sso_bridge.errors import MalformedRequest, MissingProof, NotAuthenticated, SSOError
from sso_bridge.ghost import GhostClient, get_ghost_client
from sso_bridge.identity import resolve_from_cookie, resolve_member_by_email, verify_proof_token
from sso_bridge.jwks import MemberKeySet, get_member_keys
from sso_bridge.keys import get_signing_key
from sso_bridge.mapping import map_member_to_sso
from sso_bridge.models import Member
from sso_bridge.payload import add_payload_to_url, decode_and_verify
from sso_bridge.urls import is_absolute, set_query_params

logger = logging.getLogger(__name__)

# Part of the wire contract with the browser client, not a standard Bearer scheme
PROOF_SCHEME = "GhostMember "

SSO_METHOD_SESSION = "session"
SSO_METHOD_JWT = "jwt"


def _single_param(request: Request, name: str) -> str | None:
    """The value of a query parameter given exactly once and non-empty, else None."""
    values = request.query_params.getlist(name)
    if len(values) != 1 or not values[0]:
        return None
    return values[0]


def _read_sso_params(request: Request) -> tuple[str, str]:
    sso = _single_param(request, "sso")
    sig = _single_param(request, "sig")
    if sso is None or sig is None:
        raise MalformedRequest()
    return sso, sig


def _decode_inbound(sso: str, sig: str) -> tuple[str, str]:
    """Verify the Discourse request and return (nonce, return_sso_url)."""
    fields = decode_and_verify(sso, sig, get_signing_key())
    nonce = fields.get("nonce")
    return_url = fields.get("return_sso_url")
    if not nonce or not return_url or not is_absolute(return_url):
        raise MalformedRequest("SSO payload must contain a nonce and an absolute return_sso_url")
    return nonce, return_url


def _signed_return_url(member: Member, nonce: str, return_url: str) -> str:
    fields = map_member_to_sso(member, nonce, base_url=config.GHOST_URL)
    return add_payload_to_url(return_url, fields, get_signing_key())


def _error(exc: SSOError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"message": exc.message}, status_code=exc.status_code, headers=headers)


def _redirect(url: str, headers: dict[str, str] | None = None) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=302, headers=headers)


def cors_headers() -> dict[str, str]:
    return {
        "access-control-allow-origin": config.cors_origin(),
        "access-control-allow-headers": "authorization",
        "access-control-allow-methods": "GET",
    }


async def session_user_auth(
    request: Request,
    ghost: GhostClient = Depends(get_ghost_client),
):
    """Cookie flow: Ghost member session -> signed redirect back to Discourse."""
    try:
        sso, sig = _read_sso_params(request)
    except MalformedRequest as e:
        return _error(e)

    cookie = request.headers.get("cookie")
    if not cookie:
        return _redirect(config.login_redirect_url())

    try:
        nonce, return_url = _decode_inbound(sso, sig)
        member = await resolve_from_cookie(ghost, cookie)
    except NotAuthenticated:
        return _redirect(config.login_redirect_url())
    except SSOError as e:
        return _error(e)

    logger.info("SSO login (session) for member %s", member.uuid)
    return _redirect(_signed_return_url(member, nonce, return_url))


async def jwt_user_auth(
    request: Request,
    ghost: GhostClient = Depends(get_ghost_client),
    keys: MemberKeySet = Depends(get_member_keys),
):
    """Token flow: handshake redirect, then GhostMember proof -> JSON {redirect}."""
    cors = cors_headers()
    from_client = "from_client" in request.query_params

    try:
        sso, sig = _read_sso_params(request)
    except MalformedRequest:
        if not from_client:
            return _redirect(set_query_params(config.jwt_redirect_url(), {"error": "direct_access"}), cors)
        return _error(
            MalformedRequest("Client Error: SSO and signature are required and must not be arrays"),
            cors,
        )

    if not from_client:
        # Hand off to the browser client, which comes back with proof of membership
        return _redirect(set_query_params(config.jwt_redirect_url(), {"sso": sso, "sig": sig}), cors)

    authorization = request.headers.get("authorization", "")
    if not authorization.startswith(PROOF_SCHEME):
        return _error(MissingProof(), cors)
    token = authorization.split(PROOF_SCHEME)[-1].strip()

    try:
        email = await verify_proof_token(keys, token)
        nonce, return_url = _decode_inbound(sso, sig)
        member = await resolve_member_by_email(ghost, email)
    except SSOError as e:
        return _error(e, cors)

    logger.info("SSO login (jwt) for member %s", member.uuid)
    return JSONResponse({"redirect": _signed_return_url(member, nonce, return_url)}, headers=cors)


async def cors_preflight():
    return Response(status_code=204, headers=cors_headers())


def build_router(sso_method: str) -> APIRouter:
    """Router exposing /sso for the configured method. OPTIONS only exists for jwt."""
    router = APIRouter()
    if sso_method == SSO_METHOD_JWT:
        router.add_api_route("/sso", jwt_user_auth, methods=["GET"])
        router.add_api_route("/sso", cors_preflight, methods=["OPTIONS"])
    elif sso_method == SSO_METHOD_SESSION:
        router.add_api_route("/sso", session_user_auth, methods=["GET"])
    else:
        raise ValueError(f"Unknown SSO method: {sso_method!r}")
    return router
