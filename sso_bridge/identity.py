"""
Member identity resolution: who is this visitor, according to Ghost?
Cookie session (session method) or GhostMember proof token (jwt method).
"""
import logging

from sso_bridge.errors import MemberNotFound
from sso_bridge.ghost import GhostClient
from sso_bridge.jwks import MemberKeySet
from sso_bridge.models import Member

logger = logging.getLogger(__name__)


async def resolve_from_cookie(ghost: GhostClient, cookie: str) -> Member:
    """Raises NotAuthenticated (no session) or UpstreamUnavailable."""
    return await ghost.get_member_from_cookie(cookie)


async def verify_proof_token(keys: MemberKeySet, token: str) -> str:
    """Email asserted by a valid member identity token. Raises InvalidProof."""
    return await keys.verify(token)


async def resolve_member_by_email(ghost: GhostClient, email: str) -> Member:
    """
    The member whose stored email is exactly `email` (case included); Ghost's
    filter lookup is looser than that. Raises MemberNotFound.
    """
    member = await ghost.get_member_by_email(email)
    if member is None or member.email != email:
        logger.debug("No member exactly matching proof token subject")
        raise MemberNotFound()
    return member


async def resolve_from_proof_token(ghost: GhostClient, keys: MemberKeySet, token: str) -> Member:
    email = await verify_proof_token(keys, token)
    return await resolve_member_by_email(ghost, email)
