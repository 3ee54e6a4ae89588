"""
Ghost member -> Discourse SSO response fields.
Tier slugs become Discourse group names; gravatar "blank" defaults become identicons.
"""
import re
import unicodedata
from urllib.parse import parse_qsl, urljoin, urlsplit

from sso_bridge.models import Member
from sso_bridge.urls import set_query_params

# https://docs.gravatar.com/general/images/#default-image
GRAVATAR_DOMAIN = "gravatar.com"
GRAVATAR_DEFAULT_PARAMS = ("d", "default")
GRAVATAR_BLANK = "blank"
GRAVATAR_REPLACEMENT = "identicon"

_SLUG_INVALID = re.compile(r"[^a-z0-9_]+")


def get_slug(name: str) -> str:
    """Discourse-compatible group name: lower-case ascii, dashes for everything else."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    return _SLUG_INVALID.sub("-", ascii_name.lower()).strip("-")


def _is_gravatar_host(hostname: str | None) -> bool:
    if not hostname:
        return False
    return hostname.lower().endswith(GRAVATAR_DOMAIN)


def normalize_avatar_url(url: str, base_url: str | None = None) -> str:
    """
    Return an absolute avatar URL. Gravatar URLs asking for the blank default
    image are switched to identicon so Discourse never shows an empty avatar.
    """
    if base_url:
        url = urljoin(base_url, url)
    parts = urlsplit(url)
    if not _is_gravatar_host(parts.hostname):
        return url

    first_values: dict[str, str] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        first_values.setdefault(key, value)

    updates = {}
    for param in GRAVATAR_DEFAULT_PARAMS:
        if first_values.get(param, "").lower() == GRAVATAR_BLANK:
            updates[param] = GRAVATAR_REPLACEMENT
    if not updates:
        return url
    return set_query_params(url, updates)


def derive_groups(member: Member) -> list[str]:
    """Group slugs for active tiers, in subscription order. Duplicates are left for Discourse to ignore."""
    groups = []
    for subscription in member.subscriptions or []:
        tier = subscription.tier
        if tier is not None and tier.active:
            groups.append(get_slug(tier.slug))
    return groups


def map_member_to_sso(member: Member, nonce: str, *, base_url: str | None = None) -> dict[str, str]:
    """
    Build the outbound SSO fields. Optional fields are left out entirely rather than
    sent empty: Discourse treats an empty value differently from a missing one.
    """
    payload = {
        "nonce": nonce,
        "email": member.email,
        "external_id": member.uuid,
    }
    if member.avatar_image:
        payload["avatar_url"] = normalize_avatar_url(member.avatar_image, base_url)
    if member.name:
        payload["name"] = member.name

    # NOTE: Discourse won't create missing groups. A member whose tier has no group yet
    # can re-auth once the group exists.
    groups = derive_groups(member)
    if groups:
        payload["add_groups"] = ",".join(groups)
    return payload
