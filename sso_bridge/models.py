"""
Ghost member shapes consumed by the SSO flows. Only the fields the bridge reads
are declared; everything else Ghost sends is ignored.
"""
from pydantic import BaseModel, ConfigDict


class Tier(BaseModel):
    model_config = ConfigDict(extra="ignore")

    slug: str
    active: bool = False


class Subscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tier: Tier | None = None


class Member(BaseModel):
    """A Ghost member as returned by /members/api/member or the Admin API."""

    model_config = ConfigDict(extra="ignore")

    email: str
    uuid: str
    name: str | None = None
    avatar_image: str | None = None
    subscriptions: list[Subscription] | None = None
