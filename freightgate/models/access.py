"""
freightgate/models/access.py

Access decision types. Decisions are derived per call and never persisted.
"""

from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict

from freightgate.models.plan import Role

# Reported remaining views for plans without a cap
UNLIMITED_VIEWS = "unlimited"


class Action(str, Enum):
    CREATE_FREIGHT = "create_freight"
    VIEW_CONTACT = "view_contact"


class AccessReason(str, Enum):
    GRANTED = "granted"
    NO_AUTH = "no_auth"
    NO_SUBSCRIPTION = "no_subscription"
    TRIAL_EXPIRED = "trial_expired"
    LIMIT_REACHED = "limit_reached"
    FREIGHT_LIMIT_REACHED = "freight_limit_reached"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"
    UNSUPPORTED_ACTION = "unsupported_action"


REASON_MESSAGES = {
    AccessReason.GRANTED: "Access granted.",
    AccessReason.NO_AUTH: "You must be signed in to continue.",
    AccessReason.NO_SUBSCRIPTION: "You need an active subscription to publish freights.",
    AccessReason.TRIAL_EXPIRED: "Your trial period has ended. Upgrade your plan to keep publishing freights.",
    AccessReason.LIMIT_REACHED: "You have reached this month's contact view limit. Upgrade your plan to see more contacts.",
    AccessReason.FREIGHT_LIMIT_REACHED: "You have reached your plan's freight limit. Upgrade your plan to publish more freights.",
    AccessReason.NOT_FOUND: "We could not find your profile.",
    AccessReason.LOOKUP_FAILED: "We could not verify your access right now. Please try again.",
    AccessReason.UNSUPPORTED_ACTION: "This action is not available for your account.",
}


class Identity(BaseModel):
    """Authenticated caller as resolved by the identity provider and profile store."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Optional[Role] = None


class SubscriptionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan: str
    status: str


class AccessDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_access: bool
    reason: AccessReason
    remaining_views: Optional[Union[int, str]] = None
    subscription: Optional[SubscriptionSnapshot] = None

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self.reason]

    @classmethod
    def deny(cls, reason: AccessReason, **kwargs) -> "AccessDecision":
        return cls(can_access=False, reason=reason, **kwargs)

    @classmethod
    def allow(cls, **kwargs) -> "AccessDecision":
        return cls(can_access=True, reason=AccessReason.GRANTED, **kwargs)
