"""
Access-control API routes.

Surface called by the front end before gated actions:
- POST /functions/check-access: evaluate create_freight / view_contact
- POST /functions/record-contact-view: charge a contact reveal (drivers)
- GET  /contact-views/usage: monthly contact-view summary (drivers)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from freightgate.core.auth import get_current_identity, get_optional_user_id, load_identity
from freightgate.core.errors import LimitExceededError, LookupFailed, NotFoundError, PermissionError
from freightgate.features.access.service import evaluate_access
from freightgate.features.contact_views.service import get_contact_view_usage, record_contact_view
from freightgate.features.directory.service import get_driver_by_user
from freightgate.models.access import AccessDecision, AccessReason, Identity
from freightgate.models.plan import Role

logger = logging.getLogger("freightgate")

router = APIRouter(tags=["access"])

# Front-end action names that predate the current ones
ACTION_ALIASES = {"view_contacts": "view_contact"}


class CheckAccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    user_role: Optional[str] = Field(default=None, alias="userRole")

    @field_validator("action")
    @classmethod
    def _normalize_action(cls, value: str) -> str:
        value = value.strip()
        return ACTION_ALIASES.get(value, value)


class RecordContactViewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    freight_id: str = Field(alias="freightId", min_length=1)


def _decision_payload(decision: AccessDecision) -> dict:
    return {
        "canAccess": decision.can_access,
        "reason": decision.reason.value,
        "message": decision.message,
        "remainingLimit": decision.remaining_views,
        "subscription": decision.subscription.model_dump() if decision.subscription else None,
    }


def _contact_view_error(exc) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": exc.client_message, "code": exc.code})


@router.post("/functions/check-access")
async def check_access(body: CheckAccessRequest, user_id: Optional[str] = Depends(get_optional_user_id)):
    """
    Evaluate whether the caller may perform `action` now.

    The caller's role comes from the profile store; a `userRole` sent by the
    client is only compared against it for diagnostics.
    """
    if user_id is None:
        return _decision_payload(evaluate_access(None, body.action))

    try:
        identity = load_identity(user_id)
    except LookupFailed as exc:
        logger.error("access.identity_lookup_failed", extra={"user_id": user_id, "error_message": exc.message})
        return _decision_payload(AccessDecision.deny(AccessReason.LOOKUP_FAILED))

    if body.user_role and identity.role and body.user_role != identity.role.value:
        logger.warning(
            "access.role_mismatch",
            extra={"user_id": user_id, "claimed_role": body.user_role, "profile_role": identity.role.value},
        )

    return _decision_payload(evaluate_access(identity, body.action))


@router.post("/functions/record-contact-view")
async def record_contact_view_endpoint(
    body: RecordContactViewRequest,
    identity: Identity = Depends(get_current_identity),
):
    """
    Record that the driver opened a freight's contact details.

    Returns:
        {"success": true, "alreadyViewed": bool}

    Errors:
        500 {"error", "code"}: driver/freight not found or monthly limit exceeded
    """
    if identity.role != Role.DRIVER:
        raise PermissionError("Only drivers can view freight contacts")

    try:
        driver = get_driver_by_user(identity.user_id)
        if driver is None:
            raise NotFoundError("Driver not found")
        result = record_contact_view(driver.id, body.freight_id)
    except (NotFoundError, LimitExceededError) as exc:
        return _contact_view_error(exc)

    return {"success": True, "alreadyViewed": result.already_viewed}


@router.get("/contact-views/usage")
async def contact_view_usage(identity: Identity = Depends(get_current_identity)):
    if identity.role != Role.DRIVER:
        raise PermissionError("Only drivers have a contact view quota")
    driver = get_driver_by_user(identity.user_id)
    if driver is None:
        raise NotFoundError("Driver not found")
    usage = get_contact_view_usage(driver.id)
    return {
        "monthKey": usage.month_key,
        "used": usage.used,
        "limit": usage.limit,
        "remaining": usage.remaining,
    }
