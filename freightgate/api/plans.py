"""
Plan catalog and subscription API routes.

- GET  /plans: list plans (optionally per role)
- GET  /subscriptions/me: caller's live subscription and plan
- POST /subscriptions: switch to a free or trial plan (paid plans go through checkout)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from freightgate.core.auth import get_current_identity
from freightgate.core.errors import NotFoundError, ValidationError
from freightgate.features.plans.service import get_plan, list_plans
from freightgate.features.subscriptions.service import get_subscription, start_subscription
from freightgate.models.access import Identity
from freightgate.models.plan import Role


router = APIRouter(tags=["plans"])


class StartSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_slug: str = Field(alias="planSlug", min_length=1)


@router.get("/plans")
async def get_plans(
    role: Optional[Role] = Query(None, description="driver or company"),
    active_only: bool = Query(True),
):
    plans = list_plans(role=role, active_only=active_only)
    return {"plans": [plan.model_dump(mode="json") for plan in plans]}


@router.get("/subscriptions/me")
async def get_my_subscription(identity: Identity = Depends(get_current_identity)):
    subscription = get_subscription(identity.user_id)
    if subscription is None:
        return {"subscription": None, "plan": None}
    plan = get_plan(subscription.plan_slug)
    return {
        "subscription": subscription.model_dump(mode="json"),
        "plan": plan.model_dump(mode="json") if plan else None,
    }


@router.post("/subscriptions", status_code=201)
async def start_free_subscription(
    body: StartSubscriptionRequest,
    identity: Identity = Depends(get_current_identity),
):
    plan = get_plan(body.plan_slug)
    if plan is None:
        raise NotFoundError(f"Plan {body.plan_slug} not found")
    if plan.is_paid:
        raise ValidationError("Paid plans are activated through checkout")
    subscription = start_subscription(identity.user_id, plan.slug)
    return {"subscription": subscription.model_dump(mode="json")}
