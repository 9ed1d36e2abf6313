"""Plan catalog and the caller's subscription grants."""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...db.models import SubscriptionPlan, User, UserSubscriptionGrant
from ...permissions import Capability
from ...services.entitlements import EntitlementStore
from ..deps import get_current_user, get_entitlements, require_capability
from ..responses import ok

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


class PlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    tier_level: int = Field(ge=0)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    duration_days: int = Field(gt=0)
    features: dict | None = None


class PlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    tier_level: int | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    duration_days: int | None = Field(default=None, gt=0)
    features: dict | None = None


class SubscribeRequest(BaseModel):
    plan_id: int
    # Confirmation from the payment provider, recorded as given
    payment_id: str | None = Field(default=None, max_length=255)
    payment_status: str | None = Field(default=None, max_length=50)


def serialize_plan(plan: SubscriptionPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "tier_level": plan.tier_level,
        "price": float(plan.price),
        "duration_days": plan.duration_days,
        "features": plan.features or {},
    }


def serialize_grant(grant: UserSubscriptionGrant) -> dict:
    return {
        "id": grant.id,
        "plan": serialize_plan(grant.plan) if grant.plan else None,
        "start_date": grant.start_date.isoformat(),
        "end_date": grant.end_date.isoformat(),
        "payment_id": grant.payment_id,
        "payment_status": grant.payment_status,
    }


@router.get("/")
def list_plans(entitlements: EntitlementStore = Depends(get_entitlements)):
    return ok([serialize_plan(p) for p in entitlements.list_plans()])


@router.get("/user/history")
def grant_history(
    user: User = Depends(get_current_user),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    return ok([serialize_grant(g) for g in entitlements.history(user.id)])


@router.get("/user/active")
def active_subscription(
    user: User = Depends(get_current_user),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    grant = entitlements.active_grant(user.id)
    if grant is None:
        free = entitlements.free_plan()
        return ok(
            {"plan": serialize_plan(free) if free else None, "grant": None},
            "No active subscription; using the free plan",
        )
    return ok({"plan": serialize_plan(grant.plan), "grant": serialize_grant(grant)})


@router.post("/subscribe", status_code=201)
def subscribe(
    body: SubscribeRequest,
    user: User = Depends(get_current_user),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    grant = entitlements.subscribe(user.id, body.plan_id, body.payment_id, body.payment_status)
    return ok(serialize_grant(grant), "Subscription activated")


@router.post("/cancel/{plan_id}")
def cancel(
    plan_id: int,
    user: User = Depends(get_current_user),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    shortened = entitlements.cancel(user.id, plan_id)
    return ok({"cancelled_grants": shortened}, "Subscription cancelled")


@router.get("/{plan_id}")
def get_plan(plan_id: int, entitlements: EntitlementStore = Depends(get_entitlements)):
    return ok(serialize_plan(entitlements.get_plan(plan_id)))


@router.post("/", status_code=201)
def create_plan(
    body: PlanCreate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    plan = entitlements.create_plan(
        body.name, body.tier_level, body.price, body.duration_days,
        body.description, body.features,
    )
    return ok(serialize_plan(plan), "Subscription plan created")


@router.put("/{plan_id}")
def update_plan(
    plan_id: int,
    body: PlanUpdate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    plan = entitlements.update_plan(plan_id, **body.model_dump(exclude_none=True))
    return ok(serialize_plan(plan), "Subscription plan updated")


@router.delete("/{plan_id}")
def delete_plan(
    plan_id: int,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    entitlements.delete_plan(plan_id)
    return ok(message="Subscription plan deleted")
