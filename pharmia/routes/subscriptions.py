"""
PharmIA - Routes Abonnements (ADMIN)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, validator

from pharmia.config import get_db, now_iso
from pharmia.models.auth import UserRole
from pharmia.services.permissions import ADMIN_ROLES, require_roles
from pharmia.services.subscriptions import activate_subscription, deactivate_subscription

router = APIRouter(prefix="/admin/subscriptions", tags=["Subscriptions"])


class ActivateSubscription(BaseModel):
    months: int = 12
    plan_name: str = ""

    @validator("months")
    def validate_months(cls, v):
        if v < 1:
            raise ValueError("La durée doit être d'au moins un mois")
        return v


@router.get("")
async def list_subscribers(user: dict = Depends(require_roles(*ADMIN_ROLES)), db=Depends(get_db)):
    """Pharmaciens abonnés (abonnement en cours), avec leur dernière commande"""
    subscribers = await db.users.find(
        {
            "role": UserRole.PHARMACIEN.value,
            "has_active_subscription": True,
            "subscription_end_date": {"$gt": now_iso()},
        },
        {"_id": 0, "password": 0}
    ).sort("subscription_end_date", 1).to_list(1000)

    for subscriber in subscribers:
        latest = await db.orders.find(
            {"user_id": subscriber["id"]},
            {"_id": 0, "id": 1, "status": 1, "total_amount": 1, "created_at": 1}
        ).sort("created_at", -1).limit(1).to_list(1)
        subscriber["latest_order"] = latest[0] if latest else None

    return {"subscribers": subscribers, "count": len(subscribers)}


@router.post("/{user_id}/activate")
async def activate(
    user_id: str,
    data: ActivateSubscription,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    updated = await activate_subscription(db, user_id, data.months, data.plan_name, actor=user)
    return {"success": True, "user": updated}


@router.post("/{user_id}/deactivate")
async def deactivate(
    user_id: str,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    updated = await deactivate_subscription(db, user_id, actor=user)
    return {"success": True, "user": updated}
