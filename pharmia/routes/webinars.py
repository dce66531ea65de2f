"""
PharmIA - Routes Webinaires
Catalogue, inscriptions de l'utilisateur, confirmation unitaire d'un inscrit.
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from pharmia.config import get_db, is_valid_id, new_id, now_iso
from pharmia.models.order import AttendeeStatus
from pharmia.models.webinar import WebinarCreate, WebinarUpdate
from pharmia.routes.auth import get_current_user, get_optional_user
from pharmia.services.event_logger import log_event
from pharmia.services.order_state_machine import can_overwrite_attendee
from pharmia.services.permissions import ORDER_ADMIN_ROLES, is_order_admin, require_roles

router = APIRouter(prefix="/webinars", tags=["Webinars"])


def _public_view(webinar: dict, user: Optional[dict]) -> dict:
    """Les listes d'inscrits ne sont visibles que des administrateurs webinaires"""
    if is_order_admin(user):
        return webinar
    view = {k: v for k, v in webinar.items() if k != "attendees"}
    if user:
        mine = next((a for a in webinar.get("attendees") or [] if a.get("user_id") == user["id"]), None)
        view["my_registration"] = mine
    return view


@router.get("")
async def list_webinars(
    group: Optional[str] = None,
    master_class_theme: Optional[str] = None,
    user: Optional[dict] = Depends(get_optional_user),
    db=Depends(get_db)
):
    query = {}
    if group:
        query["group"] = group
    if master_class_theme:
        query["master_class_theme"] = master_class_theme

    webinars = await db.webinars.find(query, {"_id": 0}).sort("date", 1).to_list(500)
    return {"webinars": [_public_view(w, user) for w in webinars], "count": len(webinars)}


@router.get("/my-webinars")
async def my_webinars(user: dict = Depends(get_current_user), db=Depends(get_db)):
    webinars = await db.webinars.find({"attendees.user_id": user["id"]}, {"_id": 0}).sort("date", 1).to_list(500)
    return {"webinars": [_public_view(w, user) for w in webinars], "count": len(webinars)}


@router.get("/{webinar_id}")
async def get_webinar(
    webinar_id: str,
    user: Optional[dict] = Depends(get_optional_user),
    db=Depends(get_db)
):
    if not is_valid_id(webinar_id):
        raise HTTPException(status_code=400, detail="ID de webinaire invalide")
    webinar = await db.webinars.find_one({"id": webinar_id}, {"_id": 0})
    if not webinar:
        raise HTTPException(status_code=404, detail="Webinaire non trouvé")
    return _public_view(webinar, user)


@router.post("", status_code=201)
async def create_webinar(
    data: WebinarCreate,
    user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES)),
    db=Depends(get_db)
):
    webinar = data.model_dump(mode="json")
    webinar.update({
        "id": new_id(),
        "attendees": [],
        "created_at": now_iso(),
        "created_by": user["id"],
    })
    await db.webinars.insert_one(webinar)
    webinar.pop("_id", None)
    return webinar


@router.put("/{webinar_id}")
async def update_webinar(
    webinar_id: str,
    data: WebinarUpdate,
    user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES)),
    db=Depends(get_db)
):
    if not is_valid_id(webinar_id):
        raise HTTPException(status_code=400, detail="ID de webinaire invalide")

    update_data = data.model_dump(mode="json", exclude_unset=True)
    update_data["updated_at"] = now_iso()

    result = await db.webinars.update_one({"id": webinar_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Webinaire non trouvé")
    return await db.webinars.find_one({"id": webinar_id}, {"_id": 0})


@router.post("/{webinar_id}/attendees/{user_id}/confirm")
async def confirm_attendee(
    webinar_id: str,
    user_id: str,
    user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES)),
    db=Depends(get_db)
):
    """Confirme un inscrit dont le paiement a été soumis."""
    if not is_valid_id(webinar_id) or not is_valid_id(user_id):
        raise HTTPException(status_code=400, detail="Identifiant invalide")

    target = AttendeeStatus.CONFIRMED.value
    current = AttendeeStatus.PAYMENT_SUBMITTED.value
    if not can_overwrite_attendee(current, target):
        raise HTTPException(status_code=409, detail="Transition d'inscription invalide")

    result = await db.webinars.update_one(
        {"id": webinar_id, "attendees": {"$elemMatch": {"user_id": user_id, "status": current}}},
        {"$set": {"attendees.$.status": target, "attendees.$.updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Webinaire ou inscription non trouvé(e)")

    await log_event(
        db, action="confirm_attendee", entity_type="webinar", entity_id=webinar_id,
        user=user["email"], related={"user_id": user_id}
    )
    return {"message": "Paiement confirmé."}
