"""
PharmIA - Routes MémoFiches

Lecture: le verrouillage de chaque fiche est décidé par services.entitlements,
avec un contexte (groupe, pharmacien) chargé une seule fois par requête.
Écriture: back-office uniquement.
"""

import logging
import math
import re
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from typing import Optional

from pharmia.config import get_db, is_valid_id, new_id, now_iso
from pharmia.models.memofiche import (
    LIST_SECTIONS,
    PUBLISHED_STATUSES,
    MemoFicheCreate,
    MemoFicheUpdate,
)
from pharmia.routes.auth import get_current_user, get_optional_user
from pharmia.services.entitlements import apply_decision, load_access_context, resolve_access
from pharmia.services.event_logger import log_event
from pharmia.services.permissions import ADMIN_ROLES, BACK_OFFICE_ROLES, is_back_office, require_roles

logger = logging.getLogger("memofiches")

router = APIRouter(prefix="/memofiches", tags=["MemoFiches"])


def _with_sections(fiche: dict) -> dict:
    for section in LIST_SECTIONS:
        if fiche.get(section) is None:
            fiche[section] = []
    return fiche


@router.get("")
async def list_memofiches(
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    search: str = "",
    theme: str = "all",
    system: str = "all",
    sort_by: str = "default",
    status: str = "all",
    user: Optional[dict] = Depends(get_optional_user),
    db=Depends(get_db)
):
    """Liste paginée; chaque fiche porte is_locked, les fiches verrouillées sont réduites à leur aperçu."""
    query = {}
    conditions = []

    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        conditions.append({"$or": [{"title": pattern}, {"short_description": pattern}]})

    if theme != "all":
        query["theme"] = theme
    if system != "all":
        query["system"] = system

    if is_back_office(user):
        if status != "all":
            query["status"] = status
    else:
        conditions.append({"$or": [
            {"status": {"$in": PUBLISHED_STATUSES}},
            {"status": {"$exists": False}},
        ]})

    if conditions:
        query["$and"] = conditions

    total = await db.memofiches.count_documents(query)
    total_pages = math.ceil(total / limit)

    cursor = db.memofiches.find(query, {"_id": 0})
    if sort_by == "newest":
        cursor = cursor.sort("creation_date", -1)
    fiches = await cursor.skip((page - 1) * limit).limit(limit).to_list(limit)

    context = await load_access_context(db, user)
    data = [apply_decision(fiche, resolve_access(user, fiche, context)) for fiche in fiches]

    return {
        "data": data,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
        }
    }


@router.get("/search-for-admin")
async def search_for_admin(
    search: str = "",
    user: dict = Depends(require_roles(*BACK_OFFICE_ROLES)),
    db=Depends(get_db)
):
    query = {}
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"title": pattern}, {"short_description": pattern}]

    fiches = await db.memofiches.find(
        query,
        {"_id": 0, "id": 1, "title": 1, "short_description": 1}
    ).limit(20).to_list(20)
    return fiches


@router.get("/{fiche_id}")
async def get_memofiche(
    fiche_id: str,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    if not is_valid_id(fiche_id):
        raise HTTPException(status_code=400, detail="ID de mémofiche invalide.")

    fiche = await db.memofiches.find_one({"id": fiche_id}, {"_id": 0})
    if not fiche:
        raise HTTPException(status_code=404, detail="Mémofiche non trouvée")

    context = await load_access_context(db, user)
    decision = resolve_access(user, fiche, context)

    if not decision.visible:
        raise HTTPException(status_code=404, detail="Mémofiche non trouvée")

    if decision.locked:
        logger.info(f"[ENTITLEMENT] Accès refusé {fiche_id} | user={user.get('email')} reason={decision.reason}")
        return JSONResponse(
            status_code=403,
            content={
                "detail": "Accès refusé: abonnement inactif, mémofiche non assignée ou rôle insuffisant.",
                "is_locked": True,
            }
        )

    return _with_sections(apply_decision(fiche, decision))


# ==================== BACK-OFFICE ====================

@router.post("", status_code=201)
async def create_memofiche(
    data: MemoFicheCreate,
    user: dict = Depends(require_roles(*BACK_OFFICE_ROLES)),
    db=Depends(get_db)
):
    fiche = data.model_dump(mode="json")
    fiche["id"] = new_id()
    fiche["creation_date"] = now_iso()
    fiche["created_by"] = user["id"]

    await db.memofiches.insert_one(fiche)
    fiche.pop("_id", None)

    await log_event(db, action="create_memofiche", entity_type="memofiche", entity_id=fiche["id"], user=user["email"])
    return fiche


@router.put("/{fiche_id}")
async def update_memofiche(
    fiche_id: str,
    data: MemoFicheUpdate,
    user: dict = Depends(require_roles(*BACK_OFFICE_ROLES)),
    db=Depends(get_db)
):
    if not is_valid_id(fiche_id):
        raise HTTPException(status_code=400, detail="ID de mémofiche invalide.")

    update_data = data.model_dump(mode="json", exclude_unset=True)
    update_data["updated_at"] = now_iso()

    result = await db.memofiches.update_one({"id": fiche_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Mémofiche non trouvée")

    return await db.memofiches.find_one({"id": fiche_id}, {"_id": 0})


@router.delete("/{fiche_id}")
async def delete_memofiche(
    fiche_id: str,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    """Supprime la fiche et la retire des assignations de groupe et des lectures."""
    if not is_valid_id(fiche_id):
        raise HTTPException(status_code=400, detail="ID de mémofiche invalide.")

    result = await db.memofiches.delete_one({"id": fiche_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Mémofiche non trouvée")

    await db.groups.update_many(
        {"assigned_fiches.fiche_id": fiche_id},
        {"$pull": {"assigned_fiches": {"fiche_id": fiche_id}}}
    )
    await db.users.update_many(
        {"read_fiches.fiche_id": fiche_id},
        {"$pull": {"read_fiches": {"fiche_id": fiche_id}}}
    )

    await log_event(db, action="delete_memofiche", entity_type="memofiche", entity_id=fiche_id, user=user["email"])
    return {"success": True}
