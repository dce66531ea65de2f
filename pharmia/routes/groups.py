"""
PharmIA - Routes Groupes

Un groupe = une pharmacie: pharmaciens (le premier listé porte l'abonnement),
préparateurs, et fiches assignées (accès sans abonnement).
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List

from pharmia.config import get_db, is_valid_id, new_id, now_iso
from pharmia.models.auth import UserRole
from pharmia.models.group import AssignFiche, GroupCreate, GroupUpdate
from pharmia.routes.auth import get_current_user
from pharmia.services.event_logger import log_event
from pharmia.services.group_membership import detach_from_other_groups
from pharmia.services.permissions import ADMIN_ROLES, BACK_OFFICE_ROLES, is_back_office, require_roles

router = APIRouter(prefix="/groups", tags=["Groups"])


# ==================== HELPERS ====================

async def _get_group_or_404(db, group_id: str) -> dict:
    if not is_valid_id(group_id):
        raise HTTPException(status_code=400, detail="ID de groupe invalide")
    group = await db.groups.find_one({"id": group_id}, {"_id": 0})
    if not group:
        raise HTTPException(status_code=404, detail="Groupe non trouvé")
    return group


async def _check_members(db, user_ids: List[str], role: str):
    for user_id in user_ids:
        if not is_valid_id(user_id):
            raise HTTPException(status_code=400, detail=f"ID utilisateur invalide: {user_id}")
    found = await db.users.count_documents({"id": {"$in": user_ids}, "role": role})
    if found != len(set(user_ids)):
        raise HTTPException(status_code=400, detail=f"Membres introuvables ou rôle différent de {role}")


def _is_group_pharmacist(user: dict, group: dict) -> bool:
    return user["id"] in (group.get("pharmacist_ids") or [])


def _ensure_can_manage_fiches(user: dict, group: dict):
    if not (is_back_office(user) or _is_group_pharmacist(user, group)):
        raise HTTPException(status_code=403, detail="Accès refusé: gestion du groupe non autorisée")


# ==================== CRUD ====================

@router.post("", status_code=201)
async def create_group(
    data: GroupCreate,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    await _check_members(db, data.pharmacist_ids, UserRole.PHARMACIEN.value)
    await _check_members(db, data.preparator_ids, UserRole.PREPARATEUR.value)

    group = {
        "id": new_id(),
        "name": data.name,
        "pharmacist_ids": data.pharmacist_ids,
        "preparator_ids": data.preparator_ids,
        "assigned_fiches": [],
        "created_at": now_iso(),
        "created_by": user["id"],
    }
    await db.groups.insert_one(group)
    group.pop("_id", None)

    members = data.pharmacist_ids + data.preparator_ids
    await detach_from_other_groups(db, members, keep_group_id=group["id"])
    await db.users.update_many({"id": {"$in": members}}, {"$set": {"group_id": group["id"]}})

    await log_event(
        db, action="create_group", entity_type="group", entity_id=group["id"],
        user=user["email"], related={"member_ids": members}
    )
    return group


@router.get("")
async def list_groups(user: dict = Depends(require_roles(*BACK_OFFICE_ROLES)), db=Depends(get_db)):
    groups = await db.groups.find({}, {"_id": 0}).sort("name", 1).to_list(500)
    return {"groups": groups, "count": len(groups)}


@router.get("/{group_id}")
async def get_group(group_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    group = await _get_group_or_404(db, group_id)
    if not (is_back_office(user) or _is_group_pharmacist(user, group)):
        raise HTTPException(status_code=403, detail="Accès refusé")
    return group


@router.put("/{group_id}")
async def update_group(
    group_id: str,
    data: GroupUpdate,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    group = await _get_group_or_404(db, group_id)
    update_data = data.model_dump(exclude_unset=True)

    if "pharmacist_ids" in update_data:
        await _check_members(db, update_data["pharmacist_ids"], UserRole.PHARMACIEN.value)
    if "preparator_ids" in update_data:
        await _check_members(db, update_data["preparator_ids"], UserRole.PREPARATEUR.value)

    old_members = set(group.get("pharmacist_ids", [])) | set(group.get("preparator_ids", []))
    new_members = set(update_data.get("pharmacist_ids", group.get("pharmacist_ids", []))) | \
        set(update_data.get("preparator_ids", group.get("preparator_ids", [])))

    update_data["updated_at"] = now_iso()
    await db.groups.update_one({"id": group_id}, {"$set": update_data})

    removed = list(old_members - new_members)
    if removed:
        await db.users.update_many(
            {"id": {"$in": removed}, "group_id": group_id},
            {"$set": {"group_id": None}}
        )
    added = list(new_members - old_members)
    if added:
        await detach_from_other_groups(db, added, keep_group_id=group_id)
        await db.users.update_many({"id": {"$in": added}}, {"$set": {"group_id": group_id}})

    await log_event(
        db, action="update_group", entity_type="group", entity_id=group_id,
        user=user["email"], details={"added": added, "removed": removed}
    )
    return await db.groups.find_one({"id": group_id}, {"_id": 0})


# ==================== FICHES ASSIGNÉES ====================

@router.post("/{group_id}/assigned-fiches")
async def assign_fiche(
    group_id: str,
    data: AssignFiche,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    group = await _get_group_or_404(db, group_id)
    _ensure_can_manage_fiches(user, group)

    if not is_valid_id(data.fiche_id):
        raise HTTPException(status_code=400, detail="ID de mémofiche invalide")
    if not await db.memofiches.find_one({"id": data.fiche_id}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=404, detail="Mémofiche non trouvée")

    # Idempotent: aucune entrée ajoutée si la fiche est déjà assignée
    result = await db.groups.update_one(
        {"id": group_id, "assigned_fiches.fiche_id": {"$ne": data.fiche_id}},
        {"$push": {"assigned_fiches": {"fiche_id": data.fiche_id, "assigned_at": now_iso()}}}
    )

    if result.matched_count:
        await log_event(
            db, action="assign_fiche", entity_type="group", entity_id=group_id,
            user=user["email"], related={"fiche_id": data.fiche_id}
        )

    return {"success": True, "already_assigned": result.matched_count == 0}


@router.delete("/{group_id}/assigned-fiches/{fiche_id}")
async def unassign_fiche(
    group_id: str,
    fiche_id: str,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    group = await _get_group_or_404(db, group_id)
    _ensure_can_manage_fiches(user, group)

    if not any(entry.get("fiche_id") == fiche_id for entry in group.get("assigned_fiches") or []):
        raise HTTPException(status_code=404, detail="Fiche non assignée à ce groupe")

    await db.groups.update_one(
        {"id": group_id},
        {"$pull": {"assigned_fiches": {"fiche_id": fiche_id}}}
    )

    await log_event(
        db, action="unassign_fiche", entity_type="group", entity_id=group_id,
        user=user["email"], related={"fiche_id": fiche_id}
    )
    return {"success": True}
