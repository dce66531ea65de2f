"""
PharmIA - Appartenance aux groupes

Un utilisateur appartient à un seul groupe: son group_id et les listes
pharmacist_ids / preparator_ids des groupes doivent rester d'accord.
"""

import logging
from typing import List, Optional

from pharmia.models.auth import UserRole

logger = logging.getLogger("groups")

MEMBER_LISTS = {
    UserRole.PHARMACIEN.value: "pharmacist_ids",
    UserRole.PREPARATEUR.value: "preparator_ids",
}


async def detach_from_other_groups(db, user_ids: List[str], keep_group_id: Optional[str] = None) -> int:
    """Retire les utilisateurs des listes de tous les groupes sauf keep_group_id"""
    if not user_ids:
        return 0

    query = {"$or": [
        {"pharmacist_ids": {"$in": user_ids}},
        {"preparator_ids": {"$in": user_ids}},
    ]}
    if keep_group_id:
        query["id"] = {"$ne": keep_group_id}

    result = await db.groups.update_many(
        query,
        {"$pullAll": {"pharmacist_ids": user_ids, "preparator_ids": user_ids}}
    )
    if result.matched_count:
        logger.info(f"[GROUPS] {len(user_ids)} membre(s) retiré(s) de {result.matched_count} ancien(s) groupe(s)")
    return result.matched_count


async def move_user_to_group(db, user_id: str, role: str, group_id: Optional[str]):
    """
    Rattache un utilisateur à group_id (ou à aucun groupe si None).
    Pharmaciens et préparateurs sont aussi inscrits dans la liste du groupe.
    """
    await detach_from_other_groups(db, [user_id], keep_group_id=group_id)

    field = MEMBER_LISTS.get(role)
    if group_id and field:
        await db.groups.update_one({"id": group_id}, {"$addToSet": {field: user_id}})
