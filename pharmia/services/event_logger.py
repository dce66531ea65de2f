"""
PharmIA - Event Logger

Journal d'audit des actions sensibles (commandes, crédits, abonnements, groupes).
Une seule fonction à appeler depuis n'importe quelle route ou service.
"""

import logging
from pymongo.errors import PyMongoError

from pharmia.config import new_id, now_iso

logger = logging.getLogger("event_logger")


async def log_event(
    db,
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Écrit un événement dans la collection event_log.

    Args:
        action: ex. order_created, order_confirmed, credits_granted, subscription_healed
        entity_type: order | user | group | webinar | memofiche
        entity_id: ID de l'entité principale
        user: email (ou id) de l'acteur
        details: dict libre (statuts, montants, ...)
        related: IDs liés (user_id, webinar_ids, ...)
    """
    try:
        await db.event_log.insert_one({
            "id": new_id(),
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user": user,
            "details": details or {},
            "related": related or {},
            "created_at": now_iso()
        })
    except PyMongoError as e:
        # L'audit ne doit jamais faire échouer l'opération appelante
        logger.error(f"[EVENT_LOG] Échec écriture {action} {entity_type}/{entity_id}: {e}")
