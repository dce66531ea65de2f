"""
PharmIA - Service Abonnements

Projection des abonnements sur les utilisateurs:
- auto-correction à la connexion et à la lecture (drapeau périmé -> false)
- balayage nocturne (scheduler)
- activation / désactivation manuelle par un ADMIN
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from pharmia.config import is_valid_id, now_iso, now_utc, parse_datetime
from pharmia.services.entitlements import is_subscription_active
from pharmia.services.errors import BadRequestError, NotFoundError
from pharmia.services.event_logger import log_event

logger = logging.getLogger("subscriptions")

DAYS_PER_MONTH = 30


def needs_self_heal(user: Optional[dict], now: Optional[datetime] = None) -> bool:
    """Drapeau à true mais date de fin passée (ou absente)"""
    if not user or user.get("has_active_subscription") is not True:
        return False
    return not is_subscription_active(user, now)


async def refresh_subscription_state(db, user: dict, now: Optional[datetime] = None) -> dict:
    """
    Corrige et persiste un drapeau d'abonnement périmé.
    Retourne l'utilisateur à jour (inchangé s'il était cohérent).
    """
    if not needs_self_heal(user, now):
        return user

    result = await db.users.update_one(
        {"id": user["id"], "has_active_subscription": True},
        {"$set": {"has_active_subscription": False, "updated_at": now_iso()}}
    )

    if result.modified_count:
        logger.info(
            f"[SUBSCRIPTIONS] Abonnement expiré désactivé: {user.get('email')} "
            f"(fin={user.get('subscription_end_date')})"
        )
        await log_event(
            db,
            action="subscription_healed",
            entity_type="user",
            entity_id=user["id"],
            details={"subscription_end_date": user.get("subscription_end_date")}
        )

    return {**user, "has_active_subscription": False}


async def sweep_expired_subscriptions(db, now: Optional[datetime] = None) -> int:
    """
    Version groupée de l'auto-correction. Retourne le nombre d'utilisateurs corrigés.
    Les dates de fin sont lues avec parse_datetime (ISO, suffixe Z ou datetime BSON),
    comme à la lecture, et non comparées en chaînes.
    """
    now = now or now_utc()
    candidates = await db.users.find(
        {"has_active_subscription": True},
        {"_id": 0, "id": 1, "has_active_subscription": 1, "subscription_end_date": 1}
    ).to_list(length=None)

    expired_ids = [u["id"] for u in candidates if needs_self_heal(u, now)]
    if not expired_ids:
        return 0

    result = await db.users.update_many(
        {"id": {"$in": expired_ids}, "has_active_subscription": True},
        {"$set": {"has_active_subscription": False, "updated_at": now_iso()}}
    )
    if result.modified_count:
        logger.info(f"[SUBSCRIPTIONS] Balayage: {result.modified_count} abonnement(s) expiré(s)")
    return result.modified_count


async def _get_user_or_raise(db, user_id: str) -> dict:
    if not is_valid_id(user_id):
        raise BadRequestError("ID utilisateur invalide.")
    user = await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
    if not user:
        raise NotFoundError("Utilisateur non trouvé.")
    return user


async def activate_subscription(
    db,
    user_id: str,
    months: int,
    plan_name: str = "",
    actor: Optional[dict] = None,
    now: Optional[datetime] = None
) -> dict:
    """
    Active (ou prolonge) un abonnement.
    La nouvelle fin part de max(maintenant, fin actuelle).
    """
    if months < 1:
        raise BadRequestError("La durée doit être d'au moins un mois.")

    user = await _get_user_or_raise(db, user_id)
    now = now or now_utc()

    current_end = parse_datetime(user.get("subscription_end_date"))
    start = current_end if current_end and current_end > now else now
    new_end = start + timedelta(days=DAYS_PER_MONTH * months)

    update = {
        "has_active_subscription": True,
        "subscription_end_date": new_end.isoformat(),
        "updated_at": now_iso(),
    }
    if plan_name:
        update["plan_name"] = plan_name

    await db.users.update_one({"id": user_id}, {"$set": update})

    await log_event(
        db,
        action="subscription_activated",
        entity_type="user",
        entity_id=user_id,
        user=(actor or {}).get("email", "system"),
        details={"months": months, "plan_name": plan_name, "subscription_end_date": update["subscription_end_date"]}
    )
    logger.info(f"[SUBSCRIPTIONS] {user.get('email')} actif jusqu'au {update['subscription_end_date']}")

    return await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})


async def deactivate_subscription(db, user_id: str, actor: Optional[dict] = None) -> dict:
    user = await _get_user_or_raise(db, user_id)

    await db.users.update_one(
        {"id": user_id},
        {"$set": {"has_active_subscription": False, "updated_at": now_iso()}}
    )
    await log_event(
        db,
        action="subscription_deactivated",
        entity_type="user",
        entity_id=user_id,
        user=(actor or {}).get("email", "system"),
        details={"previous_end_date": user.get("subscription_end_date")}
    )

    return await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
