"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PharmIA - Order / Fulfillment Workflow                                      ║
║                                                                              ║
║  checkout -> (preuve) -> confirmation                                        ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - tout est validé AVANT la première écriture                                ║
║  - le total est calculé au checkout et n'est jamais recalculé                ║
║  - une Master Class à thème inscrit l'utilisateur à TOUTES les sessions      ║
║  - la confirmation est revendiquée atomiquement: crédits accordés une fois   ║
║  - un inscrit CONFIRMED n'est jamais rétrogradé                              ║
║                                                                              ║
║  PAS de transaction multi-documents: chaque étape du fan-out est idempotente ║
║  et rejouable via reconcile_order (fulfilled_at absent = fan-out incomplet). ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import List, Dict, Any, Optional

from pharmia.config import is_valid_id, new_id, now_iso
from pharmia.models.order import CheckoutItem, OrderItemType, OrderStatus, AttendeeStatus
from pharmia.services.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from pharmia.services.event_logger import log_event
from pharmia.services.order_state_machine import (
    attendee_sources_for,
    order_sources_for,
    validate_order_transition,
)
from pharmia.services.permissions import AUTO_CONFIRM_ROLES, is_order_admin
from pharmia.services.pricing import (
    CREDIT_FIELDS,
    compute_total,
    find_pack,
    price_pack,
    price_webinar,
    round_tnd,
)

logger = logging.getLogger("orders")

# Preuve enregistrée pour une inscription créée directement par confirmation admin
ADMIN_CONFIRMED_PROOF = "ADMIN_CONFIRMED"


# ════════════════════════════════════════════════════════════════════════════
# LECTURE
# ════════════════════════════════════════════════════════════════════════════

async def load_order(db, order_id: str) -> dict:
    if not is_valid_id(order_id):
        raise BadRequestError("ID de commande invalide.")
    order = await db.orders.find_one({"id": order_id}, {"_id": 0})
    if not order:
        raise NotFoundError("Commande non trouvée.")
    return order


async def get_order_for(db, user: dict, order_id: str) -> dict:
    """Lecture réservée au propriétaire ou à un administrateur des commandes"""
    order = await load_order(db, order_id)
    if order["user_id"] != user["id"] and not is_order_admin(user):
        raise ForbiddenError("Vous n'êtes pas autorisé à consulter cette commande.")
    return order


async def list_orders(db, status: Optional[str] = None, user_id: Optional[str] = None, limit: int = 500) -> List[dict]:
    query = {}
    if status:
        query["status"] = status
    if user_id:
        query["user_id"] = user_id
    return await db.orders.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)


# ════════════════════════════════════════════════════════════════════════════
# CHECKOUT
# ════════════════════════════════════════════════════════════════════════════

async def _price_items(db, items: List[CheckoutItem]) -> List[Dict[str, Any]]:
    """Valide et chiffre le panier entier. Aucune écriture."""
    webinar_items = [i for i in items if i.item_type == OrderItemType.WEBINAR]
    pack_items = [i for i in items if i.item_type == OrderItemType.PACK]

    webinar_ids = [i.webinar_id for i in webinar_items]
    for webinar_id in webinar_ids:
        if not is_valid_id(webinar_id):
            raise BadRequestError(f"ID de webinaire invalide: {webinar_id}")
    if len(set(webinar_ids)) != len(webinar_ids):
        raise BadRequestError("Un même webinaire figure plusieurs fois dans le panier.")

    webinars = {}
    if webinar_ids:
        found = await db.webinars.find(
            {"id": {"$in": webinar_ids}},
            {"_id": 0, "attendees": 0}
        ).to_list(len(webinar_ids))
        webinars = {w["id"]: w for w in found}
        if len(webinars) != len(webinar_ids):
            raise NotFoundError("Un ou plusieurs webinaires sont introuvables.")

    resolved_packs = []
    for item in pack_items:
        match = find_pack(item.pack_id)
        if not match:
            raise BadRequestError(f"Pack inconnu: {item.pack_id}")
        resolved_packs.append((item.pack_id, match))

    lines = []
    for item in webinar_items:
        webinar = webinars[item.webinar_id]
        price, tax_applicable = price_webinar(webinar)
        lines.append({
            "type": OrderItemType.WEBINAR.value,
            "webinar_id": item.webinar_id,
            "title": webinar.get("title", ""),
            "group": webinar.get("group"),
            "master_class_theme": webinar.get("master_class_theme"),
            "slots": [s.value for s in item.slots],
            "price": price,
            "tax_applicable": tax_applicable,
        })

    for pack_id, (catalog, pack) in resolved_packs:
        lines.append({
            "type": OrderItemType.PACK.value,
            "pack_id": pack_id,
            "catalog": catalog,
            "name": pack["name"],
            "credits": pack["credits"],
            "price": price_pack(pack),
            "tax_applicable": True,
        })

    return lines


async def create_order(db, user: dict, items: List[CheckoutItem]) -> Dict[str, Any]:
    """
    Crée une commande à partir du panier.

    Statut initial:
    - CONFIRMED si l'acteur est ADMIN ou si le total est nul (effets appliqués immédiatement)
    - PENDING_PAYMENT sinon
    """
    if not items:
        raise BadRequestError("Le panier est vide.")

    lines = await _price_items(db, items)

    subtotal = round_tnd(sum(line["price"] for line in lines))
    tax_applicable = any(line["tax_applicable"] for line in lines)
    total_amount, stamp_duty = compute_total(subtotal, tax_applicable)

    auto_confirm = user.get("role") in AUTO_CONFIRM_ROLES or total_amount == 0
    status = OrderStatus.CONFIRMED.value if auto_confirm else OrderStatus.PENDING_PAYMENT.value

    now = now_iso()
    order = {
        "id": new_id(),
        "user_id": user["id"],
        "items": lines,
        "subtotal": subtotal,
        "stamp_duty": stamp_duty,
        "tax_applicable": tax_applicable,
        "total_amount": total_amount,
        "status": status,
        "payment_proof_url": None,
        "created_at": now,
        "updated_at": now,
    }
    if auto_confirm:
        order["confirmed_at"] = now
        order["confirmed_by"] = user.get("email")

    await db.orders.insert_one(order)
    order.pop("_id", None)

    logger.info(
        f"[ORDERS] Commande {order['id']} créée | user={user.get('email')} "
        f"items={len(lines)} total={total_amount} status={status}"
    )
    await log_event(
        db,
        action="order_created",
        entity_type="order",
        entity_id=order["id"],
        user=user.get("email", "system"),
        details={"total_amount": total_amount, "status": status, "auto_confirmed": auto_confirm},
        related={"user_id": user["id"]}
    )

    fulfillment = None
    if auto_confirm:
        fulfillment = await _fulfill_confirmed(db, order, actor=user)

    return {"order": order, "fulfillment": fulfillment}


# ════════════════════════════════════════════════════════════════════════════
# SOUMISSION DE PREUVE
# ════════════════════════════════════════════════════════════════════════════

async def submit_payment(db, user: dict, order_id: str, proof_url: str) -> Dict[str, Any]:
    """PENDING_PAYMENT -> PAYMENT_SUBMITTED, propriétaire uniquement"""
    if not proof_url:
        raise BadRequestError("La preuve de paiement est obligatoire.")

    order = await load_order(db, order_id)

    if order["user_id"] != user["id"]:
        raise ForbiddenError("Vous n'êtes pas autorisé à modifier cette commande.")
    if order["status"] != OrderStatus.PENDING_PAYMENT.value:
        raise ConflictError(f"La commande est déjà au statut: {order['status']}")

    validate_order_transition(order_id, order["status"], OrderStatus.PAYMENT_SUBMITTED.value)

    now = now_iso()
    result = await db.orders.update_one(
        {"id": order_id, "status": OrderStatus.PENDING_PAYMENT.value},
        {"$set": {
            "status": OrderStatus.PAYMENT_SUBMITTED.value,
            "payment_proof_url": proof_url,
            "submitted_at": now,
            "updated_at": now,
        }}
    )
    if result.modified_count == 0:
        raise ConflictError("La commande a changé de statut entre-temps.")

    order.update({
        "status": OrderStatus.PAYMENT_SUBMITTED.value,
        "payment_proof_url": proof_url,
        "submitted_at": now,
        "updated_at": now,
    })

    registrations = await fan_out_registrations(
        db, order,
        target_status=AttendeeStatus.PAYMENT_SUBMITTED.value,
        proof_url=proof_url,
        overwrite_proof=True,
    )

    logger.info(
        f"[ORDERS] Commande {order_id} -> PAYMENT_SUBMITTED | "
        f"webinaires={len(registrations['registered']) + len(registrations['updated'])}"
    )
    await log_event(
        db,
        action="order_payment_submitted",
        entity_type="order",
        entity_id=order_id,
        user=user.get("email", "system"),
        details={"proof_url": proof_url},
        related={"user_id": user["id"], "webinar_ids": registrations["registered"] + registrations["updated"]}
    )

    return {"order": order, "registrations": registrations}


# ════════════════════════════════════════════════════════════════════════════
# CONFIRMATION
# ════════════════════════════════════════════════════════════════════════════

async def confirm_order(db, order_id: str, actor: dict) -> Dict[str, Any]:
    """
    -> CONFIRMED. Rejet 409 si déjà confirmée.
    La mise à jour conditionnelle garantit qu'un seul appel concurrent gagne.
    """
    order = await load_order(db, order_id)

    if order["status"] == OrderStatus.CONFIRMED.value:
        raise ConflictError("La commande est déjà confirmée.")
    validate_order_transition(order_id, order["status"], OrderStatus.CONFIRMED.value)

    now = now_iso()
    result = await db.orders.update_one(
        {"id": order_id, "status": {"$in": order_sources_for(OrderStatus.CONFIRMED.value)}},
        {"$set": {
            "status": OrderStatus.CONFIRMED.value,
            "confirmed_at": now,
            "confirmed_by": actor.get("email"),
            "updated_at": now,
        }}
    )
    if result.modified_count == 0:
        raise ConflictError("La commande est déjà confirmée.")

    previous_status = order["status"]
    order.update({
        "status": OrderStatus.CONFIRMED.value,
        "confirmed_at": now,
        "confirmed_by": actor.get("email"),
        "updated_at": now,
    })

    logger.info(f"[ORDERS] Commande {order_id} {previous_status} -> CONFIRMED | by={actor.get('email')}")
    await log_event(
        db,
        action="order_confirmed",
        entity_type="order",
        entity_id=order_id,
        user=actor.get("email", "system"),
        details={"from_status": previous_status, "total_amount": order.get("total_amount")},
        related={"user_id": order["user_id"]}
    )

    fulfillment = await _fulfill_confirmed(db, order, actor=actor)
    return {"order": order, "fulfillment": fulfillment}


async def reconcile_order(db, order_id: str, actor: dict) -> Dict[str, Any]:
    """Rejoue le fan-out d'une commande confirmée dont l'exécution n'a pas abouti"""
    order = await load_order(db, order_id)

    if order["status"] != OrderStatus.CONFIRMED.value:
        raise ConflictError(f"Seule une commande confirmée peut être réconciliée (statut: {order['status']}).")
    if order.get("fulfilled_at"):
        return {"order": order, "fulfillment": None, "already_fulfilled": True}

    logger.warning(f"[ORDERS] Réconciliation de la commande {order_id} par {actor.get('email')}")
    fulfillment = await _fulfill_confirmed(db, order, actor=actor)
    return {"order": order, "fulfillment": fulfillment, "already_fulfilled": False}


async def _fulfill_confirmed(db, order: dict, actor: dict) -> Dict[str, Any]:
    credits = await grant_pack_credits(db, order, actor)
    # Les inscriptions existantes gardent leur preuve; les nouvelles portent le marqueur admin
    registrations = await fan_out_registrations(
        db, order,
        target_status=AttendeeStatus.CONFIRMED.value,
        proof_url=ADMIN_CONFIRMED_PROOF,
        overwrite_proof=False,
    )

    fulfilled_at = now_iso()
    await db.orders.update_one({"id": order["id"]}, {"$set": {"fulfilled_at": fulfilled_at}})
    order["fulfilled_at"] = fulfilled_at

    return {"credits": credits, "registrations": registrations}


# ════════════════════════════════════════════════════════════════════════════
# EFFETS: CRÉDITS
# ════════════════════════════════════════════════════════════════════════════

async def grant_pack_credits(db, order: dict, actor: Optional[dict] = None) -> Dict[str, int]:
    """
    Ajoute ($inc) les crédits des packs au solde du propriétaire.
    La revendication credits_granted_at rend l'opération au plus une fois par commande.
    """
    increments: Dict[str, int] = {}
    for item in order.get("items", []):
        if item.get("type") != OrderItemType.PACK.value:
            continue
        match = find_pack(item["pack_id"])
        if not match:
            # Pack retiré du catalogue depuis le checkout: on garde le nombre figé sur la ligne
            logger.warning(f"[ORDERS] Pack {item['pack_id']} absent du catalogue (commande {order['id']})")
            catalog, credits = item.get("catalog"), item.get("credits", 0)
        else:
            catalog, credits = match[0], match[1]["credits"]
        field = CREDIT_FIELDS.get(catalog)
        if field and credits:
            increments[field] = increments.get(field, 0) + credits

    if not increments:
        return {}

    claim = await db.orders.update_one(
        {"id": order["id"], "credits_granted_at": None},
        {"$set": {"credits_granted_at": now_iso()}}
    )
    if claim.modified_count == 0:
        logger.warning(
            f"[ORDERS] Crédits déjà revendiqués pour la commande {order['id']}: "
            f"aucun nouvel ajout (vérifier le solde si l'exécution précédente a échoué)"
        )
        return {}

    await db.users.update_one({"id": order["user_id"]}, {"$inc": increments})

    logger.info(f"[ORDERS] Crédits ajoutés | user={order['user_id']} {increments}")
    await log_event(
        db,
        action="credits_granted",
        entity_type="user",
        entity_id=order["user_id"],
        user=(actor or {}).get("email", "system"),
        details=increments,
        related={"order_id": order["id"]}
    )
    return increments


# ════════════════════════════════════════════════════════════════════════════
# EFFETS: INSCRIPTIONS (fan-out par thème)
# ════════════════════════════════════════════════════════════════════════════

async def expand_theme(db, webinar_id: str) -> List[str]:
    """Toutes les sessions partageant le master_class_theme du webinaire (ou lui seul)"""
    webinar = await db.webinars.find_one({"id": webinar_id}, {"_id": 0, "id": 1, "master_class_theme": 1})
    if not webinar:
        logger.warning(f"[ORDERS] Webinaire {webinar_id} introuvable lors du fan-out")
        return []

    theme = webinar.get("master_class_theme")
    if not theme:
        return [webinar_id]

    sessions = await db.webinars.find(
        {"master_class_theme": theme},
        {"_id": 0, "id": 1}
    ).sort("date", 1).to_list(length=None)
    return [s["id"] for s in sessions]


async def register_attendee(
    db,
    webinar_id: str,
    user_id: str,
    target_status: str,
    proof_url: Optional[str],
    slots: List[str],
    overwrite_proof: bool
) -> str:
    """
    Met à jour l'inscription existante si son statut peut être écrasé, sinon en ajoute une.
    proof_url est toujours écrit sur une nouvelle inscription; sur une inscription
    existante seulement si overwrite_proof.
    Returns: "updated" | "registered" | "unchanged"
    """
    now = now_iso()

    set_fields = {
        "attendees.$.status": target_status,
        "attendees.$.updated_at": now,
    }
    if overwrite_proof and proof_url:
        set_fields["attendees.$.proof_url"] = proof_url
    if slots:
        set_fields["attendees.$.time_slots"] = slots

    result = await db.webinars.update_one(
        {
            "id": webinar_id,
            "attendees": {"$elemMatch": {
                "user_id": user_id,
                "status": {"$in": attendee_sources_for(target_status)},
            }}
        },
        {"$set": set_fields}
    )
    if result.matched_count:
        return "updated"

    result = await db.webinars.update_one(
        {"id": webinar_id, "attendees.user_id": {"$ne": user_id}},
        {"$push": {"attendees": {
            "user_id": user_id,
            "status": target_status,
            "proof_url": proof_url,
            "registered_at": now,
            "updated_at": now,
            "time_slots": slots,
        }}}
    )
    if result.matched_count:
        return "registered"

    # Inscription existante de rang supérieur (ex: déjà CONFIRMED)
    return "unchanged"


async def fan_out_registrations(
    db,
    order: dict,
    target_status: str,
    proof_url: Optional[str],
    overwrite_proof: bool
) -> Dict[str, List[str]]:
    summary = {"registered": [], "updated": [], "unchanged": []}

    targets: Dict[str, List[str]] = {}
    for item in order.get("items", []):
        if item.get("type") != OrderItemType.WEBINAR.value:
            continue
        for webinar_id in await expand_theme(db, item["webinar_id"]):
            targets.setdefault(webinar_id, item.get("slots") or [])

    for webinar_id, slots in targets.items():
        outcome = await register_attendee(
            db, webinar_id, order["user_id"], target_status, proof_url, slots, overwrite_proof
        )
        summary[outcome].append(webinar_id)

    if summary["unchanged"]:
        logger.info(
            f"[ORDERS] Commande {order['id']}: {len(summary['unchanged'])} inscription(s) "
            f"déjà à un statut supérieur, non modifiée(s)"
        )
    return summary
