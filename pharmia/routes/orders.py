"""
PharmIA - Routes Commandes

checkout -> submit-payment (propriétaire) -> confirm (ADMIN / ADMIN_WEBINAR)
Les règles métier vivent dans services.orders; les erreurs métier sont
converties en réponses HTTP par le handler de server.py.
"""

import logging
from fastapi import APIRouter, Depends, Query
from typing import Optional

from pharmia.config import get_db
from pharmia.email_service import email_service
from pharmia.models.order import CheckoutRequest, OrderStatus, SubmitPaymentRequest
from pharmia.routes.auth import get_current_user
from pharmia.services import orders as order_service
from pharmia.services.permissions import ADMIN_ROLES, ORDER_ADMIN_ROLES, require_roles

logger = logging.getLogger("orders")

router = APIRouter(prefix="/orders", tags=["Orders"])


async def _notify_confirmed(db, order: dict):
    owner = await db.users.find_one({"id": order["user_id"]}, {"_id": 0, "email": 1, "first_name": 1})
    if owner:
        email_service.send_order_confirmation(owner["email"], owner.get("first_name", ""), order)


@router.post("/checkout", status_code=201)
async def checkout(
    data: CheckoutRequest,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    result = await order_service.create_order(db, user, data.items)
    order = result["order"]

    if order["status"] == OrderStatus.CONFIRMED.value:
        await _notify_confirmed(db, order)

    return {
        "message": "Commande créée avec succès.",
        "order_id": order["id"],
        "total_amount": order["total_amount"],
        "status": order["status"],
        "order": order,
        "fulfillment": result["fulfillment"],
    }


@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    user_id: Optional[str] = Query(None),
    user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES)),
    db=Depends(get_db)
):
    orders = await order_service.list_orders(db, status=status.value if status else None, user_id=user_id)
    return {"orders": orders, "count": len(orders)}


@router.get("/my-orders")
async def my_orders(user: dict = Depends(get_current_user), db=Depends(get_db)):
    orders = await order_service.list_orders(db, user_id=user["id"])
    return {"orders": orders, "count": len(orders)}


@router.get("/{order_id}")
async def get_order(order_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await order_service.get_order_for(db, user, order_id)


@router.post("/{order_id}/submit-payment")
async def submit_payment(
    order_id: str,
    data: SubmitPaymentRequest,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    result = await order_service.submit_payment(db, user, order_id, data.proof_url)
    return {
        "message": "Preuve de paiement envoyée, inscriptions en attente de confirmation.",
        "order": result["order"],
        "registrations": result["registrations"],
    }


@router.post("/{order_id}/confirm")
async def confirm_order(
    order_id: str,
    user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES)),
    db=Depends(get_db)
):
    result = await order_service.confirm_order(db, order_id, actor=user)
    await _notify_confirmed(db, result["order"])
    return {
        "message": "Commande confirmée.",
        "order": result["order"],
        "fulfillment": result["fulfillment"],
    }


@router.post("/{order_id}/reconcile")
async def reconcile_order(
    order_id: str,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    return await order_service.reconcile_order(db, order_id, actor=user)
