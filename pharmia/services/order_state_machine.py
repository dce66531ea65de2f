"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PharmIA - Order / Attendee State Machine                                    ║
║                                                                              ║
║  Deux machines liées:                                                        ║
║  - Commande:  PENDING_PAYMENT -> PAYMENT_SUBMITTED -> CONFIRMED              ║
║               PENDING_PAYMENT -> CONFIRMED (admin ou total nul)              ║
║  - Inscrit:   PENDING -> PAYMENT_SUBMITTED -> CONFIRMED                      ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - CONFIRMED est terminal (commande et inscrit)                              ║
║  - un inscrit n'est jamais rétrogradé                                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import List

from pharmia.models.order import OrderStatus, AttendeeStatus
from pharmia.services.errors import ConflictError


# ════════════════════════════════════════════════════════════════════════════
# VALID STATE TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

VALID_ORDER_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT.value: [OrderStatus.PAYMENT_SUBMITTED.value, OrderStatus.CONFIRMED.value],
    OrderStatus.PAYMENT_SUBMITTED.value: [OrderStatus.CONFIRMED.value],
    OrderStatus.CONFIRMED.value: [],  # TERMINAL
}

# Statut d'inscription visé par chaque statut de commande
ATTENDEE_STATUS_FOR_ORDER = {
    OrderStatus.PENDING_PAYMENT.value: AttendeeStatus.PENDING.value,
    OrderStatus.PAYMENT_SUBMITTED.value: AttendeeStatus.PAYMENT_SUBMITTED.value,
    OrderStatus.CONFIRMED.value: AttendeeStatus.CONFIRMED.value,
}

ATTENDEE_RANK = {
    AttendeeStatus.PENDING.value: 0,
    AttendeeStatus.PAYMENT_SUBMITTED.value: 1,
    AttendeeStatus.CONFIRMED.value: 2,
}

TERMINAL_ATTENDEE_STATUSES = {AttendeeStatus.CONFIRMED.value}


def order_sources_for(to_status: str) -> List[str]:
    """Statuts de commande depuis lesquels to_status est atteignable"""
    return [s for s, targets in VALID_ORDER_TRANSITIONS.items() if to_status in targets]


def validate_order_transition(order_id: str, from_status: str, to_status: str) -> bool:
    valid_next = VALID_ORDER_TRANSITIONS.get(from_status, [])
    if to_status not in valid_next:
        raise ConflictError(
            f"Transition invalide: la commande {order_id} est au statut '{from_status}' "
            f"et ne peut pas passer à '{to_status}'"
        )
    return True


def attendee_sources_for(target_status: str) -> List[str]:
    """
    Statuts d'inscrit que target_status peut écraser sur place.
    Jamais un statut terminal, jamais un rang supérieur.
    """
    target_rank = ATTENDEE_RANK[target_status]
    return [
        s for s, rank in ATTENDEE_RANK.items()
        if s not in TERMINAL_ATTENDEE_STATUSES and rank <= target_rank
    ]


def can_overwrite_attendee(current_status: str, target_status: str) -> bool:
    return current_status in attendee_sources_for(target_status)
