"""
PharmIA - Models Package

from pharmia.models import UserRole, OrderStatus, CheckoutRequest, etc.
"""

from .auth import (
    UserRole,
    VALID_ROLES,
    SELF_SERVICE_ROLES,
    UserLogin,
    UserRegister,
    UserCreate,
    UserUpdate,
)

from .memofiche import (
    MemoFicheStatus,
    PUBLISHED_STATUSES,
    SUMMARY_FIELDS,
    LIST_SECTIONS,
    MemoFicheCreate,
    MemoFicheUpdate,
)

from .group import (
    GroupCreate,
    GroupUpdate,
    AssignFiche,
)

from .webinar import (
    WebinarGroup,
    WebinarTimeSlot,
    WebinarCreate,
    WebinarUpdate,
    AttendeeSlots,
)

from .order import (
    OrderStatus,
    AttendeeStatus,
    OrderItemType,
    CheckoutItem,
    CheckoutRequest,
    SubmitPaymentRequest,
)

__all__ = [
    # Auth
    "UserRole",
    "VALID_ROLES",
    "SELF_SERVICE_ROLES",
    "UserLogin",
    "UserRegister",
    "UserCreate",
    "UserUpdate",
    # MemoFiche
    "MemoFicheStatus",
    "PUBLISHED_STATUSES",
    "SUMMARY_FIELDS",
    "LIST_SECTIONS",
    "MemoFicheCreate",
    "MemoFicheUpdate",
    # Group
    "GroupCreate",
    "GroupUpdate",
    "AssignFiche",
    # Webinar
    "WebinarGroup",
    "WebinarTimeSlot",
    "WebinarCreate",
    "WebinarUpdate",
    "AttendeeSlots",
    # Order
    "OrderStatus",
    "AttendeeStatus",
    "OrderItemType",
    "CheckoutItem",
    "CheckoutRequest",
    "SubmitPaymentRequest",
]
