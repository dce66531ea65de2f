"""
PharmIA - Rôles & dépendances FastAPI
Les capacités sont des ensembles de rôles fermés; aucune route ne teste un rôle en dur.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException

from pharmia.models.auth import UserRole

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# CAPACITÉS (ensembles de rôles)
# ════════════════════════════════════════════════════════════════════════

# Visibilité complète du back-office (toutes fiches, tous statuts)
BACK_OFFICE_ROLES = frozenset({UserRole.ADMIN.value, UserRole.FORMATEUR.value})

# Confirmation de paiement, gestion des webinaires
ORDER_ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.ADMIN_WEBINAR.value})

# Commande confirmée dès sa création
AUTO_CONFIRM_ROLES = frozenset({UserRole.ADMIN.value})

ADMIN_ROLES = frozenset({UserRole.ADMIN.value})


def user_has_role(user: Optional[dict], roles) -> bool:
    return bool(user) and user.get("role") in roles


def is_back_office(user: Optional[dict]) -> bool:
    return user_has_role(user, BACK_OFFICE_ROLES)


def is_order_admin(user: Optional[dict]) -> bool:
    return user_has_role(user, ORDER_ADMIN_ROLES)


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_roles(*roles):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_roles(*ORDER_ADMIN_ROLES))
    """
    from pharmia.routes.auth import get_current_user

    allowed = frozenset(r.value if isinstance(r, UserRole) else r for r in roles)

    async def _check(user: dict = Depends(get_current_user)):
        if user.get("role") not in allowed:
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"role={user.get('role')} required={sorted(allowed)}"
            )
            raise HTTPException(status_code=403, detail="Accès refusé: rôle insuffisant")
        return user

    return _check
