"""
PharmIA - Résolution des droits d'accès aux mémofiches

Décision pure (aucune écriture) à partir de l'utilisateur, de la fiche et d'un
contexte pré-chargé une fois par requête (groupe, pharmacien lié, pharmacien du groupe).

Ordre d'évaluation (la première règle qui s'applique gagne):
  1. fiche gratuite            -> déverrouillée, même en anonyme
  2. pas d'utilisateur         -> verrouillée
  3. ADMIN / FORMATEUR         -> déverrouillée
  4. abonné effectif           -> soi-même, ou pharmacien lié, ou 1er pharmacien du groupe
  5. abonnement actif ou essai -> déverrouillée
  6. fiche assignée au groupe  -> déverrouillée
  7. sinon                     -> verrouillée
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pymongo.errors import PyMongoError

from pharmia.config import is_valid_id, now_utc, parse_datetime
from pharmia.models.auth import UserRole
from pharmia.models.memofiche import PUBLISHED_STATUSES, SUMMARY_FIELDS
from pharmia.services.permissions import is_back_office

logger = logging.getLogger("entitlements")


# ════════════════════════════════════════════════════════════════════════
# RÉFÉRENCES FAIBLES (pharmacist_id, group_id)
# ════════════════════════════════════════════════════════════════════════

class LinkState(str, Enum):
    NOT_LINKED = "not_linked"     # champ absent
    MALFORMED = "malformed"       # identifiant mal formé
    UNRESOLVED = "unresolved"     # aucun document ne correspond
    FETCH_ERROR = "fetch_error"   # la base a échoué pendant la lecture
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Link:
    state: LinkState = LinkState.NOT_LINKED
    record: Optional[dict] = None

    @property
    def resolved(self) -> bool:
        return self.state == LinkState.RESOLVED and self.record is not None


NOT_LINKED = Link()


@dataclass(frozen=True)
class AccessContext:
    group: Link = NOT_LINKED
    linked_pharmacist: Link = NOT_LINKED
    group_pharmacist: Link = NOT_LINKED


@dataclass(frozen=True)
class AccessDecision:
    visible: bool
    locked: bool
    reason: str
    redacted_fields: List[str] = field(default_factory=list)


# Substitutions d'abonné autorisées par rôle, dans l'ordre de priorité.
# "pharmacist" = lien direct pharmacist_id, "group" = 1er pharmacien du groupe.
SUBSCRIBER_SUBSTITUTIONS = {
    UserRole.PREPARATEUR.value: ("pharmacist",),
    UserRole.PHARMACIEN.value: ("pharmacist", "group"),
    UserRole.APPRENANT.value: ("group",),
    UserRole.ADMIN_WEBINAR.value: (),
}


# ════════════════════════════════════════════════════════════════════════
# CHARGEMENT DU CONTEXTE (une fois par requête)
# ════════════════════════════════════════════════════════════════════════

async def resolve_link(collection, ref_id) -> Link:
    if not ref_id:
        return NOT_LINKED
    if not is_valid_id(ref_id):
        return Link(LinkState.MALFORMED)
    try:
        record = await collection.find_one({"id": ref_id}, {"_id": 0, "password": 0})
    except PyMongoError as e:
        logger.warning(f"[ENTITLEMENT] Lecture {collection.name}/{ref_id} impossible: {e}")
        return Link(LinkState.FETCH_ERROR)
    if not record:
        return Link(LinkState.UNRESOLVED)
    return Link(LinkState.RESOLVED, record)


async def load_access_context(db, user: Optional[dict]) -> AccessContext:
    """Pré-charge les références nécessaires à la décision pour cet utilisateur"""
    if not user or is_back_office(user):
        return AccessContext()

    substitutions = SUBSCRIBER_SUBSTITUTIONS.get(user.get("role"), ())

    group = await resolve_link(db.groups, user.get("group_id"))

    linked_pharmacist = NOT_LINKED
    if "pharmacist" in substitutions:
        linked_pharmacist = await resolve_link(db.users, user.get("pharmacist_id"))

    group_pharmacist = NOT_LINKED
    if "group" in substitutions and group.resolved:
        pharmacist_ids = group.record.get("pharmacist_ids") or []
        if pharmacist_ids:
            group_pharmacist = await resolve_link(db.users, pharmacist_ids[0])

    return AccessContext(
        group=group,
        linked_pharmacist=linked_pharmacist,
        group_pharmacist=group_pharmacist,
    )


# ════════════════════════════════════════════════════════════════════════
# RÈGLES
# ════════════════════════════════════════════════════════════════════════

def effective_subscriber_for(user: dict, context: AccessContext) -> dict:
    """Compte dont l'abonnement conditionne l'accès: une seule substitution au plus"""
    for source in SUBSCRIBER_SUBSTITUTIONS.get(user.get("role"), ()):
        link = context.linked_pharmacist if source == "pharmacist" else context.group_pharmacist
        if link.resolved:
            return link.record
    return user


def is_subscription_active(subscriber: Optional[dict], now: Optional[datetime] = None) -> bool:
    """Drapeau ET date de fin future (un drapeau périmé ne compte pas)"""
    if not subscriber or subscriber.get("has_active_subscription") is not True:
        return False
    end_date = parse_datetime(subscriber.get("subscription_end_date"))
    return end_date is not None and end_date > (now or now_utc())


def is_in_trial(subscriber: Optional[dict], now: Optional[datetime] = None) -> bool:
    if not subscriber:
        return False
    trial_end = parse_datetime(subscriber.get("trial_expires_at"))
    return trial_end is not None and trial_end > (now or now_utc())


def is_fiche_assigned(group: Link, fiche_id: str) -> bool:
    if not group.resolved:
        return False
    return any(
        entry.get("fiche_id") == fiche_id
        for entry in group.record.get("assigned_fiches") or []
    )


def is_fiche_visible(user: Optional[dict], fiche: dict) -> bool:
    """Le back-office voit tout; les autres uniquement les fiches publiées (ou sans statut)"""
    if is_back_office(user):
        return True
    status = fiche.get("status")
    return status is None or status in PUBLISHED_STATUSES


def resolve_access(
    user: Optional[dict],
    fiche: dict,
    context: Optional[AccessContext] = None,
    now: Optional[datetime] = None
) -> AccessDecision:
    context = context or AccessContext()
    now = now or now_utc()
    visible = is_fiche_visible(user, fiche)

    def unlocked(reason: str) -> AccessDecision:
        return AccessDecision(visible=visible, locked=False, reason=reason)

    def locked(reason: str) -> AccessDecision:
        hidden = [k for k in fiche.keys() if k not in SUMMARY_FIELDS]
        return AccessDecision(visible=visible, locked=True, reason=reason, redacted_fields=hidden)

    if fiche.get("is_free") is True:
        return unlocked("free")
    if not user:
        return locked("anonymous")
    if is_back_office(user):
        return unlocked("back_office")

    subscriber = effective_subscriber_for(user, context)
    if is_subscription_active(subscriber, now):
        return unlocked("subscription")
    if is_in_trial(subscriber, now):
        return unlocked("trial")
    if is_fiche_assigned(context.group, fiche.get("id")):
        return unlocked("group_assignment")

    return locked("no_entitlement")


def apply_decision(fiche: dict, decision: AccessDecision) -> dict:
    """Fiche telle que renvoyée au client: champs masqués si verrouillée"""
    visible_fiche = {k: v for k, v in fiche.items() if k not in decision.redacted_fields}
    visible_fiche["is_locked"] = decision.locked
    return visible_fiche
