"""
Helpers partagés par les tests: exécution async, insertion directe de données.
"""

import asyncio
from datetime import timedelta

from pharmia.config import generate_token, hash_password, new_id, now_iso, now_utc

TEST_PASSWORD = "PharmiaTest2026!"


def _db_op(coro):
    """Run async DB operation in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def iso_in(days: float) -> str:
    return (now_utc() + timedelta(days=days)).isoformat()


def insert_user(db, role: str, **fields) -> dict:
    user_id = new_id()
    doc = {
        "id": user_id,
        "email": f"{role.lower()}-{user_id[:8]}@test.local",
        "password": hash_password(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": role.title(),
        "role": role,
        "has_active_subscription": False,
        "subscription_end_date": None,
        "trial_expires_at": None,
        "pharmacist_id": None,
        "group_id": None,
        "master_class_credits": 0,
        "pharmia_credits": 0,
        "is_active": True,
        "created_at": now_iso(),
    }
    doc.update(fields)
    _db_op(db.users.insert_one(doc))
    doc.pop("_id", None)
    return doc


def auth_headers(db, user: dict) -> dict:
    """Crée une session valide et retourne les headers Bearer"""
    token = generate_token()
    _db_op(db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": iso_in(1),
    }))
    return {"Authorization": f"Bearer {token}"}


def insert_fiche(db, **fields) -> dict:
    doc = {
        "id": new_id(),
        "title": "Angine et mal de gorge",
        "short_description": "Conseil au comptoir",
        "theme": "ORL",
        "system": "Respiratoire",
        "status": "Published",
        "is_free": False,
        "patient_situation": "Patient de 35 ans, mal de gorge depuis 2 jours",
        "main_treatment": ["Paracétamol"],
        "creation_date": now_iso(),
    }
    doc.update(fields)
    _db_op(db.memofiches.insert_one(doc))
    doc.pop("_id", None)
    return doc


def insert_group(db, pharmacist_ids, preparator_ids=(), assigned_fiche_ids=(), **fields) -> dict:
    doc = {
        "id": new_id(),
        "name": "Pharmacie Test",
        "pharmacist_ids": list(pharmacist_ids),
        "preparator_ids": list(preparator_ids),
        "assigned_fiches": [{"fiche_id": f, "assigned_at": now_iso()} for f in assigned_fiche_ids],
        "created_at": now_iso(),
    }
    doc.update(fields)
    _db_op(db.groups.insert_one(doc))
    _db_op(db.users.update_many(
        {"id": {"$in": list(pharmacist_ids) + list(preparator_ids)}},
        {"$set": {"group_id": doc["id"]}}
    ))
    doc.pop("_id", None)
    return doc


def insert_webinar(db, group: str = "CROP Tunis", master_class_theme=None, price=None, days_ahead: int = 7, attendees=None, **fields) -> dict:
    doc = {
        "id": new_id(),
        "title": f"Webinaire {group}",
        "description": "",
        "date": iso_in(days_ahead),
        "group": group,
        "master_class_theme": master_class_theme,
        "price": price,
        "presenter": "",
        "attendees": list(attendees or []),
        "created_at": now_iso(),
    }
    doc.update(fields)
    _db_op(db.webinars.insert_one(doc))
    doc.pop("_id", None)
    return doc


def insert_master_class(db, theme: str = "MC-TEST", sessions: int = 5, price=None) -> list:
    return [
        insert_webinar(db, group="Master Class", master_class_theme=theme, price=price, days_ahead=7 * i,
                       title=f"Master Class {theme} - Session {i}")
        for i in range(1, sessions + 1)
    ]


def fetch(db, collection: str, doc_id: str) -> dict:
    return _db_op(db[collection].find_one({"id": doc_id}, {"_id": 0}))


def attendee_of(webinar: dict, user_id: str):
    return next((a for a in webinar.get("attendees") or [] if a["user_id"] == user_id), None)
