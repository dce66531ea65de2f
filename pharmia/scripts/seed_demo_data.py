"""
PharmIA - Seed Demo Data (dev/staging only)
Crée des comptes de démonstration, une pharmacie (groupe), une Master Class
en 5 sessions, quelques webinaires et mémofiches.
Run: python -m pharmia.scripts.seed_demo_data
Reset: python -m pharmia.scripts.seed_demo_data --reset
"""

import asyncio
import sys
from datetime import timedelta

from pharmia.config import DB_NAME, create_mongo_client, hash_password, new_id, now_iso, now_utc

# Même mot de passe pour tous les comptes de démo
DEMO_PASSWORD = "PharmiaDemo2026!"
DEMO_DOMAIN = "@demo.pharmia.local"

DEMO_USERS = [
    {"key": "admin", "first_name": "Amira", "last_name": "Admin", "role": "ADMIN"},
    {"key": "formateur", "first_name": "Fares", "last_name": "Formateur", "role": "FORMATEUR"},
    {"key": "admin_webinar", "first_name": "Wassim", "last_name": "Webinaires", "role": "ADMIN_WEBINAR"},
    {"key": "pharmacien", "first_name": "Sonia", "last_name": "Pharmacienne", "role": "PHARMACIEN", "subscribed": True},
    {"key": "preparateur", "first_name": "Karim", "last_name": "Préparateur", "role": "PREPARATEUR"},
    {"key": "apprenant", "first_name": "Lina", "last_name": "Apprenante", "role": "APPRENANT"},
]

MASTER_CLASS_THEME = "MC-DERMO-2026"

DEMO_FICHES = [
    {"title": "Acné de l'adolescent", "theme": "Dermatologie", "system": "Peau", "is_free": True},
    {"title": "Rhume et congestion nasale", "theme": "ORL", "system": "Respiratoire", "is_free": False},
    {"title": "Reflux gastro-œsophagien", "theme": "Digestion", "system": "Digestif", "is_free": False},
    {"title": "Mycose vaginale", "theme": "Gynécologie", "system": "Génital", "is_free": False},
]


async def reset(db):
    """Supprime les données de démonstration"""
    users = await db.users.find({"email": {"$regex": f"{DEMO_DOMAIN.replace('.', '[.]')}$"}}, {"_id": 0, "id": 1}).to_list(100)
    user_ids = [u["id"] for u in users]
    await db.sessions.delete_many({"user_id": {"$in": user_ids}})
    await db.orders.delete_many({"user_id": {"$in": user_ids}})
    result = await db.users.delete_many({"id": {"$in": user_ids}})
    await db.groups.delete_many({"demo": True})
    await db.webinars.delete_many({"demo": True})
    await db.memofiches.delete_many({"demo": True})
    print(f"Deleted {result.deleted_count} demo users")


async def seed(db):
    now = now_utc()
    ids = {}

    for u in DEMO_USERS:
        doc = {
            "id": new_id(),
            "email": f"{u['key']}{DEMO_DOMAIN}",
            "password": hash_password(DEMO_PASSWORD),
            "first_name": u["first_name"],
            "last_name": u["last_name"],
            "role": u["role"],
            "has_active_subscription": bool(u.get("subscribed")),
            "subscription_end_date": (now + timedelta(days=365)).isoformat() if u.get("subscribed") else None,
            "trial_expires_at": None,
            "pharmacist_id": None,
            "group_id": None,
            "master_class_credits": 0,
            "pharmia_credits": 0,
            "is_active": True,
            "created_at": now_iso(),
        }
        await db.users.insert_one(doc)
        ids[u["key"]] = doc["id"]
        print(f"  Created: {doc['email']} ({u['role']})")

    # Préparateur rattaché à la pharmacienne abonnée
    await db.users.update_one({"id": ids["preparateur"]}, {"$set": {"pharmacist_id": ids["pharmacien"]}})

    fiche_ids = []
    for f in DEMO_FICHES:
        fiche = {
            "id": new_id(),
            "title": f["title"],
            "short_description": f"Cas comptoir: {f['title'].lower()}",
            "theme": f["theme"],
            "system": f["system"],
            "status": "Published",
            "is_free": f["is_free"],
            "patient_situation": "",
            "main_treatment": [],
            "associated_products": [],
            "lifestyle_advice": [],
            "dietary_advice": [],
            "creation_date": now_iso(),
            "demo": True,
        }
        await db.memofiches.insert_one(fiche)
        fiche_ids.append(fiche["id"])
    print(f"  Created: {len(fiche_ids)} mémofiches")

    group_id = new_id()
    await db.groups.insert_one({
        "id": group_id,
        "name": "Pharmacie de démonstration",
        "pharmacist_ids": [ids["pharmacien"]],
        "preparator_ids": [ids["preparateur"]],
        "assigned_fiches": [{"fiche_id": fiche_ids[1], "assigned_at": now_iso()}],
        "created_at": now_iso(),
        "demo": True,
    })
    await db.users.update_many(
        {"id": {"$in": [ids["pharmacien"], ids["preparateur"], ids["apprenant"]]}},
        {"$set": {"group_id": group_id}}
    )
    print("  Created: 1 groupe")

    for session in range(1, 6):
        await db.webinars.insert_one({
            "id": new_id(),
            "title": f"Master Class Dermatologie - Session {session}",
            "description": "",
            "date": (now + timedelta(weeks=session)).isoformat(),
            "group": "Master Class",
            "master_class_theme": MASTER_CLASS_THEME,
            "price": None,
            "presenter": "Dr. Ben Salah",
            "attendees": [],
            "created_at": now_iso(),
            "demo": True,
        })

    for title, group in [("Les antibiotiques au comptoir", "CROP Tunis"), ("Conseil en phytothérapie", "PharmIA")]:
        await db.webinars.insert_one({
            "id": new_id(),
            "title": title,
            "description": "",
            "date": (now + timedelta(days=10)).isoformat(),
            "group": group,
            "master_class_theme": None,
            "price": None,
            "presenter": "",
            "attendees": [],
            "created_at": now_iso(),
            "demo": True,
        })
    print("  Created: 7 webinaires (dont 5 sessions Master Class)")


async def main():
    client = create_mongo_client()
    db = client[DB_NAME]

    await reset(db)
    if "--reset" in sys.argv:
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await seed(db)
        print(f"\nDemo data seeded. Password for all: {DEMO_PASSWORD}")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
