"""
PharmIA - Routes Auth
Login / Register / Logout / Session / gestion des utilisateurs (ADMIN).
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import timedelta
from typing import Optional

from pharmia.config import (
    SESSION_DAYS,
    TRIAL_DAYS,
    generate_token,
    get_db,
    hash_password,
    is_valid_id,
    new_id,
    now_iso,
    now_utc,
)
from pharmia.models.auth import UserLogin, UserRegister, UserCreate, UserUpdate, UserRole
from pharmia.services.event_logger import log_event
from pharmia.services.group_membership import move_user_to_group
from pharmia.services.permissions import ADMIN_ROLES, require_roles
from pharmia.services.subscriptions import refresh_subscription_state

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

USER_PROJECTION = {"_id": 0, "password": 0}


# ==================== HELPERS ====================

async def _session_user(db, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[dict]:
    if not credentials:
        return None

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })
    if not session:
        return None

    return await db.users.find_one({"id": session["user_id"]}, USER_PROJECTION)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Non authentifié")

    user = await _session_user(db, credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Session expirée")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    return await refresh_subscription_state(db, user)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    """Comme get_current_user, mais None pour un visiteur anonyme ou une session invalide."""
    user = await _session_user(db, credentials)
    if not user or not user.get("is_active", True):
        return None
    return await refresh_subscription_state(db, user)


async def _validate_links(db, pharmacist_id: Optional[str], group_id: Optional[str]):
    if pharmacist_id:
        if not is_valid_id(pharmacist_id):
            raise HTTPException(status_code=400, detail="pharmacist_id invalide")
        pharmacist = await db.users.find_one({"id": pharmacist_id}, {"_id": 0, "role": 1})
        if not pharmacist or pharmacist.get("role") != UserRole.PHARMACIEN.value:
            raise HTTPException(status_code=400, detail="Pharmacien lié introuvable")
    if group_id:
        if not is_valid_id(group_id):
            raise HTTPException(status_code=400, detail="group_id invalide")
        if not await db.groups.find_one({"id": group_id}, {"_id": 0, "id": 1}):
            raise HTTPException(status_code=400, detail="Groupe introuvable")


def _new_user_doc(email: str, password: str, first_name: str, last_name: str, role: str, **extra) -> dict:
    now = now_utc()
    doc = {
        "id": new_id(),
        "email": email.lower().strip(),
        "password": hash_password(password),
        "first_name": first_name,
        "last_name": last_name,
        "role": role,
        "has_active_subscription": False,
        "subscription_end_date": None,
        "trial_expires_at": None,
        "pharmacist_id": None,
        "group_id": None,
        "master_class_credits": 0,
        "pharmia_credits": 0,
        "is_active": True,
        "created_at": now.isoformat(),
    }
    doc.update(extra)
    return doc


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, request: Request, db=Depends(get_db)):
    """Connexion utilisateur. Corrige un abonnement expiré avant de répondre."""
    user = await db.users.find_one({"email": data.email.lower().strip()}, {"_id": 0})

    if not user or user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    user.pop("password", None)
    user = await refresh_subscription_state(db, user)

    token = generate_token()
    expires_at = (now_utc() + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    await log_event(
        db,
        action="login",
        entity_type="user",
        entity_id=user["id"],
        user=user["email"],
        details={"ip_address": request.client.host if request.client else None}
    )

    return {"token": token, "user": user}


@router.post("/register", status_code=201)
async def register(data: UserRegister, db=Depends(get_db)):
    """Inscription publique avec période d'essai."""
    if await db.users.find_one({"email": data.email.lower().strip()}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=400, detail="Cet email existe déjà")

    await _validate_links(db, data.pharmacist_id, None)

    new_user = _new_user_doc(
        data.email, data.password, data.first_name, data.last_name, data.role,
        trial_expires_at=(now_utc() + timedelta(days=TRIAL_DAYS)).isoformat(),
        pharmacist_id=data.pharmacist_id,
    )
    await db.users.insert_one(new_user)

    new_user.pop("password", None)
    new_user.pop("_id", None)
    return {"success": True, "user": new_user}


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    return user


# ==================== USER CRUD (ADMIN) ====================

@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    query = {"role": role} if role else {}
    users = await db.users.find(query, USER_PROJECTION).to_list(1000)
    return {"users": users, "count": len(users)}


@router.post("/users", status_code=201)
async def create_user(
    data: UserCreate,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    if await db.users.find_one({"email": data.email.lower().strip()}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=400, detail="Cet email existe déjà")

    await _validate_links(db, data.pharmacist_id, data.group_id)

    new_user = _new_user_doc(
        data.email, data.password, data.first_name, data.last_name, data.role,
        pharmacist_id=data.pharmacist_id,
        group_id=data.group_id,
        created_by=user["id"],
    )
    await db.users.insert_one(new_user)
    if data.group_id:
        await move_user_to_group(db, new_user["id"], data.role, data.group_id)

    await log_event(
        db,
        action="create_user",
        entity_type="user",
        entity_id=new_user["id"],
        user=user["email"],
        details={"role": data.role}
    )

    new_user.pop("password", None)
    new_user.pop("_id", None)
    return {"success": True, "user": new_user}


@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    user: dict = Depends(require_roles(*ADMIN_ROLES)),
    db=Depends(get_db)
):
    if not is_valid_id(user_id):
        raise HTTPException(status_code=400, detail="ID utilisateur invalide")

    target = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    if not target:
        raise HTTPException(status_code=404, detail="Utilisateur non trouvé")

    update_data = data.model_dump(exclude_unset=True)
    await _validate_links(db, update_data.get("pharmacist_id"), update_data.get("group_id"))

    if update_data.get("pharmacist_id") == user_id:
        raise HTTPException(status_code=400, detail="Un utilisateur ne peut pas être son propre pharmacien")

    update_data["updated_at"] = now_iso()
    await db.users.update_one({"id": user_id}, {"$set": update_data})

    if "group_id" in update_data:
        await move_user_to_group(db, user_id, update_data.get("role") or target["role"], update_data["group_id"])

    await log_event(
        db,
        action="update_user",
        entity_type="user",
        entity_id=user_id,
        user=user["email"],
        details={k: v for k, v in update_data.items() if k != "updated_at"}
    )

    updated = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    return {"success": True, "user": updated}
