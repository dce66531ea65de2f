"""
PharmIA - Modèles Auth & Utilisateurs
Le rôle est fixé à la création; seul un ADMIN peut le modifier.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, validator


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    FORMATEUR = "FORMATEUR"
    PHARMACIEN = "PHARMACIEN"
    PREPARATEUR = "PREPARATEUR"
    APPRENANT = "APPRENANT"
    ADMIN_WEBINAR = "ADMIN_WEBINAR"


VALID_ROLES = [r.value for r in UserRole]

# Rôles ouverts à l'inscription publique
SELF_SERVICE_ROLES = [UserRole.APPRENANT.value, UserRole.PHARMACIEN.value, UserRole.PREPARATEUR.value]


class UserLogin(BaseModel):
    email: str
    password: str


class UserRegister(BaseModel):
    email: str
    password: str
    first_name: str = ""
    last_name: str = ""
    role: str = UserRole.APPRENANT.value
    pharmacist_id: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        if v not in SELF_SERVICE_ROLES:
            raise ValueError(f"Rôle invalide pour l'inscription: {v}")
        return v

    @validator("password")
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError("Le mot de passe doit contenir au moins 8 caractères")
        return v


class UserCreate(BaseModel):
    email: str
    password: str
    first_name: str = ""
    last_name: str = ""
    role: str = UserRole.APPRENANT.value
    pharmacist_id: Optional[str] = None
    group_id: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}. Valides: {VALID_ROLES}")
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    pharmacist_id: Optional[str] = None
    group_id: Optional[str] = None
    is_active: Optional[bool] = None

    @validator("role")
    def validate_role(cls, v):
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}")
        return v
