"""
Configuration et utilitaires partagés
"""

import os
import uuid
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional, Any
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'pharmia')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

SESSION_DAYS = int(os.environ.get('SESSION_DAYS', '7'))
TRIAL_DAYS = int(os.environ.get('TRIAL_DAYS', '7'))

ENABLE_SCHEDULER = os.environ.get('ENABLE_SCHEDULER', 'false').lower() in ('1', 'true', 'yes')


def create_mongo_client(url: str = MONGO_URL) -> AsyncIOMotorClient:
    """Crée le client MongoDB (le cycle de vie appartient à l'application)"""
    return AsyncIOMotorClient(url)


def get_db(request: Request):
    """Dépendance FastAPI: handle de la base attaché à l'application"""
    return request.app.state.db


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def new_id() -> str:
    return str(uuid.uuid4())

def is_valid_id(value: Any) -> bool:
    """True si value est un identifiant uuid bien formé"""
    if not isinstance(value, str) or not value:
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return now_utc().isoformat()

def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Convertit une date stockée (ISO ou datetime) en datetime UTC aware.
    Retourne None si absente ou illisible.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
