"""
PharmIA - Modèle MémoFiche (fiche de cas comptoir)
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel


class MemoFicheStatus(str, Enum):
    DRAFT = "Draft"
    IN_REVIEW = "InReview"
    PUBLISHED = "Published"


# Valeurs historiques considérées comme publiées
PUBLISHED_STATUSES = [MemoFicheStatus.PUBLISHED.value, "Publiée"]

# Champs visibles d'une fiche verrouillée (aperçu catalogue)
SUMMARY_FIELDS = [
    "id",
    "title",
    "short_description",
    "theme",
    "system",
    "cover_image_url",
    "is_free",
    "status",
    "creation_date",
]

# Sections de contenu renvoyées vides plutôt qu'absentes
LIST_SECTIONS = [
    "main_treatment",
    "associated_products",
    "lifestyle_advice",
    "dietary_advice",
]


class MemoFicheCreate(BaseModel):
    title: str
    short_description: str = ""
    theme: str = ""
    system: str = ""
    status: MemoFicheStatus = MemoFicheStatus.DRAFT
    is_free: bool = False
    cover_image_url: Optional[str] = None
    patient_situation: Optional[str] = ""
    main_treatment: List[str] = []
    associated_products: List[str] = []
    lifestyle_advice: List[str] = []
    dietary_advice: List[str] = []
    sections: List[Dict[str, Any]] = []


class MemoFicheUpdate(BaseModel):
    title: Optional[str] = None
    short_description: Optional[str] = None
    theme: Optional[str] = None
    system: Optional[str] = None
    status: Optional[MemoFicheStatus] = None
    is_free: Optional[bool] = None
    cover_image_url: Optional[str] = None
    patient_situation: Optional[str] = None
    main_treatment: Optional[List[str]] = None
    associated_products: Optional[List[str]] = None
    lifestyle_advice: Optional[List[str]] = None
    dietary_advice: Optional[List[str]] = None
    sections: Optional[List[Dict[str, Any]]] = None
