"""
PharmIA - Modèle Groupe (pharmacie: pharmaciens + préparateurs)
"""

from typing import Optional, List
from pydantic import BaseModel, validator


class GroupCreate(BaseModel):
    name: str
    pharmacist_ids: List[str]
    preparator_ids: List[str] = []

    @validator("pharmacist_ids")
    def validate_pharmacists(cls, v):
        if not v:
            raise ValueError("Un groupe doit contenir au moins un pharmacien")
        return v


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    pharmacist_ids: Optional[List[str]] = None
    preparator_ids: Optional[List[str]] = None

    @validator("pharmacist_ids")
    def validate_pharmacists(cls, v):
        if v is not None and not v:
            raise ValueError("Un groupe doit contenir au moins un pharmacien")
        return v


class AssignFiche(BaseModel):
    fiche_id: str
