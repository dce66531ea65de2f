"""
PharmIA - Modèle Commande
Panier hétérogène: inscriptions webinaire (webinar_id + créneaux) ou packs de crédits (pack_id).
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, validator, model_validator

from .webinar import WebinarTimeSlot


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    CONFIRMED = "CONFIRMED"


class AttendeeStatus(str, Enum):
    PENDING = "PENDING"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    CONFIRMED = "CONFIRMED"


class OrderItemType(str, Enum):
    WEBINAR = "WEBINAR"
    PACK = "PACK"


class CheckoutItem(BaseModel):
    """Un article: soit webinar_id, soit pack_id"""
    type: Optional[OrderItemType] = None
    webinar_id: Optional[str] = None
    pack_id: Optional[str] = None
    slots: List[WebinarTimeSlot] = []

    @model_validator(mode="after")
    def validate_reference(self):
        if bool(self.webinar_id) == bool(self.pack_id):
            raise ValueError("Chaque article doit référencer un webinar_id ou un pack_id")
        if self.type is not None and self.type != self.item_type:
            raise ValueError(f"Type d'article incohérent: {self.type.value}")
        return self

    @property
    def item_type(self) -> OrderItemType:
        return OrderItemType.WEBINAR if self.webinar_id else OrderItemType.PACK


class CheckoutRequest(BaseModel):
    items: List[CheckoutItem]


class SubmitPaymentRequest(BaseModel):
    proof_url: str

    @validator("proof_url")
    def validate_proof(cls, v):
        if not v or not v.strip():
            raise ValueError("La preuve de paiement est obligatoire")
        return v.strip()
