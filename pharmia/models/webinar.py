"""
PharmIA - Modèle Webinaire
group = classification (tarif), master_class_theme = clé de regroupement des sessions
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel


class WebinarGroup(str, Enum):
    CROP_TUNIS = "CROP Tunis"
    PHARMIA = "PharmIA"
    MASTER_CLASS = "Master Class"


class WebinarTimeSlot(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"
    PHARMIA_TUESDAY = "PHARMIA_TUESDAY"
    PHARMIA_FRIDAY = "PHARMIA_FRIDAY"


class WebinarCreate(BaseModel):
    title: str
    description: str = ""
    date: str
    group: WebinarGroup = WebinarGroup.CROP_TUNIS
    master_class_theme: Optional[str] = None
    price: Optional[float] = None
    presenter: str = ""
    image_url: Optional[str] = None


class WebinarUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    group: Optional[WebinarGroup] = None
    master_class_theme: Optional[str] = None
    price: Optional[float] = None
    presenter: Optional[str] = None
    image_url: Optional[str] = None


class AttendeeSlots(BaseModel):
    time_slots: List[WebinarTimeSlot] = []
