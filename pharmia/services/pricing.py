"""
PharmIA - Grille tarifaire statique (TND, 3 décimales)

Master Class et webinaires PharmIA: prix HT + TVA, soumis au timbre fiscal.
Autres groupes (CROP Tunis, ...): prix forfaitaire TTC, sans timbre.
Packs: toujours HT + TVA, soumis au timbre.
"""

from typing import Optional, Dict, Any, Tuple

from pharmia.models.webinar import WebinarGroup

TAX_RATES = {
    "TVA": 0.19,
    "TIMBRE": 1.000,  # Timbre fiscal, une fois par commande
}

MASTER_CLASS_PRICE_HT = 100.000
PHARMIA_WEBINAR_PRICE_HT = 50.000
WEBINAR_PRICE = 80.000

MASTER_CLASS_PACKS: Dict[str, Dict[str, Any]] = {
    "MC_UNIT": {"name": "Master Class - 1 crédit", "credits": 1, "priceHT": 100.000},
    "MC_PACK_3": {"name": "Master Class - Pack 3 crédits", "credits": 3, "priceHT": 270.000},
    "MC_PACK_6": {"name": "Master Class - Pack 6 crédits", "credits": 6, "priceHT": 500.000},
}

PHARMIA_CREDIT_PACKS: Dict[str, Dict[str, Any]] = {
    "PHARMIA_PACK_5": {"name": "PharmIA - Pack 5 crédits", "credits": 5, "priceHT": 40.000},
    "PHARMIA_PACK_10": {"name": "PharmIA - Pack 10 crédits", "credits": 10, "priceHT": 75.000},
    "PHARMIA_PACK_20": {"name": "PharmIA - Pack 20 crédits", "credits": 20, "priceHT": 140.000},
}

# Catalogue -> champ de solde utilisateur crédité
CREDIT_FIELDS = {
    "master_class": "master_class_credits",
    "pharmia": "pharmia_credits",
}

TAXED_WEBINAR_GROUPS = {
    WebinarGroup.MASTER_CLASS.value: MASTER_CLASS_PRICE_HT,
    WebinarGroup.PHARMIA.value: PHARMIA_WEBINAR_PRICE_HT,
}


def round_tnd(amount: float) -> float:
    return round(amount, 3)


def with_vat(price_ht: float) -> float:
    return round_tnd(price_ht * (1 + TAX_RATES["TVA"]))


def price_webinar(webinar: dict) -> Tuple[float, bool]:
    """
    Prix TTC d'une inscription et indicateur de taxation.
    Returns: (prix, tax_applicable)
    """
    group = webinar.get("group")
    price = webinar.get("price")

    if group in TAXED_WEBINAR_GROUPS:
        price_ht = price if price is not None else TAXED_WEBINAR_GROUPS[group]
        return with_vat(price_ht), True

    return round_tnd(price if price is not None else WEBINAR_PRICE), False


def find_pack(pack_id: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Retourne (catalogue, pack) ou None si le pack n'existe dans aucun catalogue"""
    if pack_id in MASTER_CLASS_PACKS:
        return "master_class", MASTER_CLASS_PACKS[pack_id]
    if pack_id in PHARMIA_CREDIT_PACKS:
        return "pharmia", PHARMIA_CREDIT_PACKS[pack_id]
    return None


def price_pack(pack: Dict[str, Any]) -> float:
    return with_vat(pack["priceHT"])


def compute_total(line_total: float, tax_applicable: bool) -> Tuple[float, float]:
    """Ajoute le timbre fiscal une seule fois. Returns: (total, timbre)"""
    stamp = TAX_RATES["TIMBRE"] if tax_applicable else 0.0
    return round_tnd(line_total + stamp), stamp
