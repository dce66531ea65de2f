"""
PharmIA - Erreurs métier
Chaque erreur porte son code HTTP; le handler de server.py les convertit en réponse JSON.
"""


class PharmiaError(Exception):
    """Erreur métier de base"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(PharmiaError):
    """Identifiant mal formé, pack inconnu, champ obligatoire manquant"""
    status_code = 400


class ForbiddenError(PharmiaError):
    """Rôle ou propriété insuffisants"""
    status_code = 403


class NotFoundError(PharmiaError):
    status_code = 404


class ConflictError(PharmiaError):
    """Transition d'état invalide (ex: re-confirmation)"""
    status_code = 409
