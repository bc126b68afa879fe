"""
Erreurs applicatives, converties en réponses JSON structurées par l'API
"""
from typing import Dict, List, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Erreur serveur"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AppError):
    status_code = 400
    default_message = "Données invalides"


class ConflictError(AppError):
    status_code = 400
    default_message = "Ressource déjà existante"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Non authentifié"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Accès refusé"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Ressource non trouvée"


class ServerError(AppError):
    status_code = 500


def field_errors(pydantic_errors) -> List[Dict]:
    """
    Convertit les erreurs pydantic en liste [{field, message}]

    Accepte la sortie de ``ValidationError.errors()`` (pydantic ou FastAPI).
    """
    result = []
    for err in pydantic_errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        message = err.get("msg", "Valeur invalide")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        result.append({"field": ".".join(loc) or None, "message": message})
    return result
