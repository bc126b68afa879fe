"""
Configuration de l'application, lue depuis l'environnement (et un éventuel fichier .env)
"""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Base de données
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./finance_tracker.db")

# Jetons de session
_DEFAULT_SECRET = "dev-secret-change-me"
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", _DEFAULT_SECRET)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(30 * 24 * 60)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Pagination
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# Exports
PDF_MAX_ROWS = int(os.getenv("PDF_MAX_ROWS", "50"))
PDF_FONT_PATH = os.getenv("PDF_FONT_PATH")
PDF_FONT_BOLD_PATH = os.getenv("PDF_FONT_BOLD_PATH")
CURRENCY_SUFFIX = os.getenv("CURRENCY_SUFFIX", "đ")

# Serveur
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Client
API_URL = os.getenv("API_URL", "http://127.0.0.1:8000")


def warn_if_default_secret():
    """Prévient si la clé de signature par défaut est utilisée"""
    if JWT_SECRET_KEY == _DEFAULT_SECRET:
        logger.warning("JWT_SECRET_KEY n'est pas configurée, utilisation de la clé de développement")
