"""
Service d'authentification : hachage des mots de passe (bcrypt) et jetons de session (JWT)
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session

import config
from database.crud import create_user, get_user_by_email, get_user_by_id, update_user
from database.models import UserModel
from models.user import UserRegister, UserLogin, ProfileUpdate, PasswordUpdate
from services.errors import AuthenticationError, ConflictError, ValidationError

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Hash corrompu ou dans un format inconnu
        return False


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Émet un jeton signé contenant l'identité de l'utilisateur et une expiration"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=config.JWT_EXPIRE_MINUTES))
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """
    Vérifie un jeton et retourne l'ID utilisateur

    Raises:
        AuthenticationError: jeton invalide, expiré ou sans identité
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Jeton refusé: {str(e)}")
        raise AuthenticationError("Session invalide ou expirée, veuillez vous reconnecter")
    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Session invalide ou expirée, veuillez vous reconnecter")


class AuthService:
    """Inscription, connexion et gestion du profil"""

    def register(self, db: Session, data: UserRegister) -> UserModel:
        if get_user_by_email(db, data.email):
            raise ConflictError("Cet e-mail est déjà utilisé",
                                errors=[{"field": "email", "message": "Cet e-mail est déjà utilisé"}])
        user = create_user(db, data.name, data.email, hash_password(data.password))
        logger.info(f"Nouvel utilisateur inscrit: {user.id}")
        return user

    def login(self, db: Session, data: UserLogin) -> UserModel:
        user = get_user_by_email(db, data.email)
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning(f"Échec de connexion pour {data.email}")
            raise AuthenticationError("E-mail ou mot de passe incorrect")
        return user

    def user_from_token(self, db: Session, token: Optional[str]) -> UserModel:
        if not token:
            raise AuthenticationError("Authentification requise")
        user = get_user_by_id(db, decode_access_token(token))
        if not user:
            raise AuthenticationError("Utilisateur introuvable pour cette session")
        return user

    def update_profile(self, db: Session, user: UserModel, data: ProfileUpdate) -> UserModel:
        if data.email and data.email != user.email:
            existing = get_user_by_email(db, data.email)
            if existing and existing.id != user.id:
                raise ConflictError("Cet e-mail est déjà utilisé",
                                    errors=[{"field": "email", "message": "Cet e-mail est déjà utilisé"}])
        return update_user(db, user, name=data.name, email=data.email)

    def update_password(self, db: Session, user: UserModel, data: PasswordUpdate) -> UserModel:
        if not verify_password(data.currentPassword, user.password_hash):
            raise ValidationError("Mot de passe actuel incorrect",
                                  errors=[{"field": "currentPassword", "message": "Mot de passe actuel incorrect"}])
        return update_user(db, user, password_hash=hash_password(data.newPassword))
