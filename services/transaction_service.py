"""
Service des transactions : opérations limitées au propriétaire, validation et pagination
"""
import math
import logging
from typing import Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

import config
from database import crud
from database.models import UserModel, TransactionModel
from models.transaction import TransactionCreate, TransactionUpdate, TransactionFilters
from services.errors import ValidationError, NotFoundError, AuthorizationError, field_errors

logger = logging.getLogger(__name__)


def parse_fields(model, data: Union[Dict, object]):
    """Valide un dict avec le schéma pydantic donné et lève une ValidationError applicative"""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Données de transaction invalides", errors=field_errors(e.errors()))


def parse_sort(sort: Optional[str]) -> str:
    sort = (sort or '-date').strip()
    if sort.lstrip('-') not in crud.SORT_COLUMNS:
        raise ValidationError(
            "Clé de tri invalide",
            errors=[{"field": "sort", "message": f"Valeurs acceptées: {', '.join(crud.SORT_COLUMNS)} (préfixe '-' pour décroissant)"}]
        )
    return sort


def check_date_range(filters: Optional[TransactionFilters]):
    if filters and filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise ValidationError(
            "Période invalide",
            errors=[{"field": "endDate", "message": "La date de fin doit être postérieure à la date de début"}]
        )


class TransactionService:
    """Opérations sur les transactions d'un utilisateur"""

    def create(self, db: Session, user: UserModel, fields) -> TransactionModel:
        data = parse_fields(TransactionCreate, fields)
        transaction = crud.create_transaction(db, user.id, data)
        logger.debug(f"Transaction {transaction.id} créée pour l'utilisateur {user.id}")
        return transaction

    def list(
        self,
        db: Session,
        user: UserModel,
        filters: Optional[TransactionFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
    ) -> Dict:
        """
        Retourne une page de transactions

        Returns:
            dict avec 'data', 'count', 'total', 'page' et 'pages'
        """
        limit = limit or config.PAGE_SIZE
        if page < 1:
            raise ValidationError("Page invalide", errors=[{"field": "page", "message": "La page doit être >= 1"}])
        if limit < 1 or limit > config.MAX_PAGE_SIZE:
            raise ValidationError(
                "Limite invalide",
                errors=[{"field": "limit", "message": f"La limite doit être comprise entre 1 et {config.MAX_PAGE_SIZE}"}]
            )
        sort = parse_sort(sort)
        check_date_range(filters)

        total = crud.count_transactions(db, user.id, filters)
        rows = crud.get_transactions(db, user.id, filters, sort=sort, offset=(page - 1) * limit, limit=limit)
        return {
            'data': rows,
            'count': len(rows),
            'total': total,
            'page': page,
            'pages': math.ceil(total / limit),
        }

    def all(self, db: Session, user: UserModel, filters: Optional[TransactionFilters] = None,
            sort: Optional[str] = None, limit: Optional[int] = None):
        """Toutes les transactions filtrées (utilisé par les exports)"""
        check_date_range(filters)
        return crud.get_transactions(db, user.id, filters, sort=parse_sort(sort), limit=limit)

    def get(self, db: Session, user: UserModel, transaction_id: int) -> TransactionModel:
        transaction = crud.get_transaction_by_id(db, transaction_id)
        if not transaction or transaction.user_id != user.id:
            raise NotFoundError("Transaction non trouvée")
        return transaction

    def update(self, db: Session, user: UserModel, transaction_id: int, fields) -> TransactionModel:
        changes = parse_fields(TransactionUpdate, fields)
        transaction = crud.get_transaction_by_id(db, transaction_id)
        if not transaction:
            raise NotFoundError("Transaction non trouvée")
        if transaction.user_id != user.id:
            logger.warning(f"Utilisateur {user.id} a tenté de modifier la transaction {transaction_id}")
            raise AuthorizationError("Vous n'êtes pas autorisé à modifier cette transaction")
        return crud.update_transaction(db, transaction, changes)

    def delete(self, db: Session, user: UserModel, transaction_id: int):
        transaction = self.get(db, user, transaction_id)
        crud.delete_transaction(db, transaction)
        logger.debug(f"Transaction {transaction_id} supprimée par l'utilisateur {user.id}")

    def categories(self, db: Session, user: UserModel):
        return crud.get_categories(db, user.id)
