from sqlalchemy import or_, func
from sqlalchemy.orm import Session
from database.models import UserModel, TransactionModel
from models.transaction import TransactionCreate, TransactionUpdate, TransactionFilters
from datetime import datetime
from typing import Optional

# Clés de tri acceptées par l'API -> colonnes
SORT_COLUMNS = {
    'date': TransactionModel.date,
    'amount': TransactionModel.amount,
    'category': TransactionModel.category,
    'type': TransactionModel.type,
    'createdAt': TransactionModel.created_at,
}


# User CRUD functions
def create_user(db: Session, name: str, email: str, password_hash: str, role: str = "user"):
    """Crée un nouvel utilisateur"""
    db_user = UserModel(name=name, email=email, password_hash=password_hash, role=role)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def get_user_by_id(db: Session, user_id: int):
    """Récupère un utilisateur par son ID"""
    return db.query(UserModel).filter(UserModel.id == user_id).first()

def get_user_by_email(db: Session, email: str):
    """Récupère un utilisateur par son e-mail"""
    return db.query(UserModel).filter(UserModel.email == email).first()

def update_user(db: Session, user: UserModel, **fields):
    """Met à jour les champs fournis d'un utilisateur"""
    for key, value in fields.items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user

def delete_user(db: Session, user: UserModel):
    """Supprime un utilisateur et ses transactions"""
    db.delete(user)
    db.commit()


# Transaction CRUD functions
def create_transaction(db: Session, user_id: int, transaction: TransactionCreate):
    """Crée une nouvelle transaction pour un utilisateur"""
    now = datetime.utcnow()
    db_transaction = TransactionModel(
        user_id=user_id,
        type=transaction.type,
        category=transaction.category,
        amount=transaction.amount,
        description=transaction.description,
        date=transaction.date,
        tags=list(transaction.tags),
        attachments=[a.model_dump() for a in transaction.attachments],
        created_at=now,
        updated_at=now,
    )
    db.add(db_transaction)
    db.commit()
    db.refresh(db_transaction)
    return db_transaction

def get_transaction_by_id(db: Session, transaction_id: int):
    """Récupère une transaction par son ID (sans contrôle du propriétaire)"""
    return db.query(TransactionModel).filter(TransactionModel.id == transaction_id).first()

def apply_filters(query, user_id: int, filters: Optional[TransactionFilters] = None):
    """Restreint une requête aux transactions de l'utilisateur correspondant aux filtres"""
    query = query.filter(TransactionModel.user_id == user_id)
    if filters is None:
        return query
    if filters.type:
        query = query.filter(TransactionModel.type == filters.type)
    if filters.category:
        query = query.filter(TransactionModel.category == filters.category)
    if filters.start_date:
        query = query.filter(TransactionModel.date >= filters.start_date)
    if filters.end_date:
        query = query.filter(TransactionModel.date <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(or_(
            TransactionModel.description.ilike(pattern),
            TransactionModel.category.ilike(pattern),
        ))
    return query

def order_by_sort_key(query, sort: str):
    """Trie selon une clé 'champ' ou '-champ', l'ID départage les égalités"""
    descending = sort.startswith('-')
    column = SORT_COLUMNS[sort.lstrip('-')]
    if descending:
        return query.order_by(column.desc(), TransactionModel.id.desc())
    return query.order_by(column.asc(), TransactionModel.id.desc())

def count_transactions(db: Session, user_id: int, filters: Optional[TransactionFilters] = None) -> int:
    """Compte les transactions correspondant aux filtres"""
    return apply_filters(db.query(TransactionModel), user_id, filters).count()

def get_transactions(
    db: Session,
    user_id: int,
    filters: Optional[TransactionFilters] = None,
    sort: str = '-date',
    offset: int = 0,
    limit: Optional[int] = None,
):
    """Récupère les transactions filtrées, triées et éventuellement paginées"""
    query = order_by_sort_key(apply_filters(db.query(TransactionModel), user_id, filters), sort)
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all()

def get_categories(db: Session, user_id: int):
    """Liste les catégories distinctes utilisées par un utilisateur"""
    rows = (
        db.query(TransactionModel.category)
        .filter(TransactionModel.user_id == user_id)
        .distinct()
        .order_by(func.lower(TransactionModel.category))
        .all()
    )
    return [r[0] for r in rows]

def update_transaction(db: Session, transaction: TransactionModel, changes: TransactionUpdate):
    """Applique une mise à jour partielle et rafraîchit updated_at"""
    data = changes.model_dump(exclude_unset=True)
    for key, value in data.items():
        if key == 'tags':
            value = list(value or [])
        elif key == 'attachments':
            value = [dict(a) for a in (value or [])]
        setattr(transaction, key, value)
    transaction.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(transaction)
    return transaction

def delete_transaction(db: Session, transaction: TransactionModel):
    """Supprime une transaction"""
    db.delete(transaction)
    db.commit()
    return True
