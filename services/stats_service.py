from typing import List, Dict, Optional
from datetime import date, datetime

from sqlalchemy import func, extract
from sqlalchemy.orm import Session

from database.crud import apply_filters
from database.models import TransactionModel
from models.transaction import TransactionFilters
from services.errors import ValidationError
from services.transaction_service import check_date_range

TYPES = ('income', 'expense')


def _date_filters(start_date: Optional[date], end_date: Optional[date]) -> TransactionFilters:
    filters = TransactionFilters(start_date=start_date, end_date=end_date)
    check_date_range(filters)
    return filters


class StatsService:
    """
    Vues agrégées en lecture seule sur les transactions d'un utilisateur

    Les bornes de dates sont inclusives et chacune optionnelle.
    """

    def summary(self, db: Session, user_id: int, start_date: Optional[date] = None,
                end_date: Optional[date] = None) -> Dict:
        """Totaux revenus / dépenses, solde et nombre de transactions"""
        query = db.query(
            TransactionModel.type,
            func.sum(TransactionModel.amount),
            func.count(TransactionModel.id),
        )
        rows = apply_filters(query, user_id, _date_filters(start_date, end_date)) \
            .group_by(TransactionModel.type).all()

        totals = {t: 0.0 for t in TYPES}
        count = 0
        for kind, total, n in rows:
            totals[kind] = float(total or 0)
            count += n

        income = round(totals['income'], 2)
        expense = round(totals['expense'], 2)
        return {
            'income': income,
            'expense': expense,
            'balance': round(income - expense, 2),
            'totalTransactions': count,
        }

    def by_category(self, db: Session, user_id: int, start_date: Optional[date] = None,
                    end_date: Optional[date] = None) -> List[Dict]:
        """Totaux par couple (catégorie, type), du plus gros montant au plus petit"""
        total = func.sum(TransactionModel.amount).label('total')
        query = db.query(
            TransactionModel.category,
            TransactionModel.type,
            total,
            func.count(TransactionModel.id),
        )
        rows = (
            apply_filters(query, user_id, _date_filters(start_date, end_date))
            .group_by(TransactionModel.category, TransactionModel.type)
            .order_by(total.desc(), TransactionModel.category.asc(), TransactionModel.type.asc())
            .all()
        )
        return [
            {'category': category, 'type': kind, 'total': round(float(amount or 0), 2), 'count': n}
            for category, kind, amount, n in rows
        ]

    def by_month(self, db: Session, user_id: int, year: Optional[int] = None) -> List[Dict]:
        """
        Totaux par mois et par type pour une année

        Les 12 mois sont toujours présents pour chaque type (0 si aucune transaction),
        triés par mois puis revenus avant dépenses.
        """
        if year is None:
            year = datetime.now().year
        if year < 1 or year > 9999:
            raise ValidationError("Année invalide", errors=[{"field": "year", "message": "L'année doit être comprise entre 1 et 9999"}])

        month = extract('month', TransactionModel.date).label('month')
        query = db.query(
            month,
            TransactionModel.type,
            func.sum(TransactionModel.amount),
            func.count(TransactionModel.id),
        )
        rows = (
            apply_filters(query, user_id, _date_filters(date(year, 1, 1), date(year, 12, 31)))
            .group_by(month, TransactionModel.type)
            .all()
        )

        grouped = {(int(m), kind): (float(amount or 0), n) for m, kind, amount, n in rows}
        result = []
        for m in range(1, 13):
            for kind in TYPES:
                amount, n = grouped.get((m, kind), (0.0, 0))
                result.append({'month': m, 'type': kind, 'total': round(amount, 2), 'count': n})
        return result
