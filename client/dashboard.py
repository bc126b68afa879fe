"""
État local du tableau de bord client

Garde les filtres, la page courante et les dernières données reçues. Chaque changement
de filtre, de tri ou de page recharge la page de transactions et les statistiques en
parallèle ; les réponses d'un rechargement dépassé par un plus récent sont ignorées.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from client.api_client import ApiClient, ApiError, SessionExpiredError
from client.token_store import TokenStore

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SECONDS = 0.5

DEFAULT_FILTERS = {
    'type': 'all',
    'category': 'all',
    'startDate': '',
    'endDate': '',
    'search': '',
    'sort': '-date',
}


def default_notify(message: str, level: str = 'success'):
    if level == 'error':
        logger.error(message)
    else:
        logger.info(message)


class Dashboard:
    def __init__(
        self,
        api: ApiClient,
        token_store: Optional[TokenStore] = None,
        notify: Optional[Callable[[str, str], None]] = None,
        debounce_delay: float = SEARCH_DEBOUNCE_SECONDS,
        max_workers: int = 4,
    ):
        self.api = api
        self.token_store = token_store or TokenStore()
        self.notify = notify or default_notify
        self.debounce_delay = debounce_delay

        self.view = 'auth'  # 'auth' ou 'app'
        self.user: Optional[Dict] = None
        self.filters = dict(DEFAULT_FILTERS)
        self.page = 1
        self.pages = 0
        self.total = 0
        self.transactions: List[Dict] = []
        self.summary: Optional[Dict] = None
        self.by_category: List[Dict] = []
        self.monthly: List[Dict] = []

        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._lock = threading.Lock()
        self._generation = 0
        self._search_timer: Optional[threading.Timer] = None

    # Session
    def start(self) -> bool:
        """Restaure la session enregistrée, si elle est encore valide"""
        token = self.token_store.load()
        if not token:
            self.view = 'auth'
            return False
        self.api.token = token
        try:
            self.user = self.api.me()
        except ApiError:
            self.token_store.clear()
            self.api.token = None
            self.view = 'auth'
            return False
        self._show_app()
        return True

    def login(self, email: str, password: str) -> bool:
        try:
            data = self.api.login(email, password)
        except ApiError as e:
            self.notify(e.message, 'error')
            return False
        self._open_session(data)
        return True

    def register(self, name: str, email: str, password: str, confirm_password: Optional[str] = None) -> bool:
        if confirm_password is not None and password != confirm_password:
            self.notify('Les mots de passe ne correspondent pas', 'error')
            return False
        try:
            data = self.api.register(name, email, password)
        except ApiError as e:
            self.notify(e.message, 'error')
            return False
        self._open_session(data)
        return True

    def logout(self, message: str = 'Déconnexion réussie', level: str = 'success'):
        self._cancel_search()
        with self._lock:
            self._generation += 1
        self.token_store.clear()
        self.api.token = None
        self.user = None
        self.view = 'auth'
        self.filters = dict(DEFAULT_FILTERS)
        self.page, self.pages, self.total = 1, 0, 0
        self.transactions, self.summary, self.by_category, self.monthly = [], None, [], []
        self.notify(message, level)

    def _session_expired(self):
        self.logout('Session expirée, veuillez vous reconnecter', 'error')

    def _open_session(self, data: Dict):
        self.token_store.save(data['token'])
        self.user = data['user']
        self.notify(data.get('message', 'Connexion réussie'), 'success')
        self._show_app()

    def _show_app(self):
        self.view = 'app'
        self.refresh(1)

    # Chargement des données
    def refresh(self, page: Optional[int] = None) -> bool:
        """
        Recharge la page de transactions et les statistiques en parallèle

        Returns:
            True si les données reçues ont été appliquées, False si la requête a échoué
            ou a été dépassée par un rechargement plus récent
        """
        try:
            year = self._chart_year()
        except ValueError:
            self.notify(f"Date de début invalide: {self.filters['startDate']}", 'error')
            return False
        with self._lock:
            self._generation += 1
            generation = self._generation
        page = page or self.page
        filters = self._query_filters()
        date_range = (filters.get('startDate'), filters.get('endDate'))

        futures = {
            'page': self._executor.submit(
                self.api.list_transactions, page=page, sort=self.filters['sort'], filters=filters
            ),
            'summary': self._executor.submit(self.api.stats_summary, *date_range),
            'by_category': self._executor.submit(self.api.stats_by_category, *date_range),
            'monthly': self._executor.submit(self.api.stats_monthly, year),
        }
        try:
            results = {name: future.result() for name, future in futures.items()}
        except SessionExpiredError:
            self._session_expired()
            return False
        except ApiError as e:
            self.notify(e.message, 'error')
            return False

        with self._lock:
            if generation != self._generation:
                logger.debug(f"Réponse obsolète ignorée (génération {generation})")
                return False
            listing = results['page']
            self.transactions = listing['data']
            self.page = listing['page']
            self.pages = listing['pages']
            self.total = listing['total']
            self.summary = results['summary']
            self.by_category = results['by_category']
            self.monthly = results['monthly']
        return True

    def _query_filters(self) -> Dict:
        return {k: v for k, v in self.filters.items() if k != 'sort'}

    def _chart_year(self) -> int:
        start = self.filters.get('startDate')
        if start:
            return datetime.strptime(start, '%Y-%m-%d').year
        return datetime.now().year

    # Filtres, tri, pagination
    def set_filters(self, **filters) -> bool:
        unknown = set(filters) - set(DEFAULT_FILTERS)
        if unknown:
            raise ValueError(f"Filtres inconnus: {', '.join(sorted(unknown))}")
        self.filters.update({k: (v if v is not None else DEFAULT_FILTERS[k]) for k, v in filters.items()})
        return self.refresh(1)

    def reset_filters(self) -> bool:
        self._cancel_search()
        self.filters = dict(DEFAULT_FILTERS)
        return self.refresh(1)

    def set_sort(self, sort: str) -> bool:
        self.filters['sort'] = sort
        return self.refresh(self.page)

    def change_page(self, page: int) -> bool:
        if page < 1 or page > self.pages:
            return False
        return self.refresh(page)

    def search(self, text: str):
        """Recherche différée : seules les frappes suivies d'une pause déclenchent une requête"""
        self._cancel_search()
        self._search_timer = threading.Timer(self.debounce_delay, self._apply_search, args=(text,))
        self._search_timer.daemon = True
        self._search_timer.start()

    def _apply_search(self, text: str):
        self.filters['search'] = text
        self.refresh(1)

    def _cancel_search(self):
        if self._search_timer is not None:
            self._search_timer.cancel()
            self._search_timer = None

    # Transactions
    def save_transaction(self, fields: Dict, transaction_id: Optional[int] = None) -> Optional[Dict]:
        """Crée une transaction, ou la met à jour si transaction_id est fourni"""
        try:
            if transaction_id:
                saved = self.api.update_transaction(transaction_id, fields)
                self.notify('Transaction mise à jour', 'success')
            else:
                saved = self.api.create_transaction(fields)
                self.notify('Transaction ajoutée', 'success')
        except SessionExpiredError:
            self._session_expired()
            return None
        except ApiError as e:
            self.notify(e.message, 'error')
            return None
        self.refresh(self.page)
        return saved

    def load_transaction(self, transaction_id: int) -> Optional[Dict]:
        try:
            return self.api.get_transaction(transaction_id)
        except SessionExpiredError:
            self._session_expired()
        except ApiError as e:
            self.notify(e.message, 'error')
        return None

    def delete_transaction(self, transaction_id: int) -> bool:
        try:
            self.api.delete_transaction(transaction_id)
        except SessionExpiredError:
            self._session_expired()
            return False
        except ApiError as e:
            self.notify(e.message, 'error')
            return False
        self.notify('Transaction supprimée', 'success')
        # Dernière ligne de la dernière page supprimée : revenir à la page précédente
        page = self.page - 1 if len(self.transactions) == 1 and self.page > 1 else self.page
        self.refresh(page)
        return True

    # Graphiques
    def monthly_series(self) -> Dict[str, List[float]]:
        """Revenus et dépenses sur 12 mois, complétés par des zéros"""
        series = {'income': [0.0] * 12, 'expense': [0.0] * 12}
        for item in self.monthly:
            if item['type'] in series and 1 <= item['month'] <= 12:
                series[item['type']][item['month'] - 1] = item['total']
        return series

    def expense_by_category(self) -> List[Dict]:
        return [item for item in self.by_category if item['type'] == 'expense']

    # Exports
    def export_pdf(self, path) -> Optional[Path]:
        return self._export(self.api.export_pdf, path, 'PDF')

    def export_excel(self, path) -> Optional[Path]:
        return self._export(self.api.export_excel, path, 'Excel')

    def _export(self, download, path, label: str) -> Optional[Path]:
        filters = {k: self.filters[k] for k in ('type', 'category', 'startDate', 'endDate', 'search')}
        try:
            content = download(filters)
        except SessionExpiredError:
            self._session_expired()
            return None
        except ApiError as e:
            self.notify(f"Impossible d'exporter en {label}: {e.message}", 'error')
            return None
        path = Path(path)
        path.write_bytes(content)
        self.notify(f"Export {label} réussi", 'success')
        return path

    def close(self):
        self._cancel_search()
        self._executor.shutdown(wait=True)
