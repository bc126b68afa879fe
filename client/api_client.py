"""
Client HTTP de l'API de gestion des finances
"""
import logging
from typing import Callable, Dict, List, Optional

import requests

import config

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Erreur retournée par l'API (ou serveur injoignable)"""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class SessionExpiredError(ApiError):
    """Jeton absent, invalide ou expiré (HTTP 401)"""


def clean_params(params: Optional[Dict]) -> Dict:
    """Retire les filtres vides ou 'all' des paramètres de requête"""
    if not params:
        return {}
    return {k: v for k, v in params.items() if v not in (None, '', 'all')}


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        session=None,
        timeout: int = 30,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ):
        self.base_url = (config.API_URL if base_url is None else base_url).rstrip('/')
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.on_unauthorized = on_unauthorized

    def _request(self, method: str, path: str, params: Optional[Dict] = None, json: Optional[Dict] = None,
                 raw: bool = False, authenticated: bool = True):
        headers = {}
        if authenticated and self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        url = f"{self.base_url}/api{path}"

        try:
            response = self.session.request(
                method, url, params=clean_params(params), json=json, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Serveur injoignable ({method} {path}): {str(e)}")
            raise ApiError("Impossible de contacter le serveur")

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get('message') or f"Erreur HTTP {response.status_code}"
            if response.status_code == 401 and authenticated:
                if self.on_unauthorized:
                    self.on_unauthorized()
                raise SessionExpiredError(message, 401)
            raise ApiError(message, response.status_code, body.get('errors'))

        return response.content if raw else response.json()

    # Auth
    def register(self, name: str, email: str, password: str) -> Dict:
        data = self._request('POST', '/auth/register', json={'name': name, 'email': email, 'password': password},
                             authenticated=False)
        self.token = data['token']
        return data

    def login(self, email: str, password: str) -> Dict:
        data = self._request('POST', '/auth/login', json={'email': email, 'password': password},
                             authenticated=False)
        self.token = data['token']
        return data

    def me(self) -> Dict:
        return self._request('GET', '/auth/me')['data']

    def logout(self):
        try:
            self._request('POST', '/auth/logout')
        finally:
            self.token = None

    def update_profile(self, name: Optional[str] = None, email: Optional[str] = None) -> Dict:
        payload = {k: v for k, v in (('name', name), ('email', email)) if v is not None}
        return self._request('PUT', '/auth/updateprofile', json=payload)['data']

    def update_password(self, current_password: str, new_password: str) -> Dict:
        data = self._request('PUT', '/auth/updatepassword',
                             json={'currentPassword': current_password, 'newPassword': new_password})
        self.token = data['token']
        return data

    # Transactions
    def list_transactions(self, page: int = 1, limit: Optional[int] = None, sort: str = '-date',
                          filters: Optional[Dict] = None) -> Dict:
        params = dict(clean_params(filters), page=page, sort=sort)
        if limit:
            params['limit'] = limit
        return self._request('GET', '/transactions', params=params)

    def create_transaction(self, fields: Dict) -> Dict:
        return self._request('POST', '/transactions', json=fields)['data']

    def get_transaction(self, transaction_id: int) -> Dict:
        return self._request('GET', f'/transactions/{transaction_id}')['data']

    def update_transaction(self, transaction_id: int, fields: Dict) -> Dict:
        return self._request('PUT', f'/transactions/{transaction_id}', json=fields)['data']

    def delete_transaction(self, transaction_id: int):
        self._request('DELETE', f'/transactions/{transaction_id}')

    def categories(self) -> List[str]:
        return self._request('GET', '/transactions/categories')['data']

    # Statistiques
    def stats_summary(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict:
        return self._request('GET', '/transactions/stats/summary',
                             params={'startDate': start_date, 'endDate': end_date})['data']

    def stats_by_category(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[Dict]:
        return self._request('GET', '/transactions/stats/category',
                             params={'startDate': start_date, 'endDate': end_date})['data']

    def stats_monthly(self, year: Optional[int] = None) -> List[Dict]:
        return self._request('GET', '/transactions/stats/monthly', params={'year': year})['data']

    # Exports
    def export_pdf(self, filters: Optional[Dict] = None) -> bytes:
        return self._request('GET', '/export/pdf', params=filters, raw=True)

    def export_excel(self, filters: Optional[Dict] = None) -> bytes:
        return self._request('GET', '/export/excel', params=filters, raw=True)
