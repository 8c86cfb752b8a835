"""
Firebase Realtime Database connector for the shared vehicle store and audit history.
"""

from typing import Any, Dict, Iterable, List, Optional

from ..models import AuditOutcome, ReportFilter, VehicleRecord
from ..processors.audit_history import matches_filter
from .base_connector import BaseAsyncConnector
from .datastore import VehicleDatastore


class FirebaseConnector(BaseAsyncConnector, VehicleDatastore):
    """
    Async connector for the Firebase REST API.

    Vehicles live under ``/vehicles`` as a list that is replaced on every
    save (last flush wins). Outcomes are pushed under ``/outcomes``; push ids
    sort chronologically.
    """

    def __init__(
        self,
        database_url: str,
        auth_token: Optional[str] = None,
        vehicles_path: str = "vehicles",
        outcomes_path: str = "outcomes",
        verify_ssl: bool = True,
        max_concurrent_requests: int = 5,
        timeout: int = 30,
        max_retries: int = 3,
        initial_delay: float = 1,
        backoff_multiplier: float = 2,
        max_delay: float = 60
    ):
        super().__init__(
            base_url=database_url,
            max_concurrent_requests=max_concurrent_requests,
            timeout=timeout,
            max_retries=max_retries,
            initial_delay=initial_delay,
            backoff_multiplier=backoff_multiplier,
            max_delay=max_delay,
            verify_ssl=verify_ssl
        )

        self.auth_token = auth_token
        self.vehicles_path = vehicles_path.strip('/')
        self.outcomes_path = outcomes_path.strip('/')

    def _get_auth_headers(self) -> Dict[str, str]:
        """Firebase authenticates with a query parameter, not a header."""
        return {
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}.json"

    def _params(self) -> Dict[str, str]:
        return {'auth': self.auth_token} if self.auth_token else {}

    async def test_connection(self) -> bool:
        """Test connection to the database."""
        try:
            await self._request_with_retry(
                'testConnection',
                'GET',
                self._url(self.vehicles_path),
                params={**self._params(), 'shallow': 'true'}
            )
            return True
        except Exception as e:
            self.logger.error(f"Connection test failed: {e}")
            return False

    async def load_vehicles(self) -> List[VehicleRecord]:
        response = await self._request_with_retry(
            'loadVehicles',
            'GET',
            self._url(self.vehicles_path),
            params=self._params()
        )

        records = [VehicleRecord.from_dict(item) for item in _node_items(response)]
        self.logger.info(f"Loaded {len(records)} vehicle record(s)")
        return records

    async def save_vehicles(self, records: Iterable[VehicleRecord]) -> None:
        payload = [record.to_dict() for record in records]
        await self._request_with_retry(
            'saveVehicles',
            'PUT',
            self._url(self.vehicles_path),
            params=self._params(),
            json=payload
        )
        self.logger.info(f"Saved {len(payload)} vehicle record(s)")

    async def append_outcome(self, outcome: AuditOutcome) -> None:
        await self._request_with_retry(
            'appendOutcome',
            'POST',
            self._url(self.outcomes_path),
            params=self._params(),
            json=outcome.to_dict()
        )

    async def load_outcomes(
        self,
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> List[AuditOutcome]:
        response = await self._request_with_retry(
            'loadOutcomes',
            'GET',
            self._url(self.outcomes_path),
            params=self._params()
        )

        outcomes = [AuditOutcome.from_dict(item) for item in _node_items(response)]
        return [o for o in outcomes if matches_filter(o, report_filter)]

    async def close(self) -> None:
        await self._close_session()


def _node_items(node: Any) -> List[Dict[str, Any]]:
    """Children of a Firebase node, which may come back as a list or a keyed object."""
    if not node:
        return []
    if isinstance(node, dict):
        return [node[key] for key in sorted(node) if isinstance(node[key], dict)]
    return [item for item in node if isinstance(item, dict)]


def create_firebase_connector(config) -> FirebaseConnector:
    """Factory function to create a Firebase connector from config."""
    return FirebaseConnector(
        database_url=config.datastore.database_url,
        auth_token=config.datastore.auth_token,
        vehicles_path=config.datastore.vehicles_path,
        outcomes_path=config.datastore.outcomes_path,
        verify_ssl=config.datastore.verify_ssl,
        max_concurrent_requests=config.datastore.max_concurrent_requests,
        timeout=config.datastore.timeout,
        max_retries=config.retry.max_attempts,
        initial_delay=config.retry.initial_delay,
        backoff_multiplier=config.retry.backoff_multiplier,
        max_delay=config.retry.max_delay
    )
