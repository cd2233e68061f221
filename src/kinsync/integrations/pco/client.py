"""Planning Center People API client."""

import logging
from typing import Any, Dict, Optional

from ...core.models import Collection, Document, Page
from ...exceptions import PermanentTransportError, PlanningCenterAPIError
from ...models.config import HttpSettings, PlanningCenterSettings
from ..transport import HttpTransport

logger = logging.getLogger(__name__)


class PlanningCenterClient:
    """Client for the Planning Center People v2 JSON:API."""

    def __init__(self, settings: PlanningCenterSettings, transport: Optional[HttpTransport] = None,
                 http: Optional[HttpSettings] = None):
        """Initialize the Planning Center client.

        Args:
            settings: Credentials and base URL
            transport: Optional pre-built transport (mainly for tests)
            http: Retry and timeout settings used when building the transport
        """
        self.base_url = settings.base_url.rstrip('/')
        self.page_size = settings.page_size
        http = http or HttpSettings()
        self.transport = transport or HttpTransport(
            retries=http.retries,
            backoff_ms=http.backoff_ms,
            timeout=http.timeout_seconds,
            auth=(settings.app_id, settings.secret),
        )

    def _make_request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                      data: Optional[Dict[str, Any]] = None) -> Any:
        """Make a request to the Planning Center API.

        Raises:
            PlanningCenterAPIError: If the API request fails
        """
        if not url.startswith("http"):
            url = f"{self.base_url}{url}"
        try:
            return self.transport.request(method, url, params=params, json=data)
        except PermanentTransportError as e:
            logger.error(f"Planning Center API request failed: {e}")
            raise PlanningCenterAPIError(str(e)) from e

    def test_connection(self) -> Page:
        """Fetch a single person to prove credentials and connectivity."""
        data = self._make_request('GET', '/people', params={'per_page': 1})
        return Page(**(data or {}))

    def list_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> Collection:
        """Fetch every page of a list endpoint, following the absolute ``links.next`` URL.

        Args:
            path: Collection path, e.g. ``/people``
            params: Query parameters for the first page only

        Returns:
            Collection with all resources in server order
        """
        collection = Collection()
        next_url: Optional[str] = f"{self.base_url}{path}"
        next_params = params

        while next_url:
            logger.info(f"Fetching Planning Center page {collection.pages + 1} of {path}")
            page = Page(**(self._make_request('GET', next_url, params=next_params) or {}))
            collection.data.extend(page.data)
            collection.pages += 1
            next_url = page.links.next
            # next links already carry the query string
            next_params = None

        logger.info(f"Retrieved {len(collection.data)} {path.strip('/')} across {collection.pages} pages")
        return collection

    def list_updated_since(self, path: str, since: Optional[str]) -> Collection:
        """List a collection ordered by ``updated_at``, filtered to ``updated_at >= since``."""
        params: Dict[str, Any] = {'order': 'updated_at', 'per_page': self.page_size}
        if since:
            params['where[updated_at][gte]'] = since
        return self.list_all(path, params=params)

    def create(self, path: str, resource_type: str, attributes: Dict[str, Any],
               relationships: Optional[Dict[str, Any]] = None) -> Document:
        """POST a new resource."""
        payload: Dict[str, Any] = {'data': {'type': resource_type, 'attributes': attributes}}
        if relationships is not None:
            payload['data']['relationships'] = relationships
        return Document(**(self._make_request('POST', path, data=payload) or {}))

    def update(self, path: str, resource_type: str, resource_id: str, attributes: Dict[str, Any],
               relationships: Optional[Dict[str, Any]] = None) -> Document:
        """PATCH an existing resource by ID."""
        payload: Dict[str, Any] = {'data': {'type': resource_type, 'id': resource_id, 'attributes': attributes}}
        if relationships is not None:
            payload['data']['relationships'] = relationships
        logger.info(f"Updating Planning Center {resource_type} {resource_id} with: {sorted(attributes)}")
        return Document(**(self._make_request('PATCH', f"{path}/{resource_id}", data=payload) or {}))
