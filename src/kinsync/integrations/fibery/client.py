"""Fibery command API client."""

import logging
from typing import Any, Dict, List, Optional

from ...exceptions import FiberyAPIError, PermanentTransportError
from ...models.config import FiberySettings, HttpSettings
from ..transport import HttpTransport

logger = logging.getLogger(__name__)

QUERY = "fibery.entity/query"
CREATE = "fibery.entity/create"
UPDATE = "fibery.entity/update"


class FiberyClient:
    """Client for the Fibery ``/api/commands`` batch endpoint."""

    def __init__(self, settings: FiberySettings, transport: Optional[HttpTransport] = None,
                 http: Optional[HttpSettings] = None):
        """Initialize the Fibery client.

        Args:
            settings: Host, token and space
            transport: Optional pre-built transport (mainly for tests)
            http: Retry and timeout settings used when building the transport
        """
        self.api_url = settings.api_url
        http = http or HttpSettings()
        self.transport = transport or HttpTransport(
            retries=http.retries,
            backoff_ms=http.backoff_ms,
            timeout=http.timeout_seconds,
            headers={'Authorization': f'Token {settings.token}'},
        )

    def execute(self, commands: List[Dict[str, Any]]) -> List[Any]:
        """Send an ordered command batch.

        Args:
            commands: ``{"command": ..., "args": ...}`` objects

        Returns:
            The ``result`` of each command, in order

        Raises:
            FiberyAPIError: If the request fails or any command reports ``success: false``
        """
        if not commands:
            return []
        try:
            response = self.transport.request('POST', self.api_url, json=commands)
        except PermanentTransportError as e:
            logger.error(f"Fibery API request failed: {e}")
            raise FiberyAPIError(str(e)) from e

        if not isinstance(response, list) or len(response) != len(commands):
            raise FiberyAPIError(f"Unexpected Fibery response for {len(commands)} commands: {response!r}")

        results = []
        for position, (command, item) in enumerate(zip(commands, response)):
            if not isinstance(item, dict) or not item.get('success', False):
                detail = item.get('result') if isinstance(item, dict) else item
                raise FiberyAPIError(f"Fibery command {position} ({command.get('command')}) failed: {detail}")
            results.append(item.get('result'))
        return results

    def query(self, query: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a single ``fibery.entity/query`` and return its rows.

        Raises:
            FiberyAPIError: If the query fails or does not return a list
        """
        args: Dict[str, Any] = {'query': query}
        if params:
            args['params'] = params
        [rows] = self.execute([{'command': QUERY, 'args': args}])
        if not isinstance(rows, list):
            raise FiberyAPIError(f"Fibery query on {query.get('q/from')} did not return a list: {rows!r}")
        return rows

    def test_connection(self, type_name: str) -> List[Dict[str, Any]]:
        """Query one entity of ``type_name`` to prove the token, space and database exist."""
        return self.query({'q/from': type_name, 'q/select': ['fibery/id'], 'q/limit': 1})
