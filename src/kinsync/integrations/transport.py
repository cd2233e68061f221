"""Resilient HTTP transport shared by the Planning Center and Fibery clients."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..exceptions import PermanentTransportError, TransientTransportError

logger = logging.getLogger(__name__)

USER_AGENT = f"kinsync/{__version__}"


def _retry_after_seconds(value: Optional[str], default: float = 1.0) -> float:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return default
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    return seconds if seconds >= 0 else default


class HttpTransport:
    """Wraps a pooled ``requests.Session`` with rate-limit and server-error retries.

    - 429 waits ``Retry-After + 1`` seconds and retries without consuming the retry budget.
    - 5xx retries with exponential backoff (``backoff_ms * 2**attempt``) up to ``retries``.
    - Any other non-2xx status fails immediately.
    """

    def __init__(
        self,
        *,
        retries: int = 3,
        backoff_ms: int = 500,
        timeout: float = 30,
        pool_size: int = 10,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the transport.

        Args:
            retries: Retry ceiling for server errors and connection failures
            backoff_ms: Base backoff in milliseconds
            timeout: Per-request timeout in seconds
            pool_size: Keep-alive connection pool size
            headers: Default headers sent with every request
            auth: Optional HTTP basic auth credentials
            session: Optional pre-built session (mainly for tests)
            sleep: Sleep function (mainly for tests)
        """
        self.retries = retries
        self.backoff_ms = backoff_ms
        self.timeout = timeout
        self._sleep = sleep

        # Status codes are handled below, the adapter only retries failed connects
        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=retries,
            connect=retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=backoff_ms / 1000,
        )
        adapter = HTTPAdapter(
            pool_connections=pool_size,
            pool_maxsize=pool_size,
            max_retries=retry_strategy,
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        })
        if headers:
            self.session.headers.update(headers)
        if auth:
            self.session.auth = auth

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Any] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """Make a request, retrying as configured.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters
            json: JSON request body

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            PermanentTransportError: On client errors, exhausted retries or connection failure
        """
        attempt = 0
        while True:
            try:
                return self._send(method, url, params=params, json=json)
            except TransientTransportError as e:
                if e.status == 429:
                    wait = _retry_after_seconds(e.retry_after) + 1
                    logger.warning(f"Rate limited on {method} {url}, waiting {wait:.0f}s")
                    self._sleep(wait)
                    continue

                if attempt >= self.retries:
                    raise PermanentTransportError(
                        f"{e} (gave up after {attempt} retries)",
                        method=method, url=url, status=e.status, body=e.body,
                    ) from e

                delay = self.backoff_ms * (2 ** attempt) / 1000
                attempt += 1
                logger.warning(f"{e}; retry {attempt}/{self.retries} in {delay:.2f}s")
                self._sleep(delay)

    def _send(self, method: str, url: str, *, params: Optional[Any], json: Optional[Any]) -> Any:
        logger.debug(f"Making {method} request to {url} with params: {params}")
        try:
            response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PermanentTransportError(f"{method} {url} => request failed: {e}", method=method, url=url) from e

        status = response.status_code
        if 200 <= status < 300:
            if not response.content:
                return None
            try:
                return response.json()
            except requests.exceptions.JSONDecodeError as e:
                raise PermanentTransportError(
                    f"{method} {url} => {status} response is not JSON: {e}",
                    method=method, url=url, status=status, body=response.text,
                ) from e

        body = response.text
        message = f"{method} {url} => {status} {body}"
        if status == 429 or status >= 500:
            raise TransientTransportError(
                message, method=method, url=url, status=status, body=body,
                retry_after=response.headers.get('Retry-After'),
            )
        raise PermanentTransportError(message, method=method, url=url, status=status, body=body)
