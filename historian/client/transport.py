"""
Transport client for the Code Historian backend
Issues authenticated HTTP requests on a worker pool so callers never block.

Every call returns a concurrent.futures.Future. The future resolves with a
TransportResponse for 2xx statuses and fails with TransportError otherwise.
There are no retries at this layer.
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .errors import TransportError, ProtocolError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
JSON_CONTENT_TYPE = "application/json"


def normalize_credential(credential: Optional[str]) -> Optional[str]:
    """Blank credentials mean local, unauthenticated mode"""
    if credential is None:
        return None
    credential = credential.strip()
    return credential or None


def auth_headers(credential: Optional[str]) -> Dict[str, str]:
    """Header mapping carrying the API key, empty when unauthenticated"""
    credential = normalize_credential(credential)
    if credential is None:
        return {}
    return {API_KEY_HEADER: credential}


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class TransportResponse:
    """Completed 2xx response"""

    status_code: int
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        """Decode the body, raising ProtocolError when it is not JSON"""
        try:
            return json.loads(self.text)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Response body is not valid JSON: {e}") from e


class TransportClient:
    """
    Non-blocking HTTP client for the analysis backend.

    Requests are executed by requests on a private ThreadPoolExecutor; the
    transport primitive owns timeout enforcement via ``request_timeout``.
    """

    def __init__(
        self,
        base_url: str,
        request_timeout: Optional[float] = 30.0,
        max_workers: int = 4,
        session: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Args:
            base_url: Base API URL, e.g. http://localhost:3000/api
            request_timeout: Seconds passed to requests, None for no limit
            max_workers: Size of the request pool when no executor is given
            session: Shared requests.Session (one is created when omitted)
            executor: Executor to run requests on (owned by the caller)
        """
        self.base_url = base_url.rstrip('/')
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="historian_transport"
        )

    def url_for(self, path: str) -> str:
        return join_url(self.base_url, path)

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        credential: Optional[str] = None,
    ) -> Future:
        """
        Submit one request and return immediately.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            headers: Extra headers
            body: JSON-serializable body, or None for no body
            credential: API key; attached as X-API-Key only when non-blank

        Returns:
            Future resolving to TransportResponse or failing with TransportError
        """
        request_headers = dict(headers or {})
        data = None
        if body is not None:
            request_headers.setdefault("Content-Type", JSON_CONTENT_TYPE)
            data = json.dumps(body)
        request_headers.update(auth_headers(credential))

        url = self.url_for(path)
        return self._executor.submit(self._perform, method.upper(), url, request_headers, data)

    def get_json(self, path: str, params: Optional[dict] = None, credential: Optional[str] = None) -> Future:
        """GET a JSON document; the future resolves to the decoded body"""
        headers = auth_headers(credential)
        url = self.url_for(path)

        def run():
            return self._perform("GET", url, headers, None, params=params).json()

        return self._executor.submit(run)

    def _perform(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[str],
        params: Optional[dict] = None,
    ) -> TransportResponse:
        logger.debug(f"{method} {url}")
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                data=data,
                params=params,
                timeout=self.request_timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"Network error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Unexpected response {response.status_code} from {method} {url}",
                status_code=response.status_code
            )

        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers or {})
        )

    def close(self, wait: bool = True) -> None:
        """Stop the request pool and release pooled connections"""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        self._session.close()
