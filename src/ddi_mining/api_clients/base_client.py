"""
Base API Client

Common HTTP plumbing for every evidence source:
- Rate limiting (per client, plus an optional shared session limiter)
- Retry logic with exponential backoff
- Circuit breaker pattern
- Mapping of failures onto TransportError / ParseError
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ddi_mining.exceptions import MiningCancelledError, ParseError, ServiceUnavailableError, TransportError
from ddi_mining.utils.circuit_breaker import CircuitBreaker
from ddi_mining.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Base class for all source API clients.

    Unlike a fire-and-forget client, failures are raised so the caller can
    tell an empty result apart from an unreachable source.
    """

    RATE_LIMIT_WAIT = 120.0

    def __init__(
        self,
        base_url: str,
        rate_limit: int = 60,
        timeout: int = 30,
        max_retries: int = 3,
        name: Optional[str] = None,
        enable_circuit_breaker: bool = True,
        global_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: Base URL for API endpoints
            rate_limit: Max requests per minute for this client
            timeout: Request timeout in seconds
            max_retries: Max retry attempts on 429/5xx and connection errors
            name: Client name for logging
            enable_circuit_breaker: Enable circuit breaker pattern
            global_limiter: Session-wide limiter shared across clients
            session: Pre-built session (tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.name = name or self.__class__.__name__

        self.rate_limiter = RateLimiter(requests_per_minute=rate_limit, name=self.name)
        self.global_limiter = global_limiter
        self.circuit_breaker = CircuitBreaker(name=self.name) if enable_circuit_breaker else None

        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
            respect_retry_after_header=True,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": "ddi-mining/1.0"})

        return session

    def _acquire_slot(self, cancel_event: Optional[threading.Event]):
        """Wait on the client limiter and the shared session limiter."""
        for limiter in (self.rate_limiter, self.global_limiter):
            if limiter is None:
                continue
            if limiter.acquire(timeout=self.RATE_LIMIT_WAIT, cancel_event=cancel_event):
                continue
            if cancel_event is not None and cancel_event.is_set():
                raise MiningCancelledError(f"[{self.name}] Cancelled while waiting for rate limiter")
            raise TransportError(f"[{self.name}] Rate limit wait exceeded ({limiter.name})", source=self.name)

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        headers: Optional[Dict] = None,
        timeout: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        allow_not_found: bool = False,
        parse_json: bool = True,
    ) -> Any:
        """
        Make HTTP request with rate limiting, circuit breaker, and retries.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (appended to base_url)
            params: URL parameters
            headers: Additional headers
            timeout: Override default timeout
            cancel_event: Abort before sending once set
            allow_not_found: Treat 404 as "no results" and return None
            parse_json: Decode the body as JSON (otherwise return text)

        Returns:
            Decoded JSON, response text, or None for an allowed 404

        Raises:
            MiningCancelledError: If the job was stopped
            ServiceUnavailableError: If the circuit is open
            TransportError: On network errors or non-success status after retries
            ParseError: If the body is not valid JSON
        """
        if cancel_event is not None and cancel_event.is_set():
            raise MiningCancelledError(f"[{self.name}] Cancelled before request")

        if self.circuit_breaker and not self.circuit_breaker.allow_request():
            raise ServiceUnavailableError(f"[{self.name}] Circuit breaker is OPEN", source=self.name)

        self._acquire_slot(cancel_event)

        url = f"{self.base_url}{endpoint}" if not endpoint.startswith('http') else endpoint

        request_headers = {"Accept": "application/json" if parse_json else "*/*"}
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=request_headers,
                timeout=timeout or self.timeout,
            )
        except requests.exceptions.Timeout as e:
            self._record_failure()
            raise TransportError(f"[{self.name}] Request timeout: {url}", source=self.name) from e
        except requests.exceptions.RequestException as e:
            self._record_failure()
            raise TransportError(f"[{self.name}] Request failed: {e}", source=self.name) from e

        if response.status_code == 404 and allow_not_found:
            # 404 is how some sources report "no matches"
            self._record_success()
            return None

        if not 200 <= response.status_code < 300:
            if response.status_code != 404:
                self._record_failure()
            raise TransportError(
                f"[{self.name}] HTTP {response.status_code} for {url}",
                source=self.name,
                status_code=response.status_code,
            )

        self._record_success()

        if not parse_json:
            return response.text

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"[{self.name}] Invalid JSON from {url}: {e}") from e

    def _record_success(self):
        if self.circuit_breaker:
            self.circuit_breaker.record_success()

    def _record_failure(self):
        if self.circuit_breaker:
            self.circuit_breaker.record_failure()

    def get(self, endpoint: str, params: Optional[Dict] = None, **kwargs) -> Any:
        """Make GET request."""
        return self._make_request("GET", endpoint, params=params, **kwargs)

    def get_status(self) -> Dict:
        """Client status including rate limiter and circuit breaker."""
        status = {
            "client": self.name,
            "base_url": self.base_url,
            "rate_limiter": self.rate_limiter.get_status(),
        }
        if self.global_limiter is not None:
            status["global_limiter"] = self.global_limiter.get_status()
        if self.circuit_breaker:
            status["circuit_breaker"] = self.circuit_breaker.get_status()
        return status

    def close(self):
        self.session.close()

    @abstractmethod
    def health_check(self) -> bool:
        """Check if API is accessible."""
        pass
