"""
API client for the Face Access backend.

Handles the REST protocol between the capture client and the backend:
- register(name, embedding) -> EnrollAck        (POST /register)
- recognize(embedding) -> Decision              (POST /recognize)
- list_users / delete_user                      (management endpoints)

Each call is exactly one HTTP request. Nothing is retried or cached.
HTTP failures are mapped back onto core.errors so callers can tell an
outage (StoreUnavailableError) apart from a miss (Decision.allowed=False).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import numpy as np

from core.errors import (
    EmptyNameError,
    InvalidEmbeddingError,
    ProtocolError,
    StoreUnavailableError,
)
from core.matching.interfaces import Decision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollAck:
    """Backend acknowledgement of a successful enrollment."""
    record_id: str
    name: str
    records_for_name: int


class APIClient:
    """
    Client for communicating with the Face Access backend.

    Args:
        base_url: Backend root URL, e.g. "http://localhost:4000".
        timeout_sec: Per-request timeout.
        http_client: Pre-built httpx.Client to use instead of creating one
                     (a fastapi TestClient works here too).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        timeout_sec: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(base_url=self.base_url, timeout=timeout_sec)

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "APIClient":
        """Build a client from the "client" config section."""
        if config is None:
            from core.config import get_client_config
            config = get_client_config()
        return cls(
            base_url=config.get("base_url", "http://localhost:4000"),
            timeout_sec=float(config.get("timeout_sec", 10.0)),
        )

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "APIClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ==================== Transport ====================

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            # An unreachable backend means the store is unreachable too
            raise StoreUnavailableError(f"Backend unreachable at {self.base_url}: {e}") from e

    @staticmethod
    def _error_code(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("code") if isinstance(body, dict) else None

    def _raise_for_error(self, response: httpx.Response, action: str) -> None:
        """Translate a non-200 response into the matching exception."""
        if response.status_code == 200:
            return

        code = self._error_code(response)
        message = f"{action} failed: HTTP {response.status_code} {response.text[:200]}"

        if response.status_code == 503 or code == StoreUnavailableError.code:
            raise StoreUnavailableError(message)
        if code == EmptyNameError.code:
            raise EmptyNameError(message)
        if code == InvalidEmbeddingError.code:
            raise InvalidEmbeddingError(message)

        raise ProtocolError(message, status_code=response.status_code)

    @staticmethod
    def _json(response: httpx.Response, action: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"{action}: response is not JSON", response.status_code) from e
        if not isinstance(body, dict):
            raise ProtocolError(f"{action}: expected a JSON object", response.status_code)
        return body

    @staticmethod
    def _embedding_payload(embedding) -> List[float]:
        return np.asarray(embedding, dtype=np.float32).astype(float).tolist()

    # ==================== Protocol ====================

    def register(self, name: str, embedding) -> EnrollAck:
        """
        Enroll a descriptor under a name.

        Raises:
            EmptyNameError: If the backend rejects the name.
            InvalidEmbeddingError: If the backend rejects the descriptor.
            StoreUnavailableError: If the backend or its store is down.
            ProtocolError: On any other unexpected response.
        """
        response = self._request(
            "POST",
            "/register",
            json={"name": name, "embedding": self._embedding_payload(embedding)},
        )
        self._raise_for_error(response, "register")
        body = self._json(response, "register")

        ack = EnrollAck(
            record_id=body.get("record_id", ""),
            name=body.get("name", name),
            records_for_name=int(body.get("records_for_name", 1)),
        )
        logger.info(f"Registered {ack.name} (record={ack.record_id})")
        return ack

    def recognize(self, embedding) -> Decision:
        """
        Identify a probe descriptor.

        Returns:
            Decision. A probe matching nobody gives allowed=False, not an error.

        Raises:
            StoreUnavailableError: If the backend or its store is down.
            InvalidEmbeddingError: If the backend rejects the descriptor.
            ProtocolError: On any other unexpected response.
        """
        response = self._request(
            "POST",
            "/recognize",
            json={"embedding": self._embedding_payload(embedding)},
        )
        self._raise_for_error(response, "recognize")
        body = self._json(response, "recognize")

        if not isinstance(body.get("allowed"), bool):
            raise ProtocolError("recognize: response has no boolean 'allowed'", 200)

        allowed = body["allowed"]
        distance = body.get("distance")
        return Decision(
            allowed=allowed,
            name=body.get("name") if allowed else None,
            distance=float(distance) if distance is not None else None,
        )

    # ==================== User Management ====================

    def check_backend_available(self) -> bool:
        """Check if the backend server is reachable and its store healthy."""
        try:
            response = self._http.get("/health", timeout=2.0)
        except httpx.HTTPError:
            return False
        return response.status_code == 200 and response.json().get("store_available", False)

    def list_users(self) -> List[Dict[str, Any]]:
        """Get list of enrolled names with their record counts."""
        response = self._request("GET", "/users")
        self._raise_for_error(response, "list users")
        return self._json(response, "list users").get("users", [])

    def delete_user(self, name: str) -> int:
        """
        Delete every record of a name.

        Returns:
            Number of records deleted, 0 if the name was not enrolled.
        """
        response = self._request("DELETE", f"/users/{quote(name, safe='')}")
        if response.status_code == 404:
            return 0
        self._raise_for_error(response, "delete user")
        return int(self._json(response, "delete user").get("deleted_records", 0))
