"""REST persistence connector.

This module provides an ``AppointmentRepository`` implementation that
stores appointments in a remote clinic records service over HTTP. The
client manages OAuth2 client-credentials authentication, HTTP session
handling with retries, and structured error reporting.
"""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from scheduling.models import Appointment, AppointmentStatus

__all__ = [
    "RepositoryAPIError",
    "RepositoryAuthError",
    "RepositoryError",
    "RestAppointmentRepository",
]


# The hosting application configures handlers; we only emit records.
logger = logging.getLogger(__name__)


DEFAULT_TOKEN_REFRESH_BUFFER_SECONDS = 60
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5

DEFAULT_BASE_URL = os.getenv("SCHEDULING_API_URL", "")
DEFAULT_TOKEN_URL = os.getenv("SCHEDULING_TOKEN_URL", "")
DEFAULT_CLIENT_ID = os.getenv("SCHEDULING_CLIENT_ID")
DEFAULT_CLIENT_SECRET = os.getenv("SCHEDULING_CLIENT_SECRET")
DEFAULT_SCOPE = os.getenv("SCHEDULING_SCOPE", "")


class RepositoryError(RuntimeError):
    """Base exception for remote repository errors."""


class RepositoryAuthError(RepositoryError):
    """Raised when OAuth2 authentication fails."""


class RepositoryAPIError(RepositoryError):
    """Raised when the records service returns an error response."""


@dataclass(frozen=True)
class TokenData:
    """Container for OAuth2 token information."""

    access_token: str
    expires_at: datetime

    def is_valid(self, buffer_seconds: int) -> bool:
        """Check if the token is still valid with a refresh buffer."""

        return datetime.now(timezone.utc) + timedelta(seconds=buffer_seconds) < self.expires_at


class RestAppointmentRepository:
    """Appointment repository backed by the clinic records REST API."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        client_id: Optional[str] = DEFAULT_CLIENT_ID,
        client_secret: Optional[str] = DEFAULT_CLIENT_SECRET,
        scope: Optional[str] = DEFAULT_SCOPE,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        token_refresh_buffer: int = DEFAULT_TOKEN_REFRESH_BUFFER_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must be provided")
        if not token_url:
            raise ValueError("token_url must be provided")
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret must be provided")

        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope or ""
        self.timeout = timeout
        self.token_refresh_buffer = token_refresh_buffer

        self._session = session or self._build_session(max_retries=max_retries, backoff_factor=backoff_factor)
        self._token_lock = threading.Lock()
        self._token: Optional[TokenData] = None

    @staticmethod
    def is_configured() -> bool:
        """Whether the environment provides everything the default constructor needs."""

        return bool(DEFAULT_BASE_URL and DEFAULT_TOKEN_URL and DEFAULT_CLIENT_ID and DEFAULT_CLIENT_SECRET)

    # ------------------------------------------------------------------
    # AppointmentRepository
    # ------------------------------------------------------------------
    def find_by_resource_and_range(
        self, resource_id: str, start: datetime, end: datetime
    ) -> List[Appointment]:
        if not resource_id:
            raise ValueError("resource_id must be provided")
        response = self._request(
            "GET",
            f"resources/{resource_id}/appointments",
            params={"start": start.isoformat(), "end": end.isoformat()},
        )
        return self._parse_list(response)

    def insert(self, appointment: Appointment) -> Appointment:
        response = self._request(
            "POST",
            "appointments",
            json_payload=appointment.to_dict(),
            expected_status=(200, 201),
        )
        return self._parse_one(response, fallback=appointment)

    def update(self, appointment: Appointment) -> Appointment:
        response = self._request(
            "PUT",
            f"appointments/{appointment.id}",
            json_payload=appointment.to_dict(),
            expected_status=(200, 204),
        )
        return self._parse_one(response, fallback=appointment)

    def get(self, appointment_id: str) -> Optional[Appointment]:
        if not appointment_id:
            raise ValueError("appointment_id must be provided")
        response = self._request("GET", f"appointments/{appointment_id}", expected_status=(200, 404))
        if response.status_code == 404:
            return None
        return self._parse_one(response)

    def list_by_status(self, status: AppointmentStatus) -> List[Appointment]:
        response = self._request("GET", "appointments", params={"status": status.value})
        return self._parse_list(response)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _build_session(self, *, max_retries: int, backoff_factor: float) -> requests.Session:
        # POST is never retried.
        adapter = HTTPAdapter(
            max_retries=Retry(
                total=max_retries,
                backoff_factor=backoff_factor,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("GET", "PUT"),
            )
        )
        session = requests.Session()
        for prefix in ("http://", "https://"):
            session.mount(prefix, adapter)
        return session

    def _get_access_token(self) -> str:
        with self._token_lock:
            if self._token is None or not self._token.is_valid(self.token_refresh_buffer):
                self._token = self._fetch_token()
            return self._token.access_token

    def _fetch_token(self) -> TokenData:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            form["scope"] = self.scope

        logger.debug("Requesting records service token from %s", self.token_url)
        try:
            response = self._session.post(self.token_url, data=form, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Records service token request failed: %s", exc)
            raise RepositoryAuthError("Failed to obtain records service token") from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise RepositoryAuthError("Token response missing access_token")
        try:
            lifetime = int(body.get("expires_in") or 300)
        except (TypeError, ValueError) as exc:
            raise RepositoryAuthError("Invalid expires_in value in token response") from exc

        token = TokenData(access_token, datetime.now(timezone.utc) + timedelta(seconds=lifetime))
        logger.info("Records service token valid until %s", token.expires_at.isoformat())
        return token

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_payload: Optional[Dict[str, Any]] = None,
        expected_status: Tuple[int, ...] = (200,),
    ) -> Response:
        try:
            response = self._session.request(
                method=method,
                url=f"{self.base_url}/{path}",
                params=params,
                json=json_payload,
                headers={
                    "Authorization": f"Bearer {self._get_access_token()}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise RepositoryAPIError(f"{method} {path} failed") from exc

        if response.status_code not in expected_status:
            logger.error(
                "%s %s returned %s: %s", method, path, response.status_code, response.text[:2048]
            )
            raise RepositoryAPIError(
                f"Records service responded with unexpected status {response.status_code}"
            )
        return response

    @staticmethod
    def _decode(response: Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RepositoryAPIError("Records service response was not valid JSON") from exc

    def _parse_list(self, response: Response) -> List[Appointment]:
        payload = self._decode(response)
        if isinstance(payload, dict):
            payload = payload.get("appointments", [])
        if not isinstance(payload, list):
            raise RepositoryAPIError("Expected a list of appointments from records service")
        appointments = [Appointment.from_mapping(entry) for entry in payload]
        return sorted(appointments, key=lambda appointment: (appointment.start_time, appointment.id))

    def _parse_one(self, response: Response, fallback: Optional[Appointment] = None) -> Appointment:
        if not response.content and fallback is not None:
            return fallback
        payload = self._decode(response)
        if not isinstance(payload, dict):
            raise RepositoryAPIError("Expected an appointment object from records service")
        return Appointment.from_mapping(payload)
