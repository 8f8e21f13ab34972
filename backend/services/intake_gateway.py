"""
Intake Gateway - I/O edge between a wizard session and the intake endpoints.

The wizard only needs two operations:
- fetch_template(token): the record describing which template to show
- submit(token, payload): deliver the multipart submission

Public form links and per-client onboarding links expose the same two
operations under different URLs and response envelopes, so each gets a
small subclass of HttpIntakeGateway.
"""
import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from services.submission_assembler import MultipartPayload

logger = logging.getLogger(__name__)

INTAKE_API_BASE_URL = os.getenv("INTAKE_API_BASE_URL", "http://localhost:8001")

GENERIC_FETCH_ERROR = "Failed to load form"
GENERIC_SUBMIT_ERROR = "Failed to submit form"


class IntakeGatewayError(Exception):
    """Template fetch or submission failed; message is safe to show the user."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class IntakeGateway(ABC):
    """Collaborator interface used by WizardController."""

    @abstractmethod
    async def fetch_template(self, token: str) -> Dict[str, Any]:
        """Return the template record for an access token."""
        pass

    @abstractmethod
    async def submit(self, token: str, payload: MultipartPayload) -> Dict[str, Any]:
        """Deliver one submission. Raises IntakeGatewayError on failure."""
        pass


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull the server's error string out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        message = body.get("error") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return fallback


class HttpIntakeGateway(IntakeGateway):
    """
    Gateway over the intake HTTP API.

    Subclasses set the route prefix and the key wrapping the template record.
    An httpx.AsyncClient may be passed in (tests use a mock or ASGI transport);
    otherwise a short-lived client is opened per call.
    """

    route_prefix: str = ""
    record_key: str = ""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or INTAKE_API_BASE_URL).rstrip("/")
        self._client = client

    def template_url(self, token: str) -> str:
        return f"{self.base_url}{self.route_prefix}/{token}"

    def submit_url(self, token: str) -> str:
        return f"{self.template_url(token)}/submit"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, **kwargs)

    async def fetch_template(self, token: str) -> Dict[str, Any]:
        try:
            response = await self._send("GET", self.template_url(token))
        except httpx.HTTPError as e:
            logger.error(f"Template fetch failed for {self.route_prefix}: {e}")
            raise IntakeGatewayError(GENERIC_FETCH_ERROR)

        if response.status_code != 200:
            message = _error_message(response, "Invalid or expired form link")
            logger.info(f"Template fetch rejected ({response.status_code}): {message}")
            raise IntakeGatewayError(message, response.status_code)

        try:
            record = response.json().get(self.record_key)
        except (ValueError, AttributeError):
            record = None
        if not isinstance(record, dict):
            raise IntakeGatewayError(GENERIC_FETCH_ERROR, response.status_code)
        return record

    async def submit(self, token: str, payload: MultipartPayload) -> Dict[str, Any]:
        try:
            response = await self._send(
                "POST",
                self.submit_url(token),
                files=payload.multipart_parts(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Submission failed for {self.route_prefix}: {e}")
            raise IntakeGatewayError(GENERIC_SUBMIT_ERROR)

        if not response.is_success:
            message = _error_message(response, GENERIC_SUBMIT_ERROR)
            logger.warning(f"Submission rejected ({response.status_code}): {message}")
            raise IntakeGatewayError(message, response.status_code)

        logger.info(f"Submission accepted by {self.route_prefix} ({len(payload.files)} documents)")
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


class PublicFormGateway(HttpIntakeGateway):
    """Shareable broker form links."""
    route_prefix = "/api/public-form"
    record_key = "link"


class OnboardingGateway(HttpIntakeGateway):
    """Per-client onboarding links."""
    route_prefix = "/api/onboarding"
    record_key = "client"
