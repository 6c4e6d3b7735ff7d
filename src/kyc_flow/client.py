"""
Verification Client

Authenticated HTTP access to the verification backends:

  evidence service  - health, sessions, document/face evidence, ID-type catalog
  result service    - final verification decision (separate base URL)

Non-2xx answers are classified into the error taxonomy in ``errors``. The
health probe never raises, and the ID-type catalog falls back to a built-in
list whenever the backend cannot be used.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .errors import (
    KYCError,
    NetworkError,
    RateLimitError,
    ServerError,
    TransportError,
    classify_status,
)
from .main import (
    APIResponse,
    Credentials,
    EvidenceData,
    EvidenceFile,
    FlowConfig,
    IdType,
    Session,
    VerificationResult,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_URL = "https://your-domain.com/webhooks/kyc-status"

# Errors worth another attempt on idempotent calls
RETRIABLE_ERRORS = (NetworkError, ServerError, RateLimitError)


@dataclass
class ClientContext:
    """
    Mutable configuration shared by reference between the flow and its client.

    Replacing ``credentials`` affects every request started afterwards;
    requests already in flight keep the headers they were built with.
    """
    config: FlowConfig
    credentials: Credentials


def fallback_id_types() -> List[IdType]:
    """Catalog used whenever the backend one is unavailable"""
    return [
        IdType(
            id="national_id",
            name="National ID",
            code="national_id",
            requires_front=True,
            requires_back=True,
            requires_selfie=True,
            description="Ethiopian National ID Card",
        ),
        IdType(
            id="passport",
            name="Passport",
            code="passport",
            requires_front=True,
            requires_back=False,
            requires_selfie=True,
            description="International Passport",
        ),
        IdType(
            id="driver_license",
            name="Driver License",
            code="driver_license",
            requires_front=True,
            requires_back=True,
            requires_selfie=True,
            description="Driver License",
        ),
    ]


def map_decision(decision: Optional[str], review_required: Optional[bool]) -> VerificationStatus:
    """Translate the result service's decision vocabulary"""
    if decision == "APPROVED":
        return VerificationStatus.APPROVED
    if decision == "REJECTED":
        return VerificationStatus.REJECTED
    if decision == "MANUAL_REVIEW":
        return VerificationStatus.UNDER_REVIEW
    if decision == "PENDING":
        return VerificationStatus.UNDER_REVIEW if review_required else VerificationStatus.PENDING
    return VerificationStatus.PENDING


class VerificationClient:
    """
    Client for the verification backends.

    Usage:
        client = VerificationClient(ClientContext(FlowConfig(), credentials))
        if await client.probe():
            session = await client.get_session("sess-123")
    """

    def __init__(
        self,
        context: ClientContext,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.context = context
        self._transport = transport
        self._sleep = sleep

    @property
    def config(self) -> FlowConfig:
        return self.context.config

    @property
    def credentials(self) -> Credentials:
        return self.context.credentials

    def update_credentials(self, credentials: Credentials) -> None:
        self.context.credentials = credentials
        logger.info("Verification client credentials updated")

    # =========================================================================
    # Evidence service
    # =========================================================================

    async def probe(self) -> bool:
        """Lightweight authenticated health check; False on any failure"""
        url = self._evidence_url("/health")
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._headers())
            return response.is_success
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False

    async def get_session(self, session_id: str) -> Session:
        payload = await self._request(
            "GET",
            self._evidence_url(f"/public/verification/{session_id}/status"),
            retry=True,
        )
        return self._parse_session(payload)

    async def create_session(
        self,
        tenant_id: str,
        id_type: str,
        user_id: Optional[str] = None,
        callback: Optional[str] = None,
        custom_data: Optional[Dict[str, Any]] = None,
    ) -> Session:
        """Open a new verification session using the API-key endpoint"""
        custom = custom_data or {}
        body = {
            "tenantId": tenant_id,
            "idType": id_type,
            "piiData": custom.get("piiData") or {
                "firstName": "Demo",
                "lastName": "User",
                "email": "demo@example.com",
                "phone": "+1234567890",
            },
            "vendorData": custom.get("vendorData") or {
                "vendorId": "demo-vendor",
                "customFields": {},
            },
            "metadata": custom.get("metadata") or {
                "source": "python-sdk",
                "userAgent": f"kyc-flow/{_version()}",
                "ipAddress": "127.0.0.1",
            },
            "callback": (
                callback
                or custom.get("callback")
                or self.config.callback_url
                or DEFAULT_CALLBACK_URL
            ),
        }
        if user_id:
            body["userId"] = user_id

        payload = await self._request(
            "POST",
            self._evidence_url("/tenants/kyc/sessions/api-key"),
            json=body,
        )
        session = self._parse_session(payload)
        logger.info(f"Verification session created: {session.id}")
        return session

    async def submit_document(
        self,
        session_id: str,
        id_type: str,
        front: EvidenceFile,
        back: Optional[EvidenceFile] = None,
        token: Optional[str] = None,
    ) -> APIResponse:
        files = {"front_image": _file_part(front)}
        if back is not None:
            files["back_image"] = _file_part(back)

        payload = await self._request(
            "POST",
            self._evidence_url(f"/public/verification/{session_id}/document"),
            data={"document_type": id_type},
            files=files,
            token=token,
        )
        return self._envelope(payload)

    async def submit_face(
        self,
        session_id: str,
        selfie: EvidenceFile,
        id_image: EvidenceFile,
        token: Optional[str] = None,
    ) -> APIResponse:
        payload = await self._request(
            "POST",
            self._evidence_url(f"/public/verification/{session_id}/face"),
            files={
                "id_image": _file_part(id_image),
                "selfie_image": _file_part(selfie),
            },
            token=token,
        )
        return self._envelope(payload)

    async def fetch_result(self, session_id: str, token: Optional[str] = None) -> APIResponse:
        """Raw verification results as held by the evidence service"""
        payload = await self._request(
            "GET",
            self._evidence_url(f"/public/verification/{session_id}/results"),
            token=token,
            retry=True,
        )
        return self._envelope(payload)

    async def list_id_types(
        self,
        session_id: Optional[str] = None,
        token: Optional[str] = None,
    ) -> List[IdType]:
        """
        ID types accepted for the session's tenant.

        Without session info, or when the backend is unhealthy or answers
        with anything unusable, the built-in catalog is returned instead.
        """
        if not (session_id and token):
            return fallback_id_types()

        if not await self.probe():
            logger.warning("Backend health check failed, using fallback ID types")
            return fallback_id_types()

        try:
            payload = await self._request(
                "GET",
                self._evidence_url(f"/tenants/kyc/public/session/{session_id}/id-types"),
                token=token,
                retry=True,
            )
            response = self._envelope(payload)
            if response.success and isinstance(response.data, list) and response.data:
                id_types = [IdType.from_dict(item) for item in response.data]
                logger.info(f"Fetched {len(id_types)} ID types for session {session_id}")
                return id_types
            logger.warning(f"ID type endpoint returned no usable data: {payload}")
        except (KYCError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to fetch ID types from backend: {e}")

        logger.info("Using default ID types as fallback")
        return fallback_id_types()

    # =========================================================================
    # Result service
    # =========================================================================

    async def complete_verification(
        self,
        session_id: str,
        data: EvidenceData,
        token: Optional[str] = None,
    ) -> VerificationResult:
        """Fetch the final decision from the result service"""
        logger.info(f"Completing verification for session {session_id} (id type: {data.id_type or 'unset'})")

        url = f"{self.config.result_service_url.rstrip('/')}/api/v1/verification/{session_id}/results"
        payload = await self._request("GET", url, token=token, retry=True)
        if not isinstance(payload, dict):
            raise TransportError(f"Malformed verification result: {payload!r}")

        result = VerificationResult(
            status=map_decision(payload.get("final_decision"), payload.get("review_required")),
            decision=payload.get("final_decision"),
            review_required=payload.get("review_required"),
            message=payload.get("message"),
            ui_data=payload.get("ui_data"),
            raw=payload,
        )
        logger.info(f"Verification {session_id} finished: {result.status.value}")
        return result

    # =========================================================================
    # Transport
    # =========================================================================

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout_ms / 1000,
            transport=self._transport,
        )

    def _evidence_url(self, path: str) -> str:
        return f"{self.config.api_base_url.rstrip('/')}{path}"

    def _headers(self, multipart: bool = False) -> Dict[str, str]:
        headers = {"x-api-key": self.credentials.api_key}
        # Multipart bodies need the transport-generated boundary
        if not multipart:
            headers["Content-Type"] = "application/json"
        if self.credentials.tenant_id:
            headers["X-Tenant-ID"] = self.credentials.tenant_id
        if self.credentials.user_id:
            headers["X-User-ID"] = self.credentials.user_id
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
        retry: bool = False,
    ) -> Any:
        """
        Perform one authenticated call and return the decoded JSON body.

        With retry=True, network failures, 5xx and 429 answers are retried up
        to ``retry_attempts`` more times with exponential backoff.
        """
        attempts = 1 + max(self.config.retry_attempts, 0) if retry else 1
        headers = self._headers(multipart=files is not None)
        params = {"token": token} if token else None

        for attempt in range(1, attempts + 1):
            try:
                return await self._send(method, url, headers, params, json, data, files)
            except RETRIABLE_ERRORS as e:
                if attempt >= attempts:
                    raise
                delay_ms = self.config.retry_delay_ms * (
                    self.config.retry_backoff_multiplier ** (attempt - 1)
                )
                logger.info(
                    f"{method} {url} failed ({e.code}), retry #{attempt} in {delay_ms:.0f}ms"
                )
                await self._sleep(delay_ms / 1000)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]],
        json: Any,
        data: Optional[Dict[str, Any]],
        files: Optional[Dict[str, Any]],
    ) -> Any:
        logger.debug(f"{method} {url}")
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    data=data,
                    files=files,
                )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            logger.error(f"URL construction error for {url}: {e}")
            raise TransportError("Invalid URL construction", cause=e) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Network error occurred: {e}", cause=e) from e

        if not response.is_success:
            error = classify_status(response.status_code, response.text)
            logger.warning(f"{method} {url} -> {response.status_code}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                "Invalid JSON response",
                status_code=response.status_code,
                body=response.text,
                cause=e,
            ) from e

    def _envelope(self, payload: Any) -> APIResponse:
        if payload is None:
            return APIResponse(success=False)
        if not isinstance(payload, dict):
            raise TransportError(f"Malformed response envelope: {payload!r}")
        return APIResponse.from_dict(payload)

    def _parse_session(self, payload: Any) -> Session:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise TransportError(f"Malformed session response: {payload!r}")
        try:
            return Session.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed session response: {payload!r}", cause=e) from e


def _file_part(file: EvidenceFile):
    return (file.filename, file.content, file.content_type)


def _version() -> str:
    from . import __version__

    return __version__
