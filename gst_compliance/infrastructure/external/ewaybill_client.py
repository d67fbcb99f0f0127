# gst_compliance/infrastructure/external/ewaybill_client.py
"""
NIC e-WayBill API client.

Handles authentication (encrypted username/password/app-key handshake),
e-WayBill generation, fetch, vehicle (Part-B) updates and cancellation.

Wire protocol:
  Auth:       POST {base}/authenticate?action=ACCESSTOKEN
  Operations: POST {base}/ewayapi/   body {"action": ..., "data": <AES(SEK)>}
  Fetch:      GET  {base}/ewayapi/GetEwayBill?ewbNo=...

All endpoints require:
  Headers: client-id, client-secret, gstin
  Authenticated endpoints also require: authtoken (header)

One client owns one session (token + SEK + expiry). Concurrent callers
share it; a handshake runs as a single task that every waiter awaits, so
they all receive the same new session or the same error.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict

import httpx

from gst_compliance.config.settings import settings
from gst_compliance.core.errors import ConfigurationError, GstComplianceError, ValidationError
from gst_compliance.domain.models.ewaybill import (
    CancelReason,
    CancelRequest,
    CancelResponse,
    EWayBillDetails,
    EWayBillRequest,
    EWayBillResponse,
    VehicleUpdateRequest,
    VehicleUpdateResponse,
)
from gst_compliance.infrastructure.external import nic_crypto
from gst_compliance.infrastructure.external.nic_crypto import CryptoError

logger = logging.getLogger("ewaybill_client")

SANDBOX_BASE_URL = "https://gst.charteredinfo.com/ewayapi"
PRODUCTION_BASE_URL = "https://api.ewaybillgst.gov.in/ewayapi"

TOKEN_VALIDITY = timedelta(hours=6)
# Refresh slightly early so a token never expires mid-request.
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

ACTION_ACCESS_TOKEN = "ACCESSTOKEN"
ACTION_GENERATE = "GENEWAYBILL"
ACTION_UPDATE_VEHICLE = "UPDATEVEHICLE"
ACTION_CANCEL = "CANEWB"

INVALID_TOKEN_CODE = "238"

ERROR_CODES: Dict[str, str] = {
    "100": "Invalid JSON payload",
    "101": "Invalid username",
    "102": "Invalid password",
    "106": "Invalid client-id or client-secret",
    "108": "Invalid login credentials",
    "238": "Invalid auth token",
    "312": "E-way bill cannot be cancelled after 24 hours of generation",
    "325": "Could not retrieve data for the e-way bill number",
    "604": "Distance between pincodes is beyond the allowed tolerance",
    "702": "Transport distance exceeds the allowed limit",
}


# ---------- Errors ----------

class EWayBillError(GstComplianceError):
    """Raised when the e-WayBill API call fails."""

    kind = "ewaybill"

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response: dict | None = None,
        error_codes: list[str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response or {}
        self.error_codes = error_codes or []


class EWayBillAuthError(EWayBillError):
    """The authority rejected the handshake."""

    kind = "auth"


class EWayBillRejectedError(EWayBillError):
    """Business/protocol rejection (status 0 or a 4xx). Never retried."""

    kind = "rejected"


class EWayBillCryptoError(EWayBillError):
    """A payload could not be decrypted with the current keys."""

    kind = "crypto"


class EWayBillUnavailableError(EWayBillError):
    """Network failure, timeout or 5xx after the bounded retries."""

    kind = "unavailable"


def describe_error_codes(codes: list[str]) -> str:
    parts = [f"{code}: {ERROR_CODES[code]}" if code in ERROR_CODES else code for code in codes]
    return "Authority error code(s) " + ", ".join(parts)


def parse_authority_error(body: dict) -> tuple[str, list[str]]:
    """Return (message, error codes) from a ``status: 0`` response body."""
    error = body.get("error")
    if isinstance(error, str):
        # NIC sends the error object base64-encoded on some endpoints.
        try:
            error = json.loads(base64.b64decode(error, validate=True))
        except ValueError:
            return error, []
    if not isinstance(error, dict):
        message = body.get("message") or "e-WayBill request rejected"
        return str(message), []

    codes = [c.strip() for c in str(error.get("errorCodes", "")).split(",") if c.strip()]
    message = error.get("message") or error.get("errorMessage")
    if message:
        return str(message), codes
    if codes:
        return describe_error_codes(codes), codes
    return "e-WayBill request rejected", codes


def _is_success(body: dict) -> bool:
    return str(body.get("status", "")) == "1"


# ---------- Config & session ----------

@dataclass(frozen=True)
class EWayBillConfig:
    client_id: str
    client_secret: str
    gstin: str
    username: str
    password: str
    public_key: str
    is_production: bool = False
    timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_seconds: float = 0.5

    @classmethod
    def from_settings(cls) -> "EWayBillConfig":
        return cls(
            client_id=settings.EWAYBILL_CLIENT_ID,
            client_secret=settings.EWAYBILL_CLIENT_SECRET,
            gstin=settings.EWAYBILL_GSTIN or settings.STORE_GSTIN,
            username=settings.EWAYBILL_USERNAME,
            password=settings.EWAYBILL_PASSWORD,
            public_key=settings.EWAYBILL_PUBLIC_KEY,
            is_production=settings.EWAYBILL_PRODUCTION,
            timeout_seconds=settings.EWAYBILL_TIMEOUT_SECONDS,
            max_retries=settings.EWAYBILL_MAX_RETRIES,
            backoff_seconds=settings.EWAYBILL_BACKOFF_SECONDS,
        )

    @property
    def base_url(self) -> str:
        return PRODUCTION_BASE_URL if self.is_production else SANDBOX_BASE_URL

    def is_configured(self) -> bool:
        """Check if all e-WayBill credentials are available."""
        return bool(
            self.client_id
            and self.client_secret
            and self.gstin
            and self.username
            and self.password
            and self.public_key
        )

    def __repr__(self) -> str:
        return (
            f"EWayBillConfig(client_id={self.client_id!r}, gstin={self.gstin!r}, "
            f"username={self.username!r}, is_production={self.is_production})"
        )


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class EWayBillSession:
    auth_token: str
    sek: bytes
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at - TOKEN_REFRESH_MARGIN

    def __repr__(self) -> str:
        return f"EWayBillSession(expires_at={self.expires_at.isoformat()})"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Client ----------

class EWayBillClient:
    """Client for the NIC e-WayBill API."""

    def __init__(
        self,
        config: EWayBillConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.config = config or EWayBillConfig.from_settings()
        self.base = self.config.base_url.rstrip("/")
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._session: EWayBillSession | None = None
        self._auth_task: asyncio.Future[EWayBillSession] | None = None

    @property
    def session(self) -> EWayBillSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._auth_task is not None:
            return SessionState.AUTHENTICATING
        if self._session is None:
            return SessionState.UNAUTHENTICATED
        if self._session.is_expired(self._clock()):
            return SessionState.EXPIRED
        return SessionState.AUTHENTICATED

    # ----------------------------------------------------------------
    # Header helpers
    # ----------------------------------------------------------------

    def _base_headers(self) -> Dict[str, str]:
        """Base headers required on every e-WayBill API call."""
        return {
            "client-id": self.config.client_id,
            "client-secret": self.config.client_secret,
            "gstin": self.config.gstin,
        }

    def _auth_headers(self, session: EWayBillSession) -> Dict[str, str]:
        """Headers for authenticated e-WayBill API calls."""
        h = self._base_headers()
        h["authtoken"] = session.auth_token
        return h

    # ----------------------------------------------------------------
    # HTTP transport
    # ----------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Dict[str, str] | None = None,
        json_body: dict | None = None,
    ) -> Dict[str, Any]:
        """Make an HTTP request, retrying transient failures with backoff.

        Network errors, timeouts and 5xx responses are retried up to
        ``max_retries`` times. 4xx responses are raised immediately.
        """
        url = f"{self.base}{path}"
        attempts = self.config.max_retries + 1
        last_error = "no attempt made"

        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds, transport=self._transport
        ) as client:
            for attempt in range(1, attempts + 1):
                logger.info("e-WayBill %s %s (attempt %d/%d)", method, path, attempt, attempts)
                try:
                    r = await client.request(
                        method, url, headers=headers, json=json_body, params=params,
                    )
                except httpx.TimeoutException:
                    last_error = "e-WayBill API timeout"
                except httpx.TransportError as exc:
                    last_error = f"e-WayBill network error: {exc.__class__.__name__}"
                else:
                    if r.status_code < 500:
                        return self._parse_response(method, path, r)
                    last_error = f"e-WayBill API error: {r.status_code}"

                logger.warning("%s on %s %s", last_error, method, path)
                if attempt < attempts:
                    await self._sleep(self.config.backoff_seconds * (2 ** (attempt - 1)))

        raise EWayBillUnavailableError(f"{last_error} after {attempts} attempt(s)")

    def _parse_response(self, method: str, path: str, r: httpx.Response) -> Dict[str, Any]:
        try:
            body = r.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        logger.info("e-WayBill response status=%d", r.status_code)
        if r.status_code >= 400:
            message, codes = parse_authority_error(body)
            logger.error(
                "e-WayBill HTTP error: %s %s -> %d: %s", method, path, r.status_code, message,
            )
            raise EWayBillRejectedError(
                message, status_code=r.status_code, response=body, error_codes=codes,
            )
        return body

    # ----------------------------------------------------------------
    # Authentication
    # ----------------------------------------------------------------

    async def authenticate(self) -> EWayBillSession:
        """Run the handshake now, replacing any cached session."""
        return await self._ensure_session(stale=self._session, force=True)

    async def _ensure_session(
        self,
        stale: EWayBillSession | None = None,
        force: bool = False,
    ) -> EWayBillSession:
        """Return a usable session, authenticating at most once per caller wave.

        ``stale`` is the session the caller found unusable; if another caller
        already replaced it, that new session is returned without a second
        handshake. Callers arriving while a handshake is in flight join it and
        get its session or its exception.
        """
        session = self._session
        if not force and self._usable(session, stale):
            return session  # type: ignore[return-value]

        if self._auth_task is None:
            self._auth_task = asyncio.ensure_future(self._run_handshake())
        # shield: one waiter being cancelled must not cancel the others' handshake
        return await asyncio.shield(self._auth_task)

    async def _run_handshake(self) -> EWayBillSession:
        try:
            self._session = await self._handshake()
            return self._session
        except BaseException:
            self._session = None
            raise
        finally:
            self._auth_task = None

    def _usable(self, session: EWayBillSession | None, stale: EWayBillSession | None) -> bool:
        return (
            session is not None
            and session is not stale
            and not session.is_expired(self._clock())
        )

    async def _handshake(self) -> EWayBillSession:
        if not self.config.is_configured():
            raise ConfigurationError("e-WayBill credentials not configured")

        public_key = nic_crypto.load_public_key(self.config.public_key)
        app_key = nic_crypto.generate_app_key()
        login = {
            "action": ACTION_ACCESS_TOKEN,
            "username": self.config.username,
            "password": self.config.password,
            "app_key": base64.b64encode(app_key).decode(),
        }
        try:
            encrypted_login = nic_crypto.rsa_encrypt(
                base64.b64encode(json.dumps(login).encode()), public_key,
            )
        except ValueError as exc:
            raise EWayBillCryptoError(f"could not encrypt login payload: {exc}") from exc

        try:
            resp = await self._request(
                "POST",
                "/authenticate",
                headers=self._base_headers(),
                params={"action": ACTION_ACCESS_TOKEN},
                json_body={"action": ACTION_ACCESS_TOKEN, "data": encrypted_login},
            )
        except EWayBillRejectedError as exc:
            raise EWayBillAuthError(
                str(exc), status_code=exc.status_code, response=exc.response,
                error_codes=exc.error_codes,
            ) from exc

        if not _is_success(resp):
            message, codes = parse_authority_error(resp)
            logger.error("e-WayBill authentication rejected: %s", message)
            raise EWayBillAuthError(message, response=resp, error_codes=codes)

        try:
            token_data = resp
            if resp.get("data"):
                token_data = nic_crypto.decrypt_payload(resp["data"], app_key)
            auth_token = token_data.get("authtoken") or ""
            sek = nic_crypto.decrypt_sek(token_data.get("sek") or "", app_key)
        except CryptoError as exc:
            raise EWayBillCryptoError(f"could not decrypt session key: {exc}") from exc

        if not auth_token:
            raise EWayBillAuthError("Failed to obtain e-WayBill auth token", response=resp)

        logger.info("Authenticated with e-WayBill API for GSTIN %s", self.config.gstin)
        return EWayBillSession(
            auth_token=auth_token,
            sek=sek,
            expires_at=self._clock() + TOKEN_VALIDITY,
        )

    # ----------------------------------------------------------------
    # Encrypted round trips
    # ----------------------------------------------------------------

    async def _call(
        self,
        send: Callable[[EWayBillSession], Any],
        replay_on_crypto: bool = True,
    ) -> Dict[str, Any]:
        """Run ``send`` with a live session.

        A crypto failure or an invalid-token rejection forces one fresh
        handshake and one replay; a second failure propagates.

        An undecryptable reply means the authority already processed the
        request. With ``replay_on_crypto=False`` (generation) the session is
        dropped and the error raised instead, since a replay could issue a
        second e-way bill for the same document.
        """
        session = await self._ensure_session()
        try:
            return await send(session)
        except EWayBillCryptoError as exc:
            if not replay_on_crypto:
                if self._session is session:
                    self._session = None
                logger.error("e-WayBill reply could not be decrypted (%s); not replaying", exc)
                raise EWayBillCryptoError(
                    f"{exc}; the request may have been processed, check before retrying",
                    response=exc.response,
                ) from exc
            logger.warning("e-WayBill payload decryption failed (%s); re-authenticating", exc)
        except EWayBillRejectedError as exc:
            if INVALID_TOKEN_CODE not in exc.error_codes:
                raise
            logger.warning("e-WayBill auth token rejected; re-authenticating")

        session = await self._ensure_session(stale=session)
        return await send(session)

    def _decrypt_data(self, resp: Dict[str, Any], session: EWayBillSession) -> Dict[str, Any]:
        if not _is_success(resp):
            message, codes = parse_authority_error(resp)
            logger.error("e-WayBill request rejected: %s", message)
            raise EWayBillRejectedError(message, response=resp, error_codes=codes)
        data = resp.get("data")
        if not data:
            return {}
        try:
            return nic_crypto.decrypt_payload(data, session.sek)
        except CryptoError as exc:
            raise EWayBillCryptoError(str(exc), response=resp) from exc

    async def _post_action(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async def send(session: EWayBillSession) -> Dict[str, Any]:
            body = {"action": action, "data": nic_crypto.encrypt_payload(payload, session.sek)}
            resp = await self._request(
                "POST", "/ewayapi/", headers=self._auth_headers(session), json_body=body,
            )
            return self._decrypt_data(resp, session)

        return await self._call(send, replay_on_crypto=action != ACTION_GENERATE)

    # ----------------------------------------------------------------
    # Core e-WayBill operations
    # ----------------------------------------------------------------

    async def generate_ewaybill(self, request: EWayBillRequest) -> EWayBillResponse:
        """Generate a new e-WayBill.

        The request is validated locally first (distance cap, GSTINs, items);
        nothing is sent if validation fails.
        """
        from gst_compliance.domain.services.ewaybill_flow import validate_ewaybill_request

        validate_ewaybill_request(request)
        data = await self._post_action(ACTION_GENERATE, request.to_wire())
        resp = EWayBillResponse.model_validate(data)
        logger.info("Generated e-WayBill %s for doc %s", resp.ewb_no, request.doc_no)
        return resp

    async def get_ewaybill(self, ewb_no: int | str) -> EWayBillDetails:
        """Fetch details of an e-WayBill by number."""
        ewb = _check_ewb_no(ewb_no)

        async def send(session: EWayBillSession) -> Dict[str, Any]:
            resp = await self._request(
                "GET",
                "/ewayapi/GetEwayBill",
                headers=self._auth_headers(session),
                params={"ewbNo": str(ewb)},
            )
            return self._decrypt_data(resp, session)

        data = await self._call(send)
        return EWayBillDetails.model_validate(data)

    async def update_vehicle(self, request: VehicleUpdateRequest) -> VehicleUpdateResponse:
        """Update Part-B (vehicle details) of an existing e-WayBill."""
        _check_ewb_no(request.ewb_no)
        if not request.vehicle_no.strip():
            raise ValidationError("vehicle number is required", field="vehicle_no")
        data = await self._post_action(ACTION_UPDATE_VEHICLE, request.to_wire())
        logger.info("Updated vehicle on e-WayBill %s", request.ewb_no)
        return VehicleUpdateResponse.model_validate(data)

    async def cancel_ewaybill(
        self,
        ewb_no: int | str,
        reason: CancelReason | int,
        remarks: str = "",
    ) -> CancelResponse:
        """Cancel an existing e-WayBill.

        The 24-hour cancellation window is enforced by the authority; its
        rejection is surfaced as ``EWayBillRejectedError``.
        """
        ewb = _check_ewb_no(ewb_no)
        try:
            reason = CancelReason(int(reason))
        except ValueError as exc:
            raise ValidationError(f"invalid cancel reason: {reason!r}", field="reason") from exc

        request = CancelRequest(ewb_no=ewb, cancel_rsn_code=reason, cancel_rmrk=remarks)
        data = await self._post_action(ACTION_CANCEL, request.to_wire())
        logger.info("Cancelled e-WayBill %s", ewb)
        return CancelResponse.model_validate(data)


def _check_ewb_no(ewb_no: int | str) -> int:
    text = str(ewb_no).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValidationError(f"invalid e-way bill number: {ewb_no!r}", field="ewb_no")
    return int(text)
