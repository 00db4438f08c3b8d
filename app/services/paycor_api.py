# app/services/paycor_api.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import httpx

from ..config import Settings
from ..errors import UpstreamError
from ..schemas.paycor import EmployeesPage, PaycorEmployee
from .credentials import CredentialStore

logger = logging.getLogger(__name__)

REFRESH_TOKEN_KEY = "paycor.refresh_token"
_EXPIRY_SKEW = 60.0  # refresh this many seconds before the token expires


def _with_query(url: str, **params: str) -> str:
    parts = urlparse(url)
    q = dict(parse_qsl(parts.query))
    q.update({k: v for k, v in params.items() if v})
    return urlunparse(parts._replace(query=urlencode(q)))


def _snippet(resp: httpx.Response, n: int = 300) -> str:
    try:
        return resp.text[:n]
    except Exception:
        return ""


def _json(resp: httpx.Response, what: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamError("paycor", f"{what}: invalid JSON response", resp.status_code, _snippet(resp)) from e


class PaycorClient:
    """Paycor Public API: OAuth refresh-token grant + employee reads."""

    def __init__(
        self,
        settings: Settings,
        credentials: Optional[CredentialStore] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self._cfg = settings
        self._credentials = credentials
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(90.0), follow_redirects=True)
        self._lock = asyncio.Lock()
        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        stored = credentials.load(REFRESH_TOKEN_KEY) if credentials else None
        self._refresh_token = stored or settings.paycor_refresh_token

    async def aclose(self) -> None:
        await self._http.aclose()

    # ─────────────────── Token ───────────────────

    async def _token(self) -> str:
        async with self._lock:
            if self._access_token and time.monotonic() < self._expires_at - _EXPIRY_SKEW:
                return self._access_token
            await self._refresh()
            return self._access_token or ""

    async def _refresh(self) -> None:
        url = _with_query(self._cfg.paycor_token_url, **{"subscription-key": self._cfg.paycor_subscription_key})
        form = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
            "client_id": self._cfg.paycor_client_id,
            "client_secret": self._cfg.paycor_client_secret,
        }
        if self._cfg.paycor_scope_list:
            form["scope"] = " ".join(self._cfg.paycor_scope_list)
        logger.debug("refreshing Paycor access token")
        try:
            resp = await self._http.post(url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise UpstreamError("paycor", f"token request failed: {e}") from e
        if resp.status_code // 100 != 2:
            raise UpstreamError("paycor", "token refresh rejected", resp.status_code, _snippet(resp))
        data = _json(resp, "token response")
        if not isinstance(data, dict):
            raise UpstreamError("paycor", "token response is not a JSON object", resp.status_code, _snippet(resp))
        self._access_token = data.get("access_token")
        if not self._access_token:
            raise UpstreamError("paycor", "token response carried no access_token")
        self._expires_at = time.monotonic() + float(data.get("expires_in") or 3600)

        new_refresh = data.get("refresh_token")
        if new_refresh and new_refresh != self._refresh_token:
            # Paycor rotates refresh tokens; the old one stops working
            logger.info("Paycor issued a new refresh token (%s...)", new_refresh[:6])
            self._refresh_token = new_refresh
            if self._credentials:
                await asyncio.to_thread(self._credentials.save, REFRESH_TOKEN_KEY, new_refresh)

    # ─────────────────── Requests ───────────────────

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        token = await self._token()
        url = f"{self._cfg.paycor_api_base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Ocp-Apim-Subscription-Key": self._cfg.paycor_subscription_key,
            "Accept": "application/json",
        }
        logger.debug("Paycor %s %s", method, url)
        try:
            resp = await self._http.request(method, url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError("paycor", f"{method} {path} failed: {e}") from e
        logger.debug("Paycor %s %s -> %s", method, url, resp.status_code)
        if resp.status_code // 100 != 2:
            raise UpstreamError("paycor", f"{method} {path}", resp.status_code, _snippet(resp))
        return _json(resp, f"{method} {path}") if resp.content else {}

    async def fetch_employee(self, employee_id: str) -> PaycorEmployee:
        data = await self._request("GET", f"/employees/{employee_id}", params={"include": "All"})
        return PaycorEmployee.model_validate(data)

    async def fetch_all_employees(self) -> List[PaycorEmployee]:
        """Follow continuationToken pages for the configured legal entity."""
        le = self._cfg.paycor_legal_entity_id
        if not le:
            raise UpstreamError("paycor", "PAYCOR_LEGAL_ENTITY_ID is not configured")
        out: List[PaycorEmployee] = []
        token: Optional[str] = None
        page = 0
        while True:
            page += 1
            params: Dict[str, Any] = {"include": "All"}
            if token:
                params["continuationToken"] = token
            body = await self._request("GET", f"/legalentities/{le}/employees", params=params)
            parsed = EmployeesPage.model_validate(body)
            out.extend(PaycorEmployee.model_validate(r) for r in parsed.records)
            logger.info("Paycor employees page %d: %d records (%d total)", page, len(parsed.records), len(out))
            if not parsed.continuation_token:
                break
            token = parsed.continuation_token
        return out
