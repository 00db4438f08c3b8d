# app/services/jira_assets_api.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings
from ..errors import UpstreamError
from ..schemas.jira_assets import AssetAttribute, AssetObject, attribute, attributes_body

logger = logging.getLogger(__name__)


def _aql_quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


class JiraAssetsClient:
    """Jira Service Management Assets REST (v1) with basic auth."""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self._cfg = settings
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(60.0), follow_redirects=True)
        self._auth = httpx.BasicAuth(settings.jira_admin_email, settings.jira_api_token)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        url = f"{self._cfg.jira_assets_url.rstrip('/')}/{path.lstrip('/')}"
        logger.debug("Jira Assets %s %s", method, url)
        try:
            resp = await self._http.request(
                method, url, params=params, json=json, auth=self._auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError("jira", f"{method} {path} failed: {e}") from e
        if resp.status_code // 100 != 2:
            raise UpstreamError("jira", f"{method} {path}", resp.status_code, resp.text[:300])
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("jira", f"{method} {path}: invalid JSON response", resp.status_code, resp.text[:300]) from e

    async def check_connection(self) -> None:
        """Raise UpstreamError when Assets is unreachable or rejects our credentials."""
        await self._request("GET", "objectschema/list")

    async def find_objects_by_aql(self, aql: str) -> List[AssetObject]:
        data = await self._request("GET", "aql/objects", params={"aql": aql, "resultsPerPage": 100})
        entries = (data.get("objectEntries") or data.get("values") or []) if isinstance(data, dict) else []
        return [AssetObject.model_validate(e) for e in entries]

    async def find_employee_by_email(self, email: str) -> Optional[AssetObject]:
        aql = f"objectType = {_aql_quote(self._cfg.jira_employee_object_type_name)} AND Email = {_aql_quote(email)}"
        found = await self.find_objects_by_aql(aql)
        if len(found) > 1:
            logger.warning("%d Jira employee assets share email %s; using %s", len(found), email, found[0].id)
        return found[0] if found else None

    async def find_or_create_role(self, role_name: Optional[str]) -> Optional[str]:
        """Object key of the Role asset labelled ``role_name`` (created when missing)."""
        if not role_name:
            return None
        aql = f"objectType = {_aql_quote(self._cfg.jira_role_object_type_name)} AND Label = {_aql_quote(role_name)}"
        existing = await self.find_objects_by_aql(aql)
        if existing:
            return existing[0].object_key
        logger.info("Jira role %r not found, creating it", role_name)
        created = await self._create_object(
            self._cfg.jira_role_object_type_id,
            [attribute(self._cfg.jira_role_name_attribute_id, role_name)],
        )
        return created.object_key

    async def create_employee_asset(self, attrs: List[AssetAttribute]) -> AssetObject:
        return await self._create_object(self._cfg.jira_employee_object_type_id, attrs)

    async def update_employee_asset(self, object_id: str, attrs: List[AssetAttribute]) -> AssetObject:
        data = await self._request("PUT", f"object/{object_id}", json={"attributes": attributes_body(attrs)})
        obj = AssetObject.model_validate(data) if data else AssetObject(id=object_id)
        return obj if obj.id else AssetObject(id=object_id)

    async def _create_object(self, object_type_id: str, attrs: List[AssetAttribute]) -> AssetObject:
        if not object_type_id:
            raise UpstreamError("jira", "object type id is not configured")
        data = await self._request(
            "POST", "object/create",
            json={"objectTypeId": object_type_id, "attributes": attributes_body(attrs)},
        )
        obj = AssetObject.model_validate(data)
        logger.info("created Jira asset %s (%s)", obj.object_key or obj.id, object_type_id)
        return obj
