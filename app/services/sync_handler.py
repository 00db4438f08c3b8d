# app/services/sync_handler.py
"""Concrete sync handler: one Paycor employee event -> one Jira Assets Employee."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import HandlerError
from ..schemas.paycor import PaycorEmployee, PaycorWebhookPayload
from .event_store import Event
from .jira_assets_api import JiraAssetsClient
from .mapping import map_employee
from .paycor_api import PaycorClient
from .processor import SyncFailure, SyncOutcome, SyncSuccess

logger = logging.getLogger(__name__)

EMPLOYEE_EVENT_PREFIX = "employee."


class EmployeeSyncHandler:
    """
    Idempotent: the Jira asset is matched by e-mail, so replaying an event
    updates the same object instead of creating a second one.
    """

    def __init__(
        self,
        jira: Optional[JiraAssetsClient],
        paycor: Optional[PaycorClient],
        attribute_ids: Dict[str, int],
    ):
        self._jira = jira
        self._paycor = paycor
        self._attribute_ids = attribute_ids

    async def __call__(self, event: Event) -> SyncOutcome:
        if not event.event_type.lower().startswith(EMPLOYEE_EVENT_PREFIX):
            logger.info("event %s: type %s has no downstream mapping, skipping", event.id, event.event_type)
            return SyncSuccess(None)
        if self._jira is None:
            return SyncFailure("Jira Assets is not configured")
        try:
            employee = await self._resolve_employee(event)
            return SyncSuccess(await self._upsert(employee))
        except HandlerError as e:
            return SyncFailure(str(e))

    async def _resolve_employee(self, event: Event) -> PaycorEmployee:
        if not isinstance(event.payload, dict):
            raise HandlerError("payload is not a JSON object")
        try:
            envelope = PaycorWebhookPayload.model_validate(event.payload)
            employee = PaycorEmployee.model_validate(envelope.body)
        except PydanticValidationError as e:
            raise HandlerError(f"unreadable employee payload: {e.errors()[0].get('msg')}") from e

        if employee.has_identity():
            return employee
        employee_id = employee.id or envelope.employee_id()
        if not employee_id:
            raise HandlerError("payload carries neither employee data nor an employeeId")
        if self._paycor is None:
            raise HandlerError(f"employee {employee_id} must be fetched but Paycor is not configured")
        fetched = await self._paycor.fetch_employee(employee_id)
        if not fetched.email_address():
            raise HandlerError(f"Paycor employee {employee_id} has no email address")
        return fetched

    async def _upsert(self, employee: PaycorEmployee) -> str:
        email = employee.email_address() or ""
        role_key = await self._jira.find_or_create_role(employee.job_title())
        if employee.job_title() and not role_key:
            logger.warning("no Jira role key for job title %r; Job Role left empty", employee.job_title())
        attrs = map_employee(employee, self._attribute_ids, role_key)

        existing = await self._jira.find_employee_by_email(email)
        if existing and existing.id:
            await self._jira.update_employee_asset(existing.id, attrs)
            logger.info("updated Jira asset %s for %s", existing.id, email)
            return existing.id
        created = await self._jira.create_employee_asset(attrs)
        if not created.id:
            raise HandlerError(f"Jira create for {email} returned no object id")
        logger.info("created Jira asset %s for %s", created.id, email)
        return created.id
