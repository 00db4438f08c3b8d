# app/schemas/paycor.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


def _first_str(*values: Any) -> Optional[str]:
    for v in values:
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


class PaycorEmployee(BaseModel):
    """
    Paycor employee record (tolerant: webhook bodies and `include=All` API
    responses name the nested sections differently).
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "employeeId", "employee_id"))
    first_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("lastName", "last_name"))
    preferred_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("preferredName", "preferred_name"))
    work_email: Optional[str] = Field(default=None, validation_alias=AliasChoices("workEmail", "work_email"))
    personal_email: Optional[str] = Field(default=None, validation_alias=AliasChoices("personalEmail", "personal_email"))
    email: Optional[Dict[str, Any]] = None
    department: Optional[str] = None

    employment_dates: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("employmentDateData", "employmentDates", "employment_dates"),
    )
    position: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("positionData", "position", "departmentAndPosition"),
    )
    status: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("statusData", "employmentStatus", "status"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return None if v in (None, "") else str(v)

    @field_validator("email", mode="before")
    @classmethod
    def _coerce_email(cls, v):
        # Some payloads send a bare string, others {"emailAddress": "...", "type": "Work"}
        if isinstance(v, str):
            return {"emailAddress": v}
        return v

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        if isinstance(v, str):
            return {"status": v}
        return v

    # ---------------- Convenience helpers ----------------

    def email_address(self) -> Optional[str]:
        nested = (self.email or {}).get("emailAddress") if self.email else None
        addr = _first_str(self.work_email, nested, self.personal_email)
        return addr.lower() if addr else None

    def full_name(self) -> str:
        first = self.preferred_name or self.first_name or ""
        parts = [first, self.last_name or ""]
        return " ".join([p for p in parts if p]).strip() or "Unknown"

    def hire_date(self) -> Optional[str]:
        d = self.employment_dates or {}
        return _first_str(d.get("rehireDate"), d.get("hireDate"), d.get("adjustedHireDate"))

    def termination_date(self) -> Optional[str]:
        return _first_str((self.employment_dates or {}).get("terminationDate"))

    def job_title(self) -> Optional[str]:
        p = self.position or {}
        return _first_str(p.get("jobTitle"), p.get("title"), p.get("positionTitle"))

    def department_name(self) -> Optional[str]:
        p = self.position or {}
        return _first_str(self.department, p.get("department"), p.get("departmentName"))

    def status_label(self) -> str:
        """Jira 'Status' select value: Active unless Paycor says otherwise."""
        raw = _first_str((self.status or {}).get("status"), (self.status or {}).get("employeeStatus"))
        if self.termination_date() or (raw and raw.lower() in ("terminated", "inactive")):
            return "Inactive"
        return "Active"

    def has_identity(self) -> bool:
        """Enough data to map without calling Paycor back."""
        return bool(self.email_address() and (self.first_name or self.last_name))


class PaycorWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: str = Field(validation_alias=AliasChoices("eventType", "event_type"))
    event_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("eventId", "event_id"))
    body: Dict[str, Any] = Field(default_factory=dict)

    def employee_id(self) -> Optional[str]:
        extra = self.model_extra or {}
        return _first_str(
            str(self.body.get("employeeId") or self.body.get("id") or "") or None,
            str(extra.get("employeeId") or "") or None,
        )


class EmployeesPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    records: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("records", "items"))
    continuation_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("continuationToken", "continuation_token"))
