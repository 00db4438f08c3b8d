# app/config.py
from __future__ import annotations

import json
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Jira Assets attribute ids for the Employee object type; override with JIRA_ATTRIBUTE_IDS.
DEFAULT_ATTRIBUTE_IDS: dict[str, int] = {
    "Key": 81,
    "Name": 82,
    "Created": 83,
    "Updated": 84,
    "Atlassian Account ID": 85,
    "Manager Name": 86,
    "Job Role": 87,
    "Dept": 88,
    "Email": 89,
    "Employment Type": 90,
    "Start Date": 91,
    "Status": 92,
    "Employee Status": 93,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "PeopleSync"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    # Database
    database_url: str = "sqlite:///./sync_queue.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_create_all: bool = True

    # Queue processing
    batch_size: int = Field(default=10, ge=1)
    retry_policy: Literal["terminal", "requeue"] = "terminal"
    max_retries: int = Field(default=5, ge=0)
    retry_backoff_seconds: float = Field(default=30.0, ge=0)
    retry_backoff_max_seconds: float = Field(default=3600.0, ge=0)
    stale_processing_seconds: float = Field(default=900.0, ge=0)
    worker_enabled: bool = False
    worker_poll_interval: float = Field(default=5.0, gt=0)

    # Inbound webhook / admin
    webhook_secret: str = ""
    webhook_signature_header: str = "X-Webhook-Signature"
    admin_token: str = ""
    trusted_hosts: str = "*"

    # Secrets at rest (comma-separated Fernet keys, first = primary)
    encryption_keys: str = ""

    # Paycor (HR provider)
    paycor_client_id: str = ""
    paycor_client_secret: str = ""
    paycor_subscription_key: str = ""
    paycor_refresh_token: str = ""
    paycor_token_url: str = ""
    paycor_api_base_url: str = ""
    paycor_legal_entity_id: str = ""
    paycor_scopes: str = ""

    # Jira Assets (asset tracking)
    jira_assets_url: str = ""
    jira_admin_email: str = ""
    jira_api_token: str = ""
    jira_employee_object_type_id: str = ""
    jira_employee_object_type_name: str = "Employee"
    jira_role_object_type_id: str = ""
    jira_role_object_type_name: str = "Role"
    jira_role_name_attribute_id: str = "78"
    jira_attribute_ids: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_ATTRIBUTE_IDS))

    @field_validator("jira_attribute_ids", mode="before")
    @classmethod
    def _merge_attribute_ids(cls, v):
        if v in (None, ""):
            return dict(DEFAULT_ATTRIBUTE_IDS)
        if isinstance(v, str):
            v = json.loads(v)
        merged = dict(DEFAULT_ATTRIBUTE_IDS)
        merged.update({str(k): int(x) for k, x in dict(v).items()})
        return merged

    @property
    def paycor_configured(self) -> bool:
        return all([
            self.paycor_client_id,
            self.paycor_client_secret,
            self.paycor_subscription_key,
            self.paycor_refresh_token,
            self.paycor_token_url,
            self.paycor_api_base_url,
        ])

    @property
    def jira_configured(self) -> bool:
        return all([self.jira_assets_url, self.jira_admin_email, self.jira_api_token])

    @property
    def trusted_hosts_list(self) -> list[str]:
        return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()] or ["*"]

    @property
    def paycor_scope_list(self) -> list[str]:
        return [s for s in (p.strip() for p in self.paycor_scopes.replace(",", " ").split()) if s]


@lru_cache
def get_settings() -> Settings:
    return Settings()
