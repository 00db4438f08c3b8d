# app/schemas/jira_assets.py
from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AttributeValue(BaseModel):
    model_config = ConfigDict(extra="ignore")
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, v):
        return None if v is None else str(v)


class AssetAttribute(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    object_type_attribute_id: str = Field(alias="objectTypeAttributeId")
    values: List[AttributeValue] = Field(default_factory=list, alias="objectAttributeValues")

    @field_validator("object_type_attribute_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    def first_value(self) -> Optional[str]:
        return self.values[0].value if self.values else None


class AssetObject(BaseModel):
    """One object in Jira Assets (Employee, Role, ...)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    object_key: Optional[str] = Field(default=None, alias="objectKey")
    attributes: List[AssetAttribute] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return None if v is None else str(v)


def attribute(attribute_id: str | int, value: Optional[str]) -> AssetAttribute:
    return AssetAttribute(
        objectTypeAttributeId=str(attribute_id),
        objectAttributeValues=[AttributeValue(value=value)] if value not in (None, "") else [],
    )


def attributes_body(attrs: List[AssetAttribute]) -> list[dict]:
    return [a.model_dump(by_alias=True) for a in attrs]
