# app/services/mapping.py
from __future__ import annotations

from typing import Dict, List, Optional

from ..schemas.jira_assets import AssetAttribute, attribute
from ..schemas.paycor import PaycorEmployee


def map_employee(
    employee: PaycorEmployee,
    attribute_ids: Dict[str, int],
    role_key: Optional[str] = None,
) -> List[AssetAttribute]:
    """
    Paycor employee -> Jira Assets Employee attributes.
    Attributes whose name is missing from ``attribute_ids`` are skipped.
    """
    values = {
        "Name": employee.full_name(),
        "Email": employee.email_address(),
        "Start Date": employee.hire_date(),
        "Status": employee.status_label(),
        "Job Role": role_key,
        "Dept": employee.department_name(),
    }
    out: List[AssetAttribute] = []
    for name, value in values.items():
        attr_id = attribute_ids.get(name)
        if attr_id is None or value in (None, ""):
            continue
        out.append(attribute(attr_id, value))
    return out
