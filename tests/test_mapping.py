"""Paycor employee -> Jira Assets attribute mapping."""

from app.config import DEFAULT_ATTRIBUTE_IDS, Settings
from app.schemas.paycor import PaycorEmployee, PaycorWebhookPayload
from app.services.mapping import map_employee


def _values(attrs):
    return {a.object_type_attribute_id: a.first_value() for a in attrs}


def test_full_record():
    emp = PaycorEmployee.model_validate({
        "employeeId": 77,
        "firstName": "Grace",
        "preferredName": "Amazing Grace",
        "lastName": "Hopper",
        "email": {"emailAddress": "GRACE@navy.test", "type": "Work"},
        "employmentDateData": {"hireDate": "2020-01-01", "rehireDate": "2023-06-01"},
        "positionData": {"jobTitle": "Admiral", "department": "Fleet"},
        "statusData": {"status": "Active"},
    })
    values = _values(map_employee(emp, DEFAULT_ATTRIBUTE_IDS, "ROLE-3"))
    assert values == {
        "82": "Amazing Grace Hopper",
        "89": "grace@navy.test",
        "91": "2023-06-01",
        "92": "Active",
        "87": "ROLE-3",
        "88": "Fleet",
    }


def test_terminated_employee_is_inactive():
    emp = PaycorEmployee.model_validate({
        "firstName": "Old",
        "workEmail": "old@example.test",
        "employmentDates": {"hireDate": "2010-01-01", "terminationDate": "2020-01-01"},
    })
    assert _values(map_employee(emp, DEFAULT_ATTRIBUTE_IDS))["92"] == "Inactive"


def test_empty_values_and_unknown_ids_are_skipped():
    emp = PaycorEmployee.model_validate({"firstName": "Solo", "workEmail": "solo@example.test"})
    ids = {"Name": 1, "Email": 2}
    assert _values(map_employee(emp, ids)) == {"1": "Solo", "2": "solo@example.test"}


def test_attribute_id_overrides_merge_with_defaults():
    settings = Settings(_env_file=None, jira_attribute_ids='{"Email": 189}')
    assert settings.jira_attribute_ids["Email"] == 189
    assert settings.jira_attribute_ids["Name"] == 82


def test_webhook_envelope_employee_id():
    env = PaycorWebhookPayload.model_validate({"eventType": "employee.updated", "body": {"employeeId": 55}})
    assert env.employee_id() == "55"
