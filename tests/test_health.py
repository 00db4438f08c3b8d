"""GET /health reports store and Jira Assets reachability."""

import httpx

from app.errors import PersistenceError
from app.services.jira_assets_api import JiraAssetsClient


def _jira(settings, status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/objectschema/list")
        return httpx.Response(status_code, json={"objectschemas": []})

    return JiraAssetsClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_healthy(client, services, settings):
    services.jira = _jira(settings, 200)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "version": "1.2.3"}


def test_jira_unreachable(client, services, settings):
    services.jira = _jira(settings, 401)
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["message"] == "Jira connection failed"


def test_jira_not_configured(client, services):
    services.jira = None
    assert client.get("/health").status_code == 503


def test_store_unreachable(client, services, settings, monkeypatch):
    services.jira = _jira(settings, 200)

    def down():
        raise PersistenceError("unable to open database file")

    monkeypatch.setattr(services.store, "ping", down)
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["message"] == "Database connection failed"


def test_jira_non_json_success_is_unhealthy(client, services, settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>", headers={"Content-Type": "text/html"})

    services.jira = JiraAssetsClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["message"] == "Jira connection failed"
