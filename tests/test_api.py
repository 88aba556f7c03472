import pytest
from fastapi.testclient import TestClient

from quotehub.core.config import settings
from quotehub.core.security import create_access_token, get_password_hash
from quotehub.db import models
from quotehub.db.init_db import ensure_plans
from quotehub.db.session import get_db
from quotehub.main import app

from factories import make_company, make_user


@pytest.fixture()
def api(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


def test_health(api):
    assert api.get("/api/health").json() == {"status": "ok"}


def test_register_login_and_me(api, db_session):
    ensure_plans(db_session)
    res = api.post(
        "/api/v1/auth/register",
        json={"name": "Maria", "email": "maria@example.com", "password": "segredo123"},
    )
    assert res.status_code == 201

    res = api.post("/api/v1/auth/login", json={"email": "MARIA@example.com", "password": "segredo123"})
    assert res.status_code == 200
    token = res.json()["access_token"]

    me = api.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.json()
    assert body["plan"]["name"] == "Gratuito"
    assert body["features"]["max_quotes_per_month"] == 10

    duplicate = api.post(
        "/api/v1/auth/register",
        json={"name": "Maria", "email": "maria@example.com", "password": "segredo123"},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "AUTH_EMAIL_EXISTS"


def test_wrong_password_is_unauthorized(api, db_session):
    make_user(db_session, "joao@example.com", password_hash=get_password_hash("certa123"))
    res = api.post("/api/v1/auth/login", json={"email": "joao@example.com", "password": "errada"})
    assert res.status_code == 401


def test_missing_token_is_unauthorized(api, company):
    res = api.get(f"/api/v1/companies/{company.id}/quotes")
    assert res.status_code == 401


def test_quote_flow_over_http(api, owner, company, client_record):
    headers = _auth(owner)
    res = api.post(
        f"/api/v1/companies/{company.id}/quotes",
        headers=headers,
        json={
            "client_id": client_record.id,
            "quote_number": "2025-001",
            "discount_type": "percentage",
            "discount_value": 10,
            "items": [{"description": "Higienizacao", "quantity": "1", "unit_price_cents": 10000}],
        },
    )
    assert res.status_code == 201
    quote = res.json()
    assert quote["discount"] == 1000
    assert quote["total"] == 9000
    assert quote["client_name"] == client_record.name
    assert len(quote["items"]) == 1

    res = api.post(
        f"/api/v1/companies/{company.id}/quotes",
        headers=headers,
        json={"client_id": client_record.id, "quote_number": "2025-001"},
    )
    assert res.status_code == 409
    assert res.json()["error"] == "QUOTE_NUMBER_CONFLICT"

    status_url = f"/api/v1/companies/{company.id}/quotes/{quote['id']}/status"
    assert api.patch(status_url, headers=headers, json={"status": "sent"}).status_code == 200
    res = api.patch(status_url, headers=headers, json={"status": "draft"})
    assert res.status_code == 422
    assert res.json()["error"] == "INVALID_STATUS_TRANSITION"

    listing = api.get(f"/api/v1/companies/{company.id}/quotes", headers=headers, params={"status": "sent"})
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total"] == 1

    stats = api.get(f"/api/v1/companies/{company.id}/quotes/stats", headers=headers)
    assert stats.json()["by_status"]["sent"] == 1


def test_domain_errors_use_json_envelope(api, owner, company):
    res = api.get(f"/api/v1/companies/{company.id}/quotes/does-not-exist", headers=_auth(owner))
    assert res.status_code == 404
    assert res.json() == {
        "statusCode": 404,
        "error": "QUOTE_NOT_FOUND",
        "message": "Orcamento nao encontrado nesta empresa",
    }


def test_malformed_payload_is_invalid_input(api, owner, company):
    res = api.post(
        f"/api/v1/companies/{company.id}/quotes",
        headers=_auth(owner),
        json={"items": "nope"},
    )
    assert res.status_code == 400
    assert res.json()["error"] == "INVALID_INPUT"


def test_item_quantity_below_minimum_is_invalid_input(api, owner, company, client_record):
    res = api.post(
        f"/api/v1/companies/{company.id}/quotes",
        headers=_auth(owner),
        json={
            "client_id": client_record.id,
            "items": [{"description": "Parafuso", "quantity": "0.001", "unit_price_cents": 10}],
        },
    )
    assert res.status_code == 400
    assert res.json()["error"] == "INVALID_INPUT"


def test_stranger_cannot_read_company(api, company, stranger):
    res = api.get(f"/api/v1/companies/{company.id}", headers=_auth(stranger))
    assert res.status_code == 403


def test_administrative_override(api, db_session, owner, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_OVERRIDE_SECRET", "break-glass")
    make_user(db_session, settings.ADMIN_USER_EMAIL, name="Master")
    company = make_company(db_session, owner, name="Parada", status="inactive")

    headers = {"X-Admin-Secret": "break-glass", "X-Company-Id": company.id}
    res = api.patch(f"/api/v1/companies/{company.id}/status", headers=headers, json={"status": "active"})
    assert res.status_code == 200
    assert res.json()["status"] == "active"

    audit = db_session.query(models.AuditLog).filter(models.AuditLog.action == "ADMIN_OVERRIDE_ACCESS").count()
    assert audit == 1

    other = make_company(db_session, owner, name="Outra")
    res = api.get(f"/api/v1/companies/{other.id}", headers=headers)
    assert res.status_code == 403


def test_administrative_override_wrong_secret(api, company, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_OVERRIDE_SECRET", "break-glass")
    headers = {"X-Admin-Secret": "guess", "X-Company-Id": company.id}
    assert api.get(f"/api/v1/companies/{company.id}", headers=headers).status_code == 401


def test_administrative_override_disabled_without_secret(api, company, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_OVERRIDE_SECRET", "")
    headers = {"X-Admin-Secret": "", "X-Company-Id": company.id}
    assert api.get(f"/api/v1/companies/{company.id}", headers=headers).status_code == 401


def test_administrative_override_fails_closed_without_admin_account(api, company, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_OVERRIDE_SECRET", "break-glass")
    headers = {"X-Admin-Secret": "break-glass", "X-Company-Id": company.id}
    assert api.get(f"/api/v1/companies/{company.id}", headers=headers).status_code == 403
