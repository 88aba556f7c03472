import pytest

from quotehub.core.authorization import (
    PERMISSION_CREATE_QUOTES,
    PERMISSION_VIEW_CLIENTS,
    AdministrativeOverride,
    UserActor,
)
from quotehub.core.errors import (
    CompanyInactive,
    Conflict,
    Forbidden,
    InvalidInput,
    PlanLimitExceeded,
    UserNotFound,
)
from quotehub.db import models
from quotehub.services import companies as company_service
from quotehub.services import quotes as quote_service
from quotehub.services import shares as share_service

from factories import PRO_FEATURES, make_company, make_plan, make_user, subscribe


def test_share_company_with_user(db_session, owner_actor, company, collaborator):
    share = share_service.create_share(
        db_session,
        owner_actor,
        company.id,
        {"email": "COLAB@example.com", "permissions": {PERMISSION_CREATE_QUOTES: True}},
    )
    assert share.shared_with_user_id == collaborator.id
    assert share.permissions[PERMISSION_CREATE_QUOTES] is True
    assert share.permissions[PERMISSION_VIEW_CLIENTS] is True
    assert share.status == "active"

    shared = share_service.list_shared_companies(db_session, collaborator.id)
    assert [row["company_id"] for row in shared] == [company.id]


def test_cannot_share_with_self_or_twice(db_session, owner_actor, company, collaborator):
    with pytest.raises(InvalidInput):
        share_service.create_share(db_session, owner_actor, company.id, {"email": "owner@example.com"})

    share_service.create_share(db_session, owner_actor, company.id, {"email": "colab@example.com"})
    with pytest.raises(Conflict):
        share_service.create_share(db_session, owner_actor, company.id, {"email": "colab@example.com"})


def test_unknown_recipient_and_permission(db_session, owner_actor, company, collaborator):
    with pytest.raises(UserNotFound):
        share_service.create_share(db_session, owner_actor, company.id, {"email": "ghost@example.com"})
    with pytest.raises(InvalidInput):
        share_service.create_share(
            db_session, owner_actor, company.id, {"email": "colab@example.com", "permissions": {"can_fly": True}}
        )


def test_only_owner_manages_shares(db_session, owner_actor, company, collaborator, stranger):
    share_service.create_share(
        db_session, owner_actor, company.id, {"email": "colab@example.com", "permissions": {PERMISSION_CREATE_QUOTES: True}}
    )
    with pytest.raises(Forbidden):
        share_service.create_share(db_session, UserActor(collaborator.id), company.id, {"email": "stranger@example.com"})
    with pytest.raises(Forbidden):
        share_service.list_shares(db_session, UserActor(collaborator.id), company.id)


def test_owner_share_limit(db_session, owner_actor, company, pro_plan):
    for index in range(2):
        user = make_user(db_session, f"guest{index}@example.com")
        subscribe(db_session, user, pro_plan)
        share_service.create_share(db_session, owner_actor, company.id, {"email": user.email})

    third = make_user(db_session, "guest3@example.com")
    subscribe(db_session, third, pro_plan)
    with pytest.raises(PlanLimitExceeded):
        share_service.create_share(db_session, owner_actor, company.id, {"email": third.email})


def test_recipient_share_limit(db_session, owner, owner_actor, company):
    guest = make_user(db_session, "guest@example.com")
    subscribe(db_session, guest, make_plan(db_session, "Convidado", {"max_shares_for_user": 1}))
    share_service.create_share(db_session, owner_actor, company.id, {"email": guest.email})

    second = make_company(db_session, owner, name="Segunda")
    with pytest.raises(PlanLimitExceeded):
        share_service.create_share(db_session, owner_actor, second.id, {"email": guest.email})


def test_recipient_without_plan_fails_closed(db_session, owner_actor, company, stranger):
    with pytest.raises(PlanLimitExceeded):
        share_service.create_share(db_session, owner_actor, company.id, {"email": stranger.email})


def test_removing_share_revokes_access(db_session, owner_actor, company, collaborator, client_record):
    share = share_service.create_share(
        db_session, owner_actor, company.id, {"email": "colab@example.com", "permissions": {PERMISSION_CREATE_QUOTES: True}}
    )
    share_service.delete_share(db_session, owner_actor, company.id, share.id)
    with pytest.raises(Forbidden):
        quote_service.create_quote(
            db_session,
            UserActor(collaborator.id),
            company.id,
            {"client_id": client_record.id, "items": []},
        )


def test_update_share_permissions(db_session, owner_actor, company, collaborator):
    share = share_service.create_share(db_session, owner_actor, company.id, {"email": "colab@example.com"})
    updated = share_service.update_share_permissions(
        db_session, owner_actor, company.id, share.id, {PERMISSION_CREATE_QUOTES: True}
    )
    assert updated.permissions[PERMISSION_CREATE_QUOTES] is True


def test_create_company_respects_plan(db_session):
    user = make_user(db_session, "founder@example.com")
    subscribe(db_session, user, make_plan(db_session, "Um", {"max_companies_owned": 1}))
    actor = UserActor(user.id)

    company = company_service.create_company(db_session, actor, {"name": "Primeira", "document_number": "11.222.333/0001-44"})
    assert company.owner_id == user.id
    assert company.status == "active"
    assert company.document_number == "11222333000144"
    with pytest.raises(PlanLimitExceeded):
        company_service.create_company(db_session, actor, {"name": "Segunda"})


def test_company_document_is_unique(db_session, owner_actor, owner):
    company_service.create_company(db_session, owner_actor, {"name": "A", "document_number": "99"})
    with pytest.raises(Conflict):
        company_service.create_company(db_session, owner_actor, {"name": "B", "document_number": "99"})


def test_override_cannot_create_companies(db_session, company):
    actor = AdministrativeOverride(admin_user_id="admin", company_id=company.id)
    with pytest.raises(Forbidden):
        company_service.create_company(db_session, actor, {"name": "X"})


def test_owner_deactivates_and_reactivates(db_session, owner_actor, company, client_record):
    company_service.update_company_status(db_session, owner_actor, company.id, "inactive")
    with pytest.raises(CompanyInactive):
        quote_service.create_quote(db_session, owner_actor, company.id, {"client_id": client_record.id})
    with pytest.raises(CompanyInactive):
        company_service.update_company(db_session, owner_actor, company.id, {"name": "Novo nome"})

    company = company_service.update_company_status(db_session, owner_actor, company.id, "active")
    assert company.status == "active"
    with pytest.raises(InvalidInput):
        company_service.update_company_status(db_session, owner_actor, company.id, "archived")

    actions = [a.action for a in db_session.query(models.AuditLog).all()]
    assert actions.count("COMPANY_STATUS_CHANGED") == 2


def test_usage_summary(db_session, owner_actor, company, client_record):
    quote_service.create_quote(db_session, owner_actor, company.id, {"client_id": client_record.id})
    summary = company_service.usage_summary(db_session, company)
    assert summary["plan"] == "Profissional"
    assert summary["usage"] == {"quotes_this_month": 1, "products": 0, "shares": 0}
    assert summary["limits"]["max_quotes_per_month"] == PRO_FEATURES["max_quotes_per_month"]


def test_resharing_after_revocation_is_a_conflict(db_session, owner_actor, company, collaborator):
    share = share_service.create_share(db_session, owner_actor, company.id, {"email": "colab@example.com"})
    share.status = "revoked"
    db_session.commit()

    with pytest.raises(Conflict) as exc:
        share_service.create_share(
            db_session, owner_actor, company.id, {"email": "colab@example.com", "permissions": {PERMISSION_CREATE_QUOTES: True}}
        )
    assert exc.value.code == "SHARE_CONFLICT"
    assert db_session.query(models.CompanyShare).one().status == "revoked"
