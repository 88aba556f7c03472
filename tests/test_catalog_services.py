import pytest

from quotehub.core.authorization import (
    PERMISSION_CREATE_CLIENTS,
    PERMISSION_CREATE_QUOTES,
    PERMISSION_MANAGE_PRODUCTS,
    PERMISSION_VIEW_CLIENTS,
    UserActor,
)
from quotehub.core.errors import (
    Conflict,
    Forbidden,
    InvalidInput,
    PlanFeatureNotAllowed,
    PlanLimitExceeded,
    ProductNotFound,
)
from quotehub.db import models
from quotehub.services import clients as client_service
from quotehub.services import products as product_service
from quotehub.services import quotes as quote_service

from factories import make_company, make_plan, make_share, make_user, subscribe


def test_create_product(db_session, owner_actor, company):
    product = product_service.create_product(
        db_session,
        owner_actor,
        company.id,
        {"name": " Filtro G4 ", "sku": "FLT-G4", "unit": "un", "unit_price_cents": 4590},
    )
    assert product.name == "Filtro G4"
    assert product.is_active
    assert product_service.count_products(db_session, company.id) == 1


def test_duplicate_sku_is_a_conflict(db_session, owner, owner_actor, company):
    product_service.create_product(db_session, owner_actor, company.id, {"name": "A", "sku": "X1"})
    with pytest.raises(Conflict) as exc:
        product_service.create_product(db_session, owner_actor, company.id, {"name": "B", "sku": "X1"})
    assert exc.value.code == "PRODUCT_SKU_CONFLICT"

    other = make_company(db_session, owner, name="Outra")
    product_service.create_product(db_session, owner_actor, other.id, {"name": "A", "sku": "X1"})


def test_catalog_requires_plan_feature(db_session):
    user = make_user(db_session, "free@example.com")
    subscribe(db_session, user, make_plan(db_session, "Gratuito", {"allow_product_catalog": False}))
    company = make_company(db_session, user)
    with pytest.raises(PlanFeatureNotAllowed):
        product_service.create_product(db_session, UserActor(user.id), company.id, {"name": "A"})


def test_product_limit(db_session):
    user = make_user(db_session, "small@example.com")
    features = {"allow_product_catalog": True, "max_products_per_company": 1}
    subscribe(db_session, user, make_plan(db_session, "Pequeno", features))
    company = make_company(db_session, user)
    actor = UserActor(user.id)
    product_service.create_product(db_session, actor, company.id, {"name": "A"})
    with pytest.raises(PlanLimitExceeded):
        product_service.create_product(db_session, actor, company.id, {"name": "B"})


def test_shared_user_needs_manage_products(db_session, company, collaborator):
    make_share(db_session, company, collaborator, permissions={PERMISSION_CREATE_QUOTES: True})
    with pytest.raises(Forbidden):
        product_service.create_product(db_session, UserActor(collaborator.id), company.id, {"name": "A"})

    share = db_session.query(models.CompanyShare).one()
    share.permissions = {PERMISSION_MANAGE_PRODUCTS: True}
    db_session.commit()
    product = product_service.create_product(db_session, UserActor(collaborator.id), company.id, {"name": "A"})
    assert product.company_id == company.id


def test_invalid_price_is_rejected(db_session, owner_actor, company):
    with pytest.raises(InvalidInput):
        product_service.create_product(db_session, owner_actor, company.id, {"name": "A", "unit_price_cents": -1})
    with pytest.raises(InvalidInput):
        product_service.create_product(db_session, owner_actor, company.id, {"name": "A", "unit_price_cents": 10.5})


def test_update_and_delete_product_keep_quote_snapshots(db_session, owner_actor, company, client_record):
    product = product_service.create_product(
        db_session, owner_actor, company.id, {"name": "Visita tecnica", "unit_price_cents": 20000}
    )
    quote = quote_service.create_quote(
        db_session,
        owner_actor,
        company.id,
        {"client_id": client_record.id, "items": [{"product_id": product.id, "quantity": 1}]},
    )

    product_service.update_product(db_session, owner_actor, company.id, product.id, {"unit_price_cents": 25000})
    product_service.delete_product(db_session, owner_actor, company.id, product.id)

    db_session.expire_all()
    item = db_session.get(models.Quote, quote.id).items[0]
    assert item.product_id is None
    assert item.description == "Visita tecnica"
    assert item.unit_price_cents == 20000
    with pytest.raises(ProductNotFound):
        product_service.get_product(db_session, owner_actor, company.id, product.id)


def test_list_products_search(db_session, owner_actor, company):
    product_service.create_product(db_session, owner_actor, company.id, {"name": "Filtro", "sku": "F-1"})
    product_service.create_product(db_session, owner_actor, company.id, {"name": "Correia", "sku": "C-1", "is_active": False})
    assert [p.name for p in product_service.list_products(db_session, owner_actor, company.id, search="fil")] == ["Filtro"]
    assert len(product_service.list_products(db_session, owner_actor, company.id, active_only=True)) == 1


def test_client_document_unique_per_company(db_session, owner, owner_actor, company):
    client_service.create_client(
        db_session, owner_actor, company.id, {"name": "Padaria", "document_number": "12.345.678/0001-90"}
    )
    with pytest.raises(Conflict) as exc:
        client_service.create_client(
            db_session, owner_actor, company.id, {"name": "Outra", "document_number": "12345678000190"}
        )
    assert exc.value.code == "CLIENT_DOCUMENT_CONFLICT"

    other = make_company(db_session, owner, name="Outra")
    client = client_service.create_client(
        db_session, owner_actor, other.id, {"name": "Padaria", "document_number": "12345678000190"}
    )
    assert client.document_number == "12345678000190"


def test_shared_user_client_permissions(db_session, company, client_record, collaborator):
    share = make_share(db_session, company, collaborator, permissions={PERMISSION_VIEW_CLIENTS: False})
    actor = UserActor(collaborator.id)
    with pytest.raises(Forbidden):
        client_service.list_clients(db_session, actor, company.id)
    with pytest.raises(Forbidden):
        client_service.create_client(db_session, actor, company.id, {"name": "Novo"})

    share.permissions = {PERMISSION_VIEW_CLIENTS: True, PERMISSION_CREATE_CLIENTS: True}
    db_session.commit()
    client_service.create_client(db_session, actor, company.id, {"name": "Novo"})
    names = [c.name for c in client_service.list_clients(db_session, actor, company.id)]
    assert names == ["Cliente Alfa", "Novo"]


def test_update_client(db_session, owner_actor, company, client_record):
    client = client_service.update_client(
        db_session, owner_actor, company.id, client_record.id, {"email": "contato@alfa.com", "address_city": "Recife"}
    )
    assert client.email == "contato@alfa.com"
    assert client.address_city == "Recife"
    with pytest.raises(InvalidInput):
        client_service.update_client(db_session, owner_actor, company.id, client_record.id, {"name": " "})
