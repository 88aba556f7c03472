from quotehub.db import models

PRO_FEATURES = {
    "max_companies_owned": 3,
    "max_quotes_per_month": 100,
    "max_items_per_quote": 25,
    "max_products_per_company": 50,
    "max_shares_per_company": 2,
    "max_shares_for_user": 5,
    "allow_product_catalog": True,
    "allow_pdf_customization": True,
    "allow_company_sharing": True,
}


def make_user(db, email, name=None, status="active", password_hash="x"):
    user = models.User(
        name=name or email.split("@")[0].title(),
        email=email,
        password_hash=password_hash,
        role="user",
        status=status,
    )
    db.add(user)
    db.commit()
    return user


def make_plan(db, name, features):
    plan = models.Plan(name=name, price_cents=0, features=features)
    db.add(plan)
    db.commit()
    return plan


def subscribe(db, user, plan, status="active"):
    subscription = models.Subscription(user_id=user.id, plan_id=plan.id, status=status)
    db.add(subscription)
    db.commit()
    return subscription


def make_company(db, owner, name="Acme Servicos", status="active"):
    company = models.Company(owner_id=owner.id, name=name, status=status)
    db.add(company)
    db.commit()
    return company


def make_client(db, company, name="Cliente Alfa", document_number=None):
    client = models.Client(company_id=company.id, name=name, document_number=document_number)
    db.add(client)
    db.commit()
    return client


def make_product(db, company, name="Instalacao", unit_price_cents=15000, sku=None):
    product = models.Product(company_id=company.id, name=name, unit_price_cents=unit_price_cents, sku=sku)
    db.add(product)
    db.commit()
    return product


def make_share(db, company, user, permissions=None, status="active"):
    share = models.CompanyShare(
        company_id=company.id,
        shared_with_user_id=user.id,
        shared_by_user_id=company.owner_id,
        permissions=permissions or {},
        status=status,
    )
    db.add(share)
    db.commit()
    return share


