import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quotehub.core.authorization import UserActor
from quotehub.db import models

from factories import PRO_FEATURES, make_company, make_client, make_plan, make_user, subscribe


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture()
def pro_plan(db_session):
    return make_plan(db_session, "Profissional", dict(PRO_FEATURES))


@pytest.fixture()
def owner(db_session, pro_plan):
    user = make_user(db_session, "owner@example.com", name="Owner")
    subscribe(db_session, user, pro_plan)
    return user


@pytest.fixture()
def owner_actor(owner):
    return UserActor(user_id=owner.id)


@pytest.fixture()
def company(db_session, owner):
    return make_company(db_session, owner)


@pytest.fixture()
def client_record(db_session, company):
    return make_client(db_session, company)


@pytest.fixture()
def collaborator(db_session, pro_plan):
    user = make_user(db_session, "colab@example.com", name="Colab")
    subscribe(db_session, user, pro_plan)
    return user


@pytest.fixture()
def stranger(db_session):
    return make_user(db_session, "stranger@example.com", name="Stranger")
