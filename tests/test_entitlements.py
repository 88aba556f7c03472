from datetime import datetime, timedelta

import pytest

from quotehub.core.errors import PlanFeatureNotAllowed, PlanLimitExceeded
from quotehub.services.entitlements import (
    UNLIMITED,
    PlanFeatures,
    ensure_feature,
    ensure_within_limit,
    has_feature,
    limit_exceeded,
    resolve_in_force_plan,
    resolve_plan_features,
)

from factories import make_plan, make_user, subscribe


def test_absent_null_and_minus_one_are_unlimited():
    features = PlanFeatures.from_raw({"max_quotes_per_month": -1, "max_items_per_quote": None})
    assert features.max_quotes_per_month is UNLIMITED
    assert features.max_items_per_quote is UNLIMITED
    assert features.max_products_per_company is UNLIMITED
    assert not limit_exceeded(features, "max_quotes_per_month", 10_000)


def test_limit_comparison():
    features = PlanFeatures.from_raw({"max_quotes_per_month": 10})
    assert not limit_exceeded(features, "max_quotes_per_month", 9)
    assert limit_exceeded(features, "max_quotes_per_month", 10)
    assert limit_exceeded(features, "max_quotes_per_month", 11)


def test_missing_plan_fails_closed():
    assert limit_exceeded(None, "max_quotes_per_month", 0)
    assert not has_feature(None, "allow_product_catalog")
    with pytest.raises(PlanLimitExceeded):
        ensure_within_limit(None, "max_quotes_per_month", 0)


def test_flags_require_literal_true():
    features = PlanFeatures.from_raw({"allow_product_catalog": "true", "allow_company_sharing": True})
    assert not has_feature(features, "allow_product_catalog")
    assert has_feature(features, "allow_company_sharing")
    assert not has_feature(features, "allow_pdf_customization")
    with pytest.raises(PlanFeatureNotAllowed):
        ensure_feature(features, "allow_product_catalog")


def test_malformed_features_map_is_tolerated():
    features = PlanFeatures.from_raw("not-a-map")
    assert features.max_quotes_per_month is UNLIMITED
    assert not features.allow_product_catalog

    malformed = PlanFeatures.from_raw({"max_quotes_per_month": "muitos", "max_items_per_quote": "5"})
    assert malformed.max_quotes_per_month == 0
    assert malformed.max_items_per_quote == 5


def test_unknown_keys_are_kept():
    features = PlanFeatures.from_raw({"priority_support": True, "max_users": 4})
    assert has_feature(features, "priority_support")
    assert features.limit("max_users") == 4
    assert features.as_dict()["priority_support"] is True


def test_limit_message_names_the_limit():
    features = PlanFeatures.from_raw({"max_quotes_per_month": 10})
    with pytest.raises(PlanLimitExceeded) as exc:
        ensure_within_limit(features, "max_quotes_per_month", 10)
    assert "(10)" in exc.value.message
    assert exc.value.code == "PLAN_LIMIT_EXCEEDED"
    assert exc.value.status_code == 422


def test_resolves_most_recent_in_force_subscription(db_session):
    user = make_user(db_session, "plans@example.com")
    old_plan = make_plan(db_session, "Antigo", {"max_quotes_per_month": 1})
    new_plan = make_plan(db_session, "Novo", {"max_quotes_per_month": 50})
    canceled_plan = make_plan(db_session, "Cancelado", {"max_quotes_per_month": 999})

    old = subscribe(db_session, user, old_plan)
    old.created_at = datetime.utcnow() - timedelta(days=30)
    new = subscribe(db_session, user, new_plan, status="trialing")
    new.created_at = datetime.utcnow() - timedelta(days=1)
    subscribe(db_session, user, canceled_plan, status="canceled")
    db_session.commit()

    assert resolve_in_force_plan(db_session, user.id).name == "Novo"
    assert resolve_plan_features(db_session, user.id).max_quotes_per_month == 50


def test_user_without_subscription_has_no_features(db_session):
    user = make_user(db_session, "noplan@example.com")
    assert resolve_in_force_plan(db_session, user.id) is None
    assert resolve_plan_features(db_session, user.id) is None
