from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from sqlalchemy.orm import Session

from quotehub.core.errors import PlanFeatureNotAllowed, PlanLimitExceeded
from quotehub.db import models

IN_FORCE_STATUSES = ("active", "trialing", "free")

LIMIT_KEYS = (
    "max_companies_owned",
    "max_quotes_per_month",
    "max_items_per_quote",
    "max_products_per_company",
    "max_shares_per_company",
    "max_shares_for_user",
)
FLAG_KEYS = (
    "allow_product_catalog",
    "allow_pdf_customization",
    "allow_company_sharing",
)

LIMIT_LABELS = {
    "max_companies_owned": "empresas",
    "max_quotes_per_month": "orcamentos por mes",
    "max_items_per_quote": "itens por orcamento",
    "max_products_per_company": "produtos por empresa",
    "max_shares_per_company": "compartilhamentos para esta empresa",
    "max_shares_for_user": "empresas compartilhadas com o usuario",
}
FLAG_LABELS = {
    "allow_product_catalog": "Catalogo de produtos",
    "allow_pdf_customization": "Personalizacao de PDF",
    "allow_company_sharing": "Compartilhamento de empresas",
}


class _Unlimited:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __reduce__(self):
        return (_Unlimited, ())


UNLIMITED = _Unlimited()

Limit = Union[int, _Unlimited]


def _parse_limit(value: Any) -> Limit:
    if value is None:
        return UNLIMITED
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        if value == -1:
            return UNLIMITED
        return max(value, 0)
    if isinstance(value, float) and value.is_integer():
        return _parse_limit(int(value))
    if isinstance(value, str):
        try:
            return _parse_limit(int(value.strip()))
        except ValueError:
            return 0
    # malformed limits restrict instead of granting
    return 0


@dataclass(frozen=True)
class PlanFeatures:
    """Typed view over a plan's ``features`` map.

    Absent, ``null`` and ``-1`` limits all become ``UNLIMITED``. Flags are only
    granted by a literal ``true``.
    """

    max_companies_owned: Limit = UNLIMITED
    max_quotes_per_month: Limit = UNLIMITED
    max_items_per_quote: Limit = UNLIMITED
    max_products_per_company: Limit = UNLIMITED
    max_shares_per_company: Limit = UNLIMITED
    max_shares_for_user: Limit = UNLIMITED
    allow_product_catalog: bool = False
    allow_pdf_customization: bool = False
    allow_company_sharing: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> "PlanFeatures":
        if not isinstance(raw, Mapping):
            return cls()
        values: dict[str, Any] = {}
        for key in LIMIT_KEYS:
            values[key] = _parse_limit(raw.get(key))
        for key in FLAG_KEYS:
            values[key] = raw.get(key) is True
        known = set(LIMIT_KEYS) | set(FLAG_KEYS)
        values["extra"] = {k: v for k, v in raw.items() if k not in known}
        return cls(**values)

    def limit(self, name: str) -> Limit:
        if name in LIMIT_KEYS:
            return getattr(self, name)
        return _parse_limit(self.extra.get(name))

    def flag(self, name: str) -> bool:
        if name in FLAG_KEYS:
            return getattr(self, name)
        return self.extra.get(name) is True

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        for key in LIMIT_KEYS:
            value = getattr(self, key)
            payload[key] = None if value is UNLIMITED else value
        for key in FLAG_KEYS:
            payload[key] = getattr(self, key)
        return payload


def _coerce(features: Any) -> Optional[PlanFeatures]:
    if features is None:
        return None
    if isinstance(features, PlanFeatures):
        return features
    if isinstance(features, models.Plan):
        return PlanFeatures.from_raw(features.features)
    return PlanFeatures.from_raw(features)


def has_feature(features: Any, name: str) -> bool:
    plan_features = _coerce(features)
    if plan_features is None:
        return False
    return plan_features.flag(name)


def limit_exceeded(features: Any, name: str, current: int) -> bool:
    # No plan in force: every quota-gated action is blocked.
    plan_features = _coerce(features)
    if plan_features is None:
        return True
    limit = plan_features.limit(name)
    if limit is UNLIMITED:
        return False
    return current >= limit


def ensure_feature(features: Any, name: str) -> None:
    if not has_feature(features, name):
        label = FLAG_LABELS.get(name, name)
        raise PlanFeatureNotAllowed(
            f"{label} nao esta disponivel no seu plano atual. Considere fazer upgrade."
        )


def ensure_within_limit(features: Any, name: str, current: int, message: Optional[str] = None) -> None:
    if not limit_exceeded(features, name, current):
        return
    plan_features = _coerce(features)
    if plan_features is None:
        raise PlanLimitExceeded("Usuario nao possui um plano ativo.")
    limit = plan_features.limit(name)
    label = LIMIT_LABELS.get(name, name)
    raise PlanLimitExceeded(
        message
        or f"Limite de {label} atingido para o plano atual ({limit}). Considere fazer upgrade."
    )


def resolve_in_force_plan(db: Session, user_id: str) -> Optional[models.Plan]:
    subscription = (
        db.query(models.Subscription)
        .filter(
            models.Subscription.user_id == user_id,
            models.Subscription.status.in_(IN_FORCE_STATUSES),
        )
        .order_by(models.Subscription.created_at.desc())
        .first()
    )
    if subscription is None:
        return None
    return subscription.plan


def resolve_plan_features(db: Session, user_id: str) -> Optional[PlanFeatures]:
    plan = resolve_in_force_plan(db, user_id)
    if plan is None:
        return None
    return PlanFeatures.from_raw(plan.features)
