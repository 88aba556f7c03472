"""Quote monetary computation.

All amounts are integers in minor currency units (centavos). Quantities may be
fractional. Arithmetic runs in ``Decimal`` and rounds half away from zero.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from quotehub.core.errors import InvalidInput

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED_AMOUNT = "fixed_amount"
DISCOUNT_NONE = "none"
DISCOUNT_TYPES = {DISCOUNT_PERCENTAGE, DISCOUNT_FIXED_AMOUNT, DISCOUNT_NONE}

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineItem:
    quantity: Decimal
    unit_price: int


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: int
    discount: int
    tax: int
    total: int


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"Valor numerico invalido para {field}")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Valor numerico invalido para {field}")
    if not number.is_finite():
        raise InvalidInput(f"Valor numerico invalido para {field}")
    return number


def _round(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_line_item(quantity: Any, unit_price: Any) -> LineItem:
    qty = _to_decimal(quantity, "quantity")
    price = _to_decimal(unit_price, "unit_price")
    if qty < 0:
        raise InvalidInput("Quantidade nao pode ser negativa")
    if price < 0:
        raise InvalidInput("Preco unitario nao pode ser negativo")
    if price != price.to_integral_value():
        raise InvalidInput("Preco unitario deve ser informado em centavos inteiros")
    return LineItem(quantity=qty, unit_price=int(price))


def line_total(quantity: Any, unit_price: Any) -> int:
    """Rounded total of a single line, stored on the quote item for history."""
    item = to_line_item(quantity, unit_price)
    return _round(item.quantity * item.unit_price)


def normalize_discount_type(discount_type: Optional[str]) -> Optional[str]:
    if discount_type is None or discount_type == DISCOUNT_NONE:
        return None
    if discount_type not in DISCOUNT_TYPES:
        raise InvalidInput("Tipo de desconto invalido")
    return discount_type


def compute_totals(
    items: Iterable[Any],
    discount_type: Optional[str] = None,
    discount_value: Any = None,
    tax_amount: Any = None,
) -> QuoteTotals:
    """Price a quote.

    ``items`` holds ``LineItem`` objects or anything exposing ``quantity`` and
    ``unit_price`` (or ``unit_price_cents``). The subtotal is summed unrounded
    and rounded once; per-line rounding is only used for display.

    A percentage rate is limited to [0, 100] and the applied discount to
    [0, subtotal], so the total never goes negative. Tax is a flat amount
    used as given.
    """
    line_items = [_coerce_item(item) for item in items]
    discount_type = normalize_discount_type(discount_type)

    tax = 0
    if tax_amount is not None:
        tax_decimal = _to_decimal(tax_amount, "tax_amount")
        if tax_decimal < 0:
            raise InvalidInput("Valor de imposto nao pode ser negativo")
        tax = _round(tax_decimal)

    directive = Decimal(0)
    if discount_type is not None and discount_value is not None:
        directive = _to_decimal(discount_value, "discount_value")

    raw_subtotal = sum((item.quantity * item.unit_price for item in line_items), Decimal(0))
    subtotal = _round(raw_subtotal)

    discount = 0
    if discount_type == DISCOUNT_PERCENTAGE:
        rate = max(Decimal(0), min(_HUNDRED, directive))
        discount = _round(Decimal(subtotal) * rate / _HUNDRED)
    elif discount_type == DISCOUNT_FIXED_AMOUNT:
        discount = _round(directive)

    discount = min(max(discount, 0), subtotal)
    total = subtotal - discount + tax

    return QuoteTotals(subtotal=subtotal, discount=discount, tax=tax, total=total)


def _coerce_item(item: Any) -> LineItem:
    if isinstance(item, LineItem):
        if item.quantity < 0 or item.unit_price < 0:
            raise InvalidInput("Quantidade e preco unitario nao podem ser negativos")
        return item
    if isinstance(item, dict):
        quantity = item.get("quantity")
        unit_price = item.get("unit_price", item.get("unit_price_cents"))
    else:
        quantity = getattr(item, "quantity", None)
        unit_price = getattr(item, "unit_price", getattr(item, "unit_price_cents", None))
    if quantity is None or unit_price is None:
        raise InvalidInput("Item sem quantidade ou preco unitario")
    return to_line_item(quantity, unit_price)
