"""
VAT aggregation and money rounding.

Pure functions, no I/O. Amounts accumulate at full Decimal precision and
are rounded to cents (half away from zero) only when they leave
aggregate(). Floats are converted through their shortest repr so that
894.505 means 894.505 and not its binary approximation.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from arca_client.domain.models import InvoiceItem, Number, VatAggregate, VatEntry
from arca_client.errors import ValidationError

CENT = Decimal("0.01")
_ZERO = Decimal(0)
_HUNDRED = Decimal(100)

# VAT percentage → ARCA AlicIva Id
VAT_RATE_CODES: dict[Decimal, int] = {
    Decimal("0"): 3,
    Decimal("10.5"): 4,
    Decimal("21"): 5,
    Decimal("27"): 6,
}


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_money(value: Number) -> Decimal:
    """Round to 2 decimals, ties away from zero: 894.505 → 894.51."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Number) -> str:
    """Two-decimal string as WSFE expects it ("1500.00")."""
    return f"{round_money(value):.2f}"


def vat_rate_code(rate: Number) -> int:
    """Map a VAT percentage to ARCA's AlicIva Id, or raise ValidationError."""
    code = VAT_RATE_CODES.get(to_decimal(rate))
    if code is None:
        raise ValidationError(
            f"Invalid VAT rate: {rate}%",
            details={"valid_rates": [str(r) for r in VAT_RATE_CODES]},
            hint="Use one of Argentina's official rates: 0, 10.5, 21 or 27",
        )
    return code


def aggregate(items: tuple[InvoiceItem, ...] | list[InvoiceItem], prices_include_tax: bool = False) -> VatAggregate:
    """
    Compute subtotal, tax, total and the per-rate breakdown for `items`.

    When `prices_include_tax` is set, each unit price is gross and the net
    price is recovered as price / (1 + rate/100); the total is then the raw
    gross sum so the recovered net price cannot introduce rounding drift.

    Items without a rate count as 0%. They only open a 0% bucket when some
    other item carries a non-zero rate.

    Every output amount is rounded on its own from the full-precision sums:
    subtotal, tax, total, and each bucket's base and amount. Rounded parts
    therefore need not add up. subtotal + tax can differ from total by a cent,
    and the bucket bases can differ from subtotal by a cent per bucket.
    """
    has_taxed_item = any(
        item.vat_rate is not None and to_decimal(item.vat_rate) != _ZERO for item in items
    )

    buckets: dict[Decimal, tuple[Decimal, Decimal]] = {}
    subtotal = _ZERO
    tax = _ZERO
    gross = _ZERO

    for item in items:
        quantity = to_decimal(item.quantity)
        unit_price = to_decimal(item.unit_price)
        rate = to_decimal(item.vat_rate) if item.vat_rate is not None else _ZERO

        net_price = unit_price
        if prices_include_tax and rate:
            net_price = unit_price / (1 + rate / _HUNDRED)

        base = quantity * net_price
        amount = base * rate / _HUNDRED

        subtotal += base
        tax += amount
        gross += quantity * unit_price

        if item.vat_rate is not None or has_taxed_item:
            current_base, current_amount = buckets.get(rate, (_ZERO, _ZERO))
            buckets[rate] = (current_base + base, current_amount + amount)

    total = gross if prices_include_tax else subtotal + tax

    return VatAggregate(
        subtotal=round_money(subtotal),
        tax=round_money(tax),
        total=round_money(total),
        by_rate=tuple(
            VatEntry(rate=rate, tax_base=round_money(base), amount=round_money(amount))
            for rate, (base, amount) in buckets.items()
        ),
    )
