# gst_compliance/domain/services/gst_calculator.py
"""
GST computation for the intra-state (CGST + SGST) / inter-state (IGST)
two-rate model, plus Indian-numbering amount-in-words.

Every money amount is rounded to paise half-up. Amounts arrive as
``int | float | str | Decimal``; floats go through their shortest decimal
repr before rounding, which removes binary drift such as ``1.005`` being
stored as ``1.00499999...``.

Each tax component is rounded on its own, so an intra-state CGST + SGST
pair can differ from the equivalent IGST by one paisa.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from gst_compliance.core.errors import ValidationError
from gst_compliance.domain.models.tax import DocumentTotals, ItemInput, TaxCalculationResult, TaxLineItem

PAISE = Decimal("0.01")
HUNDRED = Decimal("100")

# ---------- Rates & HSN ----------

GST_RATES = {
    "JEWELRY": Decimal("3.0"),  # gold, silver, platinum jewellery
    "MAKING_CHARGES": Decimal("5.0"),  # labour billed separately
    "PRECIOUS_STONES": Decimal("0.25"),  # rough diamonds
    "IMITATION": Decimal("18.0"),
}

HSN_CODES = {
    "GOLD_JEWELRY_STUDDED": "711311",
    "GOLD_JEWELRY_PLAIN": "711319",
    "SILVER_JEWELRY": "711311",
    "PLATINUM_JEWELRY": "711311",
    "IMITATION_JEWELRY": "711790",
    "GOLD_UNWROUGHT": "710812",
    "SILVER_UNWROUGHT": "710691",
    "DEFAULT": "7113",
}

DEFAULT_GST_RATE = GST_RATES["JEWELRY"]


def hsn_for_product(category: str | None = None, material: str | None = None) -> str:
    if not category and not material:
        return HSN_CODES["DEFAULT"]

    material = (material or "").lower()
    if "gold" in material:
        return HSN_CODES["GOLD_JEWELRY_PLAIN"]
    if "silver" in material:
        return HSN_CODES["SILVER_JEWELRY"]
    if "imitation" in material or "artificial" in material:
        return HSN_CODES["IMITATION_JEWELRY"]
    return HSN_CODES["DEFAULT"]


def gst_rate_for_hsn(hsn: str | None) -> Decimal:
    hsn = (hsn or "").strip()
    if hsn.startswith("7117"):
        return GST_RATES["IMITATION"]
    if hsn.startswith("7102"):
        return GST_RATES["PRECIOUS_STONES"]
    return GST_RATES["JEWELRY"]


# ---------- Rounding helpers ----------


def to_decimal(value, field: str = "amount") -> Decimal:
    """Convert an incoming number to ``Decimal``; ``None`` is zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() gives the shortest repr for floats
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


# ---------- Tax computation ----------


def is_inter_state(seller_state_code: str, buyer_state_code: str) -> bool:
    # An empty buyer state (walk-in / unregistered) is treated as intra-state,
    # which means inter-state tax is never applied to such a sale.
    seller = (seller_state_code or "").strip()
    buyer = (buyer_state_code or "").strip()
    return seller != buyer and buyer != ""


def compute_tax(
    taxable_amount,
    seller_state_code: str,
    buyer_state_code: str,
    gst_rate=DEFAULT_GST_RATE,
    cess_rate=0,
) -> TaxCalculationResult:
    taxable = to_decimal(taxable_amount, "taxable_amount")
    rate = to_decimal(gst_rate, "gst_rate")
    cess = to_decimal(cess_rate, "cess_rate")

    if rate < 0 or rate > HUNDRED:
        raise ValidationError("gst_rate must be between 0 and 100", field="gst_rate")
    if cess < 0:
        raise ValidationError("cess_rate must not be negative", field="cess_rate")

    inter_state = is_inter_state(seller_state_code, buyer_state_code)

    if inter_state:
        cgst_rate = sgst_rate = Decimal("0")
        igst_rate = rate
    else:
        cgst_rate = sgst_rate = rate / 2
        igst_rate = Decimal("0")

    cgst_amount = round_money(taxable * cgst_rate / HUNDRED)
    sgst_amount = round_money(taxable * sgst_rate / HUNDRED)
    igst_amount = round_money(taxable * igst_rate / HUNDRED)
    cess_amount = round_money(taxable * cess / HUNDRED)

    total_tax = round_money(cgst_amount + sgst_amount + igst_amount + cess_amount)
    taxable_rounded = round_money(taxable)

    return TaxCalculationResult(
        taxable_amount=taxable_rounded,
        cgst_rate=cgst_rate,
        cgst_amount=cgst_amount,
        sgst_rate=sgst_rate,
        sgst_amount=sgst_amount,
        igst_rate=igst_rate,
        igst_amount=igst_amount,
        cess_rate=cess,
        cess_amount=cess_amount,
        total_tax=total_tax,
        grand_total=round_money(taxable_rounded + total_tax),
        is_inter_state=inter_state,
    )


def compute_line_item(
    item: ItemInput,
    seller_state_code: str,
    buyer_state_code: str,
) -> TaxLineItem:
    """Compute one document line; taxable value is ``qty * price - discount``."""
    quantity = to_decimal(item.quantity, "quantity")
    unit_price = to_decimal(item.unit_price, "unit_price")
    discount = to_decimal(item.discount, "discount")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", field="quantity")
    if discount < 0:
        raise ValidationError("discount must not be negative", field="discount")

    taxable = round_money(quantity * unit_price - discount)
    if taxable < 0:
        raise ValidationError("discount exceeds line value", field="discount")

    tax = compute_tax(taxable, seller_state_code, buyer_state_code, item.gst_rate, item.cess_rate)
    return TaxLineItem(
        quantity=quantity,
        unit_price=unit_price,
        taxable_amount=tax.taxable_amount,
        gst_rate=to_decimal(item.gst_rate, "gst_rate"),
        cess_rate=tax.cess_rate,
        cgst_rate=tax.cgst_rate,
        cgst_amount=tax.cgst_amount,
        sgst_rate=tax.sgst_rate,
        sgst_amount=tax.sgst_amount,
        igst_rate=tax.igst_rate,
        igst_amount=tax.igst_amount,
        cess_amount=tax.cess_amount,
        hsn_code=item.hsn_code or HSN_CODES["DEFAULT"],
        description=item.description,
        unit=item.unit or "NOS",
    )


def compute_line_items(
    items: list[ItemInput],
    seller_state_code: str,
    buyer_state_code: str,
) -> tuple[TaxLineItem, ...]:
    return tuple(compute_line_item(i, seller_state_code, buyer_state_code) for i in items)


def summarize_lines(lines) -> DocumentTotals:
    """Document totals from already-rounded lines; grand total is taxable + tax."""
    return DocumentTotals.from_lines(lines)


# ---------- Amount in words (Indian numbering) ----------

_ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
]

_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

# (divisor, label), largest first; crore is 10^7, lakh 10^5
_GROUPS = [
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
    (100, "Hundred"),
]


def _number_to_words(num: int) -> str:
    if num == 0:
        return ""
    if num < 20:
        return _ONES[num]
    if num < 100:
        rest = num % 10
        return _TENS[num // 10] + (f" {_ONES[rest]}" if rest else "")

    for divisor, label in _GROUPS:
        if num >= divisor:
            head, rest = divmod(num, divisor)
            words = f"{_number_to_words(head)} {label}"
            if rest:
                words += f" {_number_to_words(rest)}"
            return words
    return ""  # unreachable for num >= 100


def amount_to_words(amount, currency: str = "Rupees") -> str:
    """
    Spell an amount the way Indian invoices print it.

    >>> amount_to_words(1234.50)
    'One Thousand Two Hundred Thirty Four Rupees and Fifty Paise Only'
    """
    value = to_decimal(amount)
    if value < 0:
        raise ValidationError("amount must not be negative", field="amount")

    rupees = int(value)
    paise = int(((value - rupees) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if paise == 100:
        rupees, paise = rupees + 1, 0

    if rupees == 0 and paise == 0:
        return f"Zero {currency} Only"

    result = ""
    if rupees > 0:
        result = f"{_number_to_words(rupees)} {currency}"
    if paise > 0:
        result += (" and " if rupees > 0 else "") + f"{_number_to_words(paise)} Paise"
    return f"{result} Only"


# ---------- Display helpers ----------


def format_inr(amount) -> str:
    """Format with Indian digit grouping, e.g. ``₹1,23,456.78``."""
    value = round_money(amount)
    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        whole = ",".join(pairs + [tail])
    return f"{sign}₹{whole}.{frac}"


def format_quantity(qty) -> str:
    value = to_decimal(qty, "quantity")
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value:.3f}"
