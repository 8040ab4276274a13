"""
Step defaults and derived offer fields.

When the buyer enters a step, recommended values are filled in for any
field that is still empty. Existing values are never overwritten.
"""

from datetime import date, timedelta
from typing import Optional

from state import BuyerData, OfferDraft

DEFAULT_CLOSING_DAYS = 30
DEFAULT_EARNEST_MONEY_RATE = 0.04
DEFAULT_EARNEST_MONEY_HOLDER = "Closing Agent"
DEFAULT_EARNEST_DELIVERY_DAYS = 3
DEFAULT_OFFER_EXPIRATION_DAYS = 3
DEFAULT_CHARGES_ASSESSMENTS = "PrepaidBySeller"
DEFAULT_VERIFICATION_PERIOD = "Satisfied"

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _hundreds_to_words(n: int) -> str:
    parts = []
    hundred, remainder = divmod(n, 100)
    if hundred:
        parts.append(f"{_ONES[hundred]} Hundred")
    if 10 <= remainder < 20:
        parts.append(_TEENS[remainder - 10])
    elif remainder:
        ten, one = divmod(remainder, 10)
        if ten and one:
            parts.append(f"{_TENS[ten]}-{_ONES[one]}")
        else:
            parts.append(_TENS[ten] or _ONES[one])
    return " ".join(parts)


def number_to_words(amount: float) -> str:
    """
    Spell a dollar amount the way purchase agreements write it.

    Examples:
        450000 -> "Four Hundred Fifty Thousand and 00/100"
        1250000.5 -> "One Million Two Hundred Fifty Thousand and 50/100"
    """
    total_cents = int(round(float(amount) * 100))
    dollars, cents = divmod(total_cents, 100)
    if dollars == 0:
        return f"Zero and {cents:02d}/100"

    billions, rest = divmod(dollars, 1_000_000_000)
    millions, rest = divmod(rest, 1_000_000)
    thousands, hundreds = divmod(rest, 1000)

    words = []
    if billions:
        words.append(f"{_hundreds_to_words(billions)} Billion")
    if millions:
        words.append(f"{_hundreds_to_words(millions)} Million")
    if thousands:
        words.append(f"{_hundreds_to_words(thousands)} Thousand")
    if hundreds:
        words.append(_hundreds_to_words(hundreds))

    return f"{' '.join(words)} and {cents:02d}/100"


# ============================================================================
# Derived Fields
# ============================================================================

def set_offer_price(buyer: BuyerData, price: float) -> BuyerData:
    """Return buyer data with the offer price and its mirror fields set."""
    words = number_to_words(price)
    return {
        **buyer,
        "offer_price_num": price,
        "PI_SellPrice": price,
        "offer_price_words": words,
        "PI_SellPriceW": words,
    }


def set_earnest_money(buyer: BuyerData, amount: float) -> BuyerData:
    """Return buyer data with the earnest money amount and its mirror field set."""
    return {**buyer, "earnest_amount_num": amount, "EM_PC1": amount}


def is_amount(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sync_mirror_fields(buyer: BuyerData) -> BuyerData:
    """
    Re-derive mirror fields from the primary offer price and earnest money.
    Non-numeric amounts are left as entered for validation to report.
    """
    synced = dict(buyer)
    if is_amount(buyer.get("offer_price_num")):
        synced = set_offer_price(synced, buyer["offer_price_num"])
    if is_amount(buyer.get("earnest_amount_num")):
        synced = set_earnest_money(synced, buyer["earnest_amount_num"])
    return synced  # type: ignore[return-value]


# ============================================================================
# Step Entry Defaults
# ============================================================================

def buyer_step_defaults(buyer: BuyerData, today: Optional[date] = None) -> BuyerData:
    """Step 2: closing date defaults to 30 days out."""
    updated = dict(buyer)
    if not buyer.get("ClosingDate"):
        closing = (today or date.today()) + timedelta(days=DEFAULT_CLOSING_DAYS)
        updated["ClosingDate"] = closing.isoformat()
    return updated  # type: ignore[return-value]


def offer_step_defaults(buyer: BuyerData, listing_price: Optional[float]) -> BuyerData:
    """
    Step 3: standard earnest money terms, and offer price / earnest money
    derived from the listing price when one is known.
    """
    updated: BuyerData = dict(buyer)  # type: ignore[assignment]
    if not buyer.get("earnest_money_holder"):
        updated["earnest_money_holder"] = DEFAULT_EARNEST_MONEY_HOLDER
    if not buyer.get("earnest_amount_delivery_days"):
        updated["earnest_amount_delivery_days"] = DEFAULT_EARNEST_DELIVERY_DAYS
    if not buyer.get("offer_expiration_days"):
        updated["offer_expiration_days"] = DEFAULT_OFFER_EXPIRATION_DAYS
    if not buyer.get("ChargesAssessments"):
        updated["ChargesAssessments"] = DEFAULT_CHARGES_ASSESSMENTS

    if is_amount(listing_price) and listing_price > 0:
        if not buyer.get("offer_price_num"):
            updated = set_offer_price(updated, listing_price)
        if not buyer.get("earnest_amount_num"):
            updated = set_earnest_money(updated, round(listing_price * DEFAULT_EARNEST_MONEY_RATE))
    return updated


def settings_step_defaults(buyer: BuyerData) -> BuyerData:
    """Step 4: verification period defaults to satisfied."""
    updated = dict(buyer)
    if not buyer.get("VerificationPeriod"):
        updated["VerificationPeriod"] = DEFAULT_VERIFICATION_PERIOD
    return updated  # type: ignore[return-value]


def apply_step_defaults(draft: OfferDraft, step: int, today: Optional[date] = None) -> Optional[BuyerData]:
    """
    Compute the buyer data for entering `step`.

    Returns the updated buyer data if any default was filled in, else None.
    """
    buyer: BuyerData = dict(draft.get("buyerdata") or {})  # type: ignore[assignment]

    if step == 2:
        updated = buyer_step_defaults(buyer, today)
    elif step == 3:
        updated = offer_step_defaults(buyer, draft.get("listingPrice"))
    elif step == 4:
        updated = settings_step_defaults(buyer)
    else:
        return None

    return updated if updated != buyer else None
