"""
Step Validator - Per-Step Field Validation

Decides whether the wizard may move forward from a step. Validation is a
pure read of the draft: nothing here mutates it, and it is cheap enough to
recompute on every snapshot.

validate_step() returns structured errors for the UI; is_step_valid() is
the boolean gate used for navigation.
"""

import re
from typing import Any, List, Mapping, Optional

from state import OfferDraft, ValidationError

# RFC 5322-style address grammar (local part, then dotted hostname labels)
EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

VA_LOAN_TYPE = "VA"
SEWER_SURVEY_DECLINED = "NO"


def is_valid_email(email: Optional[str]) -> bool:
    """Check an email address against the address grammar (whitespace-trimmed)."""
    if not email or not isinstance(email, str) or not email.strip():
        return False
    return EMAIL_REGEX.match(email.strip()) is not None


# ============================================================================
# Field Helpers
# ============================================================================

def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_number(value: Any) -> bool:
    return _is_number(value) and value > 0


def _is_positive_int(value: Any) -> bool:
    if not _is_positive_number(value):
        return False
    return float(value).is_integer()


def _error(field: str, message: str, expected_format: Optional[str] = None) -> ValidationError:
    return {
        "field": field,
        "message": message,
        "expected_format": expected_format,
        "severity": "Error",
    }


def _require(
    errors: List[ValidationError],
    section: Mapping[str, Any],
    prefix: str,
    field: str,
    label: str,
) -> bool:
    if _is_present(section.get(field)):
        return True
    errors.append(_error(f"{prefix}.{field}", f"{label} is required"))
    return False


def _require_amount(
    errors: List[ValidationError],
    section: Mapping[str, Any],
    prefix: str,
    field: str,
    label: str,
) -> None:
    value = section.get(field)
    if not _is_present(value):
        errors.append(_error(f"{prefix}.{field}", f"{label} is required", "Positive number"))
    elif not _is_positive_number(value):
        errors.append(_error(f"{prefix}.{field}", f"{label} must be greater than zero", "Positive number"))


def _require_days(
    errors: List[ValidationError],
    section: Mapping[str, Any],
    prefix: str,
    field: str,
    label: str,
) -> None:
    value = section.get(field)
    if not _is_present(value):
        errors.append(_error(f"{prefix}.{field}", f"{label} is required", "Whole number of days"))
    elif not _is_positive_int(value):
        errors.append(_error(f"{prefix}.{field}", f"{label} must be a positive whole number", "Whole number of days"))


# ============================================================================
# Step Validators
# ============================================================================

def validate_property_step(draft: OfferDraft) -> List[ValidationError]:
    """Step 1: a property must be resolved to an MLS identifier."""
    if _is_present(draft.get("MLS_ID")):
        return []
    return [_error("MLS_ID", "Find the property to get its MLS ID", "MLS identifier")]


def validate_buyer_step(draft: OfferDraft) -> List[ValidationError]:
    """Step 2: buyer name, email, status and closing date."""
    errors: List[ValidationError] = []
    buyer = draft.get("buyerdata") or {}

    _require(errors, buyer, "buyerdata", "Buyer1Name", "Primary buyer name")

    email = buyer.get("B_Email")
    if not _is_present(email):
        errors.append(_error("buyerdata.B_Email", "Email address is required", "name@example.com"))
    elif not is_valid_email(email):
        errors.append(_error(
            "buyerdata.B_Email",
            "Please enter a valid email address (e.g., name@example.com)",
            "name@example.com",
        ))

    _require(errors, buyer, "buyerdata", "B_Status", "Buyer status")
    _require(errors, buyer, "buyerdata", "ClosingDate", "Closing date")
    return errors


def validate_offer_step(draft: OfferDraft) -> List[ValidationError]:
    """Step 3: price, earnest money terms, offer expiration and charges."""
    errors: List[ValidationError] = []
    buyer = draft.get("buyerdata") or {}

    _require_amount(errors, buyer, "buyerdata", "offer_price_num", "Offer price")
    _require_amount(errors, buyer, "buyerdata", "earnest_amount_num", "Earnest money")
    _require_days(errors, buyer, "buyerdata", "earnest_amount_delivery_days", "Earnest money delivery days")
    _require(errors, buyer, "buyerdata", "earnest_money_holder", "Earnest money holder")
    _require_days(errors, buyer, "buyerdata", "offer_expiration_days", "Offer expiration days")
    _require(errors, buyer, "buyerdata", "ChargesAssessments", "Charges and assessments option")
    return errors


def validate_financing_step(draft: OfferDraft) -> List[ValidationError]:
    """Step 5: Form 22A financing terms; VA loans also need the escrow fee answer."""
    errors: List[ValidationError] = []
    form = draft.get("Form22A") or {}

    loan_type_given = _require(errors, form, "Form22A", "TypeofLoan", "Loan type")
    _require(errors, form, "Form22A", "DOWNPAYMENTTYPE", "Down payment type")
    _require_amount(errors, form, "Form22A", "DOWNPAYMENTMAGNITUDE", "Down payment amount")
    _require_days(errors, form, "Form22A", "MAKEAPPLICATIONFORLOANSDAYS", "Loan application days")
    _require(errors, form, "Form22A", "FINANCIALCONTINGENCY", "Financing contingency")
    _require_days(errors, form, "Form22A", "FINANCIALCONTINGENCYTIMEFRAME", "Financing contingency timeframe")
    _require(errors, form, "Form22A", "APPRAISALCONTINGENCY", "Appraisal contingency")

    if loan_type_given and form.get("TypeofLoan") == VA_LOAN_TYPE:
        _require(errors, form, "Form22A", "BUYERPAYESECROWFEEFORVALOAN", "VA escrow fee answer")

    return errors


def validate_inspection_step(draft: OfferDraft) -> List[ValidationError]:
    """Step 6: Form 35 sewer survey; accepting it requires the notice period."""
    errors: List[ValidationError] = []
    form = draft.get("Form35") or {}

    if not _require(errors, form, "Form35", "SEWERSURVEY", "Sewer survey selection"):
        return errors

    if form.get("SEWERSURVEY") == SEWER_SURVEY_DECLINED:
        return errors

    _require_days(errors, form, "Form35", "BUYERSNOTICEDAYS", "Buyer's notice days")
    return errors


def _always_valid(draft: OfferDraft) -> List[ValidationError]:
    return []


STEP_VALIDATORS = {
    1: validate_property_step,
    2: validate_buyer_step,
    3: validate_offer_step,
    4: _always_valid,  # only selects which addenda to include
    5: validate_financing_step,
    6: validate_inspection_step,
    7: _always_valid,  # review only
}


def validate_step(draft: OfferDraft, step: int) -> List[ValidationError]:
    """
    Validate the fields a step is responsible for.

    Raises:
        ValueError: for an unknown step number.
    """
    validator = STEP_VALIDATORS.get(step)
    if validator is None:
        raise ValueError(f"Invalid wizard step: {step!r}")
    return validator(draft)


def is_step_valid(draft: OfferDraft, step: int) -> bool:
    """True if the step has no Error-severity issues."""
    return not any(e["severity"] == "Error" for e in validate_step(draft, step))
