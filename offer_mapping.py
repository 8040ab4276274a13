"""
Utilities for mapping an offer draft to the offer-generation service payload.
The service expects every field to be present, so missing values are filled
with the defaults it understands.
"""
from typing import Any, Dict, Optional

from state import BuyerData, FinancingAddendum, InspectionAddendum, OfferDraft


FINANCING_DEFAULTS: Dict[str, Any] = {
    "TypeofLoan": "",
    "DOWNPAYMENTTYPE": "PERCENTAGE",
    "DOWNPAYMENTMAGNITUDE": 0,
    "MAKEAPPLICATIONFORLOANSDAYS": 0,
    "FINANCIALCONTINGENCY": "",
    "FINANCIALCONTINGENCYTIMEFRAME": 0,
    "APPRAISALCONTINGENCY": "NO",
    "LOANCOSTPROVISIONS": "EMPTY",
    "BUYERPAYESECROWFEEFORVALOAN": "NO",
}

INSPECTION_DEFAULTS: Dict[str, Any] = {
    "SEWERSURVEY": "NO",
    "BUYERSNOTICEDAYS": 0,
    "SEWERREQUESTFORINSPECTIONREPORT": "NO",
    "ADDITIONALTIMEFORINSPECTION": 0,
    "SEWERRESPONSETIMETOREQUESTFORREPAIRSORMODIFICATIONS": 0,
    "BUYERSREPLYTOSELLERSRESPONSE": 0,
    "REPAIRSCLOSINGDATE": 0,
    "NEIGHBORHOODREVIEWCONTINGENCYCHECK": "NO",
    "NEIGHBORHOODREVIEWCONTINGENCYDAYS": 0,
    "BUYERWAVIEDRISKASSESSMENT": "NO",
}

BUYER_DEFAULTS: Dict[str, Any] = {
    "PI_SellPrice": 0,
    "PI_SellPriceW": "",
    "EM_PC1": 0,
    "Buyer1Name": "",
    "B_Email": "",
    "Buyer2Name": "",
    "offer_price_num": 0,
    "offer_price_words": "",
    "earnest_amount_num": 0,
    "earnest_amount_delivery_days": 0,
    "earnest_money_holder": "",
    "offer_expiration_days": 0,
    "B_Status": "",
    "ClosingDate": "",
    "ServicesofUtils": "",
    "ChargesAssessments": "",
    "VerificationPeriod": "",
    "addendums": [],
}


def _with_defaults(data: Optional[Dict[str, Any]], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill every known field, treating empty values (None, "", 0) as missing.
    """
    data = data or {}
    return {
        field: data.get(field) or (list(default) if isinstance(default, list) else default)
        for field, default in defaults.items()
    }


def normalize_financing(form: Optional[FinancingAddendum]) -> Dict[str, Any]:
    return _with_defaults(form, FINANCING_DEFAULTS)  # type: ignore[arg-type]


def normalize_inspection(form: Optional[InspectionAddendum]) -> Dict[str, Any]:
    return _with_defaults(form, INSPECTION_DEFAULTS)  # type: ignore[arg-type]


def normalize_buyer_data(buyer: Optional[BuyerData]) -> Dict[str, Any]:
    return _with_defaults(buyer, BUYER_DEFAULTS)  # type: ignore[arg-type]


def build_offer_service_request(offer: OfferDraft) -> Dict[str, Any]:
    """
    Build the offer-generation request body.

    Format:
        {"MLS_ID": ..., "Form22A_FromBuyer": {...}, "Form35_FromBuyer": {...}, "buyerdata": {...}}
    """
    return {
        "MLS_ID": offer["MLS_ID"],
        "Form22A_FromBuyer": normalize_financing(offer.get("Form22A")),
        "Form35_FromBuyer": normalize_inspection(offer.get("Form35")),
        "buyerdata": normalize_buyer_data(offer.get("buyerdata")),
    }


def resolve_document_url(pdf_url: Optional[str], base_url: str) -> Optional[str]:
    """
    Make a document path returned by the service absolute.

    Examples:
        ("/files/offer.pdf", "https://svc/") -> "https://svc/files/offer.pdf"
        ("https://cdn/offer.pdf", "https://svc/") -> "https://cdn/offer.pdf"
    """
    if not pdf_url:
        return None
    if pdf_url.startswith("http"):
        return pdf_url
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    cleaned = pdf_url.lstrip("/\\")
    return f"{base}{cleaned}"


def earnest_money_percent(buyer: Dict[str, Any]) -> Optional[float]:
    """Earnest money as a percentage of the offer price, or None if unknown."""
    try:
        price = float(buyer.get("offer_price_num") or 0)
        earnest = float(buyer.get("earnest_amount_num") or 0)
    except (TypeError, ValueError):
        return None
    if not price:
        return None
    return earnest / price * 100
