"""
Offer emails: internal notification to the team and a confirmation to the
buyer. Both are plain text and go out over SMTP (SSL).
"""
import logging
import os
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from offer_mapping import earnest_money_percent

logger = logging.getLogger(__name__)

RULE = "═" * 43
THIN_RULE = "━" * 40


class EmailConfig:
    """SMTP configuration from environment variables."""

    def __init__(self):
        self.host = os.getenv("SMTP_HOST", "smtp.zoho.com")
        self.port = int(os.getenv("SMTP_PORT", "465"))
        self.username = os.getenv("ZOHO_ACCOUNT_EMAIL", "")
        self.password = os.getenv("ZOHO_ACCOUNT_PASSWORD", "")
        self.sender = os.getenv("OFFER_EMAIL_FROM", self.username)
        self.notify_address = os.getenv("OFFER_NOTIFY_EMAIL", "")
        self.timeout = float(os.getenv("SMTP_TIMEOUT", "30"))

    def is_valid(self) -> bool:
        """Check if credentials and the internal recipient are configured."""
        return bool(self.host and self.username and self.password and self.notify_address)


def _money(value: Any) -> str:
    try:
        return f"${float(value):,.0f}"
    except (TypeError, ValueError):
        return "$0"


def _percent(buyer: Dict[str, Any]) -> str:
    pct = earnest_money_percent(buyer)
    return f"{pct:.2f}%" if pct is not None else "n/a"


def _section(title: str) -> List[str]:
    return [RULE, title, RULE]


# ============================================================================
# Message Bodies
# ============================================================================

def build_internal_notification(
    offer: Dict[str, Any],
    document_url: Optional[str] = None,
    submitted_at: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Subject and body of the team notification for a new offer.

    The financing / inspection sections are only included when the offer
    carries that addendum.
    """
    mls_id = offer.get("MLS_ID", "")
    buyer = offer.get("buyerdata") or {}
    financing = offer.get("Form22A")
    inspection = offer.get("Form35")
    help_requested = bool(offer.get("requestAgentHelp"))

    lines = [f"New Offer Submission - MLS ID: {mls_id}", ""]

    if document_url:
        lines += _section("📄 OFFER DOCUMENT")
        lines += [f"PDF Download: {document_url}", ""]

    lines += _section("BUYER INFORMATION")
    lines.append(f"Primary Buyer: {buyer.get('Buyer1Name', '')}")
    if buyer.get("Buyer2Name"):
        lines.append(f"Secondary Buyer: {buyer['Buyer2Name']}")
    lines += [
        f"Email: {buyer.get('B_Email', '')}",
        f"Buyer Status: {buyer.get('B_Status', '')}",
        f"Closing Date: {buyer.get('ClosingDate', '')}",
        "",
    ]

    lines += _section("OFFER DETAILS")
    lines += [
        f"Offer Price: {_money(buyer.get('offer_price_num'))}",
        f"Offer Price (Words): {buyer.get('offer_price_words', '')}",
        f"Earnest Money: {_money(buyer.get('earnest_amount_num'))}",
        f"Earnest Money %: {_percent(buyer)}",
        f"Earnest Money Delivery: {buyer.get('earnest_amount_delivery_days', '')} days",
        f"Earnest Money Holder: {buyer.get('earnest_money_holder', '')}",
        f"Offer Valid For: {buyer.get('offer_expiration_days', '')} days",
        "",
    ]

    lines += _section("ADDITIONAL SETTINGS")
    lines += [
        f"Charges & Assessments: {buyer.get('ChargesAssessments', '')}",
        f"Verification Period: {buyer.get('VerificationPeriod', '')}",
        "",
    ]

    if financing:
        unit = "%" if financing.get("DOWNPAYMENTTYPE") == "PERCENTAGE" else " dollars"
        lines += _section("FORM 22A - FINANCING ADDENDUM")
        lines += [
            f"Type of Loan: {financing.get('TypeofLoan', '')}",
            f"Down Payment: {financing.get('DOWNPAYMENTMAGNITUDE', '')}{unit}",
            f"Days to Apply for Loan: {financing.get('MAKEAPPLICATIONFORLOANSDAYS', '')}",
            f"Financial Contingency: {financing.get('FINANCIALCONTINGENCY', '')}",
            f"Financial Contingency Timeframe: {financing.get('FINANCIALCONTINGENCYTIMEFRAME', '')} days",
            f"Appraisal Contingency: {financing.get('APPRAISALCONTINGENCY', '')}",
        ]
        if financing.get("TypeofLoan") == "VA":
            lines.append(
                f"Buyer Pays Escrow Fee for VA Loan: {financing.get('BUYERPAYESECROWFEEFORVALOAN', '')}"
            )
        lines.append("")

    if inspection:
        lines += _section("FORM 35 - INSPECTION ADDENDUM")
        lines.append(f"Sewer Survey: {inspection.get('SEWERSURVEY', '')}")
        if inspection.get("SEWERSURVEY") == "YES":
            lines += [
                f"Buyer's Notice Period: {inspection.get('BUYERSNOTICEDAYS', '')} days",
                f"Request Seller's Report: {inspection.get('SEWERREQUESTFORINSPECTIONREPORT', '')}",
            ]
        lines += [
            f"Additional Time for Inspection: {inspection.get('ADDITIONALTIMEFORINSPECTION', '')} days",
            f"Seller Response Time: {inspection.get('SEWERRESPONSETIMETOREQUESTFORREPAIRSORMODIFICATIONS', '')} days",
            f"Buyer's Reply Time: {inspection.get('BUYERSREPLYTOSELLERSRESPONSE', '')} days",
            f"Repairs Before Closing: {inspection.get('REPAIRSCLOSINGDATE', '')} days",
            f"Buyer Waived Risk Assessment: {inspection.get('BUYERWAVIEDRISKASSESSMENT', '')}",
            "",
        ]

    if help_requested:
        lines += _section("⚠️ AGENT ASSISTANCE REQUESTED")
        lines += [offer.get("agentHelpNotes") or "No additional notes provided.", ""]

    lines += [RULE, f"Submitted: {(submitted_at or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')}", RULE]

    prefix = "⚠️ [ASSISTANCE NEEDED] " if help_requested else ""
    return {
        "subject": f"{prefix}New Offer - MLS {mls_id} - {buyer.get('Buyer1Name', '')}",
        "body": "\n".join(lines).strip(),
    }


def build_buyer_confirmation(offer: Dict[str, Any], document_url: Optional[str] = None) -> Dict[str, str]:
    """Subject and body of the confirmation sent to the buyer."""
    mls_id = offer.get("MLS_ID", "")
    buyer = offer.get("buyerdata") or {}

    lines = [
        f"Hi {buyer.get('Buyer1Name', '')},",
        "",
        "Thank you for submitting your offer through Wayber!",
        "",
        f"We've received your offer for the property (MLS ID: {mls_id}) and our team is reviewing it now.",
        "",
    ]

    if document_url:
        lines += ["📄 YOUR OFFER DOCUMENT", THIN_RULE, f"Download your offer: {document_url}", ""]

    lines += [
        "OFFER SUMMARY",
        THIN_RULE,
        f"Offer Price: {_money(buyer.get('offer_price_num'))}",
        f"Earnest Money: {_money(buyer.get('earnest_amount_num'))} ({_percent(buyer)})",
        f"Earnest Money Due: {buyer.get('earnest_amount_delivery_days', '')} days after acceptance",
        f"Earnest Money Holder: {buyer.get('earnest_money_holder', '')}",
        f"Offer Valid For: {buyer.get('offer_expiration_days', '')} days",
        f"Desired Closing: {buyer.get('ClosingDate', '')}",
        "",
        "WHAT HAPPENS NEXT?",
        THIN_RULE,
        "1. You'll receive your offer documents for e-signature within a few hours",
        "2. Once signed, we'll submit your offer to the seller's agent",
        "3. The seller typically responds within 24-48 hours",
        "4. We'll keep you updated throughout the entire process",
        "",
    ]

    if offer.get("requestAgentHelp"):
        lines += ["An agent will reach out to you shortly regarding your request for assistance.", ""]

    lines += [
        "Best regards,",
        "The Wayber Team",
        "",
        THIN_RULE,
        "Questions? Reply to this email or call us at (206) 880-0760.",
        "Visit us at https://wayber.com",
    ]

    return {"subject": f"Offer Received - MLS {mls_id}", "body": "\n".join(lines)}


# ============================================================================
# Sending
# ============================================================================

class OfferMailer:
    """Sends offer emails over SMTP."""

    def __init__(self, config: Optional[EmailConfig] = None):
        self.config = config or EmailConfig()

    def _send(self, to: str, subject: str, body: str, reply_to: Optional[str] = None) -> None:
        msg = EmailMessage()
        msg["From"] = self.config.sender
        msg["To"] = to
        msg["Subject"] = subject
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(body)

        with smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=self.config.timeout) as smtp:
            smtp.login(self.config.username, self.config.password)
            smtp.send_message(msg)

    def send_offer_emails(self, offer: Dict[str, Any], document_url: Optional[str] = None) -> List[str]:
        """
        Send the team notification and, when the buyer gave an email, the
        buyer confirmation.

        Returns:
            Addresses that were emailed successfully. Send failures are
            logged and skipped.
        """
        if not self.config.is_valid():
            logger.warning("SMTP not configured; skipping offer emails")
            return []

        sent: List[str] = []
        buyer_email = ((offer.get("buyerdata") or {}).get("B_Email") or "").strip()

        notification = build_internal_notification(offer, document_url)
        try:
            self._send(
                self.config.notify_address,
                notification["subject"],
                notification["body"],
                reply_to=buyer_email or None,
            )
            sent.append(self.config.notify_address)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send offer notification: {e}")

        if not buyer_email:
            logger.warning("Skipping buyer confirmation email - no email address provided")
            return sent

        confirmation = build_buyer_confirmation(offer, document_url)
        try:
            self._send(buyer_email, confirmation["subject"], confirmation["body"])
            sent.append(buyer_email)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send buyer confirmation to {buyer_email}: {e}")

        return sent
