"""
Offer Wizard Controller

Owns one buyer's in-progress offer:
1. Holds the draft and the current step
2. Moves forward only when the current step validates
3. Skips the addendum steps whose toggle is off
4. Saves the draft (debounced) after every change and restores it later
5. Submits the offer, at most one submission at a time
"""

import copy
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from draft_storage import DraftStore
from offer_client import notify_listing_scraper
from state import OfferDraft, PropertyRecord, SubmissionResult, ValidationError, WizardPosition
from wizard import sequencer
from wizard.autosave import DraftAutosaver
from wizard.defaults import apply_step_defaults, sync_mirror_fields
from wizard.submission import (
    UNEXPECTED_ERROR_MESSAGE,
    HttpOfferSubmitter,
    Submitter,
    build_submission_payload,
    failure_result,
)
from wizard.validator import is_step_valid, validate_step

logger = logging.getLogger(__name__)

DRAFT_SECTIONS = (
    "MLS_ID",
    "listingPrice",
    "buyerdata",
    "Form22A",
    "Form35",
    "requestAgentHelp",
    "agentHelpNotes",
)

REVIEW_REQUIRED_MESSAGE = "Review your offer before submitting."


class OfferWizard:
    """
    Seven-step offer wizard for one buyer.

    Args:
        store: Draft store for this wizard
        autosaver: Debounced saver (defaults to one over `store`)
        submitter: Async callable posting the final payload
        listing_notifier: Called with the MLS ID when leaving step 1
        draft: Initial draft (e.g. restored from the store)
        include_financing: Initial financing addendum toggle
        include_inspection: Initial inspection addendum toggle
        today: Returns today's date, for the closing date default
    """

    def __init__(
        self,
        store: DraftStore,
        autosaver: Optional[DraftAutosaver] = None,
        submitter: Optional[Submitter] = None,
        listing_notifier: Optional[Callable[[str], Any]] = notify_listing_scraper,
        draft: Optional[OfferDraft] = None,
        include_financing: bool = False,
        include_inspection: bool = False,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.autosaver = autosaver or DraftAutosaver(store)
        self.submitter = submitter or HttpOfferSubmitter()
        self.listing_notifier = listing_notifier
        self.today = today

        self.draft: OfferDraft = draft or {}
        self.step = sequencer.FIRST_STEP
        self.include_financing = include_financing
        self.include_inspection = include_inspection
        self.submitted = False
        self.property: Optional[PropertyRecord] = None
        self.last_result: Optional[SubmissionResult] = None
        self._submitting = False

    @classmethod
    def restore(cls, store: DraftStore, **kwargs) -> "OfferWizard":
        """
        Create a wizard from the saved draft, if there is one.

        An addendum toggle starts on when the saved draft has that addendum.
        """
        draft = store.load()
        if not draft:
            return cls(store, **kwargs)

        logger.info(f"Restored offer draft for MLS {draft.get('MLS_ID') or '(none)'}")
        kwargs.setdefault("include_financing", isinstance(draft.get("Form22A"), dict))
        kwargs.setdefault("include_inspection", isinstance(draft.get("Form35"), dict))
        return cls(store, draft=draft, **kwargs)

    # ========================================================================
    # Draft Editing
    # ========================================================================

    def update(self, **sections) -> None:
        """Replace top-level draft sections, e.g. update(buyerdata={...})."""
        self.update_draft(sections)

    def update_draft(self, partial: Dict[str, Any]) -> None:
        """
        Shallow-merge top-level sections into the draft and schedule a save.
        A None value removes the section.

        Raises:
            ValueError: for an unknown section name
        """
        unknown = set(partial) - set(DRAFT_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown draft sections: {', '.join(sorted(unknown))}")

        merged: Dict[str, Any] = {**self.draft, **copy.deepcopy(partial)}
        for section, value in partial.items():
            if value is None:
                merged.pop(section, None)
        if partial.get("buyerdata") is not None:
            merged["buyerdata"] = sync_mirror_fields(merged["buyerdata"])
        self.draft = merged  # type: ignore[assignment]
        self._draft_changed()

    def select_property(self, record: PropertyRecord) -> None:
        """Use a property lookup result for the offer."""
        self.property = record
        self.update_draft({
            "MLS_ID": record.get("mlsId") or "",
            "listingPrice": record.get("price"),
        })

    def set_addenda(
        self,
        include_financing: Optional[bool] = None,
        include_inspection: Optional[bool] = None,
    ) -> None:
        """
        Turn the optional addenda on or off.

        Turning one off keeps its data in the draft; it is left out of the
        submission. If the current step is no longer visible, move back to
        the closest visible step.
        """
        if include_financing is not None:
            self.include_financing = include_financing
        if include_inspection is not None:
            self.include_inspection = include_inspection

        nearest = sequencer.nearest_reachable(self.step, self.include_financing, self.include_inspection)
        if nearest != self.step:
            logger.info(f"Step {self.step} hidden by addendum change, moving to step {nearest}")
            self.step = nearest

    def _draft_changed(self) -> None:
        if not self.submitted:
            self.autosaver.schedule(self.draft)

    # ========================================================================
    # Navigation
    # ========================================================================

    @property
    def position(self) -> WizardPosition:
        return {
            "step": self.step,
            "includeFinancingAddendum": self.include_financing,
            "includeInspectionAddendum": self.include_inspection,
            "submitted": self.submitted,
        }

    @property
    def step_title(self) -> str:
        return sequencer.step_title(self.step)

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def can_go_next(self) -> bool:
        return (
            not self.submitted
            and self.step != sequencer.REVIEW_STEP
            and is_step_valid(self.draft, self.step)
        )

    @property
    def can_go_back(self) -> bool:
        return not self.submitted and self.step != sequencer.FIRST_STEP

    def step_errors(self) -> List[ValidationError]:
        return validate_step(self.draft, self.step)

    def go_next(self) -> bool:
        """
        Move to the next visible step.

        Returns:
            False if the current step is incomplete, or on the review step
        """
        if not self.can_go_next:
            return False

        leaving = self.step
        self.step = sequencer.advance(self.step, self.include_financing, self.include_inspection)

        if leaving == sequencer.FIRST_STEP and self.draft.get("MLS_ID"):
            self._notify_listing(self.draft["MLS_ID"])

        buyer = apply_step_defaults(self.draft, self.step, self.today())
        if buyer is not None:
            self.draft = {**self.draft, "buyerdata": buyer}
            self._draft_changed()
        return True

    def go_back(self) -> bool:
        """Move to the previous visible step. Returns False on step 1."""
        if not self.can_go_back:
            return False
        self.step = sequencer.retreat(self.step, self.include_financing, self.include_inspection)
        return True

    def _notify_listing(self, mls_id: str) -> None:
        if self.listing_notifier is None:
            return
        try:
            self.listing_notifier(mls_id)
        except Exception as e:
            logger.warning(f"Listing scraper notification failed for {mls_id}: {e}")

    # ========================================================================
    # Submission
    # ========================================================================

    def _first_invalid_step(self) -> Optional[SubmissionResult]:
        for step in sequencer.reachable_steps(self.include_financing, self.include_inspection):
            errors = [e for e in validate_step(self.draft, step) if e["severity"] == "Error"]
            if errors:
                return failure_result(
                    "validation",
                    f"Please complete {sequencer.step_title(step)} (step {step}): {errors[0]['message']}",
                )
        return None

    async def submit(
        self,
        request_agent_help: Optional[bool] = None,
        agent_help_notes: Optional[str] = None,
    ) -> Optional[SubmissionResult]:
        """
        Submit the offer. Only allowed from the review step.

        Returns:
            The result, or None when a submission is already in flight or
            the offer was already submitted (no request is made)
        """
        if self._submitting:
            logger.warning("Submission already in progress; ignoring")
            return None
        if self.submitted:
            logger.warning("Offer already submitted; ignoring")
            return None

        invalid = self._first_invalid_step()
        if invalid is not None:
            self.last_result = invalid
            return invalid
        if self.step != sequencer.REVIEW_STEP:
            self.last_result = failure_result("validation", REVIEW_REQUIRED_MESSAGE)
            return self.last_result

        if request_agent_help is None:
            request_agent_help = bool(self.draft.get("requestAgentHelp"))
        if agent_help_notes is None:
            agent_help_notes = self.draft.get("agentHelpNotes")

        payload = build_submission_payload(
            self.draft,
            self.include_financing,
            self.include_inspection,
            request_agent_help=request_agent_help,
            agent_help_notes=agent_help_notes,
        )

        self._submitting = True
        try:
            result = await self.submitter(payload)
        except Exception as e:
            logger.exception(f"Unexpected error submitting offer: {e}")
            result = failure_result("server", UNEXPECTED_ERROR_MESSAGE)
        finally:
            self._submitting = False

        self.last_result = result
        if result["ok"]:
            logger.info(f"Offer for MLS {self.draft.get('MLS_ID')} submitted")
            self.autosaver.cancel()
            self.store.clear()
            self.submitted = True
        else:
            logger.warning(f"Offer submission failed ({result['category']}): {result['message']}")
        return result

    def discard(self) -> None:
        """Drop any pending save and the saved draft."""
        self.autosaver.cancel()
        self.store.clear()

    def snapshot(self) -> Dict[str, Any]:
        """JSON-serializable view of the wizard for the API."""
        return {
            "position": self.position,
            "stepTitle": self.step_title,
            "reachableSteps": sequencer.reachable_steps(self.include_financing, self.include_inspection),
            "draft": copy.deepcopy(self.draft),
            "errors": [] if self.submitted else self.step_errors(),
            "canGoNext": self.can_go_next,
            "canGoBack": self.can_go_back,
            "isSubmitting": self.is_submitting,
            "property": self.property,
            "lastResult": self.last_result,
        }
