"""
Step Sequencer - Next/Previous Step Computation

The wizard has seven ordered steps. Steps 5 (financing addendum) and 6
(inspection addendum) are only reachable when their toggle is on; every
other step is always reachable.

All functions here are pure functions of (step, include_financing,
include_inspection) so forward and backward navigation stay symmetric.
"""

from typing import List

# ============================================================================
# Step Constants
# ============================================================================

FIRST_STEP = 1
SETTINGS_STEP = 4
FINANCING_STEP = 5
INSPECTION_STEP = 6
REVIEW_STEP = 7
TOTAL_STEPS = 7

STEP_TITLES = {
    1: "MLS ID Entry",
    2: "Buyer Information",
    3: "Offer Details",
    4: "Settings & Optional Forms",
    5: "Financing Details",
    6: "Sewer/Septic Details",
    7: "Review & Submit",
}


def _check_step(step: int) -> None:
    if isinstance(step, bool) or not isinstance(step, int) or not FIRST_STEP <= step <= TOTAL_STEPS:
        raise ValueError(f"Invalid wizard step: {step!r}")


def step_title(step: int) -> str:
    """Human-readable title for a step."""
    return STEP_TITLES.get(step, f"Step {step}")


# ============================================================================
# Transitions
# ============================================================================

def advance(step: int, include_financing: bool, include_inspection: bool) -> int:
    """
    Return the next visible step.

    Raises:
        ValueError: for an unknown step, or from the review step (the
            submitted state is only reachable through submission).
    """
    _check_step(step)

    if step == REVIEW_STEP:
        raise ValueError("The review step is the last step; submit to finish")

    if step == SETTINGS_STEP:
        if include_financing:
            return FINANCING_STEP
        if include_inspection:
            return INSPECTION_STEP
        return REVIEW_STEP

    if step == FINANCING_STEP:
        return INSPECTION_STEP if include_inspection else REVIEW_STEP

    return step + 1


def retreat(step: int, include_financing: bool, include_inspection: bool) -> int:
    """
    Return the previous visible step.

    Raises:
        ValueError: for an unknown step, or from the first step.
    """
    _check_step(step)

    if step == FIRST_STEP:
        raise ValueError("The first step has no previous step")

    if step == REVIEW_STEP:
        if include_inspection:
            return INSPECTION_STEP
        if include_financing:
            return FINANCING_STEP
        return SETTINGS_STEP

    if step == INSPECTION_STEP:
        return FINANCING_STEP if include_financing else SETTINGS_STEP

    return step - 1


# ============================================================================
# Reachability
# ============================================================================

def is_reachable(step: int, include_financing: bool, include_inspection: bool) -> bool:
    """Check whether a step is visible under the given toggles."""
    _check_step(step)
    if step == FINANCING_STEP:
        return include_financing
    if step == INSPECTION_STEP:
        return include_inspection
    return True


def reachable_steps(include_financing: bool, include_inspection: bool) -> List[int]:
    """All visible steps, in order."""
    return [
        s for s in range(FIRST_STEP, TOTAL_STEPS + 1)
        if is_reachable(s, include_financing, include_inspection)
    ]


def nearest_reachable(step: int, include_financing: bool, include_inspection: bool) -> int:
    """
    Return `step` if it is visible, otherwise the closest visible step
    before it. Step 4 is always visible, so this never falls below it
    for the optional steps.
    """
    _check_step(step)
    while not is_reachable(step, include_financing, include_inspection):
        step -= 1
    return step
