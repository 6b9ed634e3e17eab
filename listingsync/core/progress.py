"""Step-completion engine.

A listing is built through five ordered steps.  Whether each step is done is
a pure function of the listing's current fields, so the completion
percentage and the "resume at" step can never drift from the data:

=====  ===============  ====================================================
Index  Step             Complete when
=====  ===============  ====================================================
0      basic info       ``name``, ``property_type`` and ``location`` are all
                        non-blank
1      images           a thumbnail is set or the image list is non-empty
2      coordinates      latitude and longitude are both present
3      features         a features record exists (an empty one counts)
4      publish          ``status == Published``
=====  ===============  ====================================================

``completion_percentage = round(100 * completed / 5)`` and ``current_step``
is the index of the first incomplete step, or ``5`` once all are done.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Final

from listingsync.core.models import ListingStatus

if TYPE_CHECKING:
    from listingsync.core.models import Listing

__all__ = [
    "TOTAL_STEPS",
    "Step",
    "StepState",
    "ListingProgress",
    "derive_progress",
    "is_step_complete",
]

logger = logging.getLogger(__name__)

#: Number of workflow steps.  Also the ``current_step`` value of a finished listing.
TOTAL_STEPS: Final[int] = 5


class Step(IntEnum):
    """Workflow steps in their fixed order."""

    BASIC_INFO = 0
    IMAGES = 1
    COORDINATES = 2
    FEATURES = 3
    PUBLISH = 4

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS: Final[dict[Step, str]] = {
    Step.BASIC_INFO: "Basic Info",
    Step.IMAGES: "Images",
    Step.COORDINATES: "Coordinates",
    Step.FEATURES: "Features",
    Step.PUBLISH: "Publish",
}

#: Steps that must be complete before a listing may be published.
PREREQUISITE_STEPS: Final[tuple[Step, ...]] = (
    Step.BASIC_INFO,
    Step.IMAGES,
    Step.COORDINATES,
    Step.FEATURES,
)


def is_step_complete(listing: Listing, step: Step) -> bool:
    """Return ``True`` if *step* is complete for *listing*."""
    if step is Step.BASIC_INFO:
        return all(
            value.strip() for value in (listing.name, listing.property_type, listing.location)
        )
    if step is Step.IMAGES:
        return listing.media.has_images
    if step is Step.COORDINATES:
        return listing.coordinates is not None
    if step is Step.FEATURES:
        return listing.features is not None
    return listing.status is ListingStatus.PUBLISHED


@dataclass(frozen=True, slots=True)
class StepState:
    """Completion flag for one step, as rendered in the step list."""

    step: Step
    completed: bool

    @property
    def label(self) -> str:
        return self.step.label


@dataclass(frozen=True, slots=True)
class ListingProgress:
    """Derived completion state of one listing.

    Attributes:
        steps: One :class:`StepState` per step, in workflow order.
        completed_count: How many steps are complete.
        completion_percentage: ``round(100 * completed_count / 5)``.
        current_step: Index of the first incomplete step, or
            :data:`TOTAL_STEPS` when every step is complete.
        is_consistent: ``False`` when the listing is Published while one of
            the prerequisite steps is incomplete (a status that was set
            without going through the publish step).
    """

    steps: tuple[StepState, ...]
    completed_count: int
    completion_percentage: int
    current_step: int
    is_consistent: bool

    @property
    def is_complete(self) -> bool:
        return self.current_step == TOTAL_STEPS

    @property
    def remaining(self) -> int:
        return TOTAL_STEPS - self.completed_count

    @property
    def missing(self) -> list[Step]:
        return [state.step for state in self.steps if not state.completed]

    @property
    def ready_to_publish(self) -> bool:
        """``True`` when every prerequisite step is complete."""
        done = {state.step for state in self.steps if state.completed}
        return all(step in done for step in PREREQUISITE_STEPS)

    @property
    def summary(self) -> str:
        if self.remaining == 0:
            return "All steps completed!"
        noun = "step" if self.remaining == 1 else "steps"
        return f"{self.remaining} {noun} remaining"


def derive_progress(listing: Listing) -> ListingProgress:
    """Compute the :class:`ListingProgress` of *listing*.

    Pure: the result depends only on the listing's fields.
    """
    states = tuple(StepState(step, is_step_complete(listing, step)) for step in Step)
    completed = sum(1 for state in states if state.completed)
    current = next((state.step.value for state in states if not state.completed), TOTAL_STEPS)
    prerequisites_done = all(states[step].completed for step in PREREQUISITE_STEPS)
    consistent = listing.status is not ListingStatus.PUBLISHED or prerequisites_done
    if not consistent:
        logger.debug(
            "Listing %s is Published with incomplete steps.", listing.id
        )
    return ListingProgress(
        steps=states,
        completed_count=completed,
        completion_percentage=round(100 * completed / TOTAL_STEPS),
        current_step=current,
        is_consistent=consistent,
    )
