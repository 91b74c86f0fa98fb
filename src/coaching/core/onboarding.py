"""Onboarding resolver (F2).

Works out which onboarding screen a parent should see next. Steps are
strictly ordered:

    preferences -> child profile -> exam selection -> parent dashboard

The aggregate status endpoint is asked first. When it cannot answer,
each resource is probed in order and the first missing one wins.
Missing (404) and failed (network, 5xx) lookups are kept apart: a
failed lookup raises OnboardingCheckError instead of sending the parent
back to a step they already completed.

Resolution has no side effects and is safe to re-run on every screen.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

import structlog

from coaching.api.client import (
    ApiClient,
    ApiError,
    NotFound,
    TransientError,
    lookup,
)
from coaching.api.schemas import ChildProfile, ExamSelection, OnboardingStatus

logger = structlog.get_logger(__name__)


class OnboardingCheckError(Exception):
    """An existence check failed for a reason other than "not found"."""

    def __init__(self, resource: str, error: ApiError):
        self.resource = resource
        self.error = error
        super().__init__(f"Could not check {resource}: {error}")


class OnboardingStep(Enum):
    """Onboarding screens in their mandatory order."""

    PREFERENCES = "/onboarding/preferences"
    CHILD_PROFILE = "/onboarding/child-profile"
    EXAM_SELECTION = "/onboarding/exam-selection"
    COMPLETE = "/parent-dashboard"

    @property
    def route(self) -> str:
        return self.value

    @property
    def order(self) -> int:
        return list(OnboardingStep).index(self)


@dataclass
class OnboardingResolution:
    """Outcome of a resolver run."""

    step: OnboardingStep
    source: Literal["status", "probe"]
    child: ChildProfile | None = None
    exam_selection: ExamSelection | None = None
    status: OnboardingStatus | None = None

    @property
    def route(self) -> str:
        return self.step.route

    @property
    def is_complete(self) -> bool:
        return self.step is OnboardingStep.COMPLETE


def step_from_presence(
    has_preferences: bool,
    has_child_profile: bool,
    has_exam_selection: bool,
) -> OnboardingStep:
    """Map resource presence onto the next step; the first gap wins."""
    if not has_preferences:
        return OnboardingStep.PREFERENCES
    if not has_child_profile:
        return OnboardingStep.CHILD_PROFILE
    if not has_exam_selection:
        return OnboardingStep.EXAM_SELECTION
    return OnboardingStep.COMPLETE


def guard_screen(current: OnboardingStep, resolution: OnboardingResolution) -> str | None:
    """Redirect route for a screen whose step is already done, else None.

    A screen may only be shown when it is the next step; earlier gaps
    send the parent back, completed steps send them forward.
    """
    if resolution.step is current:
        return None
    return resolution.route


class OnboardingResolver:
    """Resolve the current onboarding step for a parent."""

    def __init__(self, client: ApiClient, use_status_endpoint: bool = True):
        self.client = client
        self.use_status_endpoint = use_status_endpoint

    async def resolve(self, parent_id: str) -> OnboardingResolution:
        """Determine the next onboarding step.

        Args:
            parent_id: Authenticated parent's id

        Returns:
            OnboardingResolution with the step and whatever was loaded on the way

        Raises:
            OnboardingCheckError: If a probe failed transiently
        """
        if self.use_status_endpoint:
            resolution = await self._from_status(parent_id)
            if resolution is not None:
                return resolution

        resolution = await self._probe(parent_id)
        logger.info(
            "onboarding_resolved",
            parent_id=parent_id,
            step=resolution.step.name,
            source=resolution.source,
        )
        return resolution

    async def _from_status(self, parent_id: str) -> OnboardingResolution | None:
        try:
            status = await self.client.get_onboarding_status(parent_id)
        except ApiError as e:
            logger.info("onboarding_status_unavailable", parent_id=parent_id, error=str(e))
            return None

        if status.onboarding_complete:
            step = OnboardingStep.COMPLETE
        else:
            step = step_from_presence(
                status.preferences_complete,
                status.child_profile_complete,
                status.exam_selection_complete,
            )

        logger.info(
            "onboarding_resolved",
            parent_id=parent_id,
            step=step.name,
            source="status",
        )
        return OnboardingResolution(step=step, source="status", status=status)

    async def _probe(self, parent_id: str) -> OnboardingResolution:
        prefs = await lookup(self.client.get_preferences(parent_id))
        if isinstance(prefs, TransientError):
            raise OnboardingCheckError("preferences", prefs.error)
        if isinstance(prefs, NotFound):
            return OnboardingResolution(step=OnboardingStep.PREFERENCES, source="probe")

        child = await lookup(self.client.get_child_profile(parent_id))
        if isinstance(child, TransientError):
            raise OnboardingCheckError("child profile", child.error)
        if isinstance(child, NotFound):
            return OnboardingResolution(step=OnboardingStep.CHILD_PROFILE, source="probe")

        exam = await lookup(self.client.get_exam_selection(child.data.child_id))
        if isinstance(exam, TransientError):
            raise OnboardingCheckError("exam selection", exam.error)
        if isinstance(exam, NotFound):
            return OnboardingResolution(
                step=OnboardingStep.EXAM_SELECTION,
                source="probe",
                child=child.data,
            )

        return OnboardingResolution(
            step=OnboardingStep.COMPLETE,
            source="probe",
            child=child.data,
            exam_selection=exam.data,
        )
