"""Lifecycle of the AI-generated listing text for the image being edited."""

from __future__ import annotations

import logging
from enum import Enum

from photo_to_profit.errors import MalformedResponse, NoOp, RemoteFailure
from photo_to_profit.models import Condition, ImageVersion, ListingInsights
from photo_to_profit.providers.base import StudioProvider

logger = logging.getLogger(__name__)


class InsightsStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ListingInsightsController:
    """
    Issues listing requests and applies their results in supersession order.

    Every request takes the next generation number. A response is applied only if
    its generation is still the latest when it arrives, so a slow response can
    never overwrite the result of a request issued after it.
    """

    def __init__(self, provider: StudioProvider) -> None:
        self._provider = provider
        self._generation = 0
        self._status = InsightsStatus.IDLE
        self._insights: ListingInsights | None = None
        self._error: str | None = None
        self._image: ImageVersion | None = None
        self._applied_params: tuple[Condition, str] | None = None

    @property
    def status(self) -> InsightsStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._status is InsightsStatus.LOADING

    @property
    def insights(self) -> ListingInsights | None:
        """The current insights, only while Ready."""
        if self._status is InsightsStatus.READY:
            return self._insights
        return None

    @property
    def last_insights(self) -> ListingInsights | None:
        """The most recently applied insights, kept through Loading and Failed."""
        return self._insights

    @property
    def error(self) -> str | None:
        if self._status is InsightsStatus.FAILED:
            return self._error
        return None

    @property
    def applied_params(self) -> tuple[Condition, str] | None:
        return self._applied_params

    async def request_initial(self, image: ImageVersion) -> bool:
        self._image = image
        return await self._issue(image, Condition.USED, "")

    async def refine(self, condition: Condition | str, hint: str = "", image: ImageVersion | None = None) -> bool:
        """
        Regenerate the listing for a new (condition, hint) pair. Returns False without
        calling the backend when the pair matches what is already applied.
        """
        condition = Condition(condition)
        hint = (hint or "").strip()
        if image is not None:
            self._image = image
        if self._image is None:
            raise NoOp("no image to describe")
        # A failed attempt never updates the applied params, so retrying it goes out again.
        if self._status is InsightsStatus.READY and self._applied_params == (condition, hint):
            logger.debug("Skipping refine; %s/%r already applied", condition.value, hint)
            return False
        return await self._issue(self._image, condition, hint)

    def restore(self, insights: ListingInsights) -> None:
        """Become Ready with previously saved insights, without a network call."""
        self._generation += 1
        self._status = InsightsStatus.READY
        self._insights = insights
        self._error = None
        self._applied_params = None

    def reset(self) -> None:
        # Bumping the generation makes any in-flight response stale.
        self._generation += 1
        self._status = InsightsStatus.IDLE
        self._insights = None
        self._error = None
        self._image = None
        self._applied_params = None

    async def _issue(self, image: ImageVersion, condition: Condition, hint: str) -> bool:
        self._generation += 1
        generation = self._generation
        self._status = InsightsStatus.LOADING
        self._error = None

        try:
            result = await self._provider.generate_listing(image, condition, hint)
        except (RemoteFailure, MalformedResponse) as exc:
            if generation != self._generation:
                logger.debug("Discarding stale listing failure from generation %d", generation)
                return False
            logger.warning("Listing generation failed: %s", exc)
            self._status = InsightsStatus.FAILED
            self._error = str(exc)
            return False
        except Exception as exc:
            # Unexpected provider errors still propagate, but must not leave the controller Loading.
            if generation == self._generation:
                self._status = InsightsStatus.FAILED
                self._error = str(exc) or type(exc).__name__
            raise

        if generation != self._generation:
            logger.debug("Discarding stale listing from generation %d (latest %d)", generation, self._generation)
            return False
        self._status = InsightsStatus.READY
        self._insights = result
        self._applied_params = (condition, hint)
        return True
