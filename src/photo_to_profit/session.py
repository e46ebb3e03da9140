"""
Top-level orchestration of one editing session.

SessionController owns the edit history and the listing controller, moves
between the Start, Editing and Gallery views, and decides when the current
work is committed to the gallery.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Awaitable, Callable

from photo_to_profit.config import settings
from photo_to_profit.errors import Busy, MalformedResponse, NoOp, NothingToSave, RemoteFailure
from photo_to_profit.gallery import GalleryStore
from photo_to_profit.history import EditHistory
from photo_to_profit.insights import ListingInsightsController
from photo_to_profit.models import Condition, ImageVersion, SavedProduct
from photo_to_profit.providers.base import StudioProvider
from photo_to_profit.share import listing_plain_text

logger = logging.getLogger(__name__)

SAVED_MESSAGE = "Product saved!"


class View(str, Enum):
    START = "start"
    EDITING = "editing"
    GALLERY = "gallery"


class SessionController:
    def __init__(
        self,
        provider: StudioProvider,
        gallery: GalleryStore,
        *,
        confirmation_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.gallery = gallery
        self.history = EditHistory()
        self.insights = ListingInsightsController(provider)
        self.view = View.START
        self.original_image: ImageVersion | None = None
        self.product_id: str | None = None
        self.busy = False
        self.edit_error: str | None = None
        self._confirmation_seconds = (
            settings.confirmation_seconds if confirmation_seconds is None else confirmation_seconds
        )
        self._clock = clock
        self._confirmation: tuple[str, float] | None = None
        # Bumped on every seed so an edit finishing after a new upload is dropped.
        self._epoch = 0

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def current_image(self) -> ImageVersion | None:
        return self.history.current()

    @property
    def confirmation(self) -> str | None:
        if self._confirmation is None:
            return None
        message, expires_at = self._confirmation
        if self._clock() >= expires_at:
            self._confirmation = None
            return None
        return message

    async def upload(self, image: ImageVersion) -> None:
        """Start a brand-new unsaved product from an uploaded image and fetch its listing."""
        self._seed(image, original=image)
        self.insights.reset()
        self.product_id = None
        self.view = View.EDITING
        await self.insights.request_initial(image)

    def open_product(self, product_id: str) -> SavedProduct:
        """Resume a saved product; its stored insights are used as-is."""
        product = self.gallery.find_by_id(product_id)
        self._seed(product.current_image, original=product.original_image)
        self.insights.restore(product.insights)
        self.product_id = product.id
        self.view = View.EDITING
        return product

    def show_gallery(self) -> None:
        self.view = View.GALLERY

    def resume_editing(self) -> None:
        if self.history.current() is None:
            raise NoOp("no session to resume")
        self.view = View.EDITING

    def new_listing(self) -> None:
        self.view = View.START

    async def remove_background(self) -> ImageVersion:
        return await self._run_edit("background removal", self.provider.remove_background)

    async def apply_background_edit(self, prompt: str) -> ImageVersion:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("describe the new background")
        return await self._run_edit(
            "background replacement",
            lambda image: self.provider.replace_background(image, prompt),
        )

    def undo(self) -> ImageVersion:
        return self.history.undo()

    def redo(self) -> ImageVersion:
        return self.history.redo()

    async def refine(self, condition: Condition | str, hint: str = "") -> bool:
        current = self.history.current()
        if current is None:
            raise NoOp("no image to describe")
        return await self.insights.refine(condition, hint, image=current)

    def save(self) -> SavedProduct:
        current = self.history.current()
        insights = self.insights.insights
        if current is None:
            raise NothingToSave("there is no image to save")
        if insights is None:
            raise NothingToSave("listing details are not ready yet")

        product = SavedProduct(
            id=self.product_id or uuid.uuid4().hex[:12],
            current_image=current,
            original_image=self.original_image or current,
            insights=insights,
        )
        self.gallery.upsert(product)
        self.product_id = product.id
        self._confirmation = (SAVED_MESSAGE, self._clock() + self._confirmation_seconds)
        logger.info("Saved product %s", product.id)
        return product

    def delete_product(self, product_id: str) -> bool:
        removed = self.gallery.remove(product_id)
        if product_id == self.product_id:
            # The next save must create a new entry rather than resurrect this one.
            self.product_id = None
        return removed

    def share_text(self) -> str:
        insights = self.insights.last_insights
        if insights is None:
            raise NothingToSave("there is no listing to share")
        return listing_plain_text(insights)

    def _seed(self, image: ImageVersion, original: ImageVersion) -> None:
        self._epoch += 1
        self.history.seed(image)
        self.original_image = original
        self.edit_error = None

    async def _run_edit(
        self,
        context: str,
        call: Callable[[ImageVersion], Awaitable[ImageVersion]],
    ) -> ImageVersion:
        current = self.history.current()
        if self.view is not View.EDITING or current is None:
            raise NoOp("no image to edit")
        if self.busy:
            raise Busy("an edit is already in progress")

        self.busy = True
        self.edit_error = None
        epoch = self._epoch
        try:
            result = await call(current)
        except (RemoteFailure, MalformedResponse) as exc:
            if epoch == self._epoch:
                self.edit_error = str(exc)
            logger.warning("%s failed: %s", context, exc)
            raise
        finally:
            self.busy = False

        if epoch != self._epoch:
            logger.info("Dropping %s result for a session that was replaced", context)
            return result
        self.history.append(result)
        return result
