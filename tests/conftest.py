"""Pytest fixtures for photo_to_profit tests."""

from __future__ import annotations

import asyncio
from io import BytesIO

import pytest
from PIL import Image

from photo_to_profit.gallery import GalleryStore, MemoryBackend
from photo_to_profit.models import (
    Condition,
    GroundingChunk,
    ImageVersion,
    ListingInsights,
    PricingGuidance,
    SimilarListing,
)
from photo_to_profit.session import SessionController


def png_bytes(color: tuple[int, int, int] = (200, 30, 30), size: tuple[int, int] = (4, 4)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_image(color: tuple[int, int, int] = (200, 30, 30)) -> ImageVersion:
    return ImageVersion(data=png_bytes(color), mime_type="image/png")


def make_insights(title: str = "Widget", price: str = "$10 - $15") -> ListingInsights:
    return ListingInsights(
        title=title,
        description="**Great** condition\n- Works\n- ~~No box~~",
        pricing_guidance=PricingGuidance(recommended_price=price, price_rationale="Based on sold listings."),
        similar_listing=SimilarListing(title="Widget on eBay", url="https://www.ebay.com/itm/1"),
        grounding_chunks=(GroundingChunk(url="https://example.com/widget", title="example.com"),),
    )


async def settle() -> None:
    """Let freshly created tasks run up to their first real suspension point."""
    for _ in range(5):
        await asyncio.sleep(0)


class FakeProvider:
    """Scriptable StudioProvider. Set `hold` to park calls until their gate is set."""

    name = "fake"

    def __init__(self) -> None:
        self.listings: dict[tuple[Condition, str], ListingInsights | Exception] = {}
        self.default_listing: ListingInsights | Exception = make_insights()
        self.edit_results: list[ImageVersion | Exception] = []
        self.calls: list[tuple] = []
        self.hold = False
        self.gates: list[asyncio.Event] = []

    async def _wait(self) -> None:
        if self.hold:
            gate = asyncio.Event()
            self.gates.append(gate)
            await gate.wait()

    def _next_edit(self, image: ImageVersion) -> ImageVersion:
        if self.edit_results:
            result = self.edit_results.pop(0)
        else:
            result = ImageVersion(data=image.data + b"-edited", mime_type="image/png")
        if isinstance(result, Exception):
            raise result
        return result

    async def remove_background(self, image: ImageVersion) -> ImageVersion:
        self.calls.append(("remove_background",))
        await self._wait()
        return self._next_edit(image)

    async def replace_background(self, image: ImageVersion, scene_description: str) -> ImageVersion:
        self.calls.append(("replace_background", scene_description))
        await self._wait()
        return self._next_edit(image)

    async def generate_listing(self, image: ImageVersion, condition: Condition, hint: str) -> ListingInsights:
        self.calls.append(("generate_listing", Condition(condition), hint))
        await self._wait()
        result = self.listings.get((Condition(condition), hint), self.default_listing)
        if isinstance(result, Exception):
            raise result
        return result

    def listing_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "generate_listing"]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def gallery(backend: MemoryBackend) -> GalleryStore:
    store = GalleryStore(backend)
    store.load_all()
    return store


@pytest.fixture
def session(provider: FakeProvider, gallery: GalleryStore) -> SessionController:
    return SessionController(provider, gallery, confirmation_seconds=3.0)


@pytest.fixture
def image_a() -> ImageVersion:
    return make_image((200, 30, 30))


@pytest.fixture
def image_b() -> ImageVersion:
    return make_image((30, 200, 30))


@pytest.fixture
def image_c() -> ImageVersion:
    return make_image((30, 30, 200))
