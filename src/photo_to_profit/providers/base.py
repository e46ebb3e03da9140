from __future__ import annotations

from typing import Protocol

from photo_to_profit.models import Condition, ImageVersion, ListingInsights


class StudioProvider(Protocol):
    """
    The generative backend. Every call may take unbounded time and fails with
    RemoteFailure (or MalformedResponse for listing output that does not parse).
    """

    name: str

    async def remove_background(self, image: ImageVersion) -> ImageVersion: ...

    async def replace_background(self, image: ImageVersion, scene_description: str) -> ImageVersion: ...

    async def generate_listing(self, image: ImageVersion, condition: Condition, hint: str) -> ListingInsights: ...
