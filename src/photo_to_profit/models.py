from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Any

from PIL import Image, UnidentifiedImageError

from photo_to_profit.errors import MalformedResponse

_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass(frozen=True)
class ImageVersion:
    data: bytes
    mime_type: str

    @classmethod
    def from_upload(cls, content: bytes, declared_mime: str | None = None) -> ImageVersion:
        """
        Validate an uploaded payload with Pillow. The declared mime type wins when it
        names an image type; otherwise it is derived from the decoded format.
        """
        if not content:
            raise ValueError("upload is empty")
        try:
            with Image.open(BytesIO(content)) as img:
                fmt = img.format or ""
                img.verify()
        except (
            UnidentifiedImageError,
            OSError,
            SyntaxError,
            ValueError,
            struct.error,
            Image.DecompressionBombError,
        ) as exc:
            # Pillow reports broken chunks as SyntaxError/struct.error, oversized images as DecompressionBombError.
            raise ValueError("upload is not a readable image") from exc

        mime = (declared_mime or "").strip().lower()
        if mime in _GENERIC_MIME_TYPES or not mime.startswith("image/"):
            mime = Image.MIME.get(fmt.upper(), "")
        if not mime:
            raise ValueError(f"unsupported image format: {fmt or 'unknown'}")
        return cls(data=content, mime_type=mime)

    @classmethod
    def from_data_url(cls, data_url: str) -> ImageVersion:
        header, sep, payload = data_url.partition(",")
        if not sep or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("not a base64 data URL")
        mime = header[len("data:") : -len(";base64")]
        if not mime:
            raise ValueError("data URL has no mime type")
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ValueError("data URL payload is not valid base64") from exc
        return cls(data=data, mime_type=mime)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


class Condition(str, Enum):
    NEW = "New"
    USED = "Used"


@dataclass(frozen=True)
class PricingGuidance:
    recommended_price: str
    price_rationale: str


@dataclass(frozen=True)
class SimilarListing:
    title: str
    url: str


@dataclass(frozen=True)
class GroundingChunk:
    url: str
    title: str


@dataclass(frozen=True)
class ListingInsights:
    title: str
    description: str  # markdown-lite: **bold**, ~~strike~~, "- " bullets, "> " quotes
    pricing_guidance: PricingGuidance
    similar_listing: SimilarListing | None = None
    grounding_chunks: tuple[GroundingChunk, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, data: Any, grounding_chunks: list[GroundingChunk] | None = None) -> ListingInsights:
        """
        Validate the JSON object returned by the listing model. Raises MalformedResponse
        when the required fields are missing or of the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedResponse("listing payload is not a JSON object")
        title = data.get("title")
        description = data.get("description")
        pricing = data.get("pricingGuidance")
        if not isinstance(title, str) or not isinstance(description, str):
            raise MalformedResponse("listing payload is missing title or description")
        if not isinstance(pricing, dict):
            raise MalformedResponse("listing payload is missing pricingGuidance")

        return cls(
            title=title.strip(),
            description=description.strip(),
            pricing_guidance=PricingGuidance(
                recommended_price=str(pricing.get("recommendedPrice") or "").strip(),
                price_rationale=str(pricing.get("priceRationale") or "").strip(),
            ),
            similar_listing=_similar_listing_from(data.get("similarListing")),
            grounding_chunks=tuple(grounding_chunks or ()),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ListingInsights:
        pricing = data["pricingGuidance"]
        chunks: list[GroundingChunk] = []
        for raw in data.get("groundingChunks") or []:
            # Older records kept the provider's {web: {uri, title}} shape.
            web = raw.get("web") if isinstance(raw.get("web"), dict) else None
            if web is not None:
                chunks.append(GroundingChunk(url=str(web.get("uri") or ""), title=str(web.get("title") or "")))
            else:
                chunks.append(GroundingChunk(url=str(raw["url"]), title=str(raw.get("title") or "")))
        return cls(
            title=str(data["title"]),
            description=str(data["description"]),
            pricing_guidance=PricingGuidance(
                recommended_price=str(pricing["recommendedPrice"]),
                price_rationale=str(pricing["priceRationale"]),
            ),
            similar_listing=_similar_listing_from(data.get("similarListing")),
            grounding_chunks=tuple(chunks),
        )

    def to_dict(self) -> dict[str, Any]:
        similar = None
        if self.similar_listing is not None:
            similar = {"title": self.similar_listing.title, "url": self.similar_listing.url}
        return {
            "title": self.title,
            "description": self.description,
            "pricingGuidance": {
                "recommendedPrice": self.pricing_guidance.recommended_price,
                "priceRationale": self.pricing_guidance.price_rationale,
            },
            "similarListing": similar,
            "groundingChunks": [{"url": c.url, "title": c.title} for c in self.grounding_chunks],
        }


@dataclass(frozen=True)
class SavedProduct:
    id: str
    current_image: ImageVersion
    original_image: ImageVersion
    insights: ListingInsights

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SavedProduct:
        return cls(
            id=str(data["id"]),
            current_image=ImageVersion.from_data_url(data["imageDataUrl"]),
            original_image=ImageVersion.from_data_url(data["originalImageDataUrl"]),
            insights=ListingInsights.from_dict(data["insights"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "imageDataUrl": self.current_image.to_data_url(),
            "originalImageDataUrl": self.original_image.to_data_url(),
            "insights": self.insights.to_dict(),
        }


def _similar_listing_from(raw: Any) -> SimilarListing | None:
    # The model is told to send empty strings when it found nothing.
    if not isinstance(raw, dict):
        return None
    url = str(raw.get("url") or "").strip()
    if not url:
        return None
    return SimilarListing(title=str(raw.get("title") or "").strip(), url=url)
