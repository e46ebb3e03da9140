"""
Tests for GeminiProvider response handling, using stub SDK responses (no network).
"""

from types import SimpleNamespace

import pytest

from photo_to_profit.errors import MalformedResponse, RemoteFailure
from photo_to_profit.models import Condition
from photo_to_profit.providers.gemini_provider import GeminiProvider, _parse_jsonish, build_listing_prompt

LISTING_JSON = """```json
{
  "title": "Sony WH-1000XM4 Wireless Headphones",
  "description": "- Noise cancelling\\n- **Black**",
  "pricingGuidance": {"recommendedPrice": "$120 - $150", "priceRationale": "Based on eBay sold listings."},
  "similarListing": {"title": "XM4 on eBay", "url": "https://www.ebay.com/itm/3"}
}
```"""


class _StubModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _provider(response=None, error=None):
    models = _StubModels(response, error)
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiProvider(client=client), models


def _response(parts=(), text=None, finish_reason="STOP", block_reason=None, grounding=None):
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=list(parts)),
        finish_reason=finish_reason,
        grounding_metadata=grounding,
    )
    feedback = SimpleNamespace(block_reason=block_reason, block_reason_message="unsafe") if block_reason else None
    return SimpleNamespace(candidates=[candidate], text=text, prompt_feedback=feedback)


def _image_part(data=b"new-image", mime="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(mime_type=mime, data=data), text=None)


class TestImageEdits:
    """Tests for remove/replace background."""

    @pytest.mark.asyncio
    async def test_returns_first_image_part(self, image_a):
        """The inline image part becomes the new ImageVersion."""
        provider, models = _provider(_response(parts=[_image_part(b"jpeg", "image/jpeg")]))

        result = await provider.replace_background(image_a, "sunny beach")

        assert result.data == b"jpeg"
        assert result.mime_type == "image/jpeg"
        prompt = models.calls[0]["contents"][1]
        assert 'User Request: "sunny beach"' in prompt

    @pytest.mark.asyncio
    async def test_remove_background_uses_staging_prompt(self, image_a):
        """Background removal should send the staging prompt."""
        provider, models = _provider(_response(parts=[_image_part()]))

        await provider.remove_background(image_a)

        assert "light grey background" in models.calls[0]["contents"][1]

    @pytest.mark.asyncio
    async def test_blocked_prompt(self, image_a):
        """A blocked prompt should raise RemoteFailure naming the reason."""
        provider, _ = _provider(_response(block_reason="SAFETY"))

        with pytest.raises(RemoteFailure, match="Reason: SAFETY"):
            await provider.remove_background(image_a)

    @pytest.mark.asyncio
    async def test_unexpected_finish_reason(self, image_a):
        """No image and a non-STOP finish should raise RemoteFailure."""
        provider, _ = _provider(_response(finish_reason="IMAGE_SAFETY"))

        with pytest.raises(RemoteFailure, match="IMAGE_SAFETY"):
            await provider.replace_background(image_a, "space")

    @pytest.mark.asyncio
    async def test_text_only_response(self, image_a):
        """A text-only answer should be quoted in the failure message."""
        provider, _ = _provider(_response(text="I cannot edit this image."))

        with pytest.raises(RemoteFailure, match="I cannot edit this image"):
            await provider.replace_background(image_a, "space")

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_remote_failure(self, image_a):
        """SDK exceptions should be wrapped in RemoteFailure."""
        provider, _ = _provider(error=RuntimeError("503 UNAVAILABLE"))

        with pytest.raises(RemoteFailure, match="503 UNAVAILABLE"):
            await provider.remove_background(image_a)


class TestListing:
    """Tests for generate_listing."""

    @pytest.mark.asyncio
    async def test_parses_fenced_json_and_grounding(self, image_a):
        """JSON inside a fence plus grounding chunks should become ListingInsights."""
        grounding = SimpleNamespace(
            grounding_chunks=[
                SimpleNamespace(web=SimpleNamespace(uri="https://ebay.com/a", title="ebay.com")),
                SimpleNamespace(web=None),
            ]
        )
        provider, models = _provider(_response(text=LISTING_JSON, grounding=grounding))

        insights = await provider.generate_listing(image_a, Condition.USED, "")

        assert insights.title == "Sony WH-1000XM4 Wireless Headphones"
        assert insights.pricing_guidance.recommended_price == "$120 - $150"
        assert insights.similar_listing.url == "https://www.ebay.com/itm/3"
        assert [(c.url, c.title) for c in insights.grounding_chunks] == [("https://ebay.com/a", "ebay.com")]
        assert models.calls[0]["config"].tools

    @pytest.mark.asyncio
    async def test_unparseable_text_is_malformed(self, image_a):
        """Prose with no JSON should raise MalformedResponse."""
        provider, _ = _provider(_response(text="Sorry, I could not find this product."))

        with pytest.raises(MalformedResponse):
            await provider.generate_listing(image_a, Condition.NEW, "")

    @pytest.mark.asyncio
    async def test_wrong_shape_is_malformed(self, image_a):
        """Valid JSON of the wrong shape should raise MalformedResponse."""
        provider, _ = _provider(_response(text='{"title": "Only a title"}'))

        with pytest.raises(MalformedResponse):
            await provider.generate_listing(image_a, Condition.NEW, "")


class TestPromptAndParsing:
    """Tests for prompt building and JSON extraction helpers."""

    def test_hint_is_included(self):
        """A non-empty hint should be called out as the primary clue."""
        prompt = build_listing_prompt(Condition.NEW, "Canon AE-1")

        assert '"Canon AE-1"' in prompt
        assert "**New** condition" in prompt

    def test_no_hint_section_without_hint(self):
        """An empty hint should not add the CRITICAL section."""
        assert "CRITICAL" not in build_listing_prompt(Condition.USED, "")

    @pytest.mark.parametrize(
        "text",
        [
            '{"a": 1}',
            '```json\n{"a": 1}\n```',
            '```\n{"a": 1}\n```',
            'Here you go:\n{"a": 1}\nHope that helps!',
        ],
    )
    def test_parse_jsonish(self, text):
        """JSON should be recovered from fences and surrounding prose."""
        assert _parse_jsonish(text) == {"a": 1}

    @pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2]"])
    def test_parse_jsonish_rejects(self, text):
        """Missing or non-object JSON yields None."""
        assert _parse_jsonish(text) is None
