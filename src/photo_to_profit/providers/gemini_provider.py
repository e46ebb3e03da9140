from __future__ import annotations

import json
import logging
import re
from typing import Any

from photo_to_profit.config import settings
from photo_to_profit.errors import MalformedResponse, RemoteFailure
from photo_to_profit.models import Condition, GroundingChunk, ImageVersion, ListingInsights

logger = logging.getLogger(__name__)

STAGING_PROMPT = (
    "You are an expert photo editor AI. Your task is to perfectly remove the background from this image.\n"
    "Leave only the main subject, perfectly cut out, and place it on a neutral, professional light grey background.\n"
    "Ensure the lighting on the subject looks natural against the new background.\n"
    "\n"
    "Output: Return ONLY the final image as a PNG file. Do not return text."
)

BACKGROUND_PROMPT = (
    "You are an expert photo editor AI. You are given an image of a subject on a neutral background.\n"
    "Your task is to replace this background with a new one as described by the user request.\n"
    "\n"
    'User Request: "{scene}"\n'
    "\n"
    "Editing Guidelines:\n"
    "- The new background must be photorealistic and match the user's description.\n"
    "- The lighting, shadows, and perspective of the main subject must be realistically adjusted to match "
    "the new background seamlessly.\n"
    "- The subject itself should not be altered, only its integration into the new scene.\n"
    "\n"
    "Output: Return ONLY the final composed image. Do not return text."
)

_LISTING_INSTRUCTIONS = """

Follow these instructions precisely:
1.  **Search and Identify:** Use Google Search. Formulate effective search queries based on the image and user info (e.g., "[product name] price", "[brand model number] review"). Find the product's official name, brand, and model. If you cannot find a confident match, state that in your response.
2.  **Generate Title:** Based on your search results, craft a catchy, SEO-friendly title suitable for an eBay listing. Include brand, model, and key features.
3.  **Write Description:** Write a concise and effective description for an eBay listing based on product details found via search. Use Markdown bullet points (`-`) for features, specifications, or notes on the item's condition.
4.  **Determine Price Range:** You **MUST** use Google Search to determine a realistic market price range for the item in the specified **{condition}** condition. Follow this search hierarchy:
    a. **Sold Listings:** First, search for **sold listings** on eBay and other marketplaces (like Poshmark).
    b. **Active Listings:** If there are few or no sold listings, search for **active listings** across Google Shopping, eBay, Amazon, and other relevant marketplaces.
    c. **Retail Price:** If it's a 'Used' item and you can't find resale listings, find the original retail price (MSRP) and estimate a used price from it. For 'New' items, the current retail price is a strong indicator.
5.  **Format Pricing Output:**
    - **"recommendedPrice":** Provide a price **range** (e.g., "$100 - $125"). Only if you have exhausted all search methods should you use "Could not determine". Do not invent a price.
    - **"priceRationale":** Explain how you arrived at your price range, citing the types of sources you found.
6.  **Find Similar Listing:** Provide a direct URL to one of the most relevant listings (active or sold) that you used for your research. If you cannot find a suitable listing, the values for "url" and "title" must be empty strings.

Return the response as a single JSON object inside a markdown code block. Do not include any other text or explanation outside the JSON block.

The JSON structure must be:
```json
{{
  "title": "string",
  "description": "string (concise, with markdown for bullet points)",
  "pricingGuidance": {{
    "recommendedPrice": "string (e.g., '$100 - $125' or 'Could not determine')",
    "priceRationale": "string"
  }},
  "similarListing": {{
    "title": "string",
    "url": "string"
  }}
}}
```
"""


def build_listing_prompt(condition: Condition, hint: str) -> str:
    prompt = (
        "You are an expert e-commerce listing AI, specializing in platforms like eBay. Your primary function is "
        "to use the provided Google Search tool to find real-time product information and pricing. Your entire "
        "analysis must be grounded in up-to-date search results, not your internal knowledge.\n\n"
        "Your task is to use Google Search to identify the product in the image and create a complete, optimized "
        f"product listing. The product is in **{condition.value}** condition."
    )
    if hint:
        prompt += (
            f'\n\n**CRITICAL**: The user has provided this information: "{hint}". This is your most important clue. '
            "Use it as the primary guide for your search and identification. Prioritize this information over "
            "your own visual analysis if they conflict."
        )
    return prompt + _LISTING_INSTRUCTIONS.format(condition=condition.value)


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        if client is None:
            # Imported lazily so the app can start without the dependency installed.
            from google import genai  # type: ignore

            client = genai.Client(api_key=api_key)
        self.client = client

    async def remove_background(self, image: ImageVersion) -> ImageVersion:
        logger.info("Starting background removal")
        resp = await self._generate(settings.gemini_image_model, image, STAGING_PROMPT)
        return _image_from_response(resp, "background removal")

    async def replace_background(self, image: ImageVersion, scene_description: str) -> ImageVersion:
        logger.info("Starting background replacement: %s", scene_description)
        prompt = BACKGROUND_PROMPT.format(scene=scene_description)
        resp = await self._generate(settings.gemini_image_model, image, prompt)
        return _image_from_response(resp, "background replacement")

    async def generate_listing(self, image: ImageVersion, condition: Condition, hint: str) -> ListingInsights:
        """
        Ask the text model, with Google Search grounding, for a listing as JSON. The
        model tends to wrap the JSON in a fenced block or chatter around it, so the
        object is extracted before validation.
        """
        from google.genai import types  # type: ignore

        condition = Condition(condition)
        logger.info("Starting listing generation for %s item (hint=%r)", condition.value, hint)
        resp = await self._generate(
            settings.gemini_text_model,
            image,
            build_listing_prompt(condition, hint),
            config=types.GenerateContentConfig(tools=[types.Tool(google_search=types.GoogleSearch())]),
        )
        _raise_if_blocked(resp)

        raw_text = _text_or_none(resp)
        data = _parse_jsonish(raw_text)
        if data is None:
            logger.error("Listing response did not contain parseable JSON: %.500s", raw_text or "")
            raise MalformedResponse(
                "The AI model returned an invalid response for the product details. Please try again."
            )
        return ListingInsights.from_payload(data, _grounding_chunks(resp))

    async def _generate(self, model: str, image: ImageVersion, prompt: str, config: Any = None) -> Any:
        from google.genai import types  # type: ignore

        contents: list[Any] = [types.Part.from_bytes(data=image.data, mime_type=image.mime_type), prompt]
        try:
            resp = await self.client.aio.models.generate_content(model=model, contents=contents, config=config)
        except Exception as exc:
            logger.exception("Gemini request to %s failed", model)
            raise RemoteFailure(str(exc) or type(exc).__name__) from exc
        logger.debug("Received response from %s", model)
        return resp


def _enum_name(value: Any) -> str:
    return getattr(value, "name", None) or str(value)


def _raise_if_blocked(resp: Any) -> None:
    feedback = getattr(resp, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    if reason:
        detail = getattr(feedback, "block_reason_message", None) or ""
        message = f"Request was blocked. Reason: {_enum_name(reason)}. {detail}".strip()
        logger.error(message)
        raise RemoteFailure(message)


def _image_from_response(resp: Any, context: str) -> ImageVersion:
    _raise_if_blocked(resp)

    extracted = _extract_images_from_generate_content(resp)
    if extracted:
        data, mime = extracted[0]
        logger.info("Received image data (%s) for %s", mime, context)
        return ImageVersion(data=data, mime_type=mime)

    candidates = getattr(resp, "candidates", None) or []
    finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
    if finish_reason and _enum_name(finish_reason) != "STOP":
        message = (
            f"Image generation for {context} stopped unexpectedly. Reason: {_enum_name(finish_reason)}. "
            "This often relates to safety settings."
        )
        logger.error(message)
        raise RemoteFailure(message)

    text_feedback = (_text_or_none(resp) or "").strip()
    message = f"The AI model did not return an image for the {context}. "
    if text_feedback:
        message += f'The model responded with text: "{text_feedback}"'
    else:
        message += (
            "This can happen due to safety filters or if the request is too complex. "
            "Please try rephrasing your prompt to be more direct."
        )
    logger.error("Model response did not contain an image part for %s", context)
    raise RemoteFailure(message)


def _text_or_none(resp: Any) -> str | None:
    try:
        return getattr(resp, "text", None)
    except Exception:
        # The SDK's .text accessor raises on some non-text responses.
        return None


def _extract_images_from_generate_content(resp: Any) -> list[tuple[bytes, str]]:
    out: list[tuple[bytes, str]] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or "image/png"
            data = getattr(inline, "data", None)
            if not data:
                continue
            if not mime.startswith("image/"):
                continue
            out.append((data, mime))
    return out


def _grounding_chunks(resp: Any) -> list[GroundingChunk]:
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    out: list[GroundingChunk] = []
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if not uri:
            continue
        out.append(GroundingChunk(url=uri, title=getattr(web, "title", None) or uri))
    return out


_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def _parse_jsonish(raw_text: str | None) -> dict[str, Any] | None:
    if not raw_text:
        return None
    s = raw_text.strip()
    m = _FENCED_JSON.search(s)
    if m:
        s = m.group(1).strip()
    else:
        # Best-effort: take the outermost object when the model adds prose around it.
        start = s.find("{")
        end = s.rfind("}")
        if start != -1 and end > start:
            s = s[start : end + 1]
    try:
        data = json.loads(s)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
