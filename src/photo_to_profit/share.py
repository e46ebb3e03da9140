from __future__ import annotations

import re

from photo_to_profit.models import ListingInsights

_LINE_MARKERS = re.compile(r"^[ \t]*(?:- |> )", re.MULTILINE)


def strip_markdown(text: str) -> str:
    """Drop bold/strikethrough markers and leading bullet/quote markers."""
    text = text.replace("**", "").replace("~~", "")
    return _LINE_MARKERS.sub("", text)


def listing_plain_text(insights: ListingInsights) -> str:
    """Title and description as plain text, for the clipboard and share links."""
    return strip_markdown(f"{insights.title}\n\n{insights.description}")
