"""Error kinds raised by the editing session, gallery and AI providers."""

from __future__ import annotations


class PhotoToProfitError(Exception):
    """Base class for all domain errors."""


class NoOp(PhotoToProfitError):
    """The requested action has nothing to act on (undo at the oldest version, etc.)."""


class Busy(PhotoToProfitError):
    """An image edit was requested while another one is still in flight."""


class NothingToSave(PhotoToProfitError):
    """Save was attempted without a current image or without ready listing insights."""


class NotFound(PhotoToProfitError):
    """A gallery lookup missed."""


class MalformedResponse(PhotoToProfitError):
    """The AI backend returned output that could not be parsed or validated."""


class RemoteFailure(PhotoToProfitError):
    """The AI backend call failed; the message carries the backend's explanation when available."""


class PersistenceCorrupt(PhotoToProfitError):
    """The stored gallery payload could not be decoded."""


class PersistenceError(PhotoToProfitError):
    """The gallery snapshot could not be written."""
