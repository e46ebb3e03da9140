"""Linear undo/redo stack of image versions for one editing session."""

from __future__ import annotations

from photo_to_profit.errors import NoOp
from photo_to_profit.models import ImageVersion


class EditHistory:
    """
    Ordered image versions plus a cursor pointing at the current one.

    There is no branching: appending after an undo discards every version past
    the cursor before the new one is added.
    """

    def __init__(self) -> None:
        self._versions: list[ImageVersion] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._versions)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def versions(self) -> tuple[ImageVersion, ...]:
        return tuple(self._versions)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._versions) - 1

    def seed(self, image: ImageVersion) -> None:
        """Drop all prior versions and start over from a single image."""
        self._versions = [image]
        self._cursor = 0

    def append(self, image: ImageVersion) -> None:
        del self._versions[self._cursor + 1 :]
        self._versions.append(image)
        self._cursor = len(self._versions) - 1

    def undo(self) -> ImageVersion:
        if not self.can_undo:
            raise NoOp("nothing to undo")
        self._cursor -= 1
        return self._versions[self._cursor]

    def redo(self) -> ImageVersion:
        if not self.can_redo:
            raise NoOp("nothing to redo")
        self._cursor += 1
        return self._versions[self._cursor]

    def current(self) -> ImageVersion | None:
        if self._cursor < 0:
            return None
        return self._versions[self._cursor]
