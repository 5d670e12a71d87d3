"""Local draft of a summary being edited."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from backend.app.errors import EmptySummaryError
from backend.app.summary.blocks import Block, parse_summary


class SaveOutcome(str, Enum):
    no_changes = "no_changes"
    saved = "saved"


@dataclass
class SummaryDraft:
    """Draft copy of the active summary with a dirty flag.

    The stored text only changes through save(), which hands the draft to the
    versioning endpoint and adopts the returned summary as the new baseline.
    """

    stored: str
    draft: str = ""

    def __post_init__(self) -> None:
        if not self.draft:
            self.draft = self.stored

    @property
    def dirty(self) -> bool:
        return self.draft.strip() != self.stored.strip()

    def edit(self, text: str) -> None:
        self.draft = text

    def reset(self) -> None:
        """Discard local edits."""
        self.draft = self.stored

    def preview(self) -> list[Block]:
        return parse_summary(self.draft)

    def save(self, persist: Callable[[str], dict[str, Any]]) -> SaveOutcome:
        """Persist the draft as a new summary version.

        Args:
            persist: Sends the summary to the backend and returns the updated document

        Returns:
            SaveOutcome.no_changes without calling persist if nothing was edited

        Raises:
            EmptySummaryError: Draft is empty or whitespace-only (persist is not called)
        """
        if not self.draft.strip():
            raise EmptySummaryError("Summary cannot be empty")
        if not self.dirty:
            return SaveOutcome.no_changes

        document = persist(self.draft.strip())
        self.stored = document.get("summary") or self.draft.strip()
        self.draft = self.stored
        return SaveOutcome.saved
