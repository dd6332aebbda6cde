"""Per-label acceptance rules.

The pipeline only depends on :class:`RuleMatcher`. :class:`RuleBook` is the
file-backed implementation the CLI uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from labelx.errors import PipelineIOError, RuleFileError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """Minimum score for a label to be shown, and the name to show next to it."""

    label: str
    display_label: str = ""
    threshold: float = 0.0


class RuleMatcher(Protocol):
    """Protocol for rule lookup."""

    def find(self, label: str) -> tuple[Rule, bool]:
        """Return the rule for ``label`` and whether one was configured.

        An unmatched label gets ``Rule(label)``: threshold 0, empty display label.
        """
        ...


class RuleEntry(BaseModel):
    """On-disk form of a rule."""

    label: str
    display_label: str = ""
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)


_RULE_FILE = TypeAdapter(list[RuleEntry])


class RuleBook:
    """In-memory rule table keyed by label. Later entries replace earlier ones."""

    def __init__(self, rules: list[Rule] | None = None) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules or []:
            self._rules[rule.label] = rule

    def __len__(self) -> int:
        return len(self._rules)

    def find(self, label: str) -> tuple[Rule, bool]:
        rule = self._rules.get(label)
        if rule is None:
            return Rule(label=label), False
        return rule, True

    @classmethod
    def from_file(cls, path: str | Path) -> RuleBook:
        """Load a JSON array of ``{"label", "display_label", "threshold"}`` objects.

        Raises:
            PipelineIOError: If the file cannot be read.
            RuleFileError: If the content is not a valid rule list.
        """
        try:
            raw = Path(path).read_bytes()
        except OSError as exc:
            raise PipelineIOError(f"cannot read rules file {path}: {exc}") from exc
        try:
            entries = _RULE_FILE.validate_json(raw)
        except ValidationError as exc:
            raise RuleFileError(f"invalid rules file {path}: {exc}") from exc

        book = cls([Rule(e.label, e.display_label, e.threshold) for e in entries])
        logger.info("Loaded %d rules from %s", len(book), path)
        return book
