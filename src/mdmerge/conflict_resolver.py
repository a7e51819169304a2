"""Decides which side of a matched pair goes into the merged output.

Decision order, first applicable wins:
  1. destination is a protected region   -> destination, frozen
  2. template is a protected region      -> template, frozen
  3. rendered texts are identical        -> destination, identical
  4. otherwise                           -> configured preference
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mdmerge.document_analysis import DocumentAnalysis
from mdmerge.freeze_blocks import ProtectedRegion
from mdmerge.signatures import Statement

type Source = Literal["template", "destination"]
type Decision = Literal["identical", "frozen", "preference_template", "preference_destination"]

PREFERENCES: frozenset[str] = frozenset({"template", "destination"})


@dataclass(frozen=True, slots=True)
class ConflictResolution:
    source: Source
    decision: Decision
    template_node: Statement
    dest_node: Statement
    reason: str | None = None

    @property
    def chosen(self) -> Statement:
        return self.template_node if self.source == "template" else self.dest_node


def validate_preference(preference: str) -> Source:
    if preference not in PREFERENCES:
        raise ValueError(
            f"preference must be one of {sorted(PREFERENCES)}, got {preference!r}"
        )
    return preference  # type: ignore[return-value]


class ConflictResolver:
    """Resolves matched statement pairs against a fixed preference."""

    def __init__(
        self,
        preference: str,
        template_analysis: DocumentAnalysis,
        dest_analysis: DocumentAnalysis,
    ) -> None:
        self.preference: Source = validate_preference(preference)
        self.template_analysis = template_analysis
        self.dest_analysis = dest_analysis

    def resolve(self, template_stmt: Statement, dest_stmt: Statement) -> ConflictResolution:
        if isinstance(dest_stmt, ProtectedRegion):
            return ConflictResolution(
                "destination", "frozen", template_stmt, dest_stmt, dest_stmt.reason,
            )
        if isinstance(template_stmt, ProtectedRegion):
            return ConflictResolution(
                "template", "frozen", template_stmt, dest_stmt, template_stmt.reason,
            )

        template_text = self.template_analysis.statement_text(template_stmt)
        dest_text = self.dest_analysis.statement_text(dest_stmt)
        if template_text == dest_text:
            return ConflictResolution("destination", "identical", template_stmt, dest_stmt)

        decision: Decision = (
            "preference_template" if self.preference == "template" else "preference_destination"
        )
        return ConflictResolution(self.preference, decision, template_stmt, dest_stmt)
