"""Client-side record filtering: text search, severity selection and score range."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from cvevault.schemas.records import VulnerabilityRecord

MIN_SCORE = 0.0
MAX_SCORE = 10.0

ScoreCategory = Literal["Critical", "High", "Medium", "Low", "None"]


def score_category(score: float | None) -> ScoreCategory:
    """Display band for a CVSS score; anything below 0.1 is None."""
    if score is None or score < 0.1:
        return "None"
    if score >= 9.0:
        return "Critical"
    if score >= 7.0:
        return "High"
    if score >= 4.0:
        return "Medium"
    return "Low"


@dataclass(frozen=True)
class RecordFilter:
    """
    Active filter criteria. An empty search, no severities and the full
    0-10 score range match everything.
    """

    search_text: str = ""
    severities: frozenset[str] = field(default_factory=frozenset)
    min_score: float = MIN_SCORE
    max_score: float = MAX_SCORE

    def __post_init__(self) -> None:
        if self.min_score > self.max_score:
            raise ValueError("min_score must not exceed max_score")
        object.__setattr__(self, "severities", frozenset(s.upper() for s in self.severities))

    @classmethod
    def build(
        cls,
        search_text: str = "",
        severities: Iterable[str] = (),
        min_score: float = MIN_SCORE,
        max_score: float = MAX_SCORE,
    ) -> "RecordFilter":
        return cls(search_text, frozenset(severities), min_score, max_score)

    @property
    def has_score_range(self) -> bool:
        return self.min_score > MIN_SCORE or self.max_score < MAX_SCORE

    @property
    def is_filtering(self) -> bool:
        return bool(self.search_text.strip()) or bool(self.severities) or self.has_score_range

    def matches(self, record: VulnerabilityRecord) -> bool:
        needle = self.search_text.strip().lower()
        if needle and needle not in record.external_id.lower() and needle not in record.description.lower():
            return False
        if self.severities and record.severity.upper() not in self.severities:
            return False
        if self.has_score_range and not (self.min_score <= record.score <= self.max_score):
            return False
        return True


def apply_filters(
    records: Sequence[VulnerabilityRecord], criteria: RecordFilter
) -> list[VulnerabilityRecord]:
    """Records matching every active criterion, in their original order."""
    if not criteria.is_filtering:
        return list(records)
    return [r for r in records if criteria.matches(r)]
