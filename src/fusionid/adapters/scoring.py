"""Similarity scorer comparing drained accounts against fusion identities.

Each configured ``MatchingRule`` scores one attribute with a rapidfuzz
algorithm on a 0-100 scale. A candidate is a match when:

- average mode: the mean of all attribute scores reaches the threshold
  (reported as an extra ``average`` score)
- otherwise, when mandatory rules were scored: every mandatory score matched
- otherwise: every scored attribute matched

A failing mandatory rule stops the comparison early unless average mode or
report mode needs the full breakdown.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from rapidfuzz import fuzz
from rapidfuzz.distance import JaroWinkler

from fusionid.domain.model.matching import FusionMatch, ScoreReport

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.settings import MatchingRule

log = logging.getLogger(__name__)

AVERAGE_ALGORITHM: Final[str] = "average"
AVERAGE_ATTRIBUTE: Final[str] = "Average Score"


def _exact(left: str, right: str) -> float:
    return 100.0 if left.casefold() == right.casefold() else 0.0


def _jaro_winkler(left: str, right: str) -> float:
    return JaroWinkler.normalized_similarity(left, right) * 100


ALGORITHMS: Final[dict[str, Callable[[str, str], float]]] = {
    "exact": _exact,
    "jaro-winkler": _jaro_winkler,
    "partial-ratio": fuzz.partial_ratio,
    "ratio": fuzz.ratio,
    "token-set": fuzz.token_set_ratio,
    "token-sort": fuzz.token_sort_ratio,
}


class SimilarityScorer:
    def __init__(
        self,
        rules: Sequence[MatchingRule],
        *,
        use_average: bool = False,
        average_threshold: float = 0.0,
        report_mode: bool = False,
    ) -> None:
        unknown = sorted({rule.algorithm for rule in rules} - set(ALGORITHMS))
        if unknown:
            raise ValueError(f"Unsupported matching algorithm(s): {', '.join(unknown)}")
        self._rules = tuple(rules)
        self._use_average = use_average
        self._average_threshold = average_threshold
        self._report_mode = report_mode

    def score(
        self,
        record: FusionRecord,
        candidates: Sequence[FusionRecord],
    ) -> list[FusionMatch]:
        matches: list[FusionMatch] = []
        for candidate in candidates:
            match = self.compare(record, candidate)
            if match is not None and match.is_match:
                matches.append(match)
        return matches

    def compare(self, record: FusionRecord, candidate: FusionRecord) -> FusionMatch | None:
        """Score ``record`` against one candidate; ``None`` when a mandatory rule ruled it out."""

        full_run = self._report_mode or self._use_average
        scores: list[ScoreReport] = []
        for rule in self._rules:
            left = record.attributes.get(rule.attribute)
            right = candidate.attributes.get(rule.attribute)
            if not left or not right:
                continue
            report = self._score_attribute(str(left), str(right), rule)
            if rule.mandatory and not report.is_match and not full_run:
                return None
            scores.append(report)

        if not scores:
            return None

        if self._use_average:
            average = sum(score.score for score in scores) / len(scores)
            is_match = average >= self._average_threshold
            scores.append(
                ScoreReport(
                    attribute=AVERAGE_ATTRIBUTE,
                    score=average,
                    is_match=is_match,
                    algorithm=AVERAGE_ALGORITHM,
                    fusion_score=self._average_threshold,
                    mandatory=True,
                    comment=(
                        "Average score is above threshold"
                        if is_match
                        else "Average score is below threshold"
                    ),
                )
            )
        else:
            mandatory = [score for score in scores if score.mandatory]
            considered = mandatory or scores
            is_match = all(score.is_match for score in considered)

        log.debug(
            "Scored %s against %s: %s",
            record,
            candidate,
            ", ".join(f"{score.attribute}={score.score:.1f}" for score in scores),
        )
        return FusionMatch.for_identity(candidate, scores, is_match=is_match)

    def _score_attribute(self, left: str, right: str, rule: MatchingRule) -> ScoreReport:
        score = float(ALGORITHMS[rule.algorithm](left, right))
        is_match = score >= rule.fusion_score
        return ScoreReport(
            attribute=rule.attribute,
            score=score,
            is_match=is_match,
            algorithm=rule.algorithm,
            fusion_score=rule.fusion_score,
            mandatory=rule.mandatory,
            comment=None if is_match else f"Score below {rule.fusion_score:g}",
        )


__all__ = ["ALGORITHMS", "SimilarityScorer"]
