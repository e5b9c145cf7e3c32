from __future__ import annotations

import pytest

from fusionid.adapters.scoring import SimilarityScorer
from fusionid.domain.model import DirectoryIdentity, FusionRecord
from fusionid.domain.settings import MatchingRule
from tests.support.fusion import account, record_settings


def _drained(**attributes: object) -> FusionRecord:
    return FusionRecord.from_managed_account(
        account("h1", **attributes), settings=record_settings()
    )


def _identity(identity_id: str, **attributes: object) -> FusionRecord:
    return FusionRecord.from_identity(
        DirectoryIdentity(id=identity_id, name=identity_id, attributes=dict(attributes)),
        settings=record_settings(),
    )


def test_exact_rule_matches_case_insensitively() -> None:
    scorer = SimilarityScorer([MatchingRule(attribute="email", algorithm="exact")])

    matches = scorer.score(
        _drained(email="ADA@example.com"),
        [_identity("id-1", email="ada@example.com"), _identity("id-2", email="bob@example.com")],
    )

    assert [match.identity_id for match in matches] == ["id-1"]
    assert matches[0].scores[0].score == 100.0
    assert matches[0].fusion_identity is not None


def test_jaro_winkler_scores_close_names_high() -> None:
    rule = MatchingRule(attribute="name", algorithm="jaro-winkler", fusion_score=90.0)
    scorer = SimilarityScorer([rule])

    match = scorer.compare(_drained(name="Jonathon"), _identity("id-1", name="Jonathan"))

    assert match is not None
    assert match.is_match
    assert 90.0 <= match.scores[0].score < 100.0


def test_failing_mandatory_rule_rules_out_candidate() -> None:
    scorer = SimilarityScorer(
        [
            MatchingRule(attribute="email", algorithm="exact", mandatory=True),
            MatchingRule(attribute="name", algorithm="ratio", fusion_score=50.0),
        ]
    )

    match = scorer.compare(
        _drained(email="ada@example.com", name="Ada"),
        _identity("id-1", email="other@example.com", name="Ada"),
    )

    assert match is None


def test_report_mode_keeps_full_breakdown() -> None:
    scorer = SimilarityScorer(
        [
            MatchingRule(attribute="email", algorithm="exact", mandatory=True),
            MatchingRule(attribute="name", algorithm="ratio", fusion_score=50.0),
        ],
        report_mode=True,
    )

    match = scorer.compare(
        _drained(email="ada@example.com", name="Ada"),
        _identity("id-1", email="other@example.com", name="Ada"),
    )

    assert match is not None
    assert not match.is_match
    assert [score.attribute for score in match.scores] == ["email", "name"]
    assert match.scores[0].comment == "Score below 80"


def test_average_mode_appends_average_score() -> None:
    scorer = SimilarityScorer(
        [
            MatchingRule(attribute="email", algorithm="exact"),
            MatchingRule(attribute="name", algorithm="exact"),
        ],
        use_average=True,
        average_threshold=50.0,
    )

    match = scorer.compare(
        _drained(email="ada@example.com", name="Ada"),
        _identity("id-1", email="ada@example.com", name="Augusta"),
    )

    assert match is not None
    assert match.is_match
    average = match.scores[-1]
    assert average.attribute == "Average Score"
    assert average.algorithm == "average"
    assert average.score == 50.0


def test_candidates_without_comparable_values_are_skipped() -> None:
    scorer = SimilarityScorer([MatchingRule(attribute="email", algorithm="exact")])

    assert scorer.score(_drained(name="Ada"), [_identity("id-1", email="ada@example.com")]) == []


def test_unknown_algorithm_is_rejected() -> None:
    with pytest.raises(ValueError, match="soundex"):
        SimilarityScorer([MatchingRule(attribute="name", algorithm="soundex")])
