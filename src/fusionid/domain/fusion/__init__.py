"""Orchestration of one fusion run over the shared work pool."""

from __future__ import annotations

from .controller import FusionController
from .output import RecordOutput
from .policy import AUTO_MERGE_COMMENT, SYSTEM_SUBMITTER, MatchPolicy, RouteDecision
from .report import FusionReport, ReportAccount, ReportMatch, ReportScore, build_report

__all__ = [
    "AUTO_MERGE_COMMENT",
    "SYSTEM_SUBMITTER",
    "FusionController",
    "FusionReport",
    "MatchPolicy",
    "RecordOutput",
    "ReportAccount",
    "ReportMatch",
    "ReportScore",
    "RouteDecision",
    "build_report",
]
