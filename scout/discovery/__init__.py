"""Discovery pipeline: aggregate -> validate -> normalize -> upsert."""

from scout.discovery.orchestrator import DiscoveryOrchestrator
from scout.discovery.report import CandidateOutcome, DiscoveryReport, OutcomeStatus

__all__ = [
    "DiscoveryOrchestrator",
    "DiscoveryReport",
    "CandidateOutcome",
    "OutcomeStatus",
]
