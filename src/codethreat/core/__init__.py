"""
Core module - Configuration resolution and scan orchestration.

This package contains the components that decide what a CLI run does:
the configuration resolver, the scan orchestrator and the threshold
evaluator.
"""

from .config import ConfigResolver, EffectiveConfig
from .credentials import CredentialStore
from .exceptions import (
    CodeThreatError,
    ConfigurationError,
    MissingOrganizationError,
    RemoteServiceError,
    ScanFailedError,
    ScanTimeoutError,
)
from .orchestrator import (
    OrchestratorState,
    PollOutcome,
    ScanOrchestrator,
    ScanRunResult,
    SubmitRequest,
)
from .thresholds import Decision, ThresholdEvaluation, ThresholdSet, evaluate_thresholds


__all__ = [
    # Configuration
    "ConfigResolver",
    "EffectiveConfig",
    "CredentialStore",
    # Orchestration
    "ScanOrchestrator",
    "SubmitRequest",
    "PollOutcome",
    "ScanRunResult",
    "OrchestratorState",
    # Thresholds
    "Decision",
    "ThresholdSet",
    "ThresholdEvaluation",
    "evaluate_thresholds",
    # Exceptions
    "CodeThreatError",
    "ConfigurationError",
    "MissingOrganizationError",
    "RemoteServiceError",
    "ScanFailedError",
    "ScanTimeoutError",
]
