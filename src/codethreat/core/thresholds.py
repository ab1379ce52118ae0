"""
Threshold Evaluator - Turns severity counts into a build pass/fail decision.

Per-severity thresholds trip when the count reaches the threshold (>=).
The legacy aggregate ``max_violations`` trips only when the total exceeds
it (>).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from .models import Severity, SeverityCounts


DISABLED = -1


class Decision(Enum):
    PASS = "pass"
    FAIL = "fail"


class ThresholdSet(BaseModel):
    """Per-severity thresholds (-1 or None = disabled) plus the legacy total cap"""

    critical: Optional[int] = None
    high: Optional[int] = None
    medium: Optional[int] = None
    low: Optional[int] = None
    max_violations: Optional[int] = None

    def for_severity(self, severity: Severity) -> Optional[int]:
        value = getattr(self, severity.value)
        if value is None or value < 0:
            return None
        return value

    @property
    def any_enabled(self) -> bool:
        return any(self.for_severity(s) is not None for s in Severity)

    @classmethod
    def from_options(
        cls,
        config,
        critical: Optional[int] = None,
        high: Optional[int] = None,
        medium: Optional[int] = None,
        low: Optional[int] = None,
    ) -> "ThresholdSet":
        """
        Build thresholds from CLI options plus the configured total cap.

        Unset severities stay disabled. ``fail_on_critical`` and
        ``fail_on_high`` are informational settings and are not read here.
        """
        return cls(
            critical=critical,
            high=high,
            medium=medium,
            low=low,
            max_violations=config.max_violations,
        )


@dataclass
class TrippedThreshold:
    rule: str
    count: int
    threshold: int

    @property
    def message(self) -> str:
        if self.rule == "max_violations":
            return f"Too many violations ({self.count} > {self.threshold})"
        label = "critical" if self.rule == "critical" else f"{self.rule} severity"
        return f"{self.count} {label} vulnerabilities found (threshold: {self.threshold})"


@dataclass
class ThresholdEvaluation:
    decision: Decision
    tripped: List[TrippedThreshold] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.decision is Decision.FAIL

    @property
    def reason(self) -> Optional[str]:
        """Message for the first tripped rule, in evaluation order"""
        if not self.tripped:
            return None
        return self.tripped[0].message


def evaluate_thresholds(counts: SeverityCounts, thresholds: ThresholdSet) -> ThresholdEvaluation:
    """
    Decide whether the build should fail.

    Rules are checked in order critical, high, medium, low, then the legacy
    total. Every rule is evaluated; the first tripped one is the reported
    reason.

    Args:
        counts: Severity counts of a completed scan
        thresholds: Configured thresholds

    Returns:
        ThresholdEvaluation with the decision and all tripped rules
    """
    tripped: List[TrippedThreshold] = []

    for severity in Severity:
        threshold = thresholds.for_severity(severity)
        if threshold is None:
            continue
        count = counts.get(severity)
        if count >= threshold:
            tripped.append(TrippedThreshold(severity.value, count, threshold))

    if thresholds.max_violations is not None and counts.total > thresholds.max_violations:
        tripped.append(
            TrippedThreshold("max_violations", counts.total, thresholds.max_violations)
        )

    decision = Decision.FAIL if tripped else Decision.PASS
    return ThresholdEvaluation(decision=decision, tripped=tripped)
