"""
Scan Orchestrator - Submits a scan and drives it to a terminal state.

State machine:

    SUBMITTING -> POLLING -> COMPLETED | FAILED | TIMED_OUT

The server is always asked to run the scan asynchronously. When the caller
wants to wait, the orchestrator polls the status endpoint at a fixed
interval until the scan completes, fails, or the deadline passes.

Design Pattern: State Machine + Observer
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog

from .config import POLL_INTERVAL_BOUNDS, TIMEOUT_BOUNDS, EffectiveConfig
from .exceptions import (
    ConfigurationError,
    MissingOrganizationError,
    ScanFailedError,
    ScanTimeoutError,
)
from .models import (
    ExportFilters,
    ExportFormat,
    ExportResult,
    ScanHandle,
    ScanStatus,
    ScanTrigger,
    ScanType,
    SeverityCounts,
)
from .thresholds import ThresholdEvaluation, ThresholdSet, evaluate_thresholds

if TYPE_CHECKING:
    from ..client.base import RemoteScanService


class OrchestratorState(Enum):
    """Orchestrator execution state"""
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class SubmitRequest:
    """
    A scan submission.

    ``wait`` is the caller's intent to block until the scan finishes. It is
    never forwarded to the server, which always runs the scan asynchronously.
    """
    repository_id: str
    organization_slug: Optional[str] = None
    branch: Optional[str] = None
    scan_types: List[ScanType] = field(default_factory=list)
    scan_trigger: Optional[ScanTrigger] = None
    pull_request_id: Optional[str] = None
    commit_sha: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    wait: bool = False
    timeout_seconds: Optional[int] = None
    poll_interval_seconds: Optional[int] = None


@dataclass
class PollOutcome:
    """Result of one polling loop"""
    terminal: OrchestratorState
    scan_id: str
    elapsed_seconds: int
    polls: int
    handle: Optional[ScanHandle] = None
    counts: Optional[SeverityCounts] = None

    @property
    def last_status(self) -> Optional[ScanStatus]:
        return self.handle.status if self.handle else None


@dataclass
class ScanRunResult:
    """What a submission returns to the caller"""
    handle: ScanHandle
    synchronous: bool = False
    already_exists: bool = False
    counts: Optional[SeverityCounts] = None
    elapsed_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data: Dict[str, Any] = {
            "scan": self.handle.model_dump(mode="json", by_alias=True),
            "synchronous": self.synchronous,
            "alreadyExists": self.already_exists,
        }
        if self.counts is not None:
            data["results"] = self.counts.model_dump(mode="json")
        if self.elapsed_seconds is not None:
            data["duration"] = self.elapsed_seconds
        return data


class ScanOrchestrator:
    """
    Drives one scan through submit, poll and decide.

    The orchestrator only reads scan state; the remote service owns it.

    Example:
        >>> orchestrator = ScanOrchestrator(client, config)
        >>> result = await orchestrator.submit(SubmitRequest("repo-1", "acme", wait=True))
        >>> evaluation = orchestrator.evaluate_thresholds(result.counts, thresholds)
    """

    def __init__(
        self,
        service: "RemoteScanService",
        config: EffectiveConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            service: Remote scan service to submit and poll through
            config: Effective configuration (organization, default timeouts)
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait between polls
        """
        self.service = service
        self.config = config
        self.clock = clock
        self.sleep = sleep

        self.state = OrchestratorState.SUBMITTING

        self.logger = structlog.get_logger(__name__)

        # Observer pattern - progress callbacks
        self.observers: List[Callable[[str, Dict[str, Any]], None]] = []

    def subscribe(self, observer: Callable[[str, Dict[str, Any]], None]):
        """
        Subscribe to orchestrator events (Observer pattern).

        Events: scan_submitted, scan_progress, scan_completed, scan_failed,
        scan_timeout.
        """
        self.observers.append(observer)

    def _notify_observers(self, event: str, data: Dict[str, Any]):
        """Notify all observers of an event"""
        for observer in self.observers:
            try:
                observer(event, data)
            except Exception as e:
                self.logger.error(
                    "observer_error",
                    observer=getattr(observer, "__name__", repr(observer)),
                    error=str(e),
                )

    def resolve_organization(self, organization_slug: Optional[str]) -> str:
        slug = organization_slug or self.config.organization_slug
        if not slug:
            raise MissingOrganizationError()
        return slug

    def resolve_timing(self, request: SubmitRequest) -> Tuple[int, int]:
        """
        Per-run timeout and poll interval, falling back to the config.

        Raises:
            ConfigurationError: If either value is outside its bounds
        """
        timeout_seconds = request.timeout_seconds
        if timeout_seconds is None:
            timeout_seconds = self.config.default_timeout

        poll_interval = request.poll_interval_seconds
        if poll_interval is None:
            poll_interval = self.config.default_poll_interval

        low, high = TIMEOUT_BOUNDS
        if not low <= timeout_seconds <= high:
            raise ConfigurationError(
                f"Timeout must be between {low} and {high} seconds", field="default_timeout"
            )

        low, high = POLL_INTERVAL_BOUNDS
        if not low <= poll_interval <= high:
            raise ConfigurationError(
                f"Poll interval must be between {low} and {high} seconds",
                field="default_poll_interval",
            )

        return timeout_seconds, poll_interval

    async def submit(self, request: SubmitRequest) -> ScanRunResult:
        """
        Submit a scan and optionally wait for it.

        Args:
            request: Submission parameters

        Returns:
            ScanRunResult; with counts and elapsed time when waited on

        Raises:
            ConfigurationError: If the timeout or poll interval is out of bounds
            MissingOrganizationError: If no organization slug is available
            RemoteServiceError: If the server rejects a request
            ScanFailedError: If the waited-on scan fails
            ScanTimeoutError: If the waited-on scan does not finish in time
        """
        self.state = OrchestratorState.SUBMITTING
        organization_slug = self.resolve_organization(request.organization_slug)
        timeout_seconds, poll_interval = self.resolve_timing(request)

        submission = await self.service.submit_scan(
            repository_id=request.repository_id,
            organization_slug=organization_slug,
            branch=request.branch,
            scan_types=request.scan_types,
            scan_trigger=request.scan_trigger,
            pull_request_id=request.pull_request_id,
            commit_sha=request.commit_sha,
            metadata=request.metadata,
        )
        handle = submission.scan

        self.logger.info(
            "scan_submitted",
            scan_id=handle.id,
            repository_id=request.repository_id,
            status=handle.status.value,
            already_exists=submission.already_exists,
            wait=request.wait,
        )
        self._notify_observers("scan_submitted", {
            "scan_id": handle.id,
            "status": handle.status.value,
            "already_exists": submission.already_exists,
        })

        if not request.wait:
            return ScanRunResult(
                handle=handle,
                synchronous=False,
                already_exists=submission.already_exists,
            )

        outcome = await self.poll(handle.id, timeout_seconds, poll_interval)

        if outcome.terminal is OrchestratorState.FAILED:
            raise ScanFailedError(handle.id, outcome.elapsed_seconds, outcome.handle)

        if outcome.terminal is OrchestratorState.TIMED_OUT:
            last_status = outcome.last_status.value if outcome.last_status else None
            raise ScanTimeoutError(handle.id, timeout_seconds, outcome.elapsed_seconds, last_status)

        return ScanRunResult(
            handle=outcome.handle,
            synchronous=True,
            already_exists=submission.already_exists,
            counts=outcome.counts,
            elapsed_seconds=outcome.elapsed_seconds,
        )

    async def poll(
        self,
        scan_id: str,
        timeout_seconds: int,
        poll_interval_seconds: int,
    ) -> PollOutcome:
        """
        Poll scan status until a terminal state or the deadline.

        The interval is constant. No status request is issued once the
        deadline has passed, even if it passed during a sleep.

        Args:
            scan_id: Scan to watch
            timeout_seconds: Wall-clock deadline measured from the first poll
            poll_interval_seconds: Sleep between polls

        Returns:
            PollOutcome with terminal COMPLETED, FAILED or TIMED_OUT
        """
        self.state = OrchestratorState.POLLING
        start = self.clock()
        polls = 0
        handle: Optional[ScanHandle] = None

        self.logger.info(
            "scan_polling_started",
            scan_id=scan_id,
            timeout=timeout_seconds,
            interval=poll_interval_seconds,
        )

        while self.clock() - start < timeout_seconds:
            report = await self.service.get_scan_status(scan_id)
            polls += 1
            handle = report.scan
            elapsed = round(self.clock() - start)

            if handle.status is ScanStatus.COMPLETED:
                self.state = OrchestratorState.COMPLETED
                self.logger.info("scan_completed", scan_id=scan_id, elapsed=elapsed, polls=polls)
                self._notify_observers("scan_completed", {"scan_id": scan_id, "elapsed": elapsed})
                return PollOutcome(
                    terminal=OrchestratorState.COMPLETED,
                    scan_id=scan_id,
                    elapsed_seconds=elapsed,
                    polls=polls,
                    handle=handle,
                    counts=report.counts,
                )

            if handle.status is ScanStatus.FAILED:
                self.state = OrchestratorState.FAILED
                self.logger.error("scan_failed", scan_id=scan_id, elapsed=elapsed, polls=polls)
                self._notify_observers("scan_failed", {"scan_id": scan_id, "elapsed": elapsed})
                return PollOutcome(
                    terminal=OrchestratorState.FAILED,
                    scan_id=scan_id,
                    elapsed_seconds=elapsed,
                    polls=polls,
                    handle=handle,
                )

            self.logger.debug("scan_poll", scan_id=scan_id, status=handle.status.value, elapsed=elapsed)
            self._notify_observers("scan_progress", {
                "scan_id": scan_id,
                "status": handle.status.value,
                "elapsed": elapsed,
                "percentage": report.progress.percentage,
            })

            await self.sleep(poll_interval_seconds)

        elapsed = round(self.clock() - start)
        self.state = OrchestratorState.TIMED_OUT
        self.logger.warning("scan_timeout", scan_id=scan_id, elapsed=elapsed, polls=polls)
        self._notify_observers("scan_timeout", {"scan_id": scan_id, "elapsed": elapsed})

        return PollOutcome(
            terminal=OrchestratorState.TIMED_OUT,
            scan_id=scan_id,
            elapsed_seconds=elapsed,
            polls=polls,
            handle=handle,
        )

    def default_export_path(self, format: ExportFormat) -> Path:
        return Path(self.config.output_dir) / f"codethreat-results.{ExportFormat(format).file_extension}"

    async def export_results(
        self,
        scan_id: str,
        format: ExportFormat,
        filters: Optional[ExportFilters] = None,
        destination: Optional[Path] = None,
    ) -> ExportResult:
        """
        Export results once and write the payload verbatim to ``destination``.

        Returns:
            The ExportResult returned by the service
        """
        result = await self.service.export_results(scan_id, format, filters)

        output_path = Path(destination) if destination else self.default_export_path(format)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result.payload_text(), encoding="utf-8")

        self.logger.info("results_exported", scan_id=scan_id, format=ExportFormat(format).value, path=str(output_path))
        return result

    @staticmethod
    def evaluate_thresholds(counts: SeverityCounts, thresholds: ThresholdSet) -> ThresholdEvaluation:
        return evaluate_thresholds(counts, thresholds)
