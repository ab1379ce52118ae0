"""
Remote Scan Service - Interface the orchestrator drives scans through.

Design Pattern: Strategy Pattern
The HTTP client implements it against a CodeThreat server; tests swap in
an in-memory service.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.models import (
    ExportFilters,
    ExportFormat,
    ExportResult,
    ScanStatusReport,
    ScanSubmission,
    ScanTrigger,
    ScanType,
)


class RemoteScanService(ABC):
    """
    Operations the orchestrator needs from the scanning backend.

    Every call is one request; retries are not the orchestrator's concern.
    """

    @abstractmethod
    async def submit_scan(
        self,
        repository_id: str,
        organization_slug: str,
        branch: Optional[str] = None,
        scan_types: Optional[List[ScanType]] = None,
        scan_trigger: Optional[ScanTrigger] = None,
        pull_request_id: Optional[str] = None,
        commit_sha: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScanSubmission:
        """
        Start a scan without waiting for it.

        Implementations must not ask the server to block until the scan
        finishes; waiting is done client side by polling.
        """
        pass

    @abstractmethod
    async def get_scan_status(self, scan_id: str, include_logs: bool = False) -> ScanStatusReport:
        """Read the current status of a scan. Never mutates anything."""
        pass

    @abstractmethod
    async def export_results(
        self,
        scan_id: str,
        format: ExportFormat,
        filters: Optional[ExportFilters] = None,
    ) -> ExportResult:
        """Export results of a completed scan in the given format"""
        pass
