"""
Shared pytest fixtures for the CodeThreat CLI test suite.

Provides an in-memory scan service with scripted statuses and a fake
clock whose sleep advances time instantly, so polling tests do not wait.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import structlog

# Add src to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from codethreat.client.base import RemoteScanService
from codethreat.core.config import EffectiveConfig
from codethreat.core.exceptions import RemoteServiceError
from codethreat.core.models import (
    ExportResult,
    ScanHandle,
    ScanProgress,
    ScanStatus,
    ScanStatusReport,
    ScanSubmission,
    SeverityCounts,
)


class FakeClock:
    """Monotonic clock whose sleep advances time without waiting"""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeScanService(RemoteScanService):
    """
    In-memory scan service.

    Returns ``statuses`` in order from get_scan_status, repeating the last
    one once the script runs out. Identical submissions return the
    existing scan with ``already_exists`` set.
    """

    def __init__(
        self,
        statuses: List[ScanStatus],
        counts: Optional[SeverityCounts] = None,
        clock: Optional[FakeClock] = None,
        export_payload: Any = None,
        submit_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses)
        self.counts = counts or SeverityCounts()
        self.clock = clock
        self.export_payload = export_payload
        self.submit_error = submit_error

        self.submit_calls: List[Dict[str, Any]] = []
        self.status_calls: List[Dict[str, Any]] = []
        self.export_calls: List[Dict[str, Any]] = []
        self.created: Dict[tuple, ScanHandle] = {}

    async def submit_scan(
        self,
        repository_id,
        organization_slug,
        branch=None,
        scan_types=None,
        scan_trigger=None,
        pull_request_id=None,
        commit_sha=None,
        metadata=None,
    ) -> ScanSubmission:
        self.submit_calls.append({
            "repository_id": repository_id,
            "organization_slug": organization_slug,
            "branch": branch,
            "scan_types": scan_types,
        })
        if self.submit_error:
            raise self.submit_error

        key = (repository_id, organization_slug, branch, pull_request_id, commit_sha)
        if key in self.created:
            return ScanSubmission(scan=self.created[key], already_exists=True)

        handle = ScanHandle(
            id=f"scan-{len(self.created) + 1}",
            repository_id=repository_id,
            branch=branch,
            status=ScanStatus.PENDING,
            types=[t.value for t in scan_types or []],
        )
        self.created[key] = handle
        return ScanSubmission(scan=handle)

    async def get_scan_status(self, scan_id, include_logs=False) -> ScanStatusReport:
        index = min(len(self.status_calls), len(self.statuses) - 1)
        status = self.statuses[index]
        self.status_calls.append({
            "scan_id": scan_id,
            "at": self.clock() if self.clock else None,
            "status": status,
        })

        counts = self.counts if status is ScanStatus.COMPLETED else SeverityCounts()
        return ScanStatusReport(
            scan=ScanHandle(id=scan_id, status=status),
            counts=counts,
            progress=ScanProgress(percentage=50 if not status.is_terminal else 100),
        )

    async def export_results(self, scan_id, format, filters=None) -> ExportResult:
        self.export_calls.append({"scan_id": scan_id, "format": format, "filters": filters})
        return ExportResult(format=format.value, results=self.export_payload, summary=self.counts)


class FakeClientContext:
    """Stands in for CodeThreatClient(config) in CLI tests"""

    def __init__(self, service: FakeScanService):
        self.service = service

    async def __aenter__(self):
        return self.service

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture(autouse=True)
def reset_structlog():
    """CLI runs bind structlog to the runner's stderr; restore defaults after each test"""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_service():
    """Factory for FakeScanService"""
    return FakeScanService


@pytest.fixture
def client_context():
    return FakeClientContext


@pytest.fixture
def config():
    """Effective configuration with an organization and short defaults"""
    return EffectiveConfig(
        server_url="https://api.codethreat.test",
        api_key="ct_test_key",
        organization_slug="acme",
        default_timeout=60,
        default_poll_interval=5,
    )


@pytest.fixture
def remote_error():
    return RemoteServiceError("Server error. Please try again later.", status=500, code="INTERNAL")


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Isolate a CLI run: empty CT_* environment, temporary home and cwd.

    Returns:
        The temporary home directory
    """
    import os

    for name in list(os.environ):
        if name.startswith("CT_"):
            monkeypatch.delenv(name, raising=False)

    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project)
    return home
