"""
Data models shared by the orchestrator and the API client.

Remote records are parsed from the server's camelCase JSON; unknown keys
are ignored so newer servers do not break older clients.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ScanStatus(str, Enum):
    """Remote scan job status"""
    PENDING = "PENDING"
    SCANNING = "SCANNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


class ScanType(str, Enum):
    SAST = "sast"
    SCA = "sca"
    SECRETS = "secrets"
    IAC = "iac"
    SCAN = "scan"


class ExportFormat(str, Enum):
    JSON = "json"
    SARIF = "sarif"
    CSV = "csv"
    XML = "xml"
    JUNIT = "junit"

    @property
    def file_extension(self) -> str:
        if self is ExportFormat.SARIF:
            return "sarif"
        if self is ExportFormat.JUNIT:
            return "xml"
        return self.value


class ScanTrigger(str, Enum):
    MANUAL = "manual"
    CI_CD = "ci/cd"
    API = "api"


class Provider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    AZURE_DEVOPS = "azure_devops"


class Severity(str, Enum):
    """Severity tiers, in the order thresholds are evaluated"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RemoteModel(BaseModel):
    """Base for records returned by the server"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ScanHandle(RemoteModel):
    """
    One remote scan job.

    Only the server changes a scan's status; the client never writes it.
    """

    id: str
    repository_id: Optional[str] = None
    branch: Optional[str] = None
    status: ScanStatus = ScanStatus.PENDING
    types: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    scan_duration: Optional[int] = None
    security_score: Optional[float] = Field(default=None, ge=0, le=100)


class SeverityCounts(RemoteModel):
    """Findings per severity tier"""

    critical: int = Field(default=0, ge=0)
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)
    total: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _fill_total(self) -> "SeverityCounts":
        if self.total is None:
            self.total = self.critical + self.high + self.medium + self.low
        return self

    def get(self, severity: Severity) -> int:
        return getattr(self, severity.value)


class ScanProgress(RemoteModel):
    percentage: float = 0
    current_phase: Optional[str] = None
    estimated_completion: Optional[str] = None


class ScanLogEntry(RemoteModel):
    step: str
    status: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None


class ScanStatusReport(BaseModel):
    """A single status observation of a scan"""

    scan: ScanHandle
    repository_name: Optional[str] = None
    counts: SeverityCounts = Field(default_factory=SeverityCounts)
    by_type: Dict[str, int] = Field(default_factory=dict)
    progress: ScanProgress = Field(default_factory=ScanProgress)
    logs: Optional[List[ScanLogEntry]] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ScanStatusReport":
        """
        Build a report from the ``/scans/{id}/status`` payload.

        The server nests counts as ``results.summary`` with the total in
        ``results.violationCount``.
        """
        results = data.get("results") or {}
        summary = dict(results.get("summary") or {})
        if "violationCount" in results:
            summary["total"] = results["violationCount"]

        scan = data.get("scan") or {}
        repository = scan.get("repository") or {}

        return cls(
            scan=ScanHandle.model_validate(scan),
            repository_name=repository.get("name"),
            counts=SeverityCounts.model_validate(summary),
            by_type=results.get("byType") or {},
            progress=ScanProgress.model_validate(data.get("progress") or {}),
            logs=data.get("logs"),
        )


class ScanSubmission(BaseModel):
    """Response to a scan submission"""

    scan: ScanHandle
    already_exists: bool = False


class ExportFilters(BaseModel):
    """Filters applied server side when exporting results"""

    severity: List[Severity] = Field(
        default_factory=lambda: [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]
    )
    scan_types: Optional[List[ScanType]] = None
    include_fixed: bool = False
    include_suppressed: bool = False
    include_metadata: bool = True
    rule_ids: Optional[List[str]] = None

    def to_params(self) -> Dict[str, str]:
        """Render as query parameters"""
        params = {
            "severity": ",".join(s.value for s in self.severity),
            "includeFixed": str(self.include_fixed).lower(),
            "includeSuppressed": str(self.include_suppressed).lower(),
            "includeMetadata": str(self.include_metadata).lower(),
        }
        if self.scan_types:
            params["scanTypes"] = ",".join(t.value for t in self.scan_types)
        if self.rule_ids:
            params["ruleIds"] = ",".join(self.rule_ids)
        return params


class ExportResult(RemoteModel):
    """Exported scan results. ``results`` is opaque and stored as-is."""

    scan: Optional[ScanHandle] = None
    format: str
    results: Any = None
    summary: SeverityCounts = Field(default_factory=SeverityCounts)
    exported_at: Optional[str] = None

    def payload_text(self) -> str:
        if isinstance(self.results, str):
            return self.results
        return json.dumps(self.results, indent=2)


class Repository(RemoteModel):
    id: str
    name: str
    full_name: Optional[str] = None
    url: Optional[str] = None
    default_branch: Optional[str] = None
    is_private: bool = False
    provider: Optional[str] = None


class RepositoryImport(RemoteModel):
    repository: Repository
    already_exists: bool = False
    scan: Optional[Dict[str, Any]] = None


class Organization(RemoteModel):
    id: str
    name: str
    slug: Optional[str] = None
    plan_type: Optional[str] = None
    is_personal: bool = False
    usage_balance: Optional[float] = None


class User(RemoteModel):
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class AuthValidation(RemoteModel):
    valid: bool
    user: User = Field(default_factory=User)
    organizations: List[Organization] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    authenticated_at: Optional[str] = None
