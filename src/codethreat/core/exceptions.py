"""
Exceptions raised by the configuration resolver and the scan orchestrator.

Every error carries the process exit code the CLI reports for it, so the
caller can tell a misconfiguration from a failed or timed-out scan.
"""

from typing import Any, Dict, Optional


class CodeThreatError(Exception):
    """Base exception for all CLI errors"""
    exit_code = 1


class ConfigurationError(CodeThreatError):
    """Raised when the effective configuration is missing or invalid"""
    exit_code = 2

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class MissingOrganizationError(CodeThreatError):
    """Raised when a scan is submitted without an organization slug"""
    exit_code = 3

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Organization slug is required. Pass --organization or set CT_ORG_SLUG."
        )


class RemoteServiceError(CodeThreatError):
    """Raised on non-2xx or malformed responses from the CodeThreat server"""
    exit_code = 4

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{base} (HTTP {self.status})"
        return base


class ScanFailedError(CodeThreatError):
    """Raised when the remote scan reaches the FAILED state"""
    exit_code = 5

    def __init__(self, scan_id: str, elapsed_seconds: int = 0, handle: Any = None):
        self.scan_id = scan_id
        self.elapsed_seconds = elapsed_seconds
        self.handle = handle
        super().__init__(f"Scan {scan_id} failed during execution")


class ScanTimeoutError(CodeThreatError):
    """
    Raised when polling exceeds its deadline without a terminal state.

    The remote scan is not cancelled and may still be running.
    """
    exit_code = 6

    def __init__(
        self,
        scan_id: str,
        timeout_seconds: int,
        elapsed_seconds: int,
        last_status: Optional[str] = None,
    ):
        self.scan_id = scan_id
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        self.last_status = last_status
        super().__init__(
            f"Scan timeout after {timeout_seconds} seconds "
            f"({elapsed_seconds}s elapsed, last status: {last_status or 'unknown'}). "
            f"Scan ID: {scan_id}"
        )
