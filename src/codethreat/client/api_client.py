"""
CodeThreat API Client - aiohttp transport for the CodeThreat REST API.

Every endpoint answers with an envelope:

    {"success": true, "data": {...}}
    {"success": false, "error": {"code": "...", "message": "..."}}

Non-2xx responses, ``success: false`` and envelopes without data all raise
RemoteServiceError carrying the HTTP status and server error code.
Nothing is retried here.
"""

import asyncio
from typing import Any, Dict, List, Optional, Type, TypeVar

import aiohttp
import structlog
from pydantic import BaseModel, ValidationError

from .. import __version__
from ..core.config import EffectiveConfig
from ..core.exceptions import MissingOrganizationError, RemoteServiceError
from ..core.models import (
    AuthValidation,
    ExportFilters,
    ExportFormat,
    ExportResult,
    Provider,
    RepositoryImport,
    ScanStatusReport,
    ScanSubmission,
    ScanTrigger,
    ScanType,
)
from .base import RemoteScanService


ModelT = TypeVar("ModelT", bound=BaseModel)

# Messages for responses that carry no error message of their own
STATUS_MESSAGES = {
    401: "Authentication failed. Please check your API key.",
    403: "Permission denied. You may not have access to this resource.",
    404: "Resource not found. Please check the ID and try again.",
    429: "Rate limit exceeded. Please wait and try again.",
    500: "Server error. Please try again later.",
}


def _query(params: Dict[str, Any]) -> Dict[str, str]:
    """Drop unset values and render booleans the way the API expects"""
    rendered = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[key] = str(value).lower()
        else:
            rendered[key] = str(value)
    return rendered


class CodeThreatClient(RemoteScanService):
    """
    Async client for the CodeThreat server.

    Example:
        >>> async with CodeThreatClient(config) as client:
        ...     submission = await client.submit_scan("repo-1", "acme")
        ...     report = await client.get_scan_status(submission.scan.id)
    """

    # Submissions never wait server side, whatever the caller asked for
    TRANSPORT_WAIT = False
    SUBMIT_TIMEOUT = 30

    # Required by server validation, not used for polling
    SERVER_SCAN_TIMEOUT = 1800
    SERVER_POLL_INTERVAL = 10

    def __init__(
        self,
        config: EffectiveConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Effective configuration (server URL, API key, timeouts)
            session: Existing aiohttp session; created lazily when omitted
        """
        self.config = config
        self.server_url = config.server_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

        self.logger = structlog.get_logger(__name__)

    async def __aenter__(self) -> "CodeThreatClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"CodeThreat-CLI/{__version__}",
        }
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers())
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        url = f"{self.server_url}{path}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.config.api_timeout)

        self.logger.debug("api_request", method=method, path=path)

        try:
            async with self._get_session().request(
                method,
                url,
                params=_query(params or {}),
                json=json,
                headers=self._headers(),
                timeout=client_timeout,
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None

                self.logger.debug("api_response", method=method, path=path, status=response.status)
                return self._unwrap(response.status, body)

        except asyncio.TimeoutError as e:
            raise RemoteServiceError(
                "Request timeout. The operation took too long.",
                code="REQUEST_TIMEOUT",
            ) from e

        except aiohttp.ClientError as e:
            raise RemoteServiceError(
                f"Cannot connect to CodeThreat server at {self.server_url}: {e}",
                code="NETWORK_ERROR",
            ) from e

    def _unwrap(self, status: int, body: Any) -> Any:
        error = body.get("error") if isinstance(body, dict) else None
        error = error if isinstance(error, dict) else {}

        if not 200 <= status < 300:
            message = error.get("message") or STATUS_MESSAGES.get(status) or f"API Error ({status})"
            self.logger.warning("api_error", status=status, code=error.get("code"))
            raise RemoteServiceError(
                message,
                status=status,
                code=error.get("code"),
                details=error.get("details"),
            )

        if not isinstance(body, dict):
            raise RemoteServiceError(
                "Malformed response from server", status=status, code="MALFORMED_RESPONSE"
            )

        if not body.get("success"):
            raise RemoteServiceError(
                error.get("message") or "API request failed",
                status=status,
                code=error.get("code"),
                details=error.get("details"),
            )

        if body.get("data") is None:
            raise RemoteServiceError(
                "No data in API response", status=status, code="EMPTY_RESPONSE"
            )

        return body["data"]

    @staticmethod
    def _parse(model: Type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RemoteServiceError(
                f"Malformed {model.__name__} in API response: {e.errors()[0]['msg']}",
                code="MALFORMED_RESPONSE",
            ) from e

    def _org_params(self) -> Dict[str, Any]:
        if self.config.organization_slug:
            return {"organizationSlug": self.config.organization_slug}
        return {}

    # Remote Scan Service

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
        if not organization_slug:
            raise MissingOrganizationError()

        body: Dict[str, Any] = {
            "repositoryId": repository_id,
            "organizationSlug": organization_slug,
            "scanTypes": [ScanType(t).value for t in scan_types or []],
            "wait": self.TRANSPORT_WAIT,
            "timeout": self.SERVER_SCAN_TIMEOUT,
            "pollInterval": self.SERVER_POLL_INTERVAL,
        }
        if branch:
            body["branch"] = branch
        if scan_trigger:
            body["scanTrigger"] = ScanTrigger(scan_trigger).value
        if pull_request_id:
            body["pullRequestId"] = pull_request_id
        if commit_sha:
            body["commitSha"] = commit_sha
        if metadata:
            body["metadata"] = metadata

        data = await self._request(
            "POST", "/api/v1/scans/run", json=body, timeout=self.SUBMIT_TIMEOUT
        )
        if not isinstance(data, dict):
            raise RemoteServiceError("Malformed scan submission response", code="MALFORMED_RESPONSE")

        return self._parse(ScanSubmission, {
            "scan": data.get("scan"),
            "already_exists": bool(data.get("alreadyExists", False)),
        })

    async def get_scan_status(self, scan_id: str, include_logs: bool = False) -> ScanStatusReport:
        params = {"includeLogs": include_logs, **self._org_params()}
        data = await self._request("GET", f"/api/v1/scans/{scan_id}/status", params=params)

        try:
            return ScanStatusReport.from_api(data)
        except (ValidationError, AttributeError) as e:
            raise RemoteServiceError(
                f"Malformed scan status in API response: {e}",
                code="MALFORMED_RESPONSE",
            ) from e

    async def export_results(
        self,
        scan_id: str,
        format: ExportFormat,
        filters: Optional[ExportFilters] = None,
    ) -> ExportResult:
        filters = filters or ExportFilters()
        params = {
            "format": ExportFormat(format).value,
            **filters.to_params(),
            **self._org_params(),
        }
        data = await self._request("GET", f"/api/v1/scans/{scan_id}/results", params=params)
        return self._parse(ExportResult, data)

    # Supplementary endpoints

    async def list_scans(
        self,
        repository_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        params = {"repositoryId": repository_id, "status": status, "page": page, "limit": limit}
        return await self._request("GET", "/api/v1/scans", params=params)

    async def validate_auth(
        self,
        include_permissions: bool = False,
        include_organizations: bool = False,
        include_usage: bool = False,
    ) -> AuthValidation:
        params = {
            "includePermissions": include_permissions,
            "includeOrganizations": include_organizations,
            "includeUsage": include_usage,
        }
        data = await self._request("GET", "/api/v1/cli/auth/validate", params=params)
        return self._parse(AuthValidation, data)

    async def get_cli_info(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/v1/cli/info")

    async def import_repository(
        self,
        url: str,
        organization_slug: Optional[str] = None,
        name: Optional[str] = None,
        provider: Optional[Provider] = None,
        branch: Optional[str] = None,
        auto_scan: Optional[bool] = None,
        scan_types: Optional[List[ScanType]] = None,
        is_private: Optional[bool] = None,
        description: Optional[str] = None,
    ) -> RepositoryImport:
        organization_slug = organization_slug or self.config.organization_slug
        if not organization_slug:
            raise MissingOrganizationError()

        body: Dict[str, Any] = {"url": url, "organizationSlug": organization_slug}
        if name:
            body["name"] = name
        if provider:
            body["provider"] = Provider(provider).value
        if branch:
            body["branch"] = branch
        if auto_scan is not None:
            body["autoScan"] = auto_scan
        if scan_types:
            body["scanTypes"] = [ScanType(t).value for t in scan_types]
        if is_private is not None:
            body["isPrivate"] = is_private
        if description:
            body["description"] = description

        data = await self._request("POST", "/api/v1/repositories/import", json=body)
        return self._parse(RepositoryImport, data)

    async def get_repository_status(self, repository_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/repositories/{repository_id}/status")

    async def list_repositories(
        self,
        provider: Optional[str] = None,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        params = {
            "provider": provider,
            "search": search,
            "status": status,
            "page": page,
            "limit": limit,
        }
        return await self._request("GET", "/api/v1/repositories", params=params)

    async def get_organization_config(self, organization_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/organizations/{organization_id}/config")

    async def test_connection(self) -> bool:
        """Check that the server answers its health endpoint"""
        url = f"{self.server_url}/api/v1/health"
        try:
            async with self._get_session().get(
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.api_timeout),
            ) as response:
                return 200 <= response.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning("connection_test_failed", server_url=self.server_url, error=str(e))
            return False
