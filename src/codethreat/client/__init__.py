"""
Client module - Access to the remote CodeThreat scanning service.

- RemoteScanService: interface the orchestrator depends on
- CodeThreatClient: aiohttp implementation against the REST API
"""

from .base import RemoteScanService
from .api_client import CodeThreatClient


__all__ = [
    "RemoteScanService",
    "CodeThreatClient",
]
