"""
Connectors for external systems.

- the registry server (medreg/) owns state and the audit trail
- connectors are the seam other services use to reach it over HTTP
"""

from .medreg_client import MedregAsyncClient, MedregAuth, MedregClient

__all__ = ["MedregClient", "MedregAsyncClient", "MedregAuth"]
