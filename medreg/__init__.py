"""
MEDREG - Patient Report Registry

An append-only registry of patient reports:
- One owner, fixed when the registry is deployed
- Owner-only inserts, each key written at most once
- Public reads
- Hash-chained witness log with one notification per insert

Components:
- registry.py: Registry (deploy/open, add_report, get_report, get_owner)
- witness.py: Hash-chained notification log
- repository.py: SQLite helpers for owner and reports
- auth.py: Ed25519 challenge-response authentication
- api_server.py: FastAPI server
- cli.py: Local admin commands
"""

__version__ = "0.1.0"

# Lazy imports - only import what's needed when used
def __getattr__(name):
    if name == "Registry":
        from .registry import Registry
        return Registry
    elif name == "WitnessChain":
        from .witness import WitnessChain
        return WitnessChain
    elif name == "Notification":
        from .models import Notification
        return Notification
    elif name == "ReportRecord":
        from .models import ReportRecord
        return ReportRecord
    elif name == "AccountAuth":
        from .auth import AccountAuth
        return AccountAuth
    elif name in ("RegistryError", "AccessDenied", "AlreadyExists",
                  "NotDeployed", "AlreadyDeployed", "InvalidPatientId"):
        from . import errors
        return getattr(errors, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "__version__",
    # Core
    "Registry",
    "WitnessChain",
    # Models
    "Notification",
    "ReportRecord",
    # Auth
    "AccountAuth",
    # Errors
    "RegistryError",
    "AccessDenied",
    "AlreadyExists",
    "NotDeployed",
    "AlreadyDeployed",
    "InvalidPatientId",
]
