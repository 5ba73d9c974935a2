"""
MEDREG Data Models

Records for stored reports and the notifications emitted on insert.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RegistryAction(str, Enum):
    REPORT_ADDED = "report_added"


@dataclass
class ReportRecord:
    """A stored report and who wrote it."""
    patient_id: int
    report_data: str
    added_by: str
    added_at: str


@dataclass
class Notification:
    """Announcement of a successful insert, appended to the witness log."""
    patient_id: int
    added_by: str
    entry_hash: Optional[str] = None
    timestamp: Optional[str] = None

    def details(self) -> dict:
        return {"patient_id": self.patient_id, "added_by": self.added_by}

    def to_dict(self) -> dict:
        return {
            "patient_id": self.patient_id,
            "added_by": self.added_by,
            "hash": self.entry_hash,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_entry(cls, entry: dict) -> "Notification":
        details = entry["details"]
        return cls(
            patient_id=int(details["patient_id"]),
            added_by=details["added_by"],
            entry_hash=entry.get("hash"),
            timestamp=entry.get("timestamp"),
        )
