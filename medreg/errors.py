"""
MEDREG error taxonomy.

Every registry failure is raised synchronously to the caller; the
transaction that raised it is rolled back.
"""


class RegistryError(Exception):
    """Base class for registry failures."""


class AccessDenied(RegistryError):
    """Caller is not the registry owner."""

    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(f"Caller {caller!r} is not the registry owner")


class AlreadyExists(RegistryError):
    """A report is already stored for this patient id."""

    def __init__(self, patient_id: int):
        self.patient_id = patient_id
        super().__init__(f"Report already exists for patient {patient_id}")


class NotDeployed(RegistryError):
    """No registry has been deployed to this database."""


class AlreadyDeployed(RegistryError):
    """A registry owner is already recorded in this database."""


class InvalidPatientId(RegistryError, ValueError):
    """Patient id is not an unsigned integer of the supported width."""
