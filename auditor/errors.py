"""Exceptions raised by the audit pipeline."""


class AuditError(Exception):
    """Base class for audit pipeline errors."""


class RunNotFound(AuditError, LookupError):
    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class InvalidRunState(AuditError):
    """A run was asked to make a transition its current status forbids."""


class BaselineError(AuditError):
    """A baseline could not be created, loaded or refreshed."""


class BaselineNotFound(BaselineError, LookupError):
    def __init__(self, baseline_id: str):
        super().__init__(f"Baseline not found: {baseline_id}")
        self.baseline_id = baseline_id


class InvalidFileRef(AuditError, ValueError):
    """A file reference points outside the storage root."""
