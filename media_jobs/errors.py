"""Error taxonomy shared by the vendor clients, the asset resolver and the pipelines.

Every error carries a ``retryable`` flag. The in-process queue consults it to
decide whether a failed delivery is worth another attempt, and the
orchestrator uses it to decide whether a failure is final.
"""

from typing import Iterable, Optional


class MediaJobError(Exception):
    """Base class for all worker errors."""

    retryable = True


class ConfigurationError(MediaJobError):
    """A required credential or endpoint is not configured."""

    retryable = False

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        names = ", ".join(name.upper() for name in self.missing)
        super().__init__(f"Missing required configuration: {names}")


class AssetNotFoundError(MediaJobError):
    """A required input asset does not exist. Re-running will not help."""

    retryable = False


class AssetLookupError(MediaJobError):
    """The object store listing or signing call itself failed (network, auth)."""


class VendorSubmissionError(MediaJobError):
    """A vendor rejected or errored on a submit call."""

    retryable = False

    def __init__(
        self,
        vendor: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.vendor = vendor
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class VendorTimeoutError(VendorSubmissionError):
    """A vendor HTTP call exceeded its request-level timeout."""

    retryable = True


class VendorPollTransientError(MediaJobError):
    """A single status poll failed. Swallowed by the polling driver."""


class VendorTerminalFailure(MediaJobError):
    """The vendor reported that its own generation/render failed."""

    retryable = False

    def __init__(self, vendor: str, stage: str, reason: str):
        self.vendor = vendor
        self.stage = stage
        self.reason = reason
        super().__init__(f"{vendor} {stage} failed: {reason}")


class PollingTimeoutError(MediaJobError):
    """No terminal vendor state was observed before the polling ceiling."""

    def __init__(self, vendor: str, stage: str, elapsed_seconds: float):
        self.vendor = vendor
        self.stage = stage
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"{vendor} polling timed out during {stage} after {int(elapsed_seconds)}s."
        )


class PersistenceError(MediaJobError):
    """A database read or write failed."""

    def __init__(self, table: str, operation: str, detail: str):
        self.table = table
        self.operation = operation
        super().__init__(f"{operation} on {table} failed: {detail}")


class JobOwnershipError(MediaJobError):
    """A guarded status transition was refused.

    Either the job is not claimable (another execution owns it, or it is
    already terminal) or it became terminal underneath this execution.
    The execution must stop without writing anything else.
    """

    retryable = False

    def __init__(self, job_id: str, current_status: Optional[str]):
        self.job_id = job_id
        self.current_status = current_status
        super().__init__(
            f"Job {job_id} is not owned by this execution (status={current_status})"
        )
