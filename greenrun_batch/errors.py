"""Exception types raised by the Greenrun client and orchestration core."""

from collections.abc import Mapping, Sequence


class GreenrunError(Exception):
    """Base class for all Greenrun errors."""


class ConfigurationError(GreenrunError):
    """Raised when the client cannot be configured (e.g. missing token)."""


class ApiError(GreenrunError):
    """Raised when a Greenrun API call fails.

    ``status`` is None when no response was received.
    """

    def __init__(
        self, *, method: str, path: str, status: int | None, message: str
    ) -> None:
        outcome = status if status is not None else "no response"
        super().__init__(f"API {method} {path} failed ({outcome}): {message}")
        self.method = method
        self.path = path
        self.status = status
        self.message = message


class NotFoundError(ApiError):
    """Raised when a project, page, test or run does not exist."""


class AuthenticationError(ApiError):
    """Raised when the API token is missing or rejected."""


class ConnectionFailedError(ApiError):
    """Raised when the request could not be sent or timed out."""


class RunAlreadyCompletedError(GreenrunError):
    """Raised when a run that already reached a terminal state is completed again."""

    def __init__(
        self,
        *,
        run_id: str,
        current_status: str | None,
        requested_status: str,
    ) -> None:
        current = current_status or "unknown"
        super().__init__(
            f"Run {run_id} is already completed with status={current}, "
            f"refusing to set status={requested_status}"
        )
        self.run_id = run_id
        self.current_status = current_status
        self.requested_status = requested_status


class BatchPreparationError(GreenrunError):
    """Raised when fetching details or starting runs fails for any test of a batch.

    ``started_run_ids`` lists the runs that were created before the batch was
    abandoned; they are left in ``running`` state for the caller to finalize.
    """

    def __init__(
        self,
        *,
        project_id: str,
        failures: Mapping[str, BaseException],
        started_run_ids: Sequence[str],
    ) -> None:
        details = "; ".join(f"{test_id}: {exc}" for test_id, exc in failures.items())
        super().__init__(
            f"Failed to prepare batch for project {project_id} "
            f"({len(failures)} test(s) failed): {details}"
        )
        self.project_id = project_id
        self.failures = failures
        self.started_run_ids = started_run_ids
