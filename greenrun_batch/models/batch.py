"""Models produced by batch preparation and run completion."""

from collections.abc import Sequence
from typing import Any

from pydantic import Field, SerializerFunctionWrapHandler, model_serializer

from greenrun_batch.models.base import Model
from greenrun_batch.models.entities import (
    AuthMode,
    Credential,
    Page,
    Run,
    TerminalStatus,
)


class ProjectSummary(Model):
    """Project view handed to an executor, with credentials minimized.

    Unset fields are dropped when serialized, so a project without
    authentication never exposes a ``credentials`` key.
    """

    id: str
    name: str
    base_url: str | None = None
    auth_mode: AuthMode
    login_url: str | None = None
    register_url: str | None = None
    login_instructions: str | None = None
    register_instructions: str | None = None
    credentials: Sequence[Credential] | None = None

    @model_serializer(mode="wrap")
    def _drop_empty(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        return {key: value for key, value in data.items() if value is not None}


class BatchTestSummary(Model):
    """One test of a prepared batch, paired with its freshly started run."""

    test_id: str
    test_name: str
    run_id: str
    credential_name: str | None = None
    pages: Sequence[Page] = Field(default_factory=list)
    tags: Sequence[str] = Field(default_factory=list)
    has_script: bool = False


class BatchResult(Model):
    """Everything an executor needs to run a batch."""

    project: ProjectSummary
    tests: Sequence[BatchTestSummary] = Field(default_factory=list)


class RunCompletion(Model):
    """A terminal status to record for one run."""

    run_id: str
    status: TerminalStatus
    result: str | None = None


class CompletionOutcome(Model):
    """Per-entry outcome of a batch completion, as returned by the service."""

    run_id: str
    run: Run | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the run is now recorded with the requested status."""
        return self.error is None
