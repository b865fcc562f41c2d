"""Models for entities owned by the Greenrun service."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Literal

from pydantic import Field, field_validator

from greenrun_batch.models.base import Model

type AuthMode = Literal["none", "existing_user", "new_user"]
type TestStatus = Literal["draft", "active", "archived"]
type RunStatus = Literal["running", "passed", "failed", "error"]
type TerminalStatus = Literal["passed", "failed", "error"]

TERMINAL_STATUSES: frozenset[RunStatus] = frozenset(["passed", "failed", "error"])


class Credential(Model):
    """Named login credential set stored on a project."""

    name: str = Field(..., description="Credential set name, unique per project")
    email: str = Field(..., description="Login email")
    password: str = Field(..., repr=False, description="Login password")


class Project(Model):
    """A project grouping pages and tests for one site."""

    id: str
    name: str
    base_url: str | None = None
    description: str | None = None
    auth_mode: AuthMode = "none"
    login_url: str | None = None
    register_url: str | None = None
    login_instructions: str | None = None
    register_instructions: str | None = None
    credentials: Sequence[Credential] = Field(default_factory=list)
    concurrency: int = 5

    @field_validator("credentials", mode="before")
    @classmethod
    def _null_credentials(cls, value: Any) -> Any:
        return [] if value is None else value


class Page(Model):
    """A page URL registered in a project."""

    id: str
    url: str = Field(..., description="Absolute URL or path relative to base_url")
    name: str | None = None


class Test(Model):
    """A stored browser test case.

    Compact listings omit ``instructions`` and ``script``.
    """

    __test__ = False

    id: str
    name: str
    instructions: str | None = None
    status: TestStatus = "active"
    pages: Sequence[Page] = Field(default_factory=list)
    tags: Sequence[str] = Field(default_factory=list)
    credential_name: str | None = None
    script: str | None = None
    script_generated_at: datetime | None = None

    @field_validator("pages", mode="before")
    @classmethod
    def _null_pages(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_names(cls, value: Any) -> Any:
        """Accept tags either as plain names or as ``{"name": ...}`` objects."""
        if value is None:
            return []
        return [tag["name"] if isinstance(tag, dict) else tag for tag in value]


class Run(Model):
    """A single execution record of a test."""

    id: str
    test_id: str | None = None
    status: RunStatus
    result: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether the run reached passed, failed or error."""
        return self.status in TERMINAL_STATUSES
