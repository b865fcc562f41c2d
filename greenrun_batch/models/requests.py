"""Request bodies for creating and updating Greenrun entities.

Update models are sent with ``exclude_unset`` so only fields the caller set
reach the service; an explicit ``None`` clears the field.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Annotated, Any

from pydantic import Field, field_validator

from greenrun_batch.models.base import Model
from greenrun_batch.models.entities import AuthMode, Credential, TestStatus

MAX_CREDENTIALS = 20


class ProjectUpdate(Model):
    """Fields accepted when updating a project."""

    name: str | None = None
    base_url: str | None = None
    description: str | None = None
    auth_mode: AuthMode | None = None
    login_url: str | None = None
    register_url: str | None = None
    login_instructions: str | None = None
    register_instructions: str | None = None
    credentials: Annotated[
        Sequence[Credential], Field(max_length=MAX_CREDENTIALS)
    ] | None = None
    concurrency: int | None = Field(default=None, ge=1)

    @field_validator("credentials")
    @classmethod
    def _unique_names(
        cls, value: Sequence[Credential] | None
    ) -> Sequence[Credential] | None:
        if value is None:
            return value
        names = [credential.name for credential in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate credential names: {', '.join(duplicates)}")
        return value

    def to_payload(self) -> dict[str, Any]:
        """Serialize only the fields that were explicitly set."""
        return self.model_dump(mode="json", exclude_unset=True)


class ProjectCreate(ProjectUpdate):
    """Fields accepted when creating a project."""

    name: str


class PageUpdate(Model):
    """Fields accepted when updating a page."""

    url: str | None = None
    name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize only the fields that were explicitly set."""
        return self.model_dump(mode="json", exclude_unset=True)


class PageCreate(PageUpdate):
    """Fields accepted when registering a page."""

    url: str


class TestUpdate(Model):
    """Fields accepted when updating a test."""

    __test__ = False

    name: str | None = None
    instructions: str | None = None
    page_ids: Sequence[str] | None = None
    status: TestStatus | None = None
    tags: Sequence[str] | None = None
    credential_name: str | None = None
    script: str | None = None
    script_generated_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize only the fields that were explicitly set."""
        return self.model_dump(mode="json", exclude_unset=True)


class TestCreate(TestUpdate):
    """Fields accepted when storing a new test."""

    __test__ = False

    name: str
    instructions: str
