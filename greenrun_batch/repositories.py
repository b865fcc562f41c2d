"""Typed accessors for Greenrun projects, pages, tests and runs."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from greenrun_batch.client import ApiClient
from greenrun_batch.models.base import Model
from greenrun_batch.models.batch import CompletionOutcome, RunCompletion
from greenrun_batch.models.entities import (
    Page,
    Project,
    Run,
    TerminalStatus,
    Test,
)
from greenrun_batch.models.requests import (
    PageCreate,
    PageUpdate,
    ProjectCreate,
    ProjectUpdate,
    TestCreate,
    TestUpdate,
)

log = logging.getLogger(__name__)


class BatchCompletionResponse(Model):
    """Response from the batch run completion endpoint."""

    results: Sequence[CompletionOutcome]


@dataclass(frozen=True, kw_only=True)
class ProjectRepository:
    """Project CRUD and the service-side impact analysis endpoint."""

    client: ApiClient

    async def list(self) -> Sequence[Project]:
        data = await self.client.request("GET", "/projects")
        return [Project.model_validate(item) for item in data]

    async def get(self, project_id: str) -> Project:
        data = await self.client.request("GET", f"/projects/{project_id}")
        return Project.model_validate(data)

    async def create(self, project: ProjectCreate) -> Project:
        data = await self.client.request(
            "POST", "/projects", payload=project.to_payload()
        )
        return Project.model_validate(data)

    async def update(self, project_id: str, changes: ProjectUpdate) -> Project:
        data = await self.client.request(
            "PUT", f"/projects/{project_id}", payload=changes.to_payload()
        )
        return Project.model_validate(data)

    async def delete(self, project_id: str) -> None:
        await self.client.request("DELETE", f"/projects/{project_id}")

    async def sweep(
        self,
        project_id: str,
        *,
        pages: Sequence[str] = (),
        url_pattern: str | None = None,
    ) -> Sequence[Test]:
        """Ask the service which tests are linked to the given pages."""
        params = [("pages[]", page) for page in pages]
        if url_pattern:
            params.append(("url_pattern", url_pattern))

        data = await self.client.request(
            "GET", f"/projects/{project_id}/sweep", params=params
        )
        if isinstance(data, dict):
            data = data.get("tests", [])
        return [Test.model_validate(item) for item in data]


@dataclass(frozen=True, kw_only=True)
class PageRepository:
    """Page CRUD within a project."""

    client: ApiClient

    async def list(self, project_id: str) -> Sequence[Page]:
        data = await self.client.request("GET", f"/projects/{project_id}/pages")
        return [Page.model_validate(item) for item in data]

    async def create(self, project_id: str, page: PageCreate) -> Page:
        data = await self.client.request(
            "POST", f"/projects/{project_id}/pages", payload=page.to_payload()
        )
        return Page.model_validate(data)

    async def update(self, page_id: str, changes: PageUpdate) -> Page:
        data = await self.client.request(
            "PUT", f"/pages/{page_id}", payload=changes.to_payload()
        )
        return Page.model_validate(data)

    async def delete(self, page_id: str) -> None:
        await self.client.request("DELETE", f"/pages/{page_id}")


@dataclass(frozen=True, kw_only=True)
class TestRepository:
    """Test CRUD within a project."""

    __test__ = False

    client: ApiClient

    async def list(self, project_id: str, *, compact: bool = False) -> Sequence[Test]:
        """List a project's tests.

        The compact form leaves out instructions and scripts, which is enough
        for filtering and much smaller for large suites.
        """
        params = {"compact": "1"} if compact else None
        data = await self.client.request(
            "GET", f"/projects/{project_id}/tests", params=params
        )
        return [Test.model_validate(item) for item in data]

    async def get(self, test_id: str) -> Test:
        data = await self.client.request("GET", f"/tests/{test_id}")
        return Test.model_validate(data)

    async def create(self, project_id: str, test: TestCreate) -> Test:
        data = await self.client.request(
            "POST", f"/projects/{project_id}/tests", payload=test.to_payload()
        )
        return Test.model_validate(data)

    async def update(self, test_id: str, changes: TestUpdate) -> Test:
        data = await self.client.request(
            "PUT", f"/tests/{test_id}", payload=changes.to_payload()
        )
        return Test.model_validate(data)

    async def delete(self, test_id: str) -> None:
        await self.client.request("DELETE", f"/tests/{test_id}")


@dataclass(frozen=True, kw_only=True)
class RunRepository:
    """Raw run endpoints; state rules live in RunLifecycle."""

    client: ApiClient

    async def start(self, test_id: str) -> Run:
        data = await self.client.request("POST", f"/tests/{test_id}/runs")
        run = Run.model_validate(data)
        log.debug("Started run %s for test %s", run.id, test_id)
        return run

    async def complete(
        self, run_id: str, *, status: TerminalStatus, result: str | None = None
    ) -> Run:
        payload: dict[str, str] = {"status": status}
        if result is not None:
            payload["result"] = result
        data = await self.client.request("PUT", f"/runs/{run_id}", payload=payload)
        return Run.model_validate(data)

    async def complete_many(
        self, entries: Sequence[RunCompletion]
    ) -> Sequence[CompletionOutcome]:
        """Record several completions in one request.

        Returns:
            One outcome per run the service reported on, in response order

        """
        payload = {"runs": [entry.model_dump(mode="json") for entry in entries]}
        data = await self.client.request("PUT", "/runs/batch", payload=payload)
        return BatchCompletionResponse.model_validate(data).results

    async def get(self, run_id: str) -> Run:
        data = await self.client.request("GET", f"/runs/{run_id}")
        return Run.model_validate(data)

    async def list(self, test_id: str) -> Sequence[Run]:
        """List a test's runs, newest first."""
        data = await self.client.request("GET", f"/tests/{test_id}/runs")
        return [Run.model_validate(item) for item in data]
