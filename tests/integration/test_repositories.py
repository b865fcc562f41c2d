"""Integration tests for entity repositories."""

import re

import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import ValidationError
from yarl import URL

from greenrun_batch.client import ApiClient
from greenrun_batch.errors import NotFoundError
from greenrun_batch.models.batch import RunCompletion
from greenrun_batch.models.entities import Credential
from greenrun_batch.models.requests import (
    PageCreate,
    ProjectCreate,
    ProjectUpdate,
    TestCreate,
    TestUpdate,
)
from greenrun_batch.repositories import (
    BatchCompletionResponse,
    PageRepository,
    ProjectRepository,
    RunRepository,
    TestRepository,
)
from greenrun_batch.testing import payloads

API_BASE_URL = "http://greenrun.test/api/v1/"


class TestProjectRepository:
    """Tests for ProjectRepository."""

    async def test_lists_projects(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Parses the project list."""
        aioresponses.get(
            f"{API_BASE_URL}projects",
            payload=[payloads.project(), payloads.project(project_id="proj-2")],
        )

        projects = await ProjectRepository(client=client).list()

        assert [project.id for project in projects] == ["proj-1", "proj-2"]

    async def test_gets_project_with_credentials(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Parses auth settings and credential sets."""
        aioresponses.get(
            f"{API_BASE_URL}projects/proj-1",
            payload=payloads.project(
                auth_mode="existing_user",
                login_url="https://shop.example.com/login",
                credentials=[payloads.credential(), payloads.credential(name="viewer")],
            ),
        )

        project = await ProjectRepository(client=client).get("proj-1")

        assert project.auth_mode == "existing_user"
        assert [c.name for c in project.credentials] == ["admin", "viewer"]

    async def test_get_missing_project_raises_not_found(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """A missing project is surfaced as NotFoundError."""
        aioresponses.get(f"{API_BASE_URL}projects/nope", status=404, body="")

        with pytest.raises(NotFoundError):
            await ProjectRepository(client=client).get("nope")

    async def test_creates_project(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Posts only the provided fields."""
        url = f"{API_BASE_URL}projects"
        aioresponses.post(url, status=201, payload=payloads.project(name="Shop"))

        project = await ProjectRepository(client=client).create(
            ProjectCreate(
                name="Shop",
                auth_mode="existing_user",
                credentials=[
                    Credential(name="admin", email="a@example.com", password="pw")
                ],
            )
        )

        assert project.name == "Shop"
        payload = aioresponses.requests[("POST", URL(url))][0].kwargs["json"]
        assert payload == {
            "name": "Shop",
            "auth_mode": "existing_user",
            "credentials": [
                {"name": "admin", "email": "a@example.com", "password": "pw"}
            ],
        }

    async def test_updates_project(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Puts a partial update."""
        url = f"{API_BASE_URL}projects/proj-1"
        aioresponses.put(url, payload=payloads.project(name="Renamed"))

        project = await ProjectRepository(client=client).update(
            "proj-1", ProjectUpdate(name="Renamed", concurrency=3)
        )

        assert project.name == "Renamed"
        payload = aioresponses.requests[("PUT", URL(url))][0].kwargs["json"]
        assert payload == {"name": "Renamed", "concurrency": 3}

    async def test_deletes_project(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Deletes by ID."""
        url = f"{API_BASE_URL}projects/proj-1"
        aioresponses.delete(url, status=204, body="")

        await ProjectRepository(client=client).delete("proj-1")

        assert ("DELETE", URL(url)) in aioresponses.requests

    async def test_remote_sweep_sends_pages_and_pattern(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Sends repeated pages[] and url_pattern query parameters."""
        aioresponses.get(
            re.compile(rf"^{re.escape(API_BASE_URL)}projects/proj-1/sweep.*$"),
            payload={"tests": [payloads.stored_test(compact=True)]},
        )

        tests = await ProjectRepository(client=client).sweep(
            "proj-1", pages=["/checkout", "/cart"], url_pattern="/account*"
        )

        assert [test.id for test in tests] == ["test-1"]
        calls = next(iter(aioresponses.requests.values()))
        assert calls[0].kwargs["params"] == [
            ("pages[]", "/checkout"),
            ("pages[]", "/cart"),
            ("url_pattern", "/account*"),
        ]


class TestPageRepository:
    """Tests for PageRepository."""

    async def test_lists_and_creates_pages(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Lists pages and registers a new one."""
        url = f"{API_BASE_URL}projects/proj-1/pages"
        aioresponses.get(url, payload=[payloads.page()])
        aioresponses.post(
            url, status=201, payload=payloads.page(page_id="page-2", url="/cart")
        )
        pages = PageRepository(client=client)

        listed = await pages.list("proj-1")
        created = await pages.create("proj-1", PageCreate(url="/cart"))

        assert [page.url for page in listed] == ["/checkout"]
        assert created.id == "page-2"
        payload = aioresponses.requests[("POST", URL(url))][0].kwargs["json"]
        assert payload == {"url": "/cart"}


class TestTestRepository:
    """Tests for TestRepository."""

    async def test_lists_compact_tests(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Requests the compact listing when asked."""
        aioresponses.get(
            f"{API_BASE_URL}projects/proj-1/tests?compact=1",
            payload=[
                payloads.stored_test(
                    compact=True, tags=["smoke"], pages=[payloads.page()]
                )
            ],
        )

        tests = await TestRepository(client=client).list("proj-1", compact=True)

        assert tests[0].tags == ["smoke"]
        assert tests[0].pages[0].url == "/checkout"
        assert tests[0].instructions is None

    async def test_gets_full_test(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Parses instructions and script of a full test."""
        aioresponses.get(
            f"{API_BASE_URL}tests/test-1",
            payload=payloads.stored_test(script="await page.goto('/')"),
        )

        test = await TestRepository(client=client).get("test-1")

        assert test.instructions == "Add an item to the cart and check out."
        assert test.script == "await page.goto('/')"
        assert test.script_generated_at is not None

    async def test_creates_and_updates_test(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Creates a test and clears its credential in an update."""
        create_url = f"{API_BASE_URL}projects/proj-1/tests"
        update_url = f"{API_BASE_URL}tests/test-1"
        aioresponses.post(create_url, status=201, payload=payloads.stored_test())
        aioresponses.put(update_url, payload=payloads.stored_test())
        tests = TestRepository(client=client)

        await tests.create(
            "proj-1",
            TestCreate(
                name="User can check out",
                instructions="Go to /checkout",
                page_ids=["page-1"],
                tags=["smoke"],
                credential_name="admin",
            ),
        )
        await tests.update("test-1", TestUpdate(credential_name=None))

        created = aioresponses.requests[("POST", URL(create_url))][0].kwargs["json"]
        assert created == {
            "name": "User can check out",
            "instructions": "Go to /checkout",
            "page_ids": ["page-1"],
            "tags": ["smoke"],
            "credential_name": "admin",
        }
        updated = aioresponses.requests[("PUT", URL(update_url))][0].kwargs["json"]
        assert updated == {"credential_name": None}


class TestRunRepository:
    """Tests for RunRepository."""

    async def test_starts_run(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Posts to the test's runs endpoint."""
        aioresponses.post(
            f"{API_BASE_URL}tests/test-1/runs", status=201, payload=payloads.run()
        )

        run = await RunRepository(client=client).start("test-1")

        assert run.id == "run-1"
        assert run.status == "running"

    async def test_completes_run(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Puts status and result."""
        url = f"{API_BASE_URL}runs/run-1"
        aioresponses.put(url, payload=payloads.run(status="failed", result="No cart"))

        run = await RunRepository(client=client).complete(
            "run-1", status="failed", result="No cart"
        )

        assert run.status == "failed"
        assert run.duration_ms == 60000
        payload = aioresponses.requests[("PUT", URL(url))][0].kwargs["json"]
        assert payload == {"status": "failed", "result": "No cart"}

    async def test_completes_many(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Sends all entries in one request and parses per-entry results."""
        url = f"{API_BASE_URL}runs/batch"
        aioresponses.put(
            url,
            payload={
                "results": [
                    {"run_id": "run-1", "run": payloads.run(status="passed")},
                    {"run_id": "run-2", "error": "Run not found"},
                ]
            },
        )

        outcomes = await RunRepository(client=client).complete_many(
            [
                RunCompletion(run_id="run-1", status="passed"),
                RunCompletion(run_id="run-2", status="error", result="Crashed"),
            ]
        )

        assert [o.ok for o in outcomes] == [True, False]
        payload = aioresponses.requests[("PUT", URL(url))][0].kwargs["json"]
        assert payload == {
            "runs": [
                {"run_id": "run-1", "status": "passed", "result": None},
                {"run_id": "run-2", "status": "error", "result": "Crashed"},
            ]
        }

    def test_batch_completion_response_is_frozen(self) -> None:
        """Completion responses ignore unknown keys and cannot be mutated."""
        response = BatchCompletionResponse.model_validate(
            {"results": [{"run_id": "run-1", "error": "Run not found"}], "meta": {}}
        )

        with pytest.raises(ValidationError):
            response.results = []  # type: ignore[misc]

    async def test_lists_runs(
        self, client: ApiClient, aioresponses: aioresponses_cls
    ) -> None:
        """Lists a test's run history."""
        aioresponses.get(
            f"{API_BASE_URL}tests/test-1/runs",
            payload=[
                payloads.run(run_id="run-2", status="passed"),
                payloads.run(run_id="run-1", status="failed"),
            ],
        )

        runs = await RunRepository(client=client).list("test-1")

        assert [run.id for run in runs] == ["run-2", "run-1"]
