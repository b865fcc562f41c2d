"""Preparation of a ready-to-execute batch of tests."""

import asyncio
import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass

from greenrun_batch.client import ApiClient
from greenrun_batch.credentials import scope_project
from greenrun_batch.errors import BatchPreparationError
from greenrun_batch.filtering import filter_tests
from greenrun_batch.lifecycle import RunLifecycle
from greenrun_batch.models.batch import BatchResult, BatchTestSummary
from greenrun_batch.models.entities import Run, Test
from greenrun_batch.repositories import ProjectRepository, RunRepository, TestRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class BatchPreparer:
    """Resolves, filters and starts runs for a batch of tests."""

    projects: ProjectRepository
    tests: TestRepository
    lifecycle: RunLifecycle

    @classmethod
    def from_client(cls, client: ApiClient) -> "BatchPreparer":
        """Wire a preparer to the repositories of one client."""
        return cls(
            projects=ProjectRepository(client=client),
            tests=TestRepository(client=client),
            lifecycle=RunLifecycle(runs=RunRepository(client=client)),
        )

    async def prepare(
        self,
        project_id: str,
        expression: str | None = None,
        test_ids: Collection[str] | None = None,
    ) -> BatchResult:
        """Prepare a batch: filter tests, scope credentials, start one run per test.

        Args:
            project_id: Project to run tests from
            expression: Filter expression (see ``filter_tests``)
            test_ids: Explicit test IDs, taking precedence over ``expression``

        Returns:
            Project summary and one entry per selected test, in catalogue
            order. An empty test list means there is nothing to run.

        Raises:
            NotFoundError: If the project does not exist
            BatchPreparationError: If fetching a test or starting its run
                failed for any selected test

        """
        project, all_tests = await asyncio.gather(
            self.projects.get(project_id),
            self.tests.list(project_id, compact=True),
        )

        selected = filter_tests(all_tests, test_ids=test_ids, expression=expression)
        summary = scope_project(project, selected)

        log.info(
            "Selected %d of %d test(s) in project %s",
            len(selected),
            len(all_tests),
            project_id,
        )
        if not selected:
            return BatchResult(project=summary, tests=[])

        details, runs = await asyncio.gather(
            asyncio.gather(
                *(self.tests.get(test.id) for test in selected),
                return_exceptions=True,
            ),
            asyncio.gather(
                *(self.lifecycle.start(test.id) for test in selected),
                return_exceptions=True,
            ),
        )

        entries = self._assemble(project_id, selected, details, runs)
        log.info("Started %d run(s) for project %s", len(entries), project_id)
        return BatchResult(project=summary, tests=entries)

    def _assemble(
        self,
        project_id: str,
        selected: Sequence[Test],
        details: Sequence[Test | BaseException],
        runs: Sequence[Run | BaseException],
    ) -> Sequence[BatchTestSummary]:
        """Pair each test's detail with its run, or fail the whole batch."""
        failures: dict[str, BaseException] = {}
        started_run_ids = [run.id for run in runs if isinstance(run, Run)]
        entries: list[BatchTestSummary] = []

        for test, detail, run in zip(selected, details, runs, strict=True):
            if isinstance(detail, BaseException):
                failures[test.id] = detail
                continue
            if isinstance(run, BaseException):
                failures[test.id] = run
                continue
            entries.append(
                BatchTestSummary(
                    test_id=detail.id,
                    test_name=detail.name,
                    run_id=run.id,
                    credential_name=detail.credential_name,
                    pages=detail.pages,
                    tags=detail.tags,
                    has_script=detail.script is not None,
                )
            )

        if failures:
            for test_id, exc in failures.items():
                log.error("Batch preparation failed for test %s: %s", test_id, exc)
            raise BatchPreparationError(
                project_id=project_id,
                failures=failures,
                started_run_ids=started_run_ids,
            )

        return entries
