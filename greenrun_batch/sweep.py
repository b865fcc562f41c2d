"""Impact analysis: which tests cover a set of changed pages."""

import asyncio
import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from fnmatch import fnmatchcase

from greenrun_batch.client import ApiClient
from greenrun_batch.models.entities import Page, Test
from greenrun_batch.repositories import PageRepository, TestRepository

log = logging.getLogger(__name__)


def match_pages(
    pages: Sequence[Page],
    urls: Collection[str] = (),
    url_pattern: str | None = None,
) -> Sequence[Page]:
    """Return the pages whose URL equals one of ``urls`` or matches ``url_pattern``.

    The pattern is matched against the whole URL, case-sensitively. ``*``
    matches any run of characters including ``/``, so ``/checkout*`` matches
    ``/checkout/confirm``; ``?`` matches one character.
    """
    wanted = set(urls)
    return [
        page
        for page in pages
        if page.url in wanted
        or (url_pattern is not None and fnmatchcase(page.url, url_pattern))
    ]


def affected_tests(tests: Sequence[Test], pages: Sequence[Page]) -> Sequence[Test]:
    """Return tests linked to any of ``pages``, in catalogue order, once each."""
    page_ids = {page.id for page in pages}
    return [
        test for test in tests if any(page.id in page_ids for page in test.pages)
    ]


@dataclass(frozen=True, kw_only=True)
class SweepAnalyzer:
    """Finds the tests to re-run after pages changed."""

    pages: PageRepository
    tests: TestRepository

    @classmethod
    def from_client(cls, client: ApiClient) -> "SweepAnalyzer":
        """Wire an analyzer to the repositories of one client."""
        return cls(
            pages=PageRepository(client=client),
            tests=TestRepository(client=client),
        )

    async def sweep(
        self,
        project_id: str,
        pages: Sequence[str] | None = None,
        url_pattern: str | None = None,
    ) -> Sequence[Test]:
        """Find tests associated with the changed pages of a project.

        Args:
            project_id: Project whose page catalogue is searched
            pages: Exact page URLs
            url_pattern: Glob matched against every page URL (see ``match_pages``)

        Returns:
            Affected tests, possibly empty

        Raises:
            ValueError: If neither ``pages`` nor ``url_pattern`` is given

        """
        if not pages and not url_pattern:
            raise ValueError("Either pages or url_pattern is required")

        catalogue, tests = await asyncio.gather(
            self.pages.list(project_id),
            self.tests.list(project_id, compact=True),
        )

        matched = match_pages(catalogue, urls=pages or (), url_pattern=url_pattern)
        affected = affected_tests(tests, matched)
        log.info(
            "Matched %d page(s) and %d test(s) in project %s",
            len(matched),
            len(affected),
            project_id,
        )
        return affected
