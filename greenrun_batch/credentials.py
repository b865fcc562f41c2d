"""Credential minimization for the project summary sent with a batch."""

import logging
from collections.abc import Sequence

from greenrun_batch.models.batch import ProjectSummary
from greenrun_batch.models.entities import Project, Test

log = logging.getLogger(__name__)


def scope_project(project: Project, tests: Sequence[Test]) -> ProjectSummary:
    """Build the project summary for a batch of tests.

    Projects without authentication only expose identity fields, even if
    stale auth fields are still stored on them.

    Otherwise the summary carries only the credential sets referenced by
    ``tests``. When no test names a credential set, the full list is kept so
    the executor can fall back to a default login. A name that does not
    exist on the project is ignored rather than treated as an error.
    """
    if project.auth_mode == "none":
        return ProjectSummary(
            id=project.id,
            name=project.name,
            base_url=project.base_url,
            auth_mode="none",
        )

    referenced = {test.credential_name for test in tests if test.credential_name}

    if referenced:
        credentials = [c for c in project.credentials if c.name in referenced]
        dangling = referenced - {c.name for c in credentials}
        if dangling:
            log.debug(
                "Project %s has no credential set named %s",
                project.id,
                ", ".join(sorted(dangling)),
            )
    else:
        credentials = list(project.credentials)

    return ProjectSummary(
        id=project.id,
        name=project.name,
        base_url=project.base_url,
        auth_mode=project.auth_mode,
        login_url=project.login_url,
        register_url=project.register_url,
        login_instructions=project.login_instructions,
        register_instructions=project.register_instructions,
        credentials=credentials,
    )
