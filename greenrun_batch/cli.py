"""CLI entry point for Greenrun batch orchestration."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from greenrun_batch.batch import BatchPreparer
from greenrun_batch.client import ApiClient
from greenrun_batch.config import ApiConfig
from greenrun_batch.errors import (
    AuthenticationError,
    BatchPreparationError,
    ConfigurationError,
    GreenrunError,
)
from greenrun_batch.lifecycle import RunLifecycle
from greenrun_batch.models.base import Model
from greenrun_batch.models.batch import BatchResult, CompletionOutcome, RunCompletion
from greenrun_batch.models.requests import (
    PageCreate,
    ProjectCreate,
    ProjectUpdate,
    TestCreate,
    TestUpdate,
)
from greenrun_batch.repositories import (
    PageRepository,
    ProjectRepository,
    RunRepository,
    TestRepository,
)
from greenrun_batch.sweep import SweepAnalyzer

log = logging.getLogger("greenrun_batch")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

type Handler = Callable[[ApiClient, argparse.Namespace], Awaitable[tuple[Any, int]]]

COMPLETIONS = TypeAdapter(list[RunCompletion])

PAYLOADS: Mapping[str, type[Model]] = {
    "create-project": ProjectCreate,
    "update-project": ProjectUpdate,
    "create-page": PageCreate,
    "create-test": TestCreate,
    "update-test": TestUpdate,
}

CLEARABLE_TEST_FIELDS = ("credential_name", "script", "script_generated_at")


def log_batch_summary(log: logging.Logger, batch: BatchResult) -> None:
    """Log the prepared tests and their run IDs."""
    log.info("=" * 80)
    log.info(
        "Prepared batch for %s (auth_mode=%s):",
        batch.project.name,
        batch.project.auth_mode,
    )
    log.info("=" * 80)

    if not batch.tests:
        log.info("No tests matched, nothing to run")
        return

    for entry in batch.tests:
        log.info("%s: run %s", entry.test_name, entry.run_id)
        if entry.credential_name:
            log.info("  Credential: %s", entry.credential_name)


def format_completions(outcomes: Sequence[CompletionOutcome]) -> dict[str, Any]:
    """Format batch completion outcomes for JSON output."""
    return {
        "total": len(outcomes),
        "completed": sum(1 for outcome in outcomes if outcome.ok),
        "failed": sum(1 for outcome in outcomes if not outcome.ok),
        "results": [outcome.model_dump(mode="json") for outcome in outcomes],
    }


def read_json_argument(source: str) -> str:
    """Return JSON given inline, from a file path, or from stdin when '-'."""
    if source.lstrip().startswith(("[", "{")):
        return source
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text()


def load_completions(source: str) -> Sequence[RunCompletion]:
    """Read completion entries from inline JSON, a JSON file or stdin."""
    return COMPLETIONS.validate_json(read_json_argument(source))


def build_payload(args: argparse.Namespace) -> Model:
    """Build the request body for a create or update command.

    Options left out on the command line are absent from the namespace and
    stay unset, so updates only send what the caller passed. Fields named
    with ``--clear`` are sent as null.

    Raises:
        ValueError: If the credentials JSON or any field is invalid
        OSError: If a credentials file cannot be read

    """
    model = PAYLOADS[args.command]
    values = vars(args)
    fields = {name: values[name] for name in model.model_fields if name in values}
    fields.update(dict.fromkeys(values.get("clear") or (), None))
    if "credentials" in fields:
        fields["credentials"] = json.loads(read_json_argument(fields["credentials"]))
    return model.model_validate(fields)


async def list_projects(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await ProjectRepository(client=client).list(), EXIT_OK


async def get_project(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await ProjectRepository(client=client).get(args.project_id), EXIT_OK


async def create_project(
    client: ApiClient, args: argparse.Namespace
) -> tuple[Any, int]:
    return await ProjectRepository(client=client).create(args.payload), EXIT_OK


async def update_project(
    client: ApiClient, args: argparse.Namespace
) -> tuple[Any, int]:
    projects = ProjectRepository(client=client)
    return await projects.update(args.project_id, args.payload), EXIT_OK


async def list_pages(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await PageRepository(client=client).list(args.project_id), EXIT_OK


async def create_page(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    pages = PageRepository(client=client)
    return await pages.create(args.project_id, args.payload), EXIT_OK


async def list_tests(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    tests = TestRepository(client=client)
    return await tests.list(args.project_id, compact=args.compact), EXIT_OK


async def get_test(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await TestRepository(client=client).get(args.test_id), EXIT_OK


async def create_test(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    tests = TestRepository(client=client)
    return await tests.create(args.project_id, args.payload), EXIT_OK


async def update_test(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    tests = TestRepository(client=client)
    return await tests.update(args.test_id, args.payload), EXIT_OK


async def prepare(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    preparer = BatchPreparer.from_client(client)
    batch = await preparer.prepare(
        args.project_id, expression=args.filter, test_ids=args.test_ids
    )
    log_batch_summary(log, batch)
    return batch, EXIT_OK


async def sweep(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    if args.remote:
        tests = await ProjectRepository(client=client).sweep(
            args.project_id, pages=args.pages or (), url_pattern=args.url_pattern
        )
    else:
        tests = await SweepAnalyzer.from_client(client).sweep(
            args.project_id, pages=args.pages, url_pattern=args.url_pattern
        )
    return tests, EXIT_OK


async def start_run(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    lifecycle = RunLifecycle(runs=RunRepository(client=client))
    return await lifecycle.start(args.test_id), EXIT_OK


async def complete_run(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    lifecycle = RunLifecycle(runs=RunRepository(client=client))
    run = await lifecycle.complete(args.run_id, args.status, args.result)
    return run, EXIT_OK


async def complete_batch(
    client: ApiClient, args: argparse.Namespace
) -> tuple[Any, int]:
    lifecycle = RunLifecycle(runs=RunRepository(client=client))
    outcomes = await lifecycle.complete_batch(args.entries)
    output = format_completions(outcomes)
    return output, EXIT_FAILURE if output["failed"] else EXIT_OK


async def get_run(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await RunRepository(client=client).get(args.run_id), EXIT_OK


async def list_runs(client: ApiClient, args: argparse.Namespace) -> tuple[Any, int]:
    return await RunRepository(client=client).list(args.test_id), EXIT_OK


COMMANDS: Mapping[str, Handler] = {
    "list-projects": list_projects,
    "get-project": get_project,
    "create-project": create_project,
    "update-project": update_project,
    "list-pages": list_pages,
    "create-page": create_page,
    "list-tests": list_tests,
    "get-test": get_test,
    "create-test": create_test,
    "update-test": update_test,
    "prepare": prepare,
    "sweep": sweep,
    "start-run": start_run,
    "complete-run": complete_run,
    "complete-batch": complete_batch,
    "get-run": get_run,
    "list-runs": list_runs,
}


async def run(config: ApiConfig, args: argparse.Namespace) -> int:
    """Run one command against the API, print its JSON result and return exit code."""
    handler = COMMANDS[args.command]

    try:
        async with ApiClient.from_config(config) as client:
            output, exit_code = await handler(client, args)
    except AuthenticationError as exc:
        log.error("API token rejected: %s", exc)
        return EXIT_CONFIG
    except BatchPreparationError as exc:
        log.error("%s", exc)
        if exc.started_run_ids:
            log.error("Runs left in running state: %s", ", ".join(exc.started_run_ids))
        return EXIT_FAILURE
    except GreenrunError as exc:
        log.error("%s", exc)
        return EXIT_FAILURE

    print(json.dumps(to_jsonable_python(output), indent=2))
    return exit_code


def add_project_options(sub: argparse.ArgumentParser) -> None:
    """Add the optional project fields shared by create and update."""
    sub.add_argument("--base-url", help="Base URL of the site under test")
    sub.add_argument("--description", help="Project description")
    sub.add_argument(
        "--auth-mode",
        choices=["none", "existing_user", "new_user"],
        help="How to authenticate before tests",
    )
    sub.add_argument("--login-url", help="URL of the login page")
    sub.add_argument("--register-url", help="URL of the registration page")
    sub.add_argument("--login-instructions", help="Steps to log in")
    sub.add_argument("--register-instructions", help="Steps to register a new user")
    sub.add_argument(
        "--credentials",
        help="JSON list of {name, email, password}, a file path, or - for stdin",
    )
    sub.add_argument("--concurrency", type=int, help="Parallel test limit")


def add_test_options(sub: argparse.ArgumentParser) -> None:
    """Add the optional test fields shared by create and update."""
    sub.add_argument(
        "--page-id",
        dest="page_ids",
        action="append",
        help="UUID of a page the test covers (repeatable, replaces existing)",
    )
    sub.add_argument("--status", choices=["draft", "active", "archived"])
    sub.add_argument(
        "--tag",
        dest="tags",
        action="append",
        help="Tag name (repeatable, replaces existing)",
    )
    sub.add_argument("--credential-name", help="Project credential set to log in with")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        description="Prepare, run-track and analyze Greenrun browser test batches"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list-projects", help="List all projects")

    for name, help_text in (
        ("get-project", "Get project details"),
        ("list-pages", "List pages in a project"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("project_id", help="Project UUID")

    sub = commands.add_parser(
        "create-project", help="Create a project", argument_default=argparse.SUPPRESS
    )
    sub.add_argument("name", help="Project name")
    add_project_options(sub)

    sub = commands.add_parser(
        "update-project",
        help="Update a project, sending only the options given",
        argument_default=argparse.SUPPRESS,
    )
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument("--name", help="Project name")
    add_project_options(sub)

    sub = commands.add_parser(
        "create-page",
        help="Register a page in a project",
        argument_default=argparse.SUPPRESS,
    )
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument("url", help="Page URL, absolute or relative to the base URL")
    sub.add_argument("--name", help="Human-friendly page name")

    sub = commands.add_parser("list-tests", help="List tests in a project")
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument(
        "--compact",
        action="store_true",
        help="Omit instructions and scripts",
    )

    for name, help_text in (
        ("get-test", "Get test details"),
        ("start-run", "Start a run for a test"),
        ("list-runs", "List run history for a test (newest first)"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("test_id", help="Test UUID")

    sub = commands.add_parser(
        "create-test",
        help="Store a new test in a project",
        argument_default=argparse.SUPPRESS,
    )
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument("name", help='Test name (e.g. "User can log in")')
    sub.add_argument("instructions", help="Test instructions as plain text")
    add_test_options(sub)

    sub = commands.add_parser(
        "update-test",
        help="Update a test, sending only the options given",
        argument_default=argparse.SUPPRESS,
    )
    sub.add_argument("test_id", help="Test UUID")
    sub.add_argument("--name", help="Test name")
    sub.add_argument("--instructions", help="Test instructions")
    add_test_options(sub)
    sub.add_argument("--script", help="Generated Playwright script")
    sub.add_argument(
        "--script-generated-at", help="ISO timestamp the script was generated at"
    )
    sub.add_argument(
        "--clear",
        action="append",
        choices=CLEARABLE_TEST_FIELDS,
        help="Set a field to null (repeatable)",
    )

    sub = commands.add_parser(
        "prepare",
        help="Filter tests, start a run for each and print the batch",
    )
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument(
        "--filter",
        help='"tag:xxx" for a tag, "/path" for a page URL, or name text',
    )
    sub.add_argument(
        "--test-id",
        dest="test_ids",
        action="append",
        help="Specific test UUID to run (repeatable, overrides --filter)",
    )

    sub = commands.add_parser("sweep", help="Find tests affected by changed pages")
    sub.add_argument("project_id", help="Project UUID")
    sub.add_argument(
        "--page",
        dest="pages",
        action="append",
        help="Exact page URL (repeatable)",
    )
    sub.add_argument("--url-pattern", help="Glob URL pattern (e.g. /checkout*)")
    sub.add_argument(
        "--remote",
        action="store_true",
        help="Use the service's sweep endpoint instead of matching locally",
    )

    sub = commands.add_parser("complete-run", help="Record the result of a run")
    sub.add_argument("run_id", help="Run UUID")
    sub.add_argument("--status", required=True, choices=["passed", "failed", "error"])
    sub.add_argument("--result", help="Summary of what happened during the run")

    sub = commands.add_parser(
        "complete-batch",
        help="Record results of many runs from a JSON list of {run_id, status, result}",
    )
    sub.add_argument("source", help="JSON file path, or - for stdin")

    sub = commands.add_parser("get-run", help="Get details of a run")
    sub.add_argument("run_id", help="Run UUID")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "sweep" and not args.pages and not args.url_pattern:
        parser.error("sweep requires --page or --url-pattern")

    if args.command == "complete-batch":
        try:
            args.entries = load_completions(args.source)
        except (OSError, ValidationError) as exc:
            parser.error(f"cannot read completions from {args.source}: {exc}")

    if args.command in PAYLOADS:
        try:
            args.payload = build_payload(args)
        except (OSError, ValueError) as exc:
            parser.error(f"invalid {args.command} options: {exc}")

    try:
        config = ApiConfig.from_env()
    except ConfigurationError as exc:
        log.error("%s", exc)
        sys.exit(EXIT_CONFIG)

    sys.exit(asyncio.run(run(config, args)))


if __name__ == "__main__":  # pragma: no cover
    main()
