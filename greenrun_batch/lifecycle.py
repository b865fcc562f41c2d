"""Run state machine: running -> passed | failed | error, exactly once."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from greenrun_batch.errors import ApiError, RunAlreadyCompletedError
from greenrun_batch.models.batch import CompletionOutcome, RunCompletion
from greenrun_batch.models.entities import TERMINAL_STATUSES, Run, TerminalStatus
from greenrun_batch.repositories import RunRepository

log = logging.getLogger(__name__)

CONFLICT = 409


def is_replay(run: Run, status: str, result: str | None) -> bool:
    """Whether completing ``run`` again would record exactly what it already has."""
    return run.status == status and run.result == result


@dataclass(frozen=True, kw_only=True)
class RunLifecycle:
    """Starts runs and records their single terminal outcome."""

    runs: RunRepository

    async def start(self, test_id: str) -> Run:
        """Create a new run in ``running`` state.

        In-flight runs of the same test are not checked; concurrent runs
        are allowed.
        """
        return await self.runs.start(test_id)

    async def complete(
        self,
        run_id: str,
        status: TerminalStatus,
        result: str | None = None,
    ) -> Run:
        """Record the terminal status of a run.

        Replaying an identical completion returns the stored run unchanged.

        Raises:
            ValueError: If ``status`` is not a terminal status
            RunAlreadyCompletedError: If the run already ended differently

        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Cannot complete run with non-terminal status {status!r}")

        current = await self.runs.get(run_id)
        if current.is_terminal:
            if is_replay(current, status, result):
                log.info("Run %s already recorded as %s", run_id, status)
                return current
            raise RunAlreadyCompletedError(
                run_id=run_id,
                current_status=current.status,
                requested_status=status,
            )

        try:
            run = await self.runs.complete(run_id, status=status, result=result)
        except ApiError as exc:
            if exc.status == CONFLICT:
                raise RunAlreadyCompletedError(
                    run_id=run_id, current_status=None, requested_status=status
                ) from exc
            raise

        log.info("Run %s completed with status=%s", run_id, status)
        return run

    async def complete_batch(
        self, entries: Sequence[RunCompletion]
    ) -> Sequence[CompletionOutcome]:
        """Record many completions with one write request.

        Each entry is judged on its own: a replayed or conflicting entry,
        or one the service rejects, does not affect the others.

        Returns:
            One outcome per entry, in input order

        """
        if not entries:
            return []

        run_ids = list(dict.fromkeys(entry.run_id for entry in entries))
        fetched = await asyncio.gather(
            *(self.runs.get(run_id) for run_id in run_ids), return_exceptions=True
        )
        current = dict(zip(run_ids, fetched, strict=True))

        first_entries: dict[str, RunCompletion] = {}
        resolved: dict[str, CompletionOutcome] = {}
        duplicates: dict[int, CompletionOutcome] = {}
        pending: list[RunCompletion] = []

        for index, entry in enumerate(entries):
            first = first_entries.setdefault(entry.run_id, entry)
            if first is not entry:
                if (first.status, first.result) != (entry.status, entry.result):
                    duplicates[index] = CompletionOutcome(
                        run_id=entry.run_id,
                        error=f"Conflicting completion for run {entry.run_id} "
                        "in the same batch",
                    )
                continue

            state = current[entry.run_id]
            if isinstance(state, Exception):
                resolved[entry.run_id] = CompletionOutcome(
                    run_id=entry.run_id, error=str(state)
                )
            elif isinstance(state, BaseException):
                raise state
            elif state.is_terminal:
                if is_replay(state, entry.status, entry.result):
                    resolved[entry.run_id] = CompletionOutcome(
                        run_id=entry.run_id, run=state
                    )
                else:
                    resolved[entry.run_id] = CompletionOutcome(
                        run_id=entry.run_id,
                        error=str(
                            RunAlreadyCompletedError(
                                run_id=entry.run_id,
                                current_status=state.status,
                                requested_status=entry.status,
                            )
                        ),
                    )
            else:
                pending.append(entry)

        if pending:
            log.info("Completing %d run(s) in one request", len(pending))
            reported = {
                outcome.run_id: outcome
                for outcome in await self.runs.complete_many(pending)
            }
            for entry in pending:
                resolved[entry.run_id] = reported.get(
                    entry.run_id,
                    CompletionOutcome(
                        run_id=entry.run_id,
                        error="No result reported for run",
                    ),
                )

        outcomes = [
            duplicates.get(index, resolved[entry.run_id])
            for index, entry in enumerate(entries)
        ]
        for outcome in outcomes:
            if not outcome.ok:
                log.warning("Run %s not completed: %s", outcome.run_id, outcome.error)
        return outcomes
