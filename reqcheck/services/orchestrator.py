"""Analysis orchestrator: the entry point for requirement contradiction analysis.

Composes PairEnumerator -> SimilarityGate -> ContradictionClassifier ->
ResultStore -> TaskCoordinator into two modes:

- Synchronous: sweep inline and return contradictions directly.
- Asynchronous: create an AnalysisTask, return its ID immediately, and sweep
  in a background asyncio task that reports progress through the task row.

Provider calls are issued one at a time. Per-pair provider errors are
counted, never raised; once the count exceeds the ceiling the rest of the
sweep is abandoned.

Concurrent runs for one project:
- Every run takes a new run version for its project. Result writes
  (delete-all and insert) from a run whose version is no longer the
  latest are discarded.
- Starting a new background run signals the previous run's cancel token;
  the old run stops at the next pair and finalizes its task with a
  "superseded" error.
- Task creation and version assignment happen under a per-project lock,
  so the current task is always the run that owns the stored rows.
- An inline run for a project with a background run still in flight leaves
  that run alone and returns its findings without persisting them.
"""

import asyncio
import functools
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import structlog

from reqcheck.core.config import get_settings
from reqcheck.core.correlation import bind_run_context, get_correlation_id
from reqcheck.core.logging import truncate_for_log
from reqcheck.engines.contradiction.classifier import (
    ClassificationResult,
    ContradictionClassifier,
)
from reqcheck.engines.contradiction.pairs import ComparisonPair, PairEnumerator
from reqcheck.engines.contradiction.scoring_client import ProviderError
from reqcheck.engines.contradiction.similarity import GateDecision, SimilarityGate
from reqcheck.models.analysis import (
    AnalysisOptions,
    AnalysisResponse,
    ComparisonResultCreate,
    ContradictionResult,
    RequirementInfo,
    RequirementText,
    TaskStatus,
    TaskStatusResponse,
)
from reqcheck.services.result_store import PersistenceError, ResultStore
from reqcheck.services.task_coordinator import TaskCoordinator

logger = structlog.get_logger(__name__)


SUPERSEDED_ERROR = "Superseded by a newer analysis run"
RUN_HISTORY_LIMIT = 20  # Finished run handles kept for get_run()

ResultCallback = Callable[
    [ComparisonPair, GateDecision, ClassificationResult, bool], Awaitable[None]
]
ProgressCallback = Callable[[int, ComparisonPair], Awaitable[None]]


# =============================================================================
# Exceptions
# =============================================================================


class AnalysisValidationError(Exception):
    """Raised when an analysis request is rejected before any run starts."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# =============================================================================
# Run State
# =============================================================================


@dataclass
class SweepOutcome:
    """Counters and findings from one pass over the pairs."""

    total: int
    completed: int = 0
    nli_checks: int = 0
    provider_calls: int = 0
    provider_errors: int = 0
    aborted: bool = False
    cancelled: bool = False
    contradictions: list[ContradictionResult] = field(default_factory=list)

    def error_summary(self) -> str | None:
        parts: list[str] = []
        if self.cancelled:
            parts.append(SUPERSEDED_ERROR)
        if self.provider_errors:
            message = f"Encountered {self.provider_errors} API errors during analysis"
            if self.aborted:
                message += (
                    f"; stopped early after {self.completed} of {self.total} comparisons"
                )
            parts.append(message)
        return "; ".join(parts) or None


@dataclass
class AnalysisRun:
    """Handle on one background analysis run.

    ``future`` is the asyncio task executing the sweep; ``error`` receives
    any exception that escaped it. ``cancel_event`` asks the sweep to stop
    before its next pair. Once the run finishes the future is released so a
    finished handle no longer holds the sweep's findings.
    """

    task_id: str
    project_id: str
    version: int
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    future: asyncio.Task | None = None
    error: BaseException | None = None
    finished: bool = False

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def done(self) -> bool:
        return self.finished or (self.future is not None and self.future.done())


# =============================================================================
# Orchestrator
# =============================================================================


class AnalysisOrchestrator:
    """Run requirement contradiction analysis synchronously or in the background.

    Example:
        >>> orchestrator = AnalysisOrchestrator(gate, classifier, results, coordinator)
        >>> response = await orchestrator.analyze(
        ...     ["The system shall allow refunds within 30 days of purchase.",
        ...      "The system shall not allow any refunds under any circumstances."],
        ... )
        >>> len(response.contradictions)
        1
    """

    def __init__(
        self,
        gate: SimilarityGate,
        classifier: ContradictionClassifier,
        results: ResultStore,
        coordinator: TaskCoordinator,
        max_provider_errors: int | None = None,
        min_requirement_length: int | None = None,
    ) -> None:
        settings = get_settings()
        self.gate = gate
        self.classifier = classifier
        self.results = results
        self.coordinator = coordinator
        self.max_provider_errors = (
            max_provider_errors
            if max_provider_errors is not None
            else settings.contradiction_max_provider_errors
        )
        self.min_requirement_length = (
            min_requirement_length
            if min_requirement_length is not None
            else settings.contradiction_min_requirement_length
        )
        self._run_versions: dict[str, int] = {}
        self._project_locks: dict[str, asyncio.Lock] = {}
        self._latest_runs: dict[str, AnalysisRun] = {}
        self._live_runs: dict[str, AnalysisRun] = {}
        self._finished_runs: OrderedDict[str, AnalysisRun] = OrderedDict()

    # =========================================================================
    # Public API
    # =========================================================================

    @staticmethod
    def default_options(
        similarity_threshold: float | None = None,
        nli_threshold: float | None = None,
        max_requirements: int | None = None,
    ) -> AnalysisOptions:
        """Build run options from settings, applying any per-request overrides."""
        settings = get_settings()
        return AnalysisOptions(
            similarity_threshold=(
                similarity_threshold
                if similarity_threshold is not None
                else settings.contradiction_similarity_threshold
            ),
            nli_threshold=(
                nli_threshold if nli_threshold is not None else settings.contradiction_nli_threshold
            ),
            max_requirements=(
                max_requirements
                if max_requirements is not None
                else settings.contradiction_max_requirements
            ),
        )

    async def analyze(
        self,
        requirements: Sequence[str | RequirementText],
        project_id: str | None = None,
        run_async: bool = False,
        options: AnalysisOptions | None = None,
    ) -> AnalysisResponse:
        """Analyze requirements for pairwise contradictions.

        Args:
            requirements: Requirement statements in input order.
            project_id: Project the requirements belong to. Required for
                background runs and for persisting results.
            run_async: Start a background run and return its task handle.
            options: Thresholds for this run (settings defaults otherwise).

        Returns:
            AnalysisResponse with contradictions (sync) or a task handle (async).

        Raises:
            AnalysisValidationError: If fewer than 2 requirements are given.
        """
        options = options or self.default_options()
        items = [
            r if isinstance(r, RequirementText) else RequirementText(text=r)
            for r in requirements
        ]

        if len(items) < 2:
            raise AnalysisValidationError(
                f"At least 2 requirements are needed for contradiction analysis, got {len(items)}"
            )

        if len(items) > options.max_requirements:
            logger.warning(
                "requirements_truncated",
                project_id=project_id,
                received=len(items),
                analyzed=options.max_requirements,
                excluded=len(items) - options.max_requirements,
            )

        if run_async and project_id:
            return await self._start_async_analysis(items, project_id, options)

        if run_async:
            logger.info("async_analysis_without_project_running_sync", count=len(items))

        return await self._run_sync_analysis(items, project_id, options)

    async def get_status(self, task_id: str) -> TaskStatusResponse:
        """Polling view of a task (raises TaskNotFoundError when unknown)."""
        return await self.coordinator.get_status(task_id)

    async def get_stored_results(self, project_id: str) -> AnalysisResponse:
        """Rebuild an AnalysisResponse from the project's persisted rows."""
        rows = await self.results.list_results(project_id)
        current_task = await self.coordinator.get_current_task(project_id)

        contradictions = [
            ContradictionResult(
                requirement1=RequirementInfo(
                    index=-1, text=row.requirement_text_1, id=row.requirement_id_1
                ),
                requirement2=RequirementInfo(
                    index=-1, text=row.requirement_text_2, id=row.requirement_id_2
                ),
                similarity_score=row.similarity_score,
                nli_contradiction_score=row.contradiction_score,
            )
            for row in rows
            if row.is_contradiction
        ]

        return AnalysisResponse(
            contradictions=contradictions,
            processing_time_seconds=0.0,
            comparisons_made=len(rows),
            nli_checks_made=len(rows),
            is_complete=current_task is not None and current_task.status == TaskStatus.COMPLETED,
            task_id=current_task.id if current_task else None,
            project_id=project_id,
            errors=current_task.error if current_task else None,
        )

    @property
    def active_runs(self) -> list[AnalysisRun]:
        """Background runs that have not finished yet."""
        return list(self._live_runs.values())

    def get_run(self, task_id: str) -> AnalysisRun | None:
        """Handle of a live run, or of one of the most recently finished runs."""
        return self._live_runs.get(task_id) or self._finished_runs.get(task_id)

    async def wait_for_task(self, task_id: str) -> None:
        """Wait until the background run for ``task_id`` has finished."""
        run = self._live_runs.get(task_id)
        if run is None or run.future is None:
            return
        await asyncio.gather(run.future, return_exceptions=True)

    async def shutdown(self) -> None:
        """Signal every running sweep to stop and wait for them to finalize."""
        pending = [run for run in self._live_runs.values() if not run.done]
        for run in pending:
            run.cancel()
        if pending:
            await asyncio.gather(
                *(run.future for run in pending if run.future is not None),
                return_exceptions=True,
            )
        logger.info("analysis_orchestrator_shutdown", stopped_runs=len(pending))

    # =========================================================================
    # Run Versioning
    # =========================================================================

    def _project_lock(self, project_id: str) -> asyncio.Lock:
        """Lock serializing run registration for one project."""
        return self._project_locks.setdefault(project_id, asyncio.Lock())

    def _live_run(self, project_id: str) -> AnalysisRun | None:
        run = self._latest_runs.get(project_id)
        if run is None or run.done:
            return None
        return run

    def _next_run_version(self, project_id: str) -> int:
        """Take a new run version and signal any older background run to stop."""
        version = self._run_versions.get(project_id, 0) + 1
        self._run_versions[project_id] = version

        previous = self._latest_runs.get(project_id)
        if previous is not None and not previous.done:
            previous.cancel()
            logger.info(
                "analysis_run_superseded",
                project_id=project_id,
                superseded_task_id=previous.task_id,
            )
        return version

    def _is_latest(self, project_id: str, version: int) -> bool:
        return self._run_versions.get(project_id) == version

    async def _replace_results(self, project_id: str, version: int) -> None:
        if not self._is_latest(project_id, version):
            logger.warning("stale_run_delete_discarded", project_id=project_id, version=version)
            return
        await self.results.delete_all_results(project_id)

    async def _write_result(self, row: ComparisonResultCreate, version: int) -> None:
        if not self._is_latest(row.project_id, version):
            logger.warning(
                "stale_run_write_discarded",
                project_id=row.project_id,
                version=version,
            )
            return
        await self.results.create_result(row)

    # =========================================================================
    # Pair Sweep
    # =========================================================================

    async def _resolve_requirement_ids(
        self,
        project_id: str | None,
        requirements: list[RequirementText],
    ) -> list[RequirementText]:
        """Fill in missing requirement IDs by exact text match within the project."""
        if not project_id or all(r.id for r in requirements):
            return requirements

        stored = await self.results.list_requirements(project_id)
        ids_by_text: dict[str, str] = {}
        for requirement in stored:
            ids_by_text.setdefault(requirement.text, requirement.id)

        return [
            r if r.id else RequirementText(text=r.text, id=ids_by_text.get(r.text))
            for r in requirements
        ]

    def _contradiction_result(
        self,
        pair: ComparisonPair,
        decision: GateDecision,
        classification: ClassificationResult,
    ) -> ContradictionResult:
        return ContradictionResult(
            requirement1=RequirementInfo(
                index=pair.i, text=pair.requirement_a.text, id=pair.requirement_a.id
            ),
            requirement2=RequirementInfo(
                index=pair.j, text=pair.requirement_b.text, id=pair.requirement_b.id
            ),
            similarity_score=decision.similarity,
            nli_contradiction_score=classification.contradiction_score,
            model_used=classification.provider,
        )

    async def _sweep(
        self,
        enumerator: PairEnumerator,
        options: AnalysisOptions,
        on_result: ResultCallback | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SweepOutcome:
        """Visit every pair once, gate it, classify it, and report it.

        Provider errors are counted per pair. Anything raised by the
        callbacks (e.g. PersistenceError) propagates to the caller.
        """
        outcome = SweepOutcome(total=enumerator.total_pairs)

        for pair in enumerator:
            if outcome.provider_errors > self.max_provider_errors:
                outcome.aborted = True
                logger.warning(
                    "analysis_error_ceiling_reached",
                    provider_errors=outcome.provider_errors,
                    completed=outcome.completed,
                    total=outcome.total,
                )
                break

            if cancel_event is not None and cancel_event.is_set():
                outcome.cancelled = True
                logger.info("analysis_sweep_cancelled", completed=outcome.completed)
                break

            if not pair.skipped:
                await self._evaluate_pair(pair, options, outcome, on_result, on_progress)

            outcome.completed += 1
            if on_progress is not None:
                await on_progress(outcome.completed, pair)

        return outcome

    async def _evaluate_pair(
        self,
        pair: ComparisonPair,
        options: AnalysisOptions,
        outcome: SweepOutcome,
        on_result: ResultCallback | None,
        on_progress: ProgressCallback | None,
    ) -> None:
        text_a = pair.requirement_a.text
        text_b = pair.requirement_b.text

        if on_progress is not None:
            await on_progress(outcome.completed, pair)

        try:
            decision = await self.gate.evaluate(text_a, text_b, options.similarity_threshold)
            outcome.provider_calls += 1

            if decision.similarity <= 0:
                outcome.provider_errors += 1
                logger.warning("similarity_zero_counted_as_error", pair=pair.pair_key)
                return

            if not decision.admitted:
                return

            logger.debug(
                "checking_contradiction",
                pair=pair.pair_key,
                requirement_1=truncate_for_log(text_a),
                requirement_2=truncate_for_log(text_b),
            )
            outcome.provider_calls += 1
            classification = await self.classifier.classify(text_a, text_b)
            outcome.nli_checks += 1
        except ProviderError as e:
            outcome.provider_errors += 1
            logger.warning(
                "pair_analysis_provider_error",
                pair=pair.pair_key,
                code=e.code,
                error=e.message,
                provider_errors=outcome.provider_errors,
            )
            return

        contradiction = classification.is_contradiction(options.nli_threshold)
        if contradiction:
            outcome.contradictions.append(
                self._contradiction_result(pair, decision, classification)
            )
            logger.info(
                "contradiction_found",
                pair=pair.pair_key,
                score=round(classification.contradiction_score, 3),
            )

        if on_result is not None:
            await on_result(pair, decision, classification, contradiction)

    def _comparison_row(
        self,
        project_id: str,
        pair: ComparisonPair,
        decision: GateDecision,
        classification: ClassificationResult,
        contradiction: bool,
    ) -> ComparisonResultCreate:
        return ComparisonResultCreate(
            project_id=project_id,
            requirement_id_1=pair.requirement_a.id,
            requirement_id_2=pair.requirement_b.id,
            requirement_text_1=pair.requirement_a.text,
            requirement_text_2=pair.requirement_b.text,
            similarity_score=min(1.0, max(0.0, decision.similarity)),
            contradiction_score=classification.contradiction_score,
            is_contradiction=contradiction,
        )

    # =========================================================================
    # Synchronous Mode
    # =========================================================================

    async def _run_sync_analysis(
        self,
        requirements: list[RequirementText],
        project_id: str | None,
        options: AnalysisOptions,
    ) -> AnalysisResponse:
        start_time = time.time()
        persistence_errors: list[str] = []
        persist = project_id is not None
        version = 0

        if project_id:
            async with self._project_lock(project_id):
                live = self._live_run(project_id)
                if live is None:
                    version = self._next_run_version(project_id)

            if live is not None:
                # The background run owns the project's rows and current task
                logger.warning(
                    "sync_analysis_not_persisted",
                    project_id=project_id,
                    running_task_id=live.task_id,
                )
                persistence_errors.append(
                    f"Results not persisted: analysis task {live.task_id} "
                    "is still running for this project"
                )
                persist = False

        if project_id:
            try:
                requirements = await self._resolve_requirement_ids(project_id, requirements)
                if persist:
                    await self._replace_results(project_id, version)
            except PersistenceError as e:
                logger.error("sync_analysis_persistence_failed", project_id=project_id, error=e.message)
                persistence_errors.append(f"Failed to persist results: {e.message}")
                persist = False

        async def store_result(
            pair: ComparisonPair,
            decision: GateDecision,
            classification: ClassificationResult,
            contradiction: bool,
        ) -> None:
            nonlocal persist
            if not persist:
                return
            row = self._comparison_row(project_id, pair, decision, classification, contradiction)
            try:
                await self._write_result(row, version)
            except PersistenceError as e:
                logger.error("sync_analysis_persistence_failed", project_id=project_id, error=e.message)
                persistence_errors.append(f"Failed to persist results: {e.message}")
                persist = False

        enumerator = PairEnumerator(
            requirements,
            max_requirements=options.max_requirements,
            min_length=self.min_requirement_length,
        )
        outcome = await self._sweep(enumerator, options, on_result=store_result)
        processing_time = time.time() - start_time

        errors = [e for e in [outcome.error_summary(), *persistence_errors] if e]

        logger.info(
            "sync_analysis_complete",
            project_id=project_id,
            contradictions=len(outcome.contradictions),
            comparisons=outcome.completed,
            nli_checks=outcome.nli_checks,
            provider_errors=outcome.provider_errors,
            processing_time_seconds=round(processing_time, 2),
        )

        return AnalysisResponse(
            contradictions=outcome.contradictions,
            processing_time_seconds=processing_time,
            comparisons_made=outcome.completed,
            nli_checks_made=outcome.nli_checks,
            provider_calls_made=outcome.provider_calls,
            errors="; ".join(errors) if errors else None,
            is_complete=True,
            project_id=project_id,
            excluded_requirements=enumerator.excluded_count,
        )

    # =========================================================================
    # Asynchronous Mode
    # =========================================================================

    async def _start_async_analysis(
        self,
        requirements: list[RequirementText],
        project_id: str,
        options: AnalysisOptions,
    ) -> AnalysisResponse:
        enumerator = PairEnumerator(
            requirements,
            max_requirements=options.max_requirements,
            min_length=self.min_requirement_length,
        )
        # Task creation order decides isCurrent; the run version must follow it
        async with self._project_lock(project_id):
            task = await self.coordinator.create_task(project_id, enumerator.total_pairs)

            run = AnalysisRun(
                task_id=task.id,
                project_id=project_id,
                version=self._next_run_version(project_id),
            )
            self._latest_runs[project_id] = run
            self._live_runs[task.id] = run

            run.future = asyncio.create_task(
                self._execute_async_run(run, requirements, options, get_correlation_id())
            )
            run.future.add_done_callback(functools.partial(self._on_run_done, run))

        return AnalysisResponse(
            is_complete=False,
            task_id=task.id,
            project_id=project_id,
            excluded_requirements=enumerator.excluded_count,
        )

    async def _execute_async_run(
        self,
        run: AnalysisRun,
        requirements: list[RequirementText],
        options: AnalysisOptions,
        correlation_id: str | None,
    ) -> SweepOutcome:
        bind_run_context(run.task_id, run.project_id, correlation_id)
        start_time = time.time()

        try:
            await self.coordinator.mark_processing(run.task_id)
            await self._replace_results(run.project_id, run.version)

            requirements = await self._resolve_requirement_ids(run.project_id, requirements)
            enumerator = PairEnumerator(
                requirements,
                max_requirements=options.max_requirements,
                min_length=self.min_requirement_length,
            )
            total = enumerator.total_pairs

            async def store_result(
                pair: ComparisonPair,
                decision: GateDecision,
                classification: ClassificationResult,
                contradiction: bool,
            ) -> None:
                row = self._comparison_row(
                    run.project_id, pair, decision, classification, contradiction
                )
                await self._write_result(row, run.version)

            async def report_progress(completed: int, pair: ComparisonPair) -> None:
                await self.coordinator.record_progress(
                    run.task_id, completed=completed, total=total, pair=pair.pair_key
                )

            outcome = await self._sweep(
                enumerator,
                options,
                on_result=store_result,
                on_progress=report_progress,
                cancel_event=run.cancel_event,
            )

            await self.coordinator.complete(
                run.task_id,
                completed=outcome.completed,
                total=total,
                error=outcome.error_summary(),
            )

            logger.info(
                "async_analysis_complete",
                contradictions=len(outcome.contradictions),
                comparisons=outcome.completed,
                nli_checks=outcome.nli_checks,
                provider_calls=outcome.provider_calls,
                processing_time_seconds=round(time.time() - start_time, 2),
            )
            return outcome

        except Exception as e:
            logger.exception("async_analysis_failed", error=str(e))
            try:
                await self.coordinator.fail(run.task_id, f"Analysis failed: {e}")
            except Exception as fail_error:
                logger.error("async_analysis_fail_status_not_saved", error=str(fail_error))
            raise

    def _on_run_done(self, run: AnalysisRun, future: asyncio.Task) -> None:
        """Record the outcome of a background run and retire its handle.

        Retrieves the task exception so it is never reported as unretrieved.
        Only the last RUN_HISTORY_LIMIT finished handles are kept.
        """
        if future.cancelled():
            logger.warning("async_analysis_task_cancelled", task_id=run.task_id)
        else:
            run.error = future.exception()

        run.finished = True
        run.future = None

        self._live_runs.pop(run.task_id, None)
        if self._latest_runs.get(run.project_id) is run:
            del self._latest_runs[run.project_id]

        self._finished_runs[run.task_id] = run
        while len(self._finished_runs) > RUN_HISTORY_LIMIT:
            self._finished_runs.popitem(last=False)
