"""
dod-gate — check executor

Purpose
- Resolve the profile's check set against the registry, order it into
  dependency waves, and run each wave under a bounded worker pool.

Functional requirements
- Configuration problems (unknown ids, unregistered dependencies, cycles)
  raise before any check runs.
- The registry is frozen once a run starts.
- Per-check errors and timeouts become Fail results; the batch always
  completes.
- A dependent of a fatal failure is skipped without being invoked, and the
  skip cascades to its own dependents.
- Output is wave-concatenated, registration-ordered within a wave, and every
  result carries its content hash.

Non-functional requirements
- Synchronous checks run on their own daemon thread so the per-check timeout
  bounds them too. A timed-out thread is abandoned; it holds no shared pool
  slot and nothing joins it on loop shutdown.
- ``asyncio.CancelledError`` always propagates.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Final

import structlog

from dod_gate.audit.receipt import hash_check_result
from dod_gate.checks.base import CheckContext, CheckRegistry, DodCheck, build_result, should_skip
from dod_gate.config.profile import DodProfile
from dod_gate.domain.models import CheckStatus, DodCheckResult
from dod_gate.errors import DependencyCycleError, UnknownCheckError
from dod_gate.observability.events import EventBus, ExecutorEvent, ExecutorEventType
from dod_gate.utils.concurrency import WorkerPool, run_in_daemon_thread, run_with_timeout

logger = structlog.get_logger(__name__)

_MS_PER_SECOND: Final[float] = 1000.0


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Resolved working set: checks in registry order, in-set dependencies, and waves."""

    checks: tuple[DodCheck, ...]
    dependencies: Mapping[str, tuple[str, ...]]
    waves: tuple[tuple[str, ...], ...]

    @property
    def check_ids(self) -> tuple[str, ...]:
        return tuple(check.id for check in self.checks)


@dataclass(frozen=True, slots=True)
class _Outcome:
    result: DodCheckResult
    timed_out: bool = False


class CheckExecutor:
    """Run a profile's checks against one registry."""

    def __init__(
        self,
        registry: CheckRegistry,
        profile: DodProfile,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._profile = profile
        self._event_bus = event_bus

    @property
    def registry(self) -> CheckRegistry:
        return self._registry

    @property
    def profile(self) -> DodProfile:
        return self._profile

    def plan(self) -> ExecutionPlan:
        """Resolve the working set and its waves; raises on any configuration error."""

        enabled = self._profile.enabled_check_ids()
        for check_id in (*self._profile.required_checks, *self._profile.optional_checks):
            if check_id not in self._registry:
                raise UnknownCheckError(check_id, referenced_by=f"profile {self._profile.name}")

        checks = tuple(check for check in self._registry if check.id in enabled)
        dependencies: dict[str, tuple[str, ...]] = {}
        for check in checks:
            in_set: list[str] = []
            for dependency in check.dependencies:
                if dependency not in self._registry:
                    raise UnknownCheckError(dependency, referenced_by=check.id)
                if dependency not in enabled:
                    logger.warning(
                        "dependency_outside_working_set",
                        check_id=check.id,
                        dependency=dependency,
                        profile=self._profile.name,
                    )
                    continue
                if dependency not in in_set:
                    in_set.append(dependency)
            dependencies[check.id] = tuple(in_set)

        waves = _build_execution_waves([check.id for check in checks], dependencies)
        return ExecutionPlan(checks=checks, dependencies=dependencies, waves=waves)

    async def execute_all(self, context: CheckContext) -> list[DodCheckResult]:
        plan = self.plan()
        self._registry.freeze()
        if not plan.checks:
            logger.warning("no_enabled_checks", profile=self._profile.name)
            return []

        start = time.perf_counter()
        workers = self._profile.parallelism.worker_count()
        logger.info(
            "check_run_started",
            profile=self._profile.name,
            checks=len(plan.checks),
            waves=len(plan.waves),
            workers=workers,
        )
        await self._publish(
            ExecutorEventType.RUN_STARTED,
            payload={
                "profile": self._profile.name,
                "checks": list(plan.check_ids),
                "waves": len(plan.waves),
            },
        )

        checks_by_id = {check.id: check for check in plan.checks}
        settled: dict[str, DodCheckResult] = {}
        dependency_skipped: set[str] = set()
        ordered: list[DodCheckResult] = []

        for index, wave in enumerate(plan.waves):
            await self._publish(
                ExecutorEventType.WAVE_STARTED,
                payload={"index": index, "checks": list(wave)},
            )
            runnable: list[DodCheck] = []
            wave_results: dict[str, DodCheckResult] = {}
            for check_id in wave:
                check = checks_by_id[check_id]
                skipped = self._dependency_skip(
                    check, plan.dependencies[check_id], settled, dependency_skipped
                )
                if skipped is not None:
                    dependency_skipped.add(check_id)
                    wave_results[check_id] = skipped
                elif should_skip(check, self._profile.name):
                    wave_results[check_id] = _finalize(
                        build_result(
                            check,
                            CheckStatus.SKIP,
                            f"Skipped in profile {self._profile.name}",
                        )
                    )
                else:
                    runnable.append(check)

            for check_id, result in wave_results.items():
                await self._publish(
                    ExecutorEventType.CHECK_SKIPPED,
                    check_id=check_id,
                    payload={"message": result.message},
                )

            for result in await self._run_wave(runnable, context, workers):
                wave_results[result.id] = result

            for check_id in wave:
                settled[check_id] = wave_results[check_id]
                ordered.append(wave_results[check_id])

        duration_ms = _duration_ms(start)
        logger.info(
            "check_run_finished",
            profile=self._profile.name,
            checks=len(ordered),
            duration_ms=duration_ms,
        )
        await self._publish(
            ExecutorEventType.RUN_FINISHED,
            payload={"checks": len(ordered), "duration_ms": duration_ms},
        )
        return ordered

    async def execute_one(self, check_id: str, context: CheckContext) -> DodCheckResult:
        """Run one check by id, with timeout and error isolation but no dependency handling."""

        check = self._registry.require(check_id)
        self._registry.freeze()
        outcome = await self._run_check(check, context)
        logger.debug(
            "check_completed",
            check_id=check_id,
            status=outcome.result.status.value,
            duration_ms=outcome.result.duration_ms,
        )
        return outcome.result

    def timeout_ms_for(self, check: DodCheck, context: CheckContext) -> int:
        return min(self._profile.timeout_for(check.category), context.timeout_ms)

    def _dependency_skip(
        self,
        check: DodCheck,
        dependencies: Sequence[str],
        settled: Mapping[str, DodCheckResult],
        dependency_skipped: set[str],
    ) -> DodCheckResult | None:
        for dependency in dependencies:
            upstream = settled[dependency]
            if upstream.is_fatal_failure:
                message = f"Skipped: dependency {dependency} failed"
            elif dependency in dependency_skipped:
                message = f"Skipped: dependency {dependency} was skipped"
            else:
                continue
            logger.info("check_skipped", check_id=check.id, dependency=dependency)
            return _finalize(build_result(check, CheckStatus.SKIP, message))
        return None

    async def _run_wave(
        self,
        checks: Sequence[DodCheck],
        context: CheckContext,
        workers: int,
    ) -> tuple[DodCheckResult, ...]:
        if not checks:
            return ()

        if len(checks) == 1 or workers == 1:
            results: list[DodCheckResult] = []
            for check in checks:
                outcome = await self._run_check(check, context)
                results.append(outcome.result)
            return tuple(results)

        pool: WorkerPool[_Outcome] = WorkerPool(max_concurrency=min(workers, len(checks)))
        outcomes: list[_Outcome] = []
        async for outcome in pool.run(self._run_check(check, context) for check in checks):
            outcomes.append(outcome)

        order_index = {check.id: index for index, check in enumerate(checks)}
        outcomes.sort(key=lambda outcome: order_index[outcome.result.id])
        return tuple(outcome.result for outcome in outcomes)

    async def _run_check(self, check: DodCheck, context: CheckContext) -> _Outcome:
        timeout_ms = self.timeout_ms_for(check, context)
        await self._publish(
            ExecutorEventType.CHECK_STARTED,
            check_id=check.id,
            payload={"timeout_ms": timeout_ms},
        )
        start = time.perf_counter()
        try:
            raw = await run_with_timeout(
                _invoke_check(check, context), timeout_ms / _MS_PER_SECOND
            )
            if not isinstance(raw, DodCheckResult):
                raise TypeError(
                    f"check returned {type(raw).__name__}, expected DodCheckResult"
                )
            outcome = _Outcome(
                result=raw if raw.duration_ms else raw.with_updates(duration_ms=_duration_ms(start))
            )
        except TimeoutError:
            logger.warning("check_timed_out", check_id=check.id, timeout_ms=timeout_ms)
            outcome = _Outcome(
                result=build_result(
                    check,
                    CheckStatus.FAIL,
                    f"Check timed out after {timeout_ms}ms",
                    remediation=(
                        f"Increase timeout for category {check.category.value} or optimize check",
                    ),
                    duration_ms=timeout_ms,
                ),
                timed_out=True,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "check_execution_failed",
                check_id=check.id,
                error=f"{type(exc).__name__}: {exc}",
            )
            outcome = _Outcome(
                result=build_result(
                    check,
                    CheckStatus.FAIL,
                    f"Check execution failed: {type(exc).__name__}: {exc}",
                    duration_ms=_duration_ms(start),
                )
            )

        finalized = _Outcome(result=_finalize(outcome.result), timed_out=outcome.timed_out)
        if finalized.timed_out:
            await self._publish(
                ExecutorEventType.CHECK_TIMED_OUT,
                check_id=check.id,
                payload={"timeout_ms": timeout_ms},
            )
        await self._publish(
            ExecutorEventType.CHECK_FINISHED,
            check_id=check.id,
            payload={
                "status": finalized.result.status.value,
                "duration_ms": finalized.result.duration_ms,
            },
        )
        return finalized

    async def _publish(
        self,
        event_type: ExecutorEventType,
        *,
        check_id: str | None = None,
        payload: Mapping[str, object] | None = None,
    ) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish_async(
            ExecutorEvent(type=event_type, check_id=check_id, payload=payload or {})
        )


async def _invoke_check(check: DodCheck, context: CheckContext) -> object:
    if inspect.iscoroutinefunction(check.execute):
        return await check.execute(context)
    outcome = await run_in_daemon_thread(check.execute, context, name=f"dod-check-{check.id}")
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome


def _build_execution_waves(
    check_ids: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
) -> tuple[tuple[str, ...], ...]:
    remaining = list(check_ids)
    completed: set[str] = set()
    waves: list[tuple[str, ...]] = []

    while remaining:
        ready = tuple(
            check_id
            for check_id in remaining
            if all(dependency in completed for dependency in dependencies.get(check_id, ()))
        )
        if not ready:
            raise DependencyCycleError(tuple(remaining))
        waves.append(ready)
        completed.update(ready)
        remaining = [check_id for check_id in remaining if check_id not in completed]

    return tuple(waves)


def _finalize(result: DodCheckResult) -> DodCheckResult:
    return result.with_updates(check_hash=hash_check_result(result))


def _duration_ms(start: float) -> int:
    elapsed_seconds = max(time.perf_counter() - start, 0.0)
    return int(round(elapsed_seconds * _MS_PER_SECOND))


__all__ = [
    "CheckExecutor",
    "ExecutionPlan",
]
