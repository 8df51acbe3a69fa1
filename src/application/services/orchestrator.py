"""
application.services.orchestrator - Plan and run agents for one payload.

AgentOrchestrator.ask() is the only entry point:

    1. plan    intent map when routing was confident, planner agent otherwise
               (falling back to the intent map if planning fails)
    2. run     steps strictly in sequence, each with the accumulated
               ChainContext; the plan's FailureStrategy decides whether a
               failed step stops the run
    3. record  one InteractionRecord per call, whatever happened

ask() never raises. A failure before any step could run comes back as an
unsuccessful outcome carrying the standard apology text.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from application.dto import FALLBACK_REPLY, OrchestrationOutcome
from application.services.planning import PLANNER_AGENT, PlanBuilder
from domain.entities import InteractionRecord
from domain.exceptions import AgentLoadError, AgentNotFoundError, DomainError, PlanError
from domain.models import (
    AgentInvocation,
    ChainContext,
    ExecutionPlan,
    FailureStrategy,
    IntentClassificationPayload,
    ResponseEnvelope,
    StepResult,
)
from domain.ports import AgentResolverPort, InteractionRepository

logger = logging.getLogger(__name__)


class AgentOrchestrator:
    """Turns a classification payload into agent work."""

    def __init__(
        self,
        resolver: AgentResolverPort,
        plans: PlanBuilder,
        interactions: Optional[InteractionRepository] = None,
        planner_confidence: float = 0.5,
    ):
        self._resolver = resolver
        self._plans = plans
        self._interactions = interactions
        self._planner_confidence = planner_confidence

    async def ask(
        self, payload: IntentClassificationPayload, session_id: Optional[str] = None,
    ) -> OrchestrationOutcome:
        started = time.perf_counter()
        ctx = ChainContext(
            utterance=payload.source_text, session_id=session_id, payload=payload,
        )
        plan: Optional[ExecutionPlan] = None

        try:
            plan = await self._plan(payload, session_id, ctx)
            if not plan.steps:
                raise PlanError("Plan has no steps")
            ctx = await self._run(plan, ctx)
        except PlanError as e:
            logger.warning("Orchestration aborted: %s", e)
            outcome = OrchestrationOutcome.failed(
                payload.primary_intent, str(e), _elapsed_ms(started), plan,
            )
            await self._record(ctx, outcome)
            return outcome
        except Exception as e:
            logger.exception("Orchestration failed for request %s", ctx.request_id)
            outcome = OrchestrationOutcome.failed(
                payload.primary_intent, str(e), _elapsed_ms(started), plan,
            )
            await self._record(ctx, outcome)
            return outcome

        outcome = self._outcome(plan, ctx, payload, _elapsed_ms(started))
        await self._record(ctx, outcome)
        logger.info(
            "Orchestrated %s via %s: success=%s in %dms",
            payload.primary_intent.value, plan.agent_names,
            outcome.success, outcome.execution_time_ms,
        )
        return outcome

    # -- planning -------------------------------------------------------------

    async def _plan(
        self,
        payload: IntentClassificationPayload,
        session_id: Optional[str],
        ctx: ChainContext,
    ) -> ExecutionPlan:
        if payload.confidence >= self._planner_confidence:
            return self._plans.from_payload(payload, session_id)

        try:
            planner = await self._resolver.resolve(PLANNER_AGENT)
            catalog = [c for c in await self._resolver.catalog() if c["name"] != PLANNER_AGENT]
            envelope = await planner.execute("plan", {"agents": catalog}, ctx)
            if not envelope.ok or not isinstance(envelope.data, dict):
                raise PlanError(envelope.error or "planner returned no plan")
            return self._plans.from_steps(
                envelope.data.get("steps"), payload, [c["name"] for c in catalog],
            )
        except (DomainError, KeyError) as e:
            logger.warning("Planner unavailable (%s); using intent map", e)
            return self._plans.from_payload(payload, session_id)

    # -- execution ------------------------------------------------------------

    async def _run(self, plan: ExecutionPlan, ctx: ChainContext) -> ChainContext:
        for index, step in enumerate(plan.steps):
            result = await self._run_step(index, step, ctx)
            ctx = ctx.with_result(result)
            if not result.success and plan.failure_strategy == FailureStrategy.FAIL_FAST:
                logger.info("Stopping plan at step %d (%s): %s", index, step.agent_name, result.error)
                break
        return ctx

    async def _run_step(
        self, index: int, step: AgentInvocation, ctx: ChainContext,
    ) -> StepResult:
        try:
            agent = await self._resolver.resolve(step.agent_name)
            envelope = await agent.execute(step.action, dict(step.input), ctx)
        except (AgentNotFoundError, AgentLoadError) as e:
            logger.warning("Step %d: cannot load agent '%s': %s", index, step.agent_name, e)
            return StepResult(index, step.agent_name, step.action, False, error=str(e))
        except Exception as e:
            logger.exception("Step %d: agent '%s' raised", index, step.agent_name)
            return StepResult(index, step.agent_name, step.action, False, error=str(e))

        if not isinstance(envelope, ResponseEnvelope):
            return StepResult(
                index, step.agent_name, step.action, False,
                error=f"Agent '{step.agent_name}' returned {type(envelope).__name__}",
            )
        if not envelope.ok:
            return StepResult(
                index, step.agent_name, step.action, False, result=envelope, error=envelope.error,
            )
        return StepResult(index, step.agent_name, step.action, True, result=envelope)

    @staticmethod
    def _outcome(
        plan: ExecutionPlan,
        ctx: ChainContext,
        payload: IntentClassificationPayload,
        elapsed_ms: int,
    ) -> OrchestrationOutcome:
        if plan.failure_strategy == FailureStrategy.FAIL_FAST:
            success = all(r.success for r in ctx.results)
        else:
            success = any(r.success for r in ctx.results)

        response: Optional[ResponseEnvelope] = None
        for result in reversed(ctx.results):
            if result.success and result.result is not None and result.result.display_text():
                response = result.result
                break
        if not success:
            response = ResponseEnvelope.of_text(FALLBACK_REPLY)

        errors = [r.error for r in ctx.results if not r.success and r.error]
        return OrchestrationOutcome(
            success=success,
            intent=payload.primary_intent,
            plan=plan,
            results=ctx.results,
            response=response,
            execution_time_ms=elapsed_ms,
            error="; ".join(errors) or None,
            metadata={"request_id": ctx.request_id, "plan_source": plan.source},
        )

    async def _record(self, ctx: ChainContext, outcome: OrchestrationOutcome) -> None:
        if self._interactions is None:
            return
        record = InteractionRecord(
            request_id=ctx.request_id,
            session_id=ctx.session_id,
            utterance=ctx.utterance,
            intent=outcome.intent.value,
            plan=outcome.plan.to_dict() if outcome.plan else {},
            result=[r.to_dict() for r in outcome.results],
            success=outcome.success,
            execution_time_ms=outcome.execution_time_ms,
        )
        try:
            await self._interactions.save(record)
        except Exception:
            logger.exception("Failed to persist interaction %s", ctx.request_id)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
