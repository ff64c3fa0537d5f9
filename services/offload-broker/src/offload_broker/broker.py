"""
Event handling for Offload-Broker.

Routes typed participant events to their handlers, triggers a matching
cycle once enough tasks are ready, relays task completions and hands
tasks assigned to local execution to the local executor. A single
lock serialises every event, so a matching cycle never interleaves with
other mutations of participant state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from offload_contract import (
    NO_CONTRACT,
    ContractChoiceEvent,
    ContractMenuPayload,
    ContractTerms,
    EventKind,
    ParticipantEvent,
    TaskAssignmentPayload,
    TaskCompletionEvent,
    TaskMetadataEvent,
    TaskSubmissionEvent,
    participant_event_adapter,
)
from pydantic import BaseModel, ValidationError

from offload_broker.catalog import ContractCatalog
from offload_broker.dispatcher import AssignmentDispatcher
from offload_broker.errors import CatalogFetchFailed, MatchingFailed, UnknownParticipant
from offload_broker.local_executor import LocalExecutor
from offload_broker.matcher import CycleOutcome, OffloadingMatcher
from offload_broker.registry import ParticipantRegistry
from offload_broker.solver_client import SolverRequest

logger = logging.getLogger(__name__)

MAX_CYCLE_HISTORY = 100

MenuPublisher = Callable[[ContractMenuPayload], Awaitable[None]]


class CycleReport(BaseModel):
    """Summary of one matching cycle."""

    cycle_id: str
    status: str  # matched, no_proposers, failed
    proposers: int
    rounds: int
    assignments: list[TaskAssignmentPayload]
    started_at: datetime
    finished_at: datetime
    detail: str | None = None


class OffloadBroker:
    """Owns the registry, catalog and matcher for one run."""

    def __init__(
        self,
        registry: ParticipantRegistry,
        catalog: ContractCatalog,
        matcher: OffloadingMatcher,
        dispatcher: AssignmentDispatcher,
        *,
        task_assignment_threshold: int = 5,
        solver_request: SolverRequest | None = None,
        publish_menu: MenuPublisher | None = None,
        broker_address: str = "broker",
        executor: LocalExecutor | None = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.matcher = matcher
        self.dispatcher = dispatcher
        self.task_assignment_threshold = task_assignment_threshold
        self.broker_address = broker_address
        self.executor = executor
        self._solver_request = solver_request
        self._publish_menu = publish_menu
        self._lock = asyncio.Lock()
        self.history: list[CycleReport] = []

        self._handlers: dict[EventKind, Callable[[Any], Awaitable[Any]]] = {
            EventKind.CONTRACT_CHOICE: self._on_contract_choice,
            EventKind.TASK_METADATA: self._on_task_metadata,
            EventKind.TASK_COMPLETION: self._on_task_completion,
            EventKind.TASK_SUBMISSION: self._on_task_submission,
        }
        missing = set(EventKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for event kinds: {sorted(missing)}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(self, event: ParticipantEvent) -> Any:
        """
        Handle one typed event.

        Raises:
            UnknownParticipant: address not admitted under the strict policy.
        """
        handler = self._handlers[EventKind(event.kind)]
        async with self._lock:
            return await handler(event)

    async def handle_raw(self, payload: dict[str, Any]) -> None:
        """Validate and handle an untyped transport payload; bad events are skipped."""
        try:
            event = participant_event_adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning(f"Dropping malformed event: {e}")
            return
        try:
            await self.handle(event)
        except UnknownParticipant as e:
            logger.warning("Skipping %s event: %s", event.kind, e)

    async def publish_catalog(self) -> bool:
        """Fetch the contract menu once and broadcast it."""
        async with self._lock:
            if self._solver_request is None:
                logger.warning("No solver request configured, catalog stays empty")
                return False
            try:
                contracts = await self.catalog.fetch(self._solver_request)
            except CatalogFetchFailed as e:
                logger.error(f"Contract catalog unavailable, running degraded: {e}")
                return False

            if self._publish_menu:
                await self._publish_menu(
                    ContractMenuPayload(
                        contracts=[
                            ContractTerms(
                                resource_threshold=c.resource_threshold, reward=c.reward
                            )
                            for c in contracts
                        ],
                        broker_address=self.broker_address,
                    )
                )
            return True

    async def run_matching_cycle(self) -> CycleReport:
        async with self._lock:
            return await self._run_cycle()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_contract_choice(self, event: ContractChoiceEvent) -> None:
        participant_id = self.registry.register(event.address)
        self.registry.set_kinematics(
            participant_id, event.position.as_tuple(), event.velocity.as_tuple()
        )

        if event.capacity_limit is not None:
            best = self.catalog.select_best(event.capacity_limit)
            index, contract = best if best else (NO_CONTRACT, None)
        else:
            index = event.contract_index
            contract = self.catalog.get(index)
            if index != NO_CONTRACT and contract is None:
                logger.warning(
                    f"{event.address} chose contract {index} outside the menu "
                    f"of {len(self.catalog)}"
                )
                index = NO_CONTRACT

        if contract is None:
            self.registry.set_offer(participant_id, NO_CONTRACT, 0.0, 0.0)
            logger.info(f"Participant {event.address} has no contract")
            return

        self.registry.set_offer(
            participant_id, index, contract.resource_threshold, contract.reward
        )
        logger.info(
            f"Participant {event.address} shares {contract.resource_threshold} "
            f"at price {contract.reward}"
        )

    async def _on_task_metadata(self, event: TaskMetadataEvent) -> CycleReport | None:
        participant_id = self.registry.resolve(event.address)
        self.registry.set_kinematics(
            participant_id, event.position.as_tuple(), event.velocity.as_tuple()
        )
        self.registry.set_task(
            participant_id,
            event.task_resource,
            event.task_data_size,
            event.delay_constraint,
        )

        ready = self.registry.ready_count()
        logger.info(f"Task metadata from {event.address}; {ready} tasks ready")
        if ready >= self.task_assignment_threshold:
            return await self._run_cycle()
        return None

    async def _on_task_completion(self, event: TaskCompletionEvent) -> Any:
        participant_id = self.registry.resolve(event.address)
        return await self.dispatcher.relay_completion(participant_id, event.result)

    async def _on_task_submission(self, event: TaskSubmissionEvent) -> float | None:
        participant_id = self.registry.resolve(event.address)
        if self.registry.get(participant_id).assigned_provider_id != participant_id:
            logger.warning(f"{event.address} submitted a task not assigned to local execution")
            return None
        if self.executor is None:
            logger.warning(f"No local executor, dropping task of {event.address}")
            return None
        self.registry.set_assignment(participant_id, None)
        return self.executor.submit(event.address, event.task_resource)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def _run_cycle(self) -> CycleReport:
        cycle_id = f"CYCLE-{uuid.uuid4().hex[:8]}"
        started_at = datetime.now(UTC)
        proposers = self.registry.ready_count()

        try:
            result = self.matcher.run_cycle()
        except MatchingFailed as e:
            logger.warning(f"{cycle_id} failed: {e}")
            return self._record(
                CycleReport(
                    cycle_id=cycle_id,
                    status="failed",
                    proposers=proposers,
                    rounds=e.rounds,
                    assignments=[],
                    started_at=started_at,
                    finished_at=datetime.now(UTC),
                    detail=str(e),
                )
            )

        assignments: list[TaskAssignmentPayload] = []
        if result.outcome is CycleOutcome.MATCHED:
            assignments = await self.dispatcher.dispatch(result)

        return self._record(
            CycleReport(
                cycle_id=cycle_id,
                status=result.outcome.value,
                proposers=proposers,
                rounds=result.rounds,
                assignments=assignments,
                started_at=started_at,
                finished_at=datetime.now(UTC),
            )
        )

    def _record(self, report: CycleReport) -> CycleReport:
        self.history.append(report)
        if len(self.history) > MAX_CYCLE_HISTORY:
            self.history.pop(0)
        return report
