"""
Offload-Broker: Contract-Based Computation Offloading

This service implements task offloading for a mobile compute fleet:
1. Fetches the contract menu from the solver oracle and broadcasts it
2. Records each participant's contract choice as shared capacity
3. Collects task metadata (demand, position, velocity)
4. Runs the propose/reject auction once enough tasks are ready
5. Notifies task owners of their provider and relays completions
6. Executes tasks that fell back to the broker on its own capacity

Part of Offload-X: Incentive-Driven Vehicular Offloading
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated

from fastapi import Body, FastAPI, HTTPException
from offload_contract import (
    CONTRACT_MENU_TOPIC,
    EVENT_TOPICS,
    TOPIC_PREFIX,
    ContractChoiceEvent,
    TaskCompletionEvent,
    TaskMetadataEvent,
    TaskSubmissionEvent,
)
from offload_contract import (
    __version__ as contract_version,
)
from pydantic import BaseModel

from offload_broker.broker import CycleReport, OffloadBroker
from offload_broker.catalog import ContractCatalog
from offload_broker.config import Settings
from offload_broker.dispatcher import AssignmentDispatcher
from offload_broker.errors import UnknownParticipant
from offload_broker.local_executor import LocalExecutor
from offload_broker.matcher import OffloadingMatcher
from offload_broker.mqtt_client import OffloadMQTTClient
from offload_broker.registry import ParticipantRegistry
from offload_broker.solver_client import SolverClient, SolverRequest

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Global instances
settings = Settings()
broker: OffloadBroker | None = None
solver_client: SolverClient | None = None
mqtt_client: OffloadMQTTClient | None = None


# ============================================================================
# Pydantic Models
# ============================================================================


class ContractView(BaseModel):
    """Contract menu entry."""

    index: int
    resource_threshold: float
    reward: float


class CatalogView(BaseModel):
    """Published contract menu."""

    contracts: list[ContractView]
    published_at: datetime | None


class ParticipantView(BaseModel):
    """Participant state snapshot."""

    id: int
    address: str
    position: tuple[float, float, float]
    velocity: tuple[float, float, float]
    contract_index: int
    offered_resource: float
    bid_price: float
    task_ready: bool
    assigned_provider_id: int | None
    hosted_owner_id: int | None


class EventAck(BaseModel):
    """Result of handling a participant event."""

    kind: str
    address: str
    cycle: CycleReport | None = None


# ============================================================================
# FastAPI Application
# ============================================================================


def build_broker(
    app_settings: Settings,
    solver: SolverClient | None = None,
    mqtt: OffloadMQTTClient | None = None,
) -> OffloadBroker:
    """Wire registry, catalog, matcher and dispatcher for one run."""
    registry = ParticipantRegistry(policy=app_settings.address_policy)
    catalog = ContractCatalog(solver=solver)
    matcher = OffloadingMatcher.from_settings(registry, app_settings)
    dispatcher = AssignmentDispatcher(
        registry,
        local_execution_address=app_settings.local_execution_address,
        publish_assignment=mqtt.publish_assignment if mqtt else None,
        publish_completion=mqtt.publish_completion if mqtt else None,
    )
    return OffloadBroker(
        registry,
        catalog,
        matcher,
        dispatcher,
        task_assignment_threshold=app_settings.task_assignment_threshold,
        solver_request=SolverRequest(
            unit_benefit=app_settings.unit_benefit,
            computation_capability=app_settings.computation_capability,
            duration=app_settings.duration,
            type_probability=app_settings.type_probability,
            total_vehicles=app_settings.total_vehicles,
            delta_min=app_settings.delta_min,
            delta_max=app_settings.delta_max,
        ),
        publish_menu=mqtt.publish_contract_menu if mqtt else None,
        broker_address=app_settings.local_execution_address,
        executor=LocalExecutor(
            app_settings.computation_capability,
            local_address=app_settings.local_execution_address,
            publish_completion=mqtt.publish_completion if mqtt else None,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan for startup/shutdown."""
    global broker, solver_client, mqtt_client

    logger.info("Starting Offload-Broker service...")

    solver_client = SolverClient(
        settings.solver_url, timeout=settings.solver_timeout_seconds
    )
    if settings.enable_mqtt:
        mqtt_client = OffloadMQTTClient(
            broker_host=settings.mqtt_broker_host,
            broker_port=settings.mqtt_broker_port,
            on_event=_handle_mqtt_event,
        )

    broker = build_broker(settings, solver=solver_client, mqtt=mqtt_client)

    if mqtt_client:
        await mqtt_client.connect()
    await broker.publish_catalog()

    logger.info("Offload-Broker service started successfully")

    yield

    logger.info("Shutting down Offload-Broker service...")
    if broker and broker.executor:
        await broker.executor.shutdown()
    if mqtt_client:
        await mqtt_client.disconnect()
    if solver_client:
        await solver_client.close()


app = FastAPI(
    title="Offload-Broker",
    description="Contract-Based Computation Offloading with Congestion-Priced Matching",
    version="0.1.0",
    lifespan=lifespan,
)


async def _handle_mqtt_event(payload: dict[str, object]) -> None:
    if broker:
        await broker.handle_raw(payload)


def _require_broker() -> OffloadBroker:
    if not broker:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return broker


# ============================================================================
# API Endpoints
# ============================================================================


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Service health check endpoint."""
    return {"status": "healthy", "service": "offload-broker"}


@app.get("/debug/contract")
async def debug_contract() -> dict[str, object]:
    """Expose shared payload contract topics for verification."""
    return {
        "service": "offload-broker",
        "contract_version": contract_version,
        "topic_prefix": TOPIC_PREFIX,
        "event_topics": EVENT_TOPICS,
        "contract_menu_topic": CONTRACT_MENU_TOPIC,
    }


@app.get("/catalog", response_model=CatalogView)
async def get_catalog() -> CatalogView:
    """Return the published contract menu (empty in degraded mode)."""
    current = _require_broker()
    return CatalogView(
        contracts=[
            ContractView(
                index=i, resource_threshold=c.resource_threshold, reward=c.reward
            )
            for i, c in enumerate(current.catalog.contracts)
        ],
        published_at=current.catalog.published_at,
    )


@app.get("/catalog/select", response_model=ContractView | None)
async def select_contract(capacity_limit: float) -> ContractView | None:
    """Best contract a participant with this capacity could pick."""
    current = _require_broker()
    best = current.catalog.select_best(capacity_limit)
    if not best:
        return None
    index, contract = best
    return ContractView(
        index=index,
        resource_threshold=contract.resource_threshold,
        reward=contract.reward,
    )


@app.get("/participants")
async def list_participants() -> list[ParticipantView]:
    """List all registered participants with their current state."""
    current = _require_broker()
    return [
        ParticipantView(
            id=p.id,
            address=p.address,
            position=p.position,
            velocity=p.velocity,
            contract_index=p.contract_index,
            offered_resource=p.offered_resource,
            bid_price=p.bid_price,
            task_ready=p.task_ready,
            assigned_provider_id=p.assigned_provider_id,
            hosted_owner_id=p.hosted_owner_id,
        )
        for p in current.registry.participants()
    ]


@app.post("/events", response_model=EventAck)
async def post_event(
    event: Annotated[
        ContractChoiceEvent | TaskMetadataEvent | TaskCompletionEvent | TaskSubmissionEvent,
        Body(discriminator="kind"),
    ],
) -> EventAck:
    """HTTP ingress for participant events (same payloads as MQTT)."""
    current = _require_broker()
    try:
        outcome = await current.handle(event)
    except UnknownParticipant as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    return EventAck(
        kind=event.kind,
        address=event.address,
        cycle=outcome if isinstance(outcome, CycleReport) else None,
    )


@app.post("/cycles/run", response_model=CycleReport)
async def run_cycle() -> CycleReport:
    """Force a matching cycle over the currently ready tasks."""
    current = _require_broker()
    return await current.run_matching_cycle()


@app.get("/cycles")
async def get_cycle_history(limit: int = 20) -> list[CycleReport]:
    """Get recent matching cycle reports."""
    current = _require_broker()
    return current.history[-limit:]


def run() -> None:
    """Entry point for running the service."""
    import uvicorn

    uvicorn.run(
        "offload_broker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
