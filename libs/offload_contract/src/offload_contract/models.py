"""Pydantic models for payloads exchanged between broker and participants."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from .topics import normalize_vector

NO_CONTRACT = -1


class EventKind(str, Enum):
    """Inbound participant event kinds."""

    CONTRACT_CHOICE = "contract_choice"
    TASK_METADATA = "task_metadata"
    TASK_COMPLETION = "task_completion"
    TASK_SUBMISSION = "task_submission"


class Vector3(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _accept_sequences(cls, value: Any) -> Any:
        if isinstance(value, list | tuple):
            x, y, z = normalize_vector(list(value))
            return {"x": x, "y": y, "z": z}
        return value

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


class ContractTerms(BaseModel):
    resource_threshold: float = Field(..., ge=0)
    reward: float


class ContractMenuPayload(BaseModel):
    """Contract menu broadcast to every participant."""

    contracts: list[ContractTerms]
    broker_address: str


class ContractChoiceEvent(BaseModel):
    """A participant reports which contract it picked (or none)."""

    kind: Literal["contract_choice"] = "contract_choice"
    address: str
    contract_index: int = Field(default=NO_CONTRACT, ge=NO_CONTRACT)
    capacity_limit: float | None = Field(
        default=None,
        ge=0,
        description="Let the broker pick the best contract within this capacity",
    )
    position: Vector3 = Field(default_factory=Vector3)
    velocity: Vector3 = Field(default_factory=Vector3)


class TaskMetadataEvent(BaseModel):
    """A participant submits task demand and its current kinematics."""

    kind: Literal["task_metadata"] = "task_metadata"
    address: str
    task_resource: float = Field(..., gt=0)
    task_data_size: float = Field(..., ge=0)
    delay_constraint: float = Field(..., gt=0)
    position: Vector3 = Field(default_factory=Vector3)
    velocity: Vector3 = Field(default_factory=Vector3)


class TaskCompletionEvent(BaseModel):
    """A provider reports that the hosted task finished."""

    kind: Literal["task_completion"] = "task_completion"
    address: str
    result: str = "Task completed"


class TaskSubmissionEvent(BaseModel):
    """A task owner hands its task to the broker for local execution."""

    kind: Literal["task_submission"] = "task_submission"
    address: str
    task_resource: float = Field(..., gt=0)
    task_data_size: float = Field(default=0.0, ge=0)


ParticipantEvent = Annotated[
    ContractChoiceEvent | TaskMetadataEvent | TaskCompletionEvent | TaskSubmissionEvent,
    Field(discriminator="kind"),
]

participant_event_adapter: TypeAdapter[Any] = TypeAdapter(ParticipantEvent)


class TaskAssignmentPayload(BaseModel):
    """Assignment notification sent to a task owner."""

    task_owner: str
    provider_id: int | None = Field(
        default=None, description="None means local execution at the broker"
    )
    provider_address: str
    price: float = Field(..., ge=0)


class TaskCompletionPayload(BaseModel):
    """Completion notice relayed to the task owner."""

    task_owner: str
    provider_address: str
    result: str
