"""
Shared payload contract for Offload-X brokers and participants.
"""

from __future__ import annotations

from .models import (
    NO_CONTRACT,
    ContractChoiceEvent,
    ContractMenuPayload,
    ContractTerms,
    EventKind,
    ParticipantEvent,
    TaskAssignmentPayload,
    TaskCompletionEvent,
    TaskCompletionPayload,
    TaskMetadataEvent,
    TaskSubmissionEvent,
    Vector3,
    participant_event_adapter,
)
from .topics import (
    CONTRACT_MENU_TOPIC,
    EVENT_SUBSCRIPTION,
    EVENT_TOPICS,
    TOPIC_PREFIX,
    assignment_topic,
    completion_topic,
    event_kind_from_topic,
    normalize_vector,
)

__version__ = "0.1.0"

__all__ = [
    "CONTRACT_MENU_TOPIC",
    "EVENT_SUBSCRIPTION",
    "EVENT_TOPICS",
    "NO_CONTRACT",
    "TOPIC_PREFIX",
    "ContractChoiceEvent",
    "ContractMenuPayload",
    "ContractTerms",
    "EventKind",
    "ParticipantEvent",
    "TaskAssignmentPayload",
    "TaskCompletionEvent",
    "TaskCompletionPayload",
    "TaskMetadataEvent",
    "TaskSubmissionEvent",
    "Vector3",
    "assignment_topic",
    "completion_topic",
    "event_kind_from_topic",
    "normalize_vector",
    "participant_event_adapter",
]
