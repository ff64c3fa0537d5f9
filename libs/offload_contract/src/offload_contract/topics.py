"""MQTT topic names and identifiers shared by broker and participants."""

from __future__ import annotations

from typing import Any

TOPIC_PREFIX = "offload"

EVENT_TOPICS = {
    "contract_choice": f"{TOPIC_PREFIX}/events/contract_choice",
    "task_metadata": f"{TOPIC_PREFIX}/events/task_metadata",
    "task_completion": f"{TOPIC_PREFIX}/events/task_completion",
    "task_submission": f"{TOPIC_PREFIX}/events/task_submission",
}

EVENT_SUBSCRIPTION = f"{TOPIC_PREFIX}/events/#"
CONTRACT_MENU_TOPIC = f"{TOPIC_PREFIX}/contracts"


def assignment_topic(task_owner: str) -> str:
    return f"{TOPIC_PREFIX}/assignment/{task_owner}"


def completion_topic(task_owner: str) -> str:
    return f"{TOPIC_PREFIX}/completion/{task_owner}"


def event_kind_from_topic(topic: str) -> str | None:
    """Extract the event kind from an inbound event topic."""
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != TOPIC_PREFIX or parts[1] != "events":
        return None
    return parts[2] or None


def normalize_vector(payload: Any) -> list[float]:
    """Normalize position/velocity payloads ({x,y,z} or [x,y,z]) to a list."""
    if isinstance(payload, dict):
        return [float(payload.get(axis, 0.0)) for axis in ("x", "y", "z")]
    if isinstance(payload, list | tuple):
        values = [float(v) for v in payload[:3]]
        return values + [0.0] * (3 - len(values))
    return [0.0, 0.0, 0.0]
