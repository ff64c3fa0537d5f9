"""Shared fixtures for Offload-Broker tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from offload_broker.config import AddressPolicy
from offload_broker.registry import ParticipantRegistry, Vec3

AddParticipant = Callable[..., int]


@pytest.fixture
def registry() -> ParticipantRegistry:
    return ParticipantRegistry(policy=AddressPolicy.STRICT)


@pytest.fixture
def add_participant(registry: ParticipantRegistry) -> AddParticipant:
    """Register a participant with optional offer and task in one call."""

    def _add(
        address: str,
        *,
        position: Vec3 = (0.0, 0.0, 0.0),
        velocity: Vec3 = (0.0, 0.0, 0.0),
        offered: float = 0.0,
        price: float = 0.0,
        task: tuple[float, float, float] | None = None,
    ) -> int:
        participant_id = registry.register(address)
        registry.set_kinematics(participant_id, position, velocity)
        if offered > 0:
            registry.set_offer(participant_id, 0, offered, price)
        if task is not None:
            registry.set_task(participant_id, *task)
        return participant_id

    return _add
