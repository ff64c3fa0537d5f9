"""
Participant Registry for Offload-Broker.

Owns all per-participant state: a dense arena indexed by internal id plus
an address -> id map. Every mutation of participant state goes through the
setters below.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from offload_contract import NO_CONTRACT

from offload_broker.config import AddressPolicy
from offload_broker.errors import UnknownParticipant

logger = logging.getLogger(__name__)

Vec3 = tuple[float, float, float]
ORIGIN: Vec3 = (0.0, 0.0, 0.0)


@dataclass
class Participant:
    """Mutable record for one fleet node."""

    id: int
    address: str
    position: Vec3 = ORIGIN
    velocity: Vec3 = ORIGIN

    task_resource: float = 0.0
    task_data_size: float = 0.0
    delay_constraint: float = 0.0
    task_ready: bool = False

    contract_index: int = NO_CONTRACT
    offered_resource: float = 0.0  # 0 = not a provider
    bid_price: float = 0.0

    assigned_provider_id: int | None = None
    hosted_owner_id: int | None = None

    @property
    def is_provider(self) -> bool:
        return self.offered_resource > 0


class ParticipantRegistry:
    """
    Stable mapping from external address to internal participant slot.

    Ids are dense and handed out in order of first sight. Under the strict
    policy only ``register`` admits new addresses; under the auto policy
    ``resolve`` admits them too.
    """

    def __init__(self, policy: AddressPolicy = AddressPolicy.STRICT) -> None:
        self.policy = policy
        self._arena: list[Participant] = []
        self._ids: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._arena)

    def __contains__(self, address: object) -> bool:
        return address in self._ids

    def register(self, address: str) -> int:
        """Admit an address (idempotent) and return its id."""
        existing = self._ids.get(address)
        if existing is not None:
            return existing
        participant_id = len(self._arena)
        self._arena.append(Participant(id=participant_id, address=address))
        self._ids[address] = participant_id
        logger.info(f"Registered participant {address} as id {participant_id}")
        return participant_id

    def resolve(self, address: str) -> int:
        """Return the id for an address, registering it if the policy allows."""
        existing = self._ids.get(address)
        if existing is not None:
            return existing
        if self.policy is AddressPolicy.AUTO:
            return self.register(address)
        raise UnknownParticipant(address)

    def get(self, participant_id: int) -> Participant:
        return self._arena[participant_id]

    def address_of(self, participant_id: int) -> str:
        return self._arena[participant_id].address

    def participants(self) -> Iterator[Participant]:
        return iter(self._arena)

    def ready_count(self) -> int:
        return sum(1 for p in self._arena if p.task_ready)

    # ------------------------------------------------------------------
    # Mutation points
    # ------------------------------------------------------------------

    def set_kinematics(self, participant_id: int, position: Vec3, velocity: Vec3) -> None:
        participant = self._arena[participant_id]
        participant.position = tuple(position)  # type: ignore[assignment]
        participant.velocity = tuple(velocity)  # type: ignore[assignment]

    def set_task(
        self,
        participant_id: int,
        task_resource: float,
        task_data_size: float,
        delay_constraint: float,
    ) -> None:
        participant = self._arena[participant_id]
        participant.task_resource = task_resource
        participant.task_data_size = task_data_size
        participant.delay_constraint = delay_constraint
        participant.task_ready = True

    def clear_task(self, participant_id: int) -> None:
        self._arena[participant_id].task_ready = False

    def set_offer(
        self,
        participant_id: int,
        contract_index: int,
        offered_resource: float,
        bid_price: float,
    ) -> None:
        """Record a contract choice; NO_CONTRACT zeroes the offer."""
        participant = self._arena[participant_id]
        if contract_index == NO_CONTRACT:
            offered_resource = 0.0
            bid_price = 0.0
        participant.contract_index = contract_index
        participant.offered_resource = offered_resource
        participant.bid_price = bid_price

    def set_bid_price(self, participant_id: int, bid_price: float) -> None:
        participant = self._arena[participant_id]
        if bid_price < participant.bid_price:
            raise ValueError(
                f"Bid price of participant {participant_id} cannot decrease "
                f"({participant.bid_price} -> {bid_price})"
            )
        participant.bid_price = bid_price

    def set_assignment(self, participant_id: int, provider_id: int | None) -> None:
        self._arena[participant_id].assigned_provider_id = provider_id

    def set_hosted_owner(self, provider_id: int, owner_id: int | None) -> None:
        self._arena[provider_id].hosted_owner_id = owner_id
