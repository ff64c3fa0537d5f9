"""
Contract Catalog for Offload-Broker.

Holds the contract menu computed by the external solver. The menu is
fetched once per run and published as an immutable snapshot; readers get
the same tuple object until a successful fetch replaces it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
from pydantic import ValidationError

from offload_broker.errors import CatalogFetchFailed
from offload_broker.solver_client import SolverClient, SolverRequest, SolverResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Contract:
    """A (resource threshold, reward) menu entry."""

    resource_threshold: float
    reward: float


class ContractCatalog:
    """Ordered, read-only contract menu."""

    def __init__(
        self,
        solver: SolverClient | None = None,
        contracts: tuple[Contract, ...] = (),
    ) -> None:
        self._solver = solver
        self._contracts: tuple[Contract, ...] = tuple(contracts)
        self.published_at: datetime | None = datetime.now(UTC) if contracts else None

    def __len__(self) -> int:
        return len(self._contracts)

    @property
    def contracts(self) -> tuple[Contract, ...]:
        return self._contracts

    def get(self, index: int) -> Contract | None:
        """Return the contract at a menu index, or None when out of range."""
        if 0 <= index < len(self._contracts):
            return self._contracts[index]
        return None

    async def fetch(self, request: SolverRequest) -> tuple[Contract, ...]:
        """
        Fetch the menu from the solver and publish it.

        Raises:
            CatalogFetchFailed: solver unreachable, non-2xx, or malformed body.
                The current snapshot is left untouched.
        """
        if self._solver is None:
            raise CatalogFetchFailed("No solver client configured")

        try:
            payload = await self._solver.solve(request)
            response = SolverResponse.model_validate(payload)
        except httpx.HTTPError as e:
            raise CatalogFetchFailed(f"Solver request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise CatalogFetchFailed(f"Malformed solver response: {e}") from e

        contracts = tuple(
            Contract(resource_threshold=float(delta), reward=float(pie))
            for delta, pie in zip(response.delta, response.pie, strict=True)
        )
        self._contracts = contracts
        self.published_at = datetime.now(UTC)
        logger.info(f"Published contract menu with {len(contracts)} entries")
        return contracts

    def select_best(self, capacity_limit: float) -> tuple[int, Contract] | None:
        """
        Pick the highest-reward contract whose threshold fits the capacity.

        Equal rewards resolve to the later menu entry.
        """
        best: tuple[int, Contract] | None = None
        for index, contract in enumerate(self._contracts):
            if contract.resource_threshold > capacity_limit:
                continue
            if best is None or contract.reward >= best[1].reward:
                best = (index, contract)
        return best
