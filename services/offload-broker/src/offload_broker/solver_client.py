"""
HTTP client for the contract-menu solver oracle.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field, model_validator


class SolverRequest(BaseModel):
    """Parameters the solver needs to design the contract menu."""

    unit_benefit: float
    computation_capability: float
    duration: int
    type_probability: list[float]
    total_vehicles: int = Field(..., ge=1)
    delta_min: float
    delta_max: float


class SolverResponse(BaseModel):
    """Menu as returned by the solver: resources and rewards, pairwise."""

    delta: list[float]
    pie: list[float]

    @model_validator(mode="after")
    def _check_lengths(self) -> "SolverResponse":
        if len(self.delta) != len(self.pie):
            raise ValueError(
                f"delta/pie length mismatch ({len(self.delta)} != {len(self.pie)})"
            )
        return self


class SolverClient:
    """Client for the contract solver service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def solve(self, request: SolverRequest) -> dict[str, Any]:
        response = await self._client.post(
            f"{self._base_url}/",
            json=request.model_dump(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        return response.json()
