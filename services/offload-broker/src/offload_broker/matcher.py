"""
Offloading Matcher for Offload-Broker.

Round-based deferred-acceptance auction with congestion pricing:
1. Propose - every pending proposer picks the feasible provider with the
   highest preference 1/total_time - bid_price
2. Resolve - proposals to providers that are themselves offloading are
   rejected (or withdrawn while that provider's own proposal is still
   open, for good when proposers can fall back to local execution); a
   provider with several proposals keeps one and rejects the rest;
   every contested provider raises its bid price by a fixed step
3. Terminate - when every proposer holds an accepted, local or unassigned
   outcome, or fail once the round ceiling is reached

Convergence is not guaranteed (the price step ignores excess demand), so
the round ceiling is the backstop. A failed cycle commits nothing.
Providers still hosting a task from an earlier cycle are left out until
they report completion.
"""

from __future__ import annotations

import logging
import math
import random
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from offload_broker.config import FallbackPolicy
from offload_broker.errors import MatchingFailed
from offload_broker.mobility import LinkModel, feasible, total_time

if TYPE_CHECKING:
    from offload_broker.config import Settings
    from offload_broker.registry import ParticipantRegistry

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    """How a completed matching cycle ended."""

    MATCHED = "matched"
    NO_PROPOSERS = "no_proposers"


@dataclass(frozen=True)
class AssignmentEntry:
    """Outcome for one proposer."""

    owner_id: int
    provider_id: int | None  # owner_id = local execution, None = unassigned
    price: float = 0.0

    @property
    def local(self) -> bool:
        return self.provider_id == self.owner_id

    @property
    def unassigned(self) -> bool:
        return self.provider_id is None

    @property
    def external(self) -> bool:
        return self.provider_id is not None and self.provider_id != self.owner_id


@dataclass
class RoundTrace:
    """What happened in a single auction round."""

    round: int
    proposals: dict[int, int] = field(default_factory=dict)
    accepted: list[int] = field(default_factory=list)
    rejected: list[int] = field(default_factory=list)
    withdrawn: list[int] = field(default_factory=list)
    fallbacks: list[int] = field(default_factory=list)
    prices: dict[int, float] = field(default_factory=dict)


@dataclass
class MatchingResult:
    """Result of a matching cycle that did not hit the ceiling."""

    outcome: CycleOutcome
    entries: dict[int, AssignmentEntry] = field(default_factory=dict)
    prices: dict[int, float] = field(default_factory=dict)
    rounds: int = 0
    trace: list[RoundTrace] = field(default_factory=list)


@dataclass
class _Hold:
    owner_id: int
    price: float


class OffloadingMatcher:
    """
    Matches task-ready proposers to providers.

    The matcher reads the registry at the start of a cycle and works on
    private copies of the bid prices; ``run_cycle`` writes back only after
    a successful cycle.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        model: LinkModel | None = None,
        *,
        price_increment: float = 0.001,
        round_ceiling: int = 10_000,
        random_retention_interval: int = 1000,
        fallback_policy: FallbackPolicy = FallbackPolicy.LOCAL,
        rng: random.Random | None = None,
        record_trace: bool = True,
    ) -> None:
        if price_increment <= 0:
            raise ValueError("price_increment must be positive")
        if round_ceiling < 1 or random_retention_interval < 1:
            raise ValueError("round_ceiling and random_retention_interval must be >= 1")

        self.registry = registry
        self.model = model or LinkModel()
        self.price_increment = price_increment
        self.round_ceiling = round_ceiling
        self.random_retention_interval = random_retention_interval
        self.fallback_policy = fallback_policy
        self.rng = rng or random.Random()
        self.record_trace = record_trace

    @classmethod
    def from_settings(
        cls,
        registry: ParticipantRegistry,
        settings: Settings,
        rng: random.Random | None = None,
    ) -> OffloadingMatcher:
        return cls(
            registry,
            LinkModel.from_settings(settings),
            price_increment=settings.price_increment,
            round_ceiling=settings.round_ceiling,
            random_retention_interval=settings.random_retention_interval,
            fallback_policy=settings.fallback_policy,
            rng=rng or random.Random(settings.random_seed),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_cycle(self) -> MatchingResult:
        """Run a full cycle and commit it to the registry on success."""
        result = self.match()
        if result.outcome is CycleOutcome.MATCHED:
            self._commit(result)
        return result

    def match(self) -> MatchingResult:
        """
        Run the auction without touching the registry.

        Raises:
            MatchingFailed: the round ceiling was reached.
        """
        participants = list(self.registry.participants())
        proposers = [p.id for p in participants if p.task_ready]
        if not proposers:
            return MatchingResult(outcome=CycleOutcome.NO_PROPOSERS)

        prices = {p.id: p.bid_price for p in participants if p.is_provider}
        links = self._evaluate_links(proposers)
        logger.info(
            f"Matching {len(proposers)} proposers against {len(prices)} providers"
        )

        rejected_by: dict[int, set[int]] = {i: set() for i in proposers}
        resolved: dict[int, AssignmentEntry] = {}
        held: dict[int, _Hold] = {}
        held_by_owner: dict[int, int] = {}
        trace: list[RoundTrace] = []
        pending = list(proposers)

        for round_no in range(1, self.round_ceiling + 1):
            step = RoundTrace(round=round_no)

            # Propose
            proposals: dict[int, tuple[int, float]] = {}
            for i in pending:
                choice = self._best_provider(links[i], prices, rejected_by[i])
                if choice is None:
                    resolved[i] = self._fallback(i)
                    step.fallbacks.append(i)
                else:
                    proposals[i] = (choice, prices[choice])
                    step.proposals[i] = choice

            # Resolve contention. A node whose own task is out for
            # offloading cannot lend capacity: a settled placement rejects
            # for good, a placement still being proposed only withdraws.
            contested: set[int] = set()
            by_provider: dict[int, list[int]] = defaultdict(list)
            for i, (j, _) in proposals.items():
                if j in held_by_owner:
                    rejected_by[i].add(j)
                    step.rejected.append(i)
                    contested.add(j)
                elif j in proposals:
                    # with a local fallback a withdrawn pair is not retried
                    if self.fallback_policy is FallbackPolicy.LOCAL:
                        rejected_by[i].add(j)
                    step.withdrawn.append(i)
                    contested.add(j)
                else:
                    by_provider[j].append(i)

            for j, contenders in sorted(by_provider.items()):
                incumbent = held.get(j)
                candidates = sorted(contenders + ([incumbent.owner_id] if incumbent else []))
                if len(candidates) == 1:
                    (owner,) = candidates
                    held[j] = _Hold(owner, proposals[owner][1])
                    held_by_owner[owner] = j
                    step.accepted.append(owner)
                    continue

                keep = self._retain(j, candidates, incumbent, links, round_no)
                contested.add(j)
                for i in candidates:
                    if i == keep:
                        continue
                    rejected_by[i].add(j)
                    step.rejected.append(i)
                    if incumbent and i == incumbent.owner_id:
                        del held_by_owner[i]
                if not incumbent or keep != incumbent.owner_id:
                    held[j] = _Hold(keep, proposals[keep][1])
                    held_by_owner[keep] = j
                    step.accepted.append(keep)

            for j in contested:
                prices[j] += self.price_increment

            if self.record_trace:
                step.prices = dict(prices)
                trace.append(step)

            pending = [
                i for i in proposers if i not in resolved and i not in held_by_owner
            ]
            if round_no % 100 == 0:
                logger.debug(f"Round {round_no}: {len(pending)} proposers pending")
            if not pending:
                entries = dict(resolved)
                for owner, j in held_by_owner.items():
                    entries[owner] = AssignmentEntry(owner, j, held[j].price)
                logger.info(f"Matching converged after {round_no} rounds")
                return MatchingResult(
                    outcome=CycleOutcome.MATCHED,
                    entries=dict(sorted(entries.items())),
                    prices=prices,
                    rounds=round_no,
                    trace=trace,
                )

        raise MatchingFailed(self.round_ceiling, len(pending))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _evaluate_links(self, proposers: list[int]) -> dict[int, dict[int, float]]:
        """Total time to every feasible provider; kinematics are frozen per cycle."""
        # a provider still running an earlier task takes no new one
        providers = [
            p
            for p in self.registry.participants()
            if p.is_provider and p.hosted_owner_id is None
        ]
        links: dict[int, dict[int, float]] = {}
        for i in proposers:
            proposer = self.registry.get(i)
            links[i] = {
                p.id: total_time(proposer, p, self.model)
                for p in providers
                if feasible(proposer, p, self.model)
            }
        return links

    def _best_provider(
        self,
        candidates: dict[int, float],
        prices: dict[int, float],
        rejected: set[int],
    ) -> int | None:
        best: int | None = None
        best_preference = -math.inf
        for j, t in candidates.items():
            if j in rejected:
                continue
            preference = (1 / t if t > 0 else math.inf) - prices[j]
            if best is None or preference > best_preference:
                best = j
                best_preference = preference
        return best

    def _retain(
        self,
        provider_id: int,
        candidates: list[int],
        incumbent: _Hold | None,
        links: dict[int, dict[int, float]],
        round_no: int,
    ) -> int:
        if round_no % self.random_retention_interval == 0:
            return self.rng.choice(candidates)
        if incumbent:
            return incumbent.owner_id
        return min(candidates, key=lambda i: (links[i][provider_id], i))

    def _fallback(self, owner_id: int) -> AssignmentEntry:
        if self.fallback_policy is FallbackPolicy.LOCAL:
            return AssignmentEntry(owner_id, owner_id, 0.0)
        return AssignmentEntry(owner_id, None, 0.0)

    def _commit(self, result: MatchingResult) -> None:
        for provider_id, price in result.prices.items():
            self.registry.set_bid_price(provider_id, price)
        for entry in result.entries.values():
            self.registry.set_assignment(entry.owner_id, entry.provider_id)
            if entry.external:
                self.registry.set_hosted_owner(entry.provider_id, entry.owner_id)  # type: ignore[arg-type]
            if not entry.unassigned:
                self.registry.clear_task(entry.owner_id)
