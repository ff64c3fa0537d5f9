"""Translate matching results into outbound notifications."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from offload_contract import TaskAssignmentPayload, TaskCompletionPayload

from offload_broker.matcher import MatchingResult
from offload_broker.registry import ParticipantRegistry

logger = logging.getLogger(__name__)

AssignmentPublisher = Callable[[TaskAssignmentPayload], Awaitable[None]]
CompletionPublisher = Callable[[TaskCompletionPayload], Awaitable[None]]


class AssignmentDispatcher:
    """Emit one assignment notification per resolved proposer."""

    def __init__(
        self,
        registry: ParticipantRegistry,
        local_execution_address: str,
        publish_assignment: AssignmentPublisher | None = None,
        publish_completion: CompletionPublisher | None = None,
    ) -> None:
        self._registry = registry
        self._local_address = local_execution_address
        self._publish_assignment = publish_assignment
        self._publish_completion = publish_completion

    def build(self, result: MatchingResult) -> list[TaskAssignmentPayload]:
        notifications: list[TaskAssignmentPayload] = []
        for entry in result.entries.values():
            owner = self._registry.address_of(entry.owner_id)
            if entry.unassigned:
                logger.info(f"No provider for {owner}; task left unassigned")
                continue
            if entry.local:
                notifications.append(
                    TaskAssignmentPayload(
                        task_owner=owner,
                        provider_id=None,
                        provider_address=self._local_address,
                        price=0.0,
                    )
                )
                continue
            notifications.append(
                TaskAssignmentPayload(
                    task_owner=owner,
                    provider_id=entry.provider_id,
                    provider_address=self._registry.address_of(entry.provider_id),  # type: ignore[arg-type]
                    price=entry.price,
                )
            )
        return notifications

    async def dispatch(self, result: MatchingResult) -> list[TaskAssignmentPayload]:
        notifications = self.build(result)
        if self._publish_assignment:
            for notification in notifications:
                await self._publish_assignment(notification)
        logger.info(f"Dispatched {len(notifications)} task assignments")
        return notifications

    async def relay_completion(
        self, provider_id: int, result: str
    ) -> TaskCompletionPayload | None:
        """Forward a provider's completion notice to the task owner it hosts."""
        owner_id = self._registry.get(provider_id).hosted_owner_id
        if owner_id is None:
            logger.warning(
                "Completion from %s but it hosts no task",
                self._registry.address_of(provider_id),
            )
            return None

        notice = TaskCompletionPayload(
            task_owner=self._registry.address_of(owner_id),
            provider_address=self._registry.address_of(provider_id),
            result=result,
        )
        self._registry.set_hosted_owner(provider_id, None)
        if self._publish_completion:
            await self._publish_completion(notice)
        return notice
