"""
MQTT Client for Offload-Broker.

Subscribes to participant events and publishes contract menus,
task assignments and relayed completions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, cast

import paho.mqtt.client as mqtt
from offload_contract import (
    CONTRACT_MENU_TOPIC,
    EVENT_SUBSCRIPTION,
    ContractMenuPayload,
    TaskAssignmentPayload,
    TaskCompletionPayload,
    assignment_topic,
    completion_topic,
    event_kind_from_topic,
)
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class OffloadMQTTClient:
    """Async wrapper for Paho MQTT client."""

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        client_id: str = "offload-broker",
        on_event: Callable[[dict[str, Any]], Awaitable[None]] | None = None,
    ) -> None:
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self._on_event = on_event
        self._client: mqtt.Client | None = None
        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect and subscribe."""
        self._loop = asyncio.get_running_loop()
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id
        )
        client_any = cast(Any, self._client)
        client_any.on_connect = self._on_connect
        client_any.on_disconnect = self._on_disconnect
        client_any.on_message = self._on_message

        try:
            self._client.connect_async(self.broker_host, self.broker_port)
            self._client.loop_start()

            for _ in range(50):
                if self._connected:
                    self._client.subscribe(EVENT_SUBSCRIPTION, qos=1)
                    logger.info(
                        "Connected to MQTT broker at %s:%s",
                        self.broker_host,
                        self.broker_port,
                    )
                    return
                await asyncio.sleep(0.1)
            logger.warning("MQTT connection timeout - continuing without MQTT")
        except Exception as e:
            logger.warning(f"MQTT connection failed: {e} - continuing without MQTT")

    async def ensure_connected(self) -> None:
        """Best-effort reconnect."""
        if self._connected:
            return
        if not self._client:
            await self.connect()
            return
        try:
            self._client.connect_async(self.broker_host, self.broker_port)
            for _ in range(20):
                if self._connected:
                    self._client.subscribe(EVENT_SUBSCRIPTION, qos=1)
                    return
                await asyncio.sleep(0.1)
        except Exception as e:
            logger.debug("MQTT reconnect failed: %s", e)

    async def disconnect(self) -> None:
        if self._client:
            self._client.loop_stop()
            self._client.disconnect()
            self._connected = False
            self._client = None

    async def publish_contract_menu(self, menu: ContractMenuPayload) -> None:
        await self._publish(CONTRACT_MENU_TOPIC, menu)

    async def publish_assignment(self, assignment: TaskAssignmentPayload) -> None:
        await self._publish(assignment_topic(assignment.task_owner), assignment)

    async def publish_completion(self, notice: TaskCompletionPayload) -> None:
        await self._publish(completion_topic(notice.task_owner), notice)

    async def _publish(self, topic: str, payload: BaseModel) -> None:
        await self.ensure_connected()
        if not self._connected or not self._client:
            logger.debug("MQTT not connected, skipping publish to %s", topic)
            return

        try:
            result = self._client.publish(topic, payload.model_dump_json(), qos=1)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.debug(f"Published to {topic}")
            else:
                logger.warning(f"Failed to publish to {topic}: {result.rc}")
        except Exception as e:
            logger.error(f"MQTT publish error: {e}")

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code == 0:
            self._connected = True
            logger.debug("MQTT connected")
        else:
            logger.warning("MQTT connect failed: %s", reason_code)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected = False
        logger.debug("MQTT disconnected")

    def _on_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        message: mqtt.MQTTMessage,
    ) -> None:
        try:
            payload = json.loads(message.payload.decode())
            if isinstance(payload, dict) and "kind" not in payload:
                kind = event_kind_from_topic(message.topic)
                if kind:
                    payload["kind"] = kind
            if self._on_event and self._loop:
                coro = cast(
                    Coroutine[Any, Any, None],
                    self._on_event(payload),
                )
                asyncio.run_coroutine_threadsafe(coro, self._loop)
        except Exception as e:
            logger.error("Failed to process participant event: %s", e)
