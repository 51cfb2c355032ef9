"""Prompt adapter over a publish/subscribe broker."""

from __future__ import annotations

import json
import logging
import queue
from typing import Any, Sequence

from packdeploy_core.errors import InteractionError, InteractionTimeoutError
from packdeploy_core.network import NetworkPolicy

from .broker import Broker
from .flow_runner import Question, collect_answers, questions_schema

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_PREFIX = "packdeploy/bootstrap"


class MqttPromptAdapter:
    def __init__(
        self,
        broker: Broker,
        device_id: str,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        timeout: float = 5.0,
    ) -> None:
        self.broker = broker
        self.device_id = device_id
        self.topic_prefix = topic_prefix.rstrip("/")
        self.timeout = float(timeout)
        self.network_policy: NetworkPolicy | None = None
        self.broker_host: str | None = None

    def with_network_policy(self, policy: NetworkPolicy, broker_host: str) -> "MqttPromptAdapter":
        policy.enforce(broker_host)
        self.network_policy = policy
        self.broker_host = broker_host
        return self

    @property
    def schema_topic(self) -> str:
        return f"{self.topic_prefix}/{self.device_id}/schema"

    @property
    def answers_topic(self) -> str:
        return f"{self.topic_prefix}/{self.device_id}/answers"

    @property
    def status_topic(self) -> str:
        return f"{self.topic_prefix}/{self.device_id}/status"

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        if self.network_policy is not None and self.broker_host is not None:
            self.network_policy.enforce(self.broker_host)

        # subscribe before publishing so an immediate reply is not lost
        subscription = self.broker.subscribe(self.answers_topic)
        try:
            self.broker.publish(self.schema_topic, json.dumps(questions_schema(questions)).encode("utf-8"))
            logger.debug("published prompt schema topic=%s", self.schema_topic)
            try:
                raw = subscription.get(timeout=self.timeout)
            except queue.Empty as exc:
                raise InteractionTimeoutError("timeout waiting for MQTT answers") from exc
        finally:
            subscription.close()

        try:
            provided = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InteractionError(f"invalid MQTT answers payload: {exc}") from exc
        if not isinstance(provided, dict):
            raise InteractionError("invalid MQTT answers payload: expected a JSON object")

        answers = collect_answers(questions, provided)
        self.broker.publish(self.status_topic, json.dumps({"status": "answers_received"}).encode("utf-8"))
        return answers
