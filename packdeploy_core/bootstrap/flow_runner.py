"""Interpreter for the bootstrap flows embedded in platform packs.

Allowed steps:

- ``installer_call``: captures ``result`` as the flow output (last one wins)
- ``prompt``: asks the adapter; answers are not fed back into later steps,
  so placeholder tokens in installer results survive as written

Every other step kind is denied in bootstrap mode.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

import yaml

from packdeploy_core.errors import InvalidFlowError, MissingAnswerError, NoOutputError, UnsupportedStepError

from .output import BootstrapOutput

logger = logging.getLogger(__name__)

STATUS_WAITING = "waiting_for_answers"
STATUS_DEPLOYING = "deploying"
STATUS_VALIDATING = "validating"
STATUS_APPLYING = "applying_config"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Question:
    id: str
    prompt: str
    default: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Question":
        question_id = str(payload.get("id") or "").strip()
        if not question_id:
            raise InvalidFlowError("prompt question requires an id")
        default = payload.get("default")
        return cls(
            id=question_id,
            prompt=str(payload.get("prompt") or question_id),
            default=str(default) if default is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "prompt": self.prompt}
        if self.default is not None:
            payload["default"] = self.default
        return payload


def questions_schema(questions: Sequence[Question]) -> dict[str, Any]:
    return {"questions": [question.to_dict() for question in questions]}


def collect_answers(questions: Sequence[Question], provided: Mapping[str, Any]) -> dict[str, Any]:
    """One answer per question: provided value, else default, else failure."""
    answers: dict[str, Any] = {}
    for question in questions:
        if question.id in provided and provided[question.id] is not None:
            answers[question.id] = provided[question.id]
        elif question.default is not None:
            answers[question.id] = question.default
        else:
            raise MissingAnswerError(question.id)
    return answers


class PromptAdapter(Protocol):
    def ask(self, questions: Sequence[Question]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class FlowExecutionResult:
    output: BootstrapOutput
    status_history: tuple[str, ...] = field(default_factory=tuple)


def decode_flow(document: bytes | str | Mapping[str, Any]) -> list[Mapping[str, Any]]:
    if isinstance(document, Mapping):
        payload: Any = document
    else:
        text = document.decode("utf-8") if isinstance(document, bytes) else document
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            try:
                payload = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise InvalidFlowError(f"invalid ygtc format: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise InvalidFlowError("invalid ygtc format: flow must be an object")
    steps = payload.get("steps")
    if not isinstance(steps, list) or not all(isinstance(step, Mapping) for step in steps):
        raise InvalidFlowError("invalid ygtc format: 'steps' must be a list of objects")
    return steps


def run_bootstrap_flow(
    document: bytes | str | Mapping[str, Any],
    prompt_adapter: PromptAdapter,
) -> FlowExecutionResult:
    steps = decode_flow(document)
    statuses = [STATUS_WAITING]
    output: BootstrapOutput | None = None

    for index, step in enumerate(steps):
        kind = str(step.get("kind") or "")
        if kind == "installer_call":
            statuses.append(STATUS_DEPLOYING)
            if step.get("result") is None:
                raise InvalidFlowError(f"installer_call at step {index} missing result")
            output = BootstrapOutput.from_dict(step["result"])
        elif kind == "prompt":
            statuses.append(STATUS_VALIDATING)
            raw_questions = step.get("questions") or []
            if not isinstance(raw_questions, list):
                raise InvalidFlowError(f"prompt at step {index} has invalid questions")
            if not all(isinstance(item, Mapping) for item in raw_questions):
                raise InvalidFlowError(f"prompt at step {index} questions must be objects")
            questions = [Question.from_dict(item) for item in raw_questions]
            answers = prompt_adapter.ask(questions)
            logger.debug("prompt answered step=%s questions=%s", index, sorted(answers))
            statuses.append(STATUS_APPLYING)
        else:
            raise UnsupportedStepError(kind)

    if output is None:
        raise NoOutputError()
    statuses.append(STATUS_COMPLETED if output.ready else STATUS_FAILED)
    return FlowExecutionResult(output=output, status_history=tuple(statuses))
