"""Terminal, pre-supplied JSON and deny-all prompt adapters."""

from __future__ import annotations

import sys
from typing import Any, Mapping, Sequence, TextIO

from packdeploy_core.errors import ConfigError, InteractionDeniedError, NoInputError

from .flow_runner import Question, collect_answers


class CliPromptAdapter:
    def __init__(self, input_stream: TextIO | None = None, output_stream: TextIO | None = None) -> None:
        self.input = input_stream if input_stream is not None else sys.stdin
        self.output = output_stream if output_stream is not None else sys.stdout

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        answers: dict[str, Any] = {}
        for question in questions:
            hint = f" [default: {question.default}]" if question.default is not None else ""
            self.output.write(f"{question.prompt}{hint}: ")
            self.output.flush()
            answer = self.input.readline().strip()
            if answer:
                answers[question.id] = answer
            elif question.default is not None:
                answers[question.id] = question.default
            else:
                raise NoInputError(question.id)
        return answers


class JsonPromptAdapter:
    """Answers supplied up front, e.g. from ``--answers answers.json``."""

    def __init__(self, answers: Any) -> None:
        if not isinstance(answers, Mapping):
            raise ConfigError("answers JSON must be an object")
        self.answers = dict(answers)

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        return collect_answers(questions, self.answers)


class DenyPromptAdapter:
    def __init__(self, reason: str = "interactive prompts are disabled by policy") -> None:
        self.reason = reason

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        raise InteractionDeniedError(self.reason)
