from __future__ import annotations

import io
import json
from typing import Any, Sequence

import pytest

from packdeploy_core.bootstrap import (
    BootstrapOutput,
    CliPromptAdapter,
    DenyPromptAdapter,
    JsonPromptAdapter,
    Question,
    run_bootstrap_flow,
)
from packdeploy_core.errors import (
    ConfigError,
    InteractionDeniedError,
    InvalidFlowError,
    MissingAnswerError,
    NoInputError,
    NoOutputError,
    UnsupportedStepError,
)


class _RecordingAdapter:
    def __init__(self, answers: dict[str, Any] | None = None) -> None:
        self.answers = answers or {}
        self.calls: list[list[str]] = []

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        self.calls.append([question.id for question in questions])
        return {question.id: self.answers.get(question.id, question.default) for question in questions}


def _installer(result: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "installer_call", "result": result}


_REGION_FLOW = {
    "steps": [
        {"kind": "prompt", "questions": [{"id": "region", "prompt": "Region", "default": "us-east-1"}]},
        _installer({"output_version": "v1", "config_patch": {"region": "{{region}}"}, "ready": True}),
    ]
}


def test_prompt_then_installer_completes_with_full_history() -> None:
    adapter = _RecordingAdapter({"region": "eu-west-1"})

    result = run_bootstrap_flow(_REGION_FLOW, adapter)

    assert adapter.calls == [["region"]]
    assert result.status_history == (
        "waiting_for_answers",
        "validating",
        "applying_config",
        "deploying",
        "completed",
    )
    assert result.output.ready is True


def test_answers_are_not_substituted_into_installer_output() -> None:
    result = run_bootstrap_flow(json.dumps(_REGION_FLOW).encode("utf-8"), _RecordingAdapter({"region": "eu-west-1"}))

    assert result.output.config_patch == {"region": "{{region}}"}


def test_yaml_flow_document_is_accepted() -> None:
    document = """
steps:
  - kind: installer_call
    result:
      output_version: v1
      ready: false
      warnings: [needs manual step]
"""
    result = run_bootstrap_flow(document, _RecordingAdapter())

    assert result.status_history == ("waiting_for_answers", "deploying", "failed")
    assert result.output.warnings == ("needs manual step",)


def test_last_installer_call_wins() -> None:
    flow = {
        "steps": [
            _installer({"output_version": "v1", "config_patch": {"n": 1}, "ready": False}),
            _installer({"output_version": "v1", "config_patch": {"n": 2}, "ready": True}),
        ]
    }

    result = run_bootstrap_flow(flow, _RecordingAdapter())

    assert result.output.config_patch == {"n": 2}
    assert result.status_history[-1] == "completed"


def test_unsupported_step_fails_immediately() -> None:
    adapter = _RecordingAdapter()
    flow = {
        "steps": [
            {"kind": "http_call", "url": "https://example.com"},
            {"kind": "prompt", "questions": [{"id": "region"}]},
        ]
    }

    with pytest.raises(UnsupportedStepError, match="not allowed in bootstrap mode: http_call"):
        run_bootstrap_flow(flow, adapter)
    assert adapter.calls == []


def test_flow_without_installer_call_has_no_output() -> None:
    flow = {"steps": [{"kind": "prompt", "questions": [{"id": "region", "default": "x"}]}]}

    with pytest.raises(NoOutputError):
        run_bootstrap_flow(flow, _RecordingAdapter())


@pytest.mark.parametrize(
    "flow",
    [
        {"steps": "nope"},
        {"no_steps": []},
        {"steps": [{"kind": "installer_call"}]},
        {"steps": [_installer({"ready": True})]},
        {"steps": [_installer({"output_version": "v1", "ready": "yes"})]},
        {"steps": [{"kind": "prompt", "questions": ["region"]}]},
    ],
)
def test_malformed_flows_are_rejected(flow: dict[str, Any]) -> None:
    with pytest.raises(InvalidFlowError):
        run_bootstrap_flow(flow, _RecordingAdapter())


def test_redacted_output_drops_secret_values() -> None:
    output = BootstrapOutput.from_dict(
        {
            "output_version": "v1",
            "ready": True,
            "secrets_writes": [{"key": "token", "value": "s3cr3t", "scope": "platform"}],
        }
    )

    redacted = output.redacted()

    assert output.secrets_writes[0].value == "s3cr3t"
    assert redacted.secrets_writes[0].value is None
    assert "s3cr3t" not in json.dumps(redacted.to_dict())
    assert redacted.secrets_writes[0].storage_key == "platform/token"


def test_cli_adapter_uses_input_and_defaults() -> None:
    stdin = io.StringIO("eu-west-1\n\n")
    stdout = io.StringIO()
    adapter = CliPromptAdapter(stdin, stdout)

    answers = adapter.ask([Question("region", "Region"), Question("tier", "Tier", default="small")])

    assert answers == {"region": "eu-west-1", "tier": "small"}
    assert stdout.getvalue() == "Region: Tier [default: small]: "


def test_cli_adapter_blank_without_default_fails() -> None:
    adapter = CliPromptAdapter(io.StringIO(""), io.StringIO())

    with pytest.raises(NoInputError, match="region"):
        adapter.ask([Question("region", "Region")])


def test_json_adapter_fills_defaults_and_requires_answers() -> None:
    adapter = JsonPromptAdapter({"region": "eu-west-1"})

    assert adapter.ask([Question("region", "Region"), Question("tier", "Tier", default="small")]) == {
        "region": "eu-west-1",
        "tier": "small",
    }
    with pytest.raises(MissingAnswerError, match="device_name"):
        adapter.ask([Question("device_name", "Device name")])


def test_json_adapter_requires_object() -> None:
    with pytest.raises(ConfigError):
        JsonPromptAdapter(["not", "an", "object"])


def test_deny_adapter_refuses_prompts() -> None:
    with pytest.raises(InteractionDeniedError, match="disabled by policy"):
        DenyPromptAdapter().ask([Question("region", "Region")])
