from __future__ import annotations

import json
from pathlib import Path

import pytest

from packdeploy_cli.main import main as cli_main
from packdeploy_core.bootstrap import BootstrapState, InteractionMode, StateBackend, load_state, save_state
from packdeploy_core.config import PlatformConfig, load_platform_config
from packdeploy_core.errors import ConfigError
from packdeploy_core.platform import build_platform_pack

_FLOW = {
    "steps": [
        {"kind": "prompt", "questions": [{"id": "region", "prompt": "Region"}]},
        {
            "kind": "installer_call",
            "result": {
                "output_version": "v1",
                "config_patch": {"region": "{{region}}"},
                "secrets_writes": [{"key": "token", "value": "hunter2"}],
                "ready": True,
            },
        },
    ]
}


def _write_config(workspace: Path, content: str) -> None:
    config_dir = workspace / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.toml").write_text(content, encoding="utf-8")


def _build_pack(path: Path, version: str, signed: bool = True) -> Path:
    signatures = [{"key_id": "release", "signature": "c2ln"}] if signed else []
    return build_platform_pack(
        path,
        {"pack_id": "acme.platform", "version": version, "signatures": signatures},
        {"platform_install": _FLOW, "platform_upgrade": _FLOW},
    )


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = load_platform_config(tmp_path)

    assert config.pack is None
    assert config.state_path == tmp_path / "state" / "bootstrap_state.json"
    assert config.secrets_backend == f"file:{tmp_path / 'state' / 'secrets.json'}"
    assert config.interaction is InteractionMode.CLI
    assert config.state_backend is StateBackend.FILE
    assert config.verify is True
    assert config.network_policy().allow_network is False


def test_config_sections_are_loaded(tmp_path: Path) -> None:
    (tmp_path / "answers.yaml").write_text("region: eu-west-1\n", encoding="utf-8")
    _write_config(
        tmp_path,
        """
[platform]
pack = "packs/platform.gtpack"
state_path = "/var/lib/packdeploy/state.json"
secrets_backend = "k8s:platform/bootstrap"
verify = false
environment_kind = "edge"

[network]
allow_network = true
net_allowlist = ["registry.local", "10.0.0.0/8"]

[interaction]
mode = "json"
answers_path = "answers.yaml"
http_bind = "127.0.0.1:8089"
mqtt_device_id = "edge-7"
""",
    )

    config = load_platform_config(tmp_path)

    assert config.pack == str(tmp_path / "packs" / "platform.gtpack")
    assert config.state_path == Path("/var/lib/packdeploy/state.json")
    assert config.secrets_backend == "k8s:platform/bootstrap"
    assert config.verify is False
    assert config.environment_kind == "edge"
    assert config.interaction is InteractionMode.JSON
    assert config.answers == {"region": "eu-west-1"}
    assert config.http_bind == "127.0.0.1:8089"
    assert config.mqtt_device_id == "edge-7"
    assert config.net_allowlist == ("registry.local", "10.0.0.0/8")
    assert config.network_policy().allowlist_configured is True


def test_oci_pack_reference_is_kept_verbatim(tmp_path: Path) -> None:
    _write_config(tmp_path, '[platform]\npack = "oci://registry.local/acme/platform:1.0.0"\n')

    assert load_platform_config(tmp_path).pack == "oci://registry.local/acme/platform:1.0.0"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("[platform\n", "invalid config file"),
        ('[interaction]\nmode = "fax"\n', "unknown interaction mode"),
        ('[network]\nallow_network = "yes"\n', "must be a boolean"),
        ('[interaction]\nanswers = "eu-west-1"\n', "answers JSON must be an object"),
        ('[interaction]\nanswers_path = "missing.json"\n', "does not exist"),
        ('platform = "x"\n', "must be a table"),
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str, message: str) -> None:
    _write_config(tmp_path, content)

    with pytest.raises(ConfigError, match=message):
        load_platform_config(tmp_path)


def test_cli_install_status_and_upgrade(tmp_path: Path, capfd) -> None:
    workspace = tmp_path / "ws"
    pack_v1 = _build_pack(workspace / "packs" / "platform-1.0.0.gtpack", "1.0.0")
    pack_v2 = _build_pack(workspace / "packs" / "platform-1.1.0.gtpack", "1.1.0", signed=False)
    _write_config(workspace, '[interaction]\nmode = "json"\nanswers = { region = "eu-west-1" }\n')

    code = cli_main(["platform", "install", "--workspace-dir", str(workspace), "--pack", str(pack_v1)])
    out = capfd.readouterr().out
    assert code == 0
    assert "[platform:install] install acme.platform@1.0.0" in out
    assert "hunter2" not in out

    code = cli_main(["platform", "status", "--workspace-dir", str(workspace), "--format", "json"])
    payload = json.loads(capfd.readouterr().out)
    assert code == 0
    assert payload["installed"] is True
    assert payload["state"]["version"] == "1.0.0"

    code = cli_main(["platform", "upgrade", "--workspace-dir", str(workspace), "--pack", str(pack_v2)])
    out = capfd.readouterr().out
    assert code == 0
    assert "[platform:upgrade] warning: pack missing signatures" in out
    assert "[platform:upgrade] rollback_ref=1.0.0@sha256:" in out
    state = load_state(workspace / "state" / "bootstrap_state.json")
    assert state is not None and state.version == "1.1.0"


def test_cli_reports_failures_with_exit_code(tmp_path: Path, capfd) -> None:
    workspace = tmp_path / "ws"
    pack = _build_pack(workspace / "platform.gtpack", "1.0.0")
    save_state(workspace / "state" / "bootstrap_state.json", BootstrapState(version="2.0.0"))

    code = cli_main(
        ["platform", "upgrade", "--workspace-dir", str(workspace), "--pack", str(pack), "--interaction", "json"]
    )

    out = capfd.readouterr().out
    assert code == 1
    assert out.startswith("[platform:upgrade] failed: upgrade requires a newer pack version")


def test_cli_status_not_installed_text(tmp_path: Path, capfd) -> None:
    code = cli_main(["platform", "status", "--workspace-dir", str(tmp_path)])

    out = capfd.readouterr().out
    assert code == 0
    assert "[platform:status] not installed" in out
    assert "[platform:status] adapters=cli" in out


def test_cli_answers_file_override(tmp_path: Path, capfd) -> None:
    workspace = tmp_path / "ws"
    pack = _build_pack(workspace / "platform.gtpack", "1.0.0")
    answers = tmp_path / "answers.json"
    answers.write_text(json.dumps({"region": "ap-south-1"}), encoding="utf-8")

    code = cli_main(
        [
            "platform",
            "install",
            "--workspace-dir",
            str(workspace),
            "--pack",
            str(pack),
            "--interaction",
            "json",
            "--answers",
            str(answers),
        ]
    )

    assert code == 0
    assert "completed" in capfd.readouterr().out


def test_platform_config_is_frozen() -> None:
    config = PlatformConfig()

    with pytest.raises(AttributeError):
        config.verify = False  # type: ignore[misc]


def test_cli_reports_io_failures_with_exit_code(tmp_path: Path, capfd) -> None:
    workspace = tmp_path / "ws"
    pack = _build_pack(workspace / "platform.gtpack", "1.0.0")
    (workspace / "blocker").write_text("", encoding="utf-8")
    _write_config(
        workspace,
        '[platform]\nconfig_patch_path = "blocker/patch.json"\n\n'
        '[interaction]\nmode = "json"\nanswers = { region = "eu-west-1" }\n',
    )

    code = cli_main(["platform", "install", "--workspace-dir", str(workspace), "--pack", str(pack)])

    out = capfd.readouterr().out
    assert code == 1
    assert out.startswith("[platform:install] failed: ")
    assert load_state(workspace / "state" / "bootstrap_state.json") is None
    assert not (workspace / "state" / "secrets.json").exists()


def test_console_entry_point_reads_sys_argv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capfd) -> None:
    from packdeploy_cli.__main__ import main as entry_main

    monkeypatch.setattr("sys.argv", ["packdeploy", "platform", "status", "--workspace-dir", str(tmp_path)])

    assert entry_main() == 0
    assert "[platform:status] not installed" in capfd.readouterr().out
