"""``packdeploy platform {install,upgrade,status}``."""

from __future__ import annotations

import json
import logging
import sys
from argparse import ArgumentParser, Namespace
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from packdeploy_core.bootstrap.interaction import InteractionMode
from packdeploy_core.config import PlatformConfig, load_answers_file, load_platform_config
from packdeploy_core.errors import DeployerError
from packdeploy_core.platform.orchestrator import OperationReport, PlatformContext, PlatformOrchestrator

logger = logging.getLogger(__name__)


class _PlatformCommand:
    name = ""

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--workspace-dir", default=".", help="Workspace root directory")
        parser.add_argument("--state-path", help="Bootstrap state file (overrides [platform].state_path)")

    def __init__(self, context: PlatformContext | None = None) -> None:
        self.context = context

    def _prefix(self) -> str:
        return f"[platform:{self.name}]"

    def _config(self, argv: Namespace) -> PlatformConfig:
        workspace_root = Path(getattr(argv, "workspace_dir", None) or ".").resolve()
        config = load_platform_config(workspace_root)
        state_path = getattr(argv, "state_path", None)
        if state_path:
            config = replace(config, state_path=Path(state_path))
        return config

    def execute(self, argv: Namespace) -> int:
        try:
            return self.run(self._config(argv), argv)
        except (DeployerError, OSError) as exc:
            logger.debug("platform %s failed", self.name, exc_info=True)
            print(f"{self._prefix()} failed: {exc}")
            return 1
        except Exception as exc:
            logger.debug("unexpected error during platform %s", self.name, exc_info=True)
            print(f"{self._prefix()} unexpected failure: {exc}")
            return 1

    def run(self, config: PlatformConfig, argv: Namespace) -> int:
        raise NotImplementedError


class _OperationCommand(_PlatformCommand):
    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        super().configure(parser)
        parser.add_argument("--pack", help="Local pack path or oci://host/repo[:tag]")
        parser.add_argument(
            "--interaction",
            choices=[mode.value for mode in InteractionMode],
            help="Prompt transport (overrides [interaction].mode)",
        )
        parser.add_argument("--answers", help="JSON or YAML file with pre-supplied answers")
        parser.add_argument("--no-verify", action="store_true", help="Skip pack signature checks")
        parser.add_argument("--strict", action="store_true", help="Fail when the pack carries no signatures")

    def _config(self, argv: Namespace) -> PlatformConfig:
        config = super()._config(argv)
        overrides: dict[str, Any] = {}
        if getattr(argv, "pack", None):
            overrides["pack"] = str(argv.pack)
        if getattr(argv, "interaction", None):
            overrides["interaction"] = InteractionMode.parse(argv.interaction)
        if getattr(argv, "answers", None):
            overrides["answers"] = load_answers_file(Path(argv.answers))
        if getattr(argv, "no_verify", False):
            overrides["verify"] = False
        if getattr(argv, "strict", False):
            overrides["strict"] = True
        return replace(config, **overrides) if overrides else config

    def operate(self, orchestrator: PlatformOrchestrator) -> OperationReport:
        raise NotImplementedError

    def run(self, config: PlatformConfig, argv: Namespace) -> int:
        report = self.operate(PlatformOrchestrator(config, self.context))
        prefix = self._prefix()
        print(f"{prefix} {report.operation} {report.pack_id}@{report.version}")
        print(f"{prefix} digest={report.digest}")
        print(f"{prefix} flow={report.flow_id} status={' -> '.join(report.status_history)}")
        for warning in report.warnings:
            print(f"{prefix} warning: {warning}")
        if report.state.rollback_ref:
            print(f"{prefix} rollback_ref={report.state.rollback_ref}")
        return 0


class InstallCommand(_OperationCommand):
    name = "install"

    def operate(self, orchestrator: PlatformOrchestrator) -> OperationReport:
        return orchestrator.install()


class UpgradeCommand(_OperationCommand):
    name = "upgrade"

    def operate(self, orchestrator: PlatformOrchestrator) -> OperationReport:
        return orchestrator.upgrade()


class StatusCommand(_PlatformCommand):
    name = "status"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        super().configure(parser)
        parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")

    def run(self, config: PlatformConfig, argv: Namespace) -> int:
        report = PlatformOrchestrator(config, self.context).status()
        if getattr(argv, "format", "text") == "json":
            print(json.dumps(report.to_dict(), indent=2))
            return 0
        prefix = self._prefix()
        if report.state is None:
            print(f"{prefix} not installed (state file {config.state_path})")
        else:
            for key, value in report.state.to_dict().items():
                if value is not None:
                    print(f"{prefix} {key}={value}")
        adapters = ", ".join(kind.value for kind in report.capabilities.adapters) or "none"
        print(f"{prefix} adapters={adapters}")
        for reason in report.capabilities.disabled_reasons:
            print(f"{prefix} disabled: {reason}")
        return 0


COMMANDS: tuple[type[_PlatformCommand], ...] = (InstallCommand, UpgradeCommand, StatusCommand)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="packdeploy", description="Platform pack bootstrap and upgrade")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    groups = parser.add_subparsers(dest="group", required=True)
    platform = groups.add_parser("platform", help="Install, upgrade or inspect the platform pack")
    commands = platform.add_subparsers(dest="command", required=True)
    for command_cls in COMMANDS:
        sub = commands.add_parser(command_cls.name)
        command_cls.configure(sub)
        sub.set_defaults(command_cls=command_cls)
    return parser


def main(argv: Sequence[str] | None = None, context: PlatformContext | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    command = args.command_cls(context)
    return command.execute(args)
