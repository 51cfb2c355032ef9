"""End-to-end platform install, upgrade and status operations.

Commit order within one run is secrets, then config patch, then the deploy
hook, then the state record. Every mutable target is snapshotted before the
first write; a failure in any of the first three steps restores the
snapshots in reverse order (config first, then secrets) before the error
propagates. A failure while restoring surfaces as :class:`RollbackError`
carrying both the original cause and every restore failure.

Nothing is compensated once the deploy hook has returned: a failure while
persisting the state record leaves the committed secrets and config patch in
place.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, TextIO

from packdeploy_core.bootstrap.broker import Broker
from packdeploy_core.bootstrap.capabilities import HostCapabilities, build_host_capabilities
from packdeploy_core.bootstrap.config_patch import (
    apply_config_patch,
    default_config_patch_path,
    restore_config,
    snapshot_config,
)
from packdeploy_core.bootstrap.flow_runner import PromptAdapter, run_bootstrap_flow
from packdeploy_core.bootstrap.http_adapter import HttpPromptAdapter
from packdeploy_core.bootstrap.interaction import InteractionAdapterKind, InteractionMode
from packdeploy_core.bootstrap.mqtt_adapter import MqttPromptAdapter
from packdeploy_core.bootstrap.output import BootstrapOutput
from packdeploy_core.bootstrap.prompts import CliPromptAdapter, DenyPromptAdapter, JsonPromptAdapter
from packdeploy_core.bootstrap.secrets import parse_backend
from packdeploy_core.bootstrap.state import (
    BootstrapState,
    ensure_upgrade_allowed,
    load_state_backend,
    save_state_backend,
)
from packdeploy_core.config import PlatformConfig
from packdeploy_core.errors import ConfigError, FlowError, RollbackError
from packdeploy_core.oci.cache import resolve_oci_pack
from packdeploy_core.oci.client import OciFetcher

from .pack import PlatformPackInfo, load_bootstrap_flow, load_platform_pack
from .verify import verify_platform_pack

logger = logging.getLogger(__name__)

DeployHook = Callable[[PlatformPackInfo, BootstrapOutput], None]

OPERATION_INSTALL = "install"
OPERATION_UPGRADE = "upgrade"


def noop_deploy_hook(info: PlatformPackInfo, output: BootstrapOutput) -> None:
    logger.info(
        "deploy plan execution skipped (no deploy hook configured) pack=%s version=%s",
        info.manifest.pack_id,
        info.manifest.version,
    )


@dataclass
class PlatformContext:
    """Collaborators handed to the orchestrator instead of process globals."""

    cache_root: Path | None = None
    broker: Broker | None = None
    k8s_secret_dir: Path | None = None
    fetcher: OciFetcher | None = None
    stdin: TextIO | None = None
    stdout: TextIO | None = None
    deploy_hook: DeployHook | None = None


@dataclass(frozen=True)
class OperationReport:
    operation: str
    pack_path: Path
    pack_id: str
    version: str
    digest: str
    flow_id: str
    output: BootstrapOutput
    status_history: tuple[str, ...]
    warnings: tuple[str, ...]
    state: BootstrapState

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "pack_path": str(self.pack_path),
            "pack_id": self.pack_id,
            "version": self.version,
            "digest": self.digest,
            "flow_id": self.flow_id,
            "output": self.output.to_dict(),
            "status_history": list(self.status_history),
            "warnings": list(self.warnings),
            "state": self.state.to_dict(),
        }


@dataclass(frozen=True)
class StatusReport:
    state: BootstrapState | None
    capabilities: HostCapabilities

    @property
    def installed(self) -> bool:
        return self.state is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "installed": self.installed,
            "state": self.state.to_dict() if self.state is not None else None,
            "adapters": [kind.value for kind in self.capabilities.adapters],
            "disabled_reasons": list(self.capabilities.disabled_reasons),
        }


@dataclass
class _SelectedAdapter:
    adapter: PromptAdapter
    warnings: list[str] = field(default_factory=list)


class PlatformOrchestrator:
    def __init__(self, config: PlatformConfig, context: PlatformContext | None = None) -> None:
        self.config = config
        self.context = context or PlatformContext()
        self.network_policy = config.network_policy()

    def install(self) -> OperationReport:
        return self._run(OPERATION_INSTALL)

    def upgrade(self) -> OperationReport:
        return self._run(OPERATION_UPGRADE)

    def status(self) -> StatusReport:
        state = load_state_backend(self.config.state_backend, self.config.state_path)
        return StatusReport(state=state, capabilities=self.capabilities())

    def capabilities(self) -> HostCapabilities:
        return build_host_capabilities(
            self.config.interaction,
            self.config.allow_listeners,
            self.network_policy,
        )

    def resolve_pack_path(self) -> Path:
        pack = self.config.pack
        if not pack:
            raise ConfigError("no platform pack configured (set [platform].pack or pass --pack)")
        if pack.startswith("oci://"):
            return resolve_oci_pack(pack, self._cache_root(), self.network_policy, self.context.fetcher)
        return Path(pack)

    def _cache_root(self) -> Path:
        if self.context.cache_root is not None:
            return self.context.cache_root
        if self.config.cache_dir is not None:
            return self.config.cache_dir
        return Path(self.config.state_path).parent

    def _config_patch_path(self) -> Path:
        if self.config.config_patch_path is not None:
            return Path(self.config.config_patch_path)
        return default_config_patch_path(self.config.state_path)

    def _run(self, operation: str) -> OperationReport:
        install = operation == OPERATION_INSTALL
        pack_path = self.resolve_pack_path()
        info = load_platform_pack(pack_path)
        outcome = verify_platform_pack(info, self.config.verification_policy())
        warnings = list(outcome.warnings)

        current: BootstrapState | None = None
        if not install:
            current = ensure_upgrade_allowed(
                load_state_backend(self.config.state_backend, self.config.state_path),
                info.manifest.version,
            )

        flow_id, document = load_bootstrap_flow(pack_path, info.manifest, install=install)
        logger.info(
            "running %s flow=%s pack=%s version=%s",
            operation,
            flow_id,
            info.manifest.pack_id,
            info.manifest.version,
        )

        with contextlib.ExitStack() as stack:
            selected = self._select_adapter(stack)
            warnings.extend(selected.warnings)
            result = run_bootstrap_flow(document, selected.adapter)

        output = result.output
        warnings.extend(output.warnings)
        if not output.ready:
            raise FlowError(f"installer for {info.manifest.pack_id} reported not ready (flow {flow_id})")

        self._commit(info, output)

        if install:
            state = BootstrapState.installed_now(
                info.manifest.version,
                info.digest,
                environment_kind=self.config.environment_kind,
            )
        else:
            state = BootstrapState.upgraded_from(
                current,
                info.manifest.version,
                info.digest,
                rollback_ref=current.rollback_reference(),
            )
        save_state_backend(self.config.state_backend, self.config.state_path, state)
        logger.info("%s completed pack=%s version=%s", operation, info.manifest.pack_id, info.manifest.version)

        return OperationReport(
            operation=operation,
            pack_path=pack_path,
            pack_id=info.manifest.pack_id,
            version=info.manifest.version,
            digest=info.digest,
            flow_id=flow_id,
            output=output.redacted(),
            status_history=result.status_history,
            warnings=tuple(warnings),
            state=state,
        )

    def _select_adapter(self, stack: contextlib.ExitStack) -> _SelectedAdapter:
        mode = self.config.interaction
        caps = self.capabilities()
        kind = self._pick_kind(mode, caps.adapters)
        if kind is None:
            reason = f"interaction mode '{mode.value}' unavailable: " + "; ".join(caps.disabled_reasons)
            logger.warning("%s", reason)
            return _SelectedAdapter(DenyPromptAdapter(reason), [reason])

        if kind is InteractionAdapterKind.CLI:
            return _SelectedAdapter(CliPromptAdapter(self.context.stdin, self.context.stdout))
        if kind is InteractionAdapterKind.JSON:
            return _SelectedAdapter(JsonPromptAdapter(self.config.answers if self.config.answers is not None else {}))
        if kind is InteractionAdapterKind.HTTP:
            adapter = stack.enter_context(HttpPromptAdapter.bind(self.config.http_bind, self.config.http_timeout))
            logger.info("waiting for answers at %s/schema", adapter.base_url)
            return _SelectedAdapter(adapter)

        if self.context.broker is None:
            reason = "mqtt interaction requires a broker in the platform context"
            logger.warning("%s", reason)
            return _SelectedAdapter(DenyPromptAdapter(reason), [reason])
        mqtt = MqttPromptAdapter(
            self.context.broker,
            self.config.mqtt_device_id,
            topic_prefix=self.config.mqtt_topic_prefix,
            timeout=self.config.mqtt_timeout,
        ).with_network_policy(self.network_policy, self.config.mqtt_broker_host)
        return _SelectedAdapter(mqtt)

    def _pick_kind(
        self,
        mode: InteractionMode,
        available: tuple[InteractionAdapterKind, ...],
    ) -> InteractionAdapterKind | None:
        if not available:
            return None
        if mode is InteractionMode.AUTO:
            # pre-supplied answers win over the terminal
            if self.config.answers is not None and InteractionAdapterKind.JSON in available:
                return InteractionAdapterKind.JSON
            return available[0]
        return available[0]

    def _commit(self, info: PlatformPackInfo, output: BootstrapOutput) -> None:
        backend = parse_backend(self.config.secrets_backend, k8s_output_dir=self.context.k8s_secret_dir)
        patch_path = self._config_patch_path()
        config_snapshot = snapshot_config(patch_path)
        secrets_snapshot = backend.snapshot()
        hook = self.context.deploy_hook or noop_deploy_hook

        try:
            backend.write(output.secrets_writes)
            if output.config_patch is not None:
                apply_config_patch(patch_path, output.config_patch)
            hook(info, output.redacted())
        except Exception as exc:
            logger.warning("commit failed, restoring config and secrets: %s", exc)
            failures: list[tuple[str, BaseException]] = []
            try:
                restore_config(patch_path, config_snapshot)
            except OSError as restore_exc:
                failures.append(("config patch", restore_exc))
            try:
                backend.restore(secrets_snapshot)
            except OSError as restore_exc:
                failures.append(("secrets", restore_exc))
            if failures:
                raise RollbackError(exc, failures) from exc
            raise
