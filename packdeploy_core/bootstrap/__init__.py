"""Bootstrap flow execution, interaction transports and commit stores."""

from .broker import Broker, MockBroker, Subscription
from .capabilities import HostCapabilities, build_host_capabilities
from .config_patch import (
    ConfigSnapshot,
    apply_config_patch,
    default_config_patch_path,
    restore_config,
    snapshot_config,
)
from .flow_runner import (
    FlowExecutionResult,
    PromptAdapter,
    Question,
    collect_answers,
    decode_flow,
    questions_schema,
    run_bootstrap_flow,
)
from .http_adapter import HttpPromptAdapter
from .http_parser import HttpRequest, HttpRequestParser
from .interaction import (
    InteractionAdapterKind,
    InteractionMode,
    InteractionPolicy,
    adapter_available,
    adapters_for_mode,
)
from .mqtt_adapter import MqttPromptAdapter
from .output import BootstrapOutput, SecretWrite
from .prompts import CliPromptAdapter, DenyPromptAdapter, JsonPromptAdapter
from .secrets import (
    ConfigMapSecretsBackend,
    FileSecretsBackend,
    SecretsBackend,
    SecretsSnapshot,
    parse_backend,
)
from .state import (
    BootstrapState,
    StateBackend,
    ensure_upgrade_allowed,
    load_state,
    load_state_backend,
    save_state,
    save_state_backend,
)

__all__ = [
    "BootstrapOutput",
    "BootstrapState",
    "Broker",
    "CliPromptAdapter",
    "ConfigMapSecretsBackend",
    "ConfigSnapshot",
    "DenyPromptAdapter",
    "FileSecretsBackend",
    "FlowExecutionResult",
    "HostCapabilities",
    "HttpPromptAdapter",
    "HttpRequest",
    "HttpRequestParser",
    "InteractionAdapterKind",
    "InteractionMode",
    "InteractionPolicy",
    "JsonPromptAdapter",
    "MockBroker",
    "MqttPromptAdapter",
    "PromptAdapter",
    "Question",
    "SecretWrite",
    "SecretsBackend",
    "SecretsSnapshot",
    "StateBackend",
    "Subscription",
    "adapter_available",
    "adapters_for_mode",
    "apply_config_patch",
    "build_host_capabilities",
    "collect_answers",
    "decode_flow",
    "default_config_patch_path",
    "ensure_upgrade_allowed",
    "load_state",
    "load_state_backend",
    "parse_backend",
    "questions_schema",
    "restore_config",
    "run_bootstrap_flow",
    "save_state",
    "save_state_backend",
    "snapshot_config",
]
