"""Exception hierarchy for the platform bootstrap engine."""

from __future__ import annotations


class DeployerError(RuntimeError):
    """Base class for packdeploy failures."""


class ConfigError(DeployerError):
    pass


class NetworkDeniedError(DeployerError):
    pass


class InvalidReferenceError(DeployerError):
    pass


class OciFetchError(DeployerError):
    pass


class DigestMismatchError(DeployerError):
    def __init__(self, context: str, expected: str, actual: str) -> None:
        super().__init__(f"{context} digest mismatch: expected {expected}, got {actual}")
        self.context = context
        self.expected = expected
        self.actual = actual


class NoLayersError(DeployerError):
    def __init__(self, reference: str) -> None:
        super().__init__(f"oci manifest for {reference} does not contain any layers")
        self.reference = reference


class PackError(DeployerError):
    pass


class PackNotFoundError(PackError):
    pass


class PackNotAFileError(PackError):
    pass


class PackEntryNotFoundError(PackError):
    pass


class PackManifestError(PackError):
    pass


class PackVerificationError(PackError):
    pass


class BootstrapResolutionError(PackError):
    pass


class FlowError(DeployerError):
    pass


class InvalidFlowError(FlowError):
    pass


class UnsupportedStepError(FlowError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"not allowed in bootstrap mode: {kind}")
        self.kind = kind


class NoOutputError(FlowError):
    def __init__(self) -> None:
        super().__init__("bootstrap flow produced no installer_call output")


class InteractionError(DeployerError):
    pass


class InteractionTimeoutError(InteractionError):
    pass


class MissingAnswerError(InteractionError):
    def __init__(self, question_id: str) -> None:
        super().__init__(f"missing answer for question '{question_id}'")
        self.question_id = question_id


class NoInputError(InteractionError):
    def __init__(self, question_id: str) -> None:
        super().__init__(f"no input provided for {question_id}")
        self.question_id = question_id


class InteractionDeniedError(InteractionError):
    pass


class HttpParseError(InteractionError):
    pass


class SecretsError(DeployerError):
    pass


class MissingValueError(SecretsError):
    def __init__(self, key: str) -> None:
        super().__init__(
            f"secret write '{key}' missing value (installers must supply values in bootstrap mode)"
        )
        self.key = key


class SecretsBackendError(SecretsError):
    pass


class StateError(DeployerError):
    pass


class NotInstalledError(StateError):
    def __init__(self) -> None:
        super().__init__("platform not installed; run platform install first")


class MissingVersionError(StateError):
    pass


class NotNewerError(StateError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"upgrade requires a newer pack version (current {current}, requested {target})"
        )
        self.current = current
        self.target = target


class StateFormatError(StateError):
    pass


class StateBackendUnavailableError(StateError):
    pass


class RollbackError(DeployerError):
    """Raised when compensation after a failure did not fully succeed."""

    def __init__(self, cause: BaseException, failures: list[tuple[str, BaseException]]) -> None:
        detail = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"rollback incomplete after '{cause}' ({detail})")
        self.cause = cause
        self.failures = list(failures)
