"""Exceptions raised by the d2p migrator."""

from typing import List, Optional


class MigratorError(Exception):
    """Base exception for the d2p migrator."""

    pass


class ConfigError(MigratorError):
    """Raised when the migrator configuration is invalid."""

    pass


class PreconditionError(MigratorError):
    """Raised when the host cannot be migrated at all."""

    pass


class TranslationError(MigratorError):
    """Raised when a source container cannot be translated."""

    def __init__(self, container_id: str, message: str) -> None:
        self.container_id = container_id
        super().__init__(f"failed to translate container {container_id}: {message}")


class SandboxNameError(MigratorError):
    """Raised when a container name does not follow the sandbox naming convention."""

    def __init__(self, name: str, message: str = "failed to parse sandbox name") -> None:
        self.name = name
        super().__init__(f"{message}: {name!r}")


class PreparationError(MigratorError):
    """Raised when pulling, snapshotting or mounting fails for a container."""

    def __init__(self, container_id: str, message: str) -> None:
        self.container_id = container_id
        super().__init__(f"failed to prepare container {container_id}: {message}")


class QuotaError(MigratorError):
    """Raised when a disk quota cannot be applied to a directory."""

    def __init__(self, target_dir: str, message: str) -> None:
        self.target_dir = target_dir
        super().__init__(f"failed to set disk quota for {target_dir}: {message}")


class CutoverError(MigratorError):
    """Raised when stopping containers or moving their data fails."""

    pass


class PostMigrateError(MigratorError):
    """Raised when the runtime swap after cut-over fails."""

    pass


class RevertError(MigratorError):
    """
    Raised when a revert could not undo every step.

    Attributes:
        failures: One message per mapping or container that could not be restored
    """

    def __init__(self, failures: List[str]) -> None:
        self.failures = failures
        super().__init__("revert migration failed: " + "; ".join(failures))


class PhaseError(MigratorError):
    """Raised when a migration phase is entered out of order."""

    def __init__(self, phase: str, current: str) -> None:
        self.phase = phase
        self.current = current
        super().__init__(f"cannot run {phase} while migration is {current}")


class CommandError(MigratorError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, argv: List[str], returncode: int, output: str) -> None:
        self.argv = argv
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"command {' '.join(argv)!r} failed with exit code {returncode}: {output.strip()}"
        )


class CtrdError(MigratorError):
    """Raised when a containerd request fails."""

    def __init__(self, message: str, output: Optional[str] = None) -> None:
        self.output = output
        detail = f": {output.strip()}" if output else ""
        super().__init__(f"{message}{detail}")


class CtrdNotFoundError(CtrdError):
    """Raised when a containerd object does not exist."""

    pass
