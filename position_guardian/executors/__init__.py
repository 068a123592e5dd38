"""Protection executors."""
from .relayer import ExecutionError, RelayerExecutor

__all__ = ["ExecutionError", "RelayerExecutor"]
