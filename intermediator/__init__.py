"""Top-level package for the Plus/Saboritte order intermediator."""

from typing import Any

__all__ = ["SyncOrchestrator"]


def __getattr__(name: str) -> Any:
    if name == "SyncOrchestrator":
        from intermediator.sync.orchestrator import SyncOrchestrator as _SyncOrchestrator

        return _SyncOrchestrator
    raise AttributeError(name)
