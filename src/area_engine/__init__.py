"""AREA workflow engine.

A polling orchestrator for user-defined "when X happens, do Y" workflows:
- Gmail, GitHub and timer triggers evaluated on fixed-delay polling loops
- Discord and GitHub reactions run in order per workflow
- Persisted per-workflow cursors and a circuit breaker against retry storms
- Bounded concurrency per polling cycle

Example:
    ```python
    from area_engine import AreaEngine

    engine = AreaEngine.from_config("config.yaml")
    engine.run_forever()

    # Or run a single cycle of both loops
    for report in engine.poll_once():
        print(report.summary())
    ```
"""

from importlib.metadata import PackageNotFoundError, version

from .automation import (
    PollingOrchestrator,
    TriggerContext,
    TriggerStateService,
    WorkflowOutcome,
)
from .core import EngineConfig, get_logger, setup_logging
from .engine import AreaEngine
from .scheduler import PollingScheduler
from .storage import DatabaseManager

__all__ = [
    "__version__",
    "AreaEngine",
    "EngineConfig",
    "DatabaseManager",
    "PollingOrchestrator",
    "PollingScheduler",
    "TriggerContext",
    "TriggerStateService",
    "WorkflowOutcome",
    "get_logger",
    "setup_logging",
]

try:  # pragma: no cover - best-effort during development
    __version__ = version("area-engine")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
