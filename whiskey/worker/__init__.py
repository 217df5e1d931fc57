"""Reference worker harness speaking the orchestrator's line protocol."""

from whiskey.worker.channel import Channel
from whiskey.worker.harness import ModuleRunner, main, run_worker

__all__ = ["Channel", "ModuleRunner", "main", "run_worker"]
