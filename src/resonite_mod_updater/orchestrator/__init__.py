"""
Resonite Mod Updater Orchestrator Module.

Provides the per-module update pipeline and run aggregation.
"""

__all__ = ["LIBRARY_TARGETS", "RunResult", "UpdateOrchestrator"]

from resonite_mod_updater.orchestrator.core import (
    LIBRARY_TARGETS,
    RunResult,
    UpdateOrchestrator,
)
