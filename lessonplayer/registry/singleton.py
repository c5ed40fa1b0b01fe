from __future__ import annotations

from lessonplayer.registry.builtin import register_builtin_steps
from lessonplayer.registry.registry import StepRegistry
from lessonplayer.steps.contract import StepDescriptor

_REGISTRY: StepRegistry | None = None


def get_registry() -> StepRegistry:
    """Process-wide step registry, created with the built-in step types on first use."""

    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = register_builtin_steps(StepRegistry())
    return _REGISTRY


def register_step_type(descriptor: StepDescriptor) -> None:
    """Add (or replace) a step type without touching the sequencer."""

    get_registry().register(descriptor)


def reset_registry_for_tests() -> None:
    """Drop the cached registry so tests start from the built-ins only."""

    global _REGISTRY
    _REGISTRY = None
