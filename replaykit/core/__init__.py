"""
Core package for replaykit.
Lightweight package init to avoid import cycles.

Consumers should import submodules directly, e.g.:
  from replaykit.core.models import LocatorBundle, Step
  from replaykit.core.executor import ReplayActionExecutor
  from replaykit.core.loader import load_steps
"""

__all__: list[str] = []
