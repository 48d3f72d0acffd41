"""Background tasks."""

from holdgate.tasks.sweep import run_expiry_sweep, start_expiry_sweep, stop_expiry_sweep

__all__ = ["run_expiry_sweep", "start_expiry_sweep", "stop_expiry_sweep"]
