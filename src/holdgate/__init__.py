"""HoldGate - reservation queue and workflow core for advertising units."""

__version__ = "0.1.0"
