"""Patch Compliance Reporter - Windows patch compliance for managed device fleets."""

__version__ = "0.1.0"
