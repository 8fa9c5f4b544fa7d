"""Diagnostics helpers."""

from .burst_simulator import BurstReport, BurstSimulator

__all__ = ["BurstReport", "BurstSimulator"]
