"""
Scripts for MedCommand
Operational jobs run outside the API process
"""

from .run_daily_reset import run_daily_reset, reset_patient

__all__ = [
    "run_daily_reset",
    "reset_patient",
]
