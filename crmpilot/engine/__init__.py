"""Engine package - Decision logic.

Pure computation plus the async facade that feeds it:
    - Account scoring (health, lead, forecast)
    - Free-slot finding and slot distribution
    - Daily program classification
    - Keyword action extraction
    - Message templates

Modules:
    - scoring: Score models with factor breakdowns
    - scheduler: Free slots and greedy distribution
    - program: Urgent / important / to-plan buckets
    - extraction: Action patterns for mail and meeting notes
    - templates: Jinja2 message templates
    - data_access: Async facade over store and provider
"""

from crmpilot.engine.program import DailyProgram, ProgramInputs, build_program
from crmpilot.engine.scheduler import FreeSlot, distribute_slots, find_free_slots
from crmpilot.engine.scoring import (
    ScoreResult,
    build_signals,
    forecast_probability,
    health_score,
    lead_score,
)

__all__ = [
    # Scoring
    "ScoreResult",
    "build_signals",
    "health_score",
    "lead_score",
    "forecast_probability",
    # Slots
    "FreeSlot",
    "find_free_slots",
    "distribute_slots",
    # Program
    "DailyProgram",
    "ProgramInputs",
    "build_program",
]
