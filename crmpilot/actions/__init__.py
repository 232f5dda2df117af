"""Actions package - Named operations and their dispatcher.

Modules:
    - dispatcher: Registry lookup, validation, error mapping
    - registry: Parameter declarations and the @action decorator
    - result: ActionResult envelope
    - base: Per-call context and account resolution
    - accounts, work, calendar, messaging, insights: Handlers
"""

from crmpilot.actions.result import ActionResult

__all__ = [
    "ActionResult",
]
