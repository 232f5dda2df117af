"""Action dispatcher: name -> handler lookup with a uniform result envelope.

Per call:
    1. Look the operation up in the registry (unknown -> failed result)
    2. Validate and coerce parameters (handler not invoked on failure)
    3. Resolve a free-text account reference when the operation declares one
    4. Invoke the handler
    5. Turn any exception into a failed ActionResult

This is the only layer that catches unexpected exceptions. Callers always
get an ActionResult back, never a raw exception.

Usage:
    from crmpilot.actions.dispatcher import ActionDispatcher

    dispatcher = ActionDispatcher(data)
    result = await dispatcher.execute("lead_scoring", {}, user="jane", now=datetime.now())
    print(result.to_dict())
"""

import time
from datetime import datetime
from types import ModuleType
from typing import Any, Iterable, Optional

from crmpilot.actions import accounts, calendar, insights, messaging, work
from crmpilot.actions.base import ActionContext, Navigator, resolve_account
from crmpilot.actions.registry import ActionRegistry, build_registry
from crmpilot.actions.result import ActionResult, failure
from crmpilot.core.config import Config, get_config
from crmpilot.core.exceptions import CrmPilotError
from crmpilot.core.logging import get_logger
from crmpilot.engine.data_access import DataAccess

logger = get_logger(__name__)

HANDLER_MODULES: tuple[ModuleType, ...] = (accounts, work, calendar, messaging, insights)


class ActionDispatcher:
    """Executes named operations against a DataAccess facade.

    Attributes:
        data: Data-access facade handed to every handler
        registry: Operations available to callers
    """

    def __init__(
        self,
        data: DataAccess,
        config: Optional[Config] = None,
        modules: Iterable[ModuleType] = HANDLER_MODULES,
    ) -> None:
        self.data = data
        self._config = config or get_config()
        self.registry: ActionRegistry = build_registry(modules)

    def names(self) -> list[str]:
        return self.registry.names()

    def describe(self) -> list[dict[str, Any]]:
        """Operation schemas for building a tool list."""
        return self.registry.describe()

    async def execute(
        self,
        name: str,
        params: Optional[dict[str, Any]] = None,
        *,
        user: Optional[str] = None,
        now: Optional[datetime] = None,
        navigate: Optional[Navigator] = None,
    ) -> ActionResult:
        """Run one operation.

        Args:
            name: Registered operation name
            params: Raw parameters (validated against the declaration)
            user: Current user, defaults to the configured user
            now: Reference time for the call, defaults to the wall clock
            navigate: Optional UI navigation callback

        Returns:
            ActionResult, successful or not
        """
        spec = self.registry.get(name)
        if spec is None:
            logger.warning(f"Unknown action: {name}", extra={"context": {"action": name}})
            return failure(f"Unknown action: {name}", "ValidationError")

        started = time.monotonic()
        ctx = ActionContext(
            data=self.data,
            user=user or self._config.current_user,
            now=now or datetime.now(),
            config=self._config,
            navigate=navigate,
        )

        try:
            values = spec.validate(params or {})
            if spec.account_param and values.get(spec.account_param):
                values["account"] = await resolve_account(ctx, values[spec.account_param])
            result = await spec.handler(ctx, values)
        except CrmPilotError as e:
            logger.warning(
                f"Action {name} failed: {e}",
                extra={"context": {"action": name, "error_kind": e.error_kind}},
            )
            return failure(str(e), e.error_kind)
        except Exception as e:
            logger.error(
                f"Action {name} crashed: {e}",
                exc_info=True,
                extra={"context": {"action": name}},
            )
            return failure(f"{name} failed: {e}", "InternalError")

        logger.info(
            f"Action {name} completed",
            extra={"context": {
                "action": name,
                "success": result.success,
                "elapsed_ms": round((time.monotonic() - started) * 1000),
            }},
        )
        return result
