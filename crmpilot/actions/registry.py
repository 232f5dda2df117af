"""Operation registry: declared parameters and handler lookup.

Handlers are plain coroutines decorated with @action. The decorator only
attaches an ActionSpec to the function; build_registry() collects the
specs from handler modules once, when the dispatcher is created.

Usage:
    from crmpilot.actions.registry import Param, action

    @action(
        "create_task",
        "Create a task, optionally linked to an account",
        title=Param("str", required=True),
        priority=Param("str", choices=("low", "medium", "high"), default="medium"),
    )
    async def create_task(ctx, params):
        ...
"""

from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Awaitable, Callable, Iterable, Optional

from crmpilot.core.exceptions import ValidationError
from crmpilot.core.logging import get_logger

logger = get_logger(__name__)

PARAM_KINDS = ("str", "int", "float", "bool", "list", "dict")

_TRUE_STRINGS = ("true", "yes", "1", "on")
_FALSE_STRINGS = ("false", "no", "0", "off")

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class Param:
    """Declared operation parameter.

    Attributes:
        kind: One of PARAM_KINDS
        required: Missing or empty values fail validation
        choices: Allowed values (strings are compared lowercased)
        default: Value used when the parameter is absent
        description: Short help text
    """

    kind: str = "str"
    required: bool = False
    choices: Optional[tuple] = None
    default: Any = None
    description: str = ""

    def coerce(self, name: str, value: Any) -> Any:
        """Convert a raw value to the declared kind.

        Raises:
            ValidationError: If the value cannot be converted or is not an allowed choice
        """
        converted = _COERCERS[self.kind](name, value)
        if self.choices is not None:
            if isinstance(converted, str):
                converted = converted.lower()
            if converted not in self.choices:
                allowed = ", ".join(str(c) for c in self.choices)
                raise ValidationError(f"Parameter '{name}' must be one of: {allowed}")
        return converted


def _to_str(name: str, value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValidationError(f"Parameter '{name}' must be text")
    return str(value).strip()


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Parameter '{name}' must be a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Parameter '{name}' must be a whole number")


def _to_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"Parameter '{name}' must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Parameter '{name}' must be a number")


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"Parameter '{name}' must be true or false")


def _to_list(name: str, value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    raise ValidationError(f"Parameter '{name}' must be a list")


def _to_dict(name: str, value: Any) -> dict:
    if isinstance(value, dict):
        return value
    raise ValidationError(f"Parameter '{name}' must be an object")


_COERCERS: dict[str, Callable[[str, Any], Any]] = {
    "str": _to_str,
    "int": _to_int,
    "float": _to_float,
    "bool": _to_bool,
    "list": _to_list,
    "dict": _to_dict,
}


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class ActionSpec:
    """A registered operation.

    Attributes:
        name: Operation name used by callers
        description: One-line summary
        params: Declared parameters by name
        handler: ``async def handler(ctx, params) -> ActionResult``
        group: Handler module the operation came from
        account_param: Parameter holding a free-text account name that the
            dispatcher resolves into ``params["account"]`` before the call
    """

    name: str
    description: str
    params: dict[str, Param] = field(default_factory=dict)
    handler: Optional[Handler] = None
    group: str = ""
    account_param: Optional[str] = None

    def validate(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Check and coerce raw parameters.

        Unknown parameters are dropped. Defaults fill in absent optional ones.

        Raises:
            ValidationError: On the first missing or malformed parameter
        """
        values: dict[str, Any] = {}
        for name, param in self.params.items():
            value = raw.get(name)
            if _is_empty(value):
                if param.required:
                    raise ValidationError(f"Missing required parameter '{name}' for {self.name}")
                values[name] = param.default
                continue
            values[name] = param.coerce(name, value)
        return values

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "group": self.group,
            "parameters": {
                name: {
                    "type": p.kind,
                    "required": p.required,
                    **({"enum": list(p.choices)} if p.choices else {}),
                    **({"default": p.default} if p.default is not None else {}),
                    **({"description": p.description} if p.description else {}),
                }
                for name, p in self.params.items()
            },
        }


def action(
    name: str, description: str, /, account_param: Optional[str] = None, **params: Param
) -> Callable[[Handler], Handler]:
    """Mark a coroutine as an operation handler.

    ``name`` and ``description`` are positional-only so operations may
    declare parameters with those names.
    """
    for param_name, param in params.items():
        if param.kind not in PARAM_KINDS:
            raise ValueError(f"Unknown parameter kind for {name}.{param_name}: {param.kind}")

    def decorator(func: Handler) -> Handler:
        func.action_spec = ActionSpec(  # type: ignore[attr-defined]
            name=name,
            description=description,
            params=dict(params),
            handler=func,
            account_param=account_param,
        )
        return func

    return decorator


class ActionRegistry:
    """Name -> ActionSpec lookup, enumerable for tool listings."""

    def __init__(self) -> None:
        self._specs: dict[str, ActionSpec] = {}

    def register(self, spec: ActionSpec) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Duplicate action name: {spec.name}")
        self._specs[spec.name] = spec

    def get(self, name: str) -> Optional[ActionSpec]:
        return self._specs.get(name)

    def names(self) -> list[str]:
        return sorted(self._specs)

    def describe(self) -> list[dict[str, Any]]:
        return [self._specs[name].describe() for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)


def build_registry(modules: Iterable[ModuleType]) -> ActionRegistry:
    """Collect every @action handler defined in the given modules."""
    registry = ActionRegistry()
    for module in modules:
        group = module.__name__.rsplit(".", 1)[-1]
        for attr in vars(module).values():
            spec = getattr(attr, "action_spec", None)
            if isinstance(spec, ActionSpec) and getattr(attr, "__module__", None) == module.__name__:
                spec.group = group
                registry.register(spec)

    logger.debug("Action registry built", extra={"context": {"actions": len(registry)}})
    return registry
