"""Plain-text message templates using Jinja2.

Template types:
    - meeting_proposal: Availability sent to a client (smart scheduler)
    - follow_up: Relationship follow-up (bulk follow-up)
    - reply: Suggested answer to an inbox message

Callers may also pass their own template text. Both Jinja2 syntax and
the short ``{name}`` / ``{contact}`` / ``{slots}`` placeholders work.

Usage:
    from crmpilot.engine.templates import render_template, render_custom

    body = render_template("meeting_proposal", name="Acme", contact="Jane", slots="...")
    body = render_custom("Hi {contact}, {slots}", contact="Jane", slots="...")
"""

import re
from pathlib import Path
from typing import Any, Optional

import jinja2

from crmpilot.core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "messages"
TEMPLATE_SUFFIX = ".txt.j2"

DEFAULT_SENDER = "The account team"

_DEFAULT_SUBJECTS: dict[str, str] = {
    "meeting_proposal": "Meeting proposal - {name}",
    "follow_up": "Follow-up - {name}",
}

# Greeting / closing pairs per reply tone
REPLY_TONES: dict[str, tuple[str, str]] = {
    "formal": ("Dear", "Kind regards,"),
    "friendly": ("Hi", "Cheers,"),
    "firm": ("Hello", "Regards,"),
    "apologetic": ("Dear", "With apologies and kind regards,"),
}

_SHORT_PLACEHOLDER_RE = re.compile(r"(?<!\{)\{(name|contact|slots|sender)\}(?!\})")

_env: Optional[jinja2.Environment] = None


def _get_env() -> jinja2.Environment:
    """Get or create the Jinja2 environment."""
    global _env
    if _env is None:
        _env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=False,
            keep_trailing_newline=False,
            undefined=jinja2.Undefined,
        )
    return _env


def render_template(template_name: str, **context: Any) -> str:
    """Render a packaged template.

    Args:
        template_name: Template name (without extension)
        **context: Template variables

    Returns:
        Rendered plain text

    Raises:
        jinja2.TemplateNotFound: If template does not exist
    """
    context.setdefault("sender", DEFAULT_SENDER)
    template = _get_env().get_template(f"{template_name}{TEMPLATE_SUFFIX}")
    rendered: str = template.render(**context)
    logger.debug(
        f"Rendered template: {template_name}",
        extra={"context": {"template": template_name}},
    )
    return rendered.strip()


def render_custom(template_text: str, **context: Any) -> str:
    """Render caller-supplied template text.

    ``{name}`` style placeholders are rewritten to Jinja2 expressions
    first; unknown single-brace text is left alone.

    Raises:
        jinja2.TemplateSyntaxError: If the template text is malformed
    """
    context.setdefault("sender", DEFAULT_SENDER)
    source = _SHORT_PLACEHOLDER_RE.sub(r"{{ \1 }}", template_text)
    return _get_env().from_string(source).render(**context)


def template_subject(template_name: str, **context: Any) -> str:
    """Default subject line for a template."""
    pattern = _DEFAULT_SUBJECTS.get(template_name, template_name.replace("_", " ").capitalize())
    try:
        return pattern.format(**context)
    except KeyError:
        return pattern


def list_templates() -> list[str]:
    """Sorted template names available in the package."""
    if not TEMPLATE_DIR.exists():
        return []
    return sorted(p.name[: -len(TEMPLATE_SUFFIX)] for p in TEMPLATE_DIR.glob(f"*{TEMPLATE_SUFFIX}"))


def validate_template(template_text: str) -> list[str]:
    """Check that caller-supplied template text parses.

    Returns:
        List of issues (empty if valid)
    """
    try:
        _get_env().parse(_SHORT_PLACEHOLDER_RE.sub(r"{{ \1 }}", template_text))
    except jinja2.TemplateSyntaxError as e:
        return [f"Template syntax error: {e}"]
    return []
