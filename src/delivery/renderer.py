"""Message template rendering with a sandboxed Jinja2 environment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from jinja2 import Template, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

_env = SandboxedEnvironment(autoescape=False, keep_trailing_newline=True)


class TemplateRenderError(Exception):
    """Raised when a template cannot be compiled or rendered."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


@dataclass(frozen=True)
class RenderResult:
    text: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.text is not None


@lru_cache(maxsize=256)
def _compile(template: str) -> Template:
    try:
        return _env.from_string(template)
    except TemplateSyntaxError as exc:
        raise TemplateRenderError([f"line {exc.lineno}: {exc.message}"]) from exc


def _context(data: Any) -> dict[str, Any]:
    context: dict[str, Any] = dict(data) if isinstance(data, dict) else {}
    context.setdefault("payload", data)
    return context


class TemplateRenderer:
    """Renders a template string against a JSON-like payload."""

    def render_or_raise(self, template: str, data: Any) -> str:
        compiled = _compile(template)
        try:
            return compiled.render(_context(data))
        except TemplateError as exc:
            raise TemplateRenderError([str(exc)]) from exc
        except (ArithmeticError, LookupError, TypeError, ValueError) as exc:
            # Expression errors on payload values, e.g. {{ count / 0 }}.
            raise TemplateRenderError([f"{type(exc).__name__}: {exc}"]) from exc

    def render(self, template: str, data: Any) -> RenderResult:
        try:
            text = self.render_or_raise(template, data)
        except TemplateRenderError as exc:
            logger.warning("Template rendering failed: %s", exc)
            return RenderResult(errors=exc.errors)
        logger.debug("Template rendered, length %d", len(text))
        return RenderResult(text=text)
