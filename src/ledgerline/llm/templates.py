"""Jinja2-based prompt building for pipelines."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import StrictUndefined, Template, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from ledgerline.contracts import Prompt
from ledgerline.core.canonical import stable_hash


class TemplateError(Exception):
    """Error in template rendering (including sandbox violations)."""


class TemplatePromptBuilder:
    """PromptBuilder rendering a system and a user Jinja2 template.

    Uses a sandboxed environment with StrictUndefined, so a template that
    names a missing variable fails instead of rendering an empty string.

    Templates see:
        - {{ item_key }} - the item being processed
        - {{ text }} - its extracted content
        - {{ vars.name }} - static variables given at construction

    Example:
        builder = TemplatePromptBuilder(
            system="You write posts for {{ vars.audience }}.",
            user="Paper {{ item_key }}:\\n\\n{{ text }}",
            variables={"audience": "ML researchers"},
        )
        prompt = builder.build("2401.00001", "We propose ...")
    """

    def __init__(self, system: str, user: str, *, variables: Mapping[str, Any] | None = None) -> None:
        """Compile both templates.

        Raises:
            TemplateError: If either template has invalid syntax
        """
        self._env = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,  # Prompts are not HTML
        )
        self._system = self._compile(system, "system")
        self._user = self._compile(user, "user")
        self._variables = dict(variables) if variables is not None else {}
        self._template_hash = stable_hash({"system": system, "user": user, "vars": self._variables})

    @property
    def template_hash(self) -> str:
        """Stable hash of both templates and the static variables."""
        return self._template_hash

    def _compile(self, source: str, which: str) -> Template:
        try:
            return self._env.from_string(source)
        except TemplateSyntaxError as e:
            raise TemplateError(f"Invalid {which} template syntax: {e}") from e

    def build(self, item_key: str, text: str) -> Prompt:
        """Render both templates for one item.

        Raises:
            TemplateError: If rendering fails (undefined variable, sandbox violation)
        """
        context: dict[str, Any] = {"item_key": item_key, "text": text, "vars": self._variables}
        try:
            return Prompt(system=self._system.render(**context), user=self._user.render(**context))
        except UndefinedError as e:
            raise TemplateError(f"Undefined variable: {e}") from e
        except SecurityError as e:
            raise TemplateError(f"Sandbox violation: {e}") from e
