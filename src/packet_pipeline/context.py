"""TemplateContext — typed, read-only resolver for placeholder paths.

The context is a set of named scopes.  The generator builds three:

  - ``client``: the client profile with camelCase keys (``client.fullName``)
  - ``calculated``: values derived from the answers (``calculated.macros``)
  - ``responses``: raw visible answers keyed by question id

Answers that were hidden at submission but retained are reachable only by
naming them explicitly (``responses.<question-id>``); they never appear when
the ``responses`` scope is read as a whole.

``get`` returns the ``MISSING`` sentinel for anything that does not
resolve; ``None`` counts as missing.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel


class _Missing:
    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return value


class TemplateContext:
    """Resolves dotted ``scope.path`` strings against named scopes."""

    def __init__(
        self,
        scopes: Mapping[str, Any],
        *,
        hidden_responses: Mapping[str, Any] | None = None,
    ) -> None:
        self._scopes = {name: _plain(value) for name, value in scopes.items()}
        self._hidden = dict(hidden_responses or {})

    @classmethod
    def build(
        cls,
        *,
        client: Any,
        calculated: Mapping[str, Any],
        responses: Mapping[str, Any],
        hidden_responses: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> TemplateContext:
        """Build the standard three-scope context plus any extra scopes."""
        scopes = {
            "client": client,
            "calculated": dict(calculated),
            "responses": dict(responses),
            **extra,
        }
        return cls(scopes, hidden_responses=hidden_responses)

    def get(self, path: str) -> Any:
        """Resolve *path*, returning ``MISSING`` if any segment is absent.

        Numeric segments index into lists: ``calculated.macros.0.grams``.
        """
        parts = path.strip().split(".")
        if not parts[0] or parts[0] not in self._scopes:
            return MISSING

        value = self._scopes[parts[0]]
        rest = parts[1:]

        # Explicit reference to a retained hidden answer
        if (
            parts[0] == "responses"
            and rest
            and rest[0] not in value
            and rest[0] in self._hidden
        ):
            value = self._hidden

        for part in rest:
            value = self._step(value, part)
            if value is MISSING:
                return MISSING
        return MISSING if value is None else value

    @staticmethod
    def _step(value: Any, part: str) -> Any:
        value = _plain(value)
        if isinstance(value, Mapping):
            return value.get(part, MISSING)
        if isinstance(value, (list, tuple)):
            if part.lstrip("-").isdigit():
                idx = int(part)
                if -len(value) <= idx < len(value):
                    return value[idx]
            return MISSING
        return MISSING
