"""feedimport.plugins - Extension point registry for custom source types and
code formatters.

Usage::

    from feedimport import register_formatter

    class SqlFormatter:
        name = "sql"
        languages = ("sql",)
        def format(self, code: str, language: str) -> str:
            return sqlparse.format(code, reindent=True)

    register_formatter(SqlFormatter())

Both plugin types follow ``runtime_checkable`` ``Protocol`` contracts so you
can use ``isinstance()`` checks in tests without inheriting from a base
class.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Protocol definitions
# ---------------------------------------------------------------------------

@runtime_checkable
class CodeFormatterPlugin(Protocol):
    """Reformats code blocks for the languages it lists."""

    name: str
    languages: tuple[str, ...]

    def format(self, code: str, language: str) -> str:
        """Return the reformatted *code*. Raise to keep the original."""
        ...


# A source-type factory takes the identifier passed to ``add_source``
# (URL, handle, channel id) and returns a source adapter.
SourceTypeFactory = Callable[[str], Any]


# ---------------------------------------------------------------------------
# Module-level registry
# ---------------------------------------------------------------------------

_registry: dict[str, Any] = {
    "formatters": [],
    "source_types": {},
}


# ---------------------------------------------------------------------------
# Registration helpers
# ---------------------------------------------------------------------------

def register_formatter(plugin: CodeFormatterPlugin) -> None:
    """Register a custom :class:`CodeFormatterPlugin`.

    Later registrations win over earlier ones and over the built-ins.
    """
    _registry["formatters"].append(plugin)


def register_source_type(name: str, factory: SourceTypeFactory) -> None:
    """Make ``Importer.add_source(name, identifier)`` build adapters with *factory*."""
    _registry["source_types"][name.lower()] = factory


# ---------------------------------------------------------------------------
# Accessor helpers
# ---------------------------------------------------------------------------

def get_formatters() -> list[CodeFormatterPlugin]:
    """Return all registered formatter plugins, most recent first."""
    return list(reversed(_registry["formatters"]))


def get_source_types() -> dict[str, SourceTypeFactory]:
    """Return the registered custom source-type factories."""
    return dict(_registry["source_types"])


def clear_plugins() -> None:
    """Remove all registered plugins. Primarily for use in tests."""
    for value in _registry.values():
        value.clear()
