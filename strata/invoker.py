"""
Locating mutation invokers.

The engine never implements migration bodies. Hosts either point the CLI at a
callable (``package.module:attribute``) or register one body per entry kind
and let KindDispatchInvoker route entries.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

from .errors import ConfigError, MigrationExecutionError
from .models import Entry, EntryKind

if TYPE_CHECKING:
    from .executor import EmitFn, MutationInvoker
    from .registry import TagView

# Global registry: entry kind → invoker
_INVOKERS: dict[EntryKind, "MutationInvoker"] = {}


def register_invoker(kind: EntryKind | str, invoker: "MutationInvoker") -> None:
    """
    Register the mutation body for an entry kind.

    Args:
        kind: Entry kind the invoker handles
        invoker: Callable with the MutationInvoker signature
    """
    _INVOKERS[EntryKind(kind)] = invoker


def get_invoker(kind: EntryKind | str) -> "MutationInvoker | None":
    """Look up the invoker registered for `kind`, or None."""
    return _INVOKERS.get(EntryKind(kind))


def list_invokers() -> list[str]:
    """List entry kinds with a registered invoker."""
    return [k.value for k in _INVOKERS]


def clear_invokers() -> None:
    """Clear all registered invokers (for testing)."""
    _INVOKERS.clear()


class KindDispatchInvoker:
    """MutationInvoker that routes each entry to the invoker registered for its kind."""

    def __call__(self, entry: Entry, tags: "TagView", emit: "EmitFn") -> Any:
        invoker = get_invoker(entry.kind)
        if invoker is None:
            raise MigrationExecutionError(entry.id, f"no invoker registered for kind '{entry.kind.value}'")
        return invoker(entry, tags, emit)


def load_invoker(spec: str) -> "MutationInvoker":
    """
    Import an invoker from a ``module:attribute`` spec.

    A class attribute is instantiated with no arguments; any other callable
    is used as-is.

    Raises:
        ConfigError: the reference is malformed, the import fails, or the target is not callable
    """
    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(f"Invoker spec must look like 'package.module:attribute', got '{spec}'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import invoker module '{module_name}': {exc}") from exc

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigError(f"Module '{module_name}' has no attribute '{attr_path}'") from exc

    if isinstance(target, type):
        target = target()
    if not callable(target):
        raise ConfigError(f"Invoker '{spec}' is not callable")
    return target
