"""
PropWatch Exceptions
====================

Every error raised by PropWatch derives from `PropWatchError`. Where it reads
naturally the exceptions also derive from the matching built-in, so callers can
catch either `ReadOnlyPropertyError` or plain `AttributeError`.
"""

from typing import Optional


class PropWatchError(Exception):
    """Base class for all PropWatch errors."""

    pass


class DeclarationError(PropWatchError, ValueError):
    """Raised when a derived property cannot be declared."""

    pass


class CircularDependencyError(PropWatchError, RuntimeError):
    """Raised when change propagation exceeds the configured depth bound.

    Crossing the bound means the derived properties of an entity depend on
    each other in a cycle.
    """

    def __init__(self, property_name: str, depth: int):
        self.property_name = property_name
        self.depth = depth
        super().__init__(
            f"Circular dependency detected: propagation reached depth {depth} "
            f"at derived property '{property_name}'"
        )


class UnknownPropertyError(PropWatchError, AttributeError):
    """Raised when a property name is not known to an entity."""

    def __init__(self, property_name: str, owner: Optional[object] = None):
        self.property_name = property_name
        where = f" on {type(owner).__name__}" if owner is not None else ""
        super().__init__(f"Unknown property '{property_name}'{where}")


class ReadOnlyPropertyError(PropWatchError, AttributeError):
    """Raised on an attempt to assign a derived property."""

    def __init__(self, property_name: str):
        self.property_name = property_name
        super().__init__(f"Derived property '{property_name}' is read-only")


class BindingError(PropWatchError):
    """Raised when a binding cannot be constructed."""

    pass


class BindingTypeError(BindingError, TypeError):
    """Raised when two bound properties hold incompatible types."""

    pass
