"""
PropWatch - Observable Properties, Derived Properties and Two-Way Bindings

Objects expose properties that notify listeners when they change. Derived
properties are declared from an accessor that is analysed once to find the
properties it reads; a change to any of them re-raises a notification for the
derived property. A binding mirrors a property between two unrelated objects
in both directions without feedback loops.
"""

from .base import (
    DEFAULT_MAX_PROPAGATION_DEPTH,
    ObservableEntity,
    Subscription,
)
from .binding import Binding, bind
from .descriptors import DerivedProperty, ObservableProperty, derived, observable
from .exceptions import (
    BindingError,
    BindingTypeError,
    CircularDependencyError,
    DeclarationError,
    PropWatchError,
    ReadOnlyPropertyError,
    UnknownPropertyError,
)
from .registry import DependencyRegistry

__all__ = [
    # Entities
    "ObservableEntity",
    "Subscription",
    "DEFAULT_MAX_PROPAGATION_DEPTH",
    # Declarations
    "observable",
    "derived",
    "ObservableProperty",
    "DerivedProperty",
    "DependencyRegistry",
    # Bindings
    "Binding",
    "bind",
    # Exceptions
    "PropWatchError",
    "DeclarationError",
    "CircularDependencyError",
    "UnknownPropertyError",
    "ReadOnlyPropertyError",
    "BindingError",
    "BindingTypeError",
]
