"""
PropWatch Base - Observable Entities with Derived Properties
============================================================

This module provides `ObservableEntity`, the host for named properties that
notify listeners when they change, and the registrar for derived properties
computed from them.

Notification pipeline for `set_property(name, value)`:

1. If `value == current value`, return without side effects.
2. Raise a *changing* notification for `name`.
3. Store the value.
4. Raise a *changed* notification for `name`, in listener registration order.
5. For every derived property reading `name`, raise a changed notification for
   it as well, depth first, before `set_property` returns.

A notification carries only the property name; listeners re-read the value
from the entity. A listener that raises is logged and skipped, so its siblings
still run and the stored value stays committed.

Derived properties are recomputed on every read. The propagation walk in step
5 is bounded by `max_propagation_depth`; crossing it means the derived
properties depend on each other in a cycle and raises
`CircularDependencyError`.

Example:
    ```python
    person = ObservableEntity(age=15, citizen=False)
    person.declare_derived("can_vote", lambda p: p.citizen and p.age >= 16)

    person.on_changed(lambda name: print(f"{name} has changed"))
    person.set_property("age", 16)      # age has changed / can_vote has changed
    person.get_property("can_vote")     # False
    ```
"""

import inspect
import logging
import threading
import weakref
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from .analyzer import analyze
from .descriptors import DerivedProperty, ObservableProperty
from .exceptions import (
    CircularDependencyError,
    DeclarationError,
    ReadOnlyPropertyError,
    UnknownPropertyError,
)
from .registry import DependencyRegistry

DEFAULT_MAX_PROPAGATION_DEPTH = 64

Listener = Callable[[str], None]


def _values_equal(current: Any, new: Any) -> bool:
    if current is new:
        return True
    try:
        return bool(current == new)
    except (TypeError, ValueError):
        # Ambiguous comparisons (array-likes) count as a change
        return False


# ============================================================================
# Listener bookkeeping
# ============================================================================


class _Registration:
    """A registered listener, held strongly or through a weak reference."""

    __slots__ = ("_ref", "handles")

    def __init__(self, listener: Listener, weak: bool):
        if not weak:
            self._ref = lambda: listener
        elif inspect.ismethod(listener):
            self._ref = weakref.WeakMethod(listener)
        else:
            self._ref = weakref.ref(listener)
        # Number of live Subscription handles sharing this registration
        self.handles = 0

    def resolve(self) -> Optional[Listener]:
        return self._ref()


class ListenerList:
    """Listeners of one notification kind, kept in registration order."""

    def __init__(self):
        self._registrations: List[_Registration] = []

    def add(self, listener: Listener, weak: bool = False) -> _Registration:
        for registration in self._registrations:
            if registration.resolve() == listener:
                break
        else:
            registration = _Registration(listener, weak)
            self._registrations.append(registration)
        registration.handles += 1
        return registration

    def remove(self, listener: Listener) -> None:
        self._registrations = [
            registration
            for registration in self._registrations
            if registration.resolve() != listener
        ]

    def discard(self, registration: _Registration) -> None:
        """Release one handle; the listener goes when its last handle does."""
        registration.handles -= 1
        if registration.handles <= 0:
            self._registrations = [
                r for r in self._registrations if r is not registration
            ]

    def __contains__(self, registration: _Registration) -> bool:
        return any(r is registration for r in self._registrations)

    def snapshot(self) -> List[Listener]:
        """Return live listeners, pruning collected weak ones."""
        live = []
        pruned = False
        for registration in self._registrations:
            listener = registration.resolve()
            if listener is None:
                pruned = True
            else:
                live.append(listener)
        if pruned:
            self._registrations = [
                r for r in self._registrations if r.resolve() is not None
            ]
        return live


class Subscription:
    """
    Handle returned by `on_changed` and `on_changing`.

    Disposing the handle removes the listener. When the same listener was
    registered more than once, it stays registered until every handle is
    disposed. Disposal is idempotent, and the handle can be used as a context
    manager.
    """

    def __init__(self, listeners: ListenerList, registration: _Registration):
        self._listeners: Optional[ListenerList] = listeners
        self._registration = registration

    @property
    def active(self) -> bool:
        """Whether the listener is still registered and alive."""
        return (
            self._listeners is not None
            and self._registration in self._listeners
            and self._registration.resolve() is not None
        )

    def dispose(self) -> None:
        """Remove the listener unless another handle still holds it."""
        if self._listeners is not None:
            self._listeners.discard(self._registration)
            self._listeners = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()


# ============================================================================
# Observable entity
# ============================================================================


class ObservableEntity:
    """
    An object holding named properties that notify listeners on change.

    Properties are declared on subclasses with `observable()` and `derived()`,
    or created dynamically with `set_property` and `declare_derived`. Keyword
    arguments to the constructor set initial values without notifying.

    Attributes:
        max_propagation_depth: Bound on the derived-property propagation walk.
            Override per subclass or per instance.
    """

    max_propagation_depth: int = DEFAULT_MAX_PROPAGATION_DEPTH

    # Set per subclass by __init_subclass__
    _declared_properties: Dict[str, Any] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        declared: Dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                if isinstance(value, (ObservableProperty, DerivedProperty)):
                    declared[attr] = value
                else:
                    # A plain attribute in a subclass hides an inherited property
                    declared.pop(attr, None)
        cls._declared_properties = declared

    def __init__(self, **initial_values: Any) -> None:
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}
        self._derived: Dict[str, Callable[[], Any]] = {}
        self._derived_types: Dict[str, Optional[type]] = {}
        self._registry = DependencyRegistry()
        self._changing = ListenerList()
        self._changed = ListenerList()

        for name, declared in self._declared_properties.items():
            if isinstance(declared, DerivedProperty):
                self.declare_derived(
                    name,
                    declared.accessor,
                    depends_on=declared.depends_on,
                    value_type=declared.value_type,
                )

        for name, value in initial_values.items():
            if name in self._derived:
                raise ReadOnlyPropertyError(name)
            self._values[name] = value

    # ------------------------------------------------------------------
    # Property access
    # ------------------------------------------------------------------

    def get_property(self, name: str) -> Any:
        """Return the value of a property; derived values are recomputed."""
        getter = self._derived.get(name)
        if getter is not None:
            return getter()
        try:
            return self._values[name]
        except KeyError:
            pass
        declared = self._declared_properties.get(name)
        if isinstance(declared, ObservableProperty):
            return declared.default
        raise UnknownPropertyError(name, self)

    def set_property(self, name: str, value: Any) -> None:
        """
        Set a property and notify listeners.

        Does nothing if `value` equals the current value. Setting a name the
        entity does not know yet creates a new property.

        Raises:
            ReadOnlyPropertyError: if `name` is a derived property.
            CircularDependencyError: if derived propagation does not terminate.
        """
        if name in self._derived:
            raise ReadOnlyPropertyError(name)

        with self._lock:
            if self.has_property(name) and _values_equal(
                self.get_property(name), value
            ):
                return
            self._dispatch(self._changing, name)
            self._values[name] = value
            self._raise_changed(name, 0)

    def has_property(self, name: str) -> bool:
        return (
            name in self._values
            or name in self._derived
            or isinstance(self._declared_properties.get(name), ObservableProperty)
        )

    def is_derived(self, name: str) -> bool:
        """Whether `name` is a derived, read-only property."""
        return name in self._derived

    def property_names(self) -> List[str]:
        """Names of all properties: declared first, then dynamic ones."""
        names = dict.fromkeys(self._declared_properties)
        names.update(dict.fromkeys(self._values))
        names.update(dict.fromkeys(self._derived))
        return list(names)

    def property_type(self, name: str) -> Optional[type]:
        """
        Return the declared type of a property, or the type of its value.

        Returns None when neither is known (no declaration, value is None).
        """
        if name in self._derived:
            declared_type = self._derived_types.get(name)
        else:
            declared = self._declared_properties.get(name)
            declared_type = getattr(declared, "value_type", None)
        if declared_type is not None:
            return declared_type
        value = self.get_property(name)
        return None if value is None else type(value)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_changed(self, listener: Listener, weak: bool = False) -> Subscription:
        """
        Register a listener called with the property name after each change.

        With `weak=True` the entity does not keep the listener alive.
        Registering the same listener twice keeps a single registration.
        """
        with self._lock:
            return Subscription(self._changed, self._changed.add(listener, weak))

    def remove_changed(self, listener: Listener) -> None:
        """Remove a changed listener. Unknown listeners are ignored."""
        with self._lock:
            self._changed.remove(listener)

    def on_changing(self, listener: Listener, weak: bool = False) -> Subscription:
        """Register a listener called with the property name before a change."""
        with self._lock:
            return Subscription(self._changing, self._changing.add(listener, weak))

    def remove_changing(self, listener: Listener) -> None:
        with self._lock:
            self._changing.remove(listener)

    def notify_property_changed(self, name: str) -> None:
        """Raise a changed notification for `name`, including derived ones."""
        with self._lock:
            self._raise_changed(name, 0)

    # ------------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------------

    def declare_derived(
        self,
        name: str,
        accessor: Any,
        depends_on: Optional[Iterable[str]] = None,
        value_type: Optional[type] = None,
    ) -> Callable[[], Any]:
        """
        Declare a derived property computed by `accessor`.

        The accessor is analysed once, here, to find the properties it reads;
        a change to any of them raises a changed notification for `name`.
        Accepted accessors:

        - a function taking the entity (`lambda self: self.a + self.b`)
        - a bound method of the entity
        - a zero-argument function reaching the entity through a closure or a
          module global (`lambda: entity.a`)

        `depends_on` replaces discovery with an explicit list of names.

        Returns:
            A zero-argument getter for the derived value.

        Raises:
            DeclarationError: if the accessor cannot be analysed, or `name` is
                already a stored property.
        """
        if name in self._values or isinstance(
            self._declared_properties.get(name), ObservableProperty
        ):
            raise DeclarationError(
                f"'{name}' is already a stored property of {type(self).__name__}"
            )

        resolved = analyze(accessor, self, name)
        reads = resolved.reads if depends_on is None else frozenset(depends_on)

        with self._lock:
            dependencies = self._registry.declare(name, reads)
            self._derived[name] = resolved.getter
            self._derived_types[name] = value_type

        logging.debug(
            f"Declared derived property '{name}' on {type(self).__name__} "
            f"reading {sorted(dependencies)}"
        )
        return resolved.getter

    def dependencies_of(self, name: str) -> FrozenSet[str]:
        """Names a derived property reads (empty for base properties)."""
        return self._registry.dependencies_of(name)

    def dependents_of(self, name: str) -> List[str]:
        """Derived properties reading `name` directly, in declaration order."""
        return self._registry.dependents_of(name)

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _raise_changed(self, name: str, depth: int) -> None:
        if depth > self.max_propagation_depth:
            raise CircularDependencyError(name, depth)
        self._dispatch(self._changed, name)
        for dependent in self._registry.dependents_of(name):
            self._raise_changed(dependent, depth + 1)

    def _dispatch(self, listeners: ListenerList, name: str) -> None:
        for listener in listeners.snapshot():
            try:
                listener(name)
            except CircularDependencyError:
                raise
            except Exception as e:
                logging.error(
                    f"Error in listener {listener!r} for '{name}' on "
                    f"{type(self).__name__}: {e}"
                )

    # ------------------------------------------------------------------
    # Attribute access for dynamic properties
    # ------------------------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get_property(name)

    def __setattr__(self, name: str, value: Any) -> None:
        # Public names not defined on the class are properties
        if name.startswith("_") or hasattr(type(self), name):
            super().__setattr__(name, value)
        else:
            self.set_property(name, value)

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{name}={self.get_property(name)!r}"
            for name in self.property_names()
            if name not in self._derived
        )
        return f"{type(self).__name__}({fields})"
