"""
PropWatch Binding - Two-Way Property Synchronization
====================================================

A `Binding` mirrors one property of an entity onto one property of another
entity, in both directions:

```python
product = Product(name="Book")
window = Window(product_name="Book")

with bind(product, "name", window, "product_name"):
    product.name = "Table"        # window.product_name == "Table"
    window.product_name = "Chair" # product.name == "Chair"
```

There is no re-entrancy flag. When the first handler copies a value across,
the second entity raises its own change notification and the second handler
tries to copy it back; the first entity already holds that value, so its
`set_property` is a no-op and the exchange stops.

A derived endpoint is a read-only source: the binding never writes into it.
"""

import threading
from typing import Any, List, Optional

from .base import ObservableEntity, Subscription
from .exceptions import BindingError, BindingTypeError, UnknownPropertyError


class Binding:
    """
    Disposable two-way binding between `first.first_name` and
    `second.second_name`.

    Construction validates both endpoints before subscribing, so a failed
    construction leaves no handler behind.

    Raises:
        UnknownPropertyError: if an endpoint names an unknown property.
        BindingError: if both endpoints are derived or they are the same.
        BindingTypeError: if the endpoint types are incompatible.
    """

    def __init__(
        self,
        first: ObservableEntity,
        first_name: str,
        second: ObservableEntity,
        second_name: str,
    ):
        for entity, name in ((first, first_name), (second, second_name)):
            if not entity.has_property(name):
                raise UnknownPropertyError(name, entity)
        if first is second and first_name == second_name:
            raise BindingError(f"Cannot bind property '{first_name}' to itself")
        if first.is_derived(first_name) and second.is_derived(second_name):
            raise BindingError(
                f"Cannot bind two derived properties: '{first_name}' and "
                f"'{second_name}' are both read-only"
            )
        _check_types(first, first_name, second, second_name)

        self._lock = threading.RLock()
        self._disposed = False
        self._first: Optional[ObservableEntity] = first
        self._second: Optional[ObservableEntity] = second
        self._first_name = first_name
        self._second_name = second_name
        self._subscriptions: List[Subscription] = [
            first.on_changed(self._on_first_changed),
            second.on_changed(self._on_second_changed),
        ]

    @property
    def disposed(self) -> bool:
        return self._disposed

    # Both handlers hold the binding lock across the copy, so dispose() waits
    # for an in-flight copy and no write crosses after it returns. The lock
    # order is first entity, binding, second entity in this handler and the
    # reverse in the other one: two threads changing both ends at once can
    # deadlock, so both ends should be changed from one thread.
    def _on_first_changed(self, name: str) -> None:
        if name != self._first_name:
            return
        with self._lock:
            if self._disposed:
                return
            _copy(self._first, self._first_name, self._second, self._second_name)

    def _on_second_changed(self, name: str) -> None:
        if name != self._second_name:
            return
        with self._lock:
            if self._disposed:
                return
            _copy(self._second, self._second_name, self._first, self._first_name)

    def dispose(self) -> None:
        """Unsubscribe both handlers. Safe to call more than once."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            for subscription in self._subscriptions:
                subscription.dispose()
            self._subscriptions.clear()
            self._first = None
            self._second = None

    def __enter__(self) -> "Binding":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        if self._disposed:
            return f"Binding({self._first_name!r} <-> {self._second_name!r}, disposed)"
        return (
            f"Binding({type(self._first).__name__}.{self._first_name} <-> "
            f"{type(self._second).__name__}.{self._second_name})"
        )


def bind(
    first: ObservableEntity,
    first_name: str,
    second: ObservableEntity,
    second_name: str,
) -> Binding:
    """Bind `first.first_name` and `second.second_name` in both directions."""
    return Binding(first, first_name, second, second_name)


def _copy(
    source: ObservableEntity,
    source_name: str,
    target: ObservableEntity,
    target_name: str,
) -> None:
    if target.is_derived(target_name):
        return
    value: Any = source.get_property(source_name)
    target.set_property(target_name, value)


def _check_types(
    first: ObservableEntity,
    first_name: str,
    second: ObservableEntity,
    second_name: str,
) -> None:
    first_type = first.property_type(first_name)
    second_type = second.property_type(second_name)
    if first_type is None or second_type is None:
        return
    if issubclass(first_type, second_type) or issubclass(second_type, first_type):
        return
    raise BindingTypeError(
        f"Cannot bind {type(first).__name__}.{first_name} ({first_type.__name__}) "
        f"to {type(second).__name__}.{second_name} ({second_type.__name__})"
    )
