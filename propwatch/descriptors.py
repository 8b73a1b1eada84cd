"""
PropWatch Descriptors - Declarative Observable and Derived Properties
=====================================================================

This module provides descriptor classes for declaring properties on
`ObservableEntity` subclasses. Attribute access is routed through the entity's
notification pipeline, so a plain assignment raises change notifications:

```python
from propwatch import ObservableEntity, derived, observable

class Person(ObservableEntity):
    age = observable(0)
    citizen = observable(False)
    can_vote = derived(lambda self: self.citizen and self.age >= 16)

person = Person()
person.age = 16           # raises "age", then "can_vote"
person.citizen = True     # raises "citizen", then "can_vote"
person.can_vote           # True, recomputed on every read
```

`derived` also works as a decorator:

```python
class Rectangle(ObservableEntity):
    width = observable(1)
    height = observable(1)

    @derived
    def area(self):
        return self.width * self.height
```
"""

from typing import Any, Callable, Generic, Iterable, Optional, Type, TypeVar

T = TypeVar("T")


class ObservableProperty(Generic[T]):
    """
    Descriptor for a stored property that notifies on change.

    Args:
        default: Value returned until the property is first assigned.
        value_type: Optional declared type, used to check binding compatibility.
    """

    def __init__(self, default: Optional[T] = None, value_type: Optional[type] = None):
        self.default = default
        self.value_type = value_type
        self.name: str = ""

    def __set_name__(self, owner: Type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional[Any], owner: Type) -> Any:
        if instance is None:
            return self
        return instance.get_property(self.name)

    def __set__(self, instance: Any, value: T) -> None:
        instance.set_property(self.name, value)

    def __repr__(self) -> str:
        return f"ObservableProperty({self.name!r}, default={self.default!r})"


class DerivedProperty(Generic[T]):
    """
    Descriptor for a read-only property computed from other properties.

    The accessor is analysed once per entity, when the entity is constructed.
    See `ObservableEntity.declare_derived` for the accepted accessor forms.
    """

    def __init__(
        self,
        accessor: Any,
        depends_on: Optional[Iterable[str]] = None,
        value_type: Optional[type] = None,
    ):
        self.accessor = accessor
        self.depends_on = tuple(depends_on) if depends_on is not None else None
        self.value_type = value_type
        self.name: str = ""
        self.__doc__ = getattr(accessor, "__doc__", None)

    def __set_name__(self, owner: Type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional[Any], owner: Type) -> Any:
        if instance is None:
            return self
        return instance.get_property(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        # set_property raises ReadOnlyPropertyError for derived names
        instance.set_property(self.name, value)

    def __repr__(self) -> str:
        return f"DerivedProperty({self.name!r})"


def observable(default: Optional[T] = None, value_type: Optional[type] = None) -> Any:
    """Declare an observable property on an `ObservableEntity` subclass."""
    return ObservableProperty(default, value_type)


def derived(
    accessor: Any = None,
    *,
    depends_on: Optional[Iterable[str]] = None,
    value_type: Optional[type] = None,
) -> Any:
    """
    Declare a derived property on an `ObservableEntity` subclass.

    Can be called with an accessor (`derived(lambda self: ...)`), used as a
    bare decorator (`@derived`), or used as a decorator factory
    (`@derived(depends_on=["a", "b"])`).
    """
    if accessor is None:

        def decorator(func: Callable[[Any], T]) -> DerivedProperty:
            return DerivedProperty(func, depends_on, value_type)

        return decorator
    return DerivedProperty(accessor, depends_on, value_type)
