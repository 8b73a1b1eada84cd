"""
PropWatch Analyzer - Static Dependency Discovery for Derived Properties
=======================================================================

This module discovers which properties a derived-property accessor reads,
without running the accessor. Accessors are functions taking the entity as
their single positional argument, bound methods of the entity, or
zero-argument functions that reach the entity through a closure cell or a
module global. The byte code is walked with `dis`; every attribute load
performed directly on the entity reference is a read:

```python
lambda self: self.citizen and self.age >= 16      # reads {"citizen", "age"}
lambda: person.first + " " + person.last            # reads {"first", "last"}
```

Nested code objects (comprehensions, inner functions) that capture the entity
reference are walked as well.

Discovery is static. Every branch of a conditional is recorded, and reads
that go through `getattr(self, name)` or another object are invisible.

Reads are then narrowed to names that can denote a property of the entity:
private names and names bound on the class to something other than a property
descriptor (methods, plain `property` objects, constants) are dropped.
"""

import dis
import functools
import inspect
import types
from typing import Any, Callable, FrozenSet, NamedTuple, Set

from .descriptors import DerivedProperty, ObservableProperty
from .exceptions import DeclarationError

# Opcodes that push a local or closure variable; argval is the variable name
# (a pair of names for the superinstructions)
_REFERENCE_LOADS = frozenset(
    {
        "LOAD_FAST",
        "LOAD_FAST_CHECK",
        "LOAD_FAST_BORROW",
        "LOAD_FAST_LOAD_FAST",
        "LOAD_FAST_BORROW_LOAD_FAST_BORROW",
        "STORE_FAST_LOAD_FAST",
        "LOAD_DEREF",
        "LOAD_CLOSURE",
    }
)
# Opcodes that push a module global; argval is the global name
_GLOBAL_LOADS = frozenset({"LOAD_GLOBAL", "LOAD_NAME"})
_ATTRIBUTE_LOADS = frozenset({"LOAD_ATTR", "LOAD_METHOD"})
_TRANSPARENT = frozenset({"EXTENDED_ARG", "NOP", "CACHE"})
_MISSING = object()


class Accessor(NamedTuple):
    """Result of analysing a derived-property accessor."""

    reads: FrozenSet[str]
    getter: Callable[[], Any]


def analyze(accessor: Any, entity: Any, name: str) -> Accessor:
    """
    Analyse an accessor declared for derived property `name` on `entity`.

    Returns the property names the accessor reads (excluding `name` itself)
    and a zero-argument getter evaluating the accessor against the entity.

    Raises:
        DeclarationError: if the accessor has an unsupported form or does not
            reference the entity in a way the analyser can resolve.
    """
    if inspect.ismethod(accessor):
        reads, getter = _analyze_method(accessor, entity, name)
    elif inspect.isfunction(accessor):
        reads, getter = _analyze_function(accessor, entity, name)
    else:
        raise DeclarationError(
            f"Accessor for '{name}' must be a function or a bound method, "
            f"got {type(accessor).__name__}"
        )

    owner = type(entity)
    reads = frozenset(
        read for read in reads if read != name and _can_name_property(owner, read)
    )
    return Accessor(reads, getter)


def _analyze_function(func: types.FunctionType, entity: Any, name: str):
    code = func.__code__
    required = code.co_argcount - len(func.__defaults__ or ())
    references = _closure_references(func, entity)
    global_references = _global_references(func, entity)

    if code.co_argcount >= 1 and required <= 1:
        references.add(code.co_varnames[0])
        getter = functools.partial(func, entity)
    elif code.co_argcount == 0 and (references or global_references):
        getter = func
    elif code.co_argcount == 0:
        raise DeclarationError(
            f"Accessor for '{name}' takes no arguments and does not reference "
            f"the entity; declare it as 'lambda self: ...'"
        )
    else:
        raise DeclarationError(
            f"Accessor for '{name}' must take the entity as its only required "
            f"argument, it requires {required}"
        )

    return _scan_code(code, references, global_references), getter


def _analyze_method(method: types.MethodType, entity: Any, name: str):
    if method.__self__ is not entity:
        raise DeclarationError(
            f"Accessor for '{name}' is a method bound to "
            f"{type(method.__self__).__name__}, not to the declaring entity"
        )
    code = method.__func__.__code__
    if code.co_argcount != 1:
        raise DeclarationError(
            f"Method accessor for '{name}' must take no arguments besides self"
        )
    return _scan_code(code, {code.co_varnames[0]}, frozenset()), method


def _closure_references(func: types.FunctionType, entity: Any) -> Set[str]:
    """Names of the closure cells of `func` that hold `entity`."""
    references = set()
    for var, cell in zip(func.__code__.co_freevars, func.__closure__ or ()):
        try:
            if cell.cell_contents is entity:
                references.add(var)
        except ValueError:
            # Empty cell
            continue
    return references


def _global_references(func: types.FunctionType, entity: Any) -> FrozenSet[str]:
    """Names of the module globals of `func` that hold `entity`."""
    names: Set[str] = set()
    pending = [func.__code__]
    while pending:
        code = pending.pop()
        names.update(code.co_names)
        pending.extend(c for c in code.co_consts if isinstance(c, types.CodeType))
    namespace = func.__globals__
    return frozenset(n for n in names if namespace.get(n, _MISSING) is entity)


def _scan_code(
    code: types.CodeType, references: Set[str], global_references: FrozenSet[str]
) -> Set[str]:
    """Collect attribute names loaded directly off the entity references."""
    reads: Set[str] = set()
    on_reference = False
    for instruction in dis.get_instructions(code):
        opname = instruction.opname
        if opname in _TRANSPARENT:
            continue
        if on_reference and opname in _ATTRIBUTE_LOADS:
            reads.add(instruction.argval)
        loaded = instruction.argval
        if isinstance(loaded, tuple):
            # Superinstruction: the last name ends up on top of the stack
            loaded = loaded[-1] if loaded else None
        if opname in _GLOBAL_LOADS:
            on_reference = loaded in global_references
        else:
            on_reference = opname in _REFERENCE_LOADS and loaded in references

    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            inner = references.intersection(const.co_freevars)
            if inner or global_references:
                reads |= _scan_code(const, inner, global_references)
    return reads


def _can_name_property(owner: type, attr: str) -> bool:
    if attr.startswith("_"):
        return False
    found = inspect.getattr_static(owner, attr, _MISSING)
    return found is _MISSING or isinstance(
        found, (ObservableProperty, DerivedProperty)
    )
