"""Unit tests for two-way property bindings."""

import threading

import pytest

from propwatch import (
    Binding,
    BindingError,
    BindingTypeError,
    ObservableEntity,
    UnknownPropertyError,
    bind,
    observable,
)

class Product(ObservableEntity):
    name = observable(None, value_type=str)
    price = observable(0, value_type=int)


class Window(ObservableEntity):
    product_name = observable(None, value_type=str)


@pytest.fixture
def product():
    return Product(name="Book")


@pytest.fixture
def window():
    return Window(product_name="Book")


@pytest.mark.unit
def test_change_on_first_is_mirrored_on_second(product, window):
    bind(product, "name", window, "product_name")

    product.name = "Table"

    assert window.product_name == "Table"


@pytest.mark.unit
def test_change_on_second_is_mirrored_on_first(product, window):
    bind(product, "name", window, "product_name")

    window.product_name = "Chair"

    assert product.name == "Chair"


@pytest.mark.unit
def test_exactly_one_notification_on_each_side(product, window, make_recorder):
    """No ping-pong: each side is notified once per change"""
    product_changes = make_recorder()
    window_changes = make_recorder()
    product.on_changed(product_changes)
    bind(product, "name", window, "product_name")
    window.on_changed(window_changes)

    product.name = "X"

    assert window.product_name == "X"
    assert product_changes.names == ["name"]
    assert window_changes.names == ["product_name"]

    # Echoing the same value back is a no-op on both sides
    window.product_name = "X"

    assert product_changes.names == ["name"]
    assert window_changes.names == ["product_name"]


@pytest.mark.unit
def test_unrelated_property_is_not_mirrored(product, window):
    bind(product, "name", window, "product_name")

    product.price = 10

    assert window.product_name == "Book"


@pytest.mark.unit
def test_construction_does_not_copy_values():
    product = Product(name="Book")
    window = Window(product_name="Lamp")

    bind(product, "name", window, "product_name")

    assert product.name == "Book"
    assert window.product_name == "Lamp"


@pytest.mark.unit
def test_dispose_stops_mirroring_in_both_directions(product, window):
    binding = bind(product, "name", window, "product_name")

    binding.dispose()
    product.name = "Table"
    window.product_name = "Chair"

    assert binding.disposed
    assert product.name == "Table"
    assert window.product_name == "Chair"


@pytest.mark.unit
def test_dispose_is_idempotent(product, window):
    binding = bind(product, "name", window, "product_name")

    binding.dispose()
    binding.dispose()

    assert binding.disposed


@pytest.mark.unit
def test_dispose_during_notification_stops_pending_copy(product, window):
    """A listener running before the handler disposes the binding mid-change"""
    # Arrange
    holder = {}

    def dispose_binding(name):
        holder["binding"].dispose()

    product.on_changed(dispose_binding)
    holder["binding"] = bind(product, "name", window, "product_name")

    # Act
    product.name = "Table"

    # Assert
    assert holder["binding"].disposed
    assert window.product_name == "Book"


@pytest.mark.unit
def test_dispose_from_target_listener_blocks_copy_back(product, window, recorder):
    """Disposing while the copy is landing on the second entity is safe"""
    # Arrange
    binding = bind(product, "name", window, "product_name")
    window.on_changed(lambda name: binding.dispose())
    product.on_changed(recorder)

    # Act
    product.name = "Table"
    window.product_name = "Chair"
    product.name = "Lamp"

    # Assert
    assert binding.disposed
    assert product.name == "Lamp"
    assert window.product_name == "Chair"
    assert recorder.names == ["name", "name"]


@pytest.mark.unit
def test_dispose_from_other_thread_waits_for_in_flight_copy(product, window):
    # Arrange
    binding = bind(product, "name", window, "product_name")
    entered = threading.Event()
    release = threading.Event()
    events = []

    def slow_listener(name):
        entered.set()
        release.wait(timeout=5)
        events.append("copied")

    window.on_changed(slow_listener)

    def disposer():
        entered.wait(timeout=5)
        release.set()
        binding.dispose()
        events.append("disposed")

    thread = threading.Thread(target=disposer)
    thread.start()

    # Act
    product.name = "Table"
    thread.join(timeout=5)
    product.name = "Lamp"

    # Assert
    assert events == ["copied", "disposed"]
    assert window.product_name == "Table"


@pytest.mark.unit
def test_dispose_removes_handlers_from_entities(product, window, recorder):
    product_changes = recorder
    binding = Binding(product, "name", window, "product_name")
    binding.dispose()
    product.on_changed(product_changes)

    product.name = "Table"

    # Only the recorder remains subscribed
    assert product_changes.names == ["name"]
    assert window.product_name == "Book"


@pytest.mark.unit
def test_binding_as_context_manager(product, window):
    with bind(product, "name", window, "product_name") as binding:
        product.name = "Table"
        assert window.product_name == "Table"

    product.name = "Chair"

    assert binding.disposed
    assert window.product_name == "Table"


@pytest.mark.unit
def test_incompatible_types_fail_before_subscribing(product):
    counter = ObservableEntity(count=3)

    with pytest.raises(BindingTypeError, match=r"name \(str\).*count \(int\)"):
        bind(product, "name", counter, "count")

    product.name = "Table"
    counter.set_property("count", 4)

    assert counter.get_property("count") == 4
    assert product.name == "Table"


@pytest.mark.unit
def test_type_error_is_a_type_error(product):
    counter = ObservableEntity(count=3)

    with pytest.raises(TypeError):
        bind(product, "name", counter, "count")


@pytest.mark.unit
def test_subclass_types_are_compatible():
    flags = ObservableEntity(enabled=True)
    counts = ObservableEntity(total=5)

    bind(flags, "enabled", counts, "total")
    flags.set_property("enabled", False)

    assert counts.get_property("total") is False


@pytest.mark.unit
def test_unknown_type_is_compatible_with_anything():
    empty = ObservableEntity(value=None)
    numbers = ObservableEntity(value=1)

    bind(empty, "value", numbers, "value")
    numbers.set_property("value", 2)

    assert empty.get_property("value") == 2


@pytest.mark.unit
def test_unknown_endpoint_is_rejected(product, window):
    with pytest.raises(UnknownPropertyError, match="'title'"):
        bind(product, "name", window, "title")


@pytest.mark.unit
def test_binding_a_property_to_itself_is_rejected(product):
    with pytest.raises(BindingError, match="to itself"):
        bind(product, "name", product, "name")


@pytest.mark.unit
def test_two_properties_of_one_entity_can_be_bound():
    entity = ObservableEntity(left="a", right="a")
    bind(entity, "left", entity, "right")

    entity.set_property("left", "b")

    assert entity.get_property("right") == "b"


@pytest.mark.unit
def test_derived_endpoint_is_a_read_only_source(person):
    badge = ObservableEntity(eligible=False)
    bind(person, "can_vote", badge, "eligible")

    person.citizen = True
    person.age = 18
    assert badge.get_property("eligible") is True

    # Writing the other side never writes into the derived property
    badge.set_property("eligible", False)
    assert person.can_vote is True


@pytest.mark.unit
def test_binding_two_derived_properties_is_rejected(person):
    other = ObservableEntity(x=1)
    other.declare_derived("positive", lambda self: self.x > 0)

    with pytest.raises(BindingError, match="both read-only"):
        bind(person, "can_vote", other, "positive")


@pytest.mark.unit
def test_failed_write_in_handler_is_isolated(caplog):
    source = ObservableEntity(value=1)
    target = ObservableEntity(value=1)
    bind(source, "value", target, "value")

    def reject(name):
        raise RuntimeError("target listener failed")

    target.on_changed(reject)
    source.set_property("value", 2)

    assert target.get_property("value") == 2
    assert "target listener failed" in caplog.text


@pytest.mark.unit
def test_repr(product, window):
    binding = bind(product, "name", window, "product_name")

    assert repr(binding) == "Binding(Product.name <-> Window.product_name)"
    binding.dispose()
    assert repr(binding) == "Binding('name' <-> 'product_name', disposed)"
