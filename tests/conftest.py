"""
Shared pytest fixtures and configuration for PropWatch tests.
"""

import pytest

from propwatch import ObservableEntity, derived, observable


class Recorder:
    """Collects property names from change notifications."""

    def __init__(self):
        self.names = []

    def __call__(self, name):
        self.names.append(name)

    def count(self, name):
        return self.names.count(name)


@pytest.fixture
def recorder():
    """Provide a fresh notification recorder."""
    return Recorder()


@pytest.fixture
def person():
    """Provide an entity with age, citizen and a derived can_vote."""

    class Person(ObservableEntity):
        age = observable(0, value_type=int)
        citizen = observable(False, value_type=bool)
        can_vote = derived(lambda self: self.citizen and self.age >= 16)

    return Person()


@pytest.fixture
def make_recorder():
    """Provide a factory for tests that need several recorders."""
    return Recorder
