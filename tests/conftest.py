"""
Shared pytest fixtures and configuration for truth tests.
"""

import pytest

from truth import Store, _reset_registry


@pytest.fixture(autouse=True)
def reset_registry():
    """Reset the store registry before each test so generated names are predictable."""
    _reset_registry()


@pytest.fixture
def store():
    """A keyed store, the most common setup in these tests."""
    return Store("truth", key="foo")


@pytest.fixture
def other():
    """A second keyed store to merge from."""
    return Store("truth2", key="foo")


@pytest.fixture
def plain():
    """A store without a unique key."""
    return Store("plain")


@pytest.fixture
def recorder():
    """Factory attaching a change recorder to a store."""

    def attach(target, event="change"):
        calls = []
        target.on(event, lambda *args: calls.append(args))
        return calls

    return attach
