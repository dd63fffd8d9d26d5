"""Unit tests for the identity side-table."""

import pytest

from truth import IdentityTable


@pytest.mark.unit
def test_tagged_row_owns_itself():
    """tag() makes a row resolve to itself."""
    table = IdentityTable("ns")
    row = {"a": 1}

    table.tag(row)

    assert table.owner(row) is row
    assert row == {"a": 1}


@pytest.mark.unit
def test_equal_but_distinct_objects_are_not_tagged():
    """Lookups are by identity, never by equality."""
    table = IdentityTable("ns")
    table.tag({"a": 1})

    assert table.owner({"a": 1}) is None


@pytest.mark.unit
def test_link_and_untag_owner():
    """untag_owner drops the owner and all its projections."""
    table = IdentityTable("ns")
    owner, projection, other = {"a": 1}, {"b": 1}, {"c": 1}
    table.tag(owner)
    table.tag(other)
    table.link(projection, owner)

    table.untag_owner(owner)

    assert table.owner(owner) is None
    assert table.owner(projection) is None
    assert table.owner(other) is other


@pytest.mark.unit
def test_prune_keeps_every_projection_of_owned_rows():
    """prune() keeps old and new projections while their owner is owned."""
    table = IdentityTable("ns")
    owner, older, newer = {"a": 1}, {"old": 1}, {"new": 1}
    table.tag(owner)
    table.link(older, owner)
    table.link(newer, owner)

    table.prune([owner])

    assert table.owner(owner) is owner
    assert table.owner(older) is owner
    assert table.owner(newer) is owner
    assert len(table) == 3


@pytest.mark.unit
def test_prune_drops_rows_no_longer_owned():
    """prune() forgets a former owner together with its projections."""
    table = IdentityTable("ns")
    kept, dropped, projection = {"a": 1}, {"b": 1}, {"wrapped": 1}
    table.tag(kept)
    table.tag(dropped)
    table.link(projection, dropped)

    table.prune([kept])

    assert table.owner(kept) is kept
    assert table.owner(dropped) is None
    assert table.owner(projection) is None
    assert len(table) == 1


@pytest.mark.unit
def test_copy_is_independent():
    """Changes to a copy do not leak into the original."""
    table = IdentityTable("ns")
    row = {"a": 1}
    table.tag(row)

    copy = table.copy()
    copy.untag(row)

    assert table.owner(row) is row
    assert copy.owner(row) is None
    assert copy.namespace == "ns"
