"""Tests for consumed projections and their merging."""

import pytest

from sitedata.usage import RAW, UNUSED, Fields, Items, ShapeMismatchError, Whole, merge, merge_usage


def test_merge_fields_union() -> None:
    """Keep every field consumed by either side."""
    left = Fields({'stargazer_count': Whole(86)})
    right = Fields({'language': Whole('Elm')})

    assert merge(left, right).materialize() == {'stargazer_count': 86, 'language': 'Elm'}


def test_merge_nested_fields() -> None:
    """Merge nested objects field by field."""
    left = Fields({'owner': Fields({'login': Whole('a')})})
    right = Fields({'owner': Fields({'id': Whole(1)}), 'name': Whole('x')})

    assert merge(left, right).materialize() == {'owner': {'login': 'a', 'id': 1}, 'name': 'x'}


def test_merge_items() -> None:
    """Merge consumed items, keeping the array length."""
    left = Items({0: Whole(1)}, 3)
    right = Items({2: Whole(3)}, 3)

    assert merge(left, right).materialize() == [1, None, 3]


@pytest.mark.parametrize('left, right, expected', (
    pytest.param(UNUSED, Whole(1), Whole(1), id='unused left'),
    pytest.param(Fields({'a': Whole(1)}), UNUSED, Fields({'a': Whole(1)}), id='unused right'),
    pytest.param(Whole({'a': 1, 'b': 2}), Fields({'a': Whole(1)}), Whole({'a': 1, 'b': 2}), id='whole wins'),
    pytest.param(Items({0: Whole(1)}, 1), Whole([1]), Whole([1]), id='whole wins right'),
    pytest.param(RAW, Whole('text'), RAW, id='raw wins'),
    pytest.param(UNUSED, RAW, RAW, id='raw over unused'),
))
def test_merge_precedence(left: object, right: object, expected: object) -> None:
    """Resolve merges of projections of different kinds."""
    assert merge(left, right) == expected


def test_merge_shape_mismatch() -> None:
    """Reject merging an object projection with an array projection."""
    with pytest.raises(ShapeMismatchError, match='Can not merge Fields with Items'):
        merge(Fields({'a': Whole(1)}), Items({0: Whole(1)}, 1))


def test_unused_materializes_to_null() -> None:
    """Encode values nobody looked at as `null`."""
    assert UNUSED.materialize() is None


def test_raw_does_not_materialize() -> None:
    """Refuse to encode raw bodies as JSON."""
    with pytest.raises(TypeError):
        RAW.materialize()


def test_merge_usage() -> None:
    """Merge per-request usages."""
    usage = merge_usage(
        {'h1': Fields({'a': Whole(1)})},
        {'h1': Fields({'b': Whole(2)}), 'h2': RAW},
        {},
    )

    assert set(usage) == {'h1', 'h2'}
    assert usage['h1'].materialize() == {'a': 1, 'b': 2}
    assert usage['h2'] is RAW
