"""Tests for shared value objects."""

from __future__ import annotations

import pytest

from shared.domain.value_objects import IdempotencyKey, clean_token


def test_clean_token():
    assert clean_token(None) == ""
    assert clean_token("  BK-1 ") == "BK-1"
    assert clean_token(42) == "42"


def test_child_keeps_root():
    root = IdempotencyKey("automation-retry:42")

    assert str(root) == "v1|automation-retry:42"
    assert str(root.child("payment_confirmed")) == "v1|automation-retry:42|payment_confirmed"
    assert root.child("a").child("b").steps == ("a", "b")
    assert root.steps == ()


def test_from_value_round_trips_structured_keys():
    key = IdempotencyKey("evt-1").child("supplier_confirmed")

    assert IdempotencyKey.from_value(str(key)) == key


def test_from_value_wraps_plain_strings():
    key = IdempotencyKey.from_value(" stripe|evt_123 ")

    assert key.root == "stripe/evt_123"
    assert key.steps == ()


@pytest.mark.parametrize("root, steps", [("", ()), ("a|b", ()), ("root", ("",)), ("root", ("x|y",))])
def test_invalid_keys(root, steps):
    with pytest.raises(ValueError):
        IdempotencyKey(root, steps)
