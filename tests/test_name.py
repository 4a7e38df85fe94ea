"""Tests for the name library."""

import hashlib

from fleet_deployer.name import MAX_NAME_LENGTH, safe_concat_name


def _digest(name: str) -> str:
    return hashlib.sha256(name.encode()).hexdigest()[:5]


def test_short_name() -> None:
    """Test names that fit are joined unchanged."""
    assert safe_concat_name("fleet", "app-1") == "fleet-app-1"
    assert safe_concat_name("app-1") == "app-1"


def test_max_length_name() -> None:
    """Test a name of exactly the maximum length is unchanged."""
    name = "a" * MAX_NAME_LENGTH
    assert safe_concat_name(name) == name


def test_long_name() -> None:
    """Test a long name is truncated with a hash suffix."""
    full_name = "fleet-" + "a" * 70
    result = safe_concat_name("fleet", "a" * 70)
    assert len(result) == MAX_NAME_LENGTH
    assert result == f"{full_name[:57]}-{_digest(full_name)}"


def test_long_name_cut_on_separator() -> None:
    """Test the prefix is shortened when it would end with a separator."""
    full_name = "a" * 56 + "-" + "b" * 20
    result = safe_concat_name(full_name)
    assert result == f"{'a' * 56}-{_digest(full_name)}"
    assert len(result) == MAX_NAME_LENGTH - 1


def test_long_names_stay_distinct() -> None:
    """Test different long names with a common prefix stay distinct."""
    prefix = "x" * 60
    assert safe_concat_name(prefix, "one") != safe_concat_name(prefix, "two")
    assert safe_concat_name(prefix, "one") == safe_concat_name(prefix, "one")
