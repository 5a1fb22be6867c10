"""Unit tests for snapshot and utility functions in lke_dns.cli.

Tests cover:
- AddressSnapshot canonicalization and fingerprint
- Address normalization (_normalize_address, _normalize_target)
- Boolean parsing (_parse_bool)
"""

import threading

import pytest

from lke_dns.cli import (
    AddressSnapshot,
    RecordType,
    SyncCancelled,
    ZoneRecord,
    _check_cancelled,
    _normalize_address,
    _normalize_target,
    _parse_bool,
)

# =============================================================================
# AddressSnapshot
# =============================================================================


def test_snapshot_sorts_and_deduplicates() -> None:
    snapshot = AddressSnapshot(ipv4=("3.3.3.3", "1.1.1.1", "3.3.3.3"), ipv6=("b::1", "a::1"))

    assert snapshot.ipv4 == ("1.1.1.1", "3.3.3.3")
    assert snapshot.ipv6 == ("a::1", "b::1")


def test_snapshot_sort_is_lexicographic() -> None:
    snapshot = AddressSnapshot(ipv4=("10.0.0.2", "9.0.0.1", "10.0.0.10"))

    assert snapshot.ipv4 == ("10.0.0.10", "10.0.0.2", "9.0.0.1")


def test_snapshot_fingerprint() -> None:
    snapshot = AddressSnapshot(ipv4=("1.1.1.1", "2.2.2.2"), ipv6=("2001:db8::1",))

    assert snapshot.fingerprint == "1.1.1.1,2.2.2.2,2001:db8::1"


def test_empty_snapshot_fingerprint_differs_from_initial_state() -> None:
    assert AddressSnapshot().fingerprint == ","
    assert AddressSnapshot().fingerprint != ""


def test_snapshot_order_does_not_change_fingerprint() -> None:
    first = AddressSnapshot.from_addresses(["2.2.2.2", "1.1.1.1"], ["2001:db8::2", "2001:db8::1"])
    second = AddressSnapshot.from_addresses(["1.1.1.1", "2.2.2.2"], ["2001:db8::1", "2001:db8::2"])

    assert first == second
    assert first.fingerprint == second.fingerprint


def test_from_addresses_normalizes_and_filters_by_family() -> None:
    snapshot = AddressSnapshot.from_addresses(
        [" 1.1.1.1 ", "2001:db8::1", "garbage"],
        ["2001:DB8:0:0::1", "1.1.1.1"],
    )

    assert snapshot.ipv4 == ("1.1.1.1",)
    assert snapshot.ipv6 == ("2001:db8::1",)


def test_snapshot_is_immutable() -> None:
    snapshot = AddressSnapshot(ipv4=("1.1.1.1",))

    with pytest.raises(AttributeError):
        snapshot.ipv4 = ("2.2.2.2",)  # type: ignore[misc]


def test_addresses_for_record_type() -> None:
    snapshot = AddressSnapshot(ipv4=("1.1.1.1",), ipv6=("2001:db8::1",))

    assert snapshot.addresses_for(RecordType.A) == ("1.1.1.1",)
    assert snapshot.addresses_for(RecordType.AAAA) == ("2001:db8::1",)
    assert RecordType.A.ip_version == 4
    assert RecordType.AAAA.ip_version == 6


def test_zone_record_is_apex() -> None:
    assert ZoneRecord(id=1, type="A", name="", target="1.1.1.1").is_apex
    assert not ZoneRecord(id=2, type="A", name="www", target="1.1.1.1").is_apex


# =============================================================================
# Address Normalization
# =============================================================================


def test_normalize_address_compresses_ipv6() -> None:
    assert _normalize_address("2600:3C00:0000:0000:F03C:91FF:FE00:0001", 6) == (
        "2600:3c00::f03c:91ff:fe00:1"
    )


def test_normalize_address_rejects_wrong_family() -> None:
    assert _normalize_address("2001:db8::1", 4) is None
    assert _normalize_address("1.1.1.1", 6) is None


def test_normalize_address_rejects_non_strings_and_garbage() -> None:
    assert _normalize_address(None, 4) is None
    assert _normalize_address(1234, 4) is None
    assert _normalize_address("1.1.1", 4) is None


def test_normalize_target_keeps_unparseable_value() -> None:
    assert _normalize_target("example.com") == "example.com"
    assert _normalize_target("2001:DB8::1") == "2001:db8::1"


# =============================================================================
# Cancellation
# =============================================================================


def test_check_cancelled() -> None:
    cancel = threading.Event()

    _check_cancelled(None)
    _check_cancelled(cancel)

    cancel.set()
    with pytest.raises(SyncCancelled):
        _check_cancelled(cancel)


# =============================================================================
# Boolean Parsing Tests
# =============================================================================


def test_parse_bool_none_returns_default() -> None:
    assert _parse_bool(None, default=True) is True
    assert _parse_bool(None, default=False) is False


def test_parse_bool_true_values() -> None:
    for value in ["1", "true", "TRUE", "yes", "Y", "on", " true "]:
        assert _parse_bool(value) is True, f"Expected True for {value!r}"


def test_parse_bool_false_values() -> None:
    for value in ["0", "false", "no", "off", "", "maybe"]:
        assert _parse_bool(value) is False, f"Expected False for {value!r}"


def test_parse_bool_passthrough_bool() -> None:
    assert _parse_bool(True, default=False) is True
    assert _parse_bool(False, default=True) is False


def test_snapshot_constructor_normalizes_and_drops_invalid() -> None:
    snapshot = AddressSnapshot(
        ipv4=("1.1.1.1", "2001:db8::1", "garbage"),
        ipv6=("2001:DB8::A", "2001:db8:0:0::a", "1.1.1.1"),
    )

    assert snapshot.ipv4 == ("1.1.1.1",)
    assert snapshot.ipv6 == ("2001:db8::a",)
    assert snapshot == AddressSnapshot(ipv4=("1.1.1.1",), ipv6=("2001:db8::a",))
