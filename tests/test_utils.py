import ipaddress
import threading

import pytest

from infraoffload.p4.utils import (
    MAX_UINT32,
    Action,
    InterfaceType,
    UUIDGenerator,
    ip4_to_int,
    pack32_binary_ip4,
    value_to_bytes,
    value_to_bytes16,
)


@pytest.mark.parametrize("value", [0, 1, 255, 65536, 20000, MAX_UINT32])
def test_value_to_bytes_round_trip(value):
    packed = value_to_bytes(value)
    assert len(packed) == 4
    assert int.from_bytes(packed, "big") == value


@pytest.mark.parametrize("value", [0, 1, 255, 20000, 65535])
def test_value_to_bytes16_round_trip(value):
    packed = value_to_bytes16(value)
    assert len(packed) == 2
    assert int.from_bytes(packed, "big") == value


def test_value_to_bytes_is_big_endian():
    assert value_to_bytes(1)[-1] == 1
    assert value_to_bytes16(1) == b"\x00\x01"


@pytest.mark.parametrize("value", [-1, MAX_UINT32 + 1])
def test_value_to_bytes_out_of_range(value):
    with pytest.raises(ValueError):
        value_to_bytes(value)


@pytest.mark.parametrize("value", [-1, 65536])
def test_value_to_bytes16_out_of_range(value):
    with pytest.raises(ValueError):
        value_to_bytes16(value)


def test_pack_ipv4_address():
    assert pack32_binary_ip4("10.10.10.1") == bytes([10, 10, 10, 1])


@pytest.mark.parametrize("address", ["10.10.100.1", "10.100.0.1", "10.10.10.2"])
def test_ip4_to_int_matches_packed_bytes(address):
    assert int.from_bytes(pack32_binary_ip4(address), "big") == ip4_to_int(address)


def test_ip4_to_int_accepts_address_objects():
    text = "10.10.100.1"
    assert ip4_to_int(ipaddress.IPv4Address(text)) == ip4_to_int(text)


def test_ipv4_mapped_ipv6_is_treated_as_ipv4():
    assert ip4_to_int("::ffff:10.10.10.1") == ip4_to_int("10.10.10.1")


@pytest.mark.parametrize("address", ["a.b.c.d", "", "fe80::1", "10.100.a.1", None])
def test_invalid_or_ipv6_addresses_pack_to_zero(address):
    assert ip4_to_int(address) == 0
    assert pack32_binary_ip4(address) == b"\x00\x00\x00\x00"


def test_action_and_interface_values_follow_declaration_order():
    assert [Action(i) for i in range(3)] == [Action.INSERT, Action.DELETE, Action.UPDATE]
    assert [InterfaceType(i) for i in range(len(InterfaceType))] == list(InterfaceType)
    assert Action.INSERT < Action.DELETE < Action.UPDATE
    with pytest.raises(ValueError):
        Action(10)


def test_uuid_generator_counts_up_from_one():
    gen = UUIDGenerator()
    assert [gen.next_id() for _ in range(3)] == [1, 2, 3]
    assert next(gen) == 4


def test_uuid_generator_wraps_to_one():
    gen = UUIDGenerator()
    gen._current = MAX_UINT32 - 1
    assert gen.next_id() == MAX_UINT32
    assert gen.next_id() == 1


def test_uuid_generator_is_unique_across_threads():
    gen = UUIDGenerator()
    results = []
    lock = threading.Lock()

    def take():
        ids = [gen.next_id() for _ in range(200)]
        with lock:
            results.extend(ids)

    threads = [threading.Thread(target=take) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert sorted(results) == list(range(1, 801))
    assert gen.next_id() == 801