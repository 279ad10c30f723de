"""Forwarding rules that send ARP and IPv4 traffic to a pod's port."""

from __future__ import annotations

import logging
import string
from typing import Any

from infraoffload.p4.utils import InterfaceType, pack32_binary_ip4, value_to_bytes
from infraoffload.p4.wrapper import ExactMatch, P4Error, P4RuntimeWrapper
from infraoffload.store.models import _is_valid_ip

log = logging.getLogger(__name__)

ARPT_TO_PORT_TABLE = "k8s_dp_control.arpt_to_port_table"
IPV4_TO_PORT_TABLE = "k8s_dp_control.ipv4_to_port_table"
SET_DEST_VPORT = "k8s_dp_control.set_dest_vport"
SET_DEST_MAC_VPORT = "k8s_dp_control.set_dest_mac_vport"


def _hex_groups(parts: list[str], width: int) -> bool:
    return all(len(p) == width and all(c in string.hexdigits for c in p) for p in parts)


def _parse_mac(text: str) -> bytes:
    """Return the bytes of a MAC address in colon, hyphen or dotted form."""
    for sep in ":-":
        parts = text.split(sep)
        if len(parts) in (6, 8, 20) and _hex_groups(parts, 2):
            return bytes.fromhex("".join(parts))
    parts = text.split(".")
    if len(parts) in (3, 4, 10) and _hex_groups(parts, 4):
        return bytes.fromhex("".join(parts))
    raise P4Error(f"invalid MAC address {text!r}")


def arpt_to_port_table(
    wrapper: P4RuntimeWrapper, client: Any, arp_tpa: str, port: int, add: bool
) -> None:
    """Add or remove the rule sending ARP requests for ``arp_tpa`` to ``port``."""
    match_fields = {"hdr.arp.tpa": ExactMatch(pack32_binary_ip4(arp_tpa))}
    if add:
        action = wrapper.new_table_action_direct(client, SET_DEST_VPORT, [value_to_bytes(port)])
        entry = wrapper.new_table_entry(client, ARPT_TO_PORT_TABLE, match_fields, action, None)
        try:
            wrapper.insert_table_entry(client, entry)
        except Exception as exc:
            log.error(
                "Cannot insert entry into arpt_to_port_table table, ip: %s, port: %d, err: %s",
                arp_tpa, port, exc,
            )
            raise
    else:
        entry = wrapper.new_table_entry(client, ARPT_TO_PORT_TABLE, match_fields, None, None)
        try:
            wrapper.delete_table_entry(client, entry)
        except Exception as exc:
            log.error(
                "Cannot delete entry from arpt_to_port_table table, ip: %s, port: %d, err: %s",
                arp_tpa, port, exc,
            )
            raise


def ipv4_to_port_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    ip_addr: str,
    mac_addr: str,
    port: int,
    add: bool,
) -> None:
    """Add or remove the rule sending IPv4 traffic for ``ip_addr`` to ``port``."""
    match_fields = {"hdr.ipv4.dst_addr": ExactMatch(pack32_binary_ip4(ip_addr))}
    if add:
        try:
            dmac = _parse_mac(mac_addr)
        except P4Error:
            log.error("Invalid mac address %s", mac_addr)
            raise
        action = wrapper.new_table_action_direct(
            client, SET_DEST_MAC_VPORT, [value_to_bytes(port), dmac]
        )
        entry = wrapper.new_table_entry(client, IPV4_TO_PORT_TABLE, match_fields, action, None)
        try:
            wrapper.insert_table_entry(client, entry)
        except Exception as exc:
            log.error("Cannot insert entry into ipv4_to_port_table table: %s", exc)
            raise
    else:
        entry = wrapper.new_table_entry(client, IPV4_TO_PORT_TABLE, match_fields, None, None)
        try:
            wrapper.delete_table_entry(client, entry)
        except Exception as exc:
            log.error("Cannot delete entry from ipv4_to_port_table table: %s", exc)
            raise


def insert_cni_rules(
    wrapper: P4RuntimeWrapper,
    client: Any,
    mac_addr: str,
    ip_addr: str,
    port_id: int,
    iface_type: InterfaceType | int,
) -> None:
    """Program the ARP and IPv4 rules for a new pod interface.

    The same rules are programmed whatever ``iface_type`` is.
    """
    if not _is_valid_ip(ip_addr):
        raise P4Error("Invalid IP Address")
    try:
        _parse_mac(mac_addr)
    except P4Error:
        raise P4Error("Invalid MAC Address") from None
    arpt_to_port_table(wrapper, client, ip_addr, port_id, True)
    ipv4_to_port_table(wrapper, client, ip_addr, mac_addr, port_id, True)


def delete_cni_rules(
    wrapper: P4RuntimeWrapper, client: Any, mac_addr: str, ip_addr: str
) -> None:
    """Remove the ARP and IPv4 rules of a pod interface."""
    if not _is_valid_ip(ip_addr):
        raise P4Error("Invalid IP Address")
    arpt_to_port_table(wrapper, client, ip_addr, 0, False)
    ipv4_to_port_table(wrapper, client, ip_addr, "", 0, False)