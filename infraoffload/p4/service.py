"""Load-balancing rules that map a service address onto its pod endpoints."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Sequence

from infraoffload.p4.utils import (
    Action,
    UUIDGenerator,
    pack32_binary_ip4,
    value_to_bytes,
    value_to_bytes16,
)
from infraoffload.p4.wrapper import (
    ActionProfileGroup,
    ExactMatch,
    GroupMember,
    P4Error,
    P4RuntimeWrapper,
    TableEntry,
)
from infraoffload.store.models import Service, ServiceEndPoint, _is_valid_ip
from infraoffload.store.services import ServiceStore

log = logging.getLogger(__name__)

WRITE_DEST_IP_TABLE = "k8s_dp_control.write_dest_ip_table"
WRITE_SOURCE_IP_TABLE = "k8s_dp_control.write_source_ip_table"
AS_SL3_TCP = "k8s_dp_control.as_sl3_tcp"
AS_SL3_UDP = "k8s_dp_control.as_sl3_udp"
TX_BALANCE_TCP = "k8s_dp_control.tx_balance_tcp"
TX_BALANCE_UDP = "k8s_dp_control.tx_balance_udp"
SET_META_TCP = "k8s_dp_control.set_meta_tcp"
SET_META_UDP = "k8s_dp_control.set_meta_udp"

UPDATE_DST_IP = "k8s_dp_control.update_dst_ip"
UPDATE_SRC_IP = "k8s_dp_control.update_src_ip"
SET_DEFAULT_LB_DEST = "k8s_dp_control.set_default_lb_dest"
SET_KEY_FOR_REVERSE_CT = "k8s_dp_control.set_key_for_reverse_ct"

ACTION_GROUP_MAX_SIZE = 128

_default_ids = UUIDGenerator()


def _check_action(action: Action | int) -> Action:
    try:
        return Action(action)
    except ValueError:
        log.warning("Invalid action %s", action)
        raise P4Error(f"Invalid action {action}") from None


def _run(operation, message: str, *args: Any) -> None:
    try:
        operation(*args)
    except Exception as exc:
        log.error("%s: %s", message, exc)
        raise


def write_dest_ip_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    pod_ip_addrs: Sequence[str] | None,
    port_ids: Sequence[int] | None,
    mod_blob_ptrs: Sequence[int],
    action: Action | int,
) -> list[TableEntry]:
    """Program the DNAT rewrite of each mod blob pointer to its pod address."""
    action = _check_action(action)
    entries = []
    if action is Action.DELETE:
        for ptr in mod_blob_ptrs:
            match = {"meta.mod_blob_ptr_dnat": ExactMatch(value_to_bytes(ptr))}
            entry = wrapper.new_table_entry(client, WRITE_DEST_IP_TABLE, match, None, None)
            _run(wrapper.delete_table_entry,
                 "Cannot delete entry from 'write_dest_ip_table'", client, entry)
            entries.append(entry)
        return entries

    for ptr, pod_ip, port in zip(mod_blob_ptrs, pod_ip_addrs or (), port_ids or ()):
        match = {"meta.mod_blob_ptr_dnat": ExactMatch(value_to_bytes(ptr))}
        table_action = wrapper.new_table_action_direct(
            client, UPDATE_DST_IP, [pack32_binary_ip4(pod_ip), value_to_bytes16(port)]
        )
        entry = wrapper.new_table_entry(client, WRITE_DEST_IP_TABLE, match, table_action, None)
        _run(wrapper.insert_table_entry,
             "Cannot insert entry into 'write_dest_ip_table'", client, entry)
        entries.append(entry)
    return entries


def _as_sl3_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    profile: str,
    label: str,
    member_ids: Sequence[int],
    mod_blob_ptrs: Sequence[int],
    group_id: int,
    action: Action | int,
) -> ActionProfileGroup:
    action = _check_action(action)
    members = [GroupMember(member_id) for member_id in member_ids]
    group = wrapper.new_action_profile_group(
        client, profile, group_id, members, ACTION_GROUP_MAX_SIZE
    )

    if action is Action.DELETE:
        _run(wrapper.delete_action_profile_group,
             f"Cannot delete group entry from '{label} table'", client, group)

    for member_id, ptr in zip(member_ids, mod_blob_ptrs):
        member = wrapper.new_action_profile_member(
            client, profile, member_id, SET_DEFAULT_LB_DEST, [value_to_bytes(ptr)]
        )
        if action is Action.DELETE:
            _run(wrapper.delete_action_profile_member,
                 f"Cannot delete member entry from '{label} table'", client, member)
        else:
            _run(wrapper.insert_action_profile_member,
                 f"Cannot insert member entry into '{label} table'", client, member)

    if action is Action.INSERT:
        _run(wrapper.insert_action_profile_group,
             f"Cannot insert group entry into '{label} table'", client, group)
    elif action is Action.UPDATE:
        _run(wrapper.modify_action_profile_group,
             f"Cannot update group entry into '{label} table'", client, group)
    return group


def as_sl3_tcp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, action):
    """Program the TCP action selector group and its members."""
    return _as_sl3_table(wrapper, client, AS_SL3_TCP, "as_sl3_tcp",
                         member_ids, mod_blob_ptrs, group_id, action)


def as_sl3_udp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, action):
    """Program the UDP action selector group and its members."""
    return _as_sl3_table(wrapper, client, AS_SL3_UDP, "as_sl3_udp",
                         member_ids, mod_blob_ptrs, group_id, action)


def _tx_balance_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    table: str,
    label: str,
    port_field: str,
    service_ip: str,
    service_port: int,
    group_id: int,
    action: Action | int,
) -> TableEntry | None:
    action = _check_action(action)
    match = {
        "hdr.ipv4.dst_addr": ExactMatch(pack32_binary_ip4(service_ip)),
        port_field: ExactMatch(value_to_bytes16(service_port)),
    }
    entry = wrapper.new_table_entry(
        client, table, match, wrapper.new_table_action_group(client, group_id), None
    )
    if action is Action.INSERT:
        _run(wrapper.insert_table_entry,
             f"Cannot insert entry into '{label} table'", client, entry)
    elif action is Action.DELETE:
        _run(wrapper.delete_table_entry,
             f"Cannot delete entry from '{label} table'", client, entry)
    else:
        return None
    return entry


def tx_balance_tcp_table(wrapper, client, service_ip, service_port, group_id, action):
    """Point TCP traffic for the service address at its action group."""
    return _tx_balance_table(wrapper, client, TX_BALANCE_TCP, "tx_balance_tcp",
                             "hdr.tcp.dst_port", service_ip, service_port, group_id, action)


def tx_balance_udp_table(wrapper, client, service_ip, service_port, group_id, action):
    """Point UDP traffic for the service address at its action group."""
    return _tx_balance_table(wrapper, client, TX_BALANCE_UDP, "tx_balance_udp",
                             "hdr.udp.dst_port", service_ip, service_port, group_id, action)


def write_source_ip_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    mod_blob_ptr_snat: int,
    service_ip: str,
    service_port: int,
    action: Action | int,
) -> TableEntry | None:
    """Program the SNAT rewrite back to the service address; updates do nothing."""
    action = _check_action(action)
    match = {"meta.mod_blob_ptr_snat": ExactMatch(value_to_bytes(mod_blob_ptr_snat))}
    if action is Action.INSERT:
        table_action = wrapper.new_table_action_direct(
            client, UPDATE_SRC_IP,
            [pack32_binary_ip4(service_ip), value_to_bytes16(service_port)],
        )
        entry = wrapper.new_table_entry(client, WRITE_SOURCE_IP_TABLE, match, table_action, None)
        _run(wrapper.insert_table_entry,
             "Cannot insert entry into 'write_source_ip_table table'", client, entry)
        return entry
    if action is Action.DELETE:
        entry = wrapper.new_table_entry(client, WRITE_SOURCE_IP_TABLE, match, None, None)
        _run(wrapper.delete_table_entry,
             "Cannot delete entry from 'write_source_ip_table table'", client, entry)
        return entry
    return None


def _set_meta_table(
    wrapper: P4RuntimeWrapper,
    client: Any,
    table: str,
    label: str,
    port_field: str,
    pod_ip_addrs: Sequence[str],
    port_ids: Sequence[int],
    mod_blob_ptr_snat: int,
    action: Action | int,
) -> list[TableEntry]:
    action = _check_action(action)
    entries = []
    for pod_ip, port in zip(pod_ip_addrs, port_ids):
        match = {
            "hdr.ipv4.dst_addr": ExactMatch(pack32_binary_ip4(pod_ip)),
            port_field: ExactMatch(value_to_bytes16(port)),
        }
        if action is Action.DELETE:
            entry = wrapper.new_table_entry(client, table, match, None, None)
            _run(wrapper.delete_table_entry,
                 f"Cannot delete entry from '{label} table'", client, entry)
        else:
            table_action = wrapper.new_table_action_direct(
                client, SET_KEY_FOR_REVERSE_CT, [value_to_bytes(mod_blob_ptr_snat)]
            )
            entry = wrapper.new_table_entry(client, table, match, table_action, None)
            _run(wrapper.insert_table_entry,
                 f"Cannot insert entry in '{label} table'", client, entry)
        entries.append(entry)
    return entries


def set_meta_tcp_table(wrapper, client, pod_ip_addrs, port_ids, mod_blob_ptr_snat, action):
    """Tag TCP replies from each pod with the key for reverse connection tracking."""
    return _set_meta_table(wrapper, client, SET_META_TCP, "set_meta_tcp", "hdr.tcp.dst_port",
                           pod_ip_addrs, port_ids, mod_blob_ptr_snat, action)


def set_meta_udp_table(wrapper, client, pod_ip_addrs, port_ids, mod_blob_ptr_snat, action):
    """Tag UDP replies from each pod with the key for reverse connection tracking."""
    return _set_meta_table(wrapper, client, SET_META_UDP, "set_meta_udp", "hdr.udp.dst_port",
                           pod_ip_addrs, port_ids, mod_blob_ptr_snat, action)


def insert_service_rules(
    wrapper: P4RuntimeWrapper,
    client: Any,
    pod_ip_addrs: Sequence[str],
    port_ids: Sequence[int],
    service: Service,
    update: bool = False,
    id_generator: UUIDGenerator | None = None,
) -> Service:
    """Program a service (or add endpoints to one) and return its new record.

    New services draw their group id from ``id_generator``; updates keep the
    service's group id and endpoint count.
    """
    action = Action.UPDATE if update else Action.INSERT
    result = dataclasses.replace(service, service_endpoints=dict(service.service_endpoints))

    if update:
        group_id = result.group_id
        ep_num = result.num_endpoints
    else:
        group_id = (id_generator or _default_ids).next_id()
        result.group_id = group_id
        ep_num = 0

    if not _is_valid_ip(service.cluster_ip):
        raise P4Error(f"Invalid cluster IP: {service.cluster_ip}")

    member_ids: list[int] = []
    for pod_ip, port in zip(pod_ip_addrs, port_ids):
        if not _is_valid_ip(pod_ip):
            raise P4Error(f"Invalid IP Address: {pod_ip}")
        member_id = ((group_id << 4) | ((ep_num + 1) & 0xF)) & 0xFFFFFFFF
        member_ids.append(member_id)
        result.service_endpoints[pod_ip] = ServiceEndPoint(
            ip_address=pod_ip, port=port, member_id=member_id, mod_blob_ptr_dnat=member_id
        )
        ep_num += 1
    result.num_endpoints = ep_num
    mod_blob_ptrs = list(member_ids)
    service_port = result.port & 0xFFFF

    log.debug("group id: %d, service ip: %s, service port: %d",
              group_id, result.cluster_ip, result.port)

    write_dest_ip_table(wrapper, client, pod_ip_addrs, port_ids, mod_blob_ptrs, action)

    if result.proto == "TCP":
        as_sl3_tcp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, action)
        set_meta_tcp_table(wrapper, client, pod_ip_addrs, port_ids, group_id, action)
        if action is not Action.UPDATE:
            tx_balance_tcp_table(wrapper, client, result.cluster_ip, service_port,
                                 group_id, action)
    elif result.proto == "UDP":
        as_sl3_udp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, action)
        set_meta_udp_table(wrapper, client, pod_ip_addrs, port_ids, group_id, action)
        if action is not Action.UPDATE:
            tx_balance_udp_table(wrapper, client, result.cluster_ip, service_port,
                                 group_id, action)
    else:
        log.error("Invalid protocol type")
        raise P4Error("Invalid protocol type")

    if action is not Action.UPDATE:
        write_source_ip_table(wrapper, client, group_id, result.cluster_ip,
                              service_port, action)
    return result


def delete_service_rules(
    wrapper: P4RuntimeWrapper,
    client: Any,
    service: Service,
    service_store: ServiceStore,
) -> None:
    """Remove every rule programmed for the service recorded in ``service_store``."""
    stored = service_store.get(service)
    if stored is None:
        raise P4Error("No GroupID found")

    group_id = stored.group_id
    endpoints = list(stored.service_endpoints.values())
    pod_ip_addrs = [ep.ip_address for ep in endpoints]
    port_ids = [ep.port & 0xFFFF for ep in endpoints]
    member_ids = [ep.member_id for ep in endpoints]
    mod_blob_ptrs = [ep.mod_blob_ptr_dnat for ep in endpoints]
    service_port = stored.port & 0xFFFF

    if stored.proto == "TCP":
        tx_balance_tcp_table(wrapper, client, stored.cluster_ip, service_port,
                             group_id, Action.DELETE)
        as_sl3_tcp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, Action.DELETE)
        set_meta_tcp_table(wrapper, client, pod_ip_addrs, port_ids, group_id, Action.DELETE)
    elif stored.proto == "UDP":
        tx_balance_udp_table(wrapper, client, stored.cluster_ip, service_port,
                             group_id, Action.DELETE)
        as_sl3_udp_table(wrapper, client, member_ids, mod_blob_ptrs, group_id, Action.DELETE)
        set_meta_udp_table(wrapper, client, pod_ip_addrs, port_ids, group_id, Action.DELETE)
    else:
        log.error("Invalid protocol type")
        raise P4Error("Invalid protocol type")

    write_dest_ip_table(wrapper, client, None, None, mod_blob_ptrs, Action.DELETE)
    write_source_ip_table(wrapper, client, group_id, "", 0, Action.DELETE)