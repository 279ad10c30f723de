"""Records kept by the manager's stores and the file helpers they share."""

from __future__ import annotations

import copy
import ipaddress
import json
import os
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

DEFAULT_STORE_DIR = Path("/var/lib/cni/inframanager")

_T = TypeVar("_T")


class StoreError(Exception):
    """Raised when a store cannot accept, find or persist a record."""


def _is_valid_ip(text: str) -> bool:
    if not text or "%" in text:
        return False
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def _is_hex_group(part: str, width: int) -> bool:
    return len(part) == width and all(c in string.hexdigits for c in part)


def _is_valid_mac(text: str) -> bool:
    """Accept the EUI-48, EUI-64 and 20-octet forms with ':', '-' or '.'."""
    for sep in ":-":
        parts = text.split(sep)
        if len(parts) in (6, 8, 20) and all(_is_hex_group(p, 2) for p in parts):
            return True
    parts = text.split(".")
    return len(parts) in (3, 4, 10) and all(_is_hex_group(p, 4) for p in parts)


def _snapshot(record: _T) -> _T:
    return copy.copy(record)


def _sorted_dict(mapping: Mapping[Any, Any], convert: Callable[[Any], Any]) -> dict:
    return {str(k): convert(mapping[k]) for k in sorted(mapping, key=str)}


def _prepare_dir(store_dir: Path) -> None:
    try:
        store_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StoreError(f"failed to create directory {store_dir}: {exc}") from exc


def _read_store_file(path: Path, truncate: bool) -> bytes:
    """Create the file if missing (emptying it when asked) and return its bytes."""
    flags = os.O_WRONLY | os.O_CREAT
    if truncate:
        flags |= os.O_TRUNC
    try:
        fd = os.open(path, flags, 0o600)
    except OSError as exc:
        raise StoreError(f"failed to open {path}: {exc}") from exc
    os.close(fd)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise StoreError(f"error reading {path}: {exc}") from exc


def _load_records(data: bytes, path: Path, from_dict: Callable[[Any], _T]) -> dict[str, _T]:
    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise StoreError(f"error unmarshalling data from {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise StoreError(f"error unmarshalling data from {path}: not an object")
    try:
        return {key: from_dict(value) for key, value in raw.items()}
    except (TypeError, ValueError, AttributeError) as exc:
        raise StoreError(f"error unmarshalling data from {path}: {exc}") from exc


def _encode(mapping: Mapping[str, Any]) -> bytes:
    try:
        return json.dumps(_sorted_dict(mapping, lambda r: r.to_dict()), indent=1).encode()
    except (TypeError, ValueError) as exc:
        raise StoreError(f"failed to marshal entries: {exc}") from exc


def _write_store_file(path: Path, payload: bytes) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
    except OSError as exc:
        raise StoreError(f"failed to write entries to {path}: {exc}") from exc


@dataclass
class EndPoint:
    pod_ip_address: str = ""
    interface_id: int = 0
    pod_mac_address: str = ""

    def to_dict(self) -> dict:
        return {
            "PodIpAddress": self.pod_ip_address,
            "InterfaceID": self.interface_id,
            "PodMacAddress": self.pod_mac_address,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EndPoint":
        return cls(
            pod_ip_address=data.get("PodIpAddress") or "",
            interface_id=int(data.get("InterfaceID") or 0),
            pod_mac_address=data.get("PodMacAddress") or "",
        )


@dataclass
class ServiceEndPoint:
    ip_address: str = ""
    port: int = 0
    member_id: int = 0
    mod_blob_ptr_dnat: int = 0

    def to_dict(self) -> dict:
        return {
            "IpAddress": self.ip_address,
            "Port": self.port,
            "MemberID": self.member_id,
            "ModBlobPtrDNAT": self.mod_blob_ptr_dnat,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceEndPoint":
        return cls(
            ip_address=data.get("IpAddress") or "",
            port=int(data.get("Port") or 0),
            member_id=int(data.get("MemberID") or 0),
            mod_blob_ptr_dnat=int(data.get("ModBlobPtrDNAT") or 0),
        )


@dataclass
class Service:
    cluster_ip: str = ""
    mac_addr: str = ""
    proto: str = ""
    port: int = 0
    group_id: int = 0
    service_endpoints: dict[str, ServiceEndPoint] = field(default_factory=dict)
    num_endpoints: int = 0

    def to_dict(self) -> dict:
        return {
            "ClusterIp": self.cluster_ip,
            "MacAddr": self.mac_addr,
            "Proto": self.proto,
            "Port": self.port,
            "GroupID": self.group_id,
            "ServiceEndPoint": _sorted_dict(self.service_endpoints, ServiceEndPoint.to_dict),
            "NumEndPoints": self.num_endpoints,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Service":
        endpoints = data.get("ServiceEndPoint") or {}
        return cls(
            cluster_ip=data.get("ClusterIp") or "",
            mac_addr=data.get("MacAddr") or "",
            proto=data.get("Proto") or "",
            port=int(data.get("Port") or 0),
            group_id=int(data.get("GroupID") or 0),
            service_endpoints={k: ServiceEndPoint.from_dict(v) for k, v in endpoints.items()},
            num_endpoints=int(data.get("NumEndPoints") or 0),
        )


@dataclass
class Rule:
    rule_id: str = ""
    port_range: list[int] = field(default_factory=list)
    rule_mask: int = 0
    cidr: str = ""
    ip_set_id: str = ""

    def to_dict(self) -> dict:
        return {
            "RuleID": self.rule_id,
            "PortRange": list(self.port_range),
            "RuleMask": self.rule_mask,
            "Cidr": self.cidr,
            "IpSetID": self.ip_set_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        return cls(
            rule_id=data.get("RuleID") or "",
            port_range=[int(p) for p in data.get("PortRange") or []],
            rule_mask=int(data.get("RuleMask") or 0),
            cidr=data.get("Cidr") or "",
            ip_set_id=data.get("IpSetID") or "",
        )


@dataclass
class IpSetIdx:
    ip_set_idx: int = 0
    direction: str = ""
    protocol: str = ""
    rules: dict[str, Rule] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "IpSetIDx": self.ip_set_idx,
            "Direction": self.direction,
            "Protocol": self.protocol,
            "RuleID": _sorted_dict(self.rules, Rule.to_dict),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IpSetIdx":
        rules = data.get("RuleID") or {}
        return cls(
            ip_set_idx=int(data.get("IpSetIDx") or 0),
            direction=data.get("Direction") or "",
            protocol=data.get("Protocol") or "",
            rules={k: Rule.from_dict(v) for k, v in rules.items()},
        )


@dataclass
class Policy:
    policy_name: str = ""
    ip_set_idx: dict[int, IpSetIdx] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "PolicyName": self.policy_name,
            "IpSetIDx": _sorted_dict(self.ip_set_idx, IpSetIdx.to_dict),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Policy":
        indexes = data.get("IpSetIDx") or {}
        return cls(
            policy_name=data.get("PolicyName") or "",
            ip_set_idx={int(k): IpSetIdx.from_dict(v) for k, v in indexes.items()},
        )


@dataclass
class IpSet:
    ipset_id: str = ""
    ip_set_idx: int = 0
    policy_name: str = ""
    rule_id: str = ""
    ip_addr: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "IpsetID": self.ipset_id,
            "IpSetIDx": self.ip_set_idx,
            "PolicyName": self.policy_name,
            "RuleID": self.rule_id,
            "IpAddr": list(self.ip_addr),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IpSet":
        return cls(
            ipset_id=data.get("IpsetID") or "",
            ip_set_idx=int(data.get("IpSetIDx") or 0),
            policy_name=data.get("PolicyName") or "",
            rule_id=data.get("RuleID") or "",
            ip_addr=list(data.get("IpAddr") or []),
        )


@dataclass
class PolicyWorkerEndPoint:
    worker_ep: str = ""
    policy_name_ingress: list[str] = field(default_factory=list)
    policy_name_egress: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "WorkerEp": self.worker_ep,
            "PolicyNameIngress": list(self.policy_name_ingress),
            "PolicyNameEgress": list(self.policy_name_egress),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyWorkerEndPoint":
        return cls(
            worker_ep=data.get("WorkerEp") or "",
            policy_name_ingress=list(data.get("PolicyNameIngress") or []),
            policy_name_egress=list(data.get("PolicyNameEgress") or []),
        )