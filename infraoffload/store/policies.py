"""Persistent store of network policies, IP sets and worker endpoints."""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from pathlib import Path

from infraoffload.store.models import (
    DEFAULT_STORE_DIR,
    IpSet,
    Policy,
    PolicyWorkerEndPoint,
    StoreError,
    _encode,
    _load_records,
    _prepare_dir,
    _read_store_file,
    _snapshot,
    _write_store_file,
)

log = logging.getLogger(__name__)


def _without_first(items: list[str], value: str) -> tuple[list[str], bool]:
    if value not in items:
        return items, False
    remaining = list(items)
    remaining.remove(value)
    return remaining, True


class PolicyStore:
    """Policies, IP sets and worker endpoints, synced to three JSON files."""

    POLICY_FILE = "policy_db.json"
    IPSET_FILE = "ipset_db.json"
    WORKER_EP_FILE = "workerep_db.json"

    def __init__(self, store_dir: str | os.PathLike = DEFAULT_STORE_DIR) -> None:
        self.store_dir = Path(store_dir)
        self.policy_path = self.store_dir / self.POLICY_FILE
        self.ipset_path = self.store_dir / self.IPSET_FILE
        self.worker_ep_path = self.store_dir / self.WORKER_EP_FILE
        self._policies: dict[str, Policy] = {}
        self._ipsets: dict[str, IpSet] = {}
        self._worker_eps: dict[str, PolicyWorkerEndPoint] = {}
        self._lock = threading.Lock()

    def is_policy_empty(self) -> bool:
        return not self._policies

    def is_ipset_empty(self) -> bool:
        return not self._ipsets

    def is_worker_ep_empty(self) -> bool:
        return not self._worker_eps

    def init(self, set_fwd_pipe: bool) -> None:
        """Load the files in turn, stopping at the first empty one."""
        _prepare_dir(self.store_dir)
        sources = (
            (self.policy_path, Policy.from_dict, self._policies),
            (self.ipset_path, IpSet.from_dict, self._ipsets),
            (self.worker_ep_path, PolicyWorkerEndPoint.from_dict, self._worker_eps),
        )
        for path, from_dict, target in sources:
            data = _read_store_file(path, truncate=set_fwd_pipe)
            if not data:
                return
            loaded = _load_records(data, path, from_dict)
            with self._lock:
                target.update(loaded)

    def write_policy(self, policy: Policy) -> None:
        with self._lock:
            self._policies[policy.policy_name] = _snapshot(policy)

    def write_ipset(self, ipset: IpSet) -> None:
        with self._lock:
            self._ipsets[ipset.ipset_id] = _snapshot(ipset)

    def write_worker_ep(self, worker_ep: PolicyWorkerEndPoint) -> None:
        with self._lock:
            self._worker_eps[worker_ep.worker_ep] = _snapshot(worker_ep)

    def delete_policy(self, policy: Policy) -> None:
        """Drop the policy, the IP sets its rules use, and its worker references."""
        name = policy.policy_name
        with self._lock:
            for index in policy.ip_set_idx.values():
                for rule in index.rules.values():
                    if rule.ip_set_id:
                        self._ipsets.pop(rule.ip_set_id, None)
            self._policies.pop(name, None)
            for key, endpoint in self._worker_eps.items():
                ingress, in_changed = _without_first(endpoint.policy_name_ingress, name)
                egress, out_changed = _without_first(endpoint.policy_name_egress, name)
                if in_changed or out_changed:
                    self._worker_eps[key] = dataclasses.replace(
                        endpoint, policy_name_ingress=ingress, policy_name_egress=egress
                    )

    def delete_ipset(self, ipset: IpSet) -> None:
        """Drop the IP set and clear the reference to it in its policy's rule."""
        with self._lock:
            policy = self._policies.get(ipset.policy_name)
            if policy is None:
                raise StoreError(f"policy {ipset.policy_name!r} not found")
            index = policy.ip_set_idx.get(ipset.ip_set_idx)
            if index is not None:
                rule = index.rules.get(ipset.rule_id)
                if rule is not None:
                    index.rules[ipset.rule_id] = dataclasses.replace(rule, ip_set_id="")
            self._ipsets.pop(ipset.ipset_id, None)

    def delete_worker_ep(self, worker_ep: PolicyWorkerEndPoint) -> None:
        with self._lock:
            self._worker_eps.pop(worker_ep.worker_ep, None)

    def get_policy(self, policy: Policy) -> Policy | None:
        found = self._policies.get(policy.policy_name)
        return _snapshot(found) if found is not None else None

    def get_ipset(self, ipset: IpSet) -> IpSet | None:
        found = self._ipsets.get(ipset.ipset_id)
        return _snapshot(found) if found is not None else None

    def get_worker_ep(self, worker_ep: PolicyWorkerEndPoint) -> PolicyWorkerEndPoint | None:
        found = self._worker_eps.get(worker_ep.worker_ep)
        return _snapshot(found) if found is not None else None

    def update_policy(self, policy: Policy) -> None:
        """Replace a stored policy (deleting the old one first) or add it."""
        existing = self._policies.get(policy.policy_name)
        if existing is not None:
            self.delete_policy(existing)
        self.write_policy(policy)

    def update_ipset(self, ipset: IpSet) -> None:
        """Replace the addresses of a stored IP set."""
        existing = self._ipsets.get(ipset.ipset_id)
        if existing is None:
            raise StoreError(f"ipset {ipset.ipset_id!r} not found")
        self.write_ipset(dataclasses.replace(existing, ip_addr=list(ipset.ip_addr)))

    def update_worker_ep(self, worker_ep: PolicyWorkerEndPoint) -> None:
        """Replace the policy lists of a stored worker endpoint."""
        existing = self._worker_eps.get(worker_ep.worker_ep)
        if existing is None:
            raise StoreError(f"worker endpoint {worker_ep.worker_ep!r} not found")
        self.write_worker_ep(
            dataclasses.replace(
                existing,
                policy_name_ingress=list(worker_ep.policy_name_ingress),
                policy_name_egress=list(worker_ep.policy_name_egress),
            )
        )

    def _sync(self, entries: dict, path: Path) -> None:
        with self._lock:
            payload = _encode(entries)
        try:
            _write_store_file(path, payload)
        except StoreError as exc:
            log.warning("%s", exc)

    def sync_policies(self) -> None:
        self._sync(self._policies, self.policy_path)

    def sync_ipsets(self) -> None:
        self._sync(self._ipsets, self.ipset_path)

    def sync_worker_eps(self) -> None:
        self._sync(self._worker_eps, self.worker_ep_path)