import json
import logging
from unittest import mock

import pytest

from infraoffload.store.models import (
    IpSet,
    IpSetIdx,
    Policy,
    PolicyWorkerEndPoint,
    Rule,
    StoreError,
)
from infraoffload.store.policies import PolicyStore


def _policy(name="policy-a", ipset_id="ipset-1"):
    rule = Rule(rule_id="rule-1", port_range=[80, 90], rule_mask=3, cidr="10.0.0.0/24", ip_set_id=ipset_id)
    index = IpSetIdx(ip_set_idx=1, direction="TX", protocol="TCP", rules={"rule-1": rule})
    return Policy(policy_name=name, ip_set_idx={1: index})


def _ipset(ipset_id="ipset-1", policy_name="policy-a"):
    return IpSet(ipset_id=ipset_id, ip_set_idx=1, policy_name=policy_name, rule_id="rule-1", ip_addr=["10.1.1.1"])


@pytest.fixture
def store(tmp_path):
    return PolicyStore(tmp_path / "inframanager")


def test_new_store_is_empty(store):
    assert store.is_policy_empty() and store.is_ipset_empty() and store.is_worker_ep_empty()


def test_writes_fill_each_map(store):
    store.write_policy(_policy())
    store.write_ipset(_ipset())
    store.write_worker_ep(PolicyWorkerEndPoint("worker-1", ["policy-a"], []))
    assert not store.is_policy_empty()
    assert not store.is_ipset_empty()
    assert not store.is_worker_ep_empty()


def test_get_returns_written_records(store):
    policy, ipset = _policy(), _ipset()
    store.write_policy(policy)
    store.write_ipset(ipset)
    assert store.get_policy(Policy(policy_name="policy-a")) == policy
    assert store.get_ipset(IpSet(ipset_id="ipset-1")) == ipset


def test_get_missing_returns_none(store):
    assert store.get_policy(Policy(policy_name="absent")) is None
    assert store.get_worker_ep(PolicyWorkerEndPoint(worker_ep="absent")) is None


def test_delete_policy_cleans_ipsets_and_worker_eps(store):
    store.write_policy(_policy())
    store.write_ipset(_ipset())
    store.write_worker_ep(PolicyWorkerEndPoint("worker-1", ["policy-a", "policy-b"], ["policy-a"]))
    store.delete_policy(_policy())
    assert store.get_policy(_policy()) is None
    assert store.get_ipset(_ipset()) is None
    worker = store.get_worker_ep(PolicyWorkerEndPoint(worker_ep="worker-1"))
    assert worker.policy_name_ingress == ["policy-b"]
    assert worker.policy_name_egress == []


def test_delete_ipset_clears_rule_reference(store):
    store.write_policy(_policy())
    store.write_ipset(_ipset())
    store.delete_ipset(_ipset())
    assert store.get_ipset(_ipset()) is None
    assert store.get_policy(_policy()).ip_set_idx[1].rules["rule-1"].ip_set_id == ""


def test_delete_ipset_without_policy_raises(store):
    store.write_ipset(_ipset(policy_name="absent"))
    with pytest.raises(StoreError):
        store.delete_ipset(_ipset(policy_name="absent"))
    assert store.get_ipset(_ipset()) == _ipset(policy_name="absent")


def test_delete_worker_ep(store):
    worker = PolicyWorkerEndPoint("worker-1", ["policy-a"], [])
    store.write_worker_ep(worker)
    store.delete_worker_ep(worker)
    assert store.is_worker_ep_empty()


def test_update_policy_adds_when_absent(store):
    store.update_policy(_policy())
    assert store.get_policy(_policy()) == _policy()


def test_update_policy_replaces_and_drops_old_ipsets(store):
    store.write_policy(_policy(ipset_id="ipset-1"))
    store.write_ipset(_ipset("ipset-1"))
    store.write_ipset(_ipset("ipset-2"))
    new = _policy(ipset_id="ipset-2")
    store.update_policy(new)
    assert store.get_policy(new) == new
    assert store.get_ipset(_ipset("ipset-1")) is None
    assert store.get_ipset(_ipset("ipset-2")) == _ipset("ipset-2")


def test_update_ipset_replaces_addresses(store):
    store.write_ipset(_ipset())
    changed = _ipset()
    changed.ip_addr = ["10.2.2.2", "10.3.3.3"]
    changed.policy_name = "other"
    store.update_ipset(changed)
    stored = store.get_ipset(_ipset())
    assert stored.ip_addr == ["10.2.2.2", "10.3.3.3"]
    assert stored.policy_name == "policy-a"


def test_update_ipset_missing_raises(store):
    with pytest.raises(StoreError):
        store.update_ipset(_ipset())


def test_update_worker_ep_replaces_lists(store):
    store.write_worker_ep(PolicyWorkerEndPoint("worker-1", ["policy-a"], []))
    store.update_worker_ep(PolicyWorkerEndPoint("worker-1", ["policy-b"], ["policy-c"]))
    stored = store.get_worker_ep(PolicyWorkerEndPoint(worker_ep="worker-1"))
    assert stored == PolicyWorkerEndPoint("worker-1", ["policy-b"], ["policy-c"])


def test_update_worker_ep_missing_raises(store):
    with pytest.raises(StoreError):
        store.update_worker_ep(PolicyWorkerEndPoint("worker-1", [], []))


def test_sync_and_init_round_trip(store, tmp_path):
    worker = PolicyWorkerEndPoint("worker-1", ["policy-a"], [])
    store.write_policy(_policy())
    store.write_ipset(_ipset())
    store.write_worker_ep(worker)
    store.sync_policies()
    store.sync_ipsets()
    store.sync_worker_eps()
    fresh = PolicyStore(tmp_path / "inframanager")
    fresh.init(False)
    assert fresh.get_policy(_policy()) == _policy()
    assert fresh.get_ipset(_ipset()) == _ipset()
    assert fresh.get_worker_ep(worker) == worker


def test_sync_policies_writes_json(store):
    store.write_policy(_policy())
    store.sync_policies()
    data = json.loads(store.policy_path.read_text())
    assert data["policy-a"]["IpSetIDx"]["1"]["RuleID"]["rule-1"]["IpSetID"] == "ipset-1"


def test_init_stops_at_empty_policy_file(store):
    store.store_dir.mkdir(parents=True)
    store.ipset_path.write_text(json.dumps({"ipset-1": _ipset().to_dict()}))
    store.init(False)
    assert store.is_policy_empty()
    assert store.is_ipset_empty()


def test_init_with_fwd_pipe_truncates(store, tmp_path):
    store.write_policy(_policy())
    store.sync_policies()
    fresh = PolicyStore(tmp_path / "inframanager")
    fresh.init(True)
    assert fresh.is_policy_empty()
    assert fresh.policy_path.read_bytes() == b""


def test_init_rejects_bad_json(store):
    store.store_dir.mkdir(parents=True)
    store.policy_path.write_text("{broken")
    with pytest.raises(StoreError):
        store.init(False)


def test_sync_write_failure_is_logged_not_raised(store, caplog):
    store.write_policy(_policy())
    store.policy_path.mkdir(parents=True)
    with caplog.at_level(logging.WARNING):
        store.sync_policies()
    assert store.POLICY_FILE in caplog.text


def test_sync_marshal_failure_raises(store):
    store.write_ipset(_ipset())
    with mock.patch("json.dumps", side_effect=TypeError("Marshalling failed")):
        with pytest.raises(StoreError):
            store.sync_ipsets()