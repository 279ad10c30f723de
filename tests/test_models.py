import json

import pytest

from infraoffload.store.models import (
    EndPoint,
    IpSet,
    IpSetIdx,
    Policy,
    PolicyWorkerEndPoint,
    Rule,
    Service,
    ServiceEndPoint,
)


def _rule():
    return Rule(rule_id="rule-1", port_range=[80, 90], rule_mask=3, cidr="10.0.0.0/24", ip_set_id="ipset-1")


def _policy():
    idx = IpSetIdx(ip_set_idx=7, direction="RX", protocol="TCP", rules={"rule-1": _rule()})
    return Policy(policy_name="policy-a", ip_set_idx={7: idx})


@pytest.mark.parametrize(
    "record",
    [
        EndPoint("10.10.10.1", 1, "00:00:00:aa:aa:aa"),
        ServiceEndPoint("10.10.10.1", 8081, 1, 17),
        Service(
            cluster_ip="10.100.0.1",
            proto="TCP",
            port=10000,
            group_id=1,
            service_endpoints={"10.10.10.1": ServiceEndPoint("10.10.10.1", 8081, 1, 17)},
            num_endpoints=1,
        ),
        _rule(),
        _policy().ip_set_idx[7],
        _policy(),
        IpSet("ipset-1", 7, "policy-a", "rule-1", ["10.1.1.1", "10.1.1.2"]),
        PolicyWorkerEndPoint("worker-1", ["policy-a"], ["policy-b"]),
    ],
)
def test_round_trip_through_json(record):
    text = json.dumps(record.to_dict())
    assert type(record).from_dict(json.loads(text)) == record


def test_endpoint_keys_match_store_format():
    data = EndPoint("10.10.10.1", 1, "00:00:00:aa:aa:aa").to_dict()
    assert data == {"PodIpAddress": "10.10.10.1", "InterfaceID": 1, "PodMacAddress": "00:00:00:aa:aa:aa"}


def test_service_nests_endpoints_under_service_endpoint_key():
    ep = ServiceEndPoint("10.10.10.2", 8082, 2, 2)
    data = Service(cluster_ip="10.100.0.1", service_endpoints={"10.10.10.2": ep}).to_dict()
    assert data["ServiceEndPoint"]["10.10.10.2"]["ModBlobPtrDNAT"] == 2
    assert data["ClusterIp"] == "10.100.0.1"


def test_policy_index_keys_become_integers():
    data = json.loads(json.dumps(_policy().to_dict()))
    assert list(data["IpSetIDx"]) == ["7"]
    assert list(Policy.from_dict(data).ip_set_idx) == [7]


def test_from_dict_accepts_missing_and_null_fields():
    assert EndPoint.from_dict({}) == EndPoint()
    assert IpSet.from_dict({"IpAddr": None}).ip_addr == []
    assert Service.from_dict({"ServiceEndPoint": None}).service_endpoints == {}
    assert PolicyWorkerEndPoint.from_dict({"PolicyNameIngress": None}) == PolicyWorkerEndPoint()


def test_from_dict_rejects_wrong_types():
    with pytest.raises(ValueError):
        EndPoint.from_dict({"InterfaceID": "not-a-number"})