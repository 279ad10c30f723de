# infraoffload

Building blocks for offloading Kubernetes pod and service networking onto a
P4-programmable data plane.

The package has three parts:

- `infraoffload.store`: in-memory stores that can be saved to and loaded
  from JSON files in a directory you choose.
  - `endpoints.EndPointStore` keeps pod endpoints by pod IP (`cni_db.json`).
  - `services.ServiceStore` keeps services by `ip:proto:port`, as built by
    `services.service_key` (`services_db.json`).
  - `policies.PolicyStore` keeps policies, IP sets and worker endpoints
    (`policy_db.json`, `ipset_db.json`, `workerep_db.json`).
  - `models` holds the records (`EndPoint`, `Service`, `ServiceEndPoint`,
    `Policy`, `IpSetIdx`, `Rule`, `IpSet`, `PolicyWorkerEndPoint`), each with
    `to_dict` and `from_dict`, and the `StoreError` exception.
- `infraoffload.p4`: builds and programs forwarding tables.
  - `cni`: `insert_cni_rules`, `delete_cni_rules`, `arpt_to_port_table`,
    `ipv4_to_port_table` for pod interfaces.
  - `service`: `insert_service_rules`, `delete_service_rules` and the
    per-table functions (`write_dest_ip_table`, `as_sl3_tcp_table`,
    `tx_balance_udp_table`, ...) for load-balanced services.
  - `wrapper`: the `P4RuntimeWrapper` interface, the table records
    (`TableEntry`, `TableAction`, `ExactMatch`, `ActionProfileMember`,
    `ActionProfileGroup`, `GroupMember`), `P4Error`, `ClientWrapper` and
    `get_p4_wrapper(env)`, which returns a `MockP4` for `"test"`.
  - `mock.MockP4`: a stand-in wrapper whose operations fail on demand
    (`error_case`, `member_error`, `group_error`).
  - `utils`: `Action`, `InterfaceType`, `UUIDGenerator` and byte packing
    helpers (`value_to_bytes`, `value_to_bytes16`, `pack32_binary_ip4`,
    `ip4_to_int`).
- `infraoffload.config`: `read_config` reads the manager's YAML
  configuration into a `Configuration` dataclass.

Invalid addresses, unknown actions, missing records and rejected table writes
raise exceptions (`StoreError`, `P4Error`) rather than returning status codes.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Example: keeping track of endpoints

```python
from infraoffload.store.endpoints import EndPointStore
from infraoffload.store.models import EndPoint

store = EndPointStore("/tmp/inframanager")
store.init(set_fwd_pipe=True)   # True empties any saved entries

endpoint = EndPoint(pod_ip_address="10.10.10.1", interface_id=1,
                    pod_mac_address="02:00:00:00:00:01")
store.write(endpoint)
assert store.get(endpoint) == endpoint
store.sync()
```

The default store directory is `/var/lib/cni/inframanager`.

## Example: programming service rules against a mock switch

```python
from infraoffload.p4.mock import MockP4
from infraoffload.p4.service import delete_service_rules, insert_service_rules
from infraoffload.p4.utils import UUIDGenerator
from infraoffload.store.models import Service
from infraoffload.store.services import ServiceStore

wrapper = MockP4()
service = Service(cluster_ip="10.100.0.1", proto="TCP", port=10000)
programmed = insert_service_rules(
    wrapper, None, ["10.10.10.1", "10.10.10.2"], [8081, 8082],
    service, False, UUIDGenerator(),
)
print(programmed.group_id, programmed.num_endpoints)

services = ServiceStore("/tmp/inframanager")
services.write(programmed)
delete_service_rules(wrapper, None, programmed, services)
```

Member ids are `(group_id << 4) | (endpoint_number & 0xF)`; an update
(`update=True`) keeps the service's group id and endpoint count.

## Configuration

```python
from infraoffload.config import read_config

conf = read_config("inframanager-config", ".")
print(conf.infrap4d_grpc_server.addr)
```

The file is looked for under the given name with extensions such as `.yaml`
or `.yml` and parsed as YAML; keys match case-insensitively. Missing settings
keep their defaults: `localhost:9559` with `insecure` for the P4Runtime
server, `localhost:9339` with `insecure` for gNMI, and `mtls` for the manager.
An environment variable named after a key's upper-cased dotted path, such as
`INFRAP4DGRPCSERVER.ADDR`, overrides it. Problems reading or decoding the file
are printed and the defaults kept; the chosen addresses and log level are
printed as well.

## What this package does not do

There is no command, no manager process and no API server here. The package
does not talk to a switch by itself: `ClientWrapper` passes each operation on
to a P4Runtime client object that you provide, and it does not set up logging
or TLS connections.