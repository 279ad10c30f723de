import pytest

from infraoffload.p4.wrapper import (
    ClientWrapper,
    ExactMatch,
    GroupMember,
    P4Error,
    TableAction,
    TableEntry,
    get_p4_wrapper,
)


class FakeClient:
    """Records each call and returns its name and arguments."""

    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def method(*args):
            self.calls.append((name, args))
            return (name, args)

        return method


class FailingClient:
    def insert_table_entry(self, entry):
        raise P4Error("device refused entry")


ENTRY = TableEntry(table="k8s_dp_control.arpt_to_port_table")
MEMBER_PARAMS = [b"\x00\x00\x00\x01"]


@pytest.mark.parametrize(
    "method, args",
    [
        ("new_table_action_direct", ("k8s_dp_control.set_dest_vport", MEMBER_PARAMS)),
        ("insert_table_entry", (ENTRY,)),
        ("delete_table_entry", (ENTRY,)),
        (
            "new_action_profile_member",
            ("k8s_dp_control.as_sl3_tcp", 17, "k8s_dp_control.set_default_lb_dest", MEMBER_PARAMS),
        ),
        ("insert_action_profile_member", ("member",)),
        ("delete_action_profile_member", ("member",)),
        ("modify_action_profile_member", ("member",)),
        (
            "new_action_profile_group",
            ("k8s_dp_control.as_sl3_tcp", 1, [GroupMember(17)], 128),
        ),
        ("insert_action_profile_group", ("group",)),
        ("delete_action_profile_group", ("group",)),
        ("modify_action_profile_group", ("group",)),
        ("new_table_action_group", (1,)),
    ],
)
def test_client_wrapper_delegates(method, args):
    client = FakeClient()
    result = getattr(ClientWrapper(), method)(client, *args)
    assert result == (method, args)
    assert client.calls == [(method, args)]


def test_client_wrapper_drops_entry_options():
    client = FakeClient()
    matches = {"hdr.arp.tpa": ExactMatch(b"\x0a\x0a\x0a\x01")}
    action = TableAction(action="k8s_dp_control.set_dest_vport")
    result = ClientWrapper().new_table_entry(
        client, "k8s_dp_control.arpt_to_port_table", matches, action, {"priority": 5}
    )
    assert result == (
        "new_table_entry",
        ("k8s_dp_control.arpt_to_port_table", matches, action, None),
    )


def test_client_errors_propagate():
    with pytest.raises(P4Error, match="device refused entry"):
        ClientWrapper().insert_table_entry(FailingClient(), ENTRY)


def test_test_env_gives_mock_wrapper():
    wrapper = get_p4_wrapper("test")
    entry = wrapper.new_table_entry(None, "any_table", {}, None, None)
    assert entry.table_id == 12345
    assert entry.action is None


def test_other_env_gives_client_wrapper():
    wrapper = get_p4_wrapper("production")
    client = FakeClient()
    assert wrapper.new_table_action_group(client, 3) == ("new_table_action_group", (3,))