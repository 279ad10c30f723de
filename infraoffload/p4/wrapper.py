"""Table entry records and the interface used to program a P4Runtime device."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


class P4Error(Exception):
    """Raised when a table or action profile operation fails."""


@dataclass(frozen=True)
class ExactMatch:
    value: bytes


@dataclass
class TableAction:
    """A direct action with parameters, or a reference to an action group."""

    action: str = ""
    params: list[bytes] = field(default_factory=list)
    group_id: int | None = None


@dataclass
class TableEntry:
    table: str = ""
    match_fields: dict[str, ExactMatch] = field(default_factory=dict)
    action: TableAction | None = None
    table_id: int = 0


@dataclass
class ActionProfileMember:
    action_profile: str = ""
    member_id: int = 0
    action: str = ""
    params: list[bytes] = field(default_factory=list)
    action_profile_id: int = 0


@dataclass(frozen=True)
class GroupMember:
    member_id: int


@dataclass
class ActionProfileGroup:
    action_profile: str = ""
    group_id: int = 0
    members: list[GroupMember] = field(default_factory=list)
    max_size: int = 0
    action_profile_id: int = 0


class P4RuntimeWrapper(abc.ABC):
    """Operations the manager performs against a P4Runtime client."""

    @abc.abstractmethod
    def new_table_entry(
        self,
        client: Any,
        table: str,
        match_fields: Mapping[str, ExactMatch],
        action: TableAction | None,
        options: Any,
    ) -> TableEntry:
        """Build an entry for ``table``."""

    @abc.abstractmethod
    def new_table_action_direct(
        self, client: Any, action: str, params: Sequence[bytes]
    ) -> TableAction:
        """Build a direct action."""

    @abc.abstractmethod
    def insert_table_entry(self, client: Any, entry: TableEntry) -> None:
        """Insert an entry into its table."""

    @abc.abstractmethod
    def delete_table_entry(self, client: Any, entry: TableEntry) -> None:
        """Delete an entry from its table."""

    @abc.abstractmethod
    def new_action_profile_member(
        self,
        client: Any,
        action_profile: str,
        member_id: int,
        action: str,
        params: Sequence[bytes],
    ) -> ActionProfileMember:
        """Build an action profile member."""

    @abc.abstractmethod
    def insert_action_profile_member(self, client: Any, entry: ActionProfileMember) -> None:
        """Insert an action profile member."""

    @abc.abstractmethod
    def delete_action_profile_member(self, client: Any, entry: ActionProfileMember) -> None:
        """Delete an action profile member."""

    @abc.abstractmethod
    def new_action_profile_group(
        self,
        client: Any,
        action_profile: str,
        group_id: int,
        members: Sequence[GroupMember],
        size: int,
    ) -> ActionProfileGroup:
        """Build an action profile group."""

    @abc.abstractmethod
    def insert_action_profile_group(self, client: Any, entry: ActionProfileGroup) -> None:
        """Insert an action profile group."""

    @abc.abstractmethod
    def delete_action_profile_group(self, client: Any, entry: ActionProfileGroup) -> None:
        """Delete an action profile group."""

    @abc.abstractmethod
    def modify_action_profile_member(self, client: Any, entry: ActionProfileMember) -> None:
        """Modify an action profile member."""

    @abc.abstractmethod
    def modify_action_profile_group(self, client: Any, entry: ActionProfileGroup) -> None:
        """Modify an action profile group."""

    @abc.abstractmethod
    def new_table_action_group(self, client: Any, group_id: int) -> TableAction:
        """Build an action that points at an action profile group."""


class ClientWrapper(P4RuntimeWrapper):
    """Passes every operation on to the client object it is given."""

    def new_table_entry(self, client, table, match_fields, action, options):
        return client.new_table_entry(table, match_fields, action, None)

    def new_table_action_direct(self, client, action, params):
        return client.new_table_action_direct(action, params)

    def insert_table_entry(self, client, entry):
        return client.insert_table_entry(entry)

    def delete_table_entry(self, client, entry):
        return client.delete_table_entry(entry)

    def new_action_profile_member(self, client, action_profile, member_id, action, params):
        return client.new_action_profile_member(action_profile, member_id, action, params)

    def insert_action_profile_member(self, client, entry):
        return client.insert_action_profile_member(entry)

    def delete_action_profile_member(self, client, entry):
        return client.delete_action_profile_member(entry)

    def new_action_profile_group(self, client, action_profile, group_id, members, size):
        return client.new_action_profile_group(action_profile, group_id, members, size)

    def insert_action_profile_group(self, client, entry):
        return client.insert_action_profile_group(entry)

    def delete_action_profile_group(self, client, entry):
        return client.delete_action_profile_group(entry)

    def modify_action_profile_member(self, client, entry):
        return client.modify_action_profile_member(entry)

    def modify_action_profile_group(self, client, entry):
        return client.modify_action_profile_group(entry)

    def new_table_action_group(self, client, group_id):
        return client.new_table_action_group(group_id)


def get_p4_wrapper(env: str) -> P4RuntimeWrapper:
    """Return the mock wrapper for the ``test`` environment, else the real one."""
    if env == "test":
        from infraoffload.p4.mock import MockP4

        return MockP4()
    return ClientWrapper()