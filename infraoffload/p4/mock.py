"""In-memory stand-in for a P4Runtime wrapper, with switchable failures."""

from __future__ import annotations

from infraoffload.p4.wrapper import (
    ActionProfileGroup,
    ActionProfileMember,
    P4Error,
    P4RuntimeWrapper,
    TableAction,
    TableEntry,
)

MOCK_TABLE_ID = 12345
MOCK_ACTION_PROFILE_ID = 1


class MockP4(P4RuntimeWrapper):
    """Builds placeholder records; operations fail when their flag is set.

    ``error_case`` controls table entries, ``member_error`` action profile
    members and ``group_error`` action profile groups.
    """

    def __init__(
        self, error_case: bool = False, member_error: bool = False, group_error: bool = False
    ) -> None:
        self.error_case = error_case
        self.member_error = member_error
        self.group_error = group_error

    def new_table_entry(self, client, table, match_fields, action, options):
        return TableEntry(table_id=MOCK_TABLE_ID, action=None)

    def new_table_action_direct(self, client, action, params):
        return TableAction()

    def insert_table_entry(self, client, entry):
        if self.error_case:
            raise P4Error("cannot insert entry into table")

    def delete_table_entry(self, client, entry):
        if self.error_case:
            raise P4Error("cannot delete entry from table")

    def new_action_profile_member(self, client, action_profile, member_id, action, params):
        return ActionProfileMember(
            member_id=member_id, action_profile_id=MOCK_ACTION_PROFILE_ID
        )

    def insert_action_profile_member(self, client, entry):
        if self.member_error:
            raise P4Error("cannot insert action profile member")

    def delete_action_profile_member(self, client, entry):
        if self.member_error:
            raise P4Error("cannot delete action profile member")

    def new_action_profile_group(self, client, action_profile, group_id, members, size):
        return ActionProfileGroup(
            group_id=group_id,
            members=list(members),
            max_size=size,
            action_profile_id=MOCK_ACTION_PROFILE_ID,
        )

    def insert_action_profile_group(self, client, entry):
        if self.group_error:
            raise P4Error("cannot insert action profile group")

    def delete_action_profile_group(self, client, entry):
        if self.group_error:
            raise P4Error("cannot delete action profile group")

    def modify_action_profile_member(self, client, entry):
        if self.member_error:
            raise P4Error("cannot modify action profile member")

    def modify_action_profile_group(self, client, entry):
        if self.group_error:
            raise P4Error("cannot modify action profile group")

    def new_table_action_group(self, client, group_id):
        return TableAction(group_id=group_id)