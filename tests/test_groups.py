"""
Test suite for groups module

Tests group creation and validation, invite-code joins, admin checks,
settings, payment accounts, updates and cascade deletion.
"""

import pytest
from decimal import Decimal

from arisan.currency import Money, Currency
from arisan.contributions import ContributionMode
from arisan.groups import (
    ArisanPeriod, GroupStatus, MemberRole, NewMember, PaymentAccountType,
    PenaltyType, TurnMethod, GroupSettings, generate_invite_code
)
from arisan.audit import AuditEventType


CREATOR = "user-ketua"


def idr(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.IDR)


class TestGroupCreation:
    """Creating groups through the manager"""

    def test_create_fixed_group(self, system, make_group):
        group = make_group()

        assert group.status == GroupStatus.ACTIVE
        assert group.current_round == 1
        assert group.due_date is not None
        assert len(group.invite_code) == 6
        assert group.invite_code.isupper() or group.invite_code.isdigit()
        assert [(m.name, m.turn_order) for m in group.members] == [
            ("Ibu Ketua", 1), ("Siti", 2), ("Budi", 3), ("Dewi", 4)
        ]
        assert group.members[0].role == MemberRole.CHAIR
        assert group.payout_amount == idr(400000)

    def test_manual_turn_order_by_name(self, make_group):
        group = make_group(turn_order=["Dewi", "Ibu Ketua"])
        assert [m.name for m in group.members] == ["Dewi", "Ibu Ketua", "Siti", "Budi"]

    def test_create_without_starting(self, system, make_group):
        group = make_group(start=False)
        assert group.due_date is None
        assert system.round_manager.get_current_round(group.id) is None

    def test_create_declining_group(self, make_group):
        group = make_group(
            member_names=("Siti", "Budi"),
            nominal=idr(0),
            mode=ContributionMode.DECLINING,
            target_amount=idr(300000),
            gaps=[Decimal('50000')],
        )
        amounts = [group.contribution_for_member(m) for m in group.members]
        assert amounts == [idr(150000), idr(100000), idr(50000)]
        assert group.payout_amount == idr(300000)

    def test_declining_group_requires_target(self, make_group):
        with pytest.raises(ValueError, match="target amount"):
            make_group(mode=ContributionMode.DECLINING, gaps=[Decimal('1000')])

    @pytest.mark.parametrize("kwargs,message", [
        (dict(total_members=1, member_names=()), "at least 2 members"),
        (dict(nominal=idr(-1)), "cannot be negative"),
        (dict(nominal=idr(0)), "positive nominal"),
        (dict(payment_deadline_day=32), "between 1 and 31"),
        (dict(name="  "), "name is required"),
    ])
    def test_invalid_groups(self, make_group, kwargs, message):
        with pytest.raises(ValueError, match=message):
            make_group(**kwargs)

    def test_too_many_initial_members(self, make_group):
        with pytest.raises(ValueError, match="exceed"):
            make_group(total_members=2)

    def test_creation_is_audited(self, system, make_group):
        group = make_group()
        events = system.audit_trail.get_events_for_group(group.id)
        assert events[0].event_type == AuditEventType.GROUP_CREATED
        assert AuditEventType.ROUND_STARTED in [e.event_type for e in events]


class TestJoinGroup:
    """Joining with an invite code"""

    def test_join_takes_next_turn_and_owes_current_round(self, system, make_group):
        group = make_group(total_members=5)

        member = system.join_group(group.invite_code, "user-eka", "Eka", "0812")

        assert member.turn_order == 5
        assert member.role == MemberRole.MEMBER
        payment = system.payment_manager.find_payment(group.id, member.id, 1)
        assert payment is not None
        assert payment.amount == idr(100000)

    def test_invite_code_is_case_insensitive(self, system, make_group):
        group = make_group(total_members=5)
        member = system.join_group(group.invite_code.lower(), "user-eka", "Eka")
        assert member.group_id == group.id

    def test_join_is_idempotent(self, system, make_group):
        group = make_group(total_members=6)
        first = system.join_group(group.invite_code, "user-eka", "Eka")
        second = system.join_group(group.invite_code, "user-eka", "Eka")

        assert first.id == second.id
        assert len(system.group_manager.get_group(group.id).members) == 5
        assert len(system.payment_manager.get_payments_by_round(group.id, 1)) == 5

    def test_join_full_group(self, system, make_group):
        group = make_group()
        with pytest.raises(ValueError, match="full"):
            system.join_group(group.invite_code, "user-eka", "Eka")

    def test_join_unknown_code(self, system):
        with pytest.raises(ValueError, match="No group"):
            system.join_group("ZZZZZZ", "user-eka", "Eka")

    def test_join_with_own_contribution(self, system, make_group):
        group = make_group(total_members=5)
        member = system.join_group(group.invite_code, "user-eka", "Eka",
                                   contribution_amount=idr(200000))
        payment = system.payment_manager.find_payment(group.id, member.id, 1)
        assert payment.amount == idr(200000)

    def test_user_groups(self, system, make_group):
        first = make_group(total_members=5)
        make_group(name="Arisan Kantor")
        system.join_group(first.invite_code, "user-eka", "Eka")

        assert [g.id for g in system.group_manager.get_user_groups("user-eka")] == [first.id]
        assert len(system.group_manager.get_user_groups(CREATOR)) == 2


class TestAdministration:
    """Admin-only operations"""

    def test_admin_roles(self, system, make_group):
        group = make_group()
        manager = system.group_manager

        assert manager.is_admin(group, CREATOR)
        assert not manager.is_admin(group, "user-siti")
        assert not manager.is_admin(group, None)

        siti = group.members[1]
        manager.update_member_role(group.id, siti.id, MemberRole.TREASURER, actor_id=CREATOR)
        assert manager.is_admin(manager.get_group(group.id), "user-siti")

    def test_non_admin_cannot_change_roles(self, system, make_group):
        group = make_group()
        with pytest.raises(PermissionError):
            system.group_manager.update_member_role(
                group.id, group.members[2].id, MemberRole.CHAIR, actor_id="user-budi"
            )

    def test_failed_audit_write_keeps_role(self, system, make_group, monkeypatch):
        group = make_group()
        siti = group.members[1]

        def unavailable(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(system.audit_trail, "log_event", unavailable)
        with pytest.raises(RuntimeError):
            system.group_manager.update_member_role(group.id, siti.id, MemberRole.TREASURER, actor_id=CREATOR)

        assert system.group_manager.get_group(group.id).get_member(siti.id).role == MemberRole.MEMBER

    def test_update_group(self, system, make_group):
        group = make_group(total_members=6)
        updated = system.group_manager.update_group(
            group.id, {"name": "Arisan RT 06", "nominal": idr(150000)}, actor_id=CREATOR
        )
        assert updated.name == "Arisan RT 06"
        assert updated.nominal == idr(150000)
        assert system.group_manager.get_group(group.id).nominal == idr(150000)

    def test_update_group_size_limits(self, system, make_group):
        group = make_group(total_members=6)
        with pytest.raises(ValueError, match="already has 4 members"):
            system.group_manager.update_group(group.id, {"total_members": 3}, actor_id=CREATOR)
        with pytest.raises(ValueError, match="Cannot update fields"):
            system.group_manager.update_group(group.id, {"invite_code": "X"}, actor_id=CREATOR)

    def test_update_declining_parameters_changes_schedule(self, system, make_group):
        group = make_group(
            member_names=("Siti", "Budi"),
            nominal=idr(0),
            mode=ContributionMode.DECLINING,
            target_amount=idr(300000),
            gaps=[Decimal('50000')],
        )
        system.group_manager.update_group(group.id, {"gaps": [Decimal('25000')]}, actor_id=CREATOR)
        schedule = system.group_manager.contribution_schedule(group.id)
        assert [e.contribution for e in schedule] == [idr(125000), idr(100000), idr(75000)]
        assert system.group_manager.contribution_for_turn(group.id, 3) == idr(75000)

    def test_fixed_schedule_uses_member_amounts(self, system, make_group):
        group = make_group(members=[
            NewMember(name="Ibu Ketua", role=MemberRole.CHAIR, user_id=CREATOR),
            NewMember(name="Siti", contribution_amount=idr(200000)),
        ], total_members=2)
        schedule = system.group_manager.contribution_schedule(group.id)
        assert [e.contribution for e in schedule] == [idr(100000), idr(200000)]

    def test_update_settings(self, system, make_group):
        group = make_group()
        settings = system.group_manager.update_settings(
            group.id,
            {"penalty_enabled": True, "penalty_type": PenaltyType.FIXED, "penalty_amount": Decimal('5000')},
            actor_id=CREATOR
        )
        assert settings.penalty_enabled is True
        assert settings.penalty_type == PenaltyType.FIXED
        assert system.group_manager.get_group(group.id).settings.penalty_amount == Decimal('5000')

        with pytest.raises(ValueError, match="Unknown setting"):
            system.group_manager.update_settings(group.id, {"colour": "red"}, actor_id=CREATOR)

    def test_settings_validation(self):
        with pytest.raises(ValueError, match="HH:MM"):
            GroupSettings(reminder_time="25:00")
        with pytest.raises(ValueError):
            GroupSettings(penalty_amount=Decimal('-1'))

    def test_payment_accounts(self, system, make_group):
        group = make_group()
        account = system.group_manager.add_payment_account(
            group.id, PaymentAccountType.BANK, "BCA", "1234567890", "Ibu Ketua", actor_id=CREATOR
        )
        assert system.group_manager.get_group(group.id).payment_accounts[0].bank_name == "BCA"

        assert system.group_manager.remove_payment_account(group.id, account.id, actor_id=CREATOR)
        assert not system.group_manager.remove_payment_account(group.id, account.id, actor_id=CREATOR)
        assert system.group_manager.get_group(group.id).payment_accounts == []

    def test_delete_group_cascades(self, system, make_group):
        group = make_group()
        system.group_manager.delete_group(group.id, actor_id=CREATOR)

        assert system.group_manager.get_group(group.id) is None
        assert system.storage.find("members", {"group_id": group.id}) == []
        assert system.storage.find("rounds", {"group_id": group.id}) == []
        assert system.storage.find("payments", {"group_id": group.id}) == []

    def test_delete_group_requires_admin(self, system, make_group):
        group = make_group()
        with pytest.raises(PermissionError):
            system.group_manager.delete_group(group.id, actor_id="user-dewi")


class TestInviteCode:

    def test_generate_invite_code(self):
        code = generate_invite_code()
        assert len(code) == 6
        assert all(c.isupper() or c.isdigit() for c in code)
        assert len(generate_invite_code(8)) == 8
