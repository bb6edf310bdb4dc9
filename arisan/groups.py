"""
Group Module

Arisan groups and their members: creation, joining by invite code, group and
member updates, settings, payment accounts and per-member contribution
amounts. Members live in their own collection keyed by group id; a loaded
Group carries its members sorted by turn.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Sequence, Tuple
from enum import Enum
import secrets
import string
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, NotFoundError
from .audit import AuditTrail, AuditEventType
from .contributions import (
    ContributionMode, DecliningTerms, ContributionEntry,
    generate_schedule, member_contribution
)
from .turn_order import DrawRecord, assign_sequential, sort_by_turn, validate_permutation
from .logging_config import get_logger, log_action


class ArisanPeriod(Enum):
    """How often a round comes around"""
    WEEKLY = "mingguan"
    MONTHLY = "bulanan"


class GroupStatus(Enum):
    ACTIVE = "aktif"
    COMPLETED = "selesai"


class TurnMethod(Enum):
    """How turn order is decided"""
    MANUAL = "manual"
    DRAW = "undian"


class MemberRole(Enum):
    CHAIR = "ketua"
    TREASURER = "bendahara"
    MEMBER = "anggota"


ADMIN_ROLES = {MemberRole.CHAIR, MemberRole.TREASURER}


class PenaltyType(Enum):
    PERCENTAGE = "percentage"  # Percent of the amount per day late
    FIXED = "fixed"            # Flat amount once overdue


class PaymentAccountType(Enum):
    BANK = "bank"
    EWALLET = "ewallet"


@dataclass
class GroupSettings:
    """Penalty and reminder preferences of a group"""
    penalty_enabled: bool = False
    penalty_type: PenaltyType = PenaltyType.PERCENTAGE
    penalty_amount: Decimal = Decimal('1')
    reminder_enabled: bool = True
    reminder_days: List[int] = field(default_factory=lambda: [-3, -1, 0])
    reminder_time: str = "09:00"

    def __post_init__(self):
        self.penalty_amount = Decimal(str(self.penalty_amount))
        if self.penalty_amount < Decimal('0'):
            raise ValueError("Penalty amount cannot be negative")
        hours, _, minutes = self.reminder_time.partition(":")
        if not (hours.isdigit() and minutes.isdigit() and int(hours) < 24 and int(minutes) < 60):
            raise ValueError(f"Reminder time must be HH:MM, got {self.reminder_time!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'penalty_enabled': self.penalty_enabled,
            'penalty_type': self.penalty_type.value,
            'penalty_amount': str(self.penalty_amount),
            'reminder_enabled': self.reminder_enabled,
            'reminder_days': list(self.reminder_days),
            'reminder_time': self.reminder_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroupSettings':
        return cls(
            penalty_enabled=data.get('penalty_enabled', False),
            penalty_type=PenaltyType(data.get('penalty_type', 'percentage')),
            penalty_amount=Decimal(data.get('penalty_amount', '1')),
            reminder_enabled=data.get('reminder_enabled', True),
            reminder_days=list(data.get('reminder_days', [-3, -1, 0])),
            reminder_time=data.get('reminder_time', "09:00"),
        )


@dataclass
class PaymentAccount:
    """Bank or e-wallet account members transfer their contribution to"""
    id: str
    type: PaymentAccountType
    bank_name: str        # BCA, Mandiri, GoPay, OVO, ...
    account_number: str
    account_holder: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type.value,
            'bank_name': self.bank_name,
            'account_number': self.account_number,
            'account_holder': self.account_holder,
            'is_active': self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentAccount':
        return cls(
            id=data['id'],
            type=PaymentAccountType(data['type']),
            bank_name=data['bank_name'],
            account_number=data['account_number'],
            account_holder=data['account_holder'],
            is_active=data.get('is_active', True),
        )


@dataclass
class NewMember:
    """Member details supplied when creating a group"""
    name: str
    phone: str = ""
    role: MemberRole = MemberRole.MEMBER
    contribution_amount: Optional[Money] = None
    user_id: Optional[str] = None


@dataclass
class Member(StorageRecord):
    """Participant of a group holding one turn"""
    group_id: str
    name: str
    turn_order: int
    phone: str = ""
    role: MemberRole = MemberRole.MEMBER
    contribution_amount: Optional[Money] = None  # Fixed mode only; None means group nominal
    user_id: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Member name is required")
        if self.contribution_amount is not None and self.contribution_amount.is_negative():
            raise ValueError("Contribution amount cannot be negative")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass
class Group(StorageRecord):
    """An arisan group"""
    name: str
    nominal: Money                      # Fixed-mode contribution per round
    period: ArisanPeriod
    total_members: int
    created_by: str
    invite_code: str
    turn_method: TurnMethod = TurnMethod.MANUAL
    mode: ContributionMode = ContributionMode.FIXED
    status: GroupStatus = GroupStatus.ACTIVE
    current_round: int = 1
    due_date: Optional[datetime] = None  # Due date of the current round once started

    # Declining-mode parameters; the schedule is derived, never stored
    target_amount: Optional[Money] = None
    sub_period: int = 1
    gaps: List[Decimal] = field(default_factory=list)
    admin_fee: Decimal = Decimal('0')

    payment_deadline_day: Optional[int] = None  # Day of month payments are due (1-31)
    disbursement_day: Optional[int] = None      # Day of month the pot is paid out (1-31)

    settings: GroupSettings = field(default_factory=GroupSettings)
    payment_accounts: List[PaymentAccount] = field(default_factory=list)
    draw_history: List[DrawRecord] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Group name is required")
        if self.total_members < 2:
            raise ValueError("An arisan needs at least 2 members")
        if self.nominal.is_negative():
            raise ValueError("Nominal cannot be negative")
        if self.mode == ContributionMode.FIXED and not self.nominal.is_positive():
            raise ValueError("Fixed groups need a positive nominal")
        for name in ('payment_deadline_day', 'disbursement_day'):
            day = getattr(self, name)
            if day is not None and not 1 <= day <= 31:
                raise ValueError(f"{name} must be between 1 and 31")
        self.gaps = [Decimal(str(gap)) for gap in self.gaps]
        self.admin_fee = Decimal(str(self.admin_fee))
        if self.mode == ContributionMode.DECLINING:
            # Validates the declining parameters up front
            self.declining_terms

    @property
    def currency(self) -> Currency:
        return self.nominal.currency

    @property
    def declining_terms(self) -> Optional[DecliningTerms]:
        if self.mode != ContributionMode.DECLINING:
            return None
        if self.target_amount is None:
            raise ValueError("Declining groups need a target amount")
        return DecliningTerms(
            total_members=self.total_members,
            target_amount=self.target_amount.amount,
            sub_period=self.sub_period,
            gaps=self.gaps,
            admin_fee=self.admin_fee,
            currency=self.currency,
        )

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.total_members

    @property
    def is_completed(self) -> bool:
        return self.status == GroupStatus.COMPLETED

    @property
    def round_open(self) -> bool:
        """True once the first round has been started"""
        return self.due_date is not None

    def get_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def get_member_by_user(self, user_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def member_at_turn(self, turn: int) -> Optional[Member]:
        return next((m for m in self.members if m.turn_order == turn), None)

    def contribution_for_turn(self, turn: int) -> Money:
        """Contribution of whoever holds `turn` (declining) or the nominal (fixed)"""
        member = self.member_at_turn(turn)
        return member_contribution(
            self.mode, turn, self.nominal,
            member.contribution_amount if member else None,
            self.declining_terms
        )

    def contribution_for_member(self, member: Member) -> Money:
        return member_contribution(
            self.mode, member.turn_order, self.nominal,
            member.contribution_amount, self.declining_terms
        )

    @property
    def payout_amount(self) -> Money:
        """What the winner of a round receives when everybody pays"""
        if self.mode == ContributionMode.DECLINING:
            return self.target_amount
        total = Money.zero(self.currency)
        for turn in range(1, self.total_members + 1):
            total = total + self.contribution_for_turn(turn)
        return total


def generate_invite_code(length: int = 6) -> str:
    """Uppercase alphanumeric invite code"""
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


class GroupManager:
    """
    Manages group and member records
    """

    GROUP_FIELDS = {
        'name', 'nominal', 'total_members', 'target_amount', 'sub_period',
        'gaps', 'admin_fee', 'payment_deadline_day', 'disbursement_day',
    }

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 invite_code_length: int = 6):
        self.storage = storage
        self.audit_trail = audit_trail
        self.invite_code_length = invite_code_length
        self.groups_table = "arisans"
        self.members_table = "members"
        self.rounds_table = "rounds"
        self.payments_table = "payments"
        self.logger = get_logger("arisan.groups")

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def is_admin(self, group: Group, user_id: Optional[str]) -> bool:
        """Creator or a member holding the chair/treasurer role"""
        if user_id is None:
            return False
        if group.created_by == user_id:
            return True
        member = group.get_member_by_user(user_id)
        return member is not None and member.is_admin

    def require_admin(self, group: Group, actor_id: Optional[str]) -> None:
        """
        A None actor is a trusted internal call and passes.

        Raises:
            PermissionError: If the actor is not an admin of the group
        """
        if actor_id is None:
            return
        if not self.is_admin(group, actor_id):
            log_action(self.logger, "warning", "Admin action refused", user_id=actor_id,
                       action="require_admin", resource="group", group_id=group.id)
            raise PermissionError("Only the group admin can perform this action")

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(
        self,
        name: str,
        nominal: Money,
        period: ArisanPeriod,
        total_members: int,
        created_by: str,
        members: Sequence[NewMember],
        turn_method: TurnMethod = TurnMethod.MANUAL,
        turn_order: Optional[Sequence[str]] = None,
        mode: ContributionMode = ContributionMode.FIXED,
        target_amount: Optional[Money] = None,
        sub_period: int = 1,
        gaps: Optional[Sequence[Decimal]] = None,
        admin_fee: Decimal = Decimal('0'),
        payment_deadline_day: Optional[int] = None,
        disbursement_day: Optional[int] = None
    ) -> Group:
        """
        Create a group with its initial members numbered 1..M

        Args:
            name: Group name
            nominal: Fixed contribution per round
            period: Weekly or monthly rounds
            total_members: Number of turns N
            created_by: User id of the creator (admin)
            members: Initial members, creator usually first with role ketua
            turn_method: Manual order or random draw
            turn_order: Member names giving the manual order
            mode: Fixed or declining contributions
            target_amount: Disbursement per round (declining mode)
            sub_period: Turns per gap sub-period, 1, 4 or 6 (declining mode)
            gaps: Gap value per sub-period (declining mode)
            admin_fee: Fee added to every declining contribution
            payment_deadline_day: Day of month contributions are due
            disbursement_day: Day of month the pot is paid out

        Returns:
            Created Group with members
        """
        if len(members) > total_members:
            raise ValueError(f"{len(members)} members exceed the group size of {total_members}")

        now = datetime.now(timezone.utc)
        group = Group(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            nominal=nominal,
            period=period,
            total_members=total_members,
            created_by=created_by,
            invite_code=self._unique_invite_code(),
            turn_method=turn_method,
            mode=mode,
            target_amount=target_amount,
            sub_period=sub_period,
            gaps=list(gaps or []),
            admin_fee=admin_fee,
            payment_deadline_day=payment_deadline_day,
            disbursement_day=disbursement_day,
        )

        new_members = [
            Member(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                group_id=group.id,
                name=new_member.name,
                turn_order=0,
                phone=new_member.phone,
                role=new_member.role,
                contribution_amount=new_member.contribution_amount,
                user_id=new_member.user_id,
            )
            for new_member in members
        ]
        group.members = assign_sequential(new_members, turn_order)
        validate_permutation(group.members)

        with self.storage.atomic():
            self.save_group(group)
            for member in group.members:
                self.save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.GROUP_CREATED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=created_by,
                metadata={
                    "name": name,
                    "nominal": nominal.to_string(),
                    "mode": mode.value,
                    "period": period.value,
                    "total_members": total_members,
                    "turn_method": turn_method.value,
                    "initial_members": len(group.members)
                }
            )

        log_action(self.logger, "info", f"Group {name} created", user_id=created_by,
                   action="create_group", resource="group", group_id=group.id)
        return group

    def get_group(self, group_id: str) -> Optional[Group]:
        """Load a group together with its members"""
        data = self.storage.load(self.groups_table, group_id)
        if not data:
            return None
        return self._group_from_dict(data)

    def get_group_by_invite_code(self, invite_code: str) -> Optional[Group]:
        """Case-insensitive invite code lookup"""
        groups = self.storage.find(self.groups_table, {"invite_code": invite_code.strip().upper()})
        if groups:
            return self._group_from_dict(groups[0])
        return None

    def get_user_groups(self, user_id: str) -> List[Group]:
        """Groups the user created or belongs to"""
        group_ids = [data['id'] for data in self.storage.find(self.groups_table, {"created_by": user_id})]
        for member in self.storage.find(self.members_table, {"user_id": user_id}):
            if member['group_id'] not in group_ids:
                group_ids.append(member['group_id'])
        groups = [self.get_group(group_id) for group_id in group_ids]
        return [group for group in groups if group]

    def update_group(self, group_id: str, changes: Dict[str, Any],
                     actor_id: Optional[str] = None) -> Group:
        """
        Update group info and declining parameters. Contributions are derived
        from the new values on the next read.

        Raises:
            ValueError: On unknown fields or a size below the current members/round
        """
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)

        unknown = set(changes) - self.GROUP_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        total_members = changes.get('total_members', group.total_members)
        if total_members < len(group.members):
            raise ValueError(f"Group already has {len(group.members)} members")
        if total_members < group.current_round:
            raise ValueError(f"Group is already at round {group.current_round}")

        data = self._group_to_dict(group)
        for key, value in changes.items():
            if key in ('nominal', 'target_amount'):
                data[f'{key}_amount'] = str(value.amount) if value is not None else None
            elif key == 'gaps':
                data['gaps'] = [str(Decimal(str(gap))) for gap in value]
            elif key == 'admin_fee':
                data['admin_fee'] = str(Decimal(str(value)))
            else:
                data[key] = value
        data['updated_at'] = datetime.now(timezone.utc).isoformat()

        with self.storage.atomic():
            # Rebuilding runs the same validation as creation
            updated = self._group_from_dict(data, members=group.members)
            self.save_group(updated)

            self.audit_trail.log_event(
                event_type=AuditEventType.GROUP_UPDATED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={k: (v.to_string() if isinstance(v, Money) else v) for k, v in changes.items()}
            )
        return updated

    def update_settings(self, group_id: str, changes: Dict[str, Any],
                        actor_id: Optional[str] = None) -> GroupSettings:
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)

        data = group.settings.to_dict()
        for key, value in changes.items():
            if key not in data:
                raise ValueError(f"Unknown setting: {key}")
            data[key] = value.value if isinstance(value, Enum) else value
        data['penalty_amount'] = str(data['penalty_amount'])

        with self.storage.atomic():
            group.settings = GroupSettings.from_dict(data)
            group.touch()
            self.save_group(group)

            self.audit_trail.log_event(
                event_type=AuditEventType.SETTINGS_UPDATED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={'changes': changes}
            )
        return group.settings

    def delete_group(self, group_id: str, actor_id: Optional[str] = None) -> None:
        """Delete a group with its members, rounds and payments"""
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)

        with self.storage.atomic():
            self.storage.delete_where(self.members_table, {"group_id": group_id})
            self.storage.delete_where(self.rounds_table, {"group_id": group_id})
            self.storage.delete_where(self.payments_table, {"group_id": group_id})
            self.storage.delete(self.groups_table, group_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.GROUP_DELETED,
                entity_type="group",
                entity_id=group_id,
                group_id=group_id,
                user_id=actor_id,
                metadata={"name": group.name}
            )

        log_action(self.logger, "warning", f"Group {group.name} deleted", user_id=actor_id,
                   action="delete_group", resource="group", group_id=group_id)

    def mark_completed(self, group: Group) -> Group:
        group.status = GroupStatus.COMPLETED
        group.due_date = None
        group.touch()
        self.save_group(group)
        return group

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def join_group(
        self,
        invite_code: str,
        user_id: str,
        name: str,
        phone: str = "",
        contribution_amount: Optional[Money] = None
    ) -> Tuple[Group, Member, bool]:
        """
        Join a group by invite code. Joining twice returns the existing member.

        Returns:
            (group, member, created) where created is False for a repeat join

        Raises:
            ValueError: If the code is unknown, or the group is full or finished
        """
        group = self.get_group_by_invite_code(invite_code)
        if not group:
            raise ValueError(f"No group with invite code {invite_code}")

        existing = group.get_member_by_user(user_id)
        if existing:
            return group, existing, False

        if group.is_completed:
            raise ValueError("Group has already finished")
        if group.is_full:
            log_action(self.logger, "warning", "Join refused, group full", user_id=user_id,
                       action="join_group", resource="group", group_id=group.id)
            raise ValueError("Group is full")
        if contribution_amount is not None and contribution_amount.currency != group.currency:
            raise ValueError("Contribution currency must match group currency")

        now = datetime.now(timezone.utc)
        member = Member(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            group_id=group.id,
            name=name,
            turn_order=len(group.members) + 1,
            phone=phone,
            role=MemberRole.MEMBER,
            contribution_amount=contribution_amount,
            user_id=user_id,
        )
        with self.storage.atomic():
            group.members.append(member)
            validate_permutation(group.members)
            self.save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_JOINED,
                entity_type="member",
                entity_id=member.id,
                group_id=group.id,
                user_id=user_id,
                metadata={"name": name, "turn_order": member.turn_order}
            )
        log_action(self.logger, "info", f"{name} joined", user_id=user_id,
                   action="join_group", resource="member", group_id=group.id)
        return group, member, True

    def update_member_role(self, group_id: str, member_id: str, role: MemberRole,
                           actor_id: Optional[str] = None) -> Member:
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)
        member = group.get_member(member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found in group {group_id}")

        with self.storage.atomic():
            old_role = member.role
            member.role = role
            member.touch()
            self.save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_ROLE_CHANGED,
                entity_type="member",
                entity_id=member.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={"old_role": old_role.value, "new_role": role.value}
            )
        return member

    def get_members(self, group_id: str) -> List[Member]:
        data = self.storage.find(self.members_table, {"group_id": group_id})
        return sort_by_turn([self._member_from_dict(item) for item in data])

    def save_member(self, member: Member) -> None:
        self.storage.save(self.members_table, member.id, self._member_to_dict(member))

    def delete_member(self, member_id: str) -> bool:
        return self.storage.delete(self.members_table, member_id)

    # ------------------------------------------------------------------
    # Payment accounts
    # ------------------------------------------------------------------

    def add_payment_account(
        self,
        group_id: str,
        account_type: PaymentAccountType,
        bank_name: str,
        account_number: str,
        account_holder: str,
        actor_id: Optional[str] = None
    ) -> PaymentAccount:
        if not (bank_name and account_number and account_holder):
            raise ValueError("Bank name, account number and holder are required")
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)

        account = PaymentAccount(
            id=str(uuid.uuid4()),
            type=account_type,
            bank_name=bank_name,
            account_number=account_number,
            account_holder=account_holder,
        )
        with self.storage.atomic():
            group.payment_accounts.append(account)
            group.touch()
            self.save_group(group)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_ACCOUNT_ADDED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={"account_id": account.id, "bank_name": bank_name}
            )
        return account

    def remove_payment_account(self, group_id: str, account_id: str,
                               actor_id: Optional[str] = None) -> bool:
        group = self._require_group(group_id)
        self.require_admin(group, actor_id)

        before = len(group.payment_accounts)
        group.payment_accounts = [a for a in group.payment_accounts if a.id != account_id]
        if len(group.payment_accounts) == before:
            return False

        with self.storage.atomic():
            group.touch()
            self.save_group(group)
            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_ACCOUNT_REMOVED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={"account_id": account_id}
            )
        return True

    # ------------------------------------------------------------------
    # Contributions
    # ------------------------------------------------------------------

    def contribution_for_turn(self, group_id: str, turn: int) -> Money:
        """Accessor used by UI layers: contribution for a turn number"""
        group = self._require_group(group_id)
        if turn < 1 or turn > group.total_members:
            raise ValueError(f"Turn {turn} is outside 1..{group.total_members}")
        return group.contribution_for_turn(turn)

    def contribution_schedule(self, group_id: str) -> List[ContributionEntry]:
        """
        Per-turn schedule of a declining group, or a flat schedule built from
        member amounts for a fixed group.
        """
        group = self._require_group(group_id)
        terms = group.declining_terms
        if terms is not None:
            return generate_schedule(terms)

        zero = Money.zero(group.currency)
        schedule = []
        for turn in range(1, group.total_members + 1):
            amount = group.contribution_for_turn(turn)
            schedule.append(ContributionEntry(
                turn=turn,
                sub_period=turn,
                cumulative_reduction=zero,
                base_amount=amount,
                admin_fee=zero,
                contribution=amount,
            ))
        return schedule

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _require_group(self, group_id: str) -> Group:
        group = self.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def _unique_invite_code(self) -> str:
        code = generate_invite_code(self.invite_code_length)
        while self.storage.find(self.groups_table, {"invite_code": code}):
            code = generate_invite_code(self.invite_code_length)
        return code

    def save_group(self, group: Group) -> None:
        self.storage.save(self.groups_table, group.id, self._group_to_dict(group))

    def _group_to_dict(self, group: Group) -> Dict[str, Any]:
        return {
            'id': group.id,
            'created_at': group.created_at.isoformat(),
            'updated_at': group.updated_at.isoformat(),
            'name': group.name,
            'nominal_amount': str(group.nominal.amount),
            'currency': group.currency.code,
            'period': group.period.value,
            'total_members': group.total_members,
            'created_by': group.created_by,
            'invite_code': group.invite_code,
            'turn_method': group.turn_method.value,
            'mode': group.mode.value,
            'status': group.status.value,
            'current_round': group.current_round,
            'due_date': group.due_date.isoformat() if group.due_date else None,
            'target_amount_amount': str(group.target_amount.amount) if group.target_amount else None,
            'sub_period': group.sub_period,
            'gaps': [str(gap) for gap in group.gaps],
            'admin_fee': str(group.admin_fee),
            'payment_deadline_day': group.payment_deadline_day,
            'disbursement_day': group.disbursement_day,
            'settings': group.settings.to_dict(),
            'payment_accounts': [a.to_dict() for a in group.payment_accounts],
            'draw_history': [d.to_dict() for d in group.draw_history],
        }

    def _group_from_dict(self, data: Dict[str, Any],
                         members: Optional[List[Member]] = None) -> Group:
        currency = Currency[data['currency']]
        target_amount = None
        if data.get('target_amount_amount'):
            target_amount = Money(Decimal(data['target_amount_amount']), currency)

        if members is None:
            members = self.get_members(data['id'])

        return Group(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            nominal=Money(Decimal(data['nominal_amount']), currency),
            period=ArisanPeriod(data['period']),
            total_members=data['total_members'],
            created_by=data['created_by'],
            invite_code=data['invite_code'],
            turn_method=TurnMethod(data['turn_method']),
            mode=ContributionMode(data['mode']),
            status=GroupStatus(data['status']),
            current_round=data['current_round'],
            due_date=datetime.fromisoformat(data['due_date']) if data.get('due_date') else None,
            target_amount=target_amount,
            sub_period=data.get('sub_period', 1),
            gaps=[Decimal(gap) for gap in data.get('gaps', [])],
            admin_fee=Decimal(data.get('admin_fee', '0')),
            payment_deadline_day=data.get('payment_deadline_day'),
            disbursement_day=data.get('disbursement_day'),
            settings=GroupSettings.from_dict(data.get('settings', {})),
            payment_accounts=[PaymentAccount.from_dict(a) for a in data.get('payment_accounts', [])],
            draw_history=[DrawRecord.from_dict(d) for d in data.get('draw_history', [])],
            members=members,
        )

    def _member_to_dict(self, member: Member) -> Dict[str, Any]:
        result = {
            'id': member.id,
            'created_at': member.created_at.isoformat(),
            'updated_at': member.updated_at.isoformat(),
            'group_id': member.group_id,
            'name': member.name,
            'turn_order': member.turn_order,
            'phone': member.phone,
            'role': member.role.value,
            'user_id': member.user_id,
        }
        if member.contribution_amount is not None:
            result['contribution_amount'] = str(member.contribution_amount.amount)
            result['contribution_currency'] = member.contribution_amount.currency.code
        return result

    def _member_from_dict(self, data: Dict[str, Any]) -> Member:
        contribution_amount = None
        if data.get('contribution_amount') is not None:
            contribution_amount = Money(
                Decimal(data['contribution_amount']),
                Currency[data['contribution_currency']]
            )
        return Member(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            group_id=data['group_id'],
            name=data['name'],
            turn_order=data['turn_order'],
            phone=data.get('phone', ""),
            role=MemberRole(data['role']),
            contribution_amount=contribution_amount,
            user_id=data.get('user_id'),
        )
