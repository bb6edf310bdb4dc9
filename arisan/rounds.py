"""
Round Module

Round lifecycle of an arisan group. Round k pays out to the member holding
turn k. A round is opened with a due date and a pending payment for every
member; advancing completes it and opens the next one, or completes the group
after the last turn. The round number never exceeds the group size.
"""

import calendar
from decimal import Decimal
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, NotFoundError
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger, log_action
from .groups import ArisanPeriod, Group, GroupManager, Member
from .payments import Payment, PaymentManager


class RoundStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Round(StorageRecord):
    """
    One payout cycle. Winner and collected total of an active round are
    resolved from the live group; completing the round freezes them.
    """
    group_id: str
    round_number: int
    due_date: datetime
    status: RoundStatus = RoundStatus.ACTIVE
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None
    total_collected: Optional[Money] = None
    completed_at: Optional[datetime] = None
    forced: bool = False  # Completed with unpaid contributions

    @property
    def is_active(self) -> bool:
        return self.status == RoundStatus.ACTIVE


def add_months(start: datetime, months: int, day: Optional[int] = None) -> datetime:
    """Shift by whole months, clamping the day to the target month's length"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    target_day = min(day or start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=target_day)


class RoundManager:
    """
    Manages round creation, advancement and history
    """

    def __init__(
        self,
        storage: StorageInterface,
        group_manager: GroupManager,
        payment_manager: PaymentManager,
        audit_trail: AuditTrail,
        weekly_period_days: int = 7,
        monthly_period_days: int = 30
    ):
        self.storage = storage
        self.group_manager = group_manager
        self.payment_manager = payment_manager
        self.audit_trail = audit_trail
        self.weekly_period_days = weekly_period_days
        self.monthly_period_days = monthly_period_days
        self.rounds_table = "rounds"
        self.logger = get_logger("arisan.rounds")

    def calculate_due_date(self, group: Group, start: datetime) -> datetime:
        """
        Weekly groups: start + 7 days. Monthly groups: the payment deadline day
        of the following month when configured, start + 30 days otherwise.
        """
        if group.period == ArisanPeriod.WEEKLY:
            return start + timedelta(days=self.weekly_period_days)
        if group.period == ArisanPeriod.MONTHLY:
            if group.payment_deadline_day:
                return add_months(start, 1, group.payment_deadline_day)
            return start + timedelta(days=self.monthly_period_days)
        raise ValueError(f"Unsupported period: {group.period}")

    def start_first_round(self, group_id: str, actor_id: Optional[str] = None,
                          now: Optional[datetime] = None) -> Round:
        """
        Open round 1: due date from now and a pending payment per member.

        Raises:
            ValueError: If the group is unknown or its rounds have already started
        """
        with self.storage.atomic():
            group = self._require_group(group_id)
            self.group_manager.require_admin(group, actor_id)
            if group.round_open or group.is_completed:
                raise ValueError(f"Group {group.name} has already started")
            round_ = self._open_round(group, 1, now or datetime.now(timezone.utc), actor_id)
        return self._resolve(round_, group)

    def advance_round(self, group_id: str, actor_id: Optional[str] = None,
                      force: bool = False, now: Optional[datetime] = None) -> Optional[Round]:
        """
        Complete the current round and open the next one.

        Without `force` every payment of the current round must be paid.
        Completing the round held by the last turn completes the group
        instead.

        Returns:
            The newly opened round, or None when the group is finished

        Raises:
            ValueError: If the group is finished or not started, payments are
                outstanding, or no member holds the next turn
            PermissionError: If the actor is not a group admin
        """
        now = now or datetime.now(timezone.utc)
        with self.storage.atomic():
            group = self._require_group(group_id)
            self.group_manager.require_admin(group, actor_id)

            if group.is_completed:
                raise ValueError(f"Group {group.name} is already completed")
            if not group.round_open:
                raise ValueError(f"Group {group.name} has not started its first round")

            current = self._load_round(group.id, group.current_round)
            if current is None:
                raise NotFoundError(f"Round {group.current_round} not found")

            settled = self.payment_manager.is_round_settled(group.id, current.round_number)
            if not settled and not force:
                log_action(self.logger, "warning", "Advance refused, payments outstanding",
                           user_id=actor_id, action="advance_round", resource="round",
                           group_id=group.id)
                raise ValueError(f"Round {current.round_number} still has unpaid contributions")

            is_last = group.current_round >= group.total_members
            next_number = group.current_round + 1
            if not is_last and group.member_at_turn(next_number) is None:
                raise ValueError(f"No member holds turn {next_number}")

            self._complete_round(group, current, forced=not settled, actor_id=actor_id, now=now)

            if is_last:
                self.group_manager.mark_completed(group)
                self.audit_trail.log_event(
                    event_type=AuditEventType.GROUP_COMPLETED,
                    entity_type="group",
                    entity_id=group.id,
                    group_id=group.id,
                    user_id=actor_id,
                    metadata={"rounds": group.total_members}
                )
                log_action(self.logger, "info", f"Group {group.name} completed", user_id=actor_id,
                           action="advance_round", resource="group", group_id=group.id)
                return None

            round_ = self._open_round(group, next_number, now, actor_id)

        return self._resolve(round_, group)

    def enroll_member(self, group: Group, member: Member) -> Optional[Payment]:
        """Pending payment for a late joiner in the current round"""
        if not group.round_open or group.is_completed:
            return None
        if self.payment_manager.find_payment(group.id, member.id, group.current_round):
            return None
        return self.payment_manager.create_payment(group, member, group.current_round, group.due_date)

    def get_round(self, group_id: str, round_number: int) -> Optional[Round]:
        round_ = self._load_round(group_id, round_number)
        if round_ is None:
            return None
        return self._resolve(round_, self._require_group(group_id))

    def get_current_round(self, group_id: str) -> Optional[Round]:
        group = self._require_group(group_id)
        if not group.round_open:
            return None
        round_ = self._load_round(group.id, group.current_round)
        return self._resolve(round_, group) if round_ else None

    def get_round_history(self, group_id: str) -> List[Round]:
        """All rounds of a group, round 1 first"""
        group = self._require_group(group_id)
        data = self.storage.find(self.rounds_table, {"group_id": group_id})
        rounds = sorted((self._round_from_dict(item) for item in data), key=lambda r: r.round_number)
        return [self._resolve(round_, group) for round_ in rounds]

    def _open_round(self, group: Group, round_number: int, start: datetime,
                    actor_id: Optional[str]) -> Round:
        due_date = self.calculate_due_date(group, start)
        round_ = Round(
            id=str(uuid.uuid4()),
            created_at=start,
            updated_at=start,
            group_id=group.id,
            round_number=round_number,
            due_date=due_date,
        )
        self._save_round(round_)

        group.current_round = round_number
        group.due_date = due_date
        group.touch()
        self.group_manager.save_group(group)

        payments = self.payment_manager.create_round_payments(group, round_number, due_date)
        winner = group.member_at_turn(round_number)

        self.audit_trail.log_event(
            event_type=AuditEventType.ROUND_STARTED,
            entity_type="round",
            entity_id=round_.id,
            group_id=group.id,
            user_id=actor_id,
            metadata={
                "round_number": round_number,
                "due_date": due_date,
                "winner_id": winner.id if winner else None,
                "payments": len(payments)
            }
        )
        log_action(self.logger, "info", f"Round {round_number} started", user_id=actor_id,
                   action="start_round", resource="round", group_id=group.id)
        return round_

    def _complete_round(self, group: Group, round_: Round, forced: bool,
                        actor_id: Optional[str], now: datetime) -> None:
        self._resolve(round_, group)
        round_.status = RoundStatus.COMPLETED
        round_.completed_at = now
        round_.forced = forced
        round_.updated_at = now
        self._save_round(round_)

        self.audit_trail.log_event(
            event_type=AuditEventType.ROUND_COMPLETED,
            entity_type="round",
            entity_id=round_.id,
            group_id=group.id,
            user_id=actor_id,
            metadata={
                "round_number": round_.round_number,
                "winner_id": round_.winner_id,
                "total_collected": round_.total_collected.to_string(),
                "forced": forced
            }
        )

    def _resolve(self, round_: Round, group: Group) -> Round:
        """Fill winner and collected total of an active round from live data"""
        if round_.is_active:
            winner = group.member_at_turn(round_.round_number)
            round_.winner_id = winner.id if winner else None
            round_.winner_name = winner.name if winner else None
            round_.total_collected = self.payment_manager.collected_total(
                group.id, round_.round_number, group.currency
            )
        return round_

    def _require_group(self, group_id: str) -> Group:
        group = self.group_manager.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def _load_round(self, group_id: str, round_number: int) -> Optional[Round]:
        data = self.storage.find(self.rounds_table, {"group_id": group_id, "round_number": round_number})
        if data:
            return self._round_from_dict(data[0])
        return None

    def _save_round(self, round_: Round) -> None:
        self.storage.save(self.rounds_table, round_.id, self._round_to_dict(round_))

    def _round_to_dict(self, round_: Round) -> Dict[str, Any]:
        result = {
            'id': round_.id,
            'created_at': round_.created_at.isoformat(),
            'updated_at': round_.updated_at.isoformat(),
            'group_id': round_.group_id,
            'round_number': round_.round_number,
            'due_date': round_.due_date.isoformat(),
            'status': round_.status.value,
            'winner_id': round_.winner_id,
            'winner_name': round_.winner_name,
            'completed_at': round_.completed_at.isoformat() if round_.completed_at else None,
            'forced': round_.forced,
        }
        # Collected total is only persisted once frozen
        if not round_.is_active and round_.total_collected is not None:
            result['total_collected_amount'] = str(round_.total_collected.amount)
            result['total_collected_currency'] = round_.total_collected.currency.code
        return result

    def _round_from_dict(self, data: Dict[str, Any]) -> Round:
        total_collected = None
        if data.get('total_collected_amount') is not None:
            total_collected = Money(
                Decimal(data['total_collected_amount']),
                Currency[data['total_collected_currency']]
            )
        return Round(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            group_id=data['group_id'],
            round_number=data['round_number'],
            due_date=datetime.fromisoformat(data['due_date']),
            status=RoundStatus(data['status']),
            winner_id=data.get('winner_id'),
            winner_name=data.get('winner_name'),
            total_collected=total_collected,
            completed_at=datetime.fromisoformat(data['completed_at']) if data.get('completed_at') else None,
            forced=data.get('forced', False),
        )
