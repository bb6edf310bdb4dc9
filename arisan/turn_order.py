"""
Turn Order Module

Keeps the order in which members receive the pot ("giliran"). Turn numbers of
the members of a group always form a permutation of 1..M: every helper here
returns members renumbered that way and `validate_permutation` guards the
result before anything is persisted.
"""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Sequence, TYPE_CHECKING

from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger, log_action
from .storage import StorageInterface, NotFoundError

if TYPE_CHECKING:
    from .groups import Group, GroupManager, Member
    from .payments import PaymentManager


@dataclass
class DrawRecord:
    """Outcome of one random turn draw ("undian")"""
    id: str
    performed_at: datetime
    performed_by: Optional[str]
    result: List[Dict[str, Any]] = field(default_factory=list)  # member_id, member_name, turn_order

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'performed_at': self.performed_at.isoformat(),
            'performed_by': self.performed_by,
            'result': list(self.result),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DrawRecord':
        return cls(
            id=data['id'],
            performed_at=datetime.fromisoformat(data['performed_at']),
            performed_by=data.get('performed_by'),
            result=list(data.get('result', [])),
        )


def validate_permutation(members: Sequence['Member']) -> None:
    """
    Raises:
        ValueError: If turn orders are not exactly 1..len(members)
    """
    orders = sorted(member.turn_order for member in members)
    expected = list(range(1, len(members) + 1))
    if orders != expected:
        raise ValueError(f"Turn orders {orders} are not a permutation of 1..{len(members)}")


def _renumber(ordered: List['Member']) -> List['Member']:
    for position, member in enumerate(ordered, start=1):
        member.turn_order = position
    return ordered


def sort_by_turn(members: Sequence['Member']) -> List['Member']:
    return sorted(members, key=lambda m: m.turn_order)


def assign_sequential(members: Sequence['Member'], order: Optional[Sequence[str]] = None) -> List['Member']:
    """
    Number members 1..M.

    Without `order` the list order is kept. With `order` (member ids or names)
    listed members come first in that order and the rest follow in list order.
    """
    members = list(members)
    if order:
        rank = {key: index for index, key in enumerate(order)}

        def position(indexed):
            index, member = indexed
            for key in (member.id, member.name):
                if key in rank:
                    return (0, rank[key])
            return (1, index)

        members = [member for _, member in sorted(enumerate(members), key=position)]
    return _renumber(members)


def shuffle(members: Sequence['Member'], rng: Optional[random.Random] = None) -> List['Member']:
    """Random permutation of the turn order"""
    rng = rng or random.SystemRandom()
    shuffled = list(members)
    rng.shuffle(shuffled)
    return _renumber(shuffled)


def move(members: Sequence['Member'], member_id: str, direction: str) -> List['Member']:
    """
    Swap a member with the neighbour above ("up") or below ("down").
    Moving the first member up or the last member down changes nothing.

    Raises:
        ValueError: If the member is unknown or the direction is invalid
    """
    if direction not in ("up", "down"):
        raise ValueError(f"Direction must be 'up' or 'down', got {direction!r}")

    ordered = sort_by_turn(members)
    index = next((i for i, m in enumerate(ordered) if m.id == member_id), None)
    if index is None:
        raise NotFoundError(f"Member {member_id} not found")

    target = index - 1 if direction == "up" else index + 1
    if 0 <= target < len(ordered):
        ordered[index], ordered[target] = ordered[target], ordered[index]
    return _renumber(ordered)


def renumber_after_removal(members: Sequence['Member'], removed_id: str) -> List['Member']:
    """Drop a member and close the gap, keeping everyone's relative order"""
    remaining = [m for m in sort_by_turn(members) if m.id != removed_id]
    return _renumber(remaining)


def paid_out_turns(group: 'Group') -> int:
    """Number of leading turns whose rounds are already completed"""
    if group.is_completed:
        return len(group.members)
    if not group.round_open:
        return 0
    return group.current_round - 1


class TurnOrderManager:
    """
    Persists turn-order changes of a group: draws, manual moves and member
    removal.
    """

    def __init__(
        self,
        storage: StorageInterface,
        group_manager: 'GroupManager',
        payment_manager: 'PaymentManager',
        audit_trail: AuditTrail,
        rng: Optional[random.Random] = None
    ):
        self.storage = storage
        self.group_manager = group_manager
        self.payment_manager = payment_manager
        self.audit_trail = audit_trail
        self.rng = rng or random.SystemRandom()
        self.logger = get_logger("arisan.turn_order")

    def _load(self, group_id: str, actor_id: Optional[str]) -> 'Group':
        group = self.group_manager.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        self.group_manager.require_admin(group, actor_id)
        return group

    def _persist(self, group: 'Group', members: List['Member']) -> None:
        validate_permutation(members)
        for member in members:
            member.touch()
            self.group_manager.save_member(member)
        group.members = sort_by_turn(members)
        if group.round_open and not group.is_completed:
            self.payment_manager.reprice_unresolved(group, group.current_round)

    def _require_unsettled(self, group: 'Group', before: Dict[str, int],
                           members: List['Member']) -> None:
        settled = paid_out_turns(group)
        for member in members:
            if member.turn_order != before[member.id] and min(member.turn_order, before[member.id]) <= settled:
                raise ValueError(f"Turns 1..{settled} are already paid out and cannot change")

    def draw_order(self, group_id: str, actor_id: Optional[str] = None) -> DrawRecord:
        """
        Randomly redraw the turn order and append the result to the group's
        draw history.
        """
        with self.storage.atomic():
            group = self._load(group_id, actor_id)
            if not group.members:
                raise ValueError("Cannot draw turn order for a group without members")
            if group.is_completed:
                raise ValueError(f"Group {group.id} is completed")

            # Rounds already paid out keep their winners; only open turns are drawn
            ordered = sort_by_turn(group.members)
            settled = paid_out_turns(group)
            members = _renumber(ordered[:settled] + shuffle(ordered[settled:], self.rng))
            self._persist(group, members)

            record = DrawRecord(
                id=str(uuid.uuid4()),
                performed_at=datetime.now(timezone.utc),
                performed_by=actor_id,
                result=[
                    {'member_id': m.id, 'member_name': m.name, 'turn_order': m.turn_order}
                    for m in group.members
                ]
            )
            group.draw_history.append(record)
            group.touch()
            self.group_manager.save_group(group)

            self.audit_trail.log_event(
                event_type=AuditEventType.TURN_ORDER_DRAWN,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={'draw_id': record.id, 'result': record.result}
            )

        log_action(self.logger, "info", "Turn order drawn", user_id=actor_id,
                   action="draw_order", resource="group", group_id=group_id)
        return record

    def move_member(self, group_id: str, member_id: str, direction: str,
                    actor_id: Optional[str] = None) -> List['Member']:
        """Swap a member with the adjacent turn; returns members in turn order"""
        with self.storage.atomic():
            group = self._load(group_id, actor_id)
            before = {m.id: m.turn_order for m in group.members}
            members = move(group.members, member_id, direction)
            self._require_unsettled(group, before, members)
            changed = [m for m in members if before[m.id] != m.turn_order]
            if changed:
                self._persist(group, members)
                self.audit_trail.log_event(
                    event_type=AuditEventType.TURN_ORDER_MOVED,
                    entity_type="member",
                    entity_id=member_id,
                    group_id=group.id,
                    user_id=actor_id,
                    metadata={
                        'direction': direction,
                        'changes': {m.id: [before[m.id], m.turn_order] for m in changed}
                    }
                )
        return sort_by_turn(members)

    def set_order(self, group_id: str, order: Sequence[str],
                  actor_id: Optional[str] = None) -> List['Member']:
        """Manually set the full order from a list of member ids"""
        with self.storage.atomic():
            group = self._load(group_id, actor_id)
            known = {m.id for m in group.members}
            if set(order) != known or len(order) != len(known):
                raise ValueError("Order must list every member exactly once")
            before = {m.id: m.turn_order for m in group.members}
            members = assign_sequential(group.members, order)
            self._require_unsettled(group, before, members)
            self._persist(group, members)
            self.audit_trail.log_event(
                event_type=AuditEventType.TURN_ORDER_MOVED,
                entity_type="group",
                entity_id=group.id,
                group_id=group.id,
                user_id=actor_id,
                metadata={'order': list(order)}
            )
        return sort_by_turn(members)

    def remove_member(self, group_id: str, member_id: str,
                      actor_id: Optional[str] = None) -> List['Member']:
        """
        Remove a member, compact the remaining turns to 1..M-1 and drop the
        member's unresolved payments for the current round. Paid history stays.
        """
        with self.storage.atomic():
            group = self._load(group_id, actor_id)
            member = group.get_member(member_id)
            if not member:
                raise NotFoundError(f"Member {member_id} not found in group {group_id}")

            remaining = renumber_after_removal(group.members, member_id)
            self.group_manager.delete_member(member_id)
            self._persist(group, remaining)
            dropped = self.payment_manager.delete_unresolved(
                group.id, member_id, group.current_round
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_REMOVED,
                entity_type="member",
                entity_id=member_id,
                group_id=group.id,
                user_id=actor_id,
                metadata={
                    'name': member.name,
                    'turn_order': member.turn_order,
                    'payments_dropped': dropped
                }
            )

        log_action(self.logger, "info", f"Member {member.name} removed", user_id=actor_id,
                   action="remove_member", resource="member", group_id=group_id)
        return sort_by_turn(remaining)

    def get_draw_history(self, group_id: str) -> List[DrawRecord]:
        group = self.group_manager.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        return list(group.draw_history)
