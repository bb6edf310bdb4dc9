"""
Arisan system wiring: one storage, one audit trail and every manager built
on top of them.
"""

import random
from decimal import Decimal
from typing import Optional, Sequence

from .config import ArisanConfig, get_config
from .currency import Money
from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .contributions import ContributionMode
from .groups import ArisanPeriod, Group, GroupManager, Member, NewMember, TurnMethod
from .payments import PaymentManager
from .rounds import RoundManager
from .turn_order import TurnOrderManager
from .logging_config import get_logger


class ArisanSystem:
    """Arisan engine with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[ArisanConfig] = None,
                 rng: Optional[random.Random] = None):
        self.config = config or get_config()
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_path)
        self.storage = storage
        self.logger = get_logger("arisan.system")

        self.audit_trail = AuditTrail(self.storage)
        self.group_manager = GroupManager(
            self.storage, self.audit_trail,
            invite_code_length=self.config.invite_code_length
        )
        self.payment_manager = PaymentManager(self.storage, self.group_manager, self.audit_trail)
        self.round_manager = RoundManager(
            self.storage, self.group_manager, self.payment_manager, self.audit_trail,
            weekly_period_days=self.config.weekly_period_days,
            monthly_period_days=self.config.monthly_period_days
        )
        self.turn_order_manager = TurnOrderManager(
            self.storage, self.group_manager, self.payment_manager, self.audit_trail, rng=rng
        )

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
        disbursement_day: Optional[int] = None,
        start: bool = True
    ) -> Group:
        """
        Create a group, draw its turn order when the method is undian, and
        open round 1 unless `start` is False.
        """
        with self.storage.atomic():
            group = self.group_manager.create_group(
                name=name,
                nominal=nominal,
                period=period,
                total_members=total_members,
                created_by=created_by,
                members=members,
                turn_method=turn_method,
                turn_order=turn_order,
                mode=mode,
                target_amount=target_amount,
                sub_period=sub_period,
                gaps=gaps,
                admin_fee=admin_fee,
                payment_deadline_day=payment_deadline_day,
                disbursement_day=disbursement_day,
            )
            if turn_method == TurnMethod.DRAW and group.members:
                self.turn_order_manager.draw_order(group.id, created_by)
            if start:
                self.round_manager.start_first_round(group.id, created_by)
        return self.group_manager.get_group(group.id)

    def join_group(self, invite_code: str, user_id: str, name: str, phone: str = "",
                   contribution_amount: Optional[Money] = None) -> Member:
        """Join by invite code; new members owe the current round right away"""
        with self.storage.atomic():
            group, member, created = self.group_manager.join_group(
                invite_code, user_id, name, phone, contribution_amount
            )
            if created:
                self.round_manager.enroll_member(group, member)
        return member

    def close(self) -> None:
        self.storage.close()
