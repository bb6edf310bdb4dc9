"""
Contribution Module

Per-turn contribution amounts for fixed ("tetap") and declining ("menurun")
arisan groups.

In a declining group members who receive the pot early pay more every round
than members who receive it late. Turns are split into sub-periods of P turns
(P = 1, 4 or 6); stepping from one turn to the next lowers the contribution by
the gap of the sub-period the earlier turn sits in. With D(k) the cumulative
reduction before turn k:

    base = (T + sum(D(k) for k in 1..N)) / N
    c(k) = max(0, round(base - D(k)) + A)

so one round of contributions, admin fees excluded, adds up to the target
disbursement T. The schedule is always recomputed from the terms and never
persisted, so changing the terms before members join keeps every amount
consistent.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from .currency import Money, Currency, round_to_unit


ALLOWED_SUB_PERIODS = (1, 4, 6)


class ContributionMode(Enum):
    """How member contributions are sized"""
    FIXED = "tetap"        # Everyone pays their own flat amount
    DECLINING = "menurun"  # Early turns pay more, later turns less


@dataclass
class DecliningTerms:
    """Parameters of a declining contribution schedule"""
    total_members: int                  # N
    target_amount: Decimal              # T, disbursed to each round's winner
    sub_period: int = 1                 # P, turns per gap sub-period
    gaps: List[Decimal] = field(default_factory=list)  # g[i], one per sub-period
    admin_fee: Decimal = Decimal('0')   # A, added to every contribution
    currency: Currency = Currency.IDR

    def __post_init__(self):
        self.target_amount = Decimal(str(self.target_amount))
        self.admin_fee = Decimal(str(self.admin_fee))
        self.gaps = [Decimal(str(gap)) for gap in self.gaps]

        if self.total_members < 1:
            raise ValueError("Total members must be at least 1")
        if self.target_amount <= Decimal('0'):
            raise ValueError("Target amount must be positive")
        if self.sub_period not in ALLOWED_SUB_PERIODS:
            raise ValueError(f"Sub-period must be one of {ALLOWED_SUB_PERIODS}, got {self.sub_period}")
        if not self.gaps:
            raise ValueError("At least one gap value is required")
        if any(gap < Decimal('0') for gap in self.gaps):
            raise ValueError("Gap values cannot be negative")
        if self.admin_fee < Decimal('0'):
            raise ValueError("Admin fee cannot be negative")

    @property
    def sub_period_count(self) -> int:
        """Number of sub-periods the N turns are split into"""
        return -(-self.total_members // self.sub_period)

    def gap_after_turn(self, turn: int) -> Decimal:
        """Reduction applied when stepping from `turn` to `turn + 1`"""
        index = (turn - 1) // self.sub_period
        return self.gaps[min(index, len(self.gaps) - 1)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_members': self.total_members,
            'target_amount': str(self.target_amount),
            'sub_period': self.sub_period,
            'gaps': [str(gap) for gap in self.gaps],
            'admin_fee': str(self.admin_fee),
            'currency': self.currency.code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DecliningTerms':
        return cls(
            total_members=data['total_members'],
            target_amount=Decimal(data['target_amount']),
            sub_period=data['sub_period'],
            gaps=[Decimal(gap) for gap in data['gaps']],
            admin_fee=Decimal(data.get('admin_fee', '0')),
            currency=Currency[data.get('currency', 'IDR')],
        )


@dataclass
class ContributionEntry:
    """Single line of a contribution schedule"""
    turn: int
    sub_period: int               # 1-based sub-period the turn belongs to
    cumulative_reduction: Money   # D(k)
    base_amount: Money            # Contribution before admin fee, never negative
    admin_fee: Money
    contribution: Money           # What the member at this turn pays each round
    floored: bool = False         # True when base - D(k) went below zero

    def __post_init__(self):
        if self.contribution.is_negative():
            raise ValueError(f"Contribution for turn {self.turn} cannot be negative")


def _validate_turn(terms: DecliningTerms, turn: int) -> None:
    if turn < 1 or turn > terms.total_members:
        raise ValueError(f"Turn {turn} is outside 1..{terms.total_members}")


def cumulative_reductions(terms: DecliningTerms) -> List[Decimal]:
    """D(1)..D(N); D(1) is always zero"""
    reductions = [Decimal('0')]
    for turn in range(1, terms.total_members):
        reductions.append(reductions[-1] + terms.gap_after_turn(turn))
    return reductions


def total_gap_reduction(terms: DecliningTerms) -> Decimal:
    """Sum of D(k) over every turn"""
    return sum(cumulative_reductions(terms), Decimal('0'))


def base_amount(terms: DecliningTerms) -> Decimal:
    """Unrounded contribution of turn 1 before the admin fee"""
    return (terms.target_amount + total_gap_reduction(terms)) / Decimal(terms.total_members)


def _entry(terms: DecliningTerms, turn: int, base: Decimal, reduction: Decimal) -> ContributionEntry:
    currency = terms.currency
    raw = round_to_unit(base - reduction, currency)
    floored = raw < Decimal('0')
    before_fee = max(raw, Decimal('0'))
    contribution = max(raw + terms.admin_fee, Decimal('0'))
    return ContributionEntry(
        turn=turn,
        sub_period=(turn - 1) // terms.sub_period + 1,
        cumulative_reduction=Money(reduction, currency),
        base_amount=Money(before_fee, currency),
        admin_fee=Money(terms.admin_fee, currency),
        contribution=Money(contribution, currency),
        floored=floored,
    )


def contribution_for_turn(terms: DecliningTerms, turn: int) -> Money:
    """
    Amount the member holding `turn` pays every round.

    Raises:
        ValueError: If turn is outside 1..N
    """
    _validate_turn(terms, turn)
    reductions = cumulative_reductions(terms)
    return _entry(terms, turn, base_amount(terms), reductions[turn - 1]).contribution


def generate_schedule(terms: DecliningTerms) -> List[ContributionEntry]:
    """Full per-turn schedule, turn 1 first"""
    base = base_amount(terms)
    return [
        _entry(terms, turn, base, reduction)
        for turn, reduction in enumerate(cumulative_reductions(terms), start=1)
    ]


def verify_schedule(terms: DecliningTerms) -> Dict[str, Any]:
    """
    Check that one round of contributions (admin fees excluded) adds up to the
    target. Rounding moves each turn by at most half a unit, so the sum may
    drift by up to N/2 units and still count as valid; flooring at zero breaks
    the identity outright.

    Returns:
        Dictionary with the check results
    """
    schedule = generate_schedule(terms)
    collected = sum((entry.base_amount.amount for entry in schedule), Decimal('0'))
    difference = collected - terms.target_amount
    tolerance = terms.currency.unit * Decimal(terms.total_members) / Decimal('2')
    floored_turns = [entry.turn for entry in schedule if entry.floored]

    return {
        'valid': abs(difference) <= tolerance and not floored_turns,
        'target_amount': str(terms.target_amount),
        'collected_amount': str(collected),
        'total_gap_reduction': str(total_gap_reduction(terms)),
        'difference': str(difference),
        'tolerance': str(tolerance),
        'floored_turns': floored_turns,
    }


def member_contribution(
    mode: ContributionMode,
    turn: int,
    nominal: Money,
    member_amount: Optional[Money] = None,
    terms: Optional[DecliningTerms] = None
) -> Money:
    """
    Contribution of one member for their turn under either mode.

    Fixed groups use the member's own amount, falling back to the group
    nominal; declining groups derive the amount from the terms.
    """
    if mode == ContributionMode.DECLINING:
        if terms is None:
            raise ValueError("Declining groups require declining terms")
        return contribution_for_turn(terms, turn)

    amount = member_amount if member_amount is not None else nominal
    if amount.is_negative():
        raise ValueError("Contribution amount cannot be negative")
    return amount
