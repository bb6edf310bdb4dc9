"""
Shared fixtures: an in-memory ArisanSystem and a group factory
"""

import random
import pytest
from decimal import Decimal

from arisan.config import ArisanConfig
from arisan.currency import Money
from arisan.contributions import ContributionMode
from arisan.groups import ArisanPeriod, MemberRole, NewMember, TurnMethod
from arisan.storage import InMemoryStorage
from arisan.system import ArisanSystem


CREATOR = "user-ketua"


@pytest.fixture
def system():
    arisan_system = ArisanSystem(
        storage=InMemoryStorage(),
        config=ArisanConfig(storage_backend="memory"),
        rng=random.Random(42)
    )
    yield arisan_system
    arisan_system.close()


@pytest.fixture
def make_group(system):
    """Create a group whose creator is the ketua at turn 1"""

    def factory(member_names=("Siti", "Budi", "Dewi"), total_members=None, **kwargs):
        members = [NewMember(name="Ibu Ketua", role=MemberRole.CHAIR, user_id=CREATOR)]
        members += [NewMember(name=name, user_id=f"user-{name.lower()}") for name in member_names]
        params = dict(
            name="Arisan RT 05",
            nominal=Money(Decimal('100000')),
            period=ArisanPeriod.MONTHLY,
            total_members=total_members or len(members),
            created_by=CREATOR,
            members=members,
            turn_method=TurnMethod.MANUAL,
            mode=ContributionMode.FIXED,
        )
        params.update(kwargs)
        return system.create_group(**params)

    return factory
