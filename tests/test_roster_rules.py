"""
Tests for per-role roster caps.
"""

import pytest

from fanta_auction import config
from fanta_auction.auction.models import Role
from fanta_auction.auction.roster_rules import can_acquire, open_slots, role_count


def squad_of(make_player, role, count):
    return [make_player(f'{role.value.lower()}{i}', role) for i in range(count)]


def test_role_count_only_counts_that_role(make_player):
    squad = squad_of(make_player, Role.GOALKEEPER, 2) + squad_of(make_player, Role.FORWARD, 1)

    assert role_count(squad, Role.GOALKEEPER) == 2
    assert role_count(squad, Role.FORWARD) == 1
    assert role_count(squad, Role.DEFENDER) == 0


@pytest.mark.parametrize('role', list(Role))
def test_can_acquire_until_cap(make_player, role):
    limit = config.ROLE_LIMITS[role.value]

    assert can_acquire(squad_of(make_player, role, limit - 1), role)
    assert not can_acquire(squad_of(make_player, role, limit), role)


def test_caps_match_squad_composition():
    assert config.ROLE_LIMITS == {'P': 3, 'D': 8, 'C': 8, 'A': 6}
    assert config.SQUAD_SIZE == 25


def test_full_goalkeepers_do_not_block_other_roles(make_player):
    squad = squad_of(make_player, Role.GOALKEEPER, 3)

    assert not can_acquire(squad, Role.GOALKEEPER)
    assert can_acquire(squad, Role.MIDFIELDER)


def test_open_slots(make_player):
    squad = squad_of(make_player, Role.GOALKEEPER, 1) + squad_of(make_player, Role.DEFENDER, 8)

    assert open_slots(squad) == {'P': 2, 'D': 0, 'C': 8, 'A': 6}


def test_unknown_role_has_no_cap(make_player):
    with pytest.raises(KeyError):
        can_acquire([], 'X')
