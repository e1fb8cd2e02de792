"""
Tests for settlement of the player under the hammer.
"""

from fanta_auction.auction.models import Bid, Role
from fanta_auction.auction.settlement import settle


def test_settle_round_trip(bidding_state):
    player = bidding_state.current_player()
    bidding_state.current_bid = Bid(user_id='u1', amount=37)

    users, winner = settle(bidding_state)

    buyer = users['u1']
    assert buyer.credits == 500 - 37
    assert buyer.squad[-1].id == player.id
    assert buyer.squad[-1].base_value == 37
    assert winner.player == player
    assert winner.user == buyer
    assert winner.amount == 37


def test_settle_does_not_touch_input_state(bidding_state):
    bidding_state.current_bid = Bid(user_id='u1', amount=37)
    before = bidding_state.to_dict()

    settle(bidding_state)

    assert bidding_state.to_dict() == before


def test_no_bid_means_unsold(bidding_state):
    users, winner = settle(bidding_state)

    assert winner is None
    assert users == bidding_state.users


def test_insufficient_credits_at_sale_is_skipped(bidding_state):
    bidding_state.current_bid = Bid(user_id='u1', amount=37)
    bidding_state.users['u1'].credits = 30

    users, winner = settle(bidding_state)

    assert winner is None
    assert users['u1'].credits == 30
    assert users['u1'].squad == []


def test_full_role_at_sale_is_skipped(bidding_state, make_player):
    bidding_state.current_bid = Bid(user_id='u1', amount=12)
    bidding_state.users['u1'].squad = [make_player(f'gk{i}', Role.GOALKEEPER, 1) for i in range(3)]

    users, winner = settle(bidding_state)

    assert winner is None
    assert len(users['u1'].squad) == 3


def test_unknown_bidder_is_skipped(bidding_state):
    bidding_state.current_bid = Bid(user_id='ghost', amount=12)

    users, winner = settle(bidding_state)

    assert winner is None
    assert users == bidding_state.users
