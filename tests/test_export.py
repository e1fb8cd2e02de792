"""
Tests for squad reporting.
"""

import pandas as pd

from fanta_auction.auction.models import Role, create_initial_auction_state
from fanta_auction.export import SQUAD_COLUMNS, export_squads_csv, squads_dataframe, team_summary


def test_squads_dataframe_lists_paid_prices(state, make_player):
    state.users['u1'].squad = [
        make_player('lautaro', Role.FORWARD, 41),
        make_player('maignan', Role.GOALKEEPER, 12),
    ]
    state.users['u1'].credits = 500 - 53

    df = squads_dataframe(state)

    assert list(df.columns) == SQUAD_COLUMNS
    assert list(df['player_id']) == ['maignan', 'lautaro']
    assert list(df['price']) == [12, 41]


def test_team_summary(state, make_player):
    state.users['u2'].squad = [make_player('bastoni', Role.DEFENDER, 8)]
    state.users['u2'].credits = 492

    summary = team_summary(state).set_index('user_id')

    assert summary.loc['u2', 'spent'] == 8
    assert summary.loc['u2', 'defenders'] == 1
    assert summary.loc['u2', 'credits'] + summary.loc['u2', 'spent'] == 500
    assert summary.loc['u1', 'players'] == 0


def test_empty_auction_exports_header_only(tmp_path):
    path = export_squads_csv(create_initial_auction_state(), tmp_path / 'out' / 'squads.csv')

    df = pd.read_csv(path)
    assert df.empty
    assert list(df.columns) == SQUAD_COLUMNS


def test_export_squads_csv(state, make_player, tmp_path):
    state.users['u1'].squad = [make_player('lautaro', Role.FORWARD, 41)]

    path = export_squads_csv(state, tmp_path / 'squads.csv')

    df = pd.read_csv(path)
    assert df.loc[0, 'team_name'] == "Anna's Team"
    assert df.loc[0, 'price'] == 41
