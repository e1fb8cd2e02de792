"""
Read-only reporting over an auction state.

Flattens squads into DataFrames for the summary endpoint and for CSV export.
Nothing here mutates the state it is given.
"""

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from . import config
from .auction.models import AuctionState

logger = logging.getLogger(__name__)

SQUAD_COLUMNS = ['user_id', 'team_name', 'player_id', 'player_name', 'role', 'club', 'price']

ROLE_COLUMNS = {
    'P': 'goalkeepers',
    'D': 'defenders',
    'C': 'midfielders',
    'A': 'forwards',
}


def squads_dataframe(state: AuctionState) -> pd.DataFrame:
    """
    One row per acquired player.

    Returns:
        DataFrame with SQUAD_COLUMNS, ordered by team then role (P, D, C, A)
    """
    rows = []
    for user in state.users.values():
        for player in user.squad:
            rows.append({
                'user_id': user.id,
                'team_name': user.team_name,
                'player_id': player.id,
                'player_name': player.name,
                'role': player.role.value,
                'club': player.club,
                # Squad copies carry the price paid in base_value
                'price': player.base_value,
            })

    df = pd.DataFrame(rows, columns=SQUAD_COLUMNS)
    if df.empty:
        return df

    df['role_order'] = df['role'].map({r: i for i, r in enumerate(config.ROLES)})
    df = df.sort_values(['team_name', 'role_order', 'player_name']).drop(columns='role_order')
    return df.reset_index(drop=True)


def team_summary(state: AuctionState) -> pd.DataFrame:
    """
    Get summary statistics for all teams.

    Returns:
        DataFrame with user_id, team_name, credits, spent, players and one
        count column per role, sorted by team_name
    """
    summary_data = []
    for user_id, user in state.users.items():
        row = {
            'user_id': user_id,
            'team_name': user.team_name,
            'credits': user.credits,
            'spent': user.total_spent(),
            'players': len(user.squad),
        }
        for role, column in ROLE_COLUMNS.items():
            row[column] = sum(1 for p in user.squad if p.role.value == role)
        summary_data.append(row)

    columns = ['user_id', 'team_name', 'credits', 'spent', 'players'] + list(ROLE_COLUMNS.values())
    df = pd.DataFrame(summary_data, columns=columns)
    if df.empty:
        return df
    return df.sort_values('team_name').reset_index(drop=True)


def export_squads_csv(state: AuctionState, output_path: Union[str, Path]) -> Path:
    """
    Write every squad to CSV.

    Args:
        state: Auction state to export
        output_path: Destination file

    Returns:
        Path written
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    df = squads_dataframe(state)
    if df.empty:
        logger.warning("No acquired players to export")

    df.to_csv(output_path, index=False)
    logger.info(f"Exported {len(df)} squad entries to {output_path}")
    return output_path
