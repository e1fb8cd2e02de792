"""
Player-pool ingestion.

Validates player records before they reach the auction and loads them from
CSV. Every player entering the pool must have a unique id, one of the four
roles, and an integer base value above zero, so the opening-bid floor is
never degenerate.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd
from fuzzywuzzy import fuzz, process

from . import config
from .auction.errors import InvalidPlayerPoolError
from .auction.models import Player, Role

logger = logging.getLogger(__name__)


def build_player_id(name: str, row_index: int) -> str:
    """Stable id from the player name and its row, e.g. 'Lautaro-Martinez-3'."""
    slug = re.sub(r'\s+', '-', name.strip())
    return f"{slug}-{row_index}"


def normalize_club(club: str, known_clubs: Optional[List[str]] = None) -> str:
    """
    Snap a club name to its canonical spelling when it is a close match.

    Args:
        club: Club name as typed in the source
        known_clubs: Canonical names (default: config.SERIE_A_CLUBS)

    Returns:
        Canonical club name, or the stripped input if nothing matches well
    """
    club = club.strip()
    if not club:
        return club

    known_clubs = known_clubs or config.SERIE_A_CLUBS

    # token_sort_ratio tolerates case and word order ("verona hellas")
    match_result = process.extractOne(club, known_clubs, scorer=fuzz.token_sort_ratio)
    if match_result is None:
        return club

    matched_name, score = match_result[0], match_result[1]
    if score >= config.CLUB_MATCH_THRESHOLD:
        if matched_name != club:
            logger.debug(f"Club '{club}' matched to '{matched_name}' (score={score})")
        return matched_name

    logger.debug(f"No close club match for '{club}' (best '{matched_name}', score={score})")
    return club


def _coerce_player(record: Union[Player, dict], position: int) -> Player:
    if isinstance(record, Player):
        return record

    name = str(record.get('name') or '').strip()
    if not name:
        raise ValueError("name is missing")

    raw_role = str(record.get('role') or '').strip().upper()
    try:
        role = Role(raw_role)
    except ValueError:
        raise ValueError(f"invalid role '{record.get('role')}' (expected one of {config.ROLES})")

    raw_value = record.get('base_value', record.get('value'))
    if isinstance(raw_value, bool):
        raise ValueError(f"invalid value '{raw_value}'")
    try:
        base_value = int(str(raw_value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"invalid value '{raw_value}'")

    return Player(
        id=str(record.get('id') or build_player_id(name, position)),
        name=name,
        role=role,
        club=str(record.get('club') or '').strip(),
        base_value=base_value,
    )


def validate_players(records: Iterable[Union[Player, dict]]) -> List[Player]:
    """
    Check and convert player records for the pool.

    Args:
        records: Player objects or dicts with name, role, club and
            base_value (or value); id is generated when missing

    Returns:
        List of Players in input order

    Raises:
        InvalidPlayerPoolError: Listing every offending record
    """
    players = []
    problems = []
    seen_ids = set()

    for position, record in enumerate(records):
        try:
            player = _coerce_player(record, position)
        except ValueError as e:
            problems.append(f"record {position + 1}: {e}")
            continue

        if player.base_value <= 0:
            problems.append(
                f"record {position + 1} ({player.name}): base value must be positive, "
                f"got {player.base_value}"
            )
        if player.id in seen_ids:
            problems.append(f"record {position + 1} ({player.name}): duplicate id '{player.id}'")
        seen_ids.add(player.id)
        players.append(player)

    if problems:
        raise InvalidPlayerPoolError("; ".join(problems))

    return players


def load_players_csv(path: Union[str, Path], normalize_clubs: bool = True) -> List[Player]:
    """
    Load a player pool from CSV.

    Expected columns (case-insensitive, BOM tolerated): name, role, club, value

    Args:
        path: CSV file path
        normalize_clubs: Snap club names to canonical spelling

    Returns:
        Validated list of Players

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidPlayerPoolError: If columns are missing or rows are invalid
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Player file not found: {csv_path}")

    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).replace('\ufeff', '').strip().lower() for c in df.columns]

    missing = [c for c in config.PLAYER_CSV_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidPlayerPoolError(f"Player file is missing columns: {', '.join(missing)}")

    df = df[config.PLAYER_CSV_COLUMNS].apply(lambda col: col.str.strip())
    df = df[(df != '').any(axis=1)]

    empty = df[(df == '').any(axis=1)]
    if len(empty) > 0:
        # +2: header row and 1-based numbering
        rows = ', '.join(str(i + 2) for i in empty.index)
        raise InvalidPlayerPoolError(f"Player file has empty fields on rows: {rows}")

    if normalize_clubs:
        df['club'] = df['club'].map(normalize_club)

    records = [
        {
            'id': build_player_id(row['name'], i),
            'name': row['name'],
            'role': row['role'],
            'club': row['club'],
            'value': row['value'],
        }
        for i, row in zip(df.index, df.to_dict('records'))
    ]

    players = validate_players(records)
    logger.info(f"Loaded {len(players)} players from {csv_path}")
    return players
