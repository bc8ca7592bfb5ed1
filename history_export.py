# history_export.py — history table for spreadsheets (one row per event, one column per player)

from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from history import HistoryEntry
from state import Player


def history_to_dataframe(
    players: Sequence[Player],
    history: Sequence[HistoryEntry],
    include_description: bool = False,
) -> pd.DataFrame:
    """
    Convert history to a pandas DataFrame for export.

    Rows are newest first, matching the in-app history view. Columns are the
    player names in seat order; a player missing from an entry gets 0.
    """
    columns: List[str] = [p.name for p in players]
    if include_description:
        columns = ["Event"] + columns

    data = []
    for entry in reversed(list(history)):
        row = [entry.delta_for(p.id) for p in players]
        if include_description:
            row = [entry.description] + row
        data.append(row)

    return pd.DataFrame(data, columns=columns)


def history_to_csv(
    players: Sequence[Player],
    history: Sequence[HistoryEntry],
    include_description: bool = False,
) -> str:
    df = history_to_dataframe(players, history, include_description=include_description)
    return df.to_csv(index=False)


def export_file_name(today: Optional[datetime] = None) -> str:
    return f"{(today or datetime.now()).strftime('%Y-%m-%d')}.csv"
