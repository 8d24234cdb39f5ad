"""
Persisted player state for minion-mpd

The singleton `player_state` row holds the mode flags, volume, transport and
the position of the current queue entry, so a restart resumes where the
previous process left off.
"""

from enum import Enum
from typing import NamedTuple, Optional

from minion_mpd.core.database import Database


class Transport(str, Enum):
    """Transport state as reported by `status` (`state: play`)."""

    STOP = "stop"
    PLAY = "play"
    PAUSE = "pause"


class PlayerState(NamedTuple):
    """Immutable player state; use `_replace()` to derive a changed copy."""

    current_position: Optional[int] = None
    transport: Transport = Transport.STOP
    repeat: bool = False
    random: bool = False
    single: bool = False
    consume: bool = False
    volume: int = 50
    generation: int = 0  # last library generation reconciled against the queue


def load_player_state(db: Database) -> PlayerState:
    """
    Read the persisted player state.

    Returns:
        PlayerState, defaults when the row is missing
    """
    with db.connect() as conn:
        row = conn.execute("""
            SELECT current_position, transport, repeat, random, single, consume,
                   volume, generation
            FROM player_state WHERE id = 1
        """).fetchone()

    if row is None:
        return PlayerState()

    try:
        transport = Transport(row["transport"])
    except ValueError:
        transport = Transport.STOP

    return PlayerState(
        current_position=row["current_position"],
        transport=transport,
        repeat=bool(row["repeat"]),
        random=bool(row["random"]),
        single=bool(row["single"]),
        consume=bool(row["consume"]),
        volume=row["volume"],
        generation=row["generation"],
    )


def save_player_state(db: Database, state: PlayerState) -> None:
    """
    Write the player state through to the database.

    Args:
        db: Database handle
        state: State to persist (the queue owns `next_entry_id`)
    """
    with db.transaction() as conn:
        conn.execute("""
            INSERT INTO player_state (id) VALUES (1) ON CONFLICT(id) DO NOTHING
        """)
        conn.execute("""
            UPDATE player_state
            SET current_position = ?,
                transport = ?,
                repeat = ?,
                random = ?,
                single = ?,
                consume = ?,
                volume = ?,
                generation = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = 1
        """, (
            state.current_position,
            state.transport.value,
            state.repeat,
            state.random,
            state.single,
            state.consume,
            state.volume,
            state.generation,
        ))
