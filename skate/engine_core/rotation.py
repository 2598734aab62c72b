"""
Turn rotation, letters and standings.

Seat order is fixed at join time. Advancing the turn walks that order
circularly starting just after a given seat, skipping anyone disconnected
or eliminated. If the walk comes back to where it started without finding
an eligible seat, there is nobody to hand the turn to.
"""

from __future__ import annotations

from .state import SKATE, Player


def next_letters(letters: str) -> str:
    """Letters after earning one more. Saturates at the full word."""
    if len(letters) >= len(SKATE):
        return SKATE
    return letters + SKATE[len(letters)]


def previous_letters(letters: str) -> str:
    """Letters after one is taken back (dispute overturned)."""
    return letters[:-1] if letters else ""


def is_valid_letters(letters: str) -> bool:
    return SKATE.startswith(letters)


def next_eligible_index(players: list[Player], start_index: int) -> int | None:
    """
    Find the next seat that can take a turn.

    Starts just after start_index and wraps around. start_index itself
    is never returned.
    """
    count = len(players)
    if count == 0:
        return None
    for step in range(1, count):
        idx = (start_index + step) % count
        if players[idx].is_eligible:
            return idx
    return None


def surviving_players(players: list[Player]) -> list[Player]:
    return [p for p in players if not p.is_eliminated]


def standings(players: list[Player], exclude: str | None = None) -> list[Player]:
    """
    Remaining players, best first.

    Fewer letters ranks higher; seat order breaks ties.
    """
    ranked = [
        (len(p.letters), seat, p)
        for seat, p in enumerate(players)
        if not p.is_eliminated and p.player_id != exclude
    ]
    ranked.sort(key=lambda item: (item[0], item[1]))
    return [p for _, _, p in ranked]
