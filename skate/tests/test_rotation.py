"""
Tests for turn rotation, letters and standings.
"""

from ..engine_core.rotation import (
    is_valid_letters,
    next_eligible_index,
    next_letters,
    previous_letters,
    standings,
    surviving_players,
)
from ..engine_core.state import SKATE, Player


class TestLetters:
    """Letter accrual along S-K-A-T-E."""

    def test_letters_accrue_in_order(self):
        letters = ""
        seen = []
        for _ in range(5):
            letters = next_letters(letters)
            seen.append(letters)
        assert seen == ["S", "SK", "SKA", "SKAT", "SKATE"]

    def test_letters_saturate(self):
        assert next_letters(SKATE) == SKATE

    def test_previous_letters(self):
        assert previous_letters("SKA") == "SK"
        assert previous_letters("") == ""

    def test_valid_letters_are_prefixes(self):
        assert is_valid_letters("")
        assert is_valid_letters("SKAT")
        assert not is_valid_letters("KS")
        assert not is_valid_letters("SKATES")

    def test_letters_monotonic(self):
        """Each step only ever appends and stays a prefix of SKATE."""
        letters = ""
        for _ in range(8):
            updated = next_letters(letters)
            assert updated.startswith(letters)
            assert is_valid_letters(updated)
            letters = updated


class TestNextEligibleIndex:
    """Circular walk skipping eliminated and disconnected players."""

    def test_wraps_around(self):
        players = [Player("a"), Player("b"), Player("c")]
        assert next_eligible_index(players, 0) == 1
        assert next_eligible_index(players, 2) == 0

    def test_skips_eliminated(self):
        players = [Player("a"), Player("b", letters=SKATE), Player("c")]
        assert next_eligible_index(players, 0) == 2

    def test_skips_disconnected(self):
        players = [Player("a"), Player("b", connected=False), Player("c")]
        assert next_eligible_index(players, 0) == 2

    def test_never_returns_start(self):
        players = [Player("a"), Player("b", letters=SKATE)]
        assert next_eligible_index(players, 0) is None

    def test_empty_roster(self):
        assert next_eligible_index([], 0) is None


class TestStandings:
    """Ranking used to pick a forfeit winner."""

    def test_fewest_letters_first(self):
        players = [Player("a", letters="SK"), Player("b", letters="S"), Player("c")]
        assert [p.player_id for p in standings(players)] == ["c", "b", "a"]

    def test_seat_order_breaks_ties(self):
        players = [Player("a", letters="S"), Player("b", letters="S")]
        assert [p.player_id for p in standings(players)] == ["a", "b"]

    def test_excludes_player_and_eliminated(self):
        players = [Player("a"), Player("b", letters=SKATE), Player("c", letters="S")]
        assert [p.player_id for p in standings(players, exclude="a")] == ["c"]

    def test_surviving_players(self):
        players = [Player("a"), Player("b", letters=SKATE)]
        assert [p.player_id for p in surviving_players(players)] == ["a"]
