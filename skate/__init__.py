"""
Skate - Game of S.K.A.T.E. and video battle engine

A deterministic engine for turn-based S.K.A.T.E. games and two-party
video battles. It provides:
- Pure, idempotent state transitions for games and battle votes
- Transactional stores (in-memory and SQL)
- Services that apply commands and deliver notifications
- A timeout sweeper, a REST API and a CLI
"""

__version__ = "0.1.0"
