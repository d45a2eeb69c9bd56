"""Game domain services: validation, scoring, phases, rounds.

This package contains the game rules and the session facade that HTTP
routes and socket handlers call, keeping transport concerns separated
from core game mechanics.
"""
