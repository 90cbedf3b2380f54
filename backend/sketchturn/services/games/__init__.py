"""Game domain services: guess matching, rotation, scoring, words and rooms.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics. Only `rooms` touches the database.
"""
