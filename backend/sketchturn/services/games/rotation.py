"""Drawer rotation: who draws, in what order, and when the game ends."""
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class TurnAdvance:
    next_index: int
    next_round: int
    is_new_round: bool
    next_drawer: Optional[str]
    is_game_over: bool


def _unique_ids(players) -> List[str]:
    seen = set()
    ids = []
    for p in players or []:
        pid = p.get('id')
        if not pid or pid in seen:
            continue
        seen.add(pid)
        ids.append(pid)
    return ids


def team_buckets(players) -> dict:
    """Group player ids by team label, preserving first-seen team order."""
    buckets: dict = {}
    seen = set()
    for p in players or []:
        pid = p.get('id')
        team = p.get('team')
        if not pid or pid in seen or not team:
            continue
        seen.add(pid)
        buckets.setdefault(team, []).append(pid)
    return buckets


def build_turn_order(players, is_team_game: bool, host_id: Optional[str] = None) -> List[str]:
    """Return the fixed drawer order for a session.

    Individual mode puts the host first, then everyone else in join order.
    Team mode interleaves teams by position (A1, B1, A2, B2, ...) and skips a
    team once it runs out of members. Team mode with fewer than two populated
    teams falls back to join order.
    """
    ids = _unique_ids(players)
    if is_team_game:
        buckets = team_buckets(players)
        if len(buckets) >= 2:
            order = []
            depth = max(len(members) for members in buckets.values())
            for position in range(depth):
                for members in buckets.values():
                    if position < len(members):
                        order.append(members[position])
            # Players without a team still get a turn, after the teams
            order.extend(pid for pid in ids if pid not in order)
            return order
        return ids

    if host_id and host_id in ids:
        return [host_id] + [pid for pid in ids if pid != host_id]
    return ids


def next_turn(turn_order: List[str], current_index: int, current_round: int, total_rounds: int) -> TurnAdvance:
    if not turn_order:
        raise ValueError('turn_order must not be empty')
    next_index = (current_index + 1) % len(turn_order)
    is_new_round = next_index == 0
    next_round = current_round + (1 if is_new_round else 0)
    is_game_over = next_round > total_rounds
    return TurnAdvance(
        next_index=next_index,
        next_round=next_round,
        is_new_round=is_new_round,
        next_drawer=None if is_game_over else turn_order[next_index],
        is_game_over=is_game_over,
    )


def progress(turn_order: List[str], current_round: int, current_index: int, total_rounds: int) -> dict:
    """Turns completed (including the one just finished) out of the total."""
    per_round = len(turn_order)
    return {
        'completedTurns': (current_round - 1) * per_round + current_index + 1,
        'totalTurns': total_rounds * per_round,
    }
