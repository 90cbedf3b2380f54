import math
from typing import Dict, Optional, Tuple

# Guesser points are always measured against this window, whatever the
# room's drawing time is.
SCORING_WINDOW_SEC = 60
GUESSER_MAX_POINTS = 100
DRAWER_POOL_POINTS = 50


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def guesser_points(time_taken, max_time=SCORING_WINDOW_SEC) -> int:
    if max_time <= 0:
        return 0
    fraction = max(0.0, (max_time - float(time_taken or 0)) / max_time)
    return _round_half_up(GUESSER_MAX_POINTS * fraction)


def drawer_points(correct_guess_count: int, total_players: int) -> int:
    if total_players <= 1:
        return 0
    return _round_half_up(DRAWER_POOL_POINTS * correct_guess_count / (total_players - 1))


def score_round(drawer_id: str, player_scores: list) -> dict:
    """Apply scoring for one finished turn.

    Each correct guesser earns time-based points; the drawer earns a share of
    the drawer pool proportional to how many eligible guessers got it. Totals
    are previous scores plus this turn's points.
    """
    previous: Dict[str, int] = {}
    round_scores: Dict[str, int] = {}
    correct_guesses = []
    for entry in player_scores:
        pid = entry['playerId']
        previous[pid] = int(entry.get('score') or 0)
        round_scores.setdefault(pid, 0)
        if pid == drawer_id or not entry.get('guessedCorrectly'):
            continue
        time_taken = entry.get('timeTaken') or 0
        points = guesser_points(time_taken)
        round_scores[pid] = points
        correct_guesses.append({
            'playerId': pid,
            'playerName': entry.get('playerName'),
            'timeTaken': time_taken,
            'points': points,
        })

    previous.setdefault(drawer_id, 0)
    total_players = len(set(previous) | {drawer_id})
    round_scores[drawer_id] = drawer_points(len(correct_guesses), total_players)

    totals = {pid: previous[pid] + round_scores.get(pid, 0) for pid in previous}
    return {
        'roundScores': round_scores,
        'scores': totals,
        'correctGuesses': correct_guesses,
    }


def team_totals(final_scores: Dict[str, int], teams: Dict[str, str]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for pid, team in teams.items():
        if not team:
            continue
        totals[team] = totals.get(team, 0) + int(final_scores.get(pid, 0))
    return totals


def _top(scores: Dict[str, int]) -> Tuple[Optional[str], bool]:
    if not scores:
        return None, False
    best = max(scores.values())
    leaders = [key for key, value in scores.items() if value == best]
    return leaders[0], len(leaders) > 1


def pick_winner(final_scores: Dict[str, int], team_scores: Optional[Dict[str, int]] = None) -> Tuple[Optional[str], str]:
    """Return (winner, winner_type). winner_type is team, player, tie or none."""
    if team_scores:
        leader, tied = _top(team_scores)
        if tied:
            return None, 'tie'
        return leader, 'team'
    leader, tied = _top(final_scores)
    if leader is None:
        return None, 'none'
    if tied:
        return None, 'tie'
    return leader, 'player'
