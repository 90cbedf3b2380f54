from dataclasses import dataclass

# Guesses within this many edits (but not exact) are reported as close
CLOSE_DISTANCE = 2


@dataclass(frozen=True)
class GuessResult:
    is_correct: bool
    is_close: bool
    distance: int

    def to_dict(self):
        return {
            'isCorrect': self.is_correct,
            'isClose': self.is_close,
            'distance': self.distance,
        }


def normalize(text) -> str:
    return (text or '').strip().lower()


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost insertion, deletion and substitution."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def evaluate_guess(guess, word) -> GuessResult:
    distance = levenshtein(normalize(guess), normalize(word))
    return GuessResult(
        is_correct=distance == 0,
        is_close=1 <= distance <= CLOSE_DISTANCE,
        distance=distance,
    )
