import json
import os
import random
from typing import Iterable, List, Optional

DEFAULT_THEME = 'default'
PACKAGED_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'wordbank')

# Last resort when no word list can be read at all
BUILTIN_WORDS = ['apple', 'house', 'cat', 'tree', 'car', 'sun', 'fish', 'boat', 'star', 'flower']


def _read_theme(directory: str, theme: str) -> Optional[List[str]]:
    path = os.path.join(directory, f'{theme}.json')
    try:
        with open(path, encoding='utf-8') as fh:
            words = json.load(fh)
    except (OSError, ValueError):
        return None
    if not isinstance(words, list):
        return None
    cleaned = [w.strip() for w in words if isinstance(w, str) and w.strip()]
    return cleaned or None


def load_words(theme: Optional[str], directory: Optional[str] = None) -> List[str]:
    """Words for a theme, falling back to the default list, then the built-in list."""
    directory = directory or PACKAGED_DIR
    requested = (theme or DEFAULT_THEME).strip() or DEFAULT_THEME
    for candidate in (requested, DEFAULT_THEME):
        # Theme names become file names; only accept plain identifiers
        if not candidate.replace('_', '').isalnum():
            continue
        words = _read_theme(directory, candidate)
        if words:
            return words
    return list(BUILTIN_WORDS)


def pick_options(words: List[str], used_words: Iterable[str], count: int = 3,
                 max_length: Optional[int] = None, rng: Optional[random.Random] = None) -> List[str]:
    """Pick `count` distinct options, preferring words not used yet this session.

    Used words are only re-offered when the unused pool is too small. A
    max_length filter is ignored if it would leave too few candidates.
    """
    rng = rng or random
    pool = list(dict.fromkeys(words))
    if max_length:
        short = [w for w in pool if len(w) <= max_length]
        if len(short) >= count:
            pool = short
    used = set(used_words or [])
    fresh = [w for w in pool if w not in used]
    if len(fresh) >= count:
        return rng.sample(fresh, count)

    options = rng.sample(fresh, len(fresh))
    recycled = [w for w in pool if w in used]
    rng.shuffle(recycled)
    options.extend(recycled[:count - len(options)])
    if len(options) < count:
        extra = [w for w in BUILTIN_WORDS if w not in options]
        options.extend(extra[:count - len(options)])
    return options
