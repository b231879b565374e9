"""Random words for the scramble game, with a built-in fallback list."""

from __future__ import annotations

import logging
import random
import re

import httpx

log = logging.getLogger(__name__)

WORD_API_URL = "https://random-word-api.herokuapp.com/word"
MIN_WORDS = 10

_WORD_RE = re.compile(r"^[a-z]{4,8}$")

FALLBACK_WORDS = [
    "stream", "twitch", "gaming", "pixel", "score", "combo", "turbo", "quest",
    "ninja", "clutch", "hype", "glitch", "boost", "flame", "frost", "blade",
    "spark", "drift", "pulse", "orbit", "laser", "solar", "lunar", "cyber",
    "prism", "storm", "ocean", "tiger", "eagle", "ghost", "magic", "crown",
    "royal", "steel", "brave", "swift", "flash", "power", "blaze", "crisp",
    "dream", "light", "shade", "stone", "cloud", "river", "maple", "amber",
    "ivory", "coral", "raven", "delta", "nexus", "forge", "haven", "atlas",
    "titan", "noble",
]


def filter_words(words: list) -> list[str]:
    """Keep 4-8 letter, all-lowercase ASCII words."""
    return [w for w in words if isinstance(w, str) and _WORD_RE.match(w)]


def scramble_word(word: str, rng: random.Random | None = None, attempts: int = 20) -> str:
    """Shuffle the letters; retries so the result differs from *word* when it can."""
    r = rng or random
    letters = list(word)
    scrambled = word
    for _ in range(attempts):
        r.shuffle(letters)
        scrambled = "".join(letters)
        if scrambled != word:
            break
    return scrambled


async def fetch_words(
    amount: int = 50,
    *,
    timeout_s: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[str]:
    """Fetch and filter words; fewer than ``MIN_WORDS`` yields the fallback list."""
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            resp = await client.get(WORD_API_URL, params={"number": amount})
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        log.warning("word fetch failed (%s), using fallback list", e)
        return list(FALLBACK_WORDS)

    words = filter_words(data) if isinstance(data, list) else []
    if len(words) < MIN_WORDS:
        log.warning("word source returned %d usable words, using fallback list", len(words))
        return list(FALLBACK_WORDS)
    log.info("fetched %d words", len(words))
    return words
