from __future__ import annotations

import random


FALLBACK_TEXTS: dict[str, list[str]] = {
    "quotes": [
        "The only way to do great work is to love what you do.",
        "In the middle of every difficulty lies opportunity.",
        "Simplicity is the ultimate sophistication, and patience is its quiet partner.",
    ],
    "code": [
        "for item in items: total += item.price * item.quantity",
        "def greet(name): return f'Hello, {name}!' if name else 'Hello, stranger!'",
    ],
    "facts": [
        "Capybaras are the largest rodents in the world and love to relax in warm water.",
        "Honey never spoils; jars found in ancient tombs were still perfectly edible.",
    ],
    "stories": [
        "The capybara waded into the hot spring, closed its eyes, and let the world drift by.",
        "At dawn the little boat slipped out of the harbour, its sail bright against the grey sea.",
    ],
    "technical": [
        "A hash map stores keys and values, giving constant time lookups on average.",
        "Latency is the delay before a transfer of data begins following an instruction.",
    ],
    "literature": [
        "It was the best of times, it was the worst of times, it was the age of wisdom.",
        "All happy families are alike; each unhappy family is unhappy in its own way.",
    ],
}

_WORD_LIMITS = {"easy": 12, "medium": 20, "hard": None}


def pick_text(category: str | None = None, difficulty: str | None = None) -> str:
    """Choose a passage when the host did not supply one."""
    if category in FALLBACK_TEXTS:
        pool = FALLBACK_TEXTS[category]
    else:
        pool = [t for texts in FALLBACK_TEXTS.values() for t in texts]

    limit = _WORD_LIMITS.get(difficulty or "")
    if limit:
        short = [t for t in pool if len(t.split()) <= limit]
        pool = short or pool

    return random.choice(pool)
