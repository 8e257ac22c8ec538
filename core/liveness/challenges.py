"""Catalog of liveness challenges handed to the user before a scan is accepted."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Tuple

BLINK = "blink"
HEAD_LEFT = "head_left"
SMILE = "smile"

CHALLENGE_TYPES = (BLINK, HEAD_LEFT, SMILE)


@dataclass(frozen=True)
class Challenge:
    id: str
    type: str
    label: str
    required_count: int = 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "required_count": self.required_count,
        }


CHALLENGES: Tuple[Challenge, ...] = (
    Challenge(id="blink", type=BLINK, label="Blink Twice", required_count=2),
    Challenge(id="head_left", type=HEAD_LEFT, label="Turn Head Left", required_count=1),
    Challenge(id="smile", type=SMILE, label="Smile", required_count=1),
)


def get_random_challenge(rng: Optional[random.Random] = None) -> Challenge:
    """Pick a challenge uniformly at random."""
    chooser = rng or random
    return chooser.choice(CHALLENGES)


def get_challenge(key: str) -> Challenge:
    """Look a challenge up by id or type. Raises KeyError when unknown."""
    for challenge in CHALLENGES:
        if key in (challenge.id, challenge.type):
            return challenge
    raise KeyError(key)
