"""Device description to reset profile matching."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Resolution:
    profile: str
    attempts: int


# (tokens, profile, attempts), first match wins.
_RULES: tuple[tuple[tuple[str, ...], str, int], ...] = (
    (("mega",), "Mega", 3),
    (("leonardo",), "Leonardo", 3),
    (("esp8266", "esp32"), "ESP8266", 3),
    (("nano", "uno"), "Standard", 2),
)


def resolve(description: str | None) -> Resolution | None:
    """Map a free-text device description to a profile and attempt budget.

    Returns None when nothing matches; callers fall back to round-robin.
    """
    if not description:
        return None
    lower = description.lower()
    for tokens, profile, attempts in _RULES:
        if any(token in lower for token in tokens):
            return Resolution(profile=profile, attempts=attempts)
    return None
