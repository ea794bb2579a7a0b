# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Laplace noise for every count that leaves the gate.

Exact counts let an admin diff two queries and learn that one specific
person contributed. Every participant count and theme count shown outside
the gate is therefore perturbed with Laplace noise of scale
``sensitivity / epsilon`` and rounded to a non-negative integer.

Noise is drawn fresh on every call. Caching a noised value per true count
would let repeated queries be averaged back to the exact count.

Two policy presets:
- participant counts: epsilon 0.5 (more noise; these are the most
  re-identifying numbers)
- theme counts: epsilon 0.8 (already aggregated across many threads)

The default random source is ``random.SystemRandom`` (os.urandom backed).
A seeded ``random.Random`` can be injected for tests.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Protocol

from ..core.config import get_config
from ..core.exceptions import InvalidEpsilonError, PrivacyConfigError

DEFAULT_SENSITIVITY = 1.0
PARTICIPANT_EPSILON = 0.5
THEME_EPSILON = 0.8


class RandomSource(Protocol):
    """Anything with a ``random()`` returning a float in [0, 1)."""

    def random(self) -> float: ...


_system_random = random.SystemRandom()


def validate_epsilon(epsilon: Any) -> float:
    """Return epsilon as a float, or fail closed.

    Raises:
        InvalidEpsilonError: If epsilon is not a positive finite number.
    """
    if isinstance(epsilon, bool) or not isinstance(epsilon, (int, float)):
        raise InvalidEpsilonError(epsilon)
    if not math.isfinite(epsilon) or epsilon <= 0:
        raise InvalidEpsilonError(epsilon)
    return float(epsilon)


def validate_sensitivity(sensitivity: Any) -> float:
    """Return sensitivity as a float, or fail closed."""
    if isinstance(sensitivity, bool) or not isinstance(sensitivity, (int, float)):
        raise PrivacyConfigError(f"sensitivity must be a positive number, got {sensitivity!r}")
    if not math.isfinite(sensitivity) or sensitivity <= 0:
        raise PrivacyConfigError(f"sensitivity must be a positive number, got {sensitivity!r}")
    return float(sensitivity)


def sample_laplace(scale: float, rng: RandomSource | None = None) -> float:
    """Sample Laplace(0, scale) by inverse-CDF.

    Draws ``u`` uniform on the open interval (-0.5, 0.5) and returns
    ``-scale * sign(u) * ln(1 - 2|u|)``.

    Args:
        scale: Laplace scale b (> 0)
        rng: Random source; defaults to SystemRandom

    Returns:
        One noise sample
    """
    source = rng or _system_random
    u = source.random() - 0.5
    # -0.5 would be ln(0); the interval is open
    while u == -0.5:
        u = source.random() - 0.5
    return -scale * math.copysign(1.0, u) * math.log(1 - 2 * abs(u))


def add_noise(
    true_count: int,
    sensitivity: float = DEFAULT_SENSITIVITY,
    *,
    epsilon: float,
    rng: RandomSource | None = None,
) -> int:
    """Add Laplace noise to a count for epsilon-differential privacy.

    Args:
        true_count: The true count (never exposed)
        sensitivity: How much one individual can change the count
        epsilon: Privacy parameter; smaller means more noise
        rng: Random source; defaults to SystemRandom

    Returns:
        ``max(0, round(true_count + noise))``

    Raises:
        InvalidEpsilonError: If epsilon is zero, negative or not finite.
        PrivacyConfigError: If sensitivity is not positive.
    """
    epsilon = validate_epsilon(epsilon)
    sensitivity = validate_sensitivity(sensitivity)
    scale = sensitivity / epsilon
    noised = round(true_count + sample_laplace(scale, rng))
    return max(0, int(noised))


@dataclass(frozen=True)
class NoisedCount:
    """A count that is safe to expose. The true count is not kept."""

    value: int
    epsilon: float
    sensitivity: float = DEFAULT_SENSITIVITY
    mechanism: str = "laplace"

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "privacy": {
                "mechanism": self.mechanism,
                "epsilon": self.epsilon,
                "sensitivity": self.sensitivity,
            },
        }


@dataclass(frozen=True)
class NoisePolicy:
    """A named epsilon/sensitivity preset."""

    name: str
    epsilon: float
    sensitivity: float = DEFAULT_SENSITIVITY

    def __post_init__(self) -> None:
        validate_epsilon(self.epsilon)
        validate_sensitivity(self.sensitivity)

    def apply(self, true_count: int, rng: RandomSource | None = None) -> NoisedCount:
        """Noise a count under this policy."""
        value = add_noise(true_count, self.sensitivity, epsilon=self.epsilon, rng=rng)
        return NoisedCount(value=value, epsilon=self.epsilon, sensitivity=self.sensitivity)

    @classmethod
    def participants(cls) -> NoisePolicy:
        """Participant count preset (epsilon from config, default 0.5)."""
        return cls(name="participants", epsilon=get_config().participant_epsilon)

    @classmethod
    def themes(cls) -> NoisePolicy:
        """Theme count preset (epsilon from config, default 0.8)."""
        return cls(name="themes", epsilon=get_config().theme_epsilon)


def add_noise_to_participant_count(count: int, rng: RandomSource | None = None) -> int:
    """Noise a participant count with the participant preset."""
    return NoisePolicy.participants().apply(count, rng).value


def add_noise_to_theme_count(count: int, rng: RandomSource | None = None) -> int:
    """Noise a theme count with the theme preset."""
    return NoisePolicy.themes().apply(count, rng).value
