"""Tests for Laplace count noise."""

from __future__ import annotations

import math
import random
import statistics

import pytest

from murmur.core.exceptions import InvalidEpsilonError, PrivacyConfigError
from murmur.privacy.noise import (
    PARTICIPANT_EPSILON,
    THEME_EPSILON,
    NoisedCount,
    NoisePolicy,
    add_noise,
    add_noise_to_participant_count,
    add_noise_to_theme_count,
    sample_laplace,
    validate_epsilon,
)


class FixedRandom:
    """Returns queued values from random()."""

    def __init__(self, *values: float):
        self.values = list(values)

    def random(self) -> float:
        return self.values.pop(0)


class TestSampleLaplace:
    def test_midpoint_is_zero(self):
        assert sample_laplace(2.0, FixedRandom(0.5)) == 0.0

    def test_inverse_cdf(self):
        # u = 0.25 -> -b * ln(1 - 0.5) = b * ln 2
        assert sample_laplace(2.0, FixedRandom(0.75)) == pytest.approx(2.0 * math.log(2))
        assert sample_laplace(2.0, FixedRandom(0.25)) == pytest.approx(-2.0 * math.log(2))

    def test_resamples_at_open_boundary(self):
        assert sample_laplace(1.0, FixedRandom(0.0, 0.5)) == 0.0

    def test_sample_spread_matches_scale(self):
        rng = random.Random(42)
        samples = [sample_laplace(2.0, rng) for _ in range(20000)]
        # Laplace(0, b) has variance 2b^2
        assert statistics.fmean(samples) == pytest.approx(0.0, abs=0.1)
        assert statistics.pvariance(samples) == pytest.approx(8.0, rel=0.1)


class TestAddNoise:
    """Test noised count properties."""

    def test_never_negative(self, rng):
        assert all(add_noise(0, epsilon=0.5, rng=rng) >= 0 for _ in range(1000))

    def test_returns_int(self, rng):
        assert isinstance(add_noise(10, epsilon=0.5, rng=rng), int)

    def test_centered_on_true_count(self, rng):
        samples = [add_noise(100, epsilon=0.5, rng=rng) for _ in range(1000)]
        assert statistics.fmean(samples) == pytest.approx(100, abs=0.5)

    def test_smaller_epsilon_means_more_noise(self):
        rng = random.Random(99)
        participant = [add_noise(100, epsilon=PARTICIPANT_EPSILON, rng=rng) for _ in range(1000)]
        theme = [add_noise(100, epsilon=THEME_EPSILON, rng=rng) for _ in range(1000)]
        assert statistics.pstdev(participant) > statistics.pstdev(theme)

    def test_fresh_noise_per_call(self, rng):
        samples = {add_noise(100, epsilon=0.5, rng=rng) for _ in range(50)}
        assert len(samples) > 1

    def test_default_source_is_system_random(self):
        assert add_noise(100, epsilon=0.5) >= 0

    @pytest.mark.parametrize("epsilon", [0, -0.5, float("inf"), float("nan"), "0.5", True])
    def test_invalid_epsilon_fails_closed(self, epsilon):
        with pytest.raises(InvalidEpsilonError):
            add_noise(10, epsilon=epsilon)

    @pytest.mark.parametrize("sensitivity", [0, -1])
    def test_invalid_sensitivity(self, sensitivity):
        with pytest.raises(PrivacyConfigError):
            add_noise(10, sensitivity, epsilon=0.5)


class TestNoisePolicy:
    def test_presets_read_config(self, clean_env):
        assert NoisePolicy.participants().epsilon == 0.5
        assert NoisePolicy.themes().epsilon == 0.8

    def test_presets_follow_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("MURMUR_PARTICIPANT_EPSILON", "0.1")
        assert NoisePolicy.participants().epsilon == 0.1

    def test_invalid_policy_rejected(self):
        with pytest.raises(InvalidEpsilonError):
            NoisePolicy(name="bad", epsilon=0)

    def test_apply_returns_noised_count(self, rng):
        noised = NoisePolicy(name="p", epsilon=0.5).apply(10, rng)
        assert isinstance(noised, NoisedCount)
        assert noised.to_dict()["privacy"] == {"mechanism": "laplace", "epsilon": 0.5, "sensitivity": 1.0}

    def test_convenience_helpers(self, rng):
        assert add_noise_to_participant_count(10, rng) >= 0
        assert add_noise_to_theme_count(10, rng) >= 0


class TestValidateEpsilon:
    def test_int_accepted(self):
        assert validate_epsilon(1) == 1.0
