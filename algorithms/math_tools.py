import math


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0

    @staticmethod
    def clamp(value: int, min_value: int, max_value: int) -> int:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves rounded up.

        Infinite and NaN values have no integer counterpart and yield ``0``.
        """
        if not math.isfinite(value):
            return 0
        return int(math.floor(value + 0.5))

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> int:
        """Return the estimated one-rep max using the Epley formula.

        Sets without load or without repetitions have no estimate and
        yield ``0``.
        """
        if weight <= 0 or reps <= 0:
            return 0
        return cls.round_half_up(weight * (1 + reps / cls.EPLEY_DIVISOR))

    @staticmethod
    def volume(sets: list[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol if math.isfinite(vol) else 0.0

    @classmethod
    def density(cls, volume: float, duration_seconds: float) -> int:
        """Return volume lifted per minute of training."""
        minutes = duration_seconds / 60
        if minutes <= 0:
            return 0
        return cls.round_half_up(volume / minutes)

    @classmethod
    def percentage(cls, part: float, total: float) -> int:
        """Return ``part`` as a whole percentage of ``total``."""
        if total <= 0:
            return 0
        return cls.round_half_up(part / total * 100)
