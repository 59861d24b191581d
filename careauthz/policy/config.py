"""Engine configuration: durations that must come from the operator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .errors import ConfigurationError


@dataclass(frozen=True)
class PolicyConfig:
    """
    Durations that shape consent and break-glass behavior.

    Neither has a default; both must be supplied explicitly.

        consent_grace_period: how long after consent expiry access is still
            provisionally permitted. Zero disables the grace period.
        break_glass_max_duration: upper bound for any break-glass window.
    """

    consent_grace_period: timedelta
    break_glass_max_duration: timedelta

    def __post_init__(self) -> None:
        if self.consent_grace_period < timedelta(0):
            raise ConfigurationError("consent_grace_period must not be negative")
        if self.break_glass_max_duration <= timedelta(0):
            raise ConfigurationError("break_glass_max_duration must be positive")

    @classmethod
    def from_minutes(cls, consent_grace_minutes: int | None, break_glass_max_minutes: int | None) -> PolicyConfig:
        if consent_grace_minutes is None or break_glass_max_minutes is None:
            raise ConfigurationError("consent grace period and break-glass maximum duration must both be configured")
        return cls(
            consent_grace_period=timedelta(minutes=consent_grace_minutes),
            break_glass_max_duration=timedelta(minutes=break_glass_max_minutes),
        )
