"""Connection-quality classification.

A pure classifier over an ambient connection signal: no network calls are
made here. The derived profile is held for ``refresh_interval`` seconds so
that repeated renders see a stable value instead of flickering between
qualities; callers that need one value for the lifetime of a rendered unit
should call ``estimate()`` once and keep the result.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from catalogcache.config import NetworkSettings
    from catalogcache.freshness import Clock

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ConnectionSignal:
    effective_type: str | None = None  # "slow-2g" | "2g" | "3g" | "4g"
    save_data: bool = False


@dataclass(frozen=True, slots=True)
class QualityProfile:
    image_quality: int
    batch_size: int
    allow_high_bandwidth_assets: bool


SignalSource = Callable[[], ConnectionSignal | None]

DEFAULT_PROFILE = QualityProfile(image_quality=80, batch_size=10, allow_high_bandwidth_assets=True)

_IMAGE_QUALITY = {"4g": 80, "3g": 75, "2g": 70, "slow-2g": 65}
_BATCH_SIZE = {"4g": 15, "3g": 8, "2g": 5, "slow-2g": 3}


def classify(signal: ConnectionSignal | None) -> QualityProfile:
    if signal is None:
        return DEFAULT_PROFILE
    effective_type = signal.effective_type or ""
    return QualityProfile(
        image_quality=_IMAGE_QUALITY.get(effective_type, DEFAULT_PROFILE.image_quality),
        batch_size=_BATCH_SIZE.get(effective_type, DEFAULT_PROFILE.batch_size),
        allow_high_bandwidth_assets=not signal.save_data and effective_type == "4g",
    )


def settings_signal(settings: NetworkSettings) -> SignalSource:
    """Signal source backed by configuration (CATALOGCACHE__NETWORK__EFFECTIVE_TYPE=3g)."""

    def read() -> ConnectionSignal | None:
        if settings.effective_type is None and not settings.save_data:
            return None
        return ConnectionSignal(
            effective_type=settings.effective_type, save_data=settings.save_data
        )

    return read


class NetworkQualityEstimator:
    def __init__(
        self,
        source: SignalSource | None = None,
        *,
        refresh_interval: float = 30.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._source = source
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._cached: QualityProfile | None = None
        self._checked_at = 0.0

    def estimate(self) -> QualityProfile:
        now = self._clock()
        if self._cached is not None and now - self._checked_at < self._refresh_interval:
            return self._cached

        signal = self._source() if self._source is not None else None
        profile = classify(signal)
        if profile != self._cached:
            log.debug(
                "network_profile_changed",
                effective_type=signal.effective_type if signal else None,
                image_quality=profile.image_quality,
                batch_size=profile.batch_size,
            )
        self._cached = profile
        self._checked_at = now
        return profile

    def invalidate(self) -> None:
        """Force the next ``estimate()`` to re-read the signal."""
        self._cached = None
        self._checked_at = 0.0
