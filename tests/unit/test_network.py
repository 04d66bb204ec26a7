"""Unit tests for catalogcache.network."""

from __future__ import annotations

import pytest

from catalogcache.config import NetworkSettings
from catalogcache.network import (
    DEFAULT_PROFILE,
    ConnectionSignal,
    NetworkQualityEstimator,
    classify,
    settings_signal,
)

# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    @pytest.mark.parametrize(
        ("effective_type", "quality", "batch"),
        [("4g", 80, 15), ("3g", 75, 8), ("2g", 70, 5), ("slow-2g", 65, 3)],
    )
    def test_known_connection_types(self, effective_type: str, quality: int, batch: int) -> None:
        profile = classify(ConnectionSignal(effective_type=effective_type))
        assert profile.image_quality == quality
        assert profile.batch_size == batch

    def test_no_signal_uses_defaults(self) -> None:
        assert classify(None) == DEFAULT_PROFILE
        assert DEFAULT_PROFILE.allow_high_bandwidth_assets is True

    def test_unknown_type_uses_default_numbers(self) -> None:
        profile = classify(ConnectionSignal(effective_type="5g"))
        assert profile.image_quality == 80
        assert profile.batch_size == 10

    def test_high_bandwidth_only_on_4g(self) -> None:
        assert classify(ConnectionSignal(effective_type="4g")).allow_high_bandwidth_assets
        assert not classify(ConnectionSignal(effective_type="3g")).allow_high_bandwidth_assets

    def test_save_data_disables_high_bandwidth(self) -> None:
        profile = classify(ConnectionSignal(effective_type="4g", save_data=True))
        assert not profile.allow_high_bandwidth_assets
        assert profile.batch_size == 15


# ---------------------------------------------------------------------------
# settings_signal
# ---------------------------------------------------------------------------


class TestSettingsSignal:
    def test_unset_reports_no_signal(self) -> None:
        assert settings_signal(NetworkSettings())() is None

    def test_configured_type(self) -> None:
        signal = settings_signal(NetworkSettings(effective_type="3g"))()
        assert signal == ConnectionSignal(effective_type="3g", save_data=False)


# ---------------------------------------------------------------------------
# NetworkQualityEstimator
# ---------------------------------------------------------------------------


class _Signals:
    def __init__(self, signal: ConnectionSignal | None) -> None:
        self.signal = signal
        self.reads = 0

    def __call__(self) -> ConnectionSignal | None:
        self.reads += 1
        return self.signal


class TestNetworkQualityEstimator:
    def test_without_source_returns_default(self) -> None:
        assert NetworkQualityEstimator().estimate() == DEFAULT_PROFILE

    def test_profile_held_for_refresh_interval(self) -> None:
        now = [100.0]
        signals = _Signals(ConnectionSignal(effective_type="4g"))
        estimator = NetworkQualityEstimator(signals, refresh_interval=30, clock=lambda: now[0])

        first = estimator.estimate()
        signals.signal = ConnectionSignal(effective_type="2g")
        now[0] += 29
        assert estimator.estimate() == first
        assert signals.reads == 1

        now[0] += 1
        assert estimator.estimate().batch_size == 5
        assert signals.reads == 2

    def test_invalidate_forces_reread(self) -> None:
        signals = _Signals(ConnectionSignal(effective_type="4g"))
        estimator = NetworkQualityEstimator(signals, clock=lambda: 100.0)
        estimator.estimate()
        signals.signal = ConnectionSignal(effective_type="slow-2g")

        estimator.invalidate()

        assert estimator.estimate().image_quality == 65
