"""Tests for the telemetry generator."""

import random

import pytest

from chargesim.config import SimulatorConfig
from chargesim.models import PhysicalState
from chargesim.telemetry import GeneratorError, TelemetryGenerator


def run_ticks(generator, state, count):
    states = [state]
    for _ in range(count):
        states.append(generator.next(states[-1]))
    return states


class TestTelemetryGenerator:
    """Physical plausibility of generated samples."""

    def test_current_is_derived_from_power_and_voltage(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        for state in run_ticks(generator, config.initial_state(), 200)[1:]:
            assert state.current_a == state.power_w / state.voltage_v

    def test_soc_non_decreasing_and_capped_at_target(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        states = run_ticks(generator, config.initial_state(), 200)
        for prev, nxt in zip(states, states[1:]):
            assert nxt.soc >= prev.soc
            assert nxt.soc <= config.target_soc
        assert states[-1].soc == config.target_soc

    def test_soc_step_within_range(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        state = generator.next(config.initial_state())
        assert 21.0 <= state.soc <= 22.0

    def test_temperature_non_decreasing(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        states = run_ticks(generator, config.initial_state(), 100)
        for prev, nxt in zip(states, states[1:]):
            assert nxt.temp_c >= prev.temp_c
            assert nxt.temp_c - prev.temp_c <= config.temp_step_max

    def test_voltage_within_band(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        for state in run_ticks(generator, config.initial_state(), 100)[1:]:
            assert config.voltage_min <= state.voltage_v <= config.voltage_max

    def test_power_full_below_taper_point(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        state = generator.next(config.initial_state())
        assert 0.9 * config.max_power_w <= state.power_w <= 1.1 * config.max_power_w

    def test_power_tapers_near_target(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        full = PhysicalState(soc=89.5, power_w=0, voltage_v=400, current_a=0, temp_c=30)
        state = generator.next(full)
        # 1 - (0.9 - 0.6) * 1.5 = 0.55 of rated power, +/- 10% noise
        assert 0.55 * 0.9 * config.max_power_w <= state.power_w <= 0.55 * 1.1 * config.max_power_w

    @pytest.mark.parametrize(
        ("soc", "expected"),
        [
            (20.0, 1.0),
            (60.0, 1.0),
            (80.0, 0.7),
            (100.0, 0.4),
        ],
    )
    def test_taper_factor(self, config, soc, expected):
        generator = TelemetryGenerator(config, random.Random(0))
        assert generator.taper_factor(soc) == pytest.approx(expected)

    def test_taper_factor_floored(self):
        config = SimulatorConfig(taper_steepness=10.0)
        generator = TelemetryGenerator(config, random.Random(0))
        assert generator.taper_factor(95.0) == config.min_power_fraction

    def test_same_seed_same_sequence(self, config):
        a = run_ticks(TelemetryGenerator(config, random.Random(7)), config.initial_state(), 20)
        b = run_ticks(TelemetryGenerator(config, random.Random(7)), config.initial_state(), 20)
        assert a == b

    def test_next_returns_new_state(self, config, rng):
        generator = TelemetryGenerator(config, rng)
        initial = config.initial_state()
        nxt = generator.next(initial)
        assert nxt is not initial
        assert initial == config.initial_state()


class TestVoltageGuard:
    """A voltage band reaching zero must fail fast."""

    def test_band_including_zero_rejected(self):
        config = SimulatorConfig(voltage_min=0.0, voltage_max=420.0)
        with pytest.raises(GeneratorError):
            TelemetryGenerator(config, random.Random(0))

    def test_negative_band_rejected(self):
        config = SimulatorConfig(voltage_min=-10.0, voltage_max=10.0)
        with pytest.raises(GeneratorError):
            TelemetryGenerator(config, random.Random(0))

    def test_zero_sample_raises_instead_of_infinite_current(self, config):
        rng = random.Random(0)
        generator = TelemetryGenerator(config, rng)
        # Band changed after construction: every voltage sample is 0
        config.voltage_min = 0.0
        config.voltage_max = 0.0
        with pytest.raises(GeneratorError):
            generator.next(config.initial_state())

    def test_near_zero_band_raises_instead_of_infinite_current(self):
        config = SimulatorConfig(voltage_min=1e-320, voltage_max=1e-320)
        generator = TelemetryGenerator(config, random.Random(0))
        with pytest.raises(GeneratorError, match="not finite"):
            generator.next(config.initial_state())
