"""Tests for reset profile definitions."""

import pytest

from firmata_scout.errors import UnknownProfileError
from firmata_scout.profiles import (
    Close,
    Open,
    SetControlLine,
    Wait,
    get_profile,
    list_profiles,
    profile_names,
)


class TestGetProfile:
    def test_case_insensitive(self):
        assert get_profile("mega") is get_profile("Mega")
        assert get_profile("esp8266").name == "ESP8266"

    def test_unknown_raises(self):
        with pytest.raises(UnknownProfileError) as exc_info:
            get_profile("teensy")
        assert "Standard" in exc_info.value.message


class TestListProfiles:
    def test_round_robin_order(self):
        assert profile_names() == ["Standard", "Mega", "Leonardo", "ESP8266"]
        assert [p.name for p in list_profiles()] == profile_names()


class TestHandshakeParameters:
    @pytest.mark.parametrize("name,attempts,delay", [
        ("Standard", 6, 150),
        ("Mega", 12, 200),
        ("Leonardo", 8, 100),
        ("ESP8266", 10, 150),
    ])
    def test_parameters(self, name, attempts, delay):
        profile = get_profile(name)
        assert profile.handshake_attempts == attempts
        assert profile.handshake_delay_ms == delay
        assert profile.handshake_budget_ms == attempts * delay


class TestResetSteps:
    def test_standard(self):
        assert get_profile("Standard").reset_steps == (Open(), Wait(2000))

    def test_mega(self):
        assert get_profile("Mega").reset_steps == (Open(), Wait(4500))

    def test_leonardo(self):
        assert get_profile("Leonardo").reset_steps == (
            Open(), Wait(100), Close(), Wait(1500), Open(), Wait(3000),
        )

    def test_esp8266_starts_with_lines_released(self):
        steps = get_profile("ESP8266").reset_steps
        assert steps[:3] == (SetControlLine("dtr", False), SetControlLine("rts", False), Open())

    def test_esp8266_pulses_dtr_then_rts(self):
        steps = get_profile("ESP8266").reset_steps
        toggles = [s for s in steps if isinstance(s, SetControlLine)][2:]
        assert toggles == [
            SetControlLine("dtr", True),
            SetControlLine("dtr", False),
            SetControlLine("rts", True),
            SetControlLine("rts", False),
        ]

    def test_esp8266_reopens(self):
        steps = get_profile("ESP8266").reset_steps
        assert steps[-4:] == (Close(), Wait(500), Open(), Wait(2000))
        assert Wait(1500) in steps

    def test_reset_duration(self):
        assert get_profile("Leonardo").reset_duration_ms == 4600
        assert get_profile("ESP8266").reset_duration_ms == 4400

    def test_profiles_are_immutable(self):
        profile = get_profile("Standard")
        with pytest.raises(AttributeError):
            profile.handshake_attempts = 99

    def test_unknown_control_line(self):
        with pytest.raises(ValueError):
            SetControlLine("cts", True)
