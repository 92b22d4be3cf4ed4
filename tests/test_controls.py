"""Tests for beestats.controls and beestats.telemetry.sharing."""

import pytest

from beestats.controls import ControlMailbox
from beestats.telemetry.sharing import (
    MAX_CONFIG_BYTES,
    ConfigTooLarge,
    encode_payload,
    generate_key,
    valid_key,
)


class TestControlMailbox:
    def test_trims_to_latest(self):
        box = ControlMailbox(max_commands=100)
        for i in range(120):
            queued = box.push_commands("u", [{"n": i}], now=i)
        assert queued == 100
        cmds = box.drain("u")
        assert cmds[0] == {"n": 20, "at": 20}
        assert cmds[-1] == {"n": 119, "at": 119}
        assert box.drain("u") == []

    def test_commands_are_copied(self):
        box = ControlMailbox()
        original = {"command": "go"}
        box.push_commands("u", [original], now=5)
        assert original == {"command": "go"}

    def test_state_per_user(self):
        box = ControlMailbox()
        box.set_state("a", "running", at=10)
        assert box.get_state("a", now=99) == {"state": "running", "at": 10}
        assert box.get_state("b", now=99) == {"state": None, "at": 99}


class TestSharing:
    def test_generated_keys_match_pattern(self):
        for _ in range(50):
            assert valid_key(generate_key())

    @pytest.mark.parametrize("key", ["ABCDEFGHIJ", "A-B-C-[1]-23", "Z" * 32])
    def test_valid(self, key):
        assert valid_key(key)

    @pytest.mark.parametrize("key", [None, 12, "short", "lowercase-key", "Z" * 33, "ABCDEFGHIJ\n", "ABC DEF GHI"])
    def test_invalid(self, key):
        assert not valid_key(key)

    def test_size_bound(self):
        assert encode_payload({"a": 1}) == '{"a":1}'
        with pytest.raises(ConfigTooLarge):
            encode_payload({"blob": "x" * MAX_CONFIG_BYTES})
