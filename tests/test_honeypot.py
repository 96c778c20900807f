from __future__ import annotations

from core.config import HONEYPOT_MARKERS, EngineConfig
from engine.honeypot import HoneypotHeuristic


class FakeClient:
    def __init__(self, code=b"", error=None):
        self.code = code
        self.error = error

    def get_code(self, address):
        if self.error:
            raise self.error
        return self.code


def test_plain_bytecode_is_not_flagged():
    assert not HoneypotHeuristic(FakeClient(b"\x60\x80\x60\x40" * 100)).looks_risky("0xtoken")


def test_oversized_bytecode_is_flagged():
    assert HoneypotHeuristic(FakeClient(b"\x00" * 25_000)).looks_risky("0xtoken")
    assert not HoneypotHeuristic(FakeClient(b"\x00" * 24_999)).looks_risky("0xtoken")


def test_all_markers_required_case_insensitive():
    assert HoneypotHeuristic(FakeClient(b"..Owner..BLACKLIST..swap..")).looks_risky("0xtoken")
    assert not HoneypotHeuristic(FakeClient(b"..owner..swap..")).looks_risky("0xtoken")


def test_read_failure_is_not_flagged():
    assert not HoneypotHeuristic(FakeClient(error=ConnectionError("down"))).looks_risky("0xtoken")


def test_custom_limit_and_markers():
    h = HoneypotHeuristic(FakeClient(b"pause" + b"\x00" * 50), code_size_limit=100, markers=(b"PAUSE",))
    assert h.looks_risky("0xtoken")


def test_engine_config_uses_the_same_default_markers():
    assert EngineConfig.for_chain(56).honeypot_markers == HONEYPOT_MARKERS
    assert HoneypotHeuristic(FakeClient()).markers == HONEYPOT_MARKERS
