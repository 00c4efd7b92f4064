"""Tests for protocol_classifier — first-match DEX attribution."""

from __future__ import annotations

from holder_tracker.constants import PROTOCOL_REGISTRY
from holder_tracker.protocol_classifier import collect_participants, identify_protocol

JUPITER = "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB"
RAYDIUM = "EhhTKYdzFi7VrUfto5fMgDpmeJK7Fznv97kk8YvXNkmB"
ORCA = "82yxjeMs8Tz3bXjQ58vByb6Q9FYc8kKa3nLJN6y3o5qN"


class TestCollectParticipants:

    def test_account_keys_and_inner_program_ids(self, build_tx):
        tx = build_tx(
            account_keys=["Payer", "Acc1"],
            inner=[{"index": 0, "instructions": [{"programId": ORCA}, {"programId": None}]}],
        )
        assert collect_participants(tx) == {"Payer", "Acc1", ORCA}

    def test_plain_string_account_keys(self):
        tx = {"transaction": {"message": {"accountKeys": ["A", "B"]}}, "meta": None}
        assert collect_participants(tx) == {"A", "B"}


class TestIdentifyProtocol:

    def test_top_level_match(self, build_tx):
        tx = build_tx(account_keys=["Payer", JUPITER])
        assert identify_protocol(tx) == "jupiter"

    def test_inner_instruction_match(self, build_tx):
        tx = build_tx(
            account_keys=["Payer"],
            inner=[{"index": 1, "instructions": [{"programId": RAYDIUM}]}],
        )
        assert identify_protocol(tx) == "raydium"

    def test_no_match_is_unknown(self, build_tx):
        tx = build_tx(account_keys=["Payer", "SomeOtherProgram"])
        assert identify_protocol(tx) == "unknown"

    def test_none_tx_is_unknown(self):
        assert identify_protocol(None) == "unknown"

    def test_first_registry_entry_wins(self, build_tx):
        """Jupiter routes through Orca: registry order decides."""
        tx = build_tx(
            account_keys=["Payer", ORCA],
            inner=[{"index": 0, "instructions": [{"programId": JUPITER}]}],
        )
        assert list(PROTOCOL_REGISTRY)[0] == "jupiter"
        assert identify_protocol(tx) == "jupiter"

    def test_custom_registry_order_is_respected(self, build_tx):
        tx = build_tx(account_keys=["A", "B"])
        assert identify_protocol(tx, {"first": ("B",), "second": ("A",)}) == "first"
        assert identify_protocol(tx, {"second": ("A",), "first": ("B",)}) == "second"

    def test_deterministic_across_calls(self, build_tx):
        tx = build_tx(account_keys=[ORCA, RAYDIUM])
        assert {identify_protocol(tx) for _ in range(20)} == {"raydium"}
