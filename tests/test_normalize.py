"""Raw contract log -> DomainEvent."""

from decimal import Decimal

from conftest import ALICE, bet_log, win_log

from predpoints.ingestion.normalize import (
    BET_PLACED_TOPIC,
    WINNINGS_CLAIMED_TOPIC,
    normalize_log,
    parse_bet_placed,
    parse_winnings_claimed,
    usdc_to_decimal,
)
from predpoints.models import EventKind


def test_topics_are_keccak_hashes():
    for topic in (BET_PLACED_TOPIC, WINNINGS_CLAIMED_TOPIC):
        assert topic.startswith("0x")
        assert len(topic) == 66
    assert BET_PLACED_TOPIC != WINNINGS_CLAIMED_TOPIC


def test_usdc_to_decimal_six_fraction_digits():
    assert usdc_to_decimal(12_500_000) == Decimal("12.5")
    assert usdc_to_decimal(1) == Decimal("0.000001")
    assert usdc_to_decimal(0) == 0


def test_parse_bet_placed_from_topics_and_data():
    raw = bet_log(ALICE, 7, "12.50", tx_hash="0xAB01", block=42, log_index=3, choice=2)
    raw["topics"][2] = raw["topics"][2].upper().replace("0X", "0x")
    event = parse_bet_placed(raw)
    assert event is not None
    assert event.kind is EventKind.BET_PLACED
    assert event.wallet == ALICE
    assert event.market_id == 7
    assert event.amount == Decimal("12.5")
    assert event.choice == 2
    assert event.block_number == 42
    assert event.log_index == 3
    assert event.tx_hash == "0xab01"
    assert event.event_key == "0xab01:3"


def test_parse_winnings_claimed():
    event = parse_winnings_claimed(win_log(ALICE, 7, "25.00", tx_hash="0xcd", block=50))
    assert event is not None
    assert event.kind is EventKind.WINNINGS_CLAIMED
    assert event.amount == Decimal("25")
    assert event.choice is None


def test_parse_decoded_args():
    raw = {
        "args": {"marketId": 3, "user": ALICE, "choice": 1, "amount": 5_000_000},
        "blockNumber": 10,
        "transactionHash": "0xfe",
        "logIndex": 0,
    }
    event = parse_bet_placed(raw)
    assert event is not None
    assert event.amount == Decimal("5")
    assert event.market_id == 3


def test_missing_user_is_skipped():
    raw = bet_log(ALICE, 1, "10", tx_hash="0x01")
    raw["topics"] = raw["topics"][:2]
    assert parse_bet_placed(raw) is None
    assert parse_bet_placed({"args": {"marketId": 1, "amount": 1}, "blockNumber": 1, "transactionHash": "0x1"}) is None


def test_missing_amount_is_skipped():
    raw = win_log(ALICE, 1, "10", tx_hash="0x01")
    raw["data"] = "0x"
    assert parse_winnings_claimed(raw) is None


def test_garbage_fields_do_not_raise():
    raw = bet_log(ALICE, 1, "10", tx_hash="0x01")
    raw["blockNumber"] = "not-a-number"
    assert parse_bet_placed(raw) is None
    assert parse_bet_placed("not a log") is None
    raw = bet_log(ALICE, 1, "10", tx_hash="0x01")
    raw["data"] = "0x" + "zz" * 64
    assert parse_bet_placed(raw) is None


def test_normalize_log_dispatches_on_topic():
    assert normalize_log(bet_log(ALICE, 1, "1", tx_hash="0x01")).kind is EventKind.BET_PLACED
    assert normalize_log(win_log(ALICE, 1, "1", tx_hash="0x02")).kind is EventKind.WINNINGS_CLAIMED
    unknown = bet_log(ALICE, 1, "1", tx_hash="0x03")
    unknown["topics"][0] = "0x" + "00" * 32
    assert normalize_log(unknown) is None


def test_values_beyond_bigint_are_skipped():
    assert parse_bet_placed(bet_log(ALICE, 2**64, "10", tx_hash="0x01")) is None
    assert parse_winnings_claimed(win_log(ALICE, 1, "10000000000000", tx_hash="0x02")) is None
    largest = parse_bet_placed(bet_log(ALICE, 2**63 - 1, "10", tx_hash="0x03"))
    assert largest is not None
    assert largest.market_id == 2**63 - 1


def test_decoded_args_without_log_index_are_skipped():
    raw = {
        "args": {"marketId": 3, "user": ALICE, "choice": 1, "amount": 5_000_000},
        "blockNumber": 10,
        "transactionHash": "0xfe",
    }
    assert parse_bet_placed(raw) is None
    raw["logIndex"] = 0
    assert parse_bet_placed(raw).event_key == "0xfe:0"
