from __future__ import annotations

import pytest

from app.domain import AccountKind, MarketStatus, RawAccount
from factories import encode_market, encode_participation, make_address
from ledger.classifier import AccountClassifier, ClassifierThresholds


def _account(data: bytes, seed: str = "acct") -> RawAccount:
    return RawAccount(address=make_address(seed), data=data)


@pytest.fixture
def classifier() -> AccountClassifier:
    return AccountClassifier()


def test_market_and_participation_are_told_apart(classifier):
    market = _account(encode_market(pools=(10, 20)))
    stake = _account(encode_participation(owner=make_address("o"), market=make_address("m")))

    assert classifier.classify(market) is AccountKind.MARKET
    assert classifier.classify(stake) is AccountKind.PARTICIPATION
    assert classifier.looks_like_market(market)
    assert not classifier.looks_like_market(stake)
    assert classifier.looks_like_participation(stake)


def test_resolved_market_with_winner_is_a_market(classifier):
    data = encode_market(status=MarketStatus.RESOLVED, winning_option=0, pools=(3, 4))
    assert classifier.looks_like_market(_account(data))


def test_padded_market_buffer_within_band_is_accepted(classifier):
    data = encode_market() + b"\x00" * 64
    assert classifier.looks_like_market(_account(data))


@pytest.mark.parametrize(
    "data",
    [
        encode_market(status=MarketStatus.ACTIVE, winning_option=1),
        encode_market(status=MarketStatus.RESOLVED),
        encode_market(pools=(10, 20), total_pool=31),
        encode_market(pools=(10, 20, 5, 0), options=("Yes", "No"), total_pool=35),
        encode_market(question=""),
    ],
    ids=["winner-while-active", "resolved-without-winner", "bad-total", "unused-pool", "empty-question"],
)
def test_insane_markets_are_rejected(classifier, data):
    assert classifier.classify(_account(data)) is None


def test_zero_amount_participation_is_rejected(classifier):
    data = encode_participation(owner=make_address("o"), market=make_address("m"), amount=0)
    assert classifier.classify(_account(data)) is None


def test_participation_option_index_above_max_is_rejected(classifier):
    data = encode_participation(owner=make_address("o"), market=make_address("m"), option_index=4)
    assert not classifier.looks_like_participation(_account(data))


@pytest.mark.parametrize("size", [0, 32, 90, 500, 700, 2048])
def test_unrelated_buffers_match_nothing(classifier, size):
    assert classifier.classify(_account(b"\x07" * size)) is None


def test_thresholds_are_configurable():
    market = _account(encode_market())
    narrow = AccountClassifier(ClassifierThresholds(market_min_size=700, market_max_size=800))
    assert not narrow.looks_like_market(market)


def test_invalid_thresholds_raise():
    with pytest.raises(ValueError):
        ClassifierThresholds(market_min_size=900, market_max_size=800)
    with pytest.raises(ValueError):
        ClassifierThresholds(participation_min_size=500, participation_max_size=400)


def test_market_record_returns_decoded_market(classifier):
    address = make_address("market")
    record = classifier.market_record(RawAccount(address=address, data=encode_market(pools=(2, 5))))
    assert record is not None
    assert record.address == address
    assert record.total_pool == 7

    participation = encode_participation(owner=make_address("owner"), market=address)
    assert classifier.market_record(RawAccount(address="p", data=participation)) is None
