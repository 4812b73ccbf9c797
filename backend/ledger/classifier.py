"""Heuristic account-type discrimination for untagged program accounts.

The program owns several account types and none of them carries a type tag
readable without the program schema. Accounts are therefore matched against a
ranked list of rules, each combining a buffer-size band with post-decode sanity
checks. Anything that fails every rule is skipped silently; the size bands are
empirical and belong in configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from loguru import logger

from app.domain import AccountKind, MarketRecord, MarketStatus, ParticipationRecord, RawAccount

from .decoder import (
    MARKET_MIN_SIZE,
    MAX_OPTIONS,
    PARTICIPATION_SIZE,
    decode_market,
    decode_participation,
)
from .errors import DecodeError


@dataclass(frozen=True, slots=True)
class ClassifierThresholds:
    market_min_size: int = MARKET_MIN_SIZE
    market_max_size: int = 1024
    participation_min_size: int = PARTICIPATION_SIZE
    participation_max_size: int = 399

    def __post_init__(self) -> None:
        if self.market_min_size > self.market_max_size:
            raise ValueError("market_min_size must not exceed market_max_size")
        if self.participation_min_size > self.participation_max_size:
            raise ValueError("participation_min_size must not exceed participation_max_size")


Predicate = Callable[[RawAccount, ClassifierThresholds], bool]


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    kind: AccountKind
    predicate: Predicate


def market_is_sane(record: MarketRecord) -> bool:
    if not record.question:
        return False
    if record.status is MarketStatus.ACTIVE and record.winning_option is not None:
        return False
    if record.status is MarketStatus.RESOLVED and record.winning_option is None:
        return False
    if any(record.pools[record.option_count :]):
        return False
    return sum(record.option_pools) == record.total_pool


def participation_is_sane(record: ParticipationRecord) -> bool:
    return record.amount > 0 and record.option_index < MAX_OPTIONS


def decode_if_market(account: RawAccount, thresholds: ClassifierThresholds) -> MarketRecord | None:
    if not thresholds.market_min_size <= account.size <= thresholds.market_max_size:
        return None
    try:
        record = decode_market(account.data, account.address)
    except DecodeError:
        return None
    return record if market_is_sane(record) else None


def _is_market(account: RawAccount, thresholds: ClassifierThresholds) -> bool:
    return decode_if_market(account, thresholds) is not None


def _is_participation(account: RawAccount, thresholds: ClassifierThresholds) -> bool:
    if not thresholds.participation_min_size <= account.size <= thresholds.participation_max_size:
        return False
    try:
        record = decode_participation(account.data, account.address)
    except DecodeError:
        return False
    return participation_is_sane(record)


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(AccountKind.MARKET, _is_market),
    ClassificationRule(AccountKind.PARTICIPATION, _is_participation),
)


class AccountClassifier:
    """Apply classification rules in rank order; the first match wins."""

    def __init__(
        self,
        thresholds: ClassifierThresholds | None = None,
        rules: Sequence[ClassificationRule] = DEFAULT_RULES,
    ) -> None:
        self.thresholds = thresholds or ClassifierThresholds()
        self.rules = tuple(rules)

    def classify(self, account: RawAccount) -> AccountKind | None:
        for rule in self.rules:
            if rule.predicate(account, self.thresholds):
                return rule.kind
        logger.debug(
            "Account {} ({} bytes) matched no classification rule", account.address, account.size
        )
        return None

    def market_record(self, account: RawAccount) -> MarketRecord | None:
        """Decoded market when the account passes the market rule, else ``None``."""

        return decode_if_market(account, self.thresholds)

    def looks_like_market(self, account: RawAccount) -> bool:
        return self.classify(account) is AccountKind.MARKET

    def looks_like_participation(self, account: RawAccount) -> bool:
        return self.classify(account) is AccountKind.PARTICIPATION


__all__ = [
    "AccountClassifier",
    "ClassificationRule",
    "ClassifierThresholds",
    "DEFAULT_RULES",
    "decode_if_market",
    "market_is_sane",
    "participation_is_sane",
]
