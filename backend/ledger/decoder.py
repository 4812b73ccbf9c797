"""Decode market and participation accounts from their fixed byte layouts.

The ledger program exposes no schema artifact to this service, so both layouts
are read field by field in declaration order. The first eight bytes of every
account are an account discriminator and are skipped without validation.
"""

from __future__ import annotations

from app.domain import MarketRecord, MarketStatus, ParticipationRecord

from .errors import DecodeError
from .reader import PUBKEY_LENGTH, ByteReader

DISCRIMINATOR_LENGTH = 8
QUESTION_LENGTH = 200
OPTION_LENGTH = 50
MARKET_ID_LENGTH = 32
CATEGORY_LENGTH = 20
MAX_OPTIONS = 4
MIN_OPTIONS = 2

# Smallest market buffer: winner tag present but no winner byte.
MARKET_MIN_SIZE = (
    DISCRIMINATOR_LENGTH
    + 2 * PUBKEY_LENGTH
    + 1
    + QUESTION_LENGTH
    + 2
    + MAX_OPTIONS * OPTION_LENGTH
    + 1
    + 3 * 8
    + PUBKEY_LENGTH
    + 1
    + 1
    + MAX_OPTIONS * 8
    + 8
    + MARKET_ID_LENGTH
    + CATEGORY_LENGTH
)

PARTICIPATION_OWNER_OFFSET = DISCRIMINATOR_LENGTH
PARTICIPATION_MARKET_OFFSET = DISCRIMINATOR_LENGTH + PUBKEY_LENGTH
PARTICIPATION_SIZE = DISCRIMINATOR_LENGTH + 2 * PUBKEY_LENGTH + 8 + 1 + 8 + 1


def _decode_question(raw: bytes, declared_length: int) -> str:
    if 0 < declared_length <= len(raw):
        raw = raw[:declared_length]
    raw = raw.rstrip(b"\x00")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("invalid UTF-8 in question field") from exc


def decode_market(data: bytes, address: str | None = None) -> MarketRecord:
    """Decode a market account, raising ``DecodeError`` for malformed buffers."""

    reader = ByteReader(data)
    reader.skip(DISCRIMINATOR_LENGTH)

    authority = reader.read_pubkey()
    creator = reader.read_pubkey()
    market_kind = reader.read_u8()
    question_raw = reader.read_bytes(QUESTION_LENGTH)
    question_len = reader.read_u16()
    labels = [reader.read_fixed_string(OPTION_LENGTH) for _ in range(MAX_OPTIONS)]
    option_count = reader.read_u8()
    resolution_timestamp = reader.read_u64()
    creator_fee_rate = reader.read_u64()
    min_bet_amount = reader.read_u64()
    token_mint = reader.read_pubkey()
    status_byte = reader.read_u8()
    winning_option = reader.read_optional(reader.read_u8)
    pools = tuple(reader.read_u64() for _ in range(MAX_OPTIONS))
    total_pool = reader.read_u64()
    market_id = reader.read_fixed_string(MARKET_ID_LENGTH)
    category = reader.read_fixed_string(CATEGORY_LENGTH)

    if not MIN_OPTIONS <= option_count <= MAX_OPTIONS:
        raise DecodeError(f"option count {option_count} outside {MIN_OPTIONS}..{MAX_OPTIONS}")
    try:
        status = MarketStatus.from_byte(status_byte)
    except KeyError as exc:
        raise DecodeError(f"unknown market status byte {status_byte}") from exc
    if winning_option is not None and winning_option >= option_count:
        raise DecodeError(
            f"winning option {winning_option} outside declared option count {option_count}"
        )
    if status is MarketStatus.RESOLVED and winning_option is None:
        raise DecodeError("resolved market carries no winning option")

    return MarketRecord(
        authority=authority,
        creator=creator,
        market_kind=market_kind,
        question=_decode_question(question_raw, question_len),
        question_len=question_len,
        options=tuple(labels[:option_count]),
        option_count=option_count,
        resolution_timestamp=resolution_timestamp,
        creator_fee_rate=creator_fee_rate,
        min_bet_amount=min_bet_amount,
        token_mint=token_mint,
        status=status,
        winning_option=winning_option,
        pools=pools,  # type: ignore[arg-type]
        total_pool=total_pool,
        market_id=market_id,
        category=category,
        address=address,
    )


def decode_participation(data: bytes, address: str | None = None) -> ParticipationRecord:
    reader = ByteReader(data)
    reader.skip(DISCRIMINATOR_LENGTH)
    return ParticipationRecord(
        owner=reader.read_pubkey(),
        market=reader.read_pubkey(),
        amount=reader.read_u64(),
        option_index=reader.read_u8(),
        timestamp=reader.read_i64(),
        claimed=reader.read_bool(),
        address=address,
    )


__all__ = [
    "DISCRIMINATOR_LENGTH",
    "MARKET_MIN_SIZE",
    "MAX_OPTIONS",
    "PARTICIPATION_MARKET_OFFSET",
    "PARTICIPATION_OWNER_OFFSET",
    "PARTICIPATION_SIZE",
    "decode_market",
    "decode_participation",
]
