"""Best-effort count of distinct participants in a market."""

from __future__ import annotations

from loguru import logger

from ledger.classifier import AccountClassifier
from ledger.client import LedgerClient, MemcmpFilter
from ledger.decoder import PARTICIPATION_MARKET_OFFSET, PARTICIPATION_OWNER_OFFSET
from ledger.errors import LedgerError
from ledger.reader import PUBKEY_LENGTH


class ParticipantAggregator:
    """Count distinct owners of participation accounts that reference a market.

    The count is telemetry for display; nothing else relies on it for correctness.
    """

    def __init__(
        self,
        client: LedgerClient,
        program_id: str,
        classifier: AccountClassifier | None = None,
    ) -> None:
        self._client = client
        self._program_id = program_id
        self._classifier = classifier or AccountClassifier()

    def count_participants(self, market_address: str) -> int:
        try:
            accounts = self._client.get_program_accounts(
                self._program_id,
                [MemcmpFilter(offset=PARTICIPATION_MARKET_OFFSET, value=market_address)],
            )
        except LedgerError as exc:
            logger.warning("Participant listing failed for {}: {}", market_address, exc)
            return 0

        owners: set[bytes] = set()
        skipped = 0
        for account in accounts:
            if not self._classifier.looks_like_participation(account):
                skipped += 1
                continue
            owners.add(
                account.data[PARTICIPATION_OWNER_OFFSET : PARTICIPATION_OWNER_OFFSET + PUBKEY_LENGTH]
            )

        if skipped:
            logger.debug(
                "Skipped {} of {} accounts while counting participants for {}",
                skipped,
                len(accounts),
                market_address,
            )
        return len(owners)
