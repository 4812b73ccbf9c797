"""Find ledger market accounts that have no row in the persisted store."""

from __future__ import annotations

from loguru import logger

from app.domain import MarketRecord
from app.repositories import MarketStore
from ledger.classifier import AccountClassifier
from ledger.client import DataSizeFilter, LedgerClient


class DriftScanner:
    """Report drift candidates only; importing them is left to the caller."""

    def __init__(
        self,
        client: LedgerClient,
        store: MarketStore,
        program_id: str,
        *,
        classifier: AccountClassifier | None = None,
        data_size: int | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._program_id = program_id
        self._classifier = classifier or AccountClassifier()
        self.data_size = data_size

    def scan_ledger_markets(self) -> list[MarketRecord]:
        filters = [DataSizeFilter(self.data_size)] if self.data_size else []
        accounts = self._client.get_program_accounts(self._program_id, filters)

        records: list[MarketRecord] = []
        for account in accounts:
            record = self._classifier.market_record(account)
            if record is not None:
                records.append(record)
        logger.info(
            "Ledger scan found {} market accounts among {} program accounts",
            len(records),
            len(accounts),
        )
        return records

    def find_missing(self) -> list[MarketRecord]:
        records = self.scan_ledger_markets()
        known = self._store.market_addresses()
        missing = [record for record in records if record.address not in known]

        logger.info("Found {} ledger markets missing from the store", len(missing))
        for index, record in enumerate(missing, start=1):
            logger.info("{}. {} - {}", index, record.address, record.question[:50])
        return missing
