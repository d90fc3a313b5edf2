from __future__ import annotations

import json
import logging
from pathlib import Path

from botocore.exceptions import ClientError

from .models import LedgerRecord

log = logging.getLogger("chat-games.storage")


class LedgerStorage:
    """Keeps the ledger as a single item in a DynamoDB table."""

    PK = "LEDGER"
    SK = "STATE"

    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Ledger table is not configured")

    @classmethod
    def key(cls) -> dict[str, str]:
        return {"pk": cls.PK, "sk": cls.SK}

    def load(self) -> LedgerRecord | None:
        self.ensure_table()
        try:
            resp = self._table.get_item(Key=self.key())
        except ClientError as exc:
            log.warning("Unable to read ledger item: %s", exc)
            raise
        item = resp.get("Item")
        if not item:
            return None
        return LedgerRecord.from_item(item)

    def save(self, record: LedgerRecord) -> None:
        self.ensure_table()
        item = {**self.key(), **record.to_item()}
        self._table.put_item(Item=item)


def _atomic_write_json(path: Path, obj: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


class JsonLedgerFile:
    """Keeps the ledger in a local JSON document."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> LedgerRecord | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("Unable to parse ledger file %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            log.warning("Ledger file %s does not hold an object", self.path)
            return None
        return LedgerRecord.from_item(data)

    def save(self, record: LedgerRecord) -> None:
        _atomic_write_json(self.path, record.to_item())


__all__ = ["JsonLedgerFile", "LedgerStorage"]
