"""Key-value storage with column families, and the transaction store built on it."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

import cbor2

from .transactions import Transaction, TxIn, TxOut

FAMILIES = (
    "block",
    "block_txids",
    "inputs",
    "outputs",
    "tx",
    "workbase",
    "user_workbase",
    "block_index",
    "block_height",
)
DATABASE_FILENAME = "sharechain.sqlite3"


def _check_family(family: str) -> str:
    if family not in FAMILIES:
        raise ValueError(f"unknown column family: {family!r}")
    return family


def _key_bytes(key: bytes | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


class TransactionNotFoundError(LookupError):
    """Raised when a transaction, or part of one, is not in the store."""


@dataclass
class WriteBatch:
    """Puts collected for a single atomic write."""

    operations: list[tuple[str, bytes, bytes]] = field(default_factory=list)

    def put(self, family: str, key: bytes | str, value: bytes) -> None:
        self.operations.append((_check_family(family), _key_bytes(key), bytes(value)))

    def __len__(self) -> int:
        return len(self.operations)


class KeyValueStore:
    """Persistent byte store split into named column families."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            location = Path(path)
            if location.is_dir():
                location = location / DATABASE_FILENAME
            else:
                location.parent.mkdir(parents=True, exist_ok=True)
            self.path = str(location)
        self._conn: sqlite3.Connection | None = sqlite3.connect(self.path)
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS kv ("
                "family TEXT NOT NULL, key BLOB NOT NULL, value BLOB NOT NULL, "
                "PRIMARY KEY (family, key)) WITHOUT ROWID"
            )

    @property
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("the store is closed")
        return self._conn

    def get(self, family: str, key: bytes | str) -> bytes | None:
        row = self._connection.execute(
            "SELECT value FROM kv WHERE family = ? AND key = ?",
            (_check_family(family), _key_bytes(key)),
        ).fetchone()
        return None if row is None else bytes(row[0])

    def put(self, family: str, key: bytes | str, value: bytes) -> None:
        batch = WriteBatch()
        batch.put(family, key, value)
        self.write(batch)

    def multi_get(self, family: str, keys: Iterable[bytes | str]) -> list[bytes | None]:
        return [self.get(family, key) for key in keys]

    def contains(self, family: str, key: bytes | str) -> bool:
        row = self._connection.execute(
            "SELECT 1 FROM kv WHERE family = ? AND key = ?",
            (_check_family(family), _key_bytes(key)),
        ).fetchone()
        return row is not None

    def batch(self) -> WriteBatch:
        return WriteBatch()

    def write(self, batch: WriteBatch) -> None:
        """Apply every put in ``batch`` atomically."""
        with self._connection as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO kv (family, key, value) VALUES (?, ?, ?)",
                batch.operations,
            )

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> KeyValueStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass(frozen=True)
class TxMetadata:
    """Stored summary of a transaction and what spent it."""

    txid: str
    version: int
    lock_time: int
    input_count: int
    output_count: int
    spent_by: str | None = None


def _encode_metadata(metadata: TxMetadata) -> bytes:
    return cbor2.dumps(asdict(metadata))


def _decode_metadata(data: bytes) -> TxMetadata:
    try:
        return TxMetadata(**cbor2.loads(data))
    except (TypeError, cbor2.CBORDecodeError) as exc:
        raise ValueError(f"corrupt transaction metadata: {exc}") from exc


def _txid_key(txid: str) -> bytes:
    return bytes.fromhex(txid)


def _part_key(txid: str, index: int) -> bytes:
    return f"{txid}:{index}".encode("ascii")


class TransactionStore:
    """Transactions stored as metadata plus separately keyed inputs and outputs."""

    def __init__(self, db: KeyValueStore) -> None:
        self.db = db

    def store_txs(self, transactions: Sequence[Transaction], batch: WriteBatch) -> list[TxMetadata]:
        """Add transactions, their inputs and outputs to ``batch``."""
        stored = []
        for tx in transactions:
            txid = tx.txid()
            stored.append(self.store_tx_metadata(txid, tx, batch))
            for index, txin in enumerate(tx.inputs):
                batch.put("inputs", _part_key(txid, index), cbor2.dumps(txin.to_dict()))
            for index, txout in enumerate(tx.outputs):
                batch.put("outputs", _part_key(txid, index), cbor2.dumps(txout.to_dict()))
        return stored

    def store_tx_metadata(self, txid: str, tx: Transaction, batch: WriteBatch) -> TxMetadata:
        metadata = TxMetadata(
            txid=txid,
            version=tx.version,
            lock_time=tx.lock_time,
            input_count=len(tx.inputs),
            output_count=len(tx.outputs),
        )
        batch.put("tx", _txid_key(txid), _encode_metadata(metadata))
        return metadata

    def get_tx_metadata(self, txid: str) -> TxMetadata | None:
        data = self.db.get("tx", _txid_key(txid))
        return None if data is None else _decode_metadata(data)

    def update_transaction_spent_status(self, txid: str, spent_by: str | None) -> None:
        """Record which transaction spends ``txid``; None marks it unspent."""
        metadata = self.get_tx_metadata(txid)
        if metadata is None:
            raise TransactionNotFoundError(f"Transaction not found: {txid}")
        updated = TxMetadata(**{**asdict(metadata), "spent_by": spent_by})
        self.db.put("tx", _txid_key(txid), _encode_metadata(updated))

    def _load_part(self, family: str, txid: str, index: int) -> dict:
        data = self.db.get(family, _part_key(txid, index))
        if data is None:
            raise TransactionNotFoundError(f"missing {family[:-1]} {index} of transaction {txid}")
        try:
            return cbor2.loads(data)
        except cbor2.CBORDecodeError as exc:
            raise ValueError(f"corrupt {family[:-1]} {index} of transaction {txid}") from exc

    def get_tx(self, txid: str) -> Transaction:
        """Reassemble a stored transaction."""
        metadata = self.get_tx_metadata(txid)
        if metadata is None:
            raise TransactionNotFoundError(f"Transaction metadata not found for txid: {txid}")
        inputs = [
            TxIn.from_dict(self._load_part("inputs", txid, index))
            for index in range(metadata.input_count)
        ]
        outputs = [
            TxOut.from_dict(self._load_part("outputs", txid, index))
            for index in range(metadata.output_count)
        ]
        return Transaction(
            version=metadata.version,
            lock_time=metadata.lock_time,
            inputs=inputs,
            outputs=outputs,
        )