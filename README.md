# sharechain

Building blocks for the share chain of a peer-to-peer mining pool: the
share and workbase data model, the coinbase transactions that shares carry,
a column-family key-value store, a transaction store on top of it, and
indexes that relate share blocks to their children, heights, transactions
and status.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `sharechain.timeprovider`

- `TimeProvider` – abstract clock with `now()`, `set_time(time)` and
  `seconds_since_epoch()`.
- `SystemTimeProvider` – the system clock in UTC; `set_time` is ignored.
- `FixedTimeProvider(moment)` – always reports `moment` (a naive datetime is
  taken as UTC). `set_time(time)` moves it to a block timestamp given in
  seconds since the epoch.
- `serialize_time(time)` / `deserialize_time(text)` – convert a block
  timestamp to and from eight lower-case hex digits.

Block timestamps must lie between 500,000,000 and 2³²−1; anything else
raises `ValueError`.

### `sharechain.transactions`

- `Network` – `BITCOIN`, `TESTNET`, `SIGNET`, `REGTEST`.
- `OutPoint`, `TxIn`, `TxOut`, `Transaction` – dataclasses for a bitcoin
  transaction. `OutPoint.null()` is the outpoint a coinbase spends.
  `Transaction.serialize()` gives the consensus encoding (segwit form when an
  input has a witness), `Transaction.txid()` the displayed transaction id and
  `Transaction.is_coinbase()` whether it has a single null-outpoint input.
  `TxIn` and `TxOut` convert with `to_dict()` / `from_dict(data)`.
- `p2pkh_script(pubkey)` – pay-to-public-key-hash script for a compressed or
  uncompressed public key (hex or bytes).
- `create_coinbase_transaction(pubkey, network)` – version 2 coinbase with
  one output of 1 satoshi to the key's P2PKH script.
- `merkle_root(txids)` – merkle root of transaction ids, duplicating the last
  node on odd levels; an empty list raises `ValueError`.

### `sharechain.shares`

Dataclasses `MinerShare`, `ShareHeader`, `ShareBlock`, `Gbt`,
`MinerWorkbase`, `UserWorkbaseParams` and `UserWorkbase`. All but
`ShareBlock` convert with `to_dict()` / `from_dict(data)`; times appear as
hex strings and difficulties as decimal strings in the dictionaries, and
missing required fields raise `ValueError`.

`ShareBlock.blockhash()` returns the hash of its miner share.
`ShareBlock.to_storage()` gives the header alone, and
`ShareBlock.from_storage(data, transactions)` puts a block back together with
its transactions.

`simple_miner_share(...)` returns a miner share with fixed values, any of
`blockhash`, `workinfoid`, `clientid`, `diff` and `sdiff` overridable.
`random_hex_string(length, leading_zeroes)` returns `length // 2` random
bytes as hex, with the first `leading_zeroes` bytes set to zero.

### `sharechain.txstore`

- `KeyValueStore(path)` – a SQLite-backed byte store split into fixed column
  families (`block`, `block_txids`, `inputs`, `outputs`, `tx`, `workbase`,
  `user_workbase`, `block_index`, `block_height`). `path` may be a file, a
  directory (the database is then `sharechain.sqlite3` inside it) or
  `":memory:"`. It offers `get`, `put`, `multi_get`, `contains`, `batch`,
  `write` and `close`, and works as a context manager.
- `WriteBatch` – puts collected with `put(family, key, value)` and applied
  atomically by `KeyValueStore.write`.
- `TransactionStore(db)` – keeps each transaction's `TxMetadata`, inputs and
  outputs under separate keys. `store_txs` and `store_tx_metadata` add to a
  batch; `get_tx_metadata` and `get_tx` read back;
  `update_transaction_spent_status(txid, spent_by)` records the spending
  transaction. Unknown transactions raise `TransactionNotFoundError`.

### `sharechain.blockindex`

`BlockIndex(db)` keeps, in the same key-value store:

- children of each share (`update_block_index`, `get_children_blockhashes`)
  and a breadth-first walk over them (`get_descendant_blockhashes`, which
  stops at a given blockhash or after a limit);
- the blockhashes at each height (`set_height_to_blockhash`,
  `get_blockhashes_for_height`);
- the txids of each block (`store_txids_to_block_index`,
  `get_txids_for_blockhash`);
- a `BlockMetadata` record (height, valid, confirmed) per share
  (`get_block_metadata`, `set_block_valid`, `set_block_confirmed`,
  `set_block_height_in_metadata`), written directly or into a batch.

## Example

```python
from sharechain.transactions import Network, create_coinbase_transaction
from sharechain.txstore import KeyValueStore, TransactionStore

pubkey = "02" * 33
tx = create_coinbase_transaction(pubkey, Network.REGTEST)

with KeyValueStore(":memory:") as db:
    txs = TransactionStore(db)
    batch = db.batch()
    txs.store_txs([tx], batch)
    db.write(batch)
    assert txs.get_tx(tx.txid()) == tx
```

## What this package does not do

There is no single share store: nothing here writes a whole share block with
its transactions and indexes in one call, reads share blocks back, walks the
chain to a common ancestor or answers locator queries. Miner and user
workbases can be converted to and from dictionaries, but there is no store
for them. Those pieces have to be assembled from `KeyValueStore`,
`TransactionStore` and `BlockIndex`. The package also has no command-line
program, no networking and no share validation.