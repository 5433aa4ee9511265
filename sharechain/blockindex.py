"""Indexes over stored share blocks: children, heights, txids and block metadata."""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

import cbor2

from .txstore import KeyValueStore, WriteBatch

logger = logging.getLogger(__name__)

_HASH_HEX = re.compile(r"[0-9a-fA-F]{64}")
_MAX_U32 = 0xFFFFFFFF


def _hash_bytes(blockhash: str) -> bytes:
    if not isinstance(blockhash, str) or not _HASH_HEX.fullmatch(blockhash):
        raise ValueError(f"invalid block hash: {blockhash!r}")
    return bytes.fromhex(blockhash)


def _height_key(height: int) -> bytes:
    if isinstance(height, bool) or not isinstance(height, int) or not 0 <= height <= _MAX_U32:
        raise ValueError(f"invalid height: {height!r}")
    return height.to_bytes(4, "big")


def _loads_list(data: bytes) -> list[Any] | None:
    """Decode a CBOR list, returning None when the data is not one."""
    try:
        value = cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError, EOFError):
        return None
    return value if isinstance(value, list) else None


@dataclass(frozen=True)
class BlockMetadata:
    """Whether a share block is valid and confirmed, and its height if known."""

    height: int | None = None
    is_valid: bool = False
    is_confirmed: bool = False


class BlockIndex:
    """Relations between share blocks kept alongside them in the key-value store."""

    def __init__(self, db: KeyValueStore) -> None:
        self.db = db

    def get_children_blockhashes(self, blockhash: str) -> list[str]:
        """Blockhashes of the shares whose parent is ``blockhash``, in insertion order."""
        data = self.db.get("block_index", _hash_bytes(blockhash) + b"_bi")
        if data is None:
            return []
        children = _loads_list(data)
        if children is None:
            raise ValueError(f"corrupt block index entry for {blockhash}")
        return list(children)

    def update_block_index(
        self, prev_blockhash: str | None, next_blockhash: str, batch: WriteBatch
    ) -> None:
        """Record ``next_blockhash`` as a child of ``prev_blockhash``, if there is one."""
        if prev_blockhash is None:
            return
        _hash_bytes(next_blockhash)
        children = self.get_children_blockhashes(prev_blockhash)
        children.append(next_blockhash.lower())
        batch.put("block_index", _hash_bytes(prev_blockhash) + b"_bi", cbor2.dumps(children))

    def store_txids_to_block_index(
        self, blockhash: str, txids: Iterable[str], batch: WriteBatch
    ) -> None:
        batch.put(
            "block_txids",
            _hash_bytes(blockhash) + b"_txids",
            cbor2.dumps(list(txids)),
        )

    def get_txids_for_blockhash(self, blockhash: str) -> list[str]:
        """Txids of the block in order; empty when unknown or unreadable."""
        data = self.db.get("block_txids", _hash_bytes(blockhash) + b"_txids")
        if data is None:
            return []
        return list(_loads_list(data) or [])

    def set_height_to_blockhash(self, blockhash: str, height: int, batch: WriteBatch) -> None:
        """Add ``blockhash`` to the list of blockhashes at ``height``."""
        _hash_bytes(blockhash)
        blockhash = blockhash.lower()
        key = _height_key(height)
        blockhashes = self.get_blockhashes_for_height(height)
        if blockhash not in blockhashes:
            blockhashes.append(blockhash)
            batch.put("block_height", key, cbor2.dumps(blockhashes))

    def get_blockhashes_for_height(self, height: int) -> list[str]:
        data = self.db.get("block_height", _height_key(height))
        if data is None:
            return []
        return list(_loads_list(data) or [])

    def get_descendant_blockhashes(
        self, blockhash: str, stop_blockhash: str, limit: int
    ) -> list[str]:
        """Descendants breadth first, stopping at ``stop_blockhash`` or after ``limit``."""
        found: list[str] = []
        pending: list[str] = []
        current = blockhash.lower()
        stop = stop_blockhash.lower()
        while len(found) < limit and current != stop:
            for child in self.get_children_blockhashes(current):
                if len(found) < limit:
                    found.append(child)
                    pending.append(child)
            if not pending:
                break
            current = pending.pop(0)
        return found

    def get_block_metadata(self, blockhash: str) -> BlockMetadata | None:
        data = self.db.get("block", _hash_bytes(blockhash) + b"_md")
        if data is None:
            logger.debug("No metadata found for blockhash: %s", blockhash)
            return None
        try:
            fields = cbor2.loads(data)
            if not isinstance(fields, dict):
                raise ValueError("not a mapping")
            return BlockMetadata(**fields)
        except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as exc:
            logger.error("Error deserializing block metadata: %s", exc)
            return None

    def _set_block_metadata(
        self, blockhash: str, metadata: BlockMetadata, batch: WriteBatch | None
    ) -> None:
        key = _hash_bytes(blockhash) + b"_md"
        value = cbor2.dumps(dataclasses.asdict(metadata))
        if batch is None:
            self.db.put("block", key, value)
        else:
            batch.put("block", key, value)

    def set_block_valid(
        self, blockhash: str, valid: bool, batch: WriteBatch | None = None
    ) -> None:
        current = self.get_block_metadata(blockhash) or BlockMetadata()
        self._set_block_metadata(blockhash, dataclasses.replace(current, is_valid=valid), batch)

    def set_block_confirmed(
        self, blockhash: str, confirmed: bool, batch: WriteBatch | None = None
    ) -> None:
        current = self.get_block_metadata(blockhash) or BlockMetadata()
        self._set_block_metadata(
            blockhash, dataclasses.replace(current, is_confirmed=confirmed), batch
        )

    def set_block_height_in_metadata(
        self, blockhash: str, height: int | None, batch: WriteBatch | None = None
    ) -> None:
        if height is not None:
            _height_key(height)
        current = self.get_block_metadata(blockhash) or BlockMetadata()
        self._set_block_metadata(blockhash, dataclasses.replace(current, height=height), batch)