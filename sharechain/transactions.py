"""Minimal transaction model: encoding, txids, merkle roots and coinbases."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from Crypto.Hash import RIPEMD160

SHARE_VALUE = 1
SEQUENCE_MAX = 0xFFFFFFFF
_NULL_TXID = "00" * 32
_HASH_HEX = re.compile(r"[0-9a-fA-F]{64}")


class Network(Enum):
    """Bitcoin networks a share chain can run against."""

    BITCOIN = "bitcoin"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _hash160(data: bytes) -> bytes:
    digest = RIPEMD160.new()
    digest.update(hashlib.sha256(data).digest())
    return digest.digest()


def _compact_size(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    if n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    return b"\xff" + n.to_bytes(8, "little")


def _var_bytes(data: bytes) -> bytes:
    return _compact_size(len(data)) + data


def _check_txid(txid: str) -> str:
    if not isinstance(txid, str) or not _HASH_HEX.fullmatch(txid):
        raise ValueError(f"invalid txid: {txid!r}")
    return txid.lower()


def _txid_to_internal(txid: str) -> bytes:
    return bytes.fromhex(_check_txid(txid))[::-1]


def _pubkey_bytes(pubkey: str | bytes) -> bytes:
    if isinstance(pubkey, str):
        try:
            raw = bytes.fromhex(pubkey)
        except ValueError as exc:
            raise ValueError(f"invalid public key hex: {pubkey!r}") from exc
    else:
        raw = bytes(pubkey)
    compressed = len(raw) == 33 and raw[0] in (2, 3)
    uncompressed = len(raw) == 65 and raw[0] == 4
    if not (compressed or uncompressed):
        raise ValueError("public key must be 33 bytes (02/03) or 65 bytes (04)")
    return raw


@dataclass(frozen=True)
class OutPoint:
    """Reference to an output of an earlier transaction."""

    txid: str
    vout: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "txid", _check_txid(self.txid))
        if not 0 <= self.vout <= 0xFFFFFFFF:
            raise ValueError(f"vout out of range: {self.vout}")

    @classmethod
    def null(cls) -> OutPoint:
        """The outpoint that coinbase inputs spend."""
        return cls(_NULL_TXID, 0xFFFFFFFF)

    def is_null(self) -> bool:
        return self.txid == _NULL_TXID and self.vout == 0xFFFFFFFF

    def _encode(self) -> bytes:
        return _txid_to_internal(self.txid) + self.vout.to_bytes(4, "little")


@dataclass
class TxIn:
    """Transaction input."""

    previous_output: OutPoint
    script_sig: bytes = b""
    sequence: int = SEQUENCE_MAX
    witness: list[bytes] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_output": {
                "txid": self.previous_output.txid,
                "vout": self.previous_output.vout,
            },
            "script_sig": bytes(self.script_sig),
            "sequence": self.sequence,
            "witness": [bytes(item) for item in self.witness],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TxIn:
        previous = data["previous_output"]
        return cls(
            previous_output=OutPoint(previous["txid"], previous["vout"]),
            script_sig=bytes(data["script_sig"]),
            sequence=data["sequence"],
            witness=[bytes(item) for item in data.get("witness", [])],
        )

    def _encode(self) -> bytes:
        return (
            self.previous_output._encode()
            + _var_bytes(bytes(self.script_sig))
            + self.sequence.to_bytes(4, "little")
        )

    def _encode_witness(self) -> bytes:
        return _compact_size(len(self.witness)) + b"".join(
            _var_bytes(bytes(item)) for item in self.witness
        )


@dataclass
class TxOut:
    """Transaction output paying ``value`` satoshis to ``script_pubkey``."""

    value: int
    script_pubkey: bytes

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "script_pubkey": bytes(self.script_pubkey)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TxOut:
        return cls(value=data["value"], script_pubkey=bytes(data["script_pubkey"]))

    def _encode(self) -> bytes:
        return self.value.to_bytes(8, "little") + _var_bytes(bytes(self.script_pubkey))


@dataclass
class Transaction:
    """A bitcoin transaction."""

    version: int
    lock_time: int
    inputs: list[TxIn] = field(default_factory=list)
    outputs: list[TxOut] = field(default_factory=list)

    def _encode_body(self) -> bytes:
        return (
            _compact_size(len(self.inputs))
            + b"".join(txin._encode() for txin in self.inputs)
            + _compact_size(len(self.outputs))
            + b"".join(txout._encode() for txout in self.outputs)
        )

    def _encode_legacy(self) -> bytes:
        return (
            self.version.to_bytes(4, "little", signed=True)
            + self._encode_body()
            + self.lock_time.to_bytes(4, "little")
        )

    def serialize(self) -> bytes:
        """Consensus encoding, in segwit form when any input has a witness."""
        if not any(txin.witness for txin in self.inputs):
            return self._encode_legacy()
        return (
            self.version.to_bytes(4, "little", signed=True)
            + b"\x00\x01"
            + self._encode_body()
            + b"".join(txin._encode_witness() for txin in self.inputs)
            + self.lock_time.to_bytes(4, "little")
        )

    def txid(self) -> str:
        """Transaction id as displayed hex; witness data is excluded."""
        return _sha256d(self._encode_legacy())[::-1].hex()

    def is_coinbase(self) -> bool:
        return len(self.inputs) == 1 and self.inputs[0].previous_output.is_null()


def p2pkh_script(pubkey: str | bytes) -> bytes:
    """Pay-to-pubkey-hash output script for a public key."""
    return b"\x76\xa9\x14" + _hash160(_pubkey_bytes(pubkey)) + b"\x88\xac"


def create_coinbase_transaction(pubkey: str | bytes, network: Network | str) -> Transaction:
    """Coinbase paying one share unit to the P2PKH script of ``pubkey``."""
    Network(network)
    return Transaction(
        version=2,
        lock_time=0,
        inputs=[TxIn(previous_output=OutPoint.null(), script_sig=b"", sequence=SEQUENCE_MAX)],
        outputs=[TxOut(value=SHARE_VALUE, script_pubkey=p2pkh_script(pubkey))],
    )


def merkle_root(txids: Iterable[str]) -> str:
    """Merkle root of transaction ids, duplicating the last node on odd levels."""
    layer = [_txid_to_internal(txid) for txid in txids]
    if not layer:
        raise ValueError("cannot compute a merkle root of no transactions")
    while len(layer) > 1:
        if len(layer) % 2:
            layer.append(layer[-1])
        layer = [_sha256d(left + right) for left, right in zip(layer[::2], layer[1::2])]
    return layer[0][::-1].hex()