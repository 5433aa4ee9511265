"""Share chain data: miner shares, share blocks and workbases."""

from __future__ import annotations

import dataclasses
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .timeprovider import deserialize_time, serialize_time
from .transactions import Transaction

DEFAULT_WORKINFOID = 7452731920372203525
DEFAULT_BLOCKHASH = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb5"
DEFAULT_DIFF = Decimal("1.0")
DEFAULT_SDIFF = Decimal("1.9041854952356509")
_HASH_HEX = re.compile(r"[0-9a-fA-F]{64}")


def _check_hash(value: str) -> str:
    if not isinstance(value, str) or not _HASH_HEX.fullmatch(value):
        raise ValueError(f"invalid block hash: {value!r}")
    return value.lower()


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def _to_time(value: Any) -> int:
    return deserialize_time(value) if isinstance(value, str) else int(value)


def _build(cls: type, data: Mapping[str, Any], **converted: Any) -> Any:
    """Construct a dataclass from a mapping, reporting missing required keys."""
    kwargs: dict[str, Any] = {}
    missing = []
    for item in dataclasses.fields(cls):
        if item.name in converted:
            kwargs[item.name] = converted[item.name]
        elif item.name in data:
            kwargs[item.name] = data[item.name]
        elif item.default is dataclasses.MISSING and item.default_factory is dataclasses.MISSING:
            missing.append(item.name)
    if missing:
        raise ValueError(f"{cls.__name__} is missing fields: {', '.join(missing)}")
    return cls(**kwargs)


@dataclass
class MinerShare:
    """A share submitted by a miner."""

    workinfoid: int
    clientid: int
    enonce1: str
    nonce2: str
    nonce: str
    ntime: int
    diff: Decimal
    sdiff: Decimal
    hash: str
    result: bool
    errn: int
    createdate: str
    createby: str
    createcode: str
    createinet: str
    workername: str
    username: str
    address: str
    agent: str

    def __post_init__(self) -> None:
        self.hash = _check_hash(self.hash)
        self.diff = _to_decimal(self.diff)
        self.sdiff = _to_decimal(self.sdiff)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["ntime"] = serialize_time(self.ntime)
        data["diff"] = str(self.diff)
        data["sdiff"] = str(self.sdiff)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MinerShare:
        converted = {}
        if "ntime" in data:
            converted["ntime"] = _to_time(data["ntime"])
        return _build(cls, data, **converted)


@dataclass(kw_only=True)
class ShareHeader:
    """Header of a share block."""

    miner_share: MinerShare
    prev_share_blockhash: str | None = None
    uncles: list[str] = field(default_factory=list)
    miner_pubkey: str
    merkle_root: str

    def __post_init__(self) -> None:
        if self.prev_share_blockhash is not None:
            self.prev_share_blockhash = _check_hash(self.prev_share_blockhash)
        self.uncles = [_check_hash(uncle) for uncle in self.uncles]

    def to_dict(self) -> dict[str, Any]:
        return {
            "miner_share": self.miner_share.to_dict(),
            "prev_share_blockhash": self.prev_share_blockhash,
            "uncles": list(self.uncles),
            "miner_pubkey": self.miner_pubkey,
            "merkle_root": self.merkle_root,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ShareHeader:
        return cls(
            miner_share=MinerShare.from_dict(data["miner_share"]),
            prev_share_blockhash=data.get("prev_share_blockhash"),
            uncles=list(data.get("uncles", [])),
            miner_pubkey=data["miner_pubkey"],
            merkle_root=data["merkle_root"],
        )


@dataclass
class ShareBlock:
    """A share header together with the transactions it commits to."""

    header: ShareHeader
    transactions: list[Transaction] = field(default_factory=list)

    def blockhash(self) -> str:
        """Hash identifying this share block."""
        return self.header.miner_share.hash

    def to_storage(self) -> dict[str, Any]:
        """Storable form of the block; transactions are kept elsewhere."""
        return {"header": self.header.to_dict()}

    @classmethod
    def from_storage(cls, data: Mapping[str, Any], transactions: Iterable[Transaction]) -> ShareBlock:
        return cls(header=ShareHeader.from_dict(data["header"]), transactions=list(transactions))


@dataclass
class Gbt:
    """Block template as returned by getblocktemplate."""

    version: int
    previousblockhash: str
    transactions: list[Any]
    coinbaseaux: Any
    coinbasevalue: int
    target: str
    mintime: int
    mutable: list[str]
    noncerange: str
    sigoplimit: int
    sizelimit: int
    weightlimit: int
    curtime: int
    bits: str
    height: int
    default_witness_commitment: str
    diff: float
    ntime: int
    bbversion: str
    nbit: str
    capabilities: list[str] = field(default_factory=list)
    rules: list[str] = field(default_factory=list)
    vbavailable: Any = field(default_factory=list)
    vbrequired: int = 0
    longpollid: str = ""
    signet_challenge: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["ntime"] = serialize_time(self.ntime)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Gbt:
        converted = {}
        if "ntime" in data:
            converted["ntime"] = _to_time(data["ntime"])
        return _build(cls, data, **converted)


@dataclass
class MinerWorkbase:
    """Work handed out by the pool, with its block template."""

    workinfoid: int
    txns: list[str]
    merkles: list[str]
    coinb1: str
    coinb2: str
    coinb3: str
    header: str
    gbt: Gbt

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["gbt"] = self.gbt.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MinerWorkbase:
        if "gbt" not in data:
            raise ValueError("MinerWorkbase is missing fields: gbt")
        return _build(cls, data, gbt=Gbt.from_dict(data["gbt"]))


@dataclass
class UserWorkbaseParams:
    """Parameters of a mining.notify message sent to one user."""

    id: str
    prevhash: str
    coinb1: str
    coinb2: str
    merkles: list[str]
    version: str
    nbit: str
    ntime: str
    clean: bool

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserWorkbaseParams:
        return _build(cls, data)


@dataclass
class UserWorkbase:
    """Per-user notification of a workbase."""

    params: UserWorkbaseParams
    id: str | None
    method: str
    workinfoid: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "params": self.params.to_dict(),
            "id": self.id,
            "method": self.method,
            "workinfoid": self.workinfoid,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserWorkbase:
        if "params" not in data:
            raise ValueError("UserWorkbase is missing fields: params")
        return _build(
            cls,
            data,
            params=UserWorkbaseParams.from_dict(data["params"]),
            id=data.get("id"),
        )


def simple_miner_share(
    blockhash: str | None = None,
    workinfoid: int | None = None,
    clientid: int | None = None,
    diff: Decimal | None = None,
    sdiff: Decimal | None = None,
) -> MinerShare:
    """A miner share with fixed values, overridable per field."""
    return MinerShare(
        workinfoid=DEFAULT_WORKINFOID if workinfoid is None else workinfoid,
        clientid=1 if clientid is None else clientid,
        enonce1="336c6d67",
        nonce2="0000000000000000",
        nonce="2eb7b82b",
        ntime=deserialize_time("676d6caa"),
        diff=DEFAULT_DIFF if diff is None else diff,
        sdiff=DEFAULT_SDIFF if sdiff is None else sdiff,
        hash=DEFAULT_BLOCKHASH if blockhash is None else blockhash,
        result=True,
        errn=0,
        createdate="1735224559,536904211",
        createby="code",
        createcode="parse_submit",
        createinet="0.0.0.0:3333",
        workername="tb1q3udk7r26qs32ltf9nmqrjaaa7tr55qmkk30q5d",
        username="tb1q3udk7r26qs32ltf9nmqrjaaa7tr55qmkk30q5d",
        address="172.19.0.4",
        agent="cpuminer/2.5.1",
    )


def random_hex_string(length: int = 64, leading_zeroes: int = 0) -> str:
    """Random hex of ``length // 2`` bytes, the first ``leading_zeroes`` bytes zero."""
    if not 0 <= length <= 64:
        raise ValueError(f"length must be between 0 and 64, got {length}")
    if not 0 <= leading_zeroes <= 32:
        raise ValueError(f"leading_zeroes must be between 0 and 32, got {leading_zeroes}")
    data = bytearray(os.urandom(length // 2))
    zeroed = min(leading_zeroes, len(data))
    data[:zeroed] = bytes(zeroed)
    return data.hex()