"""
Unsigned transaction variants and their building blocks.

Every variant encodes as ``tag || body``; the transaction id is the SHA-256
of that encoding, so it covers inputs, outputs and attributes but never
witnesses.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple, Type, Union

from bitsv.utils import bytes_to_hex, hex_to_bytes

from .codec import Decoder, Encoder, decode_all
from .crypto import sha256
from .errors import DecodingError, InvalidArgument
from .fee import check_coin, sum_coins
from .keys import PublicKey, PublicKeyLike

TXID_SIZE = 32
ADDRESS_SIZE = 32
STAKING_ADDRESS_SIZE = 20
ALL_DATA = 0


def parse_txid(value: Union[bytes, str], field_name: str = "txid") -> bytes:
    if isinstance(value, str):
        try:
            value = hex_to_bytes(value)
        except ValueError:
            raise InvalidArgument("Unable to deserialize TxId", field=field_name)
    if len(value) != TXID_SIZE:
        raise InvalidArgument("TxId should be 32 bytes long", field=field_name)
    return bytes(value)


def parse_staking_address(value: Union[bytes, str], field_name: str = "staking_address") -> bytes:
    if isinstance(value, str):
        text = value[2:] if value.lower().startswith("0x") else value
        try:
            value = hex_to_bytes(text)
        except ValueError:
            raise InvalidArgument("staking address is not valid hex", field=field_name)
    if len(value) != STAKING_ADDRESS_SIZE:
        raise InvalidArgument("staking address should be 20 bytes long", field=field_name)
    return bytes(value)


def format_staking_address(address: bytes) -> str:
    return "0x" + bytes_to_hex(address)


# ------------------------------
# Inputs, outputs, attributes
# ------------------------------
@dataclass(frozen=True)
class TxoPointer:
    id: bytes
    index: int

    def __post_init__(self):
        if len(self.id) != TXID_SIZE:
            raise InvalidArgument("TxId should be 32 bytes long", field="prev_txid")
        if not 0 <= self.index <= 0xFFFF:
            raise InvalidArgument("output index out of range", field="prev_index")

    @classmethod
    def from_hex(cls, txid: str, index: int) -> "TxoPointer":
        return cls(parse_txid(txid, "prev_txid"), index)

    def encode(self, enc: Encoder):
        enc.fixed(self.id, TXID_SIZE).u16(self.index)

    @classmethod
    def decode(cls, dec: Decoder) -> "TxoPointer":
        return cls(dec.fixed(TXID_SIZE), dec.u16())


@dataclass(frozen=True)
class TxOut:
    address: bytes
    value: int
    valid_from: Optional[int] = None

    def __post_init__(self):
        if len(self.address) != ADDRESS_SIZE:
            raise InvalidArgument("output address should be a 32-byte tree root", field="address")
        check_coin(self.value, "value")
        if self.valid_from is not None and not 0 <= self.valid_from < (1 << 64):
            raise InvalidArgument("valid_from out of range", field="valid_from")

    def encode(self, enc: Encoder):
        enc.fixed(self.address, ADDRESS_SIZE).u64(self.value)
        enc.option(self.valid_from, Encoder.u64)

    @classmethod
    def decode(cls, dec: Decoder) -> "TxOut":
        return cls(dec.fixed(ADDRESS_SIZE), dec.u64(), dec.option(Decoder.u64))


@dataclass(frozen=True)
class TxAccessPolicy:
    view_key: PublicKey
    access: int = ALL_DATA

    def encode(self, enc: Encoder):
        enc.fixed(self.view_key.data, 33).u8(self.access)

    @classmethod
    def decode(cls, dec: Decoder) -> "TxAccessPolicy":
        return cls(PublicKey(dec.fixed(33)), dec.u8())


@dataclass(frozen=True)
class TxAttributes:
    chain_hex_id: int
    allowed_view: Tuple[TxAccessPolicy, ...] = ()

    def __post_init__(self):
        if not 0 <= self.chain_hex_id <= 0xFF:
            raise InvalidArgument("Chain hex id must be 8 bit long", field="chain_hex_id")

    @classmethod
    def with_view_keys(cls, chain_hex_id: int, view_keys: List[PublicKeyLike] = ()) -> "TxAttributes":
        policies = tuple(
            TxAccessPolicy(PublicKey.parse(key, "view_key")) for key in view_keys
        )
        return cls(chain_hex_id, policies)

    def encode(self, enc: Encoder):
        enc.u8(self.chain_hex_id)
        enc.seq(self.allowed_view, lambda e, policy: policy.encode(e))

    @classmethod
    def decode(cls, dec: Decoder) -> "TxAttributes":
        chain_hex_id = dec.u8()
        return cls(chain_hex_id, tuple(dec.seq(TxAccessPolicy.decode)))


@dataclass(frozen=True)
class CouncilNode:
    name: str
    consensus_pubkey: bytes
    security_contact: Optional[str] = None

    def __post_init__(self):
        if len(self.consensus_pubkey) != 32:
            raise InvalidArgument("consensus pubkey should be 32 bytes", field="consensus_pubkey")

    def encode(self, enc: Encoder):
        enc.text(self.name).fixed(self.consensus_pubkey, 32)
        enc.option(self.security_contact, Encoder.text)

    @classmethod
    def decode(cls, dec: Decoder) -> "CouncilNode":
        return cls(dec.text(), dec.fixed(32), dec.option(Decoder.text))


@dataclass(frozen=True)
class StakedState:
    """Account state needed to withdraw unbonded stake."""
    address: bytes
    nonce: int
    bonded: int
    unbonded: int
    unbonded_from: int = 0

    def __post_init__(self):
        if len(self.address) != STAKING_ADDRESS_SIZE:
            raise InvalidArgument("staking address should be 20 bytes long", field="staked_state.address")
        check_coin(self.bonded, "staked_state.bonded")
        check_coin(self.unbonded, "staked_state.unbonded")

    def encode(self, enc: Encoder):
        enc.fixed(self.address, STAKING_ADDRESS_SIZE).u64(self.nonce)
        enc.u64(self.bonded).u64(self.unbonded).u64(self.unbonded_from)

    @classmethod
    def decode(cls, dec: Decoder) -> "StakedState":
        return cls(dec.fixed(STAKING_ADDRESS_SIZE), dec.u64(), dec.u64(), dec.u64(), dec.u64())


# ------------------------------
# Transaction variants
# ------------------------------
_VARIANTS: Dict[int, Type["Transaction"]] = {}


def _variant(cls):
    _VARIANTS[cls.TAG] = cls
    return cls


class Transaction:
    TAG: ClassVar[int]
    NAME: ClassVar[str]

    def encode_body(self, enc: Encoder):
        raise NotImplementedError

    @classmethod
    def decode_body(cls, dec: Decoder) -> "Transaction":
        raise NotImplementedError

    def encode_into(self, enc: Encoder):
        enc.u8(self.TAG)
        self.encode_body(enc)

    def encode(self) -> bytes:
        enc = Encoder()
        self.encode_into(enc)
        return enc.to_bytes()

    def id(self) -> bytes:
        return sha256(self.encode())


def decode_transaction_from(dec: Decoder) -> Transaction:
    tag = dec.u8()
    cls = _VARIANTS.get(tag)
    if cls is None:
        raise DecodingError(f"unknown transaction variant tag {tag}")
    return cls.decode_body(dec)


def decode_transaction(data: bytes) -> Transaction:
    return decode_all(data, decode_transaction_from)


def _encode_outputs(enc: Encoder, outputs):
    enc.seq(outputs, lambda e, out: out.encode(e))


@_variant
@dataclass
class TransferTx(Transaction):
    TAG: ClassVar[int] = 0
    NAME: ClassVar[str] = "transfer"

    inputs: List[TxoPointer] = field(default_factory=list)
    outputs: List[TxOut] = field(default_factory=list)
    attributes: TxAttributes = field(default_factory=lambda: TxAttributes(0))

    def encode_body(self, enc: Encoder):
        enc.seq(self.inputs, lambda e, ptr: ptr.encode(e))
        _encode_outputs(enc, self.outputs)
        self.attributes.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "TransferTx":
        inputs = dec.seq(TxoPointer.decode)
        outputs = dec.seq(TxOut.decode)
        return cls(inputs, outputs, TxAttributes.decode(dec))

    def total_output_value(self) -> int:
        return sum_coins((out.value for out in self.outputs), "outputs")


@_variant
@dataclass
class DepositBondTx(Transaction):
    TAG: ClassVar[int] = 1
    NAME: ClassVar[str] = "deposit_bond"

    inputs: List[TxoPointer]
    to_staked_account: bytes
    attributes: TxAttributes

    def encode_body(self, enc: Encoder):
        enc.seq(self.inputs, lambda e, ptr: ptr.encode(e))
        enc.fixed(self.to_staked_account, STAKING_ADDRESS_SIZE)
        self.attributes.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "DepositBondTx":
        inputs = dec.seq(TxoPointer.decode)
        return cls(inputs, dec.fixed(STAKING_ADDRESS_SIZE), TxAttributes.decode(dec))


@_variant
@dataclass
class UnbondTx(Transaction):
    TAG: ClassVar[int] = 2
    NAME: ClassVar[str] = "unbond"

    from_staked_account: bytes
    nonce: int
    value: int
    attributes: TxAttributes

    def encode_body(self, enc: Encoder):
        enc.fixed(self.from_staked_account, STAKING_ADDRESS_SIZE)
        enc.u64(self.nonce).u64(self.value)
        self.attributes.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "UnbondTx":
        return cls(dec.fixed(STAKING_ADDRESS_SIZE), dec.u64(), dec.u64(), TxAttributes.decode(dec))

    @property
    def address(self) -> bytes:
        return self.from_staked_account


@_variant
@dataclass
class WithdrawUnbondedTx(Transaction):
    TAG: ClassVar[int] = 3
    NAME: ClassVar[str] = "withdraw_unbonded"

    nonce: int
    outputs: List[TxOut]
    attributes: TxAttributes

    def encode_body(self, enc: Encoder):
        enc.u64(self.nonce)
        _encode_outputs(enc, self.outputs)
        self.attributes.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "WithdrawUnbondedTx":
        nonce = dec.u64()
        outputs = dec.seq(TxOut.decode)
        return cls(nonce, outputs, TxAttributes.decode(dec))

    def total_output_value(self) -> int:
        return sum_coins((out.value for out in self.outputs), "outputs")


@_variant
@dataclass
class NodeJoinTx(Transaction):
    TAG: ClassVar[int] = 4
    NAME: ClassVar[str] = "node_join"

    nonce: int
    address: bytes
    attributes: TxAttributes
    node_meta: CouncilNode

    def encode_body(self, enc: Encoder):
        enc.u64(self.nonce).fixed(self.address, STAKING_ADDRESS_SIZE)
        self.attributes.encode(enc)
        self.node_meta.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "NodeJoinTx":
        nonce = dec.u64()
        address = dec.fixed(STAKING_ADDRESS_SIZE)
        attributes = TxAttributes.decode(dec)
        return cls(nonce, address, attributes, CouncilNode.decode(dec))


@_variant
@dataclass
class UnjailTx(Transaction):
    TAG: ClassVar[int] = 5
    NAME: ClassVar[str] = "unjail"

    nonce: int
    address: bytes
    attributes: TxAttributes

    def encode_body(self, enc: Encoder):
        enc.u64(self.nonce).fixed(self.address, STAKING_ADDRESS_SIZE)
        self.attributes.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "UnjailTx":
        nonce = dec.u64()
        return cls(nonce, dec.fixed(STAKING_ADDRESS_SIZE), TxAttributes.decode(dec))


PUBLIC_TRANSACTIONS = (UnbondTx, NodeJoinTx, UnjailTx)
