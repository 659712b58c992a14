"""
Signed transactions and the broadcast envelopes (``TxAux``) built from them.

Transfer, deposit and withdraw transactions are broadcast obfuscated: the
envelope carries only what validators need without decrypting (input
references, output count, tx id) plus the encrypted payload. Public staking
operations are broadcast in plaintext with their witness.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple

from .codec import Decoder, Encoder, decode_all
from .errors import DecodingError, InvalidArgument
from .transaction import (
    DepositBondTx, PUBLIC_TRANSACTIONS, StakedState, Transaction, TransferTx, TxoPointer,
    WithdrawUnbondedTx, decode_transaction_from,
)
from .witness import RecoverableWitness, TreeSigWitness, Witness, decode_witness, encode_witness

INIT_VECTOR_SIZE = 12


# ------------------------------
# Signed transaction
# ------------------------------
@dataclass(frozen=True)
class SignedTransaction:
    tx: Transaction
    witnesses: Tuple[Witness, ...]
    staked_state: Optional[StakedState] = None

    def __post_init__(self):
        tx = self.tx
        if isinstance(tx, (TransferTx, DepositBondTx)):
            if len(self.witnesses) != len(tx.inputs):
                raise InvalidArgument("one witness per input is required", field="witnesses")
            if any(not isinstance(w, TreeSigWitness) for w in self.witnesses):
                raise InvalidArgument("inputs must be signed with tree signatures", field="witnesses")
            if self.staked_state is not None:
                raise InvalidArgument("unexpected staked state", field="staked_state")
        elif isinstance(tx, WithdrawUnbondedTx):
            if self.staked_state is None:
                raise InvalidArgument("withdraw requires the staked state", field="staked_state")
            self._require_single_recoverable()
        elif isinstance(tx, PUBLIC_TRANSACTIONS):
            if self.staked_state is not None:
                raise InvalidArgument("unexpected staked state", field="staked_state")
            self._require_single_recoverable()
        else:
            raise InvalidArgument(f"unsupported transaction type {type(tx).__name__}", field="tx")

    def _require_single_recoverable(self):
        if len(self.witnesses) != 1 or not isinstance(self.witnesses[0], RecoverableWitness):
            raise InvalidArgument("a single recoverable witness is required", field="witnesses")

    @property
    def witness(self) -> Witness:
        return self.witnesses[0]

    def txid(self) -> bytes:
        return self.tx.id()

    def encode_into(self, enc: Encoder):
        self.tx.encode_into(enc)
        enc.option(self.staked_state, lambda e, state: state.encode(e))
        enc.seq(self.witnesses, encode_witness)

    def encode(self) -> bytes:
        enc = Encoder()
        self.encode_into(enc)
        return enc.to_bytes()

    @classmethod
    def decode_from(cls, dec: Decoder) -> "SignedTransaction":
        tx = decode_transaction_from(dec)
        staked_state = dec.option(StakedState.decode)
        witnesses = tuple(dec.seq(decode_witness))
        return cls(tx, witnesses, staked_state)

    @classmethod
    def decode(cls, data: bytes) -> "SignedTransaction":
        return decode_all(data, cls.decode_from)


# ------------------------------
# Obfuscated payload
# ------------------------------
@dataclass(frozen=True)
class TxObfuscated:
    txid: bytes
    key_from: int
    init_vector: bytes
    txpayload: bytes

    def __post_init__(self):
        if len(self.txid) != 32:
            raise InvalidArgument("TxId should be 32 bytes long", field="txid")
        if len(self.init_vector) != INIT_VECTOR_SIZE:
            raise InvalidArgument("init vector must be 12 bytes", field="init_vector")

    def encode(self, enc: Encoder):
        enc.fixed(self.txid, 32).u64(self.key_from)
        enc.fixed(self.init_vector, INIT_VECTOR_SIZE).var_bytes(self.txpayload)

    @classmethod
    def decode(cls, dec: Decoder) -> "TxObfuscated":
        return cls(dec.fixed(32), dec.u64(), dec.fixed(INIT_VECTOR_SIZE), dec.var_bytes())


# ------------------------------
# Envelopes
# ------------------------------
class TxAux:
    TAG: ClassVar[int]

    def txid(self) -> bytes:
        raise NotImplementedError

    def encode_body(self, enc: Encoder):
        raise NotImplementedError


@dataclass(frozen=True)
class TransferTxAux(TxAux):
    TAG: ClassVar[int] = 0

    inputs: Tuple[TxoPointer, ...]
    no_of_outputs: int
    payload: TxObfuscated

    def txid(self) -> bytes:
        return self.payload.txid

    def encode_body(self, enc: Encoder):
        enc.seq(self.inputs, lambda e, ptr: ptr.encode(e))
        enc.u16(self.no_of_outputs)
        self.payload.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "TransferTxAux":
        inputs = tuple(dec.seq(TxoPointer.decode))
        return cls(inputs, dec.u16(), TxObfuscated.decode(dec))


@dataclass(frozen=True)
class DepositTxAux(TxAux):
    TAG: ClassVar[int] = 1

    tx: DepositBondTx
    payload: TxObfuscated

    def txid(self) -> bytes:
        return self.payload.txid

    def encode_body(self, enc: Encoder):
        self.tx.encode_into(enc)
        self.payload.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "DepositTxAux":
        tx = decode_transaction_from(dec)
        if not isinstance(tx, DepositBondTx):
            raise DecodingError("deposit envelope must carry a deposit transaction", field="tx")
        return cls(tx, TxObfuscated.decode(dec))


@dataclass(frozen=True)
class WithdrawTxAux(TxAux):
    TAG: ClassVar[int] = 2

    no_of_outputs: int
    witness: RecoverableWitness
    payload: TxObfuscated

    def txid(self) -> bytes:
        return self.payload.txid

    def encode_body(self, enc: Encoder):
        enc.u16(self.no_of_outputs)
        self.witness.encode(enc)
        self.payload.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "WithdrawTxAux":
        no_of_outputs = dec.u16()
        witness = decode_witness(dec)
        if not isinstance(witness, RecoverableWitness):
            raise DecodingError("withdraw envelope requires a recoverable witness", field="witness")
        return cls(no_of_outputs, witness, TxObfuscated.decode(dec))


@dataclass(frozen=True)
class PublicTxAux(TxAux):
    TAG: ClassVar[int] = 3

    tx: Transaction
    witness: RecoverableWitness

    def __post_init__(self):
        if not isinstance(self.tx, PUBLIC_TRANSACTIONS):
            raise InvalidArgument(f"{type(self.tx).__name__} is not a public transaction", field="tx")

    def txid(self) -> bytes:
        return self.tx.id()

    def encode_body(self, enc: Encoder):
        self.tx.encode_into(enc)
        self.witness.encode(enc)

    @classmethod
    def decode_body(cls, dec: Decoder) -> "PublicTxAux":
        tx = decode_transaction_from(dec)
        witness = decode_witness(dec)
        if not isinstance(witness, RecoverableWitness):
            raise DecodingError("public envelope requires a recoverable witness", field="witness")
        return cls(tx, witness)


EnclaveTxAux = (TransferTxAux, DepositTxAux, WithdrawTxAux)

_ENVELOPES = {cls.TAG: cls for cls in (TransferTxAux, DepositTxAux, WithdrawTxAux, PublicTxAux)}


def enclave_tx_aux(signed_tx: SignedTransaction, payload: TxObfuscated) -> TxAux:
    """Wrap an encrypted payload in the envelope kind matching ``signed_tx``."""
    tx = signed_tx.tx
    if isinstance(tx, TransferTx):
        return TransferTxAux(tuple(tx.inputs), len(tx.outputs), payload)
    if isinstance(tx, DepositBondTx):
        return DepositTxAux(tx, payload)
    if isinstance(tx, WithdrawUnbondedTx):
        return WithdrawTxAux(len(tx.outputs), signed_tx.witness, payload)
    raise InvalidArgument(f"{type(tx).__name__} is not broadcast obfuscated", field="tx")


def encode_tx_aux(tx_aux: TxAux) -> bytes:
    enc = Encoder().u8(tx_aux.TAG)
    tx_aux.encode_body(enc)
    return enc.to_bytes()


def _decode_tx_aux(dec: Decoder) -> TxAux:
    tag = dec.u8()
    cls = _ENVELOPES.get(tag)
    if cls is None:
        raise DecodingError(f"unknown envelope tag {tag}", field="tx_aux")
    return cls.decode_body(dec)


def decode_tx_aux(data: bytes) -> TxAux:
    return decode_all(data, _decode_tx_aux)
