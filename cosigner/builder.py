"""
Witness-collecting transaction builders.

A builder holds one unsigned transaction and one witness slot per input.
Its whole state round-trips through ``serialize()`` / ``deserialize()`` so
that signing can be spread across independent calls; every mutating method
validates first and only then touches the state.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from bitsv.utils import bytes_to_hex

from .address import AddressParams
from .codec import BUILDER_SNAPSHOT, Decoder, Encoder, decode_all, read_snapshot_header, snapshot_encoder
from .envelope import SignedTransaction
from .errors import ConsistencyError, DecodingError, IncompleteState, InsufficientFunds, InvalidArgument
from .fee import LinearFee, parse_fee_config, sum_coins
from .transaction import (
    StakedState, Transaction, TransferTx, TxAttributes, TxOut, TxoPointer, WithdrawUnbondedTx,
    decode_transaction_from,
)
from .witness import (
    MerkleProof, RECOVERABLE_SIGNATURE_SIZE, RecoverableWitness, SCHNORR_SIGNATURE_SIZE, TreeSigWitness,
    Witness, decode_witness, encode_witness,
)

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuilderInput:
    pointer: TxoPointer
    prev_output: TxOut
    address_params: AddressParams


class TransactionBuilder:
    WITNESS_TYPE = None

    def __init__(self, tx: Transaction, witnesses: List[Optional[Witness]], fee_algorithm):
        self.tx = tx
        self.witnesses = witnesses
        self.fee_algorithm: LinearFee = parse_fee_config(fee_algorithm)

    # ------------------------------
    # Witness slots
    # ------------------------------
    @property
    def input_count(self) -> int:
        return len(self.witnesses)

    def tx_id(self) -> bytes:
        return self.tx.id()

    def _check_index(self, index: int):
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < self.input_count:
            raise InvalidArgument(f"input index {index} out of range (inputs: {self.input_count})", field="index")

    def _check_witness(self, witness: Witness):
        if not isinstance(witness, self.WITNESS_TYPE):
            raise InvalidArgument(
                f"expected {self.WITNESS_TYPE.__name__}, got {type(witness).__name__}", field="witness"
            )

    def add_witness(self, index: int, witness: Witness):
        """Fill an empty slot. Re-adding the same witness is a no-op; a
        different witness for a filled slot needs ``replace_witness``."""
        self._check_index(index)
        self._check_witness(witness)
        current = self.witnesses[index]
        if current is not None:
            if current == witness:
                return
            raise InvalidArgument(f"input {index} already has a different witness", field=f"witnesses[{index}]")
        self.witnesses[index] = witness
        LOG.debug("witness added for input %d of %s", index, bytes_to_hex(self.tx_id()))

    def replace_witness(self, index: int, witness: Witness):
        self._check_index(index)
        self._check_witness(witness)
        self.witnesses[index] = witness
        LOG.info("witness replaced for input %d of %s", index, bytes_to_hex(self.tx_id()))

    def is_completed(self) -> bool:
        return all(w is not None for w in self.witnesses)

    # ------------------------------
    # Fee and verification
    # ------------------------------
    def _dummy_witness(self, index: int) -> Witness:
        raise NotImplementedError

    def _signed_transaction(self, witnesses) -> SignedTransaction:
        raise NotImplementedError

    def _verify_witnesses(self):
        raise NotImplementedError

    def _spendable(self) -> int:
        raise NotImplementedError

    def _output_value(self) -> int:
        return self.tx.total_output_value()

    def estimate_fee(self) -> int:
        """Fee for the signed transaction, empty slots filled with same-sized dummies."""
        witnesses = tuple(
            w if w is not None else self._dummy_witness(i) for i, w in enumerate(self.witnesses)
        )
        size = len(self._signed_transaction(witnesses).encode())
        return self.fee_algorithm.calculate(size)

    def verify(self):
        self._verify_witnesses()
        spendable = self._spendable()
        outputs = self._output_value()
        if outputs > spendable:
            raise InsufficientFunds(
                f"outputs {outputs} exceed spendable amount {spendable}", field="outputs"
            )
        fee = self.estimate_fee()
        if spendable - outputs < fee:
            raise InsufficientFunds(
                f"spendable {spendable} minus outputs {outputs} does not cover fee {fee}", field="fee"
            )
        LOG.debug("verified %s: spendable=%d outputs=%d fee=%d", self.tx.NAME, spendable, outputs, fee)

    def finalize(self, router):
        """Verify the complete transaction and hand it to ``router`` for broadcast."""
        if not self.is_completed():
            missing = [i for i, w in enumerate(self.witnesses) if w is None]
            raise IncompleteState(f"inputs {missing} are not signed yet", field="witnesses")
        self.verify()
        signed = self._signed_transaction(tuple(self.witnesses))
        tx_aux = router.finalize(signed)
        LOG.info("finalized %s transaction %s", self.tx.NAME, bytes_to_hex(self.tx_id()))
        return tx_aux

    # ------------------------------
    # Snapshot
    # ------------------------------
    def _encode_state(self, enc: Encoder):
        raise NotImplementedError

    def serialize(self) -> bytes:
        enc = snapshot_encoder(BUILDER_SNAPSHOT)
        self.tx.encode_into(enc)
        self._encode_state(enc)
        return enc.to_bytes()

    @staticmethod
    def deserialize(data: bytes, fee_algorithm) -> "TransactionBuilder":
        fee = parse_fee_config(fee_algorithm)

        def read(dec: Decoder) -> TransactionBuilder:
            read_snapshot_header(dec, BUILDER_SNAPSHOT)
            tx = decode_transaction_from(dec)
            if isinstance(tx, TransferTx):
                return TransferTransactionBuilder.decode_state(tx, dec, fee)
            if isinstance(tx, WithdrawUnbondedTx):
                return WithdrawUnbondedTransactionBuilder.decode_state(tx, dec, fee)
            raise DecodingError(f"no builder for {tx.NAME} transactions", field="snapshot")

        return decode_all(data, read)


def _encode_slot(enc: Encoder, witness: Optional[Witness]):
    enc.option(witness, encode_witness)


# ------------------------------
# Transfer
# ------------------------------
class TransferTransactionBuilder(TransactionBuilder):
    WITNESS_TYPE = TreeSigWitness

    def __init__(self, attributes: TxAttributes, fee_algorithm):
        super().__init__(TransferTx(attributes=attributes), [], fee_algorithm)
        self._prev_outputs: List[TxOut] = []
        self._params: List[AddressParams] = []

    def _check_unsigned(self):
        if any(w is not None for w in self.witnesses):
            raise InvalidArgument("transaction body is frozen once a witness is added", field="tx")

    def add_input(self, prev: Tuple[TxoPointer, TxOut], address_params: AddressParams = AddressParams()):
        pointer, prev_output = prev
        if not isinstance(pointer, TxoPointer) or not isinstance(prev_output, TxOut):
            raise InvalidArgument("input must be a (TxoPointer, TxOut) pair", field="input")
        if not isinstance(address_params, AddressParams):
            raise InvalidArgument("address params required", field="address_params")
        self._check_unsigned()
        if pointer in self.tx.inputs:
            raise InvalidArgument("input already added", field="input")
        self.tx.inputs.append(pointer)
        self._prev_outputs.append(prev_output)
        self._params.append(address_params)
        self.witnesses.append(None)

    def add_output(self, output: TxOut):
        if not isinstance(output, TxOut):
            raise InvalidArgument("output must be a TxOut", field="output")
        self._check_unsigned()
        self.tx.outputs.append(output)

    def input_at(self, index: int) -> BuilderInput:
        self._check_index(index)
        return BuilderInput(self.tx.inputs[index], self._prev_outputs[index], self._params[index])

    def sign_input(self, index: int, signer):
        """Sign input ``index`` with a single-key signer owning its address."""
        prev_output = self.input_at(index).prev_output
        self.add_witness(index, signer.schnorr_sign(self.tx_id(), prev_output.address))

    def _dummy_witness(self, index: int) -> TreeSigWitness:
        path = ((bytes(32), "L"),) * self._params[index].proof_length
        return TreeSigWitness(bytes(SCHNORR_SIGNATURE_SIZE), MerkleProof(bytes(32), path))

    def _signed_transaction(self, witnesses) -> SignedTransaction:
        return SignedTransaction(self.tx, witnesses)

    def _verify_witnesses(self):
        if not self.tx.inputs:
            raise InvalidArgument("transaction has no inputs", field="inputs")
        if not self.tx.outputs:
            raise InvalidArgument("transaction has no outputs", field="outputs")
        txid = self.tx_id()
        for index, witness in enumerate(self.witnesses):
            if witness is not None and not witness.verify(txid, self._prev_outputs[index].address):
                raise ConsistencyError(
                    f"witness for input {index} does not match its address", field=f"witnesses[{index}]"
                )

    def _spendable(self) -> int:
        return sum_coins((out.value for out in self._prev_outputs), "inputs")

    def _encode_state(self, enc: Encoder):
        entries = zip(self._prev_outputs, self._params, self.witnesses)

        def write(e: Encoder, entry):
            prev_output, params, witness = entry
            prev_output.encode(e)
            params.encode(e)
            _encode_slot(e, witness)

        enc.seq(entries, write)

    @classmethod
    def decode_state(cls, tx: TransferTx, dec: Decoder, fee: LinearFee) -> "TransferTransactionBuilder":
        def read(d: Decoder):
            return TxOut.decode(d), AddressParams.decode(d), d.option(decode_witness)

        entries = dec.seq(read)
        if len(entries) != len(tx.inputs):
            raise DecodingError("input entries do not match transaction inputs", field="snapshot")
        builder = cls(tx.attributes, fee)
        builder.tx = tx
        for prev_output, params, witness in entries:
            if witness is not None and not isinstance(witness, TreeSigWitness):
                raise DecodingError("transfer inputs take tree signature witnesses", field="snapshot")
            builder._prev_outputs.append(prev_output)
            builder._params.append(params)
            builder.witnesses.append(witness)
        return builder


# ------------------------------
# Withdraw unbonded stake
# ------------------------------
class WithdrawUnbondedTransactionBuilder(TransactionBuilder):
    """Single-slot builder; the witness is a recoverable signature by the
    staking account's key."""

    WITNESS_TYPE = RecoverableWitness

    def __init__(self, tx: WithdrawUnbondedTx, staked_state: StakedState, fee_algorithm,
                 witness: Optional[RecoverableWitness] = None):
        if not isinstance(tx, WithdrawUnbondedTx):
            raise InvalidArgument("expected a withdraw unbonded transaction", field="tx")
        super().__init__(tx, [witness], fee_algorithm)
        self.staked_state = staked_state

    def sign(self, signer):
        self.add_witness(0, signer.sign(self.tx_id()))

    def _dummy_witness(self, index: int) -> RecoverableWitness:
        return RecoverableWitness(bytes(RECOVERABLE_SIGNATURE_SIZE))

    def _signed_transaction(self, witnesses) -> SignedTransaction:
        return SignedTransaction(self.tx, witnesses, self.staked_state)

    def _verify_witnesses(self):
        if self.tx.nonce != self.staked_state.nonce:
            raise ConsistencyError(
                f"transaction nonce {self.tx.nonce} does not match staked state nonce {self.staked_state.nonce}",
                field="nonce",
            )
        witness = self.witnesses[0]
        if witness is None:
            return
        signer = witness.recover(self.tx_id())
        if signer.staking_address() != self.staked_state.address:
            raise ConsistencyError("witness was not signed by the staking account", field="witnesses[0]")

    def _spendable(self) -> int:
        return self.staked_state.unbonded

    def _encode_state(self, enc: Encoder):
        self.staked_state.encode(enc)
        _encode_slot(enc, self.witnesses[0])

    @classmethod
    def decode_state(cls, tx: WithdrawUnbondedTx, dec: Decoder, fee: LinearFee) -> "WithdrawUnbondedTransactionBuilder":
        staked_state = StakedState.decode(dec)
        witness = dec.option(decode_witness)
        if witness is not None and not isinstance(witness, RecoverableWitness):
            raise DecodingError("withdraw takes a recoverable witness", field="snapshot")
        return cls(tx, staked_state, fee, witness)
