"""
Snapshot-in / snapshot-out functions.

Every call takes the caller-held snapshot bytes, applies one operation and
returns new snapshot bytes. A call that raises returns nothing, so the
caller's original snapshot stays valid for a retry.
"""

from typing import Iterable, List, Sequence, Tuple

from .address import AddressParams, MultiSigAddress
from .builder import TransactionBuilder, TransferTransactionBuilder, WithdrawUnbondedTransactionBuilder
from .envelope import encode_tx_aux
from .errors import InvalidArgument
from .keys import KeyPair, PublicKeyLike
from .multisig import MultiSigSession
from .network import parse_chain_hex_id
from .obfuscation import ObfuscationRouter
from .signer import KeyPairSigner
from .transaction import StakedState, TxAttributes, TxOut, TxoPointer, WithdrawUnbondedTx
from .witness import Witness

TransferInput = Tuple[TxoPointer, TxOut, AddressParams]


def _builder(snapshot: bytes, fee_config, kind) -> TransactionBuilder:
    builder = TransactionBuilder.deserialize(snapshot, fee_config)
    if not isinstance(builder, kind):
        raise InvalidArgument(f"snapshot does not hold a {kind.__name__}", field="snapshot")
    return builder


# ------------------------------
# Transfer
# ------------------------------
def build_incomplete_transfer(inputs: Iterable[TransferInput], outputs: Iterable[TxOut],
                              view_keys: Sequence[PublicKeyLike], chain_hex_id, fee_config) -> bytes:
    attributes = TxAttributes.with_view_keys(parse_chain_hex_id(chain_hex_id), view_keys)
    builder = TransferTransactionBuilder(attributes, fee_config)
    for pointer, prev_output, params in inputs:
        builder.add_input((pointer, prev_output), params)
    for output in outputs:
        builder.add_output(output)
    return builder.serialize()


def sign_input(snapshot: bytes, fee_config, index: int, key_pair: KeyPair) -> bytes:
    builder = _builder(snapshot, fee_config, TransferTransactionBuilder)
    builder.sign_input(index, KeyPairSigner(key_pair))
    return builder.serialize()


def add_input_witness(snapshot: bytes, fee_config, index: int, witness: Witness) -> bytes:
    builder = TransactionBuilder.deserialize(snapshot, fee_config)
    builder.add_witness(index, witness)
    return builder.serialize()


def is_completed(snapshot: bytes, fee_config) -> bool:
    return TransactionBuilder.deserialize(snapshot, fee_config).is_completed()


def tx_id(snapshot: bytes, fee_config) -> bytes:
    return TransactionBuilder.deserialize(snapshot, fee_config).tx_id()


def estimate_fee(snapshot: bytes, fee_config) -> int:
    return TransactionBuilder.deserialize(snapshot, fee_config).estimate_fee()


def verify_transfer(snapshot: bytes, fee_config):
    _builder(snapshot, fee_config, TransferTransactionBuilder).verify()


def transfer_to_tx_aux(snapshot: bytes, fee_config, router: ObfuscationRouter) -> bytes:
    builder = _builder(snapshot, fee_config, TransferTransactionBuilder)
    return encode_tx_aux(builder.finalize(router))


# ------------------------------
# Withdraw unbonded
# ------------------------------
def build_raw_withdraw_unbonded(outputs: Iterable[TxOut], staked_state: StakedState,
                                view_keys: Sequence[PublicKeyLike], chain_hex_id, fee_config) -> bytes:
    attributes = TxAttributes.with_view_keys(parse_chain_hex_id(chain_hex_id), view_keys)
    tx = WithdrawUnbondedTx(staked_state.nonce, list(outputs), attributes)
    return WithdrawUnbondedTransactionBuilder(tx, staked_state, fee_config).serialize()


def sign_withdraw_unbonded(snapshot: bytes, fee_config, key_pair: KeyPair) -> bytes:
    builder = _builder(snapshot, fee_config, WithdrawUnbondedTransactionBuilder)
    builder.sign(KeyPairSigner(key_pair))
    return builder.serialize()


def withdraw_unbonded_to_tx_aux(snapshot: bytes, fee_config, router: ObfuscationRouter) -> bytes:
    builder = _builder(snapshot, fee_config, WithdrawUnbondedTransactionBuilder)
    return encode_tx_aux(builder.finalize(router))


# ------------------------------
# Multisig
# ------------------------------
def create_address(public_keys: Sequence[PublicKeyLike], self_public_key: PublicKeyLike,
                   required_signers: int) -> bytes:
    return MultiSigAddress(public_keys, self_public_key, required_signers).root


def new_session(message: bytes, public_keys: Sequence[PublicKeyLike], self_public_key: PublicKeyLike,
                self_private_key) -> bytes:
    return MultiSigSession.new(message, public_keys, self_public_key, self_private_key).serialize()


def generate_nonce_commitment(session: bytes) -> Tuple[bytes, bytes]:
    state = MultiSigSession.deserialize(session)
    commitment = state.nonce_commitment()
    return state.serialize(), commitment


def add_nonce_commitment(session: bytes, public_key: PublicKeyLike, commitment: bytes) -> bytes:
    state = MultiSigSession.deserialize(session)
    state.add_nonce_commitment(public_key, commitment)
    return state.serialize()


def generate_nonce(session: bytes) -> Tuple[bytes, bytes]:
    state = MultiSigSession.deserialize(session)
    nonce = state.nonce()
    return state.serialize(), nonce


def add_nonce(session: bytes, public_key: PublicKeyLike, nonce: bytes) -> bytes:
    state = MultiSigSession.deserialize(session)
    state.add_nonce(public_key, nonce)
    return state.serialize()


def partial_sign(session: bytes) -> Tuple[bytes, bytes]:
    state = MultiSigSession.deserialize(session)
    partial = state.partial_signature()
    return state.serialize(), partial


def add_partial_signature(session: bytes, public_key: PublicKeyLike, partial_signature: bytes) -> bytes:
    state = MultiSigSession.deserialize(session)
    state.add_partial_signature(public_key, partial_signature)
    return state.serialize()


def sign(session: bytes) -> bytes:
    return MultiSigSession.deserialize(session).signature()


def verify(signature: bytes, message: bytes, public_keys: List[PublicKeyLike]) -> bool:
    return MultiSigSession.verify(signature, message, public_keys)
