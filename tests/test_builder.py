"""
Unit tests for the witness-collecting transaction builders.
"""

import pytest

from cosigner import api
from cosigner.address import AddressParams, MultiSigAddress
from cosigner.builder import TransactionBuilder, TransferTransactionBuilder, WithdrawUnbondedTransactionBuilder
from cosigner.envelope import SignedTransaction, TransferTxAux, WithdrawTxAux, decode_tx_aux
from cosigner.errors import (
    ConsistencyError, DecodingError, IncompleteState, InsufficientFunds, InvalidArgument,
)
from cosigner.multisig import MultiSigSession
from cosigner.obfuscation import Features, MockTransactionCipher, ObfuscationRouter
from cosigner.signer import KeyPairSigner
from cosigner.transaction import StakedState, TxAttributes, TxOut, WithdrawUnbondedTx
from cosigner.witness import TreeSigWitness

from conftest import TEST_CHAIN_HEX_ID, funding_input

MOCK_ROUTER = ObfuscationRouter(Features.MOCK_OBFUSCATION)


@pytest.fixture
def signers(alice, bob):
    return KeyPairSigner(alice), KeyPairSigner(bob)


@pytest.fixture
def transfer(signers, attributes, fee_config):
    """Two inputs (one per signer) and one output, unsigned."""
    a, b = signers
    builder = TransferTransactionBuilder(attributes, fee_config)
    for index, owner in enumerate((a, b)):
        prev, params = funding_input(owner, 5000, index)
        builder.add_input(prev, params)
    builder.add_output(TxOut(a.address, 9000))
    return builder


# =============================================================================
# Transfer builder
# =============================================================================

class TestTransferWitnesses:
    """Witness slots and completeness."""

    def test_completeness_follows_slots(self, transfer, signers):
        a, b = signers
        assert not transfer.is_completed()
        transfer.sign_input(0, a)
        assert not transfer.is_completed()
        transfer.sign_input(1, b)
        assert transfer.is_completed()

    def test_slot_isolation(self, transfer, signers):
        a, b = signers
        transfer.sign_input(1, b)
        before = transfer.witnesses[1]
        transfer.sign_input(0, a)
        assert transfer.witnesses[1] == before

    def test_index_out_of_range(self, transfer, signers):
        a, _ = signers
        with pytest.raises(InvalidArgument):
            transfer.input_at(2)
        with pytest.raises(InvalidArgument):
            transfer.add_witness(2, a.schnorr_sign_txid(transfer.tx_id()))

    def test_resubmission(self, transfer, signers):
        """Same witness is a no-op; a different one needs replace_witness."""
        a, _ = signers
        first = a.schnorr_sign_txid(transfer.tx_id())
        second = a.schnorr_sign_txid(transfer.tx_id())
        transfer.add_witness(0, first)
        transfer.add_witness(0, first)
        if second != first:
            with pytest.raises(InvalidArgument):
                transfer.add_witness(0, second)
        transfer.replace_witness(0, second)
        assert transfer.witnesses[0] == second

    def test_body_frozen_after_first_witness(self, transfer, signers):
        a, _ = signers
        transfer.sign_input(0, a)
        with pytest.raises(InvalidArgument):
            transfer.add_output(TxOut(a.address, 1))
        prev, params = funding_input(a, 10, 7)
        with pytest.raises(InvalidArgument):
            transfer.add_input(prev, params)

    def test_wrong_witness_kind(self, transfer, signers):
        a, _ = signers
        with pytest.raises(InvalidArgument):
            transfer.add_witness(0, a.sign(transfer.tx_id()))

    def test_tx_id_ignores_witnesses(self, transfer, signers):
        txid = transfer.tx_id()
        transfer.sign_input(0, signers[0])
        assert transfer.tx_id() == txid


class TestTransferSnapshot:
    """Serialize / deserialize."""

    def test_round_trip(self, transfer, signers, fee_config):
        transfer.sign_input(1, signers[1])
        data = transfer.serialize()
        restored = TransactionBuilder.deserialize(data, fee_config)
        assert isinstance(restored, TransferTransactionBuilder)
        assert restored.serialize() == data
        assert restored.tx_id() == transfer.tx_id()
        assert restored.witnesses == transfer.witnesses
        assert restored.input_at(0) == transfer.input_at(0)

    def test_malformed(self, transfer, fee_config):
        data = transfer.serialize()
        with pytest.raises(DecodingError):
            TransactionBuilder.deserialize(data[:-3], fee_config)
        with pytest.raises(DecodingError):
            TransactionBuilder.deserialize(data + b"\x00", fee_config)
        with pytest.raises(DecodingError):
            TransactionBuilder.deserialize(b"\x02" + data[1:], fee_config)
        with pytest.raises(DecodingError):
            TransactionBuilder.deserialize(b"", fee_config)

    def test_bad_fee_config(self, transfer):
        with pytest.raises(InvalidArgument):
            TransactionBuilder.deserialize(transfer.serialize(), {"algorithm": "Flat"})


class TestTransferVerify:
    """Fee, funds and witness checks."""

    def test_fee_estimate_stable_across_signing(self, transfer, signers):
        before = transfer.estimate_fee()
        transfer.sign_input(0, signers[0])
        transfer.sign_input(1, signers[1])
        assert transfer.estimate_fee() == before
        assert before > 0

    def test_foreign_witness_rejected(self, transfer, signers):
        a, b = signers
        transfer.add_witness(0, b.schnorr_sign_txid(transfer.tx_id()))
        with pytest.raises(ConsistencyError):
            transfer.verify()

    def test_outputs_exceed_inputs(self, signers, attributes, zero_fee_config):
        a, _ = signers
        builder = TransferTransactionBuilder(attributes, zero_fee_config)
        prev, params = funding_input(a, 100)
        builder.add_input(prev, params)
        builder.add_output(TxOut(a.address, 101))
        with pytest.raises(InsufficientFunds):
            builder.verify()

    def test_finalize_requires_completion(self, transfer, signers):
        transfer.sign_input(0, signers[0])
        with pytest.raises(IncompleteState):
            transfer.finalize(MOCK_ROUTER)

    def test_finalize_mock(self, transfer, signers):
        transfer.sign_input(0, signers[0])
        transfer.sign_input(1, signers[1])
        tx_aux = transfer.finalize(MOCK_ROUTER)
        assert isinstance(tx_aux, TransferTxAux)
        assert tx_aux.txid() == transfer.tx_id()
        assert tx_aux.no_of_outputs == 1
        assert list(tx_aux.inputs) == transfer.tx.inputs
        signed = MockTransactionCipher.decrypt(tx_aux)
        assert isinstance(signed, SignedTransaction)
        assert signed.tx == transfer.tx

    def test_multisig_input(self, alice, bob, attributes, fee_config):
        """A 2-of-2 input is signed through a session and accepted by verify."""
        keys = [alice.public_key, bob.public_key]
        group = MultiSigAddress(keys, alice.public_key, 2)
        builder = TransferTransactionBuilder(attributes, fee_config)
        prev, _ = funding_input(KeyPairSigner(alice), 10_000)
        pointer, _ = prev
        builder.add_input((pointer, TxOut(group.root, 10_000)), AddressParams(2, 2))
        builder.add_output(TxOut(group.root, 5_000))

        txid = builder.tx_id()
        sessions = [MultiSigSession.new(txid, keys, p.public_key, p.private_key) for p in (alice, bob)]
        a, b = sessions
        a.add_nonce_commitment(bob.public_key, b.nonce_commitment())
        b.add_nonce_commitment(alice.public_key, a.nonce_commitment())
        a.add_nonce(bob.public_key, b.nonce())
        b.add_nonce(alice.public_key, a.nonce())
        a.add_partial_signature(bob.public_key, b.partial_signature())
        a.partial_signature()

        builder.add_witness(0, TreeSigWitness(a.signature(), group.generate_proof(keys)))
        builder.verify()
        assert builder.is_completed()


# =============================================================================
# Withdraw unbonded builder
# =============================================================================

def withdraw_builder(owner, unbonded, output_value, fee_config, nonce=3, state_nonce=3):
    signer = KeyPairSigner(owner)
    state = StakedState(signer.staking_address, state_nonce, bonded=0, unbonded=unbonded)
    tx = WithdrawUnbondedTx(nonce, [TxOut(signer.address, output_value)], TxAttributes(TEST_CHAIN_HEX_ID))
    builder = WithdrawUnbondedTransactionBuilder(tx, state, fee_config)
    builder.sign(signer)
    return builder


class TestWithdrawUnbonded:
    """Fee boundary and account checks."""

    def test_fee_boundary(self, alice, fee_config):
        unbonded = 1_000_000
        fee = withdraw_builder(alice, unbonded, 0, fee_config).estimate_fee()

        exact = withdraw_builder(alice, unbonded, unbonded - fee, fee_config)
        assert isinstance(exact.finalize(MOCK_ROUTER), WithdrawTxAux)

        short = withdraw_builder(alice, unbonded, unbonded - fee + 1, fee_config)
        with pytest.raises(InsufficientFunds):
            short.finalize(MOCK_ROUTER)

    def test_nonce_mismatch(self, alice, fee_config):
        builder = withdraw_builder(alice, 1000, 0, fee_config, nonce=4, state_nonce=3)
        with pytest.raises(ConsistencyError):
            builder.verify()

    def test_wrong_signer(self, alice, bob, fee_config):
        builder = withdraw_builder(alice, 1000, 0, fee_config)
        builder.replace_witness(0, KeyPairSigner(bob).sign(builder.tx_id()))
        with pytest.raises(ConsistencyError):
            builder.verify()

    def test_round_trip(self, alice, fee_config):
        builder = withdraw_builder(alice, 1000, 10, fee_config)
        data = builder.serialize()
        restored = TransactionBuilder.deserialize(data, fee_config)
        assert isinstance(restored, WithdrawUnbondedTransactionBuilder)
        assert restored.staked_state == builder.staked_state
        assert restored.is_completed()
        assert restored.serialize() == data


# =============================================================================
# Functional API
# =============================================================================

class TestTransferApi:
    """Snapshot-threaded transfer."""

    def test_full_flow(self, alice, bob, fee_config):
        a, b = KeyPairSigner(alice), KeyPairSigner(bob)
        (prev_a, params_a), (prev_b, params_b) = funding_input(a, 4000, 0), funding_input(b, 4000, 1)
        inputs = [(prev_a[0], prev_a[1], params_a), (prev_b[0], prev_b[1], params_b)]
        snapshot = api.build_incomplete_transfer(inputs, [TxOut(b.address, 7000)], [alice.public_key],
                                                 "42", fee_config)
        assert not api.is_completed(snapshot, fee_config)
        snapshot = api.sign_input(snapshot, fee_config, 0, alice)
        snapshot = api.sign_input(snapshot, fee_config, 1, bob)
        assert api.is_completed(snapshot, fee_config)
        api.verify_transfer(snapshot, fee_config)

        tx_aux = decode_tx_aux(api.transfer_to_tx_aux(snapshot, fee_config, MOCK_ROUTER))
        assert tx_aux.txid() == api.tx_id(snapshot, fee_config)

    def test_failed_call_leaves_snapshot_usable(self, alice, bob, fee_config):
        a = KeyPairSigner(alice)
        prev, params = funding_input(a, 4000)
        snapshot = api.build_incomplete_transfer([(prev[0], prev[1], params)], [TxOut(a.address, 1)], [],
                                                 TEST_CHAIN_HEX_ID, fee_config)
        with pytest.raises(ConsistencyError):
            api.sign_input(snapshot, fee_config, 0, bob)
        assert not api.is_completed(snapshot, fee_config)
        assert api.is_completed(api.sign_input(snapshot, fee_config, 0, alice), fee_config)
