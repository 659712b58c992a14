"""
Unit tests for public staking transactions and their envelopes.
"""

import pytest

from cosigner.crypto import i2b32, sha256
from cosigner.envelope import PublicTxAux, decode_tx_aux, encode_tx_aux
from cosigner.errors import ConsistencyError, DecodingError, InvalidArgument
from cosigner.signer import KeyPairSigner
from cosigner.staking import sign_public_transaction, verify_public_tx_aux
from cosigner.transaction import (
    CouncilNode, NodeJoinTx, TransferTx, TxAttributes, TxoPointer, UnbondTx, UnjailTx, decode_transaction,
    format_staking_address,
)

from conftest import TEST_CHAIN_HEX_ID


@pytest.fixture
def signer(alice):
    return KeyPairSigner(alice)


@pytest.fixture
def unbond_aux(signer):
    tx = UnbondTx(signer.staking_address, 5, 1000, TxAttributes(TEST_CHAIN_HEX_ID))
    return sign_public_transaction(tx, signer)


class TestSignPublic:
    """Signing public staking operations."""

    def test_unbond_verifies(self, unbond_aux, signer):
        verify_public_tx_aux(unbond_aux, signer.staking_address, 5, TEST_CHAIN_HEX_ID)

    def test_hex_address_and_chain_id(self, unbond_aux, signer):
        verify_public_tx_aux(unbond_aux, format_staking_address(signer.staking_address), 5, "42")

    def test_unjail_and_node_join(self, signer):
        attributes = TxAttributes(TEST_CHAIN_HEX_ID)
        node = CouncilNode("node-1", bytes(range(32)), "ops@example.com")
        for tx in (UnjailTx(1, signer.staking_address, attributes),
                   NodeJoinTx(2, signer.staking_address, attributes, node)):
            tx_aux = sign_public_transaction(tx, signer)
            verify_public_tx_aux(tx_aux, signer.staking_address, tx.nonce, TEST_CHAIN_HEX_ID)
            assert decode_tx_aux(encode_tx_aux(tx_aux)) == tx_aux

    def test_rejects_transfer(self, signer):
        with pytest.raises(InvalidArgument):
            sign_public_transaction(TransferTx(), signer)


class TestAssertions:
    """Mismatches against caller expectations."""

    def test_address_mismatch(self, unbond_aux, bob):
        with pytest.raises(ConsistencyError):
            verify_public_tx_aux(unbond_aux, KeyPairSigner(bob).staking_address, 5, TEST_CHAIN_HEX_ID)

    def test_nonce_mismatch(self, unbond_aux, signer):
        with pytest.raises(ConsistencyError):
            verify_public_tx_aux(unbond_aux, signer.staking_address, 6, TEST_CHAIN_HEX_ID)

    def test_chain_mismatch(self, unbond_aux, signer):
        with pytest.raises(ConsistencyError):
            verify_public_tx_aux(unbond_aux, signer.staking_address, 5, 0x2A)

    def test_signed_by_someone_else(self, signer, bob):
        tx = UnbondTx(signer.staking_address, 5, 1000, TxAttributes(TEST_CHAIN_HEX_ID))
        forged = PublicTxAux(tx, KeyPairSigner(bob).sign(tx.id()))
        with pytest.raises(ConsistencyError):
            verify_public_tx_aux(forged, signer.staking_address, 5, TEST_CHAIN_HEX_ID)


class TestTransactionCodec:
    """Tagged transaction encoding."""

    def test_node_join_round_trip(self, signer):
        tx = NodeJoinTx(9, signer.staking_address, TxAttributes.with_view_keys(TEST_CHAIN_HEX_ID, [
            signer.public_key.hex(),
        ]), CouncilNode("n", bytes(32)))
        assert decode_transaction(tx.encode()) == tx
        assert decode_transaction(tx.encode()).id() == tx.id()

    def test_unknown_tag(self):
        with pytest.raises(DecodingError):
            decode_transaction(b"\x09")

    def test_trailing_bytes(self, signer):
        tx = UnjailTx(1, signer.staking_address, TxAttributes(TEST_CHAIN_HEX_ID))
        with pytest.raises(DecodingError):
            decode_transaction(tx.encode() + b"\x00")

    def test_off_curve_view_key(self, signer):
        tx = UnjailTx(1, signer.staking_address, TxAttributes.with_view_keys(TEST_CHAIN_HEX_ID, [
            signer.public_key,
        ]))
        tampered = tx.encode().replace(signer.public_key.data, b"\x02" + i2b32(5))
        with pytest.raises(DecodingError):
            decode_transaction(tampered)

    def test_pointer_from_hex(self):
        txid = sha256(b"prev")
        assert TxoPointer.from_hex(txid.hex().upper(), 3) == TxoPointer(txid, 3)
        with pytest.raises(InvalidArgument):
            TxoPointer.from_hex("abcd", 0)
        with pytest.raises(InvalidArgument):
            TxoPointer.from_hex("zz" * 32, 0)
