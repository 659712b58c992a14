"""
Unit tests for the secp256k1 helpers, keys and multisig addresses.
"""

import pytest
from ecdsa import SECP256k1, VerifyingKey

from cosigner.address import AddressParams, MultiSigAddress
from cosigner.crypto import (
    N, combine_public_keys, ecdsa_recover, ecdsa_sign_recoverable, point_to_bytes_compressed,
    i2b32, priv_to_pub_compressed, schnorr_sign, schnorr_verify, sha256,
)
from cosigner.errors import ConsistencyError, DecodingError, InvalidArgument
from cosigner.keys import KeyPair, PrivateKey, PublicKey, sort_public_keys
from cosigner.signer import KeyPairSigner


# =============================================================================
# Schnorr / ECDSA
# =============================================================================

class TestSchnorr:
    """BIP340 signing and verification."""

    def test_bip340_vector_zero(self):
        """Secret key 3 signs the zero message to the published signature."""
        sig = schnorr_sign(bytes(32), 3, bytes(32))
        assert sig.hex().upper() == (
            "E907831F80848D1069A5371B402410364BDF1C5F8307B0084C55F1CE2DCA8215"
            "25F66A4A85EA8B71E482A74F382D2CE5EBEEE8FDB2172F477DF4900D310536C0"
        )
        pubkey_x = bytes.fromhex("F9308A019258C31049344F85F89D5229B531C845836F99B08601F113BCE036F9")
        assert schnorr_verify(bytes(32), pubkey_x, sig)

    def test_verify_rejects_other_message(self, alice):
        msg = sha256(b"hello")
        sig = schnorr_sign(msg, alice.private_key.secret)
        assert schnorr_verify(msg, alice.public_key.xonly, sig)
        assert not schnorr_verify(sha256(b"hullo"), alice.public_key.xonly, sig)

    def test_verify_rejects_bad_lengths(self, alice):
        assert not schnorr_verify(b"short", alice.public_key.xonly, bytes(64))
        assert not schnorr_verify(bytes(32), alice.public_key.xonly, bytes(63))


class TestRecoverable:
    """Recoverable ECDSA signatures."""

    def test_recovers_signer(self, alice):
        digest = sha256(b"withdraw")
        sig = ecdsa_sign_recoverable(digest, alice.private_key.secret)
        assert len(sig) == 65
        assert point_to_bytes_compressed(ecdsa_recover(digest, sig)) == alice.public_key.data

    def test_deterministic(self, alice):
        digest = sha256(b"same")
        assert ecdsa_sign_recoverable(digest, alice.private_key.secret) == \
            ecdsa_sign_recoverable(digest, alice.private_key.secret)

    def test_other_digest_recovers_other_key(self, alice):
        sig = ecdsa_sign_recoverable(sha256(b"a"), alice.private_key.secret)
        recovered = ecdsa_recover(sha256(b"b"), sig)
        assert point_to_bytes_compressed(recovered) != alice.public_key.data


    def test_matches_ecdsa_verification(self, alice):
        """Signatures are low-s and verify under the library's own verifier."""
        digest = sha256(b"unbond")
        sig = ecdsa_sign_recoverable(digest, alice.private_key.secret)
        assert int.from_bytes(sig[32:64], "big") <= N // 2
        vk = VerifyingKey.from_string(alice.public_key.data, curve=SECP256k1)
        assert vk.verify_digest(sig[:64], digest)

    def test_flipped_recovery_id_recovers_other_key(self, alice):
        digest = sha256(b"unjail")
        sig = ecdsa_sign_recoverable(digest, alice.private_key.secret)
        flipped = sig[:64] + bytes([sig[64] ^ 1])
        assert point_to_bytes_compressed(ecdsa_recover(digest, flipped)) != alice.public_key.data

    @pytest.mark.parametrize("signature", [
        i2b32(5) + i2b32(1) + b"\x00",
        i2b32(0) + i2b32(1) + b"\x00",
        bytes(64) + b"\x02",
    ])
    def test_unrecoverable(self, signature):
        with pytest.raises(ValueError):
            ecdsa_recover(sha256(b"x"), signature)


class TestStakingAddress:
    """Account addresses derived from public keys."""

    def test_known_vector(self):
        key = KeyPair.from_private_key(PrivateKey(1)).public_key
        assert key.staking_address().hex() == "7e5f4552091a69125d5dfcb7b8c2659029395bdf"

    def test_signer_uses_same_address(self, alice):
        assert KeyPairSigner(alice).staking_address == alice.public_key.staking_address()


class TestKeyAggregation:
    """MuSig key aggregation."""

    def test_single_key_combines_to_itself(self, alice):
        combined = combine_public_keys([alice.public_key.data])
        assert point_to_bytes_compressed(combined) == alice.public_key.data

    def test_two_keys_combine_to_a_new_key(self, alice, bob):
        keys = [k.data for k in sort_public_keys([alice.public_key, bob.public_key])]
        combined = point_to_bytes_compressed(combine_public_keys(keys))
        assert combined not in keys


# =============================================================================
# Keys
# =============================================================================

class TestPublicKey:
    """Public key parsing and normalisation."""

    def test_hex_any_case(self, alice):
        upper = alice.public_key.hex().upper()
        assert PublicKey.parse(upper) == alice.public_key
        assert PublicKey.parse("0x" + alice.public_key.hex()) == alice.public_key

    def test_uncompressed_normalised(self, alice):
        point = alice.public_key.point
        raw = b"\x04" + point.x().to_bytes(32, "big") + point.y().to_bytes(32, "big")
        assert PublicKey.parse(raw) == alice.public_key

    def test_rejects_garbage(self):
        with pytest.raises(DecodingError):
            PublicKey.parse("zz")
        with pytest.raises(DecodingError):
            PublicKey.parse(b"\x02" + bytes(31))

    def test_rejects_off_curve_point(self):
        with pytest.raises(DecodingError):
            PublicKey(b"\x02" + i2b32(5))

    def test_sorting_is_canonical(self, alice, bob, carol):
        keys = [carol.public_key, alice.public_key, bob.public_key]
        assert sort_public_keys(keys) == sort_public_keys(reversed(keys))

    def test_key_pair_mismatch(self, alice, bob):
        with pytest.raises(InvalidArgument):
            KeyPair(alice.private_key, bob.public_key)

    def test_private_key_range(self):
        with pytest.raises(DecodingError):
            PrivateKey(0)
        with pytest.raises(DecodingError):
            PrivateKey.from_bytes(bytes(31))

    def test_private_key_bytes(self):
        key = PrivateKey(3)
        assert PrivateKey.from_bytes(key.to_bytes()) == key
        assert key.public_key().data == priv_to_pub_compressed(3)


# =============================================================================
# Multisig addresses
# =============================================================================

class TestMultiSigAddress:
    """m-of-n address trees and proofs."""

    def test_every_subset_proves_to_root(self, alice, bob, carol):
        keys = [alice.public_key, bob.public_key, carol.public_key]
        address = MultiSigAddress(keys, alice.public_key, 2)
        for signers in ([alice, bob], [alice, carol], [bob, carol]):
            proof = address.generate_proof([s.public_key for s in signers])
            assert proof.verify(address.root)
            assert len(proof.path) == AddressParams(3, 2).proof_length

    def test_root_independent_of_key_order(self, alice, bob, carol):
        keys = [alice.public_key, bob.public_key, carol.public_key]
        a = MultiSigAddress(keys, alice.public_key, 2)
        b = MultiSigAddress(list(reversed(keys)), carol.public_key, 2)
        assert a.root == b.root

    def test_unknown_subset(self, alice, bob, carol):
        address = MultiSigAddress([alice.public_key, bob.public_key], alice.public_key, 2)
        with pytest.raises(InvalidArgument):
            address.generate_proof([alice.public_key, carol.public_key])

    def test_self_key_must_participate(self, alice, bob, carol):
        with pytest.raises(InvalidArgument):
            MultiSigAddress([alice.public_key, bob.public_key], carol.public_key, 1)

    def test_required_signers_bounds(self, alice, bob):
        with pytest.raises(InvalidArgument):
            MultiSigAddress([alice.public_key, bob.public_key], alice.public_key, 3)
        with pytest.raises(InvalidArgument):
            AddressParams(2, 0)

    @pytest.mark.parametrize("total,required,length", [(1, 1, 0), (2, 2, 0), (3, 2, 2), (4, 2, 3), (5, 2, 4)])
    def test_proof_length(self, total, required, length):
        assert AddressParams(total, required).proof_length == length


# =============================================================================
# Signer
# =============================================================================

class TestKeyPairSigner:
    """Single-key witnesses."""

    def test_txid_witness_verifies_against_own_address(self, alice):
        signer = KeyPairSigner(alice)
        txid = sha256(b"tx")
        witness = signer.schnorr_sign_txid(txid)
        assert witness.verify(txid, signer.address)

    def test_schnorr_sign_checks_address(self, alice, bob):
        with pytest.raises(ConsistencyError):
            KeyPairSigner(alice).schnorr_sign(sha256(b"tx"), KeyPairSigner(bob).address)

    def test_recoverable_witness(self, alice):
        signer = KeyPairSigner(alice)
        digest = sha256(b"msg")
        assert signer.sign(digest).recover(digest) == alice.public_key

    @pytest.mark.parametrize("message", [b"", bytes(31), bytes(33)])
    def test_message_length(self, alice, message):
        signer = KeyPairSigner(alice)
        with pytest.raises(DecodingError):
            signer.sign(message)
        with pytest.raises(DecodingError):
            signer.schnorr_sign_txid(message)
