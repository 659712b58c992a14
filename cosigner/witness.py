"""
Witness types: a Schnorr signature plus merkle inclusion proof for UTXO
inputs, and a recoverable ECDSA signature for account operations.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from .codec import Decoder, Encoder
from .crypto import ecdsa_recover, merkle_leaf, merkle_root_from_path, point_to_bytes_compressed, schnorr_verify
from .errors import DecodingError, InvalidArgument
from .keys import PublicKey

SCHNORR_SIGNATURE_SIZE = 64
RECOVERABLE_SIGNATURE_SIZE = 65

TREE_SIG_TAG = 0
RECOVERABLE_TAG = 1

_SIDES = {"L": 0, "R": 1}
_SIDE_NAMES = {v: k for k, v in _SIDES.items()}


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof of an x-only combined key in a multisig address tree."""
    value: bytes
    path: Tuple[Tuple[bytes, str], ...] = ()

    def __post_init__(self):
        if len(self.value) != 32:
            raise InvalidArgument("proof value must be a 32-byte x-only key", field="proof.value")
        for sibling, side in self.path:
            if len(sibling) != 32 or side not in _SIDES:
                raise InvalidArgument("malformed proof path entry", field="proof.path")

    def root(self) -> bytes:
        return merkle_root_from_path(merkle_leaf(self.value), self.path)

    def verify(self, root: bytes) -> bool:
        return self.root() == root

    def encode(self, enc: Encoder):
        enc.fixed(self.value, 32)
        enc.seq(self.path, lambda e, step: e.u8(_SIDES[step[1]]).fixed(step[0], 32))

    @classmethod
    def decode(cls, dec: Decoder) -> "MerkleProof":
        value = dec.fixed(32)
        return cls(value, tuple(dec.seq(_decode_step)))


def _decode_step(dec: Decoder) -> Tuple[bytes, str]:
    side = dec.u8()
    if side not in _SIDE_NAMES:
        raise DecodingError(f"invalid proof side {side}", field="proof.path")
    return dec.fixed(32), _SIDE_NAMES[side]


@dataclass(frozen=True)
class TreeSigWitness:
    signature: bytes
    proof: MerkleProof

    TAG = TREE_SIG_TAG

    def __post_init__(self):
        if len(self.signature) != SCHNORR_SIGNATURE_SIZE:
            raise DecodingError("Schnorr signature must be 64 bytes", field="witness.signature")

    def verify(self, message: bytes, address: bytes) -> bool:
        """True when the proof leads to ``address`` and the signature is valid."""
        return self.proof.verify(address) and schnorr_verify(message, self.proof.value, self.signature)

    def encode(self, enc: Encoder):
        enc.u8(self.TAG).fixed(self.signature, SCHNORR_SIGNATURE_SIZE)
        self.proof.encode(enc)


@dataclass(frozen=True)
class RecoverableWitness:
    signature: bytes

    TAG = RECOVERABLE_TAG

    def __post_init__(self):
        if len(self.signature) != RECOVERABLE_SIGNATURE_SIZE:
            raise DecodingError("recoverable signature must be 65 bytes", field="witness.signature")

    def recover(self, message: bytes) -> PublicKey:
        try:
            point = ecdsa_recover(message, self.signature)
        except ValueError as e:
            raise DecodingError(f"unable to recover public key: {e}", field="witness")
        return PublicKey(point_to_bytes_compressed(point))

    def encode(self, enc: Encoder):
        enc.u8(self.TAG).fixed(self.signature, RECOVERABLE_SIGNATURE_SIZE)


Witness = Union[TreeSigWitness, RecoverableWitness]


def encode_witness(enc: Encoder, witness: Witness):
    witness.encode(enc)


def decode_witness(dec: Decoder) -> Witness:
    tag = dec.u8()
    if tag == TREE_SIG_TAG:
        signature = dec.fixed(SCHNORR_SIGNATURE_SIZE)
        return TreeSigWitness(signature, MerkleProof.decode(dec))
    if tag == RECOVERABLE_TAG:
        return RecoverableWitness(dec.fixed(RECOVERABLE_SIGNATURE_SIZE))
    raise DecodingError(f"unknown witness tag {tag}", field="witness")
