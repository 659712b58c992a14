"""
m-of-n multisig transfer addresses.

The address is the merkle root over the combined public keys of every
m-sized subset of the (sorted) participant keys. A witness proves which
subset signed by carrying that subset's combined key and its inclusion path.
"""

import itertools
import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .codec import Decoder, Encoder
from .crypto import combine_public_keys, merkle_leaf, merkle_proof, merkle_root, xonly_bytes
from .errors import InvalidArgument
from .keys import PublicKey, PublicKeyLike, sort_public_keys
from .witness import MerkleProof

LOG = logging.getLogger(__name__)


def combined_xonly(public_keys: Sequence[PublicKey]) -> bytes:
    """x-only encoding of the aggregate key of a sorted key set."""
    return xonly_bytes(combine_public_keys([k.data for k in public_keys]))


@dataclass(frozen=True)
class AddressParams:
    """Shape of the address an input is locked to: required-of-total."""
    total_signers: int = 1
    required_signers: int = 1

    def __post_init__(self):
        if not 1 <= self.required_signers <= self.total_signers:
            raise InvalidArgument(
                "required signers must be between 1 and total signers",
                field="address_params",
            )
        if self.total_signers > 0xFFFF:
            raise InvalidArgument("too many signers", field="address_params.total_signers")

    @property
    def leaf_count(self) -> int:
        return math.comb(self.total_signers, self.required_signers)

    @property
    def proof_length(self) -> int:
        # ceil(log2(leaves)); a single leaf needs no path
        return (self.leaf_count - 1).bit_length()

    def encode(self, enc: Encoder):
        enc.u16(self.total_signers).u16(self.required_signers)

    @classmethod
    def decode(cls, dec: Decoder) -> "AddressParams":
        return cls(dec.u16(), dec.u16())


class MultiSigAddress:
    def __init__(self, public_keys: Sequence[PublicKeyLike], self_public_key: PublicKeyLike, required_signers: int):
        keys = sort_public_keys(public_keys)
        if len(set(keys)) != len(keys):
            raise InvalidArgument("duplicate public keys", field="public_keys")
        own = PublicKey.parse(self_public_key, "self_public_key")
        if own not in keys:
            raise InvalidArgument("self public key is not one of the public keys", field="self_public_key")
        params = AddressParams(len(keys), required_signers)

        self.public_keys: List[PublicKey] = keys
        self.self_public_key = own
        self.params = params
        self._subsets: List[Tuple[PublicKey, ...]] = list(itertools.combinations(keys, required_signers))
        self._values = [combined_xonly(subset) for subset in self._subsets]
        self._leaves = [merkle_leaf(v) for v in self._values]
        LOG.debug("multisig address %d-of-%d with %d leaves", required_signers, len(keys), len(self._leaves))

    @property
    def required_signers(self) -> int:
        return self.params.required_signers

    @property
    def root(self) -> bytes:
        return merkle_root(self._leaves)

    def generate_proof(self, signers: Sequence[PublicKeyLike]) -> MerkleProof:
        """Inclusion proof for the subset formed by ``signers``."""
        subset = tuple(sort_public_keys(signers))
        try:
            index = self._subsets.index(subset)
        except ValueError:
            raise InvalidArgument(
                f"signers do not form a {self.required_signers}-key subset of this address",
                field="signers",
            )
        return MerkleProof(self._values[index], tuple(merkle_proof(self._leaves, index)))
