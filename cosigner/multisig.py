"""
N-party Schnorr multisignature rounds (MuSig key aggregation, BIP340
signatures).

Each participant drives its own ``MultiSigSession``:

1. ``nonce_commitment()``: commit to a fresh secret nonce and share it.
2. ``add_nonce_commitment()`` for every other participant.
3. ``nonce()``: reveal the nonce once every commitment is known.
4. ``add_nonce()``: each revealed nonce is checked against its commitment.
5. ``partial_signature()`` / ``add_partial_signature()``.
6. ``signature()``: every partial is checked, then they are summed.

All per-participant data is keyed by public key, so contributions can be
applied in any order. The session state lives entirely in the snapshot
returned by ``serialize()``.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from .codec import (
    SESSION_SNAPSHOT, Decoder, Encoder, decode_all, read_snapshot_header, snapshot_encoder,
)
from .crypto import (
    N, combine_public_keys, has_even_y, i2b32, int_from_bytes, is_infinity, key_agg_coefficients,
    lift_x, point_add, point_mul, point_sum, point_to_bytes_compressed, priv_to_point,
    schnorr_challenge, schnorr_verify, tagged_hash, xonly_bytes,
)
from .errors import ConsistencyError, DecodingError, IncompleteState, InvalidArgument
from .keys import KeyPair, PrivateKey, PublicKey, PublicKeyLike, sort_public_keys

LOG = logging.getLogger(__name__)

MESSAGE_SIZE = 32
SIGNATURE_SIZE = 64


class Phase(Enum):
    INIT = "init"
    COMMITMENT_COLLECTION = "commitment_collection"
    NONCE_COLLECTION = "nonce_collection"
    PARTIAL_SIGNATURE_COLLECTION = "partial_signature_collection"
    SIGNED = "signed"


# ------------------------------
# Helpers
# ------------------------------
def nonce_commitment_of(nonce: bytes) -> bytes:
    return tagged_hash("MuSig/noncecommit", nonce)


def _check_message(message: bytes) -> bytes:
    if not isinstance(message, (bytes, bytearray)) or len(message) != MESSAGE_SIZE:
        raise InvalidArgument("message must be a 32-byte digest", field="message")
    return bytes(message)


def _check_32(value: bytes, field_name: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise InvalidArgument(f"{field_name} must be 32 bytes", field=field_name)
    return bytes(value)


def _unique_sorted_keys(public_keys: Sequence[PublicKeyLike]) -> List[PublicKey]:
    keys = sort_public_keys(public_keys)
    if not keys:
        raise InvalidArgument("at least one public key is required", field="public_keys")
    if len(set(keys)) != len(keys):
        raise InvalidArgument("duplicate public keys", field="public_keys")
    return keys


def _generate_secret_nonce() -> int:
    r = PrivateKey.generate().secret
    # keep R = r·G with even y so the revealed x coordinate identifies it
    return r if has_even_y(priv_to_point(r)) else N - r


class MultiSigSession:
    def __init__(self, message: bytes, public_keys: List[PublicKey], key_pair: KeyPair, secret_nonce: int,
                 commitments: Optional[Dict[PublicKey, bytes]] = None,
                 nonces: Optional[Dict[PublicKey, bytes]] = None,
                 partial_signatures: Optional[Dict[PublicKey, bytes]] = None):
        self.message = message
        self.public_keys = public_keys
        self.key_pair = key_pair
        self._secret_nonce = secret_nonce
        self.commitments: Dict[PublicKey, bytes] = dict(commitments or {})
        self.nonces: Dict[PublicKey, bytes] = dict(nonces or {})
        self.partial_signatures: Dict[PublicKey, bytes] = dict(partial_signatures or {})

    @classmethod
    def new(cls, message: bytes, public_keys: Sequence[PublicKeyLike], self_public_key: PublicKeyLike,
            self_private_key: Union[PrivateKey, bytes]) -> "MultiSigSession":
        message = _check_message(message)
        keys = _unique_sorted_keys(public_keys)
        own = PublicKey.parse(self_public_key, "self_public_key")
        if own not in keys:
            raise InvalidArgument("self public key is not one of the participants", field="self_public_key")
        if not isinstance(self_private_key, PrivateKey):
            self_private_key = PrivateKey.from_bytes(bytes(self_private_key))
        key_pair = KeyPair(self_private_key, own)
        LOG.debug("new multisig session with %d participants", len(keys))
        return cls(message, keys, key_pair, _generate_secret_nonce())

    # ------------------------------
    # Derived values
    # ------------------------------
    @property
    def self_public_key(self) -> PublicKey:
        return self.key_pair.public_key

    @property
    def combined_public_key(self) -> PublicKey:
        return PublicKey(point_to_bytes_compressed(self._combined_point()))

    def _combined_point(self):
        return combine_public_keys([k.data for k in self.public_keys])

    def _coefficient(self, public_key: PublicKey) -> int:
        coefficients = key_agg_coefficients([k.data for k in self.public_keys])
        return coefficients[self.public_keys.index(public_key)]

    def _own_nonce(self) -> bytes:
        return xonly_bytes(priv_to_point(self._secret_nonce))

    @property
    def phase(self) -> Phase:
        if self.self_public_key not in self.commitments:
            return Phase.INIT
        if len(self.commitments) < len(self.public_keys):
            return Phase.COMMITMENT_COLLECTION
        if len(self.nonces) < len(self.public_keys):
            return Phase.NONCE_COLLECTION
        if len(self.partial_signatures) < len(self.public_keys):
            return Phase.PARTIAL_SIGNATURE_COLLECTION
        return Phase.SIGNED

    def _participant(self, public_key: PublicKeyLike) -> PublicKey:
        key = PublicKey.parse(public_key)
        if key not in self.public_keys:
            raise InvalidArgument(f"{key.hex()} is not a participant of this session", field="public_key")
        return key

    def _missing(self, entries: Dict[PublicKey, bytes]) -> List[str]:
        return [k.hex() for k in self.public_keys if k not in entries]

    @staticmethod
    def _record(entries: Dict[PublicKey, bytes], key: PublicKey, value: bytes, what: str, error=InvalidArgument):
        current = entries.get(key)
        if current is not None and current != value:
            raise error(f"a different {what} is already recorded for {key.hex()}", field=what)
        entries[key] = value

    # ------------------------------
    # Round 1: nonce commitments
    # ------------------------------
    def nonce_commitment(self) -> bytes:
        """Own commitment; the same value on every call."""
        commitment = nonce_commitment_of(self._own_nonce())
        self.commitments[self.self_public_key] = commitment
        return commitment

    def add_nonce_commitment(self, public_key: PublicKeyLike, commitment: bytes):
        key = self._participant(public_key)
        commitment = _check_32(commitment, "commitment")
        if key == self.self_public_key and commitment != nonce_commitment_of(self._own_nonce()):
            raise InvalidArgument("commitment for own key does not match own nonce", field="commitment")
        self._record(self.commitments, key, commitment, "commitment")
        LOG.debug("nonce commitment recorded for %s", key.hex())

    # ------------------------------
    # Round 2: nonces
    # ------------------------------
    def nonce(self) -> bytes:
        missing = self._missing(self.commitments)
        if missing:
            raise IncompleteState(f"missing nonce commitments from {missing}", field="commitments")
        nonce = self._own_nonce()
        self.nonces[self.self_public_key] = nonce
        return nonce

    def add_nonce(self, public_key: PublicKeyLike, nonce: bytes):
        key = self._participant(public_key)
        nonce = _check_32(nonce, "nonce")
        commitment = self.commitments.get(key)
        if commitment is None:
            raise ConsistencyError(f"no nonce commitment recorded for {key.hex()}", field="nonce")
        if nonce_commitment_of(nonce) != commitment:
            raise ConsistencyError(f"nonce from {key.hex()} does not match its commitment", field="nonce")
        try:
            lift_x(int_from_bytes(nonce))
        except ValueError:
            raise DecodingError(f"nonce from {key.hex()} is not a curve point", field="nonce")
        self._record(self.nonces, key, nonce, "nonce", ConsistencyError)
        LOG.debug("nonce recorded for %s", key.hex())

    # ------------------------------
    # Round 3: partial signatures
    # ------------------------------
    def _aggregate_nonce(self):
        missing = self._missing(self.nonces)
        if missing:
            raise IncompleteState(f"missing nonces from {missing}", field="nonces")
        R = point_sum(lift_x(int_from_bytes(self.nonces[k])) for k in self.public_keys)
        if is_infinity(R):
            raise ConsistencyError("aggregate nonce is the point at infinity", field="nonces")
        return R

    def _signing_context(self):
        """(R, g_R, X, g, e) shared by every participant of the round."""
        R = self._aggregate_nonce()
        g_R = 1 if has_even_y(R) else N - 1
        X = self._combined_point()
        g = 1 if has_even_y(X) else N - 1
        e = schnorr_challenge(xonly_bytes(R), xonly_bytes(X), self.message)
        return R, g_R, X, g, e

    def partial_signature(self) -> bytes:
        _, g_R, _, g, e = self._signing_context()
        a = self._coefficient(self.self_public_key)
        x = self.key_pair.private_key.secret
        s = (g_R * self._secret_nonce + e * a * g * x) % N
        partial = i2b32(s)
        self.partial_signatures[self.self_public_key] = partial
        return partial

    def add_partial_signature(self, public_key: PublicKeyLike, signature: bytes):
        key = self._participant(public_key)
        signature = _check_32(signature, "partial_signature")
        if int_from_bytes(signature) >= N:
            raise InvalidArgument("partial signature out of range", field="partial_signature")
        if key == self.self_public_key and self.partial_signatures.get(key) != signature:
            raise InvalidArgument("own partial signature must come from partial_signature()", field="partial_signature")
        self._record(self.partial_signatures, key, signature, "partial_signature")
        LOG.debug("partial signature recorded for %s", key.hex())

    # ------------------------------
    # Aggregation
    # ------------------------------
    def signature(self) -> bytes:
        missing = self._missing(self.partial_signatures)
        if missing:
            raise IncompleteState(f"missing partial signatures from {missing}", field="partial_signatures")
        R, g_R, _, g, e = self._signing_context()
        coefficients = key_agg_coefficients([k.data for k in self.public_keys])
        total = 0
        for key, a in zip(self.public_keys, coefficients):
            s = int_from_bytes(self.partial_signatures[key])
            R_i = lift_x(int_from_bytes(self.nonces[key]))
            expected = point_add(point_mul(g_R, R_i), point_mul(e * a * g, key.point))
            if point_mul(s) != expected:
                raise ConsistencyError(
                    f"invalid partial signature from {key.hex()}", field=f"partial_signatures[{key.hex()}]"
                )
            total = (total + s) % N
        signature = xonly_bytes(R) + i2b32(total)
        LOG.info("aggregated %d partial signatures", len(self.public_keys))
        return signature

    @staticmethod
    def verify(signature: bytes, message: bytes, public_keys: Sequence[PublicKeyLike]) -> bool:
        """Check an aggregate signature against any ordering of the signers' keys."""
        message = _check_message(message)
        if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
            raise DecodingError("signature must be 64 bytes", field="signature")
        keys = _unique_sorted_keys(public_keys)
        combined = combine_public_keys([k.data for k in keys])
        return schnorr_verify(message, xonly_bytes(combined), bytes(signature))

    # ------------------------------
    # Snapshot
    # ------------------------------
    def serialize(self) -> bytes:
        enc = snapshot_encoder(SESSION_SNAPSHOT)
        enc.fixed(self.message, MESSAGE_SIZE)
        enc.seq(self.public_keys, lambda e, k: e.fixed(k.data, 33))
        enc.fixed(self.self_public_key.data, 33)
        enc.fixed(self.key_pair.private_key.to_bytes(), 32)
        enc.fixed(i2b32(self._secret_nonce), 32)
        for entries in (self.commitments, self.nonces, self.partial_signatures):
            enc.seq(sorted(entries.items()), lambda e, item: e.fixed(item[0].data, 33).fixed(item[1], 32))
        return enc.to_bytes()

    @classmethod
    def deserialize(cls, data: bytes) -> "MultiSigSession":
        return decode_all(data, cls._decode)

    @classmethod
    def _decode(cls, dec: Decoder) -> "MultiSigSession":
        read_snapshot_header(dec, SESSION_SNAPSHOT)
        message = dec.fixed(MESSAGE_SIZE)
        keys = dec.seq(lambda d: PublicKey(d.fixed(33)))
        if not keys or keys != sorted(set(keys)):
            raise DecodingError("participant keys must be sorted and unique", field="public_keys")
        own = PublicKey(dec.fixed(33))
        if own not in keys:
            raise DecodingError("self public key is not a participant", field="self_public_key")
        key_pair = KeyPair(PrivateKey.from_bytes(dec.fixed(32)), own)
        secret_nonce = int_from_bytes(dec.fixed(32))
        if not 0 < secret_nonce < N:
            raise DecodingError("secret nonce out of range", field="secret_nonce")

        maps = []
        for name in ("commitments", "nonces", "partial_signatures"):
            entries = {}
            for key, value in dec.seq(lambda d: (PublicKey(d.fixed(33)), d.fixed(32))):
                if key not in keys or key in entries:
                    raise DecodingError(f"invalid {name} entry for {key.hex()}", field=name)
                entries[key] = value
            maps.append(entries)
        commitments, nonces, partials = maps
        for key, nonce in nonces.items():
            if commitments.get(key) != nonce_commitment_of(nonce):
                raise DecodingError(f"nonce for {key.hex()} does not match its commitment", field="nonces")
            try:
                lift_x(int_from_bytes(nonce))
            except ValueError:
                raise DecodingError(f"nonce for {key.hex()} is not a curve point", field="nonces")
        return cls(message, keys, key_pair, secret_nonce, commitments, nonces, partials)
