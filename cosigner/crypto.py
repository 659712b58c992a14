"""
secp256k1 helpers built on ecdsa: point encoding, BIP340 Schnorr,
MuSig-style key aggregation, recoverable ECDSA and the merkle tree used by
multisig addresses.
"""

import hashlib
from typing import Iterable, List, Optional, Sequence, Tuple

from Crypto.Hash import keccak
from ecdsa import SECP256k1, SigningKey, VerifyingKey, ellipticcurve, numbertheory
from ecdsa.ecdsa import InvalidPointError
from ecdsa.util import sigdecode_string

# Elliptic curve constants
SECP = SECP256k1
G: ellipticcurve.PointJacobi = SECP.generator
N = SECP.order
P = SECP.curve.p()

INFINITY = ellipticcurve.INFINITY


# ------------------------------
# Helpers: hashing / misc
# ------------------------------
def sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()

def dbl_sha256(b: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(b).digest()).digest()

def tagged_hash(tag: str, msg: bytes) -> bytes:
    tag_hash = sha256(tag.encode())
    return sha256(tag_hash + tag_hash + msg)

def int_from_bytes(b: bytes) -> int:
    return int.from_bytes(b, "big")

def i2b32(i: int) -> bytes:
    return i.to_bytes(32, "big")


# ------------------------------
# EC helpers (compressed pubkeys)
# ------------------------------
def is_infinity(point) -> bool:
    return point == INFINITY

def point_mul(k: int, point=None):
    """k·point (k·G when no point is given)."""
    base = G if point is None else point
    k %= N
    if k == 0 or is_infinity(base):
        return INFINITY
    return k * base

def point_add(a, b):
    if is_infinity(a):
        return b
    if is_infinity(b):
        return a
    return a + b

def point_sum(points: Iterable):
    total = INFINITY
    for point in points:
        total = point_add(total, point)
    return total

def has_even_y(point) -> bool:
    return point.y() % 2 == 0

def point_to_bytes_compressed(point) -> bytes:
    x = point.x()
    y = point.y()
    return (b"\x02" if y % 2 == 0 else b"\x03") + x.to_bytes(32, "big")

def point_to_bytes_uncompressed(point) -> bytes:
    return b"\x04" + i2b32(point.x()) + i2b32(point.y())

def xonly_bytes(point) -> bytes:
    return i2b32(point.x())

def priv_to_point(priv: int):
    return point_mul(priv)

def priv_to_pub_compressed(priv: int) -> bytes:
    return point_to_bytes_compressed(priv_to_point(priv))

def lift_x(x: int, odd: bool = False) -> ellipticcurve.PointJacobi:
    """Point with the given x coordinate, even y unless ``odd`` is set."""
    if x >= P:
        raise ValueError("x coordinate not in field")
    alpha = (pow(x, 3, P) + 7) % P
    beta = pow(alpha, (P + 1) // 4, P)
    if (beta * beta) % P != alpha:
        raise ValueError("x coordinate not on curve")
    y = beta
    if (y % 2 == 1) != odd:
        y = P - y
    return ellipticcurve.PointJacobi(SECP.curve, x, y, 1, N)

def bytes_to_point(b: bytes) -> ellipticcurve.PointJacobi:
    if len(b) == 33 and b[0] in (2, 3):
        return lift_x(int_from_bytes(b[1:]), odd=b[0] == 3)
    if len(b) == 65 and b[0] == 4:
        x = int_from_bytes(b[1:33])
        y = int_from_bytes(b[33:])
        if x >= P or y >= P or (y * y - x * x * x - 7) % P != 0:
            raise ValueError("uncompressed pub not on curve")
        return ellipticcurve.PointJacobi(SECP.curve, x, y, 1, N)
    raise ValueError("invalid pub encoding")

def keccak256(b: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=b).digest()

def staking_address_from_point(point) -> bytes:
    """Account address: last 20 bytes of keccak-256 over the raw x||y point."""
    return keccak256(point_to_bytes_uncompressed(point)[1:])[-20:]


# ------------------------------
# BIP340 Schnorr
# ------------------------------
def schnorr_challenge(r_x: bytes, p_x: bytes, msg: bytes) -> int:
    return int_from_bytes(tagged_hash("BIP0340/challenge", r_x + p_x + msg)) % N

def schnorr_sign(msg: bytes, seckey: int, aux_rand: Optional[bytes] = None) -> bytes:
    if len(msg) != 32:
        raise ValueError("message must be 32 bytes")
    if not 1 <= seckey < N:
        raise ValueError("secret key out of range")
    pub = priv_to_point(seckey)
    d = seckey if has_even_y(pub) else N - seckey
    aux = aux_rand if aux_rand is not None else bytes(32)
    t = bytes(a ^ b for a, b in zip(i2b32(d), tagged_hash("BIP0340/aux", aux)))
    k0 = int_from_bytes(tagged_hash("BIP0340/nonce", t + xonly_bytes(pub) + msg)) % N
    if k0 == 0:
        raise ValueError("nonce derivation produced zero")
    R = point_mul(k0)
    k = k0 if has_even_y(R) else N - k0
    e = schnorr_challenge(xonly_bytes(R), xonly_bytes(pub), msg)
    return xonly_bytes(R) + i2b32((k + e * d) % N)

def schnorr_verify(msg: bytes, pubkey_x: bytes, sig: bytes) -> bool:
    if len(msg) != 32 or len(pubkey_x) != 32 or len(sig) != 64:
        return False
    try:
        pub = lift_x(int_from_bytes(pubkey_x))
    except ValueError:
        return False
    r = int_from_bytes(sig[:32])
    s = int_from_bytes(sig[32:])
    if r >= P or s >= N:
        return False
    e = schnorr_challenge(sig[:32], pubkey_x, msg)
    R = point_add(point_mul(s), point_mul(N - e, pub))
    if is_infinity(R) or not has_even_y(R):
        return False
    return R.x() == r


# ------------------------------
# Key aggregation
# ------------------------------
def key_agg_coefficients(pubkeys: Sequence[bytes]) -> List[int]:
    """Per-key coefficients for an already sorted list of compressed keys.

    A lone key gets coefficient 1, so a 1-of-1 group combines to the key
    itself and plain single-key Schnorr signatures verify against it.
    """
    if len(pubkeys) == 1:
        return [1]
    L = tagged_hash("KeyAgg list", b"".join(pubkeys))
    return [int_from_bytes(tagged_hash("KeyAgg coefficient", L + pk)) % N for pk in pubkeys]

def combine_public_keys(pubkeys: Sequence[bytes]):
    coefficients = key_agg_coefficients(pubkeys)
    combined = point_sum(
        point_mul(a, bytes_to_point(pk)) for a, pk in zip(coefficients, pubkeys)
    )
    if is_infinity(combined):
        raise ValueError("combined public key is the point at infinity")
    return combined


# ------------------------------
# Recoverable ECDSA
# ------------------------------
def _sigencode_ints(r: int, s: int, order: int) -> Tuple[int, int]:
    return r, s

def _recover_candidates(digest: bytes, r: int, s: int) -> List:
    """Both keys that verify (r, s) over digest, even-y nonce point first."""
    try:
        keys = VerifyingKey.from_public_key_recovery_with_digest(
            i2b32(r) + i2b32(s), digest, SECP, hashfunc=hashlib.sha256, sigdecode=sigdecode_string,
        )
    except (numbertheory.Error, InvalidPointError) as e:
        raise ValueError(f"public key recovery failed: {e}")
    return [vk.pubkey.point for vk in keys]

def ecdsa_sign_recoverable(digest: bytes, priv: int) -> bytes:
    """RFC6979 low-s signature over a 32-byte digest as r || s || recid."""
    if len(digest) != 32:
        raise ValueError("digest must be 32 bytes")
    sk = SigningKey.from_secret_exponent(priv, curve=SECP, hashfunc=hashlib.sha256)
    r, s = sk.sign_digest_deterministic(digest, hashfunc=hashlib.sha256, sigencode=_sigencode_ints)
    if s > N // 2:
        s = N - s
    expected = priv_to_pub_compressed(priv)
    for recid, candidate in enumerate(_recover_candidates(digest, r, s)):
        if point_to_bytes_compressed(candidate) == expected:
            return i2b32(r) + i2b32(s) + bytes([recid])
    raise ValueError("unable to determine recovery id")

def ecdsa_recover(digest: bytes, signature: bytes):
    if len(digest) != 32 or len(signature) != 65:
        raise ValueError("invalid recoverable signature length")
    r = int_from_bytes(signature[:32])
    s = int_from_bytes(signature[32:64])
    recid = signature[64]
    if recid > 1 or not 0 < r < N or not 0 < s < N:
        raise ValueError("invalid recoverable signature")
    candidates = _recover_candidates(digest, r, s)
    if recid >= len(candidates):
        raise ValueError("recovery id does not match a public key")
    return candidates[recid]


# ------------------------------
# Merkle tree (multisig address leaves)
# ------------------------------
def merkle_leaf(value: bytes) -> bytes:
    return sha256(b"\x00" + value)

def merkle_parent(a: bytes, b: bytes) -> bytes:
    return dbl_sha256(a + b)

def merkle_root(leaves: List[bytes]) -> bytes:
    if not leaves:
        return b"\x00" * 32
    level = leaves[:]
    while len(level) > 1:
        if len(level) % 2 == 1:
            level.append(level[-1])
        level = [merkle_parent(level[i], level[i+1]) for i in range(0, len(level), 2)]
    return level[0]

def merkle_proof(leaves: List[bytes], index: int) -> List[Tuple[bytes, str]]:
    if not 0 <= index < len(leaves):
        raise IndexError("leaf index out of range")
    path = []
    idx = index
    level = leaves[:]
    while len(level) > 1:
        if len(level) % 2 == 1:
            level.append(level[-1])
        pair_index = idx ^ 1
        side = 'R' if (idx % 2 == 0) else 'L'
        path.append((level[pair_index], side))
        level = [merkle_parent(level[i], level[i+1]) for i in range(0, len(level), 2)]
        idx //= 2
    return path

def merkle_root_from_path(leaf: bytes, path: Sequence[Tuple[bytes, str]]) -> bytes:
    node = leaf
    for sibling, side in path:
        node = merkle_parent(node, sibling) if side == 'R' else merkle_parent(sibling, node)
    return node
