"""
Key types. Public keys arrive as raw bytes or hex in any case and are
normalised to the 33-byte compressed encoding before any comparison,
sorting or combination.
"""

from dataclasses import dataclass, field
from typing import Union

from bitsv import Key
from bitsv.utils import bytes_to_hex, hex_to_bytes
from ecdsa import SigningKey

from .crypto import (
    N, SECP, bytes_to_point, point_to_bytes_compressed, priv_to_point,
    staking_address_from_point,
)
from .errors import DecodingError, InvalidArgument

PublicKeyLike = Union["PublicKey", bytes, bytearray, str]


@dataclass(frozen=True, order=True)
class PublicKey:
    data: bytes

    def __post_init__(self):
        if len(self.data) != 33 or self.data[0] not in (2, 3):
            raise DecodingError("public key must be 33 compressed bytes", field="public_key")
        try:
            bytes_to_point(self.data)
        except ValueError as e:
            raise DecodingError(f"invalid public key: {e}", field="public_key")

    @classmethod
    def parse(cls, value: PublicKeyLike, field_name: str = "public_key") -> "PublicKey":
        if isinstance(value, PublicKey):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text.startswith("0x"):
                text = text[2:]
            try:
                raw = hex_to_bytes(text)
            except ValueError:
                raise DecodingError("public key is not valid hex", field=field_name)
        elif isinstance(value, (bytes, bytearray)):
            raw = bytes(value)
        else:
            raise DecodingError(f"unsupported public key type {type(value).__name__}", field=field_name)
        try:
            point = bytes_to_point(raw)
        except ValueError as e:
            raise DecodingError(f"invalid public key: {e}", field=field_name)
        return cls(point_to_bytes_compressed(point))

    @property
    def point(self):
        return bytes_to_point(self.data)

    @property
    def xonly(self) -> bytes:
        return self.data[1:]

    def staking_address(self) -> bytes:
        return staking_address_from_point(self.point)

    def hex(self) -> str:
        return bytes_to_hex(self.data)

    def __repr__(self) -> str:
        return f"PublicKey({self.hex()})"


@dataclass(frozen=True)
class PrivateKey:
    secret: int = field(repr=False)

    def __post_init__(self):
        if not 1 <= self.secret < N:
            raise DecodingError("private key out of range", field="private_key")

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(SigningKey.generate(curve=SECP).privkey.secret_multiplier)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PrivateKey":
        if len(raw) != 32:
            raise DecodingError("private key must be 32 bytes", field="private_key")
        return cls(int.from_bytes(raw, "big"))

    @classmethod
    def from_wif(cls, wif: str) -> "PrivateKey":
        try:
            return cls(Key(wif).to_int())
        except ValueError as e:
            raise DecodingError(f"invalid WIF: {e}", field="private_key")

    def to_bytes(self) -> bytes:
        return self.secret.to_bytes(32, "big")

    def public_key(self) -> PublicKey:
        return PublicKey(point_to_bytes_compressed(priv_to_point(self.secret)))


@dataclass(frozen=True)
class KeyPair:
    private_key: PrivateKey
    public_key: PublicKey

    def __post_init__(self):
        if self.private_key.public_key() != self.public_key:
            raise InvalidArgument("private key does not match public key", field="key_pair")

    @classmethod
    def generate(cls) -> "KeyPair":
        return cls.from_private_key(PrivateKey.generate())

    @classmethod
    def from_private_key(cls, private_key: PrivateKey) -> "KeyPair":
        return cls(private_key, private_key.public_key())


def sort_public_keys(keys) -> list:
    """Canonical participant order: ascending compressed encoding."""
    return sorted(PublicKey.parse(k) for k in keys)
