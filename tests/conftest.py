"""
Shared fixtures: deterministic key pairs, fee configs and builder helpers.
"""

import pytest

from cosigner.address import AddressParams
from cosigner.crypto import sha256
from cosigner.fee import ZERO_LINEAR_FEE
from cosigner.keys import KeyPair, PrivateKey
from cosigner.signer import KeyPairSigner
from cosigner.transaction import TxAttributes, TxOut, TxoPointer

TEST_CHAIN_HEX_ID = 0x42


def key_pair(secret: int) -> KeyPair:
    return KeyPair.from_private_key(PrivateKey(secret))


@pytest.fixture
def alice():
    return key_pair(0xA11CE)


@pytest.fixture
def bob():
    return key_pair(0xB0B)


@pytest.fixture
def carol():
    return key_pair(0xCA201)


@pytest.fixture
def fee_config():
    return {"algorithm": "LinearFee", "constant": "1.1", "coefficient": "1.25"}


@pytest.fixture
def zero_fee_config():
    return ZERO_LINEAR_FEE.to_config()


@pytest.fixture
def attributes():
    return TxAttributes(TEST_CHAIN_HEX_ID)


def funding_input(owner: KeyPairSigner, value: int, index: int = 0):
    """A previous output locked to ``owner``'s 1-of-1 address."""
    pointer = TxoPointer(sha256(b"funding" + bytes([index])), index)
    return (pointer, TxOut(owner.address, value)), AddressParams()
