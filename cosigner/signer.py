import logging
import os

from .address import MultiSigAddress
from .crypto import ecdsa_sign_recoverable, schnorr_sign
from .errors import ConsistencyError, DecodingError
from .keys import KeyPair
from .transaction import format_staking_address
from .witness import RecoverableWitness, TreeSigWitness

LOG = logging.getLogger(__name__)

MESSAGE_SIZE = 32


def _check_message(message: bytes, field_name: str = "message") -> bytes:
    if not isinstance(message, (bytes, bytearray)) or len(message) != MESSAGE_SIZE:
        raise DecodingError("message must be a 32-byte digest", field=field_name)
    return bytes(message)


class KeyPairSigner:
    """Produces witnesses with a single key pair.

    The signer's own transfer address is the 1-of-1 multisig address of its
    public key; it and its inclusion proof are derived once here.
    """

    def __init__(self, key_pair: KeyPair):
        self.key_pair = key_pair
        self._address = MultiSigAddress([key_pair.public_key], key_pair.public_key, 1)
        self._proof = self._address.generate_proof([key_pair.public_key])

    @property
    def public_key(self):
        return self.key_pair.public_key

    @property
    def address(self) -> bytes:
        return self._address.root

    @property
    def staking_address(self) -> bytes:
        return self.public_key.staking_address()

    def sign(self, message: bytes) -> RecoverableWitness:
        message = _check_message(message)
        LOG.debug("recoverable signature by %s", format_staking_address(self.staking_address))
        return RecoverableWitness(ecdsa_sign_recoverable(message, self.key_pair.private_key.secret))

    def schnorr_sign(self, message: bytes, signing_address: bytes) -> TreeSigWitness:
        message = _check_message(message)
        if signing_address != self.address:
            raise ConsistencyError("signing address does not belong to this key pair", field="signing_address")
        return self._tree_witness(message)

    def schnorr_sign_txid(self, txid: bytes) -> TreeSigWitness:
        return self._tree_witness(_check_message(txid, "txid"))

    def _tree_witness(self, message: bytes) -> TreeSigWitness:
        signature = schnorr_sign(message, self.key_pair.private_key.secret, os.urandom(32))
        return TreeSigWitness(signature, self._proof)
