"""
Demo: two co-signers spend a 2-of-2 multisig output, passing only snapshot
bytes between calls, and finalize with the mock obfuscation cipher.

    python -m cosigner
"""

import json
import logging
import os

from bitsv.utils import bytes_to_hex

from . import api
from .address import AddressParams, MultiSigAddress
from .config import Settings, configure_logging
from .crypto import sha256
from .envelope import decode_tx_aux
from .errors import ConsistencyError
from .keys import KeyPair
from .obfuscation import Features, ObfuscationRouter
from .signer import KeyPairSigner
from .transaction import TxOut, TxoPointer, format_staking_address
from .witness import TreeSigWitness

LOG = logging.getLogger("cosigner")

FUNDING_VALUE = 10_000_000


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    fee_config = settings.fee_algorithm.to_config()
    router = ObfuscationRouter(Features.MOCK_OBFUSCATION)

    alice, bob = KeyPair.generate(), KeyPair.generate()
    keys = [alice.public_key, bob.public_key]
    group = MultiSigAddress(keys, alice.public_key, 2)
    recipient = KeyPairSigner(alice)

    funding_txid = os.environ.get("COSIGNER_DEMO_FUNDING_TXID", bytes_to_hex(sha256(b"cosigner demo funding")))
    funding = (TxoPointer.from_hex(funding_txid, 0), TxOut(group.root, FUNDING_VALUE))
    params = AddressParams(total_signers=2, required_signers=2)

    def build(value):
        return api.build_incomplete_transfer(
            [(funding[0], funding[1], params)], [TxOut(recipient.address, value)],
            [], settings.chain_hex_id, fee_config,
        )

    fee = api.estimate_fee(build(0), fee_config)
    snapshot = build(FUNDING_VALUE - fee)
    txid = api.tx_id(snapshot, fee_config)
    LOG.info("transfer %s needs fee %d", bytes_to_hex(txid), fee)

    # each party only ever holds its own session bytes
    sessions = {
        party.public_key: api.new_session(txid, keys, party.public_key, party.private_key)
        for party in (alice, bob)
    }

    commitments = {}
    for key in keys:
        sessions[key], commitments[key] = api.generate_nonce_commitment(sessions[key])
    for key in keys:
        for other, commitment in commitments.items():
            if other != key:
                sessions[key] = api.add_nonce_commitment(sessions[key], other, commitment)

    nonces = {}
    for key in keys:
        sessions[key], nonces[key] = api.generate_nonce(sessions[key])
    for key in keys:
        for other, nonce in nonces.items():
            if other != key:
                sessions[key] = api.add_nonce(sessions[key], other, nonce)

    partials = {}
    for key in keys:
        sessions[key], partials[key] = api.partial_sign(sessions[key])
    for key in keys:
        for other, partial in partials.items():
            if other != key:
                sessions[key] = api.add_partial_signature(sessions[key], other, partial)

    signature = api.sign(sessions[alice.public_key])
    if signature != api.sign(sessions[bob.public_key]):
        raise ConsistencyError("co-signers aggregated different signatures", field="signature")

    witness = TreeSigWitness(signature, group.generate_proof(keys))
    snapshot = api.add_input_witness(snapshot, fee_config, 0, witness)
    tx_aux = api.transfer_to_tx_aux(snapshot, fee_config, router)

    print(json.dumps({
        "network": settings.network.value,
        "participants": [k.hex() for k in keys],
        "multisig_address": bytes_to_hex(group.root),
        "recipient_staking_address": format_staking_address(recipient.staking_address),
        "txid": bytes_to_hex(txid),
        "fee": fee,
        "signature": bytes_to_hex(signature),
        "verified": api.verify(signature, txid, list(reversed(keys))),
        "tx_aux": bytes_to_hex(tx_aux),
        "tx_aux_txid": bytes_to_hex(decode_tx_aux(tx_aux).txid()),
    }, indent=2))


if __name__ == "__main__":
    main()
