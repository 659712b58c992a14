"""
Signing and assertion checks for public staking operations (unbond,
node join, unjail). These are broadcast in plaintext with a recoverable
signature by the staking account's key.
"""

import logging
from typing import Union

from .envelope import PublicTxAux
from .errors import ConsistencyError, InvalidArgument
from .network import parse_chain_hex_id
from .transaction import PUBLIC_TRANSACTIONS, Transaction, format_staking_address, parse_staking_address

LOG = logging.getLogger(__name__)


def sign_public_transaction(tx: Transaction, signer) -> PublicTxAux:
    if not isinstance(tx, PUBLIC_TRANSACTIONS):
        raise InvalidArgument(f"{type(tx).__name__} is not a public staking transaction", field="tx")
    tx_aux = PublicTxAux(tx, signer.sign(tx.id()))
    LOG.debug("signed %s for %s", tx.NAME, format_staking_address(tx.address))
    return tx_aux


def verify_public_tx_aux(tx_aux: PublicTxAux, staking_address: Union[bytes, str], nonce: int,
                         chain_hex_id: Union[int, bytes, str]):
    """Assert a public envelope is for the expected account, nonce and chain,
    and was signed by that account."""
    if not isinstance(tx_aux, PublicTxAux):
        raise InvalidArgument("expected a public transaction envelope", field="tx_aux")
    expected = parse_staking_address(staking_address)
    chain_hex_id = parse_chain_hex_id(chain_hex_id)
    tx = tx_aux.tx

    if tx.address != expected:
        raise ConsistencyError(
            f"staking address mismatch: {format_staking_address(tx.address)} != {format_staking_address(expected)}",
            field="staking_address",
        )
    if tx.nonce != nonce:
        raise ConsistencyError(f"nonce mismatch: {tx.nonce} != {nonce}", field="nonce")
    if tx.attributes.chain_hex_id != chain_hex_id:
        raise ConsistencyError(
            f"chain hex id mismatch: {tx.attributes.chain_hex_id:#04x} != {chain_hex_id:#04x}",
            field="chain_hex_id",
        )
    signer = tx_aux.witness.recover(tx.id())
    if signer.staking_address() != expected:
        raise ConsistencyError("transaction was not signed by the staking account", field="witness")
