"""
cosigner: resumable, snapshot-threaded transaction building and N-party
Schnorr multisignatures.
"""

from .address import AddressParams, MultiSigAddress
from .builder import TransactionBuilder, TransferTransactionBuilder, WithdrawUnbondedTransactionBuilder
from .envelope import PublicTxAux, SignedTransaction, TxObfuscated, decode_tx_aux, encode_tx_aux
from .errors import (
    ConsistencyError, CosignerError, DecodingError, IncompleteState, InsufficientFunds, InvalidArgument,
    TransportError,
)
from .fee import LinearFee, Milli, parse_fee_config
from .keys import KeyPair, PrivateKey, PublicKey
from .multisig import MultiSigSession, Phase
from .network import Network
from .obfuscation import Features, ObfuscationRouter
from .signer import KeyPairSigner
from .transaction import (
    CouncilNode, DepositBondTx, NodeJoinTx, StakedState, TransferTx, TxAttributes, TxOut, TxoPointer,
    UnbondTx, UnjailTx, WithdrawUnbondedTx,
)
from .witness import MerkleProof, RecoverableWitness, TreeSigWitness

__version__ = "0.1.0"
