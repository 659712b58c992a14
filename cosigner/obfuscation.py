"""
Turning a signed transaction into a broadcast-ready ``TxAux``.

Public staking transactions are wrapped in plaintext. Everything else is
encrypted by one of the ``TransactionObfuscation`` strategies; which one is
picked from the ``Features`` mode and the scheme of the Tendermint address.
Oracle calls are made once: there are no retries, and any transport or RPC
failure surfaces as ``TransportError``.
"""

import base64
import itertools
import json
import logging
from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlparse

import requests
from bitsv.utils import bytes_to_hex
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from .codec import decode_all
from .envelope import (
    EnclaveTxAux, INIT_VECTOR_SIZE, PublicTxAux, SignedTransaction, TxAux, TxObfuscated, decode_tx_aux,
    enclave_tx_aux,
)
from .errors import DecodingError, InvalidArgument, TransportError
from .transaction import PUBLIC_TRANSACTIONS

LOG = logging.getLogger(__name__)

TX_QUERY_PATH = "txquery"
MOCK_ENCRYPT_PATH = "mockencrypt"

WEBSOCKET_SCHEMES = ("ws", "wss")
HTTP_SCHEMES = ("http", "https")

_request_ids = itertools.count(1)


class Features(str, Enum):
    ALL_DEFAULT = "AllDefault"
    MOCK_ABCI = "MockAbci"
    MOCK_OBFUSCATION = "MockObfuscation"

    @classmethod
    def parse(cls, value) -> "Features":
        if isinstance(value, Features):
            return value
        for features in cls:
            if features.value == value:
                return features
        raise InvalidArgument(f"Unrecognized features {value!r}", field="features")


# ------------------------------
# Tendermint JSON-RPC clients
# ------------------------------
def _request(method: str, params: Dict) -> Dict:
    return {"jsonrpc": "2.0", "id": next(_request_ids), "method": method, "params": params}


def _result(response: Dict, method: str) -> Dict:
    if not isinstance(response, dict):
        raise TransportError(f"malformed {method} response", field="tendermint_address")
    if response.get("error"):
        error = response["error"]
        message = error.get("data") or error.get("message") if isinstance(error, dict) else error
        raise TransportError(f"{method} failed: {message}", field="tendermint_address")
    if "result" not in response:
        raise TransportError(f"{method} response has no result", field="tendermint_address")
    return response["result"]


class RpcClient:
    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = timeout

    def call(self, method: str, params: Dict) -> Dict:
        raise NotImplementedError

    def abci_query(self, path: str, data: bytes = b"") -> bytes:
        """Run an ABCI query and return the decoded response value."""
        result = self.call("abci_query", {"path": path, "data": bytes_to_hex(data), "prove": False})
        response = result.get("response") if isinstance(result, dict) else None
        if not isinstance(response, dict):
            raise TransportError("malformed abci_query response", field="tendermint_address")
        code = response.get("code", 0)
        if code:
            raise TransportError(
                f"abci_query {path} returned code {code}: {response.get('log', '')}", field="tendermint_address"
            )
        try:
            return base64.b64decode(response.get("value") or "", validate=True)
        except ValueError as e:
            raise TransportError(f"abci_query {path} returned invalid base64: {e}", field="tendermint_address")


class HttpRpcClient(RpcClient):
    def call(self, method: str, params: Dict) -> Dict:
        LOG.debug("POST %s %s", self.url, method)
        try:
            resp = requests.post(self.url, json=_request(method, params), timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            raise TransportError(f"{method} request to {self.url} failed: {e}", field="tendermint_address")
        except ValueError as e:
            raise TransportError(f"{method} response is not JSON: {e}", field="tendermint_address")
        return _result(body, method)


class WebsocketRpcClient(RpcClient):
    def call(self, method: str, params: Dict) -> Dict:
        request = _request(method, params)
        LOG.debug("websocket %s %s", self.url, method)
        try:
            with connect(self.url, open_timeout=self.timeout, close_timeout=self.timeout) as ws:
                ws.send(json.dumps(request))
                # skip event notifications until our reply arrives
                while True:
                    body = json.loads(ws.recv())
                    if not isinstance(body, dict) or body.get("id") == request["id"]:
                        break
        except (WebSocketException, OSError) as e:
            raise TransportError(f"{method} over websocket {self.url} failed: {e}", field="tendermint_address")
        except ValueError as e:
            raise TransportError(f"{method} response is not JSON: {e}", field="tendermint_address")
        return _result(body, method)


def rpc_client_for(tendermint_address: str, timeout: Optional[float] = None) -> RpcClient:
    scheme = urlparse(tendermint_address or "").scheme.lower()
    if scheme in WEBSOCKET_SCHEMES:
        return WebsocketRpcClient(tendermint_address, timeout)
    if scheme in HTTP_SCHEMES:
        return HttpRpcClient(tendermint_address, timeout)
    raise TransportError("Unsupported Tendermint client protocol", field="tendermint_address")


# ------------------------------
# Obfuscation strategies
# ------------------------------
class TransactionObfuscation:
    def encrypt(self, signed_tx: SignedTransaction) -> TxAux:
        raise NotImplementedError


class DefaultTransactionObfuscation(TransactionObfuscation):
    """Encrypts through the tx-query enclave advertised by the node."""

    def __init__(self, enclave_url: str, timeout: Optional[float] = None):
        self.enclave_url = enclave_url
        self.timeout = timeout

    @classmethod
    def from_tx_query(cls, client: RpcClient) -> "DefaultTransactionObfuscation":
        address = client.abci_query(TX_QUERY_PATH).decode("utf-8", errors="replace").strip()
        if not address:
            raise TransportError("node did not return a tx query address", field="tendermint_address")
        if "://" not in address:
            address = "http://" + address
        LOG.info("using tx query enclave at %s", address)
        return cls(address, client.timeout)

    def encrypt(self, signed_tx: SignedTransaction) -> TxAux:
        try:
            resp = requests.post(
                self.enclave_url,
                data=signed_tx.encode(),
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"enclave request to {self.enclave_url} failed: {e}", field="tx_query_address")
        try:
            payload = decode_all(resp.content, TxObfuscated.decode)
        except DecodingError as e:
            raise TransportError(f"enclave returned a malformed payload: {e}", field="tx_query_address")
        if payload.txid != signed_tx.txid():
            raise TransportError("enclave payload is for a different transaction", field="tx_query_address")
        return enclave_tx_aux(signed_tx, payload)


class MockAbciTransactionObfuscation(TransactionObfuscation):
    """Lets a mock ABCI application build the envelope."""

    def __init__(self, client: RpcClient):
        self.client = client

    def encrypt(self, signed_tx: SignedTransaction) -> TxAux:
        value = self.client.abci_query(MOCK_ENCRYPT_PATH, signed_tx.encode())
        try:
            return decode_tx_aux(value)
        except DecodingError as e:
            raise TransportError(f"mock ABCI returned a malformed envelope: {e}", field="tendermint_address")


class MockTransactionCipher(TransactionObfuscation):
    """Local, deterministic and not confidential: the payload is the plaintext."""

    def encrypt(self, signed_tx: SignedTransaction) -> TxAux:
        payload = TxObfuscated(
            txid=signed_tx.txid(),
            key_from=0,
            init_vector=bytes(INIT_VECTOR_SIZE),
            txpayload=signed_tx.encode(),
        )
        return enclave_tx_aux(signed_tx, payload)

    @staticmethod
    def decrypt(tx_aux: TxAux) -> SignedTransaction:
        if not isinstance(tx_aux, EnclaveTxAux):
            raise InvalidArgument(f"{type(tx_aux).__name__} carries no obfuscated payload", field="tx_aux")
        return SignedTransaction.decode(tx_aux.payload.txpayload)


# ------------------------------
# Router
# ------------------------------
class ObfuscationRouter:
    def __init__(self, features=Features.ALL_DEFAULT, tendermint_address: str = "",
                 timeout: Optional[float] = None):
        self.features = Features.parse(features)
        self.tendermint_address = tendermint_address
        self.timeout = timeout

    def strategy(self) -> TransactionObfuscation:
        if self.features == Features.MOCK_OBFUSCATION:
            return MockTransactionCipher()
        client = rpc_client_for(self.tendermint_address, self.timeout)
        if self.features == Features.MOCK_ABCI:
            return MockAbciTransactionObfuscation(client)
        return DefaultTransactionObfuscation.from_tx_query(client)

    def finalize(self, signed_tx: SignedTransaction) -> TxAux:
        if isinstance(signed_tx.tx, PUBLIC_TRANSACTIONS):
            return PublicTxAux(signed_tx.tx, signed_tx.witness)
        tx_aux = self.strategy().encrypt(signed_tx)
        LOG.info("obfuscated %s transaction %s (%s)", signed_tx.tx.NAME, bytes_to_hex(tx_aux.txid()),
                 self.features.value)
        return tx_aux
