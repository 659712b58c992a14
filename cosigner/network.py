"""
Network <-> chain hex id table. Pure lookups, no cached globals.
"""

from enum import Enum
from typing import Union

from .errors import InvalidArgument

MAINNET_CHAIN_HEX_ID = 0x2A
TESTNET_CHAIN_HEX_ID = 0x42


class Network(str, Enum):
    MAINNET = "Mainnet"
    TESTNET = "Testnet"
    DEVNET = "Devnet"

    @classmethod
    def parse(cls, value: str) -> "Network":
        for network in cls:
            if network.value == value:
                return network
        raise InvalidArgument(f"Unrecognized network {value}", field="network")


def parse_chain_hex_id(value: Union[int, bytes, str]) -> int:
    """Accept an int, a single byte, or two hex characters."""
    if isinstance(value, bool):
        raise InvalidArgument("Chain hex id must be 8 bit long", field="chain_hex_id")
    if isinstance(value, int):
        if not 0 <= value <= 0xFF:
            raise InvalidArgument("Chain hex id must be 8 bit long", field="chain_hex_id")
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 1:
            raise InvalidArgument("Chain hex id must be 8 bit long", field="chain_hex_id")
        return value[0]
    if isinstance(value, str):
        if len(value) != 2:
            raise InvalidArgument("Chain id must be 2 hex characters", field="chain_hex_id")
        try:
            return int(value, 16)
        except ValueError:
            raise InvalidArgument("Chain id must be 2 hex characters", field="chain_hex_id")
    raise InvalidArgument(f"unsupported chain hex id type {type(value).__name__}", field="chain_hex_id")


def network_from_chain_hex_id(chain_hex_id: int) -> Network:
    if chain_hex_id == MAINNET_CHAIN_HEX_ID:
        return Network.MAINNET
    if chain_hex_id == TESTNET_CHAIN_HEX_ID:
        return Network.TESTNET
    return Network.DEVNET


def chain_hex_id_from_network(network: Network) -> int:
    if network == Network.MAINNET:
        return MAINNET_CHAIN_HEX_ID
    if network == Network.TESTNET:
        return TESTNET_CHAIN_HEX_ID
    raise InvalidArgument("Devnet has no fixed chain hex id", field="network")
