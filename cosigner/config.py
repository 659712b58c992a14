import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .errors import InvalidArgument
from .fee import LinearFee, Milli
from .network import TESTNET_CHAIN_HEX_ID, Network, network_from_chain_hex_id, parse_chain_hex_id
from .obfuscation import Features, ObfuscationRouter

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_TENDERMINT_ADDRESS = "ws://localhost:26657/websocket"


@dataclass(frozen=True)
class Settings:
    tendermint_address: str = DEFAULT_TENDERMINT_ADDRESS
    features: Features = Features.ALL_DEFAULT
    chain_hex_id: int = TESTNET_CHAIN_HEX_ID
    fee_algorithm: LinearFee = field(default_factory=lambda: LinearFee(Milli(1100), Milli(1250)))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        level = env.get("COSIGNER_LOG_LEVEL", defaults.log_level).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise InvalidArgument(f"unknown log level {level}", field="COSIGNER_LOG_LEVEL")
        chain_hex_id = defaults.chain_hex_id
        if "COSIGNER_CHAIN_HEX_ID" in env:
            chain_hex_id = parse_chain_hex_id(env["COSIGNER_CHAIN_HEX_ID"])
        fee = LinearFee(
            Milli.parse(env.get("COSIGNER_FEE_CONSTANT", str(defaults.fee_algorithm.constant)),
                        "COSIGNER_FEE_CONSTANT"),
            Milli.parse(env.get("COSIGNER_FEE_COEFFICIENT", str(defaults.fee_algorithm.coefficient)),
                        "COSIGNER_FEE_COEFFICIENT"),
        )
        return cls(
            tendermint_address=env.get("COSIGNER_TENDERMINT_ADDRESS", defaults.tendermint_address),
            features=Features.parse(env.get("COSIGNER_FEATURES", defaults.features.value)),
            chain_hex_id=chain_hex_id,
            fee_algorithm=fee,
            log_level=level,
        )

    @property
    def network(self) -> Network:
        return network_from_chain_hex_id(self.chain_hex_id)

    def router(self, timeout: Optional[float] = None) -> ObfuscationRouter:
        return ObfuscationRouter(self.features, self.tendermint_address, timeout)


def configure_logging(level="INFO"):
    logging.basicConfig(level=level, format=LOG_FORMAT)
