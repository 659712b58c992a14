"""
Linear fee model: fee = constant + coefficient * encoded size, both given
with milli precision. The resulting fee is rounded up to a whole coin unit.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Union

from .errors import InvalidArgument

MAX_COIN = 10 ** 19
MILLI = 1000


@dataclass(frozen=True, order=True)
class Milli:
    """Fixed-point number stored as thousandths."""
    thousandths: int

    @classmethod
    def parse(cls, value: Union[str, int, Decimal], field_name: str = "milli") -> "Milli":
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise InvalidArgument(f"invalid milli value {value!r}", field=field_name)
        if not amount.is_finite() or amount < 0:
            raise InvalidArgument(f"milli value must be a non-negative number, got {value!r}", field=field_name)
        scaled = amount * MILLI
        if scaled != scaled.to_integral_value():
            raise InvalidArgument(f"milli value {value!r} has more than 3 decimals", field=field_name)
        return cls(int(scaled))

    def __str__(self) -> str:
        whole, frac = divmod(self.thousandths, MILLI)
        return f"{whole}.{frac:03d}"


@dataclass(frozen=True)
class LinearFee:
    constant: Milli
    coefficient: Milli

    def calculate(self, num_bytes: int) -> int:
        """Fee in coin units for a transaction of ``num_bytes`` encoded bytes."""
        total = self.constant.thousandths + self.coefficient.thousandths * num_bytes
        fee = -(-total // MILLI)
        if fee > MAX_COIN:
            raise InvalidArgument("fee exceeds maximum coin value", field="fee")
        return fee

    def to_config(self) -> Dict[str, str]:
        return {
            "algorithm": "LinearFee",
            "constant": str(self.constant),
            "coefficient": str(self.coefficient),
        }


ZERO_LINEAR_FEE = LinearFee(Milli(0), Milli(0))


def parse_fee_config(config: Union[Dict, LinearFee]) -> LinearFee:
    if isinstance(config, LinearFee):
        return config
    if not isinstance(config, dict):
        raise InvalidArgument("fee config must be a mapping", field="fee_config")
    algorithm = config.get("algorithm")
    if algorithm != "LinearFee":
        raise InvalidArgument(f"Expected LinearFee but got {algorithm}", field="fee_config.algorithm")
    for key in ("constant", "coefficient"):
        if key not in config:
            raise InvalidArgument(f"missing {key} in LinearFee config", field=f"fee_config.{key}")
    return LinearFee(
        constant=Milli.parse(config["constant"], "fee_config.constant"),
        coefficient=Milli.parse(config["coefficient"], "fee_config.coefficient"),
    )


def check_coin(value: int, field_name: str = "value") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"coin value must be an integer, got {value!r}", field=field_name)
    if not 0 <= value <= MAX_COIN:
        raise InvalidArgument(f"coin value {value} out of range", field=field_name)
    return value


def sum_coins(values, field_name: str = "value") -> int:
    total = 0
    for value in values:
        total += check_coin(value, field_name)
    return check_coin(total, field_name)
