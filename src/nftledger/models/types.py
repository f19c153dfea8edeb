"""Custom column types for on-chain values."""

from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.types import TypeDecorator


class Uint256(TypeDecorator):
    """Unsigned 256-bit integer stored as NUMERIC(78, 0).

    BIGINT overflows for token ids above 2**63, so values go through NUMERIC
    and come back as Python ints instead of Decimals.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value < 0 or value >= 2**256:
            raise ValueError(f"Value out of uint256 range: {value}")
        return Decimal(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
