# src/services/position_service/app/core/position_models.py
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional


@dataclass(frozen=True)
class TradeImpact:
    """The signed contribution of one trade to one security's net position."""
    trade_id: int
    security_code: str
    quantity: int
    cancelled: bool = False


class PositionAccumulator:
    """
    Working map of security code to net quantity, owned by a single
    recalculation. Contributions to the same code merge by addition.
    """
    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._quantities: Dict[str, int] = dict(initial or {})

    def reset(self, security_codes: Iterable[str]) -> None:
        for code in security_codes:
            self._quantities[code] = 0

    def add(self, security_code: str, quantity: int) -> None:
        self._quantities[security_code] = self._quantities.get(security_code, 0) + quantity

    def quantity(self, security_code: str) -> int:
        return self._quantities.get(security_code, 0)

    def codes(self):
        return set(self._quantities)
