"""
Low stock detection.

An item is low when its quantity is at or below its threshold. The monitor
remembers which items it already reported and reports them again only after
their quantity has risen above the threshold and dropped back.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

DEFAULT_THRESHOLD = 5

LEVEL_OUT = "OUT"
LEVEL_LOW = "LOW"


@dataclass(frozen=True)
class LowStockItem:
    id: str
    name: str
    quantity: int
    threshold: int

    @property
    def level(self) -> str:
        return LEVEL_OUT if self.quantity <= 0 else LEVEL_LOW

    @property
    def is_critical(self) -> bool:
        return self.quantity <= 0


def effective_threshold(threshold: Optional[int], default: int = DEFAULT_THRESHOLD) -> int:
    return default if threshold is None else threshold


def is_low(quantity: int, threshold: Optional[int], default: int = DEFAULT_THRESHOLD) -> bool:
    return quantity <= effective_threshold(threshold, default)


def _field(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def find_low_stock(items: Iterable[Any], default: int = DEFAULT_THRESHOLD) -> List[LowStockItem]:
    """Return the low items among ``items`` (ORM rows or dicts), lowest quantity first."""
    low = []
    for item in items:
        quantity = _field(item, "quantity") or 0
        threshold = effective_threshold(_field(item, "low_stock_threshold"), default)
        if quantity <= threshold:
            low.append(
                LowStockItem(
                    id=str(_field(item, "id")),
                    name=_field(item, "name"),
                    quantity=quantity,
                    threshold=threshold,
                )
            )
    low.sort(key=lambda entry: (entry.quantity, entry.name or ""))
    return low


class LowStockMonitor:
    def __init__(self, default_threshold: int = DEFAULT_THRESHOLD) -> None:
        self.default_threshold = default_threshold
        self._notified: Set[str] = set()

    @property
    def notified(self) -> Set[str]:
        return set(self._notified)

    def check(self, items: Iterable[Any]) -> List[LowStockItem]:
        """Compare a fresh inventory snapshot and return only newly low items."""
        items = list(items)
        low = find_low_stock(items, self.default_threshold)
        low_ids = {entry.id for entry in low}

        # Recovered or deleted items can be reported again later
        self._notified &= low_ids

        fresh = [entry for entry in low if entry.id not in self._notified]
        self._notified.update(entry.id for entry in fresh)
        return fresh

    def reset(self) -> None:
        self._notified.clear()


def summarize(low_items: Iterable[LowStockItem]) -> Dict[str, List[LowStockItem]]:
    """Split low items into critical (out of stock) and low sections."""
    summary: Dict[str, List[LowStockItem]] = {"critical": [], "low": []}
    for entry in low_items:
        summary["critical" if entry.is_critical else "low"].append(entry)
    return summary
