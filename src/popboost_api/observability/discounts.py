from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class DiscountIssuanceSnapshot:
    outcomes: Dict[str, int]
    issued: Dict[str, Dict[str, int]]
    commerce: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "outcomes": dict(self.outcomes),
            "issued": {key: dict(value) for key, value in self.issued.items()},
            "commerce": dict(self.commerce),
        }


class DiscountObservabilityStore:
    """Collect discount issuance telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._outcomes: Dict[str, int] = defaultdict(int)
        self._issued_by_value_type: Dict[str, int] = defaultdict(int)
        self._issued_by_source: Dict[str, int] = defaultdict(int)
        self._commerce: Dict[str, int] = defaultdict(int)

    def record_outcome(self, outcome: str) -> None:
        with self._lock:
            self._outcomes[outcome] += 1

    def record_issued(self, *, value_type: str, is_new: bool) -> None:
        with self._lock:
            self._outcomes["issued"] += 1
            self._issued_by_value_type[value_type] += 1
            self._issued_by_source["created" if is_new else "cached"] += 1

    def record_commerce_call(self, result: str) -> None:
        with self._lock:
            self._commerce[result] += 1

    def snapshot(self) -> DiscountIssuanceSnapshot:
        with self._lock:
            outcomes = dict(self._outcomes)
            issued = {
                "by_value_type": dict(self._issued_by_value_type),
                "by_source": dict(self._issued_by_source),
            }
            commerce = dict(self._commerce)
        return DiscountIssuanceSnapshot(outcomes=outcomes, issued=issued, commerce=commerce)

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
            self._issued_by_value_type.clear()
            self._issued_by_source.clear()
            self._commerce.clear()


_STORE = DiscountObservabilityStore()


def get_discount_store() -> DiscountObservabilityStore:
    return _STORE


__all__ = ["get_discount_store", "DiscountObservabilityStore", "DiscountIssuanceSnapshot"]
