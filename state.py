from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from config import PARAMS


@dataclass(frozen=True)
class AlertEvent:
    timestamp: datetime
    symbol: str
    old_phase: str
    new_phase: str
    price: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.timestamp.astimezone(timezone.utc).replace(microsecond=0).isoformat(),
            "symbol": self.symbol,
            "oldPhase": self.old_phase,
            "newPhase": self.new_phase,
            "price": self.price,
            "score": round(self.score, 2),
        }


@dataclass(frozen=True)
class SymbolState:
    last_score: float
    last_phase: str


class StateStore:
    """
    Process-lifetime memory of the scanner.

    Holds the last score/phase seen per symbol and a bounded, newest-first
    log of phase transitions. Nothing is written to disk: a restart starts
    from an empty store, so no alert fires until a symbol is seen twice.
    """

    def __init__(self, alert_capacity: int = PARAMS["alert_capacity"]):
        self._lock = threading.Lock()
        self._symbols: dict[str, SymbolState] = {}
        self._alerts: deque[AlertEvent] = deque(maxlen=alert_capacity)

    @property
    def alert_capacity(self) -> int:
        return self._alerts.maxlen

    def get(self, symbol: str) -> Optional[SymbolState]:
        with self._lock:
            return self._symbols.get(symbol)

    def record(self, symbol: str, score: float, phase: str, price: float,
               now: Optional[datetime] = None) -> Optional[AlertEvent]:
        """
        Store the new score/phase for `symbol`.
        Returns the AlertEvent when the phase changed from a previous one.
        """
        with self._lock:
            prev = self._symbols.get(symbol)
            self._symbols[symbol] = SymbolState(score, phase)

            if prev is None or prev.last_phase == phase:
                return None

            event = AlertEvent(
                timestamp=now or datetime.now(timezone.utc),
                symbol=symbol,
                old_phase=prev.last_phase,
                new_phase=phase,
                price=price,
                score=score,
            )
            # newest first; the deque drops the oldest from the right
            self._alerts.appendleft(event)
            return event

    def alerts(self) -> list[AlertEvent]:
        with self._lock:
            return list(self._alerts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbols)
