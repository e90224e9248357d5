# core/clock.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Hora real, leída en el momento de la llamada."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Reloj congelado (tests / reimpresiones)."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()

    def advance(self, **delta) -> None:
        self.moment = self.moment + timedelta(**delta)


system_clock = SystemClock()


def resolve(clock: Optional[Clock]) -> Clock:
    return clock if clock is not None else system_clock
