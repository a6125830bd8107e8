"""Error taxonomy for the rollup engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.schemas import RollupReport


class RollupError(Exception):
    """Base class for rollup failures."""


class InvalidPeriod(RollupError, ValueError):
    """A period that is not a positive minute count or not a rollup target."""

    def __init__(self, period: object, detail: str = "period must be a positive number of minutes") -> None:
        super().__init__(f"Invalid period {period!r}: {detail}.")
        self.period = period


class StoreUnavailable(RollupError):
    """The persistence layer could not serve a read or write."""


class StoreTimeout(StoreUnavailable):
    """A store call of a sensor's unit of work ran past ``store_timeout``."""


class PartialBatchFailure(RollupError):
    """Some sensors in a rollup tick failed while others succeeded."""

    def __init__(self, report: "RollupReport") -> None:
        failed = ", ".join(report.failed)
        super().__init__(
            f"Rollup for period {report.period} failed for {len(report.failed)} sensor(s): {failed}"
        )
        self.report = report
