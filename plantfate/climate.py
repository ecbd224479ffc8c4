"""
Climate forcing: monthly meteorology and CO2 series.

Each forcing file is a comma-separated table with one header row. Record
times are measured in years since a base year:

    t = (year - base_year) + (month - 1) / 12

A ForcingSeries holds one table and a cursor (t_prev, t_next) bracketing
the current simulation time. The cursor only moves forward. When the
table is exhausted it restarts at the first record and the cycle period
is added to its time offset, so forcing repeats indefinitely while time
keeps increasing.

ClimateProvider combines a meteorology series and a CO2 series into a
ClimateState for any requested time. Queries must be non-decreasing; a
repeated query at the current time returns the cached state.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

import numpy as np

from plantfate.errors import ConfigError, PreconditionViolation

logger = logging.getLogger(__name__)

MET_COLUMNS = ("tc", "vpd", "ppfd", "swp")
CO2_COLUMNS = ("co2",)


class ClimateState(NamedTuple):
    """Environmental drivers at one instant."""

    tc: float = 25.0  # air temperature, deg C
    ppfd: float = 600.0  # photosynthetic photon flux density, umol/m2/s
    vpd: float = 1000.0  # vapour pressure deficit, Pa
    co2: float = 400.0  # ppm
    swp: float = -1.0  # soil water potential, MPa


def _record_times(years: np.ndarray, months: np.ndarray, base_year: float) -> np.ndarray:
    return (years - base_year) + (months - 1.0) / 12.0


@dataclass
class ForcingSeries:
    """
    One forcing table with a forward-only cursor.

    Attributes:
        path: Source file
        columns: Names of the value columns
        times: Record times within one pass (strictly increasing)
        values: Record values, shape (n_records, len(columns))
        period: Time added to the offset at each wrap
        offset: Accumulated wrap offset
        wraps: Number of completed passes through the table
    """

    path: str
    columns: tuple[str, ...]
    times: np.ndarray
    values: np.ndarray
    period: float
    offset: float = 0.0
    wraps: int = 0
    cursor: int = 1
    t_prev: float = field(init=False)
    t_next: float = field(init=False)
    values_prev: np.ndarray = field(init=False)
    values_next: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        self.reset()

    @classmethod
    def from_csv(cls, path: str | Path, kind: str, base_year: float = 2000.0) -> "ForcingSeries":
        """
        Read a forcing file.

        Args:
            path: CSV file with one header row
            kind: "met" for (year, month, tc, vpd, ppfd, swp) rows, "co2"
                for (year, co2) or (year, month, co2) rows
            base_year: Calendar year of t = 0

        Returns:
            ForcingSeries positioned at its first two records

        Raises:
            ConfigError: file missing or unreadable, malformed row, wrong
                column count, fewer than two records, or times not
                strictly increasing
        """
        path = str(path)
        if kind not in ("met", "co2"):
            raise ConfigError("kind", f"unknown forcing kind '{kind}'")
        if not Path(path).is_file():
            raise ConfigError(path, "could not open forcing file")
        try:
            table = np.loadtxt(path, delimiter=",", skiprows=1, ndmin=2, dtype=float)
        except OSError as e:
            raise ConfigError(path, f"could not read forcing file: {e}") from e
        except ValueError as e:
            raise ConfigError(path, f"malformed forcing record: {e}") from e

        if table.shape[0] < 2:
            raise ConfigError(path, f"need at least two records, found {table.shape[0]}")
        if not np.all(np.isfinite(table)):
            raise ConfigError(path, "forcing records contain non-finite values")

        ncol = table.shape[1]
        if kind == "met":
            if ncol < 6:
                raise ConfigError(
                    path,
                    f"expected columns (year, month, tc, vpd, ppfd, swp), found {ncol}",
                )
            times = _record_times(table[:, 0], table[:, 1], base_year)
            values = table[:, 2:6]
            columns = MET_COLUMNS
        else:
            if ncol == 2:
                times = _record_times(table[:, 0], np.ones(table.shape[0]), base_year)
                values = table[:, 1:2]
            elif ncol >= 3:
                times = _record_times(table[:, 0], table[:, 1], base_year)
                values = table[:, 2:3]
            else:
                raise ConfigError(path, f"expected (year, [month,] co2), found {ncol} column")
            columns = CO2_COLUMNS

        if np.any(np.diff(times) <= 0):
            bad = int(np.argmax(np.diff(times) <= 0)) + 1
            raise ConfigError(path, f"record times not strictly increasing at data row {bad + 1}")

        period = float((times[-1] - times[0]) + (times[-1] - times[-2]))
        logger.debug(
            "Loaded %d %s records from %s (t = %.3f .. %.3f)",
            len(times),
            kind,
            path,
            times[0],
            times[-1],
        )
        return cls(
            path=path,
            columns=columns,
            times=np.asarray(times, dtype=float),
            values=np.asarray(values, dtype=float),
            period=period,
        )

    def __len__(self) -> int:
        return len(self.times)

    def reset(self) -> None:
        """Prime the cursor from the first two records."""
        self.offset = 0.0
        self.wraps = 0
        self.cursor = 1
        self.t_prev = float(self.times[0])
        self.values_prev = self.values[0].copy()
        self.t_next = float(self.times[1])
        self.values_next = self.values[1].copy()

    def _read_next(self) -> None:
        self.cursor += 1
        if self.cursor == len(self.times):
            self.cursor = 0
            self.offset += self.period
            self.wraps += 1
            logger.info(
                "Forcing %s exhausted, restarting with offset %.3f years (pass %d)",
                self.path,
                self.offset,
                self.wraps + 1,
            )
        self.t_next = float(self.times[self.cursor] + self.offset)
        self.values_next = self.values[self.cursor].copy()

    def advance(self, t: float) -> None:
        """Move the cursor forward until t_prev <= t < t_next."""
        while t >= self.t_next:
            self.t_prev = self.t_next
            self.values_prev = self.values_next
            self._read_next()
            logger.debug("Forcing %s: t = %.4f -> next record %.4f", self.path, t, self.t_next)

    def interpolate(self, t: float, linear: bool = False) -> np.ndarray:
        """
        Values at t from the bracketing records.

        Hold-previous unless linear is set, in which case each column is
        interpolated in time between t_prev and t_next.
        """
        if not linear:
            return self.values_prev.copy()
        w = (t - self.t_prev) / (self.t_next - self.t_prev)
        w = min(max(w, 0.0), 1.0)
        return (1.0 - w) * self.values_prev + w * self.values_next


class ClimateProvider:
    """
    Climate state at monotonically non-decreasing query times.

    Use `initialize` to build one from forcing files.
    """

    def __init__(
        self,
        met: ForcingSeries,
        co2: ForcingSeries,
        interpolate: bool = False,
        update_met: bool = True,
        update_co2: bool = True,
        base_year: float = 2000.0,
    ):
        self.met = met
        self.co2 = co2
        self.interpolate = interpolate
        self.update_met = update_met
        self.update_co2 = update_co2
        self.base_year = base_year

        self.t_now = met.t_prev
        self.clim = self._compose(met.values_prev, co2.values_prev)

    @classmethod
    def initialize(
        cls,
        met_file: str | Path,
        co2_file: str | Path,
        *,
        base_year: float = 2000.0,
        interpolate: bool = False,
        update_met: bool = True,
        update_co2: bool = True,
    ) -> "ClimateProvider":
        """
        Open both forcing files and prime their cursors.

        The provider starts at the time of the first meteorology record,
        with the first record of each series as its state.

        Raises:
            ConfigError: if either file cannot be read
        """
        met = ForcingSeries.from_csv(met_file, "met", base_year)
        co2 = ForcingSeries.from_csv(co2_file, "co2", base_year)
        logger.info(
            "Climate initialized from %s and %s (interpolation: %s)",
            met.path,
            co2.path,
            "linear" if interpolate else "hold-previous",
        )
        return cls(
            met,
            co2,
            interpolate=interpolate,
            update_met=update_met,
            update_co2=update_co2,
            base_year=base_year,
        )

    def _compose(self, met_values: np.ndarray, co2_values: np.ndarray) -> ClimateState:
        met = dict(zip(MET_COLUMNS, met_values.tolist(), strict=True))
        return ClimateState(
            tc=met["tc"],
            ppfd=met["ppfd"],
            vpd=met["vpd"],
            co2=float(co2_values[0]),
            swp=met["swp"],
        )

    def state_at(self, t: float) -> ClimateState:
        """
        Climate at time t.

        Args:
            t: Years since base_year, not earlier than the last query

        Returns:
            ClimateState at t

        Raises:
            PreconditionViolation: if t is earlier than the last query
        """
        if t == self.t_now:
            return self.clim
        if t < self.t_now:
            raise PreconditionViolation(
                "ClimateProvider.state_at",
                f"time moved backwards from {self.t_now} to {t}",
            )

        if self.update_met:
            self.met.advance(t)
            met_values = self.met.interpolate(t, self.interpolate)
        else:
            met_values = self.met.values_prev
        if self.update_co2:
            self.co2.advance(t)
            co2_values = self.co2.interpolate(t, self.interpolate)
        else:
            co2_values = self.co2.values_prev

        self.t_now = t
        self.clim = self._compose(met_values, co2_values)
        return self.clim

    def _calendar(self, t: float) -> str:
        year = int(np.floor(t))
        month = (t - year) * 12.0 + 1.0
        return f"{self.base_year + year:.0f}.{month:.2f}"

    def describe(self, t: float | None = None) -> str:
        """Summary of the bracketing records and the current state."""
        if t is None:
            t = self.t_now
        met = self.met
        prev = dict(zip(MET_COLUMNS, met.values_prev.tolist(), strict=True))
        nxt = dict(zip(MET_COLUMNS, met.values_next.tolist(), strict=True))
        lines = [
            f"Climate at t = {self._calendar(t)}",
            f"prev: {self._calendar(met.t_prev)} | {prev['vpd']} {prev['ppfd']}",
            f"now : {self._calendar(t)} | {self.clim.vpd} {self.clim.ppfd}",
            f"next: {self._calendar(met.t_next)} | {nxt['vpd']} {nxt['ppfd']}",
        ]
        return "\n".join(lines)
