"""
Shared fixtures: small forcing files written to a temporary directory.
"""

from pathlib import Path

import pytest


def write_met_file(path: Path, years: tuple[int, ...] = (2000,)) -> Path:
    """Monthly meteorology with tc = 10 * month and distinct other columns."""
    lines = ["Year,Month,Tc,VPD,PPFD,SWP"]
    for year in years:
        for month in range(1, 13):
            lines.append(
                f"{year},{month},{10.0 * month},{1000.0 + 10 * month},"
                f"{500.0 + month},{-0.1 * month}"
            )
    path.write_text("\n".join(lines) + "\n")
    return path


def write_co2_file(path: Path) -> Path:
    """Yearly CO2 records from 2000 to 2002."""
    path.write_text("Year,CO2\n2000,370\n2001,372\n2002,374\n")
    return path


@pytest.fixture
def met_file(tmp_path: Path) -> Path:
    return write_met_file(tmp_path / "met.csv")


@pytest.fixture
def co2_file(tmp_path: Path) -> Path:
    return write_co2_file(tmp_path / "co2.csv")
