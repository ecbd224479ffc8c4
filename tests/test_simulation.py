"""
Tests for the simulation context and its record.
"""

from pathlib import Path

import pytest

from plantfate.config import PlantTraits, SimulationConfig
from plantfate.errors import ConfigError, PreconditionViolation
from plantfate.simulation import (
    FLUX_COLUMNS,
    MISSING,
    STRUCTURE_COLUMNS,
    Simulation,
    SimulationRecord,
)


def make_test_config(**overrides) -> SimulationConfig:
    """Short run with a quarterly solver step."""
    settings = dict(
        t_end=2.0,
        report_interval=1.0,
        solver_step=0.25,
        first_clearing=1.0,
        random_seed=3,
    )
    settings.update(overrides)
    return SimulationConfig(**settings)


TRAITS = [
    PlantTraits(species_name="light_wood", wood_density=500.0),
    PlantTraits(species_name="dense_wood", wood_density=800.0),
]


class TestSimulationRun:
    """End-to-end run on small forcing files."""

    def test_short_run(self, met_file: Path, co2_file: Path) -> None:
        cfg = make_test_config(met_file=str(met_file), co2_file=str(co2_file))
        record = Simulation(cfg, TRAITS).run()

        assert len(record) == 3
        assert record.times == pytest.approx([0.0, 1.0, 2.0])
        assert len(record.flux_rows[0]) == len(FLUX_COLUMNS)
        assert len(record.structure_rows[0]) == len(STRUCTURE_COLUMNS)
        assert all(len(s) == 2 for s in record.seeds)
        assert record.clearings == [1.0]

    def test_report_columns(self, met_file: Path, co2_file: Path) -> None:
        cfg = make_test_config(met_file=str(met_file), co2_file=str(co2_file))
        record = Simulation(cfg, TRAITS).run()

        flux = record.flux_table()
        assert tuple(flux) == FLUX_COLUMNS
        assert flux["YEAR"].tolist() == [2000.0, 2001.0, 2002.0]
        assert flux["CR"] == pytest.approx(flux["CCR"] + flux["CFR"])

        structure = record.structure_table()
        assert tuple(structure) == STRUCTURE_COLUMNS
        assert (structure["PID"] == MISSING).all()
        assert (structure["MO"] == MISSING).all()
        assert structure["DE"][0] == pytest.approx(2.0)

    def test_constant_climate_without_files(self) -> None:
        cfg = make_test_config(t_end=1.0, clearing_enabled=False)
        sim = Simulation(cfg, TRAITS[:1])
        record = sim.run()
        assert sim.climate is None
        assert len(record) == 2
        assert record.clearings == []

    def test_summary(self) -> None:
        cfg = make_test_config(t_end=1.0, clearing_enabled=False)
        summary = Simulation(cfg, TRAITS[:1]).run().get_scalar_summary()
        assert set(summary) == {
            "Reports",
            "Clearings",
            "FinalCohorts",
            "FinalTime",
            "FinalBiomass",
            "FinalBasalArea",
            "FinalLAI",
            "MeanGPP",
            "MeanNPP",
        }
        assert summary["Reports"] == 2
        assert summary["FinalTime"] == pytest.approx(1.0)
        assert summary["FinalBiomass"] > 0.0

    def test_seed_history_smoothed(self) -> None:
        """Each species' recruitment filter sees one value per solver step."""
        cfg = make_test_config(t_end=1.0, clearing_enabled=False)
        sim = Simulation(cfg, TRAITS)
        sim.run()
        assert [len(h) for h in sim.seeds_hist] == [4, 4]


class TestSimulationErrors:
    def test_single_forcing_file_rejected(self, met_file: Path) -> None:
        cfg = make_test_config(met_file=str(met_file))
        with pytest.raises(ConfigError):
            Simulation(cfg, TRAITS).initialize()

    def test_start_before_forcing_rejected(self, met_file: Path, co2_file: Path) -> None:
        cfg = make_test_config(met_file=str(met_file), co2_file=str(co2_file), t_start=-1.0)
        with pytest.raises(ConfigError):
            Simulation(cfg, TRAITS).initialize()

    def test_no_species_rejected(self) -> None:
        with pytest.raises(ConfigError):
            Simulation(make_test_config(), [])

    def test_step_before_initialize(self) -> None:
        sim = Simulation(make_test_config(), TRAITS)
        with pytest.raises(PreconditionViolation):
            sim.after_step(0.1)


class TestSimulationRecord:
    def test_empty_summary(self) -> None:
        assert SimulationRecord().get_scalar_summary() == {"Reports": 0, "Clearings": 0}

    def test_empty_tables_keep_columns(self) -> None:
        flux = SimulationRecord().flux_table()
        assert tuple(flux) == FLUX_COLUMNS
        assert all(len(v) == 0 for v in flux.values())

    def test_print_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = make_test_config(t_end=1.0, clearing_enabled=False)
        Simulation(cfg, TRAITS[:1]).run().print_summary()
        out = capsys.readouterr().out
        assert "SIMULATION SUMMARY" in out
        assert "FinalBiomass" in out
