"""
Test Suite for Data Loader Module
=================================

Tests for configuration loading, CSV/XLSX ingestion and validation.
"""

import pytest
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cartcast.data_loader import (
    CsvDatasetLoader,
    ExcelDatasetLoader,
    get_data_summary,
    get_loader,
    load_config,
    load_data,
    validate_data,
)
from cartcast.dataset import TabularDataset


@pytest.fixture
def sample_csv(tmp_path):
    """Small CSV with a date column, two numeric columns and a text column."""
    path = tmp_path / "sales.csv"
    path.write_text(
        "Date, sales, temp, region\n"
        "2024-01-01, 10, 1.5, north\n"
        "2024-01-02, 12, , south\n"
        "2024-01-03, 14, 2.5, north\n"
        "2024-01-04, 15, 3.0, east\n"
    )
    return path


class TestLoadData:
    """Tests for file ingestion."""

    def test_csv(self, sample_csv):
        dataset = load_data(str(sample_csv))

        assert dataset.columns == ("Date", "sales", "temp", "region")
        assert len(dataset) == 4
        assert dataset.timestamp_column == "Date"
        assert dataset.numeric_columns == ("sales", "temp")
        assert dataset.rows[1]["temp"].is_absent
        assert dataset.rows[0]["region"].value == "north"

    def test_excel(self, tmp_path):
        pytest.importorskip("openpyxl")
        path = tmp_path / "book.xlsx"
        pd.DataFrame({
            "time": pd.date_range("2024-03-01", periods=3, freq="D"),
            "load": [1.0, 2.0, 3.0],
        }).to_excel(path, index=False)

        dataset = load_data(str(path))

        assert dataset.timestamp_column == "time"
        assert dataset.numeric_columns == ("load",)
        assert dataset.rows[2]["time"].value == pd.Timestamp("2024-03-03")

    def test_explicit_loader(self, tmp_path):
        """An injected loader overrides the extension lookup."""
        path = tmp_path / "data.txt"
        path.write_text("a;b\n1;2\n3;4\n")
        dataset = load_data(str(path), loader=CsvDatasetLoader(sep=";"))
        assert dataset.numeric_columns == ("a", "b")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "absent.csv"))

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{}")
        with pytest.raises(ValueError, match="Unsupported file type"):
            load_data(str(path))

    def test_expected_columns(self, sample_csv):
        with pytest.raises(ValueError, match="Expected 3 columns"):
            load_data(str(sample_csv), expected_columns=3)

    def test_loader_choice(self):
        assert isinstance(get_loader("x.CSV"), CsvDatasetLoader)
        assert isinstance(get_loader("x.xlsx"), ExcelDatasetLoader)


class TestLoadConfig:

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("features:\n  lags: [1, 7]\nmodel:\n  max_depth: 3\n")
        config = load_config(str(path))
        assert config['features']['lags'] == [1, 7]
        assert config['model']['max_depth'] == 3

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_project_config(self):
        """The shipped configuration carries the default settings."""
        config = load_config(str(Path(__file__).parent.parent / "config" / "config.yaml"))
        assert config['features']['lags'] == [1, 2, 3]
        assert config['model']['max_depth'] == 4
        assert config['model']['min_leaf'] == 8
        assert config['training']['min_examples'] == 20


class TestValidateData:
    """Tests for data quality checks."""

    def test_issues_reported(self, sample_csv):
        dataset = load_data(str(sample_csv))
        is_valid, report = validate_data(dataset)

        assert not is_valid
        assert report['missing_by_column'] == {'temp': 1}
        assert report['ignored_columns'] == ['region']

    def test_clean_dataset(self):
        dataset = TabularDataset.from_records(["a", "b"], [[1, 2], [3, 4]])
        is_valid, report = validate_data(dataset)
        assert is_valid
        assert report['issues'] == []

    def test_no_numeric_columns(self):
        dataset = TabularDataset.from_records(["label"], [["x"], ["y"]])
        is_valid, report = validate_data(dataset)
        assert not is_valid
        assert "No numeric columns found" in report['issues']

    def test_invalid_timestamps(self):
        dataset = TabularDataset.from_records(
            ["date", "a"],
            [["2024-01-01", 1], ["2024-01-02", 2], ["soon", 3]]
        )
        _, report = validate_data(dataset)
        assert "Rows without a valid timestamp: 1" in report['issues']

    def test_strict_raises(self, sample_csv):
        dataset = load_data(str(sample_csv))
        with pytest.raises(ValueError, match="validation failed"):
            validate_data(dataset, strict=True)

    def test_summary_statistics(self, sample_csv):
        summary = get_data_summary(load_data(str(sample_csv)))
        assert summary['statistics']['sales']['max'] == 15.0
        assert summary['statistics']['temp']['count'] == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
