"""Unit tests for label harmonization and consensus."""

import logging

import numpy as np
import pandas as pd
import pytest

from openscpca_tools.core.harmonization import (
    HarmonizationMap,
    agreement_rate,
    consensus_labels,
    consensus_reference,
    harmonize_labels,
    normalize_label,
    summarize_harmonization,
)


class TestNormalizeLabel:
    def test_collapses_whitespace(self):
        assert normalize_label("  T   cell ") == "T cell"

    def test_missing_values(self):
        assert normalize_label(None) is None
        assert normalize_label(np.nan) is None
        assert normalize_label("   ") is None


class TestHarmonizationMap:
    """Tests for HarmonizationMap."""

    def test_lookup_is_case_insensitive(self):
        hmap = HarmonizationMap({"T-cells": "T cell"})
        assert hmap.lookup("t-CELLS") == "T cell"
        assert hmap.lookup(" T-cells ") == "T cell"

    def test_case_sensitive(self):
        hmap = HarmonizationMap({"T-cells": "T cell"}, case_sensitive=True)
        assert hmap.lookup("t-cells") == "Unknown"

    def test_unmapped_and_missing_become_unknown(self):
        hmap = HarmonizationMap({"T-cells": "T cell"}, unknown_label="Unclassified")
        assert hmap.lookup("NK cells") == "Unclassified"
        assert hmap.lookup(None) == "Unclassified"

    def test_conflicting_entries_raise(self):
        with pytest.raises(ValueError, match="maps to both"):
            HarmonizationMap({"T-cells": "T cell", "t-cells": "NK cell"})

    def test_vocabulary(self):
        hmap = HarmonizationMap({"a": "X", "b": "Y", "c": "X"})
        assert hmap.vocabulary == ["X", "Y"]

    def test_from_dict_grouped_layout(self):
        hmap = HarmonizationMap.from_dict({"labels": {"T cell": ["T-cells", "CD4 T"]}})
        assert hmap.lookup("CD4 T") == "T cell"
        # Harmonized labels map to themselves
        assert hmap.lookup("T cell") == "T cell"

    def test_from_dict_flat_layout(self):
        hmap = HarmonizationMap.from_dict({"labels": {"T-cells": "T cell"}, "unknown_label": "NA"})
        assert hmap.lookup("T-cells") == "T cell"
        assert hmap.unknown_label == "NA"

    def test_from_dict_skips_null_values(self, tmp_path):
        path = tmp_path / "null_map.yaml"
        path.write_text("labels:\n  T-cells: T cell\n  doublet:\n  B cell: [B-cells, null]\n")
        hmap = HarmonizationMap.from_yaml(path)
        assert hmap.lookup("doublet") == "Unknown"
        assert hmap.vocabulary == ["B cell", "T cell"]

    def test_from_yaml(self, harmonization_yaml):
        hmap = HarmonizationMap.load(harmonization_yaml)
        assert hmap.name == "test_map"
        assert hmap.lookup("CD14+ monocyte") == "Monocyte"

    def test_from_table(self, tmp_path):
        path = tmp_path / "label_map.tsv"
        pd.DataFrame({
            "original_label": ["T-cells", "B-cells", "Doublets"],
            "harmonized_label": ["T cell", "B cell", None],
        }).to_csv(path, sep="\t", index=False)

        hmap = HarmonizationMap.load(path)
        assert hmap.name == "label_map"
        assert hmap.lookup("B-cells") == "B cell"
        # Empty harmonized label leaves the original unmapped
        assert hmap.lookup("Doublets") == "Unknown"

    def test_from_table_missing_column(self, tmp_path):
        path = tmp_path / "bad_map.csv"
        pd.DataFrame({"from": ["a"], "to": ["b"]}).to_csv(path, index=False)
        with pytest.raises(KeyError):
            HarmonizationMap.from_table(path)

    def test_harmonize_warns_once_per_label(self, caplog):
        hmap = HarmonizationMap({"T-cells": "T cell"}, name="test")
        labels = pd.Series(["T-cells", "NK", "NK", None], name="method")
        with caplog.at_level(logging.WARNING):
            result = hmap.harmonize(labels)
        assert list(result) == ["T cell", "Unknown", "Unknown", "Unknown"]
        assert result.name == "method"
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "NK" in warnings[0].getMessage()

    def test_unmapped(self):
        hmap = HarmonizationMap({"T-cells": "T cell"})
        assert hmap.unmapped(pd.Series(["T-cells", "NK", "B", None])) == ["B", "NK"]

    def test_to_frame(self):
        frame = HarmonizationMap({"b": "Y", "a": "X"}).to_frame()
        assert list(frame.columns) == ["original_label", "harmonized_label"]
        assert list(frame["original_label"]) == ["a", "b"]


class TestHarmonizeLabels:
    def test_adds_column(self, cell_table, harmonization_yaml):
        hmap = HarmonizationMap.load(harmonization_yaml)
        result = harmonize_labels(cell_table, "method_b", hmap)
        assert "method_b_harmonized" in result.columns
        assert "method_b_harmonized" not in cell_table.columns
        assert set(result["method_b_harmonized"]) <= {"T cell", "B cell", "Monocyte"}

    def test_categorical_input(self, mock_adata):
        hmap = HarmonizationMap({"T cell": "T", "B cell": "B"})
        result = harmonize_labels(mock_adata.obs, "cell_type", hmap, output_column="broad")
        assert set(result["broad"]) == {"T", "B", "Unknown"}

    def test_summary(self, cell_table, harmonization_yaml):
        hmap = HarmonizationMap.load(harmonization_yaml)
        harmonized = harmonize_labels(cell_table, "method_b", hmap)
        summary = summarize_harmonization(harmonized, "method_b", "method_b_harmonized")
        assert list(summary.columns) == ["original_label", "harmonized_label", "n_cells"]
        assert summary["n_cells"].sum() == len(cell_table)
        row = summary[summary["original_label"] == "CD14+ monocyte"].iloc[0]
        assert row["harmonized_label"] == "Monocyte"


class TestConsensus:
    """Tests for consensus labels."""

    @pytest.fixture
    def harmonized(self) -> pd.DataFrame:
        return pd.DataFrame({
            "m1": ["T", "T", "B", "Unknown", "T", None],
            "m2": ["T", "B", "B", "B", "T", "T"],
            "m3": ["T", "B", "Unknown", "B", "B", "T"],
        })

    def test_all_strategy(self, harmonized):
        result = consensus_labels(harmonized, ["m1", "m2"])
        assert list(result) == ["T", "Unknown", "B", "Unknown", "T", "Unknown"]
        assert result.name == "consensus"

    def test_majority_strategy(self, harmonized):
        result = consensus_labels(harmonized, ["m1", "m2", "m3"], strategy="majority")
        assert list(result) == ["T", "B", "B", "B", "T", "T"]

    def test_majority_needs_strict_majority(self):
        df = pd.DataFrame({"m1": ["T"], "m2": ["B"]})
        assert consensus_labels(df, ["m1", "m2"], strategy="majority").iloc[0] == "Unknown"

    def test_needs_two_columns(self, harmonized):
        with pytest.raises(ValueError, match="at least two"):
            consensus_labels(harmonized, ["m1"])

    def test_unknown_strategy(self, harmonized):
        with pytest.raises(ValueError):
            consensus_labels(harmonized, ["m1", "m2"], strategy="any")

    def test_reference_table(self, harmonized):
        table = consensus_reference(harmonized, ["m1", "m2"])
        assert {"m1", "m2", "consensus", "n_cells"} <= set(table.columns)
        assert table["n_cells"].sum() == len(harmonized)
        assert table["n_cells"].is_monotonic_decreasing

    def test_agreement_rate(self, harmonized):
        # Known in both: rows 0, 1, 2, 4
        assert agreement_rate(harmonized, "m1", "m2") == pytest.approx(0.75)

    def test_agreement_rate_no_overlap(self):
        df = pd.DataFrame({"a": ["Unknown"], "b": ["T"]})
        assert np.isnan(agreement_rate(df, "a", "b"))
