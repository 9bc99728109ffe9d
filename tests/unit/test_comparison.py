"""Unit tests for the label comparison module."""

import json

import numpy as np
import pandas as pd
import pytest

from openscpca_tools.core.comparison import (
    ComparisonConfig,
    LabelComparisonEngine,
    best_matches,
    compute_jaccard_matrix,
    contingency_table,
    export_comparison,
    export_comparisons,
    jaccard_from_counts,
    jaccard_long_table,
    plot_jaccard_heatmap,
    prepare_labels,
)


class TestContingencyTable:
    """Tests for label pair counting."""

    def test_counts_and_order(self, labels_obs):
        """Labels are sorted with the NA label last."""
        counts = contingency_table(labels_obs, "a", "b")
        assert list(counts.index) == ["B", "T", "Unknown"]
        assert list(counts.columns) == ["x", "y"]
        assert counts.loc["T", "x"] == 2
        assert counts.loc["B", "y"] == 2
        assert counts.loc["Unknown", "y"] == 1
        assert counts.to_numpy().sum() == len(labels_obs)

    def test_axis_names_are_source_columns(self, labels_obs):
        counts = contingency_table(labels_obs, "a", "b")
        assert counts.index.name == "a"
        assert counts.columns.name == "b"

    def test_custom_na_label(self, labels_obs):
        counts = contingency_table(labels_obs, "a", "b", na_label="Unclassified")
        assert counts.index[-1] == "Unclassified"

    def test_drop_na(self, labels_obs):
        counts = contingency_table(labels_obs, "a", "b", drop_na=True)
        assert "Unknown" not in counts.index
        assert counts.to_numpy().sum() == 5

    def test_min_cells_drops_rare_labels(self, labels_obs):
        counts = contingency_table(labels_obs, "a", "b", min_cells=2)
        assert "Unknown" not in counts.index
        assert counts.to_numpy().sum() == 5

    def test_missing_column_raises(self, labels_obs):
        with pytest.raises(KeyError):
            contingency_table(labels_obs, "a", "missing")

    def test_empty_table_raises(self):
        with pytest.raises(ValueError):
            prepare_labels(pd.DataFrame({"a": [], "b": []}), "a", "b")

    def test_all_filtered_raises(self, labels_obs):
        with pytest.raises(ValueError, match="No cells left"):
            prepare_labels(labels_obs, "a", "b", min_cells=100)

    def test_numeric_labels_become_strings(self, cell_table):
        labels = prepare_labels(cell_table, "cluster", "method_b")
        assert set(labels["label_a"]) == {"1", "2", "3"}


class TestJaccard:
    """Tests for Jaccard similarity."""

    def test_known_values(self, labels_obs):
        jaccard = compute_jaccard_matrix(labels_obs, "a", "b")
        assert jaccard.loc["T", "x"] == pytest.approx(2 / 3)
        assert jaccard.loc["B", "y"] == pytest.approx(0.5)
        assert jaccard.loc["T", "y"] == pytest.approx(1 / 6)
        assert jaccard.loc["Unknown", "y"] == pytest.approx(0.25)
        assert jaccard.loc["B", "x"] == 0.0

    def test_values_in_unit_interval(self, cell_table):
        jaccard = compute_jaccard_matrix(cell_table, "method_a", "method_b")
        values = jaccard.to_numpy()
        assert np.all(values >= 0.0)
        assert np.all(values <= 1.0)

    def test_identical_labelings_give_identity(self, cell_table):
        jaccard = compute_jaccard_matrix(cell_table, "method_b", "method_b")
        np.testing.assert_allclose(jaccard.to_numpy(), np.eye(len(jaccard)))

    def test_swapping_labelings_transposes(self, labels_obs):
        ab = compute_jaccard_matrix(labels_obs, "a", "b")
        ba = compute_jaccard_matrix(labels_obs, "b", "a")
        pd.testing.assert_frame_equal(
            ab, ba.T, check_names=False
        )

    def test_zero_union_gives_zero(self):
        counts = pd.DataFrame([[0, 0], [0, 3]], index=["p", "q"], columns=["r", "s"])
        jaccard = jaccard_from_counts(counts)
        assert jaccard.loc["p", "r"] == 0.0
        assert jaccard.loc["q", "s"] == 1.0

    def test_long_table_sorted(self, labels_obs):
        long = jaccard_long_table(compute_jaccard_matrix(labels_obs, "a", "b"))
        assert list(long.columns) == ["label_a", "label_b", "jaccard"]
        assert len(long) == 6
        assert long["jaccard"].is_monotonic_decreasing
        assert tuple(long.iloc[0][["label_a", "label_b"]]) == ("T", "x")

    def test_best_matches(self, labels_obs):
        best = best_matches(compute_jaccard_matrix(labels_obs, "a", "b"))
        assert best.loc["T", "best_match"] == "x"
        assert best.loc["B", "best_match"] == "y"
        assert best.loc["T", "jaccard"] == pytest.approx(2 / 3)


class TestLabelComparisonEngine:
    """Tests for the comparison engine and export."""

    def test_run(self, cell_table):
        engine = LabelComparisonEngine.from_columns("method_a", "method_b")
        result = engine.run(cell_table)
        assert result.n_cells == len(cell_table)
        assert result.best.loc["T cell", "best_match"] == "T-cells"
        summary = result.summary()
        assert summary["label_a"] == "method_a"
        assert summary["n_labels_a"] == result.jaccard.shape[0]
        assert "T cell" in summary["best_matches"]

    def test_run_many(self, cell_table):
        engine = LabelComparisonEngine.from_columns("method_a", "method_b", drop_na=True)
        results = engine.run_many(cell_table, ["method_b", "cluster"])
        assert set(results) == {"method_b", "cluster"}
        assert results["cluster"].config.label_b == "cluster"
        assert results["cluster"].config.drop_na is True

    def test_config_from_yaml(self, tmp_path):
        path = tmp_path / "comparison.yaml"
        path.write_text(
            "comparison:\n"
            "  label_a: singler_celltype\n"
            "  label_b: cluster\n"
            "  min_cells: 5\n"
            "  heatmap:\n"
            "    cmap: magma\n"
            "    file_format: pdf\n"
        )
        config = ComparisonConfig.from_yaml(path)
        assert config.label_a == "singler_celltype"
        assert config.min_cells == 5
        assert config.heatmap.cmap == "magma"
        assert config.to_dict()["heatmap"]["file_format"] == "pdf"

    def test_export(self, cell_table, tmp_output_dir):
        result = LabelComparisonEngine.from_columns("method_a", "method_b").run(cell_table)
        paths = export_comparison(result, tmp_output_dir, prefix="sample")

        for key in ("jaccard", "counts", "long", "summary", "heatmap"):
            assert paths[key].exists()
        assert paths["jaccard"].name == "sample_jaccard_matrix.tsv"

        matrix = pd.read_csv(paths["jaccard"], sep="\t", index_col=0)
        np.testing.assert_allclose(matrix.to_numpy(), result.jaccard.to_numpy())

        with open(paths["summary"]) as f:
            summary = json.load(f)
        assert summary["n_cells"] == len(cell_table)
        assert "provenance" in summary

    def test_export_without_plot(self, cell_table, tmp_output_dir):
        result = LabelComparisonEngine.from_columns("method_a", "cluster").run(cell_table)
        paths = export_comparison(result, tmp_output_dir, plot=False)
        assert "heatmap" not in paths
        assert (tmp_output_dir / "jaccard_matrix.tsv").exists()

    def test_export_many(self, cell_table, tmp_output_dir):
        engine = LabelComparisonEngine.from_columns("method_a", "method_b")
        results = engine.run_many(cell_table, ["method_b", "cluster"])
        paths = export_comparisons(results, tmp_output_dir)
        assert paths["combined"]["heatmap"].exists()
        assert (tmp_output_dir / "cluster_jaccard_matrix.tsv").exists()


class TestHeatmap:
    """Tests for heatmap rendering."""

    def test_saves_figure(self, labels_obs, tmp_output_dir):
        jaccard = compute_jaccard_matrix(labels_obs, "a", "b")
        path = plot_jaccard_heatmap(jaccard, tmp_output_dir / "heatmap.png", title="a vs b")
        assert path.exists()
        assert path.stat().st_size > 0

    def test_draws_into_axis(self, labels_obs):
        import matplotlib.pyplot as plt

        fig, ax = plt.subplots()
        returned = plot_jaccard_heatmap(compute_jaccard_matrix(labels_obs, "a", "b"), ax=ax)
        assert returned is ax
        assert ax.get_ylabel() == "a"
        plt.close(fig)

    def test_empty_matrix_raises(self):
        with pytest.raises(ValueError):
            plot_jaccard_heatmap(pd.DataFrame())
