"""Unit tests for reference-based annotation."""

import inspect
import json

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from openscpca_tools.core.annotation import (
    ANNOTATION_COLUMNS,
    AnnotationConfig,
    AnnotationEngine,
    build_reference_profiles,
    compute_deltas,
    convert_ids_to_symbols,
    export_annotations,
    label_summary,
    load_reference_profiles,
    prune_assignments,
    score_cells,
    summarize_scores,
)
from openscpca_tools.core.annotation.__main__ import main as annotation_main
from openscpca_tools.core.annotation.scoring import _iter_chunks


class TestConvertIdsToSymbols:
    def test_symbols_become_var_names(self, mock_adata):
        converted = convert_ids_to_symbols(mock_adata)
        assert converted.var_names[0] == "GENE0"
        # Genes without a symbol keep their id
        assert converted.var_names[-1] == mock_adata.var_names[-1]
        assert list(converted.var["gene_ids"]) == list(mock_adata.var_names)
        # Input is left untouched
        assert mock_adata.var_names[0].startswith("ENSG")

    def test_duplicated_symbols_made_unique(self, small_adata):
        small_adata.var["gene_symbol"] = ["DUP"] * 3 + [f"G{i}" for i in range(small_adata.n_vars - 3)]
        converted = convert_ids_to_symbols(small_adata)
        assert converted.var_names.is_unique
        assert "DUP" in converted.var_names

    def test_missing_column_raises(self, mock_adata):
        with pytest.raises(KeyError):
            convert_ids_to_symbols(mock_adata, "symbol")


class TestReferenceProfiles:
    def test_load(self, reference_path):
        profiles = load_reference_profiles(reference_path)
        assert profiles.shape == (38, 4)
        assert profiles.dtypes.unique().tolist() == [np.dtype(float)]

    def test_load_drops_duplicated_genes(self, tmp_path):
        path = tmp_path / "profiles.tsv"
        path.write_text("gene\tT\tB\nCD3E\t5\t0\nCD3E\t4\t0\nMS4A1\t0\t6\n")
        profiles = load_reference_profiles(path)
        assert list(profiles.index) == ["CD3E", "MS4A1"]
        assert profiles.loc["CD3E", "T"] == 5.0

    def test_load_non_numeric_raises(self, tmp_path):
        path = tmp_path / "profiles.tsv"
        path.write_text("gene\tT\nCD3E\thigh\n")
        with pytest.raises(ValueError, match="non-numeric"):
            load_reference_profiles(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_reference_profiles(tmp_path / "missing.tsv")

    def test_build_from_adata(self, mock_adata):
        profiles = build_reference_profiles(mock_adata, "cell_type")
        assert profiles.shape == (mock_adata.n_vars, 4)
        assert list(profiles.columns) == sorted(profiles.columns)

    def test_build_min_cells(self, mock_adata):
        with pytest.raises(ValueError):
            build_reference_profiles(mock_adata, "cell_type", min_cells=10_000)


class TestScoreCells:
    """Tests for correlation scoring."""

    def test_recovers_true_labels(self, mock_adata, reference_profiles):
        query = convert_ids_to_symbols(mock_adata)
        scores = score_cells(query, reference_profiles, threads=1)
        assert scores.shape == (mock_adata.n_obs, 4)
        assert list(scores.index) == list(mock_adata.obs_names)
        predicted = scores.idxmax(axis=1)
        accuracy = (predicted.to_numpy() == mock_adata.obs["cell_type"].astype(str).to_numpy()).mean()
        assert accuracy > 0.9
        assert scores.to_numpy().max() <= 1.0 + 1e-9
        assert scores.to_numpy().min() >= -1.0 - 1e-9

    def test_parallel_matches_serial(self, mock_adata, reference_profiles):
        query = convert_ids_to_symbols(mock_adata)
        serial = score_cells(query, reference_profiles, threads=1, chunk_size=50)
        parallel = score_cells(query, reference_profiles, threads=2, chunk_size=50)
        pd.testing.assert_frame_equal(serial, parallel)

    def test_uneven_chunks_match_single_chunk(self, mock_adata, reference_profiles):
        query = convert_ids_to_symbols(mock_adata)
        chunked = score_cells(query, reference_profiles, threads=1, chunk_size=64)
        whole = score_cells(query, reference_profiles, threads=1, chunk_size=10_000)
        pd.testing.assert_frame_equal(chunked, whole)

    def test_chunks_are_densified_lazily(self):
        matrix = sparse.random(7, 5, density=0.5, format="csr", random_state=0)
        chunks = _iter_chunks(matrix, np.array([4, 0]), chunk_size=3)
        assert inspect.isgenerator(chunks)

        first = next(chunks)
        assert isinstance(first, np.ndarray)
        np.testing.assert_allclose(first, matrix[:3].toarray()[:, [4, 0]])
        assert [block.shape[0] for block in chunks] == [3, 1]

    def test_pearson(self, mock_adata, reference_profiles):
        query = convert_ids_to_symbols(mock_adata)
        scores = score_cells(query, reference_profiles, method="pearson", threads=1)
        assert np.isfinite(scores.to_numpy()).all()

    def test_no_shared_genes_raises(self, mock_adata, reference_profiles):
        with pytest.raises(ValueError, match="share no genes"):
            score_cells(mock_adata, reference_profiles)

    def test_missing_layer_raises(self, mock_adata, reference_profiles):
        query = convert_ids_to_symbols(mock_adata)
        with pytest.raises(KeyError):
            score_cells(query, reference_profiles, layer="logcounts")


class TestSummary:
    """Tests for labels, delta_next and pruning."""

    def test_compute_deltas(self):
        scores = pd.DataFrame([[0.9, 0.5, 0.1], [0.2, 0.3, 0.25]], columns=["A", "B", "C"])
        best_idx, delta_next, delta_med = compute_deltas(scores)
        assert list(best_idx) == [0, 1]
        np.testing.assert_allclose(delta_next, [0.4, 0.05])
        np.testing.assert_allclose(delta_med, [0.4, 0.05])

    def test_single_label_delta_next_is_nan(self):
        scores = pd.DataFrame({"A": [0.5, 0.7]}, index=["c1", "c2"])
        table = summarize_scores(scores)
        assert table["delta_next"].isna().all()
        assert list(table["pruned_labels"]) == ["A", "A"]

    def test_low_outlier_is_pruned(self):
        labels = pd.Series(["A"] * 21)
        delta_med = np.append(np.linspace(0.45, 0.55, 20), 0.0)
        delta_next = np.full(21, 0.1)
        prune = prune_assignments(labels, delta_med, delta_next)
        assert prune[-1]
        assert not prune[:-1].any()

    def test_outliers_tested_per_label(self):
        # 0.1 is an outlier for A but typical for B
        labels = pd.Series(["A"] * 10 + ["B"] * 10)
        delta_med = np.concatenate([
            np.append(np.linspace(0.8, 0.9, 9), 0.1),
            np.linspace(0.05, 0.15, 10),
        ])
        prune = prune_assignments(labels, delta_med, np.full(20, 0.1))
        assert prune[9]
        assert not prune[10:].any()

    def test_zero_mad_prunes_below_median(self):
        # Most cells share one delta, so the MAD is 0 and the threshold is the median
        labels = pd.Series(["A"] * 5)
        delta_med = np.array([1.0, 1.0, 1.0, 1.0, 0.2])
        prune = prune_assignments(labels, delta_med, np.full(5, 0.1))
        assert list(prune) == [False, False, False, False, True]

    def test_identical_deltas_prune_nothing(self):
        labels = pd.Series(["A"] * 4)
        prune = prune_assignments(labels, np.full(4, 0.5), np.full(4, 0.1))
        assert not prune.any()

    def test_min_diff_next(self):
        labels = pd.Series(["A"] * 4)
        delta_med = np.full(4, 0.5)
        delta_next = np.array([0.2, 0.01, 0.3, np.nan])
        prune = prune_assignments(labels, delta_med, delta_next, min_diff_next=0.05)
        assert list(prune) == [False, True, False, False]

    def test_min_diff_med(self):
        labels = pd.Series(["A"] * 3)
        prune = prune_assignments(
            labels, np.array([0.5, 0.05, 0.4]), np.full(3, 0.1), min_diff_med=0.1
        )
        assert list(prune) == [False, True, False]

    def test_table_layout(self):
        scores = pd.DataFrame(
            [[0.9, 0.1], [0.2, 0.8], [0.6, 0.55]],
            index=["c1", "c2", "c3"],
            columns=["T", "B"],
        )
        table = summarize_scores(scores, min_diff_next=0.1)
        assert list(table.columns) == ANNOTATION_COLUMNS
        assert list(table["labels"]) == ["T", "B", "T"]
        assert pd.isna(table.loc[2, "pruned_labels"])
        assert table.loc[0, "pruned_labels"] == "T"

    def test_empty_scores(self):
        table = summarize_scores(pd.DataFrame(columns=["T", "B"], dtype=float))
        assert table.empty
        assert list(table.columns) == ANNOTATION_COLUMNS

    def test_no_labels_raises(self):
        with pytest.raises(ValueError):
            summarize_scores(pd.DataFrame(index=["c1"]))

    def test_label_summary(self):
        table = pd.DataFrame({
            "barcodes": ["c1", "c2", "c3"],
            "labels": ["T", "T", "B"],
            "delta_next": [0.2, 0.4, 0.1],
            "pruned_labels": ["T", np.nan, "B"],
        })
        summary = label_summary(table)
        assert list(summary.columns) == ["label", "n_cells", "n_pruned", "median_delta_next"]
        t_row = summary[summary["label"] == "T"].iloc[0]
        assert t_row["n_cells"] == 2
        assert t_row["n_pruned"] == 1
        assert t_row["median_delta_next"] == pytest.approx(0.3)


class TestAnnotationConfig:
    def test_defaults(self):
        config = AnnotationConfig()
        assert config.threads == 4
        assert config.seed == 2025
        assert config.symbol_column == "gene_symbol"

    def test_invalid_method(self):
        with pytest.raises(ValueError):
            AnnotationConfig(method="kendall")

    def test_invalid_threads(self):
        with pytest.raises(ValueError):
            AnnotationConfig(threads=0)

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "annotation.yaml"
        path.write_text("annotation:\n  threads: 2\n  nmads: 2.5\n  unknown_key: 1\n")
        config = AnnotationConfig.from_yaml(path)
        assert config.threads == 2
        assert config.nmads == 2.5
        assert AnnotationConfig.from_dict(config.to_dict()) == config


class TestAnnotationEngine:
    """Tests for the annotation engine and export."""

    def test_run_seeds_global_rng(self, mock_adata, reference_profiles):
        engine = AnnotationEngine(AnnotationConfig(threads=1, seed=11))
        result = engine.run(mock_adata, reference_profiles)
        after_run = np.random.random()
        np.random.seed(11)
        assert after_run == np.random.random()
        assert result.provenance["config"]["seed"] == 11

    def test_run(self, mock_adata, reference_profiles):
        engine = AnnotationEngine(AnnotationConfig(threads=1))
        result = engine.run(mock_adata, reference_profiles)
        assert len(result.table) == mock_adata.n_obs
        assert list(result.table.columns) == ANNOTATION_COLUMNS
        assert 0 <= result.n_pruned < mock_adata.n_obs
        assert result.provenance["n_reference_labels"] == 4
        assert set(result.label_summary()["label"]) <= set(reference_profiles.columns)

    def test_missing_symbol_column_scores_existing_names(self, mock_adata, reference_profiles):
        engine = AnnotationEngine(AnnotationConfig(threads=1, symbol_column="symbol"))
        with pytest.raises(ValueError, match="share no genes"):
            engine.run(mock_adata, reference_profiles)

    def test_annotate_adata(self, mock_adata, reference_profiles):
        engine = AnnotationEngine(AnnotationConfig(threads=1))
        result = engine.run(mock_adata, reference_profiles)
        engine.annotate_adata(mock_adata, result, prefix="ref")
        for column in ("ref_label", "ref_pruned_label", "ref_delta_next"):
            assert column in mock_adata.obs.columns
        assert mock_adata.obs["ref_label"].notna().all()

    def test_export(self, mock_adata, reference_profiles, tmp_output_dir):
        result = AnnotationEngine(AnnotationConfig(threads=1)).run(mock_adata, reference_profiles)
        paths = export_annotations(
            result,
            tmp_output_dir / "annotations.tsv",
            scores_path=tmp_output_dir / "scores.tsv.gz",
            summary_json=tmp_output_dir / "summary.json",
        )

        table = pd.read_csv(paths["annotations"], sep="\t")
        assert list(table.columns) == ANNOTATION_COLUMNS
        assert len(table) == mock_adata.n_obs

        scores = pd.read_csv(paths["scores"], sep="\t", index_col="barcodes")
        assert scores.shape == (mock_adata.n_obs, 4)

        with open(paths["summary"]) as f:
            summary = json.load(f)
        assert summary["n_cells"] == mock_adata.n_obs
        assert summary["provenance"]["config"]["seed"] == 2025


class TestAnnotationMain:
    def test_main(self, adata_path, reference_path, tmp_path):
        output_tsv = tmp_path / "results" / "annotations.tsv"
        exit_code = annotation_main([
            "--input", str(adata_path),
            "--reference", str(reference_path),
            "--output-tsv", str(output_tsv),
            "--output-summary", str(tmp_path / "results" / "summary.json"),
            "--threads", "1",
            "--log-dir", str(tmp_path / "logs"),
        ])
        assert exit_code == 0
        assert output_tsv.exists()
        assert list((tmp_path / "logs").glob("annotation_*.log"))
        runs = (tmp_path / "logs" / "annotation_runs.jsonl").read_text().splitlines()
        record = json.loads(runs[-1])
        assert record["n_cells"] == 200
        assert record["seed"] == 2025
        assert "timestamp" in record

    def test_main_missing_input(self, reference_path, tmp_path):
        with pytest.raises(FileNotFoundError):
            annotation_main([
                "--input", str(tmp_path / "missing.h5ad"),
                "--reference", str(reference_path),
                "--output-tsv", str(tmp_path / "out.tsv"),
                "--log-dir", str(tmp_path / "logs"),
            ])
