"""Unit tests for test-data simulation."""

import anndata as ad
import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from openscpca_tools.core.simulation import (
    SimulationConfig,
    gene_means,
    simulate_adata,
    simulate_counts,
    simulate_obs,
    simulation_summary,
)


class TestSimulationConfig:
    def test_defaults(self):
        config = SimulationConfig()
        assert config.n_cells == 100
        assert config.seed == 2024

    def test_invalid_n_cells(self):
        with pytest.raises(ValueError):
            SimulationConfig(n_cells=0)

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "simulate.yaml"
        path.write_text("simulation:\n  n_cells: 25\n  permute_labels: true\n")
        config = SimulationConfig.from_yaml(path)
        assert config.n_cells == 25
        assert config.permute_labels is True


class TestSimulateCounts:
    def test_gene_means_from_layer(self, mock_adata):
        means = gene_means(mock_adata, "counts")
        assert means.shape == (mock_adata.n_vars,)
        assert (means >= 0).all()
        # First marker block is highly expressed in a quarter of the cells
        assert means[0] > means[-1]

    def test_counts_shape_and_type(self):
        rng = np.random.default_rng(0)
        counts = simulate_counts(np.array([0.0, 1.0, 50.0]), 500, rng)
        assert sparse.issparse(counts)
        assert counts.shape == (500, 3)
        dense = counts.toarray()
        assert dense[:, 0].sum() == 0
        assert dense[:, 2].mean() == pytest.approx(50.0, rel=0.1)

    def test_counts_are_reproducible(self):
        a = simulate_counts(np.ones(5), 10, np.random.default_rng(1))
        b = simulate_counts(np.ones(5), 10, np.random.default_rng(1))
        assert (a != b).nnz == 0


class TestSimulateObs:
    """Tests for label resampling."""

    def test_keeps_label_combinations(self, mock_adata):
        rng = np.random.default_rng(0)
        sim_obs = simulate_obs(mock_adata.obs, 300, rng, columns=["cell_type", "cluster"])
        source_pairs = set(zip(mock_adata.obs["cell_type"].astype(str), mock_adata.obs["cluster"].astype(str)))
        sim_pairs = set(zip(sim_obs["cell_type"].astype(str), sim_obs["cluster"].astype(str)))
        assert sim_pairs <= source_pairs

    def test_categories_preserved(self, mock_adata):
        sim_obs = simulate_obs(mock_adata.obs, 20, np.random.default_rng(0), columns=["cell_type"])
        assert list(sim_obs["cell_type"].cat.categories) == list(mock_adata.obs["cell_type"].cat.categories)
        assert sim_obs.index[0] == "sim-0"

    def test_default_columns(self, mock_adata):
        mock_adata.obs["n_counts"] = 1.0
        sim_obs = simulate_obs(mock_adata.obs, 10, np.random.default_rng(0))
        assert "n_counts" not in sim_obs.columns
        assert "singler_celltype" in sim_obs.columns

    def test_permute(self, mock_adata):
        sim_obs = simulate_obs(
            mock_adata.obs, 400, np.random.default_rng(3), columns=["cell_type", "cluster"], permute=True
        )
        sim_pairs = set(zip(sim_obs["cell_type"].astype(str), sim_obs["cluster"].astype(str)))
        assert len(sim_pairs) > 4

    def test_given_rows(self, mock_adata):
        rows = np.array([3, 3, 0])
        sim_obs = simulate_obs(mock_adata.obs, 3, np.random.default_rng(0), columns=["cell_type"], rows=rows)
        expected = mock_adata.obs["cell_type"].astype(str).to_numpy()[rows]
        assert list(sim_obs["cell_type"].astype(str)) == list(expected)

    def test_missing_column(self, mock_adata):
        with pytest.raises(KeyError):
            simulate_obs(mock_adata.obs, 5, np.random.default_rng(0), columns=["missing"])

    def test_no_label_columns(self):
        obs = pd.DataFrame({"n_genes": [1, 2, 3]}, index=["a", "b", "c"])
        sim_obs = simulate_obs(obs, 4, np.random.default_rng(0))
        assert sim_obs.shape == (4, 0)


class TestSimulateAdata:
    """Tests for whole-object simulation."""

    def test_shape_and_layout(self, mock_adata):
        sim = simulate_adata(mock_adata, SimulationConfig(n_cells=50, layer="counts"))
        assert sim.shape == (50, mock_adata.n_vars)
        assert list(sim.var_names) == list(mock_adata.var_names)
        assert "counts" in sim.layers
        assert sim.obsm["X_umap"].shape == (50, 2)
        assert sim.uns["simulation"]["source_n_cells"] == mock_adata.n_obs
        # No source barcode is carried over
        assert not set(sim.obs_names) & set(mock_adata.obs_names)

    def test_reproducible(self, mock_adata):
        config = SimulationConfig(n_cells=30, seed=7, layer="counts")
        a = simulate_adata(mock_adata, config)
        b = simulate_adata(mock_adata, config)
        assert (a.X != b.X).nnz == 0
        pd.testing.assert_frame_equal(a.obs, b.obs)

    def test_umap_follows_labels(self):
        labels = np.repeat(["A", "B"], 20)
        source = ad.AnnData(
            X=np.ones((40, 3), dtype=np.float32),
            obs=pd.DataFrame({"cell_type": labels}, index=[f"cell{i}" for i in range(40)]),
        )
        source.obsm["X_umap"] = np.where(labels == "A", 0.0, 100.0)[:, None] * np.ones((1, 2))

        sim = simulate_adata(source, SimulationConfig(n_cells=200, seed=11))
        near_b = sim.obsm["X_umap"][:, 0] > 50
        assert (near_b == (sim.obs["cell_type"] == "B").to_numpy()).all()

    def test_without_embeddings(self, mock_adata):
        sim = simulate_adata(mock_adata, SimulationConfig(n_cells=10, keep_embeddings=False))
        assert "X_umap" not in sim.obsm

    def test_empty_source_raises(self, mock_adata):
        with pytest.raises(ValueError):
            simulate_adata(mock_adata[:0].copy())

    def test_writes_h5ad(self, mock_adata, tmp_path):
        sim = simulate_adata(mock_adata, SimulationConfig(n_cells=20, layer="counts"))
        path = tmp_path / "SCPCL000001_processed_rna.h5ad"
        sim.write_h5ad(path)
        assert path.exists()

    def test_summary(self, mock_adata):
        sim = simulate_adata(mock_adata, SimulationConfig(n_cells=20, layer="counts"))
        summary = simulation_summary(sim)
        assert summary["n_cells"] == 20
        assert summary["n_genes"] == mock_adata.n_vars
        assert summary["median_counts_per_cell"] > 0
        assert "cell_type" in summary["label_columns"]
