"""Unit tests for the reference TCGA stages."""

import numpy as np
import pandas as pd
import pytest

from tcga_explorer.io.fetch import ResourceFetcher
from tcga_explorer.pipeline import (
    FetchError,
    PipelineConfig,
    PipelineConfigError,
    PipelineOrchestrator,
    PipelineState,
    RetryPolicy,
    TransformError,
    UnitStatus,
    WorkUnit,
)
from tcga_explorer.stages import (
    CLINICAL,
    COMPOSITION,
    DE_RESULTS,
    EXPRESSION,
    FEATURE_MATRIX,
    METRICS,
    MODEL,
    NORMALIZED,
    RISK_SCORES,
    STAGE_ORDER,
    ClinicalIntegrator,
    CompositionScorer,
    DataAcquirer,
    DifferentialExpression,
    Preprocessor,
    RiskModel,
    SurvivalModelBuilder,
    build_stages,
    center_batches,
    median_of_ratios,
)
from tests.fixtures import create_mock_clinical, create_mock_counts, make_barcode, write_cohort


@pytest.fixture
def normalized(mock_counts, brca_unit):
    return Preprocessor()({"expression": mock_counts}, brca_unit)["normalized"]


class TestCatalog:
    """Tests for build_stages."""

    def test_stage_order_and_toggles(self):
        stages = build_stages(PipelineConfig())
        assert [s.name for s in stages] == STAGE_ORDER
        assert [s.toggle for s in stages] == [
            "download_data",
            None,
            "perform_de_analysis",
            "perform_cell_composition",
            None,
            "build_survival_models",
        ]
        assert stages[0].source
        assert not any(s.source for s in stages[1:])

    def test_clinical_integration_optional_inputs(self):
        stages = {s.name: s for s in build_stages(PipelineConfig())}
        integration = stages["clinical_integration"]
        assert [r.key for r in integration.requires] == [
            "preprocessing/normalized",
            "acquisition/clinical",
        ]
        assert [r.key for r in integration.optional_inputs] == [
            "differential_expression/de_results",
            "cell_composition/composition",
        ]

    def test_content_types(self):
        assert EXPRESSION.filename == "expression.tsv"
        assert CLINICAL.filename == "clinical.tsv"
        assert MODEL.filename == "model.joblib"
        assert METRICS.filename == "metrics.json"
        assert RISK_SCORES.filename == "risk_scores.csv"

    def test_toggles_reach_preprocessor(self):
        config = PipelineConfig(apply_combat=False, deseq2_normalize=False)
        preprocessing = build_stages(config)[1]
        assert preprocessing.transform.apply_combat is False
        assert preprocessing.transform.deseq2_normalize is False

    def test_stage_params(self):
        config = PipelineConfig(stage_params={"survival_models": {"max_features": 3}})
        assert build_stages(config)[-1].transform.max_features == 3

    def test_unknown_stage_params(self):
        with pytest.raises(PipelineConfigError, match="unknown stage"):
            build_stages(PipelineConfig(stage_params={"clustering": {}}))
        with pytest.raises(PipelineConfigError, match="Unknown parameter"):
            build_stages(PipelineConfig(stage_params={"survival_models": {"alpha": 1}}))


class TestDataAcquirer:
    """Tests for DataAcquirer."""

    def test_reads_local_cohort(self, tmp_path):
        paths = write_cohort(tmp_path, "BRCA")
        unit = WorkUnit("BRCA", {k: str(v) for k, v in paths.items()})
        acquirer = DataAcquirer(ResourceFetcher(RetryPolicy(max_attempts=1)))

        result = acquirer({}, unit)

        assert result["expression"].shape[1] == 26
        assert "OS.time" in result["clinical"].columns
        assert result["clinical"].index[0].startswith("TCGA-")

    def test_missing_source(self):
        with pytest.raises(TransformError, match="clinical"):
            DataAcquirer()({}, WorkUnit("BRCA", {"expression": "x.tsv"}))

    def test_fetch_failure(self, tmp_path):
        unit = WorkUnit(
            "BRCA",
            {"expression": str(tmp_path / "none.tsv"), "clinical": str(tmp_path / "none2.tsv")},
        )
        fetcher = ResourceFetcher(RetryPolicy(max_attempts=2, backoff_seconds=0), sleep=lambda s: None)
        with pytest.raises(FetchError):
            DataAcquirer(fetcher)({}, unit)


class TestPreprocessor:
    """Tests for Preprocessor."""

    def test_median_of_ratios_scales_with_depth(self):
        counts = pd.DataFrame({"a": [10, 20, 30], "b": [20, 40, 60]}, index=["g1", "g2", "g3"])
        factors = median_of_ratios(counts)
        assert factors["b"] / factors["a"] == pytest.approx(2.0)
        assert np.exp(np.log(factors).mean()) == pytest.approx(1.0)

    def test_median_of_ratios_requires_shared_gene(self):
        counts = pd.DataFrame({"a": [0, 5], "b": [5, 0]}, index=["g1", "g2"])
        with pytest.raises(TransformError):
            median_of_ratios(counts)

    def test_center_batches_removes_batch_means(self):
        expr = pd.DataFrame(
            [[1.0, 3.0, 11.0, 13.0]],
            index=["g1"],
            columns=["s1", "s2", "s3", "s4"],
        )
        batches = pd.Series(["P1", "P1", "P2", "P2"], index=expr.columns)
        corrected = center_batches(expr, batches)
        assert corrected.loc["g1"].tolist() == [6.0, 8.0, 6.0, 8.0]

    def test_outputs(self, mock_counts, brca_unit):
        result = Preprocessor()({"expression": mock_counts}, brca_unit)
        normalized = result["normalized"]
        assert list(normalized.columns) == list(mock_counts.columns)
        assert normalized.index.name == "gene"
        assert set(result["size_factors"].columns) == {"size_factor", "batch"}
        assert set(result["size_factors"]["batch"]) == {"A001", "B002"}

    def test_cpm_without_deseq2(self, mock_counts, brca_unit):
        result = Preprocessor(deseq2_normalize=False, apply_combat=False)(
            {"expression": mock_counts}, brca_unit
        )
        expected = mock_counts.sum(axis=0) / 1e6
        pd.testing.assert_series_equal(
            result["size_factors"]["size_factor"], expected, check_names=False
        )

    def test_combat_aligns_plate_means(self, mock_counts, brca_unit):
        shifted = mock_counts.copy()
        plate_b = [c for c in shifted.columns if "-B002-" in c]
        shifted[plate_b] = shifted[plate_b] * 8
        result = Preprocessor(apply_combat=True)({"expression": shifted}, brca_unit)
        normalized = result["normalized"]
        plate_a = [c for c in shifted.columns if c not in plate_b]
        diff = normalized[plate_a].mean(axis=1) - normalized[plate_b].mean(axis=1)
        assert diff.abs().max() < 1e-8

    def test_no_numeric_values(self, brca_unit):
        expression = pd.DataFrame({"s1": ["a", "b"]}, index=["g1", "g2"])
        with pytest.raises(TransformError):
            Preprocessor()({"expression": expression}, brca_unit)


class TestDifferentialExpression:
    """Tests for DifferentialExpression."""

    def test_detects_up_regulated_genes(self, normalized, brca_unit):
        results = DifferentialExpression()({"normalized": normalized}, brca_unit)["de_results"]
        assert list(results.columns) == [
            "mean_tumor",
            "mean_normal",
            "log2_fold_change",
            "t_statistic",
            "p_value",
            "padj",
        ]
        top = set(results.index[:10])
        assert len(top & {f"GENE_{i}" for i in range(10)}) >= 8
        assert (results.loc["GENE_0", "log2_fold_change"]) > 1.0
        assert results["padj"].dropna().between(0, 1).all()

    def test_too_few_normals(self, brca_unit):
        counts = create_mock_counts(n_tumor=5, n_normal=1)
        normalized = Preprocessor(apply_combat=False)({"expression": counts}, brca_unit)["normalized"]
        with pytest.raises(TransformError, match="1 normal"):
            DifferentialExpression()({"normalized": normalized}, brca_unit)


class TestCompositionScorer:
    """Tests for CompositionScorer."""

    def test_scores_default_signatures(self, normalized, brca_unit):
        composition = CompositionScorer()({"normalized": normalized}, brca_unit)["composition"]
        assert "T_cells" in composition.columns
        assert list(composition.index) == list(normalized.columns)
        assert composition.index.name == "sample"

    def test_matches_versioned_gene_ids(self, brca_unit):
        expr = pd.DataFrame(
            [[1.0, 2.0, 3.0], [2.0, 4.0, 6.0]],
            index=["cd3d.5", "CD3E|ENSG000001"],
            columns=["s1", "s2", "s3"],
        )
        scorer = CompositionScorer(signatures={"T_cells": ["CD3D", "CD3E"]})
        composition = scorer({"normalized": expr}, brca_unit)["composition"]
        assert composition["T_cells"].tolist() == pytest.approx([-1.2247449, 0.0, 1.2247449])

    def test_no_signature_matches(self, brca_unit):
        expr = pd.DataFrame([[1.0, 2.0]], index=["GENE_1"], columns=["s1", "s2"])
        with pytest.raises(TransformError):
            CompositionScorer()({"normalized": expr}, brca_unit)


class TestClinicalIntegrator:
    """Tests for ClinicalIntegrator."""

    def test_feature_matrix(self, normalized, mock_clinical, brca_unit):
        matrix = ClinicalIntegrator(n_genes=5)(
            {"normalized": normalized, "clinical": mock_clinical}, brca_unit
        )["feature_matrix"]
        assert list(matrix.columns[:2]) == ["time", "event"]
        assert matrix.shape == (20, 7)
        assert all(s.endswith("-01") for s in matrix.index)
        assert set(matrix["event"]) <= {0, 1}

    def test_uses_de_results_and_composition(self, normalized, mock_clinical, brca_unit):
        de = DifferentialExpression()({"normalized": normalized}, brca_unit)["de_results"]
        comp = CompositionScorer()({"normalized": normalized}, brca_unit)["composition"]
        matrix = ClinicalIntegrator(n_genes=3)(
            {
                "normalized": normalized,
                "clinical": mock_clinical,
                "de_results": de,
                "composition": comp,
            },
            brca_unit,
        )["feature_matrix"]
        assert list(matrix.columns[2:5]) == list(de.index[:3])
        cc_columns = [c for c in matrix.columns if c.startswith("cc_")]
        assert "cc_T_cells" in cc_columns

    def test_without_composition_has_no_cc_columns(self, normalized, mock_clinical, brca_unit):
        matrix = ClinicalIntegrator()(
            {"normalized": normalized, "clinical": mock_clinical}, brca_unit
        )["feature_matrix"]
        assert not any(c.startswith("cc_") for c in matrix.columns)

    def test_missing_clinical_columns(self, normalized, brca_unit):
        clinical = pd.DataFrame({"vital": [1]}, index=["TCGA-AA-A000-01"])
        with pytest.raises(TransformError, match="OS.time"):
            ClinicalIntegrator()({"normalized": normalized, "clinical": clinical}, brca_unit)

    def test_no_matching_samples(self, normalized, brca_unit):
        clinical = create_mock_clinical([make_barcode(900)])
        with pytest.raises(TransformError, match="no tumour sample"):
            ClinicalIntegrator()({"normalized": normalized, "clinical": clinical}, brca_unit)


class TestSurvivalModelBuilder:
    """Tests for SurvivalModelBuilder."""

    @pytest.fixture
    def feature_matrix(self):
        rng = np.random.default_rng(3)
        n = 40
        signal = rng.normal(size=n)
        time = np.exp(-signal) * 1000 + rng.uniform(0, 10, size=n)
        return pd.DataFrame(
            {
                "time": time,
                "event": (np.arange(n) % 4 != 0).astype(int),
                "signal": signal,
                "noise": rng.normal(size=n),
                "constant": np.ones(n),
            },
            index=pd.Index([f"s{i}" for i in range(n)], name="sample"),
        )

    def test_outputs(self, feature_matrix, brca_unit):
        result = SurvivalModelBuilder(max_features=2, min_events=5)(
            {"feature_matrix": feature_matrix}, brca_unit
        )
        model = result["model"]
        assert isinstance(model, RiskModel)
        assert model.features[0] == "signal"
        assert model.weights[0] > 0
        assert "constant" not in model.univariate_cindex

        metrics = result["metrics"]
        assert metrics["c_index"] > 0.8
        assert metrics["n_samples"] == 40
        assert metrics["n_events"] == 30

        scores = result["risk_scores"]
        assert list(scores.columns) == ["risk_score", "risk_group", "time", "event"]
        assert set(scores["risk_group"]) == {"high", "low"}

    def test_predict_matches_scores(self, feature_matrix, brca_unit):
        result = SurvivalModelBuilder()({"feature_matrix": feature_matrix}, brca_unit)
        predicted = result["model"].predict(feature_matrix)
        np.testing.assert_allclose(predicted.values, result["risk_scores"]["risk_score"].values)

    def test_predict_missing_feature(self, feature_matrix, brca_unit):
        model = SurvivalModelBuilder()({"feature_matrix": feature_matrix}, brca_unit)["model"]
        with pytest.raises(KeyError):
            model.predict(feature_matrix.drop(columns=["signal"]))

    def test_too_few_events(self, feature_matrix, brca_unit):
        feature_matrix["event"] = 0
        feature_matrix.iloc[0, feature_matrix.columns.get_loc("event")] = 1
        with pytest.raises(TransformError, match="1 events"):
            SurvivalModelBuilder(min_events=5)({"feature_matrix": feature_matrix}, brca_unit)

    def test_missing_time_column(self, feature_matrix, brca_unit):
        with pytest.raises(TransformError, match="time"):
            SurvivalModelBuilder()({"feature_matrix": feature_matrix.drop(columns=["time"])}, brca_unit)


class TestEndToEnd:
    """Full pipeline over local mock cohorts."""

    def test_full_run(self, pipeline_config):
        orchestrator = PipelineOrchestrator(pipeline_config, build_stages(pipeline_config))
        report = orchestrator.run()

        assert report.state is PipelineState.COMPLETED
        for name in STAGE_ORDER:
            assert report.summaries[name].succeeded == 2, name

        store = orchestrator.store
        metrics = store.get("survival_models", "BRCA", METRICS)
        assert 0.0 <= metrics["c_index"] <= 1.0
        model = store.get("survival_models", "LUAD", MODEL)
        assert isinstance(model, RiskModel)
        matrix = store.get("clinical_integration", "BRCA", FEATURE_MATRIX)
        assert any(c.startswith("cc_") for c in matrix.columns)
        assert store.exists("differential_expression", "BRCA", DE_RESULTS)

    def test_cell_composition_disabled(self, pipeline_config):
        config = pipeline_config.replace(perform_cell_composition=False)
        orchestrator = PipelineOrchestrator(config, build_stages(config))
        report = orchestrator.run()

        assert report.state is PipelineState.COMPLETED
        assert report.disabled_stages == ["cell_composition"]
        assert not orchestrator.store.exists("cell_composition", "BRCA", COMPOSITION)
        matrix = orchestrator.store.get("clinical_integration", "BRCA", FEATURE_MATRIX)
        assert not any(c.startswith("cc_") for c in matrix.columns)

    def test_unreachable_sources_halt_at_acquisition(self, pipeline_config, tmp_path):
        config = pipeline_config.replace(
            sources={
                "expression": str(tmp_path / "missing" / "{indication}.tsv.gz"),
                "clinical": str(tmp_path / "missing" / "{indication}.tsv"),
            }
        )
        report = PipelineOrchestrator(config, build_stages(config)).run()

        assert report.state is PipelineState.STAGE_FAILED
        assert report.failed_stage_index == 0
        assert list(report.summaries) == ["acquisition"]
        outcome = report.summaries["acquisition"].outcome_for("BRCA")
        assert outcome.status is UnitStatus.FAILED
        assert "FetchError" in outcome.error

    def test_resume_from_existing_acquisition(self, pipeline_config):
        PipelineOrchestrator(pipeline_config, build_stages(pipeline_config)).run()

        config = pipeline_config.replace(download_data=False, skip_if_done=False)
        orchestrator = PipelineOrchestrator(config, build_stages(config))
        report = orchestrator.run()

        assert report.state is PipelineState.COMPLETED
        assert "acquisition" in report.disabled_stages
        assert report.summaries["preprocessing"].succeeded == 2
        lineage = orchestrator.store.read_lineage("preprocessing", "BRCA")
        assert lineage["run_id"] == orchestrator.run_id
        assert lineage["outputs"][0]["path"].endswith(NORMALIZED.filename)
