"""tcga-explorer: staged transcriptomics analysis for TCGA cohorts.

This package provides tools for:
- Acquisition of per-cohort expression and clinical tables
- Preprocessing with batch correction and size-factor normalization
- Differential expression between tumour and normal samples
- Immune cell-composition scoring
- Clinical integration and survival model fitting

Each cohort ("indication") is processed independently through every stage;
intermediate artifacts are checkpointed so interrupted runs resume without
recomputation.

Example usage:
    >>> from tcga_explorer.pipeline import PipelineConfig, PipelineOrchestrator
    >>> from tcga_explorer.stages import build_stages
    >>>
    >>> config = PipelineConfig.from_yaml("pipeline.yaml")
    >>> report = PipelineOrchestrator(config, build_stages(config)).run()
"""

__version__ = "0.1.0"
