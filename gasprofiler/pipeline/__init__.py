"""Profiling pipelines: single contract, quick analysis and batch runs."""

from gasprofiler.pipeline.profiler import GasProfiler  # noqa: F401
from gasprofiler.pipeline.quick import QuickAnalysis, QuickAnalyzer  # noqa: F401
from gasprofiler.pipeline.batch import BatchConfig, BatchProfiler, BatchResult, load_batch_config  # noqa: F401
