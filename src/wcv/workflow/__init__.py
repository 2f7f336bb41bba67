"""Static analysis of workflow job concurrency."""

from wcv.workflow.aggregator import (
    LevelConcurrency,
    WorkflowValidationResult,
    aggregate,
)
from wcv.workflow.analyzer import WorkflowAnalyzer
from wcv.workflow.definition import (
    JobDefinition,
    StrategyDefinition,
    WorkflowDefinition,
)
from wcv.workflow.fanout import (
    FanOut,
    FanOutResolver,
    FanOutTable,
    OutputProvider,
    ProviderSizeEstimator,
    SizeSource,
)
from wcv.workflow.graph import DependencyGraph, build_graph
from wcv.workflow.levels import LevelPartition, PartitionStatus, partition_levels

__all__ = [
    "DependencyGraph",
    "FanOut",
    "FanOutResolver",
    "FanOutTable",
    "JobDefinition",
    "LevelConcurrency",
    "LevelPartition",
    "OutputProvider",
    "PartitionStatus",
    "ProviderSizeEstimator",
    "SizeSource",
    "StrategyDefinition",
    "WorkflowAnalyzer",
    "WorkflowDefinition",
    "WorkflowValidationResult",
    "aggregate",
    "build_graph",
    "partition_levels",
]
