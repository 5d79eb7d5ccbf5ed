"""
Fan-out/fan-in for batches of upstream calls.
"""

from .fan_out import AggregateResult, Aggregator
from .pipeline import RequestPipeline

__all__ = ["AggregateResult", "Aggregator", "RequestPipeline"]
