"""Batch driver: controller, pacing, CLI and HTTP trigger."""

from .controller import BatchController, PairOutcome, PairReport, PipelineState
from .factory import build_controller, build_store
from .pacing import PairPacer

__all__ = [
    "BatchController",
    "PairOutcome",
    "PairPacer",
    "PairReport",
    "PipelineState",
    "build_controller",
    "build_store",
]
