"""Offer grading core package exposing the reusable pipeline."""
from .client import GradingClient, GradingReply
from .config import GradingConfig, create_config_from_env, load_api_key
from .models import GradingResult, ImageDetail, PackageSummary, StructuredOffer
from .structurer import load_offers, structure_activity
from .workflow import GradingBatch, GradingRunResult, run_grading_workflow

__all__ = [
    "GradingBatch",
    "GradingClient",
    "GradingConfig",
    "GradingReply",
    "GradingResult",
    "GradingRunResult",
    "ImageDetail",
    "PackageSummary",
    "StructuredOffer",
    "create_config_from_env",
    "load_api_key",
    "load_offers",
    "run_grading_workflow",
    "structure_activity",
]
