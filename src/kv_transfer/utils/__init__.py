"""Utility functions for KV Transfer."""

from .size_estimator import SizeEstimator, estimate_size
from .validation import ValidationUtils

__all__ = ["SizeEstimator", "estimate_size", "ValidationUtils"]
