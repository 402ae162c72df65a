"""Read-only query selectors."""

from acge_kernel.selectors.base import BaseSelector
from acge_kernel.selectors.synthesis_selector import SynthesisSelector
from acge_kernel.selectors.validation_selector import ValidationSelector

__all__ = [
    "BaseSelector",
    "SynthesisSelector",
    "ValidationSelector",
]
