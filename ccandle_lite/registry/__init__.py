"""
Model registry and handles.

Provides:
- ModelSpec / ModelCatalog: supported models as data
- DEFAULT_CATALOG: the built-in catalog
- ModelHandle / HandleState: opaque handle to a loaded model
- ModelRegistry: load and release handles
"""

from ccandle_lite.registry.catalog import DEFAULT_CATALOG, ModelCatalog, ModelSpec
from ccandle_lite.registry.handle import HandleState, ModelHandle
from ccandle_lite.registry.registry import ModelRegistry

__all__ = [
    "DEFAULT_CATALOG",
    "ModelCatalog",
    "ModelSpec",
    "HandleState",
    "ModelHandle",
    "ModelRegistry",
]
