# src/casecorr/core/__init__.py

"""
Core configuration for casecorr.
The pipeline lives in casecorr.core.pipeline and is imported explicitly.
"""

from .config import CaseCorrConfig, load_config

__all__ = [
    "CaseCorrConfig",
    "load_config",
]
