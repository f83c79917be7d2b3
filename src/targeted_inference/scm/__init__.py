"""
Causal graphs and identification.
"""

from .adjustment import BackdoorAdjustment, identify
from .graph import SCM, StaticSCM

__all__ = [
    "SCM",
    "StaticSCM",
    "BackdoorAdjustment",
    "identify",
]
