"""
Vertical Profile Module

Grid-to-grid machinery shared by the predictor driver and the optical
depth assembler.

Components:
    - compute_interp_index / interpolate_profile: piecewise-linear
      interpolation with boundary clamping, plus TL and AD forms
    - layer_avg: fractional-overlap layer averaging weights
    - geopotential_height: hypsometric level heights, plus TL and AD forms
"""

from .interpolation import (
    compute_interp_index,
    interpolate_profile,
    interpolate_profile_tl,
    interpolate_profile_tl_with_target,
    interpolate_profile_tl_with_source,
    interpolate_profile_ad,
    interpolate_profile_ad_with_target,
    interpolate_profile_ad_with_source,
)
from .layer_avg import layer_avg, apply_layer_avg, apply_layer_avg_ad
from .geopotential import (
    geopotential_height,
    geopotential_height_tl,
    geopotential_height_ad,
)

__all__ = [
    'compute_interp_index',
    'interpolate_profile',
    'interpolate_profile_tl',
    'interpolate_profile_tl_with_target',
    'interpolate_profile_tl_with_source',
    'interpolate_profile_ad',
    'interpolate_profile_ad_with_target',
    'interpolate_profile_ad_with_source',
    'layer_avg',
    'apply_layer_avg',
    'apply_layer_avg_ad',
    'geopotential_height',
    'geopotential_height_tl',
    'geopotential_height_ad',
]
