"""
Predictor State

Per-profile container for the regression predictors on the internal
reference grid, the viewing geometry along that grid and, in persistent
mode, the forward-pass values that the TL and AD passes of the same
profile depend on.

A TL or AD mirror is created with Predictor.zeros_like(); it shares the
geometry of the forward state but carries its own perturbation arrays.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..constants import MAX_OPTRAN_ORDER, MAX_OPTRAN_PREDICTORS


@dataclass
class ChannelCache:
    """Forward values of one channel needed by its TL and AD passes."""
    od: np.ndarray                       # (n_layers,) unclamped layer optical depth
    od_path: np.ndarray                  # (n_layers+1,) level-to-space optical path
    b: Optional[np.ndarray] = None       # (n_layers, np+1) OPTRAN polynomial values
    ln_chi: Optional[np.ndarray] = None  # (n_layers,)
    chi: Optional[np.ndarray] = None     # (n_layers,)


@dataclass
class ForwardCache:
    """
    Forward-pass intermediates retained for one profile.

    Filled by the predictor driver and the optical depth assembler, then
    read (never modified) by the TL and AD passes.
    """
    temperature: np.ndarray          # (n_layers,) on the reference grid
    absorber: np.ndarray             # (n_layers, n_absorbers) after clamping
    absorber_clamped: np.ndarray     # (n_layers, n_absorbers) bool
    weights: np.ndarray              # (n_user_layers, n_layers) layer averaging
    interp_index: np.ndarray         # (n_layers, 2) layer averaging ranges
    idx_map: np.ndarray              # (n_absorbers,) user column per absorber, -1 if absent
    h2o_index: Optional[int]
    ref_ln_pressure: np.ndarray      # (n_layers,)
    user_ln_pressure: np.ndarray     # (n_user_layers,)
    odps2user_idx: np.ndarray        # (n_user_layers+1, 2)
    channels: Dict[int, ChannelCache] = field(default_factory=dict)

    def channel(self, channel_index: int) -> ChannelCache:
        """Cached forward values of a channel."""
        try:
            return self.channels[channel_index]
        except KeyError:
            raise RuntimeError(
                f"No forward values cached for channel {channel_index}; "
                f"run compute_atm_absorption for this channel first"
            ) from None


@dataclass
class Predictor:
    """
    Predictors and geometry of one profile on the reference grid.

    Attributes:
        X: Regression predictors, shape (n_layers, max_n_predictors, n_components)
        OX: OPTRAN predictors, shape (n_layers, MAX_OPTRAN_PREDICTORS)
        Ap: OPTRAN absorber-space polynomial basis, shape (n_layers, MAX_OPTRAN_ORDER)
        dA: Slant water vapor amount per layer, shape (n_layers,)
        optran: True if OPTRAN predictors were computed
        secant_zenith: Secant of the local zenith angle per layer
        secant_zenith_surface: Secant of the sensor zenith angle at the surface
        ref_level_ln_pressure: ln of the reference level pressures
        user_level_ln_pressure: ln of the user level pressures
        cache: Forward values for TL/AD (persistent mode only)
    """
    n_layers: int
    n_user_layers: int
    n_components: int
    max_n_predictors: int
    X: Optional[np.ndarray] = None
    OX: Optional[np.ndarray] = None
    Ap: Optional[np.ndarray] = None
    dA: Optional[np.ndarray] = None
    optran: bool = False
    secant_zenith: Optional[np.ndarray] = None
    secant_zenith_surface: float = 1.0
    ref_level_ln_pressure: Optional[np.ndarray] = None
    user_level_ln_pressure: Optional[np.ndarray] = None
    cache: Optional[ForwardCache] = None

    def __post_init__(self):
        n = self.n_layers
        if self.X is None:
            self.X = np.zeros((n, self.max_n_predictors, self.n_components))
        if self.OX is None:
            self.OX = np.zeros((n, MAX_OPTRAN_PREDICTORS))
        if self.Ap is None:
            self.Ap = np.zeros((n, MAX_OPTRAN_ORDER))
        if self.dA is None:
            self.dA = np.zeros(n)
        if self.secant_zenith is None:
            self.secant_zenith = np.ones(n)
        if self.ref_level_ln_pressure is None:
            self.ref_level_ln_pressure = np.zeros(n + 1)
        if self.user_level_ln_pressure is None:
            self.user_level_ln_pressure = np.zeros(self.n_user_layers + 1)

    def zeros_like(self) -> 'Predictor':
        """TL/AD mirror: zero predictors, shared geometry, no cache."""
        return Predictor(n_layers=self.n_layers,
                         n_user_layers=self.n_user_layers,
                         n_components=self.n_components,
                         max_n_predictors=self.max_n_predictors,
                         optran=self.optran,
                         secant_zenith=self.secant_zenith,
                         secant_zenith_surface=self.secant_zenith_surface,
                         ref_level_ln_pressure=self.ref_level_ln_pressure,
                         user_level_ln_pressure=self.user_level_ln_pressure)

    def zero(self):
        """Reset the predictor arrays to zero."""
        self.X[...] = 0.0
        self.OX[...] = 0.0
        self.Ap[...] = 0.0
        self.dA[...] = 0.0

    def require_cache(self) -> ForwardCache:
        if self.cache is None:
            raise RuntimeError(
                "Predictor has no forward cache; run the forward computation "
                "with save_forward_variables enabled before TL/AD"
            )
        return self.cache

    def check_mirror(self, other: 'Predictor', name: str):
        """Raise ValueError if a TL/AD predictor does not match this one."""
        for attr in ('X', 'OX', 'Ap', 'dA'):
            mine = getattr(self, attr).shape
            theirs = getattr(other, attr).shape
            if mine != theirs:
                raise ValueError(f"{name}.{attr}: expected shape {mine}, got {theirs}")
        if other.n_user_layers != self.n_user_layers:
            raise ValueError(
                f"{name}.n_user_layers: expected {self.n_user_layers}, "
                f"got {other.n_user_layers}"
            )
