"""
ODPS Coefficient Table

Read-only container for the trained ODPS regression coefficients of one
sensor, together with the internal reference atmosphere they were trained
on. A table is built once (by a loader or by from_blocks) and then shared
by every profile and channel computation; all arrays are frozen at
construction.

Coefficient storage:
    For component j and channel l with np = n_predictors[j, l] > 0, the
    np*n_layers coefficients start at c[pos_index[j, l]], predictor by
    predictor, with the layer coefficients of one predictor contiguous.

OPTRAN storage:
    For channel l with np OPTRAN predictors and polynomial order m, the
    (np+1)*(m+1) coefficients start at optran.c[optran.pos_index[l]].
    Term 0 is the constant term; term i (1..np) multiplies OPTRAN
    predictor optran.predictor_index[l, i-1].
"""

import numpy as np
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from ..constants import (
    H2O_ID,
    MAX_OPTRAN_ORDER,
    MAX_OPTRAN_PREDICTORS,
    MAX_OPTRAN_USED_PREDICTORS,
    SIGNIFICANCE_OPTRAN,
)


def _frozen(values, dtype=np.float64) -> np.ndarray:
    array = np.array(values, dtype=dtype)
    array.setflags(write=False)
    return array


def _check_shape(name: str, array: np.ndarray, expected: Tuple[int, ...]):
    if array.shape != expected:
        raise ValueError(f"{name}: expected shape {expected}, got {array.shape}")


@dataclass(frozen=True)
class OPTRANCoefficients:
    """
    Coefficients of the OPTRAN water vapor line model.

    All per-channel arrays are dimensioned by the channel count of the
    owning ODPSCoefficients table.
    """
    significance: np.ndarray         # (n_channels,) SIGNIFICANCE_OPTRAN selects OPTRAN
    order: np.ndarray                # (n_channels,) polynomial order
    n_predictors: np.ndarray         # (n_channels,) OPTRAN predictors used
    predictor_index: np.ndarray      # (n_channels, MAX_OPTRAN_USED_PREDICTORS), -1 padded
    pos_index: np.ndarray            # (n_channels,) offsets into c
    c: np.ndarray                    # flat coefficients
    alpha_c1: float = 1.0            # absorber space scaling
    alpha_c2: float = 0.0            # absorber space offset

    def __post_init__(self):
        object.__setattr__(self, 'significance', _frozen(self.significance, int))
        object.__setattr__(self, 'order', _frozen(self.order, int))
        object.__setattr__(self, 'n_predictors', _frozen(self.n_predictors, int))
        object.__setattr__(self, 'predictor_index', _frozen(self.predictor_index, int))
        object.__setattr__(self, 'pos_index', _frozen(self.pos_index, int))
        object.__setattr__(self, 'c', _frozen(self.c))

    @property
    def n_coeffs(self) -> int:
        return self.c.size

    def validate(self, n_channels: int):
        """Check all shapes and offsets against the channel count."""
        for name in ('significance', 'order', 'n_predictors', 'pos_index'):
            _check_shape(f"optran.{name}", getattr(self, name), (n_channels,))
        _check_shape("optran.predictor_index", self.predictor_index,
                     (n_channels, MAX_OPTRAN_USED_PREDICTORS))
        if self.alpha_c1 == 0.0:
            raise ValueError("optran.alpha_c1 must be nonzero")

        for channel in range(n_channels):
            n_used = self.n_predictors[channel]
            if n_used <= 0:
                continue
            if n_used > MAX_OPTRAN_USED_PREDICTORS:
                raise ValueError(
                    f"optran.n_predictors[{channel}] = {n_used} exceeds "
                    f"{MAX_OPTRAN_USED_PREDICTORS}"
                )
            order = self.order[channel]
            if not 0 <= order <= MAX_OPTRAN_ORDER:
                raise ValueError(
                    f"optran.order[{channel}] = {order} outside 0..{MAX_OPTRAN_ORDER}"
                )
            used = self.predictor_index[channel, :n_used]
            if np.any(used < 0) or np.any(used >= MAX_OPTRAN_PREDICTORS):
                raise ValueError(
                    f"optran.predictor_index[{channel}] = {used.tolist()} outside "
                    f"0..{MAX_OPTRAN_PREDICTORS - 1}"
                )
            end = self.pos_index[channel] + (n_used + 1) * (order + 1)
            if self.pos_index[channel] < 0 or end > self.c.size:
                raise ValueError(
                    f"optran.pos_index[{channel}] = {self.pos_index[channel]}: block "
                    f"ends at {end}, but optran.c has {self.c.size} coefficients"
                )

    def block(self, channel: int) -> np.ndarray:
        """
        Polynomial coefficients of one channel.

        Returns:
            Array of shape (n_predictors+1, order+1)
        """
        n_used = self.n_predictors[channel]
        order = self.order[channel]
        start = self.pos_index[channel]
        size = (n_used + 1) * (order + 1)
        return self.c[start:start + size].reshape(n_used + 1, order + 1)

    def used_predictors(self, channel: int) -> np.ndarray:
        """Indices of the OPTRAN predictors used by a channel."""
        return self.predictor_index[channel, :self.n_predictors[channel]]


@dataclass(frozen=True)
class ODPSCoefficients:
    """
    ODPS regression coefficients and internal reference atmosphere.

    The reference grid has n_layers layers bounded by n_layers+1 levels,
    ordered from the top of the atmosphere to the surface (ascending
    pressure).
    """
    group_index: int
    ref_level_pressure: np.ndarray   # (n_layers+1,) hPa
    ref_pressure: np.ndarray         # (n_layers,) hPa
    ref_temperature: np.ndarray      # (n_layers,) K
    ref_absorber: np.ndarray         # (n_layers, n_absorbers)
    min_absorber: np.ndarray         # (n_layers, n_absorbers)
    max_absorber: np.ndarray         # (n_layers, n_absorbers)
    absorber_id: np.ndarray          # (n_absorbers,)
    n_predictors: np.ndarray         # (n_components, n_channels)
    pos_index: np.ndarray            # (n_components, n_channels)
    c: np.ndarray                    # flat coefficients
    ocomponent_index: int = 1        # component handled by OPTRAN
    optran: Optional[OPTRANCoefficients] = None
    sensor_id: str = ''

    def __post_init__(self):
        for name in ('ref_level_pressure', 'ref_pressure', 'ref_temperature',
                     'ref_absorber', 'min_absorber', 'max_absorber', 'c'):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        for name in ('absorber_id', 'n_predictors', 'pos_index'):
            object.__setattr__(self, name, _frozen(getattr(self, name), int))
        self._validate()

    def _validate(self):
        n = self.ref_pressure.size
        n_abs = self.absorber_id.size
        _check_shape("ref_pressure", self.ref_pressure, (n,))
        _check_shape("ref_level_pressure", self.ref_level_pressure, (n + 1,))
        _check_shape("ref_temperature", self.ref_temperature, (n,))
        for name in ('ref_absorber', 'min_absorber', 'max_absorber'):
            _check_shape(name, getattr(self, name), (n, n_abs))
        if n < 2:
            raise ValueError(f"ref_pressure: need at least 2 layers, got {n}")
        if np.any(self.ref_level_pressure <= 0.0):
            raise ValueError("ref_level_pressure: all levels must be positive")
        if np.any(np.diff(self.ref_level_pressure) <= 0.0):
            raise ValueError("ref_level_pressure: levels must be strictly ascending")
        if np.any(np.diff(self.ref_pressure) <= 0.0):
            raise ValueError("ref_pressure: layers must be strictly ascending")

        if self.n_predictors.ndim != 2:
            raise ValueError(
                f"n_predictors: expected 2 dimensions (n_components, n_channels), "
                f"got {self.n_predictors.ndim}"
            )
        _check_shape("pos_index", self.pos_index, self.n_predictors.shape)
        for j, channel in zip(*np.nonzero(self.n_predictors > 0)):
            start = self.pos_index[j, channel]
            end = start + self.n_predictors[j, channel] * n
            if start < 0 or end > self.c.size:
                raise ValueError(
                    f"pos_index[{j}, {channel}] = {start}: block ends at {end}, "
                    f"but c has {self.c.size} coefficients"
                )

        if self.optran is not None:
            if not 0 <= self.ocomponent_index < self.n_components:
                raise ValueError(
                    f"ocomponent_index = {self.ocomponent_index} outside "
                    f"0..{self.n_components - 1}"
                )
            self.optran.validate(self.n_channels)
            if self.n_ocoeffs > 0 and self.h2o_index is None:
                raise ValueError("OPTRAN coefficients require H2O among the absorbers")

    @property
    def n_layers(self) -> int:
        return self.ref_pressure.size

    @property
    def n_absorbers(self) -> int:
        return self.absorber_id.size

    @property
    def n_components(self) -> int:
        return self.n_predictors.shape[0]

    @property
    def n_channels(self) -> int:
        return self.n_predictors.shape[1]

    @property
    def n_ocoeffs(self) -> int:
        return 0 if self.optran is None else self.optran.n_coeffs

    @property
    def h2o_index(self) -> Optional[int]:
        """Position of H2O in absorber_id, or None."""
        found = np.nonzero(self.absorber_id == H2O_ID)[0]
        return int(found[0]) if found.size else None

    def uses_optran(self, component: int, channel: int) -> bool:
        """True if the OPTRAN model replaces the regression for this pair."""
        return (self.optran is not None
                and component == self.ocomponent_index
                and self.optran.significance[channel] == SIGNIFICANCE_OPTRAN)

    def component_coefficients(self, component: int, channel: int) -> np.ndarray:
        """
        Regression coefficients of one component and channel.

        Returns:
            Array of shape (n_predictors, n_layers), empty if the
            component has no predictors for this channel.
        """
        n_used = max(int(self.n_predictors[component, channel]), 0)
        start = self.pos_index[component, channel]
        return self.c[start:start + n_used * self.n_layers].reshape(n_used, self.n_layers)

    @classmethod
    def from_blocks(cls,
                    group_index: int,
                    ref_level_pressure: np.ndarray,
                    ref_pressure: np.ndarray,
                    ref_temperature: np.ndarray,
                    ref_absorber: np.ndarray,
                    absorber_id: Sequence[int],
                    blocks: Mapping[Tuple[int, int], np.ndarray],
                    n_components: int,
                    n_channels: int,
                    min_absorber: Optional[np.ndarray] = None,
                    max_absorber: Optional[np.ndarray] = None,
                    ocomponent_index: int = 1,
                    optran_blocks: Optional[Mapping[int, Tuple[Sequence[int], np.ndarray]]] = None,
                    optran_significance: Optional[Sequence[int]] = None,
                    alpha_c1: float = 1.0,
                    alpha_c2: float = 0.0,
                    sensor_id: str = '') -> 'ODPSCoefficients':
        """
        Assemble a table from per-component coefficient blocks.

        Args:
            group_index: Sensor group
            ref_level_pressure, ref_pressure, ref_temperature, ref_absorber,
                absorber_id: Reference atmosphere
            blocks: {(component, channel): array (n_predictors, n_layers)}
            n_components: Number of tau components
            n_channels: Number of channels
            min_absorber, max_absorber: Clamp bounds (default 0 and inf)
            ocomponent_index: Component replaced by OPTRAN when significant
            optran_blocks: {channel: (predictor_indices, array (np+1, order+1))}
            optran_significance: Per-channel flags; defaults to
                SIGNIFICANCE_OPTRAN for channels in optran_blocks
            alpha_c1, alpha_c2: OPTRAN absorber space parameters
            sensor_id: Free-form sensor name

        Returns:
            ODPSCoefficients
        """
        ref_absorber = np.asarray(ref_absorber, dtype=np.float64)
        n_layers = np.asarray(ref_pressure).size

        n_predictors = np.zeros((n_components, n_channels), dtype=int)
        pos_index = np.zeros((n_components, n_channels), dtype=int)
        chunks = []
        offset = 0
        for (j, channel), block in sorted(blocks.items()):
            block = np.asarray(block, dtype=np.float64)
            if block.ndim != 2 or block.shape[1] != n_layers:
                raise ValueError(
                    f"blocks[{j}, {channel}]: expected shape (n_predictors, {n_layers}), "
                    f"got {block.shape}"
                )
            n_predictors[j, channel] = block.shape[0]
            pos_index[j, channel] = offset
            chunks.append(block.ravel())
            offset += block.size
        c = np.concatenate(chunks) if chunks else np.zeros(0)

        optran = None
        if optran_blocks:
            optran = _optran_from_blocks(optran_blocks, n_channels,
                                         optran_significance, alpha_c1, alpha_c2)

        if min_absorber is None:
            min_absorber = np.zeros_like(ref_absorber)
        if max_absorber is None:
            max_absorber = np.full_like(ref_absorber, np.inf)

        return cls(group_index=group_index,
                   ref_level_pressure=ref_level_pressure,
                   ref_pressure=ref_pressure,
                   ref_temperature=ref_temperature,
                   ref_absorber=ref_absorber,
                   min_absorber=min_absorber,
                   max_absorber=max_absorber,
                   absorber_id=absorber_id,
                   n_predictors=n_predictors,
                   pos_index=pos_index,
                   c=c,
                   ocomponent_index=ocomponent_index,
                   optran=optran,
                   sensor_id=sensor_id)


def _optran_from_blocks(optran_blocks: Mapping[int, Tuple[Sequence[int], np.ndarray]],
                        n_channels: int,
                        significance: Optional[Sequence[int]],
                        alpha_c1: float,
                        alpha_c2: float) -> OPTRANCoefficients:
    order = np.zeros(n_channels, dtype=int)
    n_used = np.zeros(n_channels, dtype=int)
    predictor_index = np.full((n_channels, MAX_OPTRAN_USED_PREDICTORS), -1, dtype=int)
    pos_index = np.zeros(n_channels, dtype=int)
    chunks = []
    offset = 0
    for channel, (indices, block) in sorted(optran_blocks.items()):
        indices = np.asarray(indices, dtype=int)
        block = np.asarray(block, dtype=np.float64)
        if block.ndim != 2 or block.shape[0] != indices.size + 1:
            raise ValueError(
                f"optran_blocks[{channel}]: expected shape ({indices.size + 1}, order+1), "
                f"got {block.shape}"
            )
        if indices.size > MAX_OPTRAN_USED_PREDICTORS:
            raise ValueError(
                f"optran_blocks[{channel}]: {indices.size} predictors exceeds "
                f"{MAX_OPTRAN_USED_PREDICTORS}"
            )
        order[channel] = block.shape[1] - 1
        n_used[channel] = indices.size
        predictor_index[channel, :indices.size] = indices
        pos_index[channel] = offset
        chunks.append(block.ravel())
        offset += block.size

    if significance is None:
        significance = np.zeros(n_channels, dtype=int)
        significance[list(optran_blocks.keys())] = SIGNIFICANCE_OPTRAN

    return OPTRANCoefficients(significance=significance,
                              order=order,
                              n_predictors=n_used,
                              predictor_index=predictor_index,
                              pos_index=pos_index,
                              c=np.concatenate(chunks),
                              alpha_c1=alpha_c1,
                              alpha_c2=alpha_c2)
