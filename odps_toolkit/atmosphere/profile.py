"""
Atmosphere, Geometry and Sensor Inputs

Caller-owned records describing one atmospheric profile and its viewing
geometry. Profiles are ordered from the top of the atmosphere down to the
surface: level 0 is the top, level n_layers the surface, and layer k lies
between levels k and k+1.

The same Atmosphere record is used for perturbations (TL) and gradients
(AD); zeros_like() builds such a mirror with matching shapes.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional

from ..constants import DEGREES_TO_RADIANS


@dataclass
class Atmosphere:
    """
    User atmospheric profile.

    Absorber amounts follow the units the coefficient table was trained
    with (water vapor in g/kg).
    """
    level_pressure: np.ndarray       # (n_layers+1,) hPa
    pressure: np.ndarray             # (n_layers,) hPa
    temperature: np.ndarray          # (n_layers,) K
    absorber: np.ndarray             # (n_layers, n_absorbers)
    absorber_id: np.ndarray          # (n_absorbers,)

    def __post_init__(self):
        self.level_pressure = np.array(self.level_pressure, dtype=np.float64)
        self.pressure = np.array(self.pressure, dtype=np.float64)
        self.temperature = np.array(self.temperature, dtype=np.float64)
        self.absorber_id = np.array(self.absorber_id, dtype=int).reshape(-1)
        absorber = np.array(self.absorber, dtype=np.float64)
        if absorber.ndim == 1:
            absorber = absorber[:, np.newaxis]
        self.absorber = absorber
        self._validate()

    def _validate(self):
        n = self.pressure.size
        if self.pressure.ndim != 1 or n < 1:
            raise ValueError(f"pressure: expected a 1-D profile, got shape {self.pressure.shape}")
        if self.level_pressure.shape != (n + 1,):
            raise ValueError(
                f"level_pressure: expected shape {(n + 1,)}, got {self.level_pressure.shape}"
            )
        if self.temperature.shape != (n,):
            raise ValueError(
                f"temperature: expected shape {(n,)}, got {self.temperature.shape}"
            )
        expected = (n, self.absorber_id.size)
        if self.absorber.shape != expected:
            raise ValueError(f"absorber: expected shape {expected}, got {self.absorber.shape}")
        if np.unique(self.absorber_id).size != self.absorber_id.size:
            raise ValueError(f"absorber_id: duplicate ids in {self.absorber_id.tolist()}")

    def validate_profile(self):
        """
        Check that the pressures can be mapped in ln-pressure.

        Level 0 may be zero or negative (top of the atmosphere); all other
        pressures must be positive and ascending.
        """
        if np.any(self.pressure <= 0.0) or np.any(self.level_pressure[1:] <= 0.0):
            raise ValueError("pressure: layer and level pressures below the top must be positive")
        if np.any(np.diff(self.pressure) <= 0.0):
            raise ValueError(f"pressure: layers must be strictly ascending, got {self.pressure}")
        if np.any(np.diff(self.level_pressure) <= 0.0):
            raise ValueError(
                f"level_pressure: levels must be strictly ascending, got {self.level_pressure}"
            )

    @property
    def n_layers(self) -> int:
        return self.pressure.size

    @property
    def n_absorbers(self) -> int:
        return self.absorber_id.size

    def absorber_index(self, absorber_id: int) -> Optional[int]:
        """Column of an absorber in self.absorber, or None if absent."""
        found = np.nonzero(self.absorber_id == absorber_id)[0]
        return int(found[0]) if found.size else None

    def zeros_like(self) -> 'Atmosphere':
        """Zero-valued record with the same shapes and absorber ids."""
        return Atmosphere(level_pressure=np.zeros_like(self.level_pressure),
                          pressure=np.zeros_like(self.pressure),
                          temperature=np.zeros_like(self.temperature),
                          absorber=np.zeros_like(self.absorber),
                          absorber_id=self.absorber_id.copy())

    def check_mirror(self, other: 'Atmosphere', name: str):
        """Raise ValueError if a TL/AD record does not match this profile."""
        for attr in ('level_pressure', 'pressure', 'temperature', 'absorber'):
            mine = getattr(self, attr).shape
            theirs = getattr(other, attr).shape
            if mine != theirs:
                raise ValueError(f"{name}.{attr}: expected shape {mine}, got {theirs}")
        if not np.array_equal(self.absorber_id, other.absorber_id):
            raise ValueError(
                f"{name}.absorber_id: expected {self.absorber_id.tolist()}, "
                f"got {other.absorber_id.tolist()}"
            )


@dataclass
class GeometryInfo:
    """Viewing geometry of one observation."""
    sensor_zenith_angle: float = 0.0   # degrees
    surface_altitude: float = 0.0      # km

    def __post_init__(self):
        if not 0.0 <= self.sensor_zenith_angle < 90.0:
            raise ValueError(
                f"sensor_zenith_angle must be in [0, 90) degrees, "
                f"got {self.sensor_zenith_angle}"
            )

    @property
    def secant_sensor_zenith(self) -> float:
        return 1.0 / np.cos(self.sensor_zenith_angle * DEGREES_TO_RADIANS)


@dataclass
class SSMISInput:
    """
    Zeeman-splitting inputs for the SSMIS upper-air channels.

    Attributes:
        field_strength: Earth magnetic field strength (Gauss)
        cos_theta_b: Cosine of the angle between the field and the
            propagation direction
        doppler_shift: Per-channel Doppler shift (kHz), or None
    """
    field_strength: float = 0.0
    cos_theta_b: float = 0.0
    doppler_shift: Optional[np.ndarray] = None


@dataclass
class SensorInput:
    """Sensor-specific inputs; only the fields a sensor family needs are set."""
    ssmis: Optional[SSMISInput] = None
