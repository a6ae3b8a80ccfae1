"""
Camera for raster export.

A camera is given either as a gimbal (translation, rotation, distance) or
as an eye/center vector pair. Renderers ask it for matplotlib view angles
and the region of space to show.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

# Vertical field of view of the interactive viewer, degrees
FOV = 22.5

PROJECTIONS = {
    'o': 'ortho', 'ortho': 'ortho',
    'p': 'perspective', 'perspective': 'perspective',
}


@dataclass
class Camera:
    type: str = 'none'  # 'none', 'gimbal' or 'vector'
    object_trans: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    object_rot: Tuple[float, float, float] = (55.0, 0.0, 25.0)
    viewer_distance: float = 140.0
    eye: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    projection: str = 'perspective'
    viewall: bool = False
    autocenter: bool = False
    pixel_size: Tuple[int, int] = field(default=(512, 512))

    @classmethod
    def from_gimbal(cls, values: Sequence[float]) -> "Camera":
        if len(values) != 7:
            raise ValueError("gimbal camera needs 7 values: translate x,y,z, rotate x,y,z, distance")
        return cls(type='gimbal', object_trans=tuple(values[0:3]),
                   object_rot=tuple(values[3:6]), viewer_distance=values[6])

    @classmethod
    def from_vector(cls, values: Sequence[float]) -> "Camera":
        if len(values) != 6:
            raise ValueError("vector camera needs 6 values: eye x,y,z, center x,y,z")
        return cls(type='vector', eye=tuple(values[0:3]), center=tuple(values[3:6]))

    @classmethod
    def parse(cls, text: Optional[str]) -> "Camera":
        """Parse ``--camera`` text; None gives the default camera."""
        if text is None:
            return cls()
        try:
            values = [float(v) for v in text.split(',')]
        except ValueError:
            raise ValueError(f"camera setup requires numbers, got '{text}'") from None
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"camera setup requires finite numbers, got '{text}'")
        if len(values) == 7:
            return cls.from_gimbal(values)
        if len(values) == 6:
            return cls.from_vector(values)
        raise ValueError("camera setup requires either 7 numbers for Gimbal Camera "
                         "or 6 numbers for Vector Camera")

    def set_projection(self, name: str) -> None:
        try:
            self.projection = PROJECTIONS[name.lower()]
        except KeyError:
            raise ValueError(f"projection must be one of {sorted(PROJECTIONS)}, got '{name}'") from None

    def set_pixel_size(self, text: str) -> None:
        parts = text.split(',')
        if len(parts) != 2:
            raise ValueError("image size requires two numbers: width,height")
        try:
            width, height = int(parts[0]), int(parts[1])
        except ValueError:
            raise ValueError(f"image size requires integers, got '{text}'") from None
        if width <= 0 or height <= 0:
            raise ValueError("image size must be positive")
        self.pixel_size = (width, height)

    @property
    def fits_geometry(self) -> bool:
        """The view is computed from the geometry rather than the camera."""
        return self.type == 'none' or self.viewall

    def view_angles(self) -> Tuple[float, float]:
        """Matplotlib (elevation, azimuth) in degrees."""
        if self.type == 'vector':
            d = np.subtract(self.eye, self.center)
            if not np.any(d):
                return 90.0, -90.0
            elev = math.degrees(math.atan2(d[2], math.hypot(d[0], d[1])))
            azim = math.degrees(math.atan2(d[1], d[0]))
            return elev, azim
        rx, _, rz = self.object_rot
        return 90.0 - rx, -90.0 - rz

    def view_limits(self, bounds: Optional[np.ndarray]) -> Tuple[np.ndarray, float]:
        """Center of the view and half the extent shown along each axis."""
        if self.type == 'vector':
            center = np.asarray(self.center, dtype=float)
            distance = float(np.linalg.norm(np.subtract(self.eye, self.center)))
        else:
            center = -np.asarray(self.object_trans, dtype=float)
            distance = float(self.viewer_distance)
        half = max(distance * math.tan(math.radians(FOV / 2)), 1e-6)

        if bounds is not None:
            if self.autocenter or self.fits_geometry:
                center = (bounds[0] + bounds[1]) / 2.0
            if self.fits_geometry:
                half = max(float(np.max(bounds[1] - bounds[0])) / 2.0, 1e-6)
        return center, half
