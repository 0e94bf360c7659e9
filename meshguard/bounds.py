import math
import typing
import numpy as np
import meshguard
from meshguard.scene import Geometry

EMPTY_BOUNDS = meshguard.Bounds(
    min=(math.inf, math.inf, math.inf), max=(-math.inf, -math.inf, -math.inf)
)


def _get_positions(geometry: Geometry) -> np.ndarray:
    positions = geometry.get(meshguard.Attribute.POSITION)
    if positions is None:
        raise meshguard.GeometryError("geometry has no position attribute")
    if positions.ndim != 2 or positions.shape[1] != 3:
        raise meshguard.GeometryError(
            f"position buffer must have shape (count, 3), got {positions.shape}"
        )
    return positions


def _to_tuple(vector: np.ndarray) -> typing.Tuple[float, float, float]:
    return (float(vector[0]), float(vector[1]), float(vector[2]))


def compute_bounding_box(geometry: Geometry) -> meshguard.Bounds:
    positions = _get_positions(geometry)
    if not len(positions):
        return EMPTY_BOUNDS

    positions = positions.astype(np.float64)
    return meshguard.Bounds(
        min=_to_tuple(positions.min(axis=0)), max=_to_tuple(positions.max(axis=0))
    )


def compute_bounding_sphere(
    geometry: Geometry, bounds: typing.Optional[meshguard.Bounds] = None
) -> meshguard.BoundingSphere:
    """Centres the sphere on the box centre; the radius reaches the farthest vertex."""
    positions = _get_positions(geometry)
    if not len(positions):
        return meshguard.BoundingSphere(center=(0.0, 0.0, 0.0), radius=0.0)

    if bounds is None:
        bounds = compute_bounding_box(geometry)

    with np.errstate(invalid="ignore", over="ignore"):
        center = (np.array(bounds.min) + np.array(bounds.max)) / 2
        offsets = positions.astype(np.float64) - center
        radius = math.sqrt(float(np.max(np.einsum("ij,ij->i", offsets, offsets))))

    return meshguard.BoundingSphere(center=_to_tuple(center), radius=radius)
