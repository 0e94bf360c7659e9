"""Placeholder primitives shown in place of a scene that failed validation."""
from __future__ import annotations
import dataclasses
import math
import typing
import numpy as np
import meshguard
from meshguard.scene import Geometry, Material, Scene, new_geometry, single_mesh_scene

SPHERE_COLOR = "#4ade80"
BOX_COLOR = "#915EFF"


@dataclasses.dataclass(frozen=True)
class Fallback:
    name: str
    geometry: Geometry
    material: Material

    @property
    def scene(self) -> Scene:
        return single_mesh_scene(self.geometry, material=self.material, name=self.name)


def sphere_geometry(
    radius: float = 1.0, width_segments: int = 32, height_segments: int = 16
) -> Geometry:
    width_segments = max(3, width_segments)
    height_segments = max(2, height_segments)

    u = np.linspace(0.0, 1.0, width_segments + 1)
    v = np.linspace(0.0, 1.0, height_segments + 1)
    uu, vv = np.meshgrid(u, v)
    phi = uu * 2 * math.pi
    theta = vv * math.pi

    unit = np.stack(
        (-np.cos(phi) * np.sin(theta), np.cos(theta), np.sin(phi) * np.sin(theta)),
        axis=-1,
    ).reshape(-1, 3)
    texcoords = np.stack((uu, 1 - vv), axis=-1).reshape(-1, 2)

    row_stride = width_segments + 1
    indices = []
    for iy in range(height_segments):
        for ix in range(width_segments):
            a = iy * row_stride + ix + 1
            b = iy * row_stride + ix
            c = (iy + 1) * row_stride + ix
            d = (iy + 1) * row_stride + ix + 1
            # the poles collapse to a point, skip their degenerate triangles
            if iy != 0:
                indices.extend((a, b, d))
            if iy != height_segments - 1:
                indices.extend((b, c, d))

    return new_geometry(
        positions=(unit * radius).ravel(),
        normals=unit.ravel(),
        texcoords=texcoords.ravel(),
        indices=indices,
    )


_BOX_FACES = (
    # normal, u axis, v axis
    ((1, 0, 0), (0, 0, -1), (0, 1, 0)),
    ((-1, 0, 0), (0, 0, 1), (0, 1, 0)),
    ((0, 1, 0), (1, 0, 0), (0, 0, -1)),
    ((0, -1, 0), (1, 0, 0), (0, 0, 1)),
    ((0, 0, 1), (1, 0, 0), (0, 1, 0)),
    ((0, 0, -1), (-1, 0, 0), (0, 1, 0)),
)


def box_geometry(width: float = 1.0, height: float = 1.0, depth: float = 1.0) -> Geometry:
    half_extents = np.array((width, height, depth), dtype=np.float64) / 2
    positions: typing.List[float] = []
    normals: typing.List[float] = []
    texcoords: typing.List[float] = []
    indices: typing.List[int] = []

    for normal, u_axis, v_axis in _BOX_FACES:
        normal, u_axis, v_axis = (np.array(_) for _ in (normal, u_axis, v_axis))
        base_index = len(positions) // 3
        for u, v in ((0, 0), (1, 0), (0, 1), (1, 1)):
            corner = normal + (2 * u - 1) * u_axis + (2 * v - 1) * v_axis
            positions.extend(corner * half_extents)
            normals.extend(normal)
            texcoords.extend((u, v))
        indices.extend(base_index + _ for _ in (0, 1, 2, 2, 1, 3))

    return new_geometry(
        positions=positions, normals=normals, texcoords=texcoords, indices=indices
    )


def wireframe_sphere(
    radius: float = 2.5, width_segments: int = 32, height_segments: int = 32
) -> Fallback:
    return Fallback(
        name="fallback-sphere",
        geometry=sphere_geometry(radius, width_segments, height_segments),
        material=Material(color=SPHERE_COLOR, wireframe=True),
    )


def box(width: float = 2.0, height: float = 2.0, depth: float = 2.0) -> Fallback:
    return Fallback(
        name="fallback-box",
        geometry=box_geometry(width, height, depth),
        material=Material(color=BOX_COLOR),
    )


def choose_renderable(result: meshguard.ValidationResult, fallback: Fallback) -> Scene:
    if isinstance(result, meshguard.Valid):
        return result.scene
    return fallback.scene
