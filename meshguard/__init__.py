from __future__ import annotations
import dataclasses
from enum import Enum
import typing

if typing.TYPE_CHECKING:
    from meshguard.scene import Scene


class MeshguardError(Exception):
    pass


class GeometryError(MeshguardError):
    pass


class GltfError(MeshguardError):
    pass


class AssetStateError(MeshguardError):
    pass


class ConfigurationError(MeshguardError):
    pass


class SubmissionError(MeshguardError):
    pass


class AccessDenied(MeshguardError):
    pass


class Attribute(Enum):
    POSITION = "POSITION"
    NORMAL = "NORMAL"
    TEXCOORD = "TEXCOORD_0"


ATTRIBUTE_COMPONENT_COUNTS = {
    Attribute.POSITION: 3,
    Attribute.NORMAL: 3,
    Attribute.TEXCOORD: 2,
}


class Policy(Enum):
    INVALIDATE_SCENE = "invalidate"
    PRUNE_MESHES = "prune"


@dataclasses.dataclass(frozen=True)
class Bounds:
    min: typing.Tuple[float, float, float]
    max: typing.Tuple[float, float, float]


@dataclasses.dataclass(frozen=True)
class BoundingSphere:
    center: typing.Tuple[float, float, float]
    radius: float


@dataclasses.dataclass(frozen=True)
class Valid:
    scene: Scene

    def __bool__(self) -> bool:
        return True


@dataclasses.dataclass(frozen=True)
class Invalid:
    reason: str = ""

    def __bool__(self) -> bool:
        return False


ValidationResult = typing.Union[Valid, Invalid]


from meshguard.validation import validate  # noqa: E402  pylint: disable = wrong-import-position
