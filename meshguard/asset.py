from __future__ import annotations
from enum import Enum
import logging
import typing
import meshguard
import meshguard.fallback
import meshguard.gltf
from meshguard import config
from meshguard.fallback import Fallback
from meshguard.scene import Scene

logger = logging.getLogger(__name__)

Loader = typing.Callable[[str], typing.Optional[Scene]]


class AssetState(Enum):
    LOADING = "loading"
    VALID = "valid"
    INVALID = "invalid"


class HeroAsset:
    """One decorative model: loaded, validated once, then either shown or replaced."""

    def __init__(
        self,
        *,
        path: str,
        fallback: Fallback,
        loader: typing.Optional[Loader] = None,
        policy: typing.Optional[meshguard.Policy] = None,
    ) -> None:
        self.path = path
        self.fallback = fallback
        self.loader: Loader = loader or meshguard.gltf.load
        self.policy = policy or config.get_default_policy()
        self.state = AssetState.LOADING
        self.result: typing.Optional[meshguard.ValidationResult] = None

    def load(self) -> AssetState:
        self.state = AssetState.LOADING
        self.result = None

        try:
            scene = self.loader(self.path)
        except (OSError, meshguard.MeshguardError) as error:
            logger.warning("Loading %s failed: %s", self.path, error)
            scene = None

        self.result = meshguard.validate(scene, policy=self.policy)
        if self.result:
            self.state = AssetState.VALID
        else:
            self.state = AssetState.INVALID
            logger.warning(
                "Using %s for %s: %s", self.fallback.name, self.path, self.result.reason
            )
        return self.state

    @property
    def renderable(self) -> Scene:
        if self.result is None:
            raise meshguard.AssetStateError(f"{self.path} has not finished loading")
        return meshguard.fallback.choose_renderable(self.result, self.fallback)


def earth_asset(
    assets_dir: typing.Optional[str] = None, **kwargs: typing.Any
) -> HeroAsset:
    return HeroAsset(
        path=config.get_asset_path(config.EARTH_MODEL, assets_dir),
        fallback=meshguard.fallback.wireframe_sphere(),
        **kwargs,
    )


def computer_asset(
    assets_dir: typing.Optional[str] = None, **kwargs: typing.Any
) -> HeroAsset:
    return HeroAsset(
        path=config.get_asset_path(config.COMPUTER_MODEL, assets_dir),
        fallback=meshguard.fallback.box(),
        **kwargs,
    )
