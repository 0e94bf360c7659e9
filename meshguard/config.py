"""
Configuration & Path Management
===============================
Resolves where the hero models live and which validation policy applies.

Environment:
    MESHGUARD_ASSETS_DIR: directory the model paths are relative to
        (default: ``public`` under the working directory).
    MESHGUARD_POLICY: ``invalidate`` (default) or ``prune``.
"""
import os
import typing
import meshguard

ASSETS_DIR_VARIABLE = "MESHGUARD_ASSETS_DIR"
POLICY_VARIABLE = "MESHGUARD_POLICY"

EARTH_MODEL = "planet/scene.gltf"
COMPUTER_MODEL = "desktop_pc/scene.gltf"


def get_assets_dir() -> str:
    assets_dir = os.environ.get(ASSETS_DIR_VARIABLE)
    if not assets_dir:
        assets_dir = os.path.join(os.getcwd(), "public")
    return os.path.normpath(assets_dir)


def get_asset_path(relative_path: str, assets_dir: typing.Optional[str] = None) -> str:
    return os.path.join(assets_dir or get_assets_dir(), relative_path)


def get_default_policy() -> meshguard.Policy:
    value = os.environ.get(POLICY_VARIABLE, meshguard.Policy.INVALIDATE_SCENE.value)
    try:
        return meshguard.Policy(value.strip().lower())
    except ValueError as error:
        choices = ", ".join(policy.value for policy in meshguard.Policy)
        raise meshguard.ConfigurationError(
            f"{POLICY_VARIABLE}={value!r} is not one of: {choices}"
        ) from error
