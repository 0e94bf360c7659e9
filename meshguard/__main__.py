"""
Command line checks for glTF hero models.

Usage:
    python -m meshguard check MODEL.gltf [MODEL.gltf ...] [--prune] [--log-level LEVEL]

Exits with status 0 when every model is valid, 1 otherwise.
"""
import argparse
import logging
import sys
import typing
import meshguard
import meshguard.gltf
from meshguard.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshguard", description="Validate glTF models before rendering them."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="load and validate models")
    check_parser.add_argument("paths", nargs="+", metavar="PATH")
    check_parser.add_argument(
        "--prune",
        action="store_true",
        help="drop corrupted meshes instead of rejecting the whole scene",
    )
    check_parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def check(paths: typing.Sequence[str], policy: meshguard.Policy) -> int:
    status = 0
    for path in paths:
        result = meshguard.validate(meshguard.gltf.load(path), policy=policy)
        if result:
            print(f"{path}: valid")
        else:
            print(f"{path}: invalid ({result.reason})")
            status = 1
    return status


def main(argv: typing.Optional[typing.Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(getattr(logging, args.log_level))

    policy = meshguard.Policy.INVALIDATE_SCENE
    if args.prune:
        policy = meshguard.Policy.PRUNE_MESHES
    return check(args.paths, policy)


if __name__ == "__main__":
    sys.exit(main())
