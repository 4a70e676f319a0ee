from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from propbind.config import BindingOptions, SettingsLoadRequest, YamlSettingsLoader
from propbind.config.interfaces import SettingsLoader
from propbind.core.errors import SourceUnreachable
from propbind.core.models import ValueSnapshot
from propbind.loaders import MergingSourceLoader
from propbind.logging import init_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="propbind", description="Inspect merged property sources")
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to a propbind settings YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--no-dotenv",
        action="store_true",
        help="Disable loading .env (env overrides still apply)",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a property; checked before every source. May be repeated.",
    )
    parser.add_argument(
        "--skip-unreachable",
        action="store_true",
        help="Skip sources that cannot be read instead of failing",
    )
    parser.add_argument(
        "--first",
        action="store_true",
        help="Use only the first readable source instead of merging all of them",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: show
    show_parser = subparsers.add_parser("show", help="Print every merged property as key=value")
    show_parser.add_argument("sources", nargs="*", help="Source URIs, highest priority first")

    # Command: get
    get_parser = subparsers.add_parser("get", help="Print the merged value of one property")
    get_parser.add_argument("key", help="Property key")
    get_parser.add_argument("sources", nargs="*", help="Source URIs, highest priority first")

    return parser


def _parse_overrides(items: Sequence[str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise SystemExit(f"Invalid --set value, expected KEY=VALUE: {item}")
        overrides[name.strip()] = value
    return overrides


def _effective_options(args: argparse.Namespace, options: BindingOptions) -> BindingOptions:
    update: dict[str, str] = {}
    if args.skip_unreachable:
        update["on_unreachable"] = "skip"
    if args.first:
        update["load_type"] = "first"
    return options.model_copy(update=update) if update else options


async def _load_snapshot(args: argparse.Namespace) -> ValueSnapshot:
    settings_loader: SettingsLoader = YamlSettingsLoader()
    settings = await settings_loader.load(
        SettingsLoadRequest(
            yaml_path=args.settings,
            dotenv_path=None if args.no_dotenv else ".env",
        )
    )
    init_logging(settings.logging)

    options = _effective_options(args, settings.binding)
    loader = MergingSourceLoader(options=options)
    logger.debug("Loading sources. sources=%s load_type=%s", args.sources, options.load_type)
    return await loader.load(args.sources, _parse_overrides(args.overrides))


async def _main_async(argv: Optional[Sequence[str]]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        snapshot = await _load_snapshot(args)
    except SourceUnreachable as exc:
        logger.error("Cannot load sources. source=%s reason=%s", exc.source, exc.reason)
        return 2

    if args.command == "show":
        for name in sorted(snapshot):
            print(f"{name}={snapshot.values[name]}")
        return 0

    value = snapshot.get(args.key)
    if value is None:
        logger.error("Property not found. key=%s", args.key)
        return 1
    print(value)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        code = asyncio.run(_main_async(argv))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
