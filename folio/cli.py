from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .config import SiteConfig, load_config
from .emit import DirectoryEmitter
from .errors import FolioError
from .pipeline import BuildOptions, BuildResult, BuildState, Builder
from .server import serve
from .utils import parse_bool, parse_int

logger = logging.getLogger("folio")

CONFIG_CANDIDATES = ("config.yaml", "config.yml", "config.toml", "config.json")


def find_config(explicit: Optional[str], project_root: Path) -> Optional[Path]:
    if explicit:
        path = Path(explicit)
        return path if path.is_absolute() else (project_root / path).resolve()
    for name in CONFIG_CANDIDATES:
        candidate = project_root / name
        if candidate.exists():
            return candidate
    return None


def setup_logging(verbose: int, quiet: bool) -> None:
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def print_result(result: BuildResult) -> None:
    print(result.summary())


def build_site(args: argparse.Namespace, config: SiteConfig, project_root: Path) -> BuildResult:
    destination = Path(args.destination)
    if not destination.is_absolute():
        destination = project_root / destination
    options = BuildOptions(
        strict=args.strict,
        include_drafts=args.include_drafts,
        workers=args.workers,
        timeout=args.timeout,
    )
    builder = Builder(config, project_root, options)
    emitter = DirectoryEmitter(destination, workers=args.workers, clean=args.clean, project_root=project_root)
    result = builder.run(emitter)
    print_result(result)
    if result.ok:
        print(f"Site generated in: {destination}")
    return result


def serve_site(args: argparse.Namespace, config: SiteConfig, project_root: Path, config_path: Optional[Path]) -> int:
    options = BuildOptions(include_drafts=args.include_drafts, workers=args.workers)
    serve(
        config,
        project_root,
        host=args.host,
        port=args.port,
        options=options,
        config_path=config_path,
        poll=args.poll,
        on_build=print_result,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    project_root = Path.cwd()

    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", default=None)
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_path = find_config(pre_args.config, project_root)
    try:
        raw_config = load_config(config_path) if config_path is not None else {}
        config = SiteConfig.from_mapping(raw_config)
    except FolioError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    def cfg_value(key: str, default: object) -> object:
        value = raw_config.get(key)
        return default if value is None else value

    def cfg_bool(key: str, default: bool) -> bool:
        value = cfg_value(key, default)
        return parse_bool(value) if value is not None else default

    def cfg_int(key: str, default: int) -> int:
        value = cfg_value(key, default)
        return parse_int(value, default)

    parser = argparse.ArgumentParser(prog="folio", description="Static site generator for Markdown content.")
    parser.add_argument("--config", default=pre_args.config, help="Path to site config file (YAML/TOML/JSON).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0, help="Show debug output.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only show warnings and errors.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build the site into the destination directory.")
    build_parser.add_argument(
        "--destination",
        "-d",
        default=config.publish_dir,
        help="Output directory for the site.",
    )
    build_parser.add_argument("--strict", action="store_true", help="Fail the build on any document error.")
    build_parser.add_argument(
        "--include-drafts",
        "-D",
        action="store_true",
        default=config.build_drafts,
        help="Publish documents marked as drafts.",
    )
    build_parser.add_argument(
        "--workers",
        default=cfg_int("workers", 0),
        type=int,
        help="Number of worker threads for loading/rendering/writing (0 = auto).",
    )
    build_parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("cleanDestinationDir", True),
        help="Clean destination directory before build.",
    )
    build_parser.add_argument(
        "--timeout",
        default=config.timeout,
        type=float,
        help="Abort the build after this many seconds (0 = no limit).",
    )

    serve_parser = subparsers.add_parser("serve", help="Build into memory and serve over HTTP, rebuilding on changes.")
    serve_parser.add_argument("--port", "-p", default=cfg_int("port", 1313), type=int, help="Port to listen on.")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument(
        "--include-drafts",
        "-D",
        action="store_true",
        default=config.build_drafts,
        help="Publish documents marked as drafts.",
    )
    serve_parser.add_argument("--workers", default=cfg_int("workers", 0), type=int, help="Worker threads (0 = auto).")
    serve_parser.add_argument("--poll", default=1.0, type=float, help="Seconds between checks for changed files.")

    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)
    if config_path is None:
        logger.info("No config file found, using defaults.")

    if args.command == "serve":
        try:
            return serve_site(args, config, project_root, config_path)
        except OSError as exc:
            print(f"Error: cannot serve on {args.host}:{args.port}: {exc}", file=sys.stderr)
            return 1

    start = time.perf_counter()
    try:
        result = build_site(args, config, project_root)
    except KeyboardInterrupt:
        print("Build interrupted.", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    # Per-route write failures are listed in the summary but only fail a strict build.
    return 0 if result.state is BuildState.DONE else 1


if __name__ == "__main__":
    sys.exit(main())
