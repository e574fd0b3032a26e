"""Command-line entry point for the vibe-coded repository registry."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .analyzer import RepositoryDetector, TrivyScanner
from .config import Config, load_config, validate_config
from .discovery import DiscoveryEngine
from .github import GitHubClient
from .pipeline.registry import InvalidRepositoryError, Registry
from .storage import Denylist, ShardedCatalogStore
from .utils.repos import parse_repo

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def _configure_logging(level: str) -> None:
    # stdout carries machine-readable results; logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vibecoded",
        description="Discover, detect and catalog AI-assisted GitHub repositories.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a repository to the catalog.")
    p.add_argument("repo", help="owner/repo or GitHub URL")
    p.add_argument("--force", "--update", dest="force", action="store_true", help="Re-add if already cataloged.")

    p = sub.add_parser("update", help="Refresh one cataloged repository.")
    p.add_argument("repo")

    p = sub.add_parser("detect", help="Run AI-tool detection and print the result as JSON.")
    p.add_argument("repo")

    p = sub.add_parser("scan", help="Scan a repository for vulnerable dependencies and secrets.")
    p.add_argument("repo")
    p.add_argument("--update", action="store_true", help="Store findings on the catalog entry.")

    p = sub.add_parser("discover", help="Search for new candidates and print verified ones as JSON.")
    p.add_argument("limit", nargs="?", type=int, default=5)

    p = sub.add_parser("refresh-all", help="Refresh every cataloged repository.")
    p.add_argument("--concurrency", type=int, default=None)

    p = sub.add_parser("deny", help="Add a repository to the denylist.")
    p.add_argument("repo")

    p = sub.add_parser("import", help="Add every repository listed in a file.")
    p.add_argument("file", type=Path)

    return parser


def _require_repo(value: str) -> str:
    full_name = parse_repo(value)
    if not full_name:
        raise InvalidRepositoryError(f"Invalid: expected owner/repo or GitHub URL, got {value!r}")
    return full_name


async def run(args: argparse.Namespace, config: Config) -> int:
    store = ShardedCatalogStore(config.data_dir)
    denylist = Denylist(config.denylist_path)

    async with GitHubClient(config.github_token or None) as client:
        detector = RepositoryDetector(client)
        scanner = TrivyScanner(client, trivy_bin=config.trivy_bin)
        registry = Registry(client=client, store=store, denylist=denylist, detector=detector, scanner=scanner)

        if args.command == "add":
            await registry.add(args.repo, force=args.force)
            return 0

        if args.command == "update":
            full_name = _require_repo(args.repo)
            project = store.get(full_name)
            if project is None:
                logger.error("Not in catalog: %s", full_name)
                return EXIT_FAILURE
            store.upsert(await registry.update_project(project))
            return 0

        if args.command == "detect":
            result = await detector.detect(_require_repo(args.repo))
            _print_json(result.to_dict())
            return 0

        if args.command == "scan":
            full_name = _require_repo(args.repo)
            if args.update:
                result = await registry.scan_and_store(full_name)
            else:
                result = await scanner.scan(full_name)
            if not result.summary:
                logger.info("No vulnerabilities found for %s", full_name)
            _print_json(result.summary)
            return 0

        if args.command == "discover":
            store.migrate_from_legacy()
            engine = DiscoveryEngine(
                client=client,
                detector=detector,
                known=store.keys(),
                denied=denylist.load(),
            )
            found = await engine.discover(args.limit)
            _print_json([item.to_dict() for item in found])
            return 0

        if args.command == "refresh-all":
            stats = await registry.refresh_all(args.concurrency or config.max_concurrency)
            return 0 if stats.failed == 0 else EXIT_FAILURE

        if args.command == "deny":
            if not registry.deny(args.repo):
                logger.info("Already denied: %s", args.repo)
            return 0

        if args.command == "import":
            await registry.import_file(args.file)
            return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    _configure_logging(config.log_level)

    errors = validate_config(config)
    if errors:
        for error in errors:
            logger.error("Config error: %s", error)
        return EXIT_FAILURE

    try:
        return asyncio.run(run(args, config))
    except InvalidRepositoryError as e:
        print(str(e), file=sys.stderr)
        return EXIT_INVALID_INPUT
    except KeyboardInterrupt:
        return EXIT_FAILURE
    except Exception as e:
        logger.error("%s failed: %s", args.command, e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
