import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .config import Settings, load_settings
from .errors import NoDevicesError, RscImportError
from .importer import import_script
from .logging_config import configure_logging
from .storage import JsonTopologyStore, TopologyStore
from .synthesizer import preview
from .topology_client import TopologyApiClient

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> TopologyStore:
    if settings.store_backend == "api":
        logger.info("Using topology API at %s", settings.api_url)
        return TopologyApiClient(
            base_url=settings.api_url or "",
            token=settings.api_token,
            timeout=settings.api_timeout,
            verify_ssl=settings.api_verify_ssl,
        )
    logger.info("Using JSON topology store in %s", settings.data_dir)
    return JsonTopologyStore(settings.data_dir)


def _read_script(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        return fh.read()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rsc-topology",
        description="Preview or import Mikrotik RSC exports into a network topology scenario.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_preview = sub.add_parser("preview", help="Show the devices and VLANs a script describes (no writes).")
    p_preview.add_argument("script", help="Path to the .rsc file, or - for stdin")

    p_import = sub.add_parser("import", help="Import a script into a scenario.")
    p_import.add_argument("script", help="Path to the .rsc file, or - for stdin")
    target = p_import.add_mutually_exclusive_group()
    target.add_argument("--scenario-id", type=int, help="Import into this existing scenario")
    target.add_argument("--scenario-name", help="Name for the new scenario (default: first device name)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    # Configure logging early so load_settings() warnings/errors are visible.
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    args = _build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_dir)

    try:
        script = _read_script(args.script)
    except OSError as exc:
        logger.error("Cannot read script %s: %s", args.script, exc)
        print(f"Cannot read script: {args.script}", file=sys.stderr)
        return 1

    store: Optional[TopologyStore] = None
    if args.command == "import":
        try:
            store = build_store(settings)
        except RuntimeError as exc:
            logger.error("Cannot open topology store: %s", exc)
            print(json.dumps({"error": f"Cannot open topology store: {exc}"}, indent=2), file=sys.stderr)
            return 1

    try:
        if store is None:
            result = preview(script)
        else:
            result = import_script(
                store,
                script,
                scenario_id=args.scenario_id,
                scenario_name=args.scenario_name,
            )
    except NoDevicesError as exc:
        print(json.dumps({"error": str(exc), "warnings": exc.warnings}, indent=2), file=sys.stderr)
        return 1
    except RscImportError as exc:
        logger.error("%s", exc)
        print(json.dumps({"error": str(exc)}, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
