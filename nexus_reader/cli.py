"""Command-line interface for the nexus_reader application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, parse_app_config, parse_env_config
from .models import ViewMode
from .runner import RunConfig, execute

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Aggregate feeds into one timeline with semantic search and translation."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the main configuration XML file (built-in defaults if omitted).",
    )

    # Overrides for logging/debugging
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    parser.add_argument(
        "--view",
        choices=[mode.value for mode in ViewMode],
        default=ViewMode.TODAY.value,
        help="Timeline view to display.",
    )
    parser.add_argument(
        "--source",
        metavar="ID",
        help="Source id to display with --view source.",
    )
    parser.add_argument(
        "--query",
        help="Semantic search query; results replace the selected view.",
    )
    parser.add_argument(
        "--locale",
        help="Display locale (e.g. zh). Stored for later runs.",
    )
    parser.add_argument(
        "--toggle-favorite",
        metavar="ID",
        action="append",
        default=[],
        help="Toggle the favorite flag of item ID before rendering. Repeatable.",
    )
    parser.add_argument(
        "--html",
        metavar="PATH",
        help="Also write the timeline as HTML to PATH.",
    )
    parser.add_argument(
        "--save-items",
        metavar="PATH",
        help="Write the aggregated items to PATH as JSON.",
    )
    parser.add_argument(
        "--load-items",
        metavar="PATH",
        help="Load previously saved items from PATH instead of fetching feeds.",
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        # CLI overrides config
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        if args.source and args.view != ViewMode.SOURCE.value:
            raise ValueError("--source requires --view source.")

        config = RunConfig(
            feeds_file=app_config.feeds_file,
            transport=app_config.transport,
            per_source_limit=app_config.per_source_limit,
            search_candidates=app_config.search_candidates,
            default_locale=app_config.default_locale,
            locale=args.locale,
            view=args.view,
            source_id=args.source,
            query=args.query,
            toggle_favorites=args.toggle_favorite,
            embedding_provider=app_config.embeddings.provider,
            embedding_model=app_config.embeddings.model,
            translation_enabled=app_config.translation.enabled,
            translation_model=app_config.translation.model,
            translation_batch_size=app_config.translation.batch_size,
            translation_debounce_ms=app_config.translation.debounce_ms,
            database_connection_string=app_config.database.connection_string,
            html_output_path=args.html,
            save_items_path=args.save_items,
            load_items_path=args.load_items,
        )

        config_dict = dataclasses.asdict(config)
        if config_dict.get("database_connection_string"):
            config_dict["database_connection_string"] = "***MASKED***"

        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        result = execute(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    print(result.output_text)
    return 0
