"""Configuration loading for feed sources and application settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .models import FeedSource

logger = logging.getLogger(__name__)

DEFAULT_SOURCES: List[FeedSource] = [
    FeedSource("1", "Joel on Software", "https://www.joelonsoftware.com/feed/", "programming"),
    FeedSource("2", "Coding Horror", "https://blog.codinghorror.com/rss/", "programming"),
    FeedSource("3", "Paul Graham", "http://www.aaronsw.com/2002/feeds/pgessays.rss", "tech"),
    FeedSource("4", "Dan Luu", "https://danluu.com/atom.xml", "tech"),
    FeedSource("5", "A List Apart", "https://alistapart.com/main/feed/", "tech"),
    FeedSource("6", "CSS-Tricks", "https://css-tricks.com/feed/", "programming"),
    FeedSource("7", "Smashing Magazine", "https://www.smashingmagazine.com/feed/", "tech"),
    FeedSource("8", "Hacker News (Top)", "https://hnrss.org/newest?points=100", "tech"),
]


@dataclass
class EmbeddingsConfig:
    provider: str = "gemini"
    model: Optional[str] = None


@dataclass
class TranslationConfig:
    enabled: bool = True
    model: Optional[str] = None
    batch_size: int = 10
    debounce_ms: int = 500


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    connection_string: str = "sqlite:///nexus_reader.db"


@dataclass
class AppConfig:
    feeds_file: Optional[str] = None
    env_file: Optional[str] = None
    transport: str = "rss2json"
    per_source_limit: int = 10
    search_candidates: int = 30
    default_locale: str = "en"
    embeddings: EmbeddingsConfig = field(default_factory=EmbeddingsConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def parse_feeds_config(path: str) -> List[FeedSource]:
    """Parse the OPML configuration file and return feed sources."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    sources: List[FeedSource] = []
    seen_ids = set()

    def walk(outline: ET.Element, current_category: Optional[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        outline_type = outline.attrib.get("type")

        if outline_type == "rss" and feed_url:
            source_id = outline.attrib.get("id") or str(len(sources) + 1)
            if source_id in seen_ids:
                raise ValueError(f"Duplicate feed id in configuration: {source_id}")
            seen_ids.add(source_id)
            sources.append(
                FeedSource(
                    id=source_id,
                    name=title or feed_url,
                    url=feed_url,
                    category=current_category or title or "general",
                )
            )
            logger.debug(
                "Registered feed '%s' (id=%s, category='%s')",
                feed_url,
                source_id,
                sources[-1].category,
            )
            return

        next_category = title if title else current_category
        for child in outline.findall("outline"):
            walk(child, next_category)

    if body is None:
        raise ValueError("feeds file is missing the <body> section.")

    for outline in body.findall("outline"):
        walk(outline, outline.attrib.get("title") or outline.attrib.get("text"))

    logger.info("Loaded %d feed sources from configuration", len(sources))
    return sources


def load_sources(feeds_file: Optional[str]) -> List[FeedSource]:
    """Return configured sources, or the built-in list without a feeds file."""
    if not feeds_file:
        logger.info("No feeds file configured; using %d built-in sources", len(DEFAULT_SOURCES))
        return list(DEFAULT_SOURCES)
    return parse_feeds_config(feeds_file)


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars: Dict[str, str] = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() == "true"


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    feeds_node = root.find("feeds")
    feeds_file = (
        _resolve_path(config_path, feeds_node.text.strip())
        if feeds_node is not None and feeds_node.text
        else None
    )

    env_node = root.find("env")
    env_file = (
        _resolve_path(config_path, env_node.text.strip())
        if env_node is not None and env_node.text
        else None
    )

    transport = root.findtext("transport", "rss2json").strip()
    per_source_limit = int(root.findtext("per-source-limit", "10"))
    search_candidates = int(root.findtext("search-candidates", "30"))
    if per_source_limit <= 0:
        raise ValueError("<per-source-limit> must be positive.")
    if search_candidates <= 0:
        raise ValueError("<search-candidates> must be positive.")

    locale_node = root.find("locale")
    default_locale = "en"
    if locale_node is not None:
        default_locale = locale_node.attrib.get("default", "en")

    emb_node = root.find("embeddings")
    embeddings_config = EmbeddingsConfig()
    if emb_node is not None:
        embeddings_config.provider = emb_node.findtext("provider", "gemini")
        embeddings_config.model = emb_node.findtext("model")

    tr_node = root.find("translation")
    translation_config = TranslationConfig()
    if tr_node is not None:
        translation_config.enabled = _parse_bool(tr_node.findtext("enabled"), True)
        translation_config.model = tr_node.findtext("model")
        translation_config.batch_size = int(tr_node.findtext("batch-size", "10"))
        translation_config.debounce_ms = int(tr_node.findtext("debounce-ms", "500"))
        if translation_config.batch_size <= 0:
            raise ValueError("<batch-size> must be positive.")

    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    db_node = root.find("database")
    db_config = DatabaseConfig()
    if db_node is not None:
        connection_string = db_node.findtext("connection-string")
        if connection_string:
            db_config.connection_string = connection_string.strip()

    return AppConfig(
        feeds_file=feeds_file,
        env_file=env_file,
        transport=transport,
        per_source_limit=per_source_limit,
        search_candidates=search_candidates,
        default_locale=default_locale,
        embeddings=embeddings_config,
        translation=translation_config,
        logging=logging_config,
        database=db_config,
    )
