"""
config.py - Configuration model for fescue
"""

from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, Field
from rich.console import Console
import sys

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

console = Console()


class IndexerConfig(BaseModel):
    """Connection settings for one configured indexer."""

    name: str
    url: str
    definition: str = Field(
        default="torznab",
        description="Indexer definition key (red, ops, torznab, newznab)"
    )
    api_key: str = ""
    api_path: str = Field(
        default="/api",
        description="Path of the newznab/torznab API endpoint below the base URL"
    )
    use_freeleech_token: bool = Field(
        default=False,
        description="Request freeleech tokens in download URLs when the tracker allows it"
    )
    additional_parameters: str = Field(
        default="",
        description="Extra query string appended to every search request (e.g. '&attrs=poster')"
    )

    @property
    def base_url(self) -> str:
        return self.url.strip().rstrip("/")


class SearchConfig(BaseModel):
    """Parameters that control how search chains are consumed."""

    timeout: int = Field(default=30, description="Per-request timeout in seconds")
    max_concurrency: int = Field(default=2, description="Maximum in-flight requests per indexer")
    max_attempts: int = Field(default=3, description="Attempts for rate-limited or transient failures")
    all_tiers: bool = Field(
        default=False,
        description="Consume every tier instead of stopping at the first tier with results"
    )
    max_results: Optional[int] = Field(
        default=None,
        description="Stop pulling pages once this many releases were collected"
    )


class LoggingConfig(BaseModel):
    debug: bool = False
    log_file: Optional[Path] = None


class FescueConfig(BaseModel):
    indexers: Dict[str, IndexerConfig] = Field(default_factory=dict)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_path: Optional[Path] = None


def load_config(config_path: Path) -> FescueConfig:
    """Load configuration from TOML file"""

    if not config_path.exists():
        console.print(f"[red][ERROR][/red] Configuration file not found: {config_path}")
        console.print("Please create config.toml with your indexer settings")
        sys.exit(1)

    try:
        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)

        config = FescueConfig(
            indexers={
                key: IndexerConfig(**{"name": key, **indexer_data})
                for key, indexer_data in config_data.get("indexers", {}).items()
            },
            search=SearchConfig(**config_data.get("search", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
            config_path=config_path
        )

        return config

    except Exception as e:
        console.print(f"[red][ERROR][/red] Error loading configuration: {e}")
        sys.exit(1)
