"""Configuration management for chainnotes."""

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .validators import is_valid_bech32_address

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

NETWORK_BASE_URLS = {
    "mainnet": "https://cardano-mainnet.blockfrost.io/api/v0",
    "preprod": "https://cardano-preprod.blockfrost.io/api/v0",
    "preview": "https://cardano-preview.blockfrost.io/api/v0",
}

# Label the web client writes note metadata under
DEFAULT_METADATA_LABEL = 42819


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop if we reach filesystem root
        if parent_dir == current_dir:
            return start_dir

        current_dir = parent_dir


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .chainnotes/config.toml if it exists.

    A missing file yields None; a malformed one raises ValueError.
    """
    config_file = repo_root / ".chainnotes" / "config.toml"

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config file {config_file}: {e}") from e


def _section(data: Optional[dict], name: str) -> dict:
    section = (data or {}).get(name)
    return section if isinstance(section, dict) else {}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: Any) -> Any:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as e:
        raise ValueError(f"Invalid environment variable {name}: expected an integer, got {value!r}") from e


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.environ.get(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class BlockfrostConfig(BaseModel):
    """Connection settings for the Blockfrost ledger API."""

    project_id: Optional[str] = Field(default=None)
    network: str = Field(default="preview")
    base_url: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=10.0, gt=0)

    def resolved_base_url(self) -> Optional[str]:
        if self.base_url:
            return self.base_url.rstrip("/")
        return NETWORK_BASE_URLS.get(self.network)

    def is_configured(self) -> bool:
        return bool(self.project_id) and bool(self.resolved_base_url())

    def __repr__(self) -> str:
        project = "***" if self.project_id else "not set"
        return f"BlockfrostConfig(project_id={project!r}, network={self.network!r}, base_url={self.resolved_base_url()!r})"


class IndexerConfig(BaseModel):
    """Settings for the metadata indexer."""

    enabled: bool = Field(default=True)
    start_height: int = Field(default=0, ge=0)
    batch_size: int = Field(default=100)
    poll_interval_seconds: int = Field(default=30)
    metadata_label: Optional[int] = Field(default=DEFAULT_METADATA_LABEL)
    monitor_addresses: list[str] = Field(default_factory=list)

    @field_validator("monitor_addresses")
    @classmethod
    def _check_addresses(cls, value: list[str]) -> list[str]:
        cleaned = []
        for address in value:
            address = address.strip()
            if not is_valid_bech32_address(address):
                raise ValueError(f"Invalid config: [indexer].monitor_addresses contains an invalid address: {address!r}")
            if address not in cleaned:
                cleaned.append(address)
        return cleaned

    def is_configured(self) -> bool:
        return (
            self.batch_size > 0
            and self.poll_interval_seconds > 0
            and self.metadata_label is not None
        )


class SyncConfig(BaseModel):
    """Settings for the pending-transaction sync worker."""

    enabled: bool = Field(default=True)
    interval_seconds: int = Field(default=300, gt=0)
    timeout_minutes: int = Field(default=10, gt=0)
    max_retry_count: int = Field(default=5, ge=1)


class ChainNotesConfig(BaseModel):
    """Top-level configuration for chainnotes."""

    db_path: Path = Field(default=Path("state/chainnotes.sqlite"))
    blockfrost: BlockfrostConfig = Field(default_factory=BlockfrostConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    model_config = {"frozen": False}

    @classmethod
    def from_env(cls, cli_db_path: Optional[str] = None) -> "ChainNotesConfig":
        """Load configuration with the following precedence (highest first):

        1. CLI options (``cli_db_path``)
        2. CHAINNOTES_* environment variables
        3. repo-local .chainnotes/config.toml (walk upward from CWD)
        4. Built-in defaults

        Relative ``db_path`` values resolve against the repo root.

        Raises:
            ValueError: If the config file or an environment value is invalid
        """
        repo_root = _find_repo_root(Path.cwd())
        data = _load_repo_config_data(repo_root)

        bf = _section(data, "blockfrost")
        ix = _section(data, "indexer")
        sy = _section(data, "sync")

        db_path_value = cli_db_path or os.environ.get("CHAINNOTES_DB_PATH") or (data or {}).get("db_path")
        db_path = Path(str(db_path_value or "state/chainnotes.sqlite")).expanduser()
        if not db_path.is_absolute():
            db_path = (repo_root / db_path).resolve()

        return cls(
            db_path=db_path,
            blockfrost=BlockfrostConfig(
                project_id=os.environ.get("CHAINNOTES_BLOCKFROST_PROJECT_ID") or bf.get("project_id"),
                network=os.environ.get("CHAINNOTES_BLOCKFROST_NETWORK") or bf.get("network", "preview"),
                base_url=os.environ.get("CHAINNOTES_BLOCKFROST_BASE_URL") or bf.get("base_url"),
                timeout_seconds=float(os.environ.get("CHAINNOTES_BLOCKFROST_TIMEOUT_SECONDS") or bf.get("timeout_seconds", 10.0)),
            ),
            indexer=IndexerConfig(
                enabled=_env_bool("CHAINNOTES_INDEXER_ENABLED", bool(ix.get("enabled", True))),
                start_height=_env_int("CHAINNOTES_INDEXER_START_HEIGHT", ix.get("start_height", 0)),
                batch_size=_env_int("CHAINNOTES_INDEXER_BATCH_SIZE", ix.get("batch_size", 100)),
                poll_interval_seconds=_env_int(
                    "CHAINNOTES_INDEXER_POLL_INTERVAL_SECONDS",
                    ix.get("poll_interval_seconds", 30),
                ),
                metadata_label=_env_int(
                    "CHAINNOTES_INDEXER_METADATA_LABEL",
                    ix.get("metadata_label", DEFAULT_METADATA_LABEL),
                ),
                monitor_addresses=_env_list(
                    "CHAINNOTES_INDEXER_MONITOR_ADDRESSES",
                    list(ix.get("monitor_addresses", [])),
                ),
            ),
            sync=SyncConfig(
                enabled=_env_bool("CHAINNOTES_SYNC_ENABLED", bool(sy.get("enabled", True))),
                interval_seconds=_env_int("CHAINNOTES_SYNC_INTERVAL_SECONDS", sy.get("interval_seconds", 300)),
                timeout_minutes=_env_int("CHAINNOTES_SYNC_TIMEOUT_MINUTES", sy.get("timeout_minutes", 10)),
                max_retry_count=_env_int("CHAINNOTES_SYNC_MAX_RETRY_COUNT", sy.get("max_retry_count", 5)),
            ),
        )
