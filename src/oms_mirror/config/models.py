from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Level for the oms_mirror loggers
    level: str = "INFO"
    # Level for everything else (aiohttp, asyncio, ...)
    library_level: str = "WARNING"
    # Empty disables the file handler; rotated daily at midnight
    file_path: str = ""
    backup_count: int = 7


class StoreSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # SQLite database file holding every mirrored dataset
    path: str = "data/mirror/mirror.sqlite3"


class HttpSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = 30.0


class ItemSourceSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    database_url: str
    metadata_path: str = "itemData/metadata"
    items_path: str = "itemData/items"
    auth_token: Optional[str] = None
    # "changed": resync whenever the upload date differs
    comparator: Literal["changed", "newer"] = "changed"


class StockSourceSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    script_url: str
    # "newer": resync only when the timestamp is greater than the synced one
    comparator: Literal["changed", "newer"] = "newer"


class AssetSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # asset id -> source URL
    images: Mapping[str, str] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Effective runtime configuration after applying all precedence rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    logging: LoggingSettings = LoggingSettings()
    store: StoreSettings = StoreSettings()
    http: HttpSettings = HttpSettings()
    items: ItemSourceSettings
    stock: StockSourceSettings
    assets: AssetSettings = AssetSettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "OMS__"
    dotenv_path: Optional[str] = "data/.env"
