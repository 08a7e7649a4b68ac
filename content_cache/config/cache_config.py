"""Configuration settings for the content cache."""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from content_cache.errors import ConfigurationError


@dataclass
class CacheConfig:
    """Configuration for the content cache service.

    Attributes:
        db_path: Path to the SQLite database holding cache entries
        content_ttl_days: Days a generated blog artifact stays valid
        analysis_ttl_days: Days a fetched SEO analysis stays valid
        generation_timeout: Maximum seconds to wait for the generator
        openai_model: Chat model used for blog generation
        openai_api_key: API key for the OpenAI client
        api_host: Host the HTTP API binds to
        api_port: Port the HTTP API binds to
    """

    db_path: str = "./data/content_cache.db"
    content_ttl_days: int = 30
    analysis_ttl_days: int = 7
    generation_timeout: float = 120.0
    openai_model: str = "gpt-4"
    openai_api_key: Optional[str] = None
    api_host: str = "localhost"
    api_port: int = 8000

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "CacheConfig":
        """Create a CacheConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            CacheConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "CacheConfig":
        """Create a CacheConfig from CONTENT_CACHE_* environment variables.

        Args:
            load_env_file: Whether to read a local .env file first

        Returns:
            CacheConfig populated from the environment

        Raises:
            ConfigurationError: If a numeric variable does not parse
        """
        if load_env_file:
            load_dotenv()

        values: Dict[str, Any] = {}
        for name, field_def in cls.__dataclass_fields__.items():
            raw = os.getenv(f"CONTENT_CACHE_{name.upper()}")
            if raw is None:
                continue
            try:
                if field_def.type in (int, "int"):
                    values[name] = int(raw)
                elif field_def.type in (float, "float"):
                    values[name] = float(raw)
                else:
                    values[name] = raw
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for CONTENT_CACHE_{name.upper()}",
                    details={"variable": f"CONTENT_CACHE_{name.upper()}", "value": raw},
                ) from e

        if "openai_api_key" not in values and os.getenv("OPENAI_API_KEY"):
            values["openai_api_key"] = os.getenv("OPENAI_API_KEY")
        return cls(**values)
