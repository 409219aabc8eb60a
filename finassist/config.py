"""Configuration management for the FinAssist client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

API_KEY_ENV = "FINASSIST_API_KEY"


class Configuration:
    """Manages configuration and environment variables for the FinAssist client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: Optional path to a YAML file. Defaults to the
                config.yaml shipped next to this module.
        """
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def backend_api_key(self) -> str:
        """Get the bearer key for the backend functions.

        Raises:
            ValueError: If the key is not found in environment variables.
        """
        api_key = os.getenv(API_KEY_ENV)
        if not api_key:
            raise ValueError(
                f"API key '{API_KEY_ENV}' not found in environment variables"
            )
        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    @staticmethod
    def _require(
        section: dict[str, Any], keys: list[str], where: str
    ) -> dict[str, Any]:
        for key in keys:
            if key not in section:
                raise ValueError(
                    f"{where}.{key} must be explicitly configured in config.yaml"
                )
        return {**section}

    def get_backend_config(self) -> dict[str, Any]:
        """Get backend endpoint configuration.

        Returns:
            Backend configuration dictionary with validated values.

        Raises:
            ValueError: If required backend parameters are missing or invalid.
        """
        backend_config = self._require(
            self._config.get("backend", {}),
            [
                "base_url", "chat_path", "tts_path", "categorize_path",
                "insights_path", "recommendations_path", "connect_timeout",
                "read_timeout",
            ],
            "backend",
        )

        if not backend_config["base_url"]:
            raise ValueError("backend.base_url must not be empty")
        if backend_config["connect_timeout"] <= 0:
            raise ValueError("backend.connect_timeout must be positive")
        if backend_config["read_timeout"] <= 0:
            raise ValueError("backend.read_timeout must be positive")

        return backend_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration.

        Raises:
            ValueError: If required streaming parameters are missing or invalid.
        """
        streaming_config = self._require(
            self._config.get("chat", {}).get("streaming", {}),
            ["max_pending_bytes", "done_token"],
            "chat.streaming",
        )

        if streaming_config["max_pending_bytes"] < 1:
            raise ValueError("chat.streaming.max_pending_bytes must be at least 1")

        return streaming_config

    def get_speech_config(self) -> dict[str, Any]:
        """Get text-to-speech configuration."""
        return self._require(
            self._config.get("speech", {}), ["enabled", "voice_id"], "speech"
        )

    def get_transactions_config(self) -> dict[str, Any]:
        """Get transaction store configuration."""
        return self._require(
            self._config.get("transactions", {}),
            ["db_path", "use_demo_fallback"],
            "transactions",
        )

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return {"level": "INFO", **self._config.get("logging", {})}
