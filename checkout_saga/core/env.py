"""
Environment variable management with .env file support.

Loads CHECKOUT_* variables (optionally from a .env file) and substitutes
${VAR} references inside YAML configuration files.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from checkout_saga.core.exceptions import ConfigurationError

_SUBSTITUTION_PATTERN = re.compile(r"\$\{([^}:]+)(?::([?-])([^}]*))?\}")


class EnvManager:
    """
    Manages environment variables for checkout deployments.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> timeout = env.get_float("CHECKOUT_PAYMENT_TIMEOUT", 10.0)
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = False):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from a .env file.

        Returns:
            True if the file was found and loaded
        """
        env_path = Path(env_file) if env_file is not None else self.project_root / ".env"

        if not env_path.exists():
            return False

        load_dotenv(env_path, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ConfigurationError(msg, details={"variable": key})

        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = (self.get(key, "") or "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        try:
            return float(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def substitute(self, text: str) -> str:
        """
        Substitute environment variables in text.

        Supports:
        - ${VAR} - variable substitution (left untouched when unset)
        - ${VAR:-default} - with default value
        - ${VAR:?error} - required variable
        """

        def replace(match: re.Match) -> str:
            var_name, operator, operand = match.group(1), match.group(2), match.group(3)
            value = os.environ.get(var_name)

            if operator == "-":
                return value if value is not None else operand
            if operator == "?":
                if value is None:
                    msg = operand or f"Required variable not set: {var_name}"
                    raise ConfigurationError(msg, details={"variable": var_name})
                return value
            return value if value is not None else match.group(0)

        return _SUBSTITUTION_PATTERN.sub(replace, text)

    def substitute_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively substitute environment variables in dictionary values."""
        result: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self.substitute(value)
            elif isinstance(value, dict):
                result[key] = self.substitute_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self.substitute(item) if isinstance(item, str)
                    else self.substitute_dict(item) if isinstance(item, dict)
                    else item
                    for item in value
                ]
            else:
                result[key] = value
        return result


_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
