"""Environment variables in database settings.

Credentials are usually kept out of run configuration files. The ``db``
section may reference ``${VAR}`` or ``$VAR``, resolved from the process
environment. A ``.env`` file placed next to the run configuration is
loaded first through python-dotenv. Variables already set in the
environment win over the file.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

from dbextract.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["ENV_FILE_NAME", "expand_env_vars", "expand_value", "load_env_file"]

ENV_FILE_NAME = ".env"

_REFERENCE = re.compile(r"\$\{(?P<braced>[^}]+)\}|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(config_dir: Union[str, Path]) -> Optional[Path]:
    """Load ``<config_dir>/.env`` without overriding the environment.

    Returns the loaded file, or None when the directory holds no ``.env``.
    """
    path = Path(config_dir) / ENV_FILE_NAME
    if not path.is_file():
        return None
    load_dotenv(dotenv_path=path, override=False)
    logger.debug("Loaded environment from %s", path)
    return path


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Replace variable references in ``value``.

    Unset variables stay as written, or raise ConfigurationError when
    ``strict`` is set.

    Example:
        >>> os.environ["DB_HOST"] = "localhost"
        >>> expand_env_vars("${DB_HOST},1433")
        'localhost,1433'
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group("braced") or match.group("bare")
        resolved = os.environ.get(name)
        if resolved is not None:
            return resolved
        if strict:
            raise ConfigurationError(
                f"Environment variable not set: {name}", details={"variable": name}
            )
        return match.group(0)

    return _REFERENCE.sub(replace, value)


def expand_value(value: Any, *, strict: bool = False) -> Any:
    """Expand references in a string, or in every string of nested dicts and lists."""
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return {key: expand_value(item, strict=strict) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_value(item, strict=strict) for item in value]
    return value
