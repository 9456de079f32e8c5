"""
Environment loading for engine configuration

``.env`` files are read with python-dotenv before settings are built, so
both ``CHAIN_INTEL_*`` variables and ``${VAR}`` placeholders in YAML
settings files resolve against them.
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_NAME_VARIABLE = "CHAIN_INTEL_ENV"

_PLACEHOLDER = re.compile(r'\${([A-Za-z_][A-Za-z0-9_]*)}')


class EnvironmentManager:
    """
    Resolves the deployment environment and its variables.

    Files are read in order ``.env``, ``.env.<env_name>``, ``.env.local``.
    Earlier files never overwrite variables already set in the process;
    ``.env.local`` does, so a developer can pin values on one machine.
    """

    def __init__(
        self,
        env_name: Optional[str] = None,
        load_files: bool = True,
        base_dir: Union[str, Path, None] = None
    ):
        self.env_name = env_name or os.getenv(ENV_NAME_VARIABLE, "development")
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.loaded_files: List[Path] = []
        if load_files:
            self.load_env_files()

    def load_env_files(self) -> List[Path]:
        """Load the environment's .env files; returns the files actually read"""
        candidates = [
            (self.base_dir / ".env", False),
            (self.base_dir / f".env.{self.env_name}", False),
            (self.base_dir / ".env.local", True),
        ]
        for path, override in candidates:
            if not path.is_file():
                continue
            load_dotenv(path, override=override)
            self.loaded_files.append(path)
            logger.info(f"Loaded {self.env_name} environment from {path}")
        return self.loaded_files

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return os.environ.get(key, default)

    def interpolate_config(self, config_str: str) -> str:
        """Replace ``${VAR}`` with the variable's value; unset variables become empty"""
        missing = sorted({name for name in _PLACEHOLDER.findall(config_str) if name not in os.environ})
        if missing:
            logger.warning(f"Unset variables in configuration: {', '.join(missing)}")
        return _PLACEHOLDER.sub(lambda match: self.get(match.group(1), ""), config_str)
