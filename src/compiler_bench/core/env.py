from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present() -> Optional[Path]:
    """Load environment variables from a `.env` file if one can be found.

    - Searches from the current working directory upwards.
    - Does not override existing environment variables.

    Compiler toolchains often need machine-specific `PATH` entries or
    `JAVA_OPTS`; a `.env` next to the config keeps those out of the YAML.

    Returns the resolved path to the `.env` file loaded, or None.
    """

    env_path = find_dotenv(filename=".env", usecwd=True)
    if not env_path:
        return None

    p = Path(env_path).resolve()
    if not p.exists():
        return None

    load_dotenv(dotenv_path=str(p), override=False)
    return p


def merged_environment(overrides: Mapping[str, str]) -> dict[str, str]:
    env = dict(os.environ)
    for k, v in overrides.items():
        env[str(k)] = str(v)
    return env
