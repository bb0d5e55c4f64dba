"""
Layered environment used to resolve :class:`LifecycleSettings`.

Three layers are merged, lowest precedence first: the process environment
(or an explicit ``base`` mapping), a ``.env`` file which only fills keys the
base leaves undefined, and caller overrides. The resulting
:class:`LifecycleEnvironment` remembers which layer supplied each key so a
bad value can be traced back to where it was set.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional

__all__ = [
    "ENV_PREFIX",
    "LifecycleEnvironment",
    "build_environment",
    "load_env_file",
    "read_env_file",
]

logger = logging.getLogger(__name__)

ENV_PREFIX = "X402_"

ORIGIN_PROCESS = "process environment"
ORIGIN_FILE = "env file"
ORIGIN_OVERRIDE = "override"


def _unquote(raw: str) -> str:
    value = raw.strip()
    if value[:1] in ("'", '"'):
        quote = value[0]
        end = value.find(quote, 1)
        if end != -1:
            return value[1:end]
    # Unquoted values may carry a trailing comment.
    comment = value.find(" #")
    if comment != -1:
        value = value[:comment].rstrip()
    return value


def read_env_file(path: Path) -> Dict[str, str]:
    """
    Parse ``KEY=VALUE`` lines from ``path``.

    Blank lines, ``#`` comments and lines without ``=`` are skipped, an
    ``export`` prefix is accepted, and a missing file reads as empty.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("No env file at %s", path)
        return {}

    parsed: Dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("export "):
            stripped = stripped[len("export "):].lstrip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        name, _, raw = stripped.partition("=")
        name = name.strip()
        if name:
            parsed[name] = _unquote(raw)
    return parsed


def load_env_file(
    path: str = ".env",
    *,
    environ: Optional[MutableMapping[str, str]] = None,
) -> Dict[str, str]:
    """Copy ``path`` into ``environ`` (default ``os.environ``), keeping existing keys."""
    target: MutableMapping[str, str] = os.environ if environ is None else environ
    for name, value in read_env_file(Path(path)).items():
        target.setdefault(name, value)
    return dict(target)


@dataclass(frozen=True)
class LifecycleEnvironment:
    variables: Mapping[str, str]
    origins: Mapping[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.variables.get(key)
        if value is None or value == "":
            return default
        return value

    def origin(self, key: str) -> Optional[str]:
        return self.origins.get(key)

    def settings_keys(self) -> Dict[str, str]:
        """Map every ``X402_*`` key that is set to the layer it came from."""
        return {
            name: self.origins.get(name, ORIGIN_PROCESS)
            for name in sorted(self.variables)
            if name.startswith(ENV_PREFIX)
        }


def build_environment(
    *,
    env_file: Optional[str] = ".env",
    base: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> LifecycleEnvironment:
    """
    Assemble a :class:`LifecycleEnvironment`.

    Pass ``env_file=None`` to skip reading a file and ``base={}`` to ignore the
    process environment.
    """
    variables: Dict[str, str] = dict(os.environ if base is None else base)
    origins: Dict[str, str] = {name: ORIGIN_PROCESS for name in variables}

    if env_file is not None:
        for name, value in read_env_file(Path(env_file)).items():
            if name not in variables:
                variables[name] = value
                origins[name] = ORIGIN_FILE

    for name, value in (overrides or {}).items():
        variables[name] = value
        origins[name] = ORIGIN_OVERRIDE

    return LifecycleEnvironment(variables=variables, origins=origins)
