"""Registry of managed servers, read from the servers configuration file."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..config.exceptions import ConfigurationError
from ..config.logging import get_logger
from .models import ServerSpec

logger = get_logger(__name__)

SERVERS_KEY = "mcpServers"


class ServerRegistry:
    """Reads server launch specifications from a JSON or YAML file.

    The file is re-read on every call to :meth:`load` so that edits are
    picked up without restarting the monitor. Any failure to read or parse
    the file degrades to an empty server set.
    """

    def __init__(self, config_path: Union[str, Path]):
        self.config_path = Path(config_path).expanduser()

    def load(self) -> Dict[str, ServerSpec]:
        """Load all configured servers, keyed by name, in file order."""
        try:
            raw = self._read_servers()
        except ConfigurationError as e:
            logger.warning(
                "Failed to load servers configuration",
                path=str(self.config_path),
                error=str(e),
            )
            return {}

        servers: Dict[str, ServerSpec] = {}
        for name, entry in raw.items():
            problem = _entry_problem(entry)
            if problem:
                logger.warning("Skipping invalid server entry", server=name, reason=problem)
                continue
            servers[name] = ServerSpec.from_dict(name, entry)

        return servers

    def get(self, name: str) -> Optional[ServerSpec]:
        """Get the launch specification of one server, or None if not configured."""
        return self.load().get(name)

    def _read_servers(self) -> Dict[str, Any]:
        """Read and parse the file, returning the raw server mapping."""
        try:
            content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                "Cannot read servers configuration",
                {"path": str(self.config_path), "reason": str(e)},
            )

        try:
            if self.config_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            else:
                data = json.loads(content)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "Invalid servers configuration",
                {"path": str(self.config_path), "reason": str(e)},
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Servers configuration must be a mapping",
                {"path": str(self.config_path)},
            )

        servers = data.get(SERVERS_KEY, data)
        if not isinstance(servers, dict):
            raise ConfigurationError(
                f"'{SERVERS_KEY}' must be a mapping",
                {"path": str(self.config_path)},
            )
        return servers


def _entry_problem(entry: Any) -> Optional[str]:
    """Describe why a server entry cannot be used, or None if it can."""
    if not isinstance(entry, dict):
        return "entry is not a mapping"
    if not entry.get("command") or not isinstance(entry["command"], str):
        return "missing command"

    args = entry.get("args")
    if args is not None and not (
        isinstance(args, list) and all(isinstance(a, (str, int, float)) for a in args)
    ):
        return "args must be a list of strings"

    env = entry.get("env")
    if env is not None and not isinstance(env, dict):
        return "env must be a mapping"

    cwd = entry.get("cwd")
    if cwd is not None and not isinstance(cwd, str):
        return "cwd must be a string"
    return None
