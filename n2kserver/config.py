"""
Relay configuration.

ServerConfig is immutable: it is built once (from keyword arguments, a mapping or
a YAML file) and handed to the server, which never changes it.

Example config.yaml:
    n2kserver:
      port: 3001
      format: actisense-n2k-ascii
    upstream:
      host: 192.168.1.50
      port: 1457
    logging:
      file: n2kserver.log
      level: INFO
"""

from dataclasses import dataclass, fields
from typing import Any, Optional, Self

import yaml

from .codec.types import WireFormat, DEFAULT_FORMAT
from .exceptions import N2KConfigurationError


class Const:
    DEFAULT_PORT = 3001
    DEFAULT_HOST = "0.0.0.0"
    SECTION = "n2kserver"


@dataclass(frozen=True)
class ServerConfig:
    port: int = Const.DEFAULT_PORT
    format: WireFormat = DEFAULT_FORMAT
    host: str = Const.DEFAULT_HOST
    suppress_echo: bool = False          # Drop raw output that echoes what this client sent
    max_line_length: Optional[int] = None  # None = unbounded inbound lines
    print_traffic: bool = False

    def __post_init__(self):
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not (0 <= self.port <= 65535):
            raise N2KConfigurationError(f"Invalid port number: {self.port}")
        if self.format not in WireFormat.values():
            raise N2KConfigurationError(f"Invalid format: {self.format}. Use one of {', '.join(WireFormat.values())}")
        # frozen, so go through object.__setattr__ to normalise
        object.__setattr__(self, "format", WireFormat(self.format))
        if self.max_line_length is not None and (not isinstance(self.max_line_length, int) or self.max_line_length < 1):
            raise N2KConfigurationError(f"Invalid max_line_length: {self.max_line_length}")

    @classmethod
    def from_dict(cls, config: Optional[dict[str, Any]]) -> Self:
        config = config or {}
        if not isinstance(config, dict):
            raise N2KConfigurationError(f"{Const.SECTION} config must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = [k for k in config if k not in known]
        if unknown:
            raise N2KConfigurationError(f"Unknown {Const.SECTION} config fields: {', '.join(unknown)}")
        return cls(**config)

    @staticmethod
    def schema() -> dict[str, Any]:
        """JSON schema of the host-configurable properties"""
        return {
            "type": "object",
            "properties": {
                "port": {
                    "type": "number",
                    "title": "Port",
                    "description": "The port on which the N2K server listens",
                    "default": Const.DEFAULT_PORT,
                },
                "format": {
                    "type": "string",
                    "title": "Format",
                    "description": "The format of the N2K data",
                    "enum": WireFormat.values(),
                    "default": DEFAULT_FORMAT.value,
                },
            },
        }


def load_config(path: str) -> dict[str, Any]:
    """Read a YAML config file; the n2kserver section is validated into a ServerConfig"""
    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise N2KConfigurationError(f"Failed to load config file {path}: {e}") from e

    if not isinstance(config, dict):
        raise N2KConfigurationError(f"Config file {path} must contain a mapping")

    config[Const.SECTION] = ServerConfig.from_dict(config.get(Const.SECTION))
    return config
