"""Server configuration loaded from YAML, with fallback defaults."""

import dataclasses
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml


class ConfigError(ValueError):
    """Raised when a configuration file cannot be parsed."""


@dataclass
class AppConfig:
    env: str = "dev"
    version: str = "1.0.0"


@dataclass
class ServerConfig:
    addr: str = "tcp://0.0.0.0:9000"
    multicore: bool = True
    worker_pool_size: int = 1024
    task_queue_size: int = 1024
    max_packet_size: int = 65535
    heartbeat_check: int = 30
    heartbeat_timeout: int = 90


@dataclass
class LogConfig:
    level: str = "info"
    gnet_level: str = "warn"
    path: str = "./logs/"
    stdout: bool = True
    filename: str = "server.log"
    max_size: int = 100
    max_backups: int = 3
    max_age: int = 30


_SECTIONS = ("app", "server", "log")


def _fill_blanks(section: Any, defaults: Any) -> None:
    for f in dataclasses.fields(section):
        value = getattr(section, f.name)
        fallback = getattr(defaults, f.name)
        if isinstance(fallback, bool):
            blank = not value
        elif isinstance(fallback, int):
            blank = value <= 0
        else:
            blank = value == ""
        if blank:
            setattr(section, f.name, fallback)


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def apply_defaults(self) -> None:
        """Replace empty, false or non-positive values with the defaults."""
        reference = Config()
        for name in _SECTIONS:
            _fill_blanks(getattr(self, name), getattr(reference, name))


def default_config() -> Config:
    """Return a configuration holding only default values."""
    return Config()


def _coerce(section_name: str, key: str, current: Any, value: Any) -> Any:
    where = f"{section_name}.{key}"
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        raise ConfigError(f"{where}: expected a boolean, got {value!r}")
    if isinstance(current, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ConfigError(f"{where}: expected an integer, got {value!r}")
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{where}: expected a string, got {value!r}")


def _merge(section_name: str, target: Any, values: Mapping[str, Any]) -> None:
    known = {f.name for f in dataclasses.fields(target)}
    for key, value in values.items():
        if key not in known or value is None:
            continue
        setattr(target, key, _coerce(section_name, key, getattr(target, key), value))


def _load_into(cfg: Config, path: Union[str, Path]) -> None:
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    for name in _SECTIONS:
        section = data.get(name)
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ConfigError(f"{path}: section {name!r} must be a mapping")
        _merge(name, getattr(cfg, name), section)


def load_config(path: Union[str, Path]) -> Config:
    """Load a configuration file; values it omits keep their defaults."""
    cfg = Config()
    cfg.apply_defaults()
    _load_into(cfg, path)
    return cfg


_lock = threading.Lock()
_global_config: Optional[Config] = None


def init_config(path: Union[str, Path]) -> Config:
    """Load the process-wide configuration once.

    Later calls return the same object. If loading fails the global config
    still holds the defaults and the error is raised.
    """
    global _global_config
    with _lock:
        if _global_config is not None:
            return _global_config
        cfg = Config()
        cfg.apply_defaults()
        _global_config = cfg
        _load_into(cfg, path)
        return cfg


def get_config() -> Config:
    """Return the process-wide configuration, defaulting it if never loaded."""
    global _global_config
    with _lock:
        if _global_config is None:
            _global_config = default_config()
        return _global_config