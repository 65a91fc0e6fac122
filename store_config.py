from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from errors import ConfigError
from models import RoutingConfig


DEFAULT_CONFIG_TEXT = """\
[Routing]
target_device_name = ProFX
# true: main ports and monitor ports; false: main ports only (default monitor links are removed)
duplicate_to_monitor = true
main_port_names = Playback_3, Playback_4
monitor_port_names = Playback_1, Playback_2

[Daemon]
command_timeout = 5.0
debounce_ms = 250
rescan_interval = 10.0

[Logging]
level = info
format = text
file =
"""


def _linux_xdg_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def user_config_dir(app_name: str) -> Path:
    return _linux_xdg_config_dir() / app_name


@dataclass(frozen=True)
class DaemonSettings:
    command_timeout: float = 5.0
    debounce_ms: int = 250
    # periodic rediscovery in case an event was missed; 0 disables it
    rescan_interval: float = 10.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "info"
    format: str = "text"
    file: str = ""


@dataclass(frozen=True)
class Settings:
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    daemon: DaemonSettings = field(default_factory=DaemonSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _port_pair(cfg: configparser.ConfigParser, section: str, key: str, default: Tuple[str, str]) -> Tuple[str, str]:
    raw = cfg.get(section, key, fallback="").strip()
    if not raw:
        return default
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    if len(parts) != 2:
        raise ConfigError(f"[{section}] {key} must name exactly two ports, got {raw!r}")
    return (parts[0], parts[1])


def _get(cfg: configparser.ConfigParser, section: str, key: str, conv, default):
    if not cfg.has_option(section, key) or not cfg.get(section, key).strip():
        return default
    try:
        return conv(section, key)
    except ValueError as e:
        raise ConfigError(f"[{section}] {key}: {e}") from e


def parse_settings(cfg: configparser.ConfigParser) -> Settings:
    try:
        return _settings_from(cfg)
    except configparser.Error as e:
        raise ConfigError(str(e)) from e


def _settings_from(cfg: configparser.ConfigParser) -> Settings:
    for section in ("Routing", "Daemon", "Logging"):
        if not cfg.has_section(section):
            cfg.add_section(section)

    base = RoutingConfig()
    name = cfg.get("Routing", "target_device_name", fallback="").strip() or base.target_device_name
    routing = RoutingConfig(
        target_device_name=name,
        duplicate_to_monitor=_get(cfg, "Routing", "duplicate_to_monitor", cfg.getboolean, base.duplicate_to_monitor),
        main_port_names=_port_pair(cfg, "Routing", "main_port_names", base.main_port_names),
        monitor_port_names=_port_pair(cfg, "Routing", "monitor_port_names", base.monitor_port_names),
    )

    d = DaemonSettings()
    daemon = DaemonSettings(
        command_timeout=_get(cfg, "Daemon", "command_timeout", cfg.getfloat, d.command_timeout),
        debounce_ms=_get(cfg, "Daemon", "debounce_ms", cfg.getint, d.debounce_ms),
        rescan_interval=_get(cfg, "Daemon", "rescan_interval", cfg.getfloat, d.rescan_interval),
    )
    if daemon.command_timeout <= 0:
        raise ConfigError("[Daemon] command_timeout must be positive")
    if daemon.debounce_ms < 0 or daemon.rescan_interval < 0:
        raise ConfigError("[Daemon] debounce_ms and rescan_interval must not be negative")

    lg = LoggingSettings()
    logging_settings = LoggingSettings(
        level=cfg.get("Logging", "level", fallback=lg.level).strip().lower() or lg.level,
        format=cfg.get("Logging", "format", fallback=lg.format).strip().lower() or lg.format,
        file=cfg.get("Logging", "file", fallback="").strip(),
    )
    if logging_settings.format not in ("text", "json"):
        raise ConfigError(f"[Logging] format must be 'text' or 'json', got {logging_settings.format!r}")

    return Settings(routing=routing, daemon=daemon, logging=logging_settings)


@dataclass(frozen=True)
class ConfigStore:
    app_name: str = "sinkroute"
    filename: str = "sinkroute.cfg"
    path: Optional[Path] = None

    @property
    def file_path(self) -> Path:
        if self.path is not None:
            return Path(self.path).expanduser()
        return user_config_dir(self.app_name) / self.filename

    def ensure_exists(self) -> bool:
        """Write the default file if there is none; True when it was written."""
        fp = self.file_path
        if fp.exists():
            return False
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
        return True

    def load(self) -> configparser.ConfigParser:
        self.ensure_exists()
        # values are port and device names; "%" is not an interpolation marker
        cfg = configparser.ConfigParser(interpolation=None)
        try:
            cfg.read(self.file_path, encoding="utf-8")
        except (configparser.Error, UnicodeDecodeError) as e:
            raise ConfigError(f"{self.file_path}: {e}") from e
        return cfg

    def load_settings(self) -> Settings:
        return parse_settings(self.load())


def load_settings(path: Optional[Path] = None) -> Settings:
    return ConfigStore(path=path).load_settings()
