"""
Export configuration.

Values are layered: defaults, then a YAML config file, then WPEXPORT_*
environment variables (a .env file is honoured), then command line flags.
"""

import os
import pathlib
import re
from dataclasses import dataclass, fields, replace
from datetime import datetime
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

ENV_PREFIX = "WPEXPORT_"

CONFIG_SEARCH_PATHS = (
    pathlib.Path("config.yaml"),
    pathlib.Path("config.yml"),
    pathlib.Path.home() / ".wpexportjson" / "config.yaml",
    pathlib.Path.home() / ".wpexportjson" / "config.yml",
    pathlib.Path("/etc/wpexportjson/config.yaml"),
    pathlib.Path("/etc/wpexportjson/config.yml"),
)


class ConfigError(ValueError):
    """Invalid or unreadable configuration."""


@dataclass
class ExportConfig:
    url: str = ""
    output: str = ""
    brute_force: bool = False
    max_id: int = 10000
    download_media: bool = True
    concurrent: int = 5
    timeout: float = 30
    retries: int = 3
    user_agent: str = "WordPress-Export-JSON/1.0"
    verbose: bool = False
    sleep: float = 0.2
    scan_delay: float = 0.01
    username: str = None
    password: str = None
    create_zip: bool = False
    no_files: bool = False

    def validate(self):
        if not self.url:
            raise ConfigError("URL is required")
        if self.max_id <= 0:
            raise ConfigError("max_id must be greater than 0")
        if self.concurrent <= 0:
            raise ConfigError("concurrent must be greater than 0")
        if self.timeout <= 0:
            raise ConfigError("timeout must be greater than 0")
        if self.retries < 0:
            raise ConfigError("retries must be greater than or equal to 0")
        if self.no_files and not self.create_zip:
            raise ConfigError("no_files requires create_zip")

    def generate_default_output(self, now: datetime = None):
        """Set output to export/{domain}.{date}{time} unless one is already set."""
        if self.output:
            return
        if not self.url:
            raise ConfigError("URL is required to generate default output path")

        domain = urlparse(self.url).hostname or ""
        if domain.startswith("www."):
            domain = domain[len("www."):]
        domain = sanitize_domain_name(domain)

        now = now or datetime.now()
        self.output = str(pathlib.Path("export") / f"{domain}.{now:%Y-%m-%d}{now:%H%M%S}")

    @property
    def output_is_file(self) -> bool:
        return pathlib.Path(self.output).suffix == ".json"

    def media_dir(self) -> pathlib.Path:
        out = pathlib.Path(self.output)
        if self.output_is_file:
            return out.parent / f"{out.stem}_media"
        return out / "media"

    def auth(self):
        if self.username and self.password:
            return (self.username, self.password)
        return None


def sanitize_domain_name(domain: str) -> str:
    """Make a host name safe to use as a directory name."""
    domain = re.sub(r'[/\\:*?"<>| ]', "-", domain)
    domain = re.sub(r"-{2,}", "-", domain).strip("-")
    return domain or "wordpress-site"


def _coerce(name: str, value, kind):
    """Convert a raw YAML/env value to the type of the default for `name`."""
    if value is None or kind is str:
        return value
    try:
        if kind is bool:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off", ""):
                return False
            raise ValueError(value)
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid value for {name}: {value!r}") from None


def _field_types() -> dict:
    defaults = ExportConfig()
    types = {}
    for f in fields(ExportConfig):
        default = getattr(defaults, f.name)
        types[f.name] = str if default is None else type(default)
    # timeout and sleep accept ints in files but are floats
    types["timeout"] = types["sleep"] = types["scan_delay"] = float
    return types


def find_config_file():
    for path in CONFIG_SEARCH_PATHS:
        if path.is_file():
            return path
    return None


def read_config_file(path) -> dict:
    path = pathlib.Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"error reading config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def read_env(environ=None) -> dict:
    environ = os.environ if environ is None else environ
    values = {}
    for f in fields(ExportConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            values[f.name] = environ[key]
    return values


def load_config(config_file=None, overrides=None, environ=None, use_dotenv=True) -> ExportConfig:
    """Build an ExportConfig from file, environment and explicit overrides.

    overrides holds values given on the command line; None entries are
    treated as "not given".
    """
    if use_dotenv and environ is None:
        load_dotenv()

    types = _field_types()
    values = {}

    path = config_file or find_config_file()
    if path:
        file_values = read_config_file(path)
        unknown = set(file_values) - set(types)
        if unknown:
            raise ConfigError(f"unknown config keys in {path}: {', '.join(sorted(unknown))}")
        values.update(file_values)

    values.update(read_env(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    coerced = {name: _coerce(name, value, types[name]) for name, value in values.items()}
    return replace(ExportConfig(), **coerced)
