"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

The whole server is described by one YAML file:

    server:                       # optional, runtime tuning
      log-level: DEBUG
      max-workers: 32
    listeners:
      - protocol: https
        addr: ":8443"
        cert: cert.pem
        key: key.pem
        headers: {Strict-Transport-Security: max-age=31536000}
        gzip: true
    serves:
      - path: /static/
        target: ./public
        prevent-listing: true
      - path: /private/
        error: 403
    redirects:
      - from: /old
        to: /new
    errors:
      - status: 404
        target: ./public/404.html

Without a file, default_config() describes "serve this directory on this
address".

=============================================================================
LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   load_config(path) / default_config(addr, target)                   │
    │        │   unknown keys, wrong types      → ConfigError              │
    │        ▼                                                             │
    │   config.sanitise()                                                  │
    │        │   protocol http, addr :http, path /, redirect status 301   │
    │        ▼                                                             │
    │   config.validate()                                                  │
    │        │   every problem collected, then one ConfigError            │
    │        ▼                                                             │
    │   StaticServer(config)   (never mutated again)                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
RUNTIME SETTINGS
=============================================================================

Socket and thread pool tuning lives in RuntimeConfig. Sources, highest
priority first:

    1. Command-line arguments      --log-level DEBUG
    2. Environment variables       STATICSERVE_LOG_LEVEL=DEBUG
    3. The "server:" section       log-level: DEBUG
    4. Defaults in the dataclass

=============================================================================
"""

import logging
import os
import socket
from dataclasses import dataclass, field, fields, replace, MISSING
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from . import __version__
from .errors import ConfigError


logger = logging.getLogger(__name__)

PROTOCOLS = ("http", "https")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

# Resolved without /etc/services, which minimal containers lack
WELL_KNOWN_PORTS = {"http": 80, "https": 443, "http-alt": 8080}


# ═══════════════════════════════════════════════════════════════════════════
# ADDRESSES
# ═══════════════════════════════════════════════════════════════════════════

def parse_address(addr: str) -> Tuple[str, int]:
    """
    Split a listen address into (host, port).

        ":8080"          → ("", 8080)       all interfaces
        "127.0.0.1:80"   → ("127.0.0.1", 80)
        "[::1]:8443"     → ("::1", 8443)
        ":https"         → ("", 443)

    Raises:
        ValueError: If the address cannot be parsed.
    """
    if addr.startswith("["):
        host, sep, port = addr[1:].partition("]:")
        if not sep:
            raise ValueError(f"invalid address `{addr}`")
    else:
        host, sep, port = addr.rpartition(":")
        if not sep:
            raise ValueError(f"address `{addr}` is missing a port")
        if ":" in host:
            raise ValueError(f"IPv6 address `{addr}` must be bracketed")

    if port.isdigit():
        number = int(port)
    elif port in WELL_KNOWN_PORTS:
        number = WELL_KNOWN_PORTS[port]
    else:
        try:
            number = socket.getservbyname(port, "tcp")
        except OSError:
            raise ValueError(f"unknown port `{port}` in address `{addr}`") from None

    if not 0 <= number <= 65535:
        raise ValueError(f"port {number} out of range in address `{addr}`")
    return host, number


# ═══════════════════════════════════════════════════════════════════════════
# CONFIGURATION ENTRIES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ListenerConfig:
    """One socket the server accepts connections on."""

    protocol: str = ""
    addr: str = ""
    cert: str = ""
    key: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    gzip: bool = False

    @property
    def is_tls(self) -> bool:
        return self.protocol == "https"

    def sanitise(self):
        if not self.protocol:
            self.protocol = "http"
        if not self.addr:
            self.addr = ":http"

    def check(self, label: str) -> List[str]:
        problems = []
        if self.protocol == "http":
            if self.cert or self.key:
                problems.append(f"{label} certificate supplied for non-HTTPS listener")
        elif self.protocol == "https":
            if not os.path.exists(self.cert):
                problems.append(f"{label} cert file `{self.cert}` does not exist")
            if not os.path.exists(self.key):
                problems.append(f"{label} key file `{self.key}` does not exist")
        else:
            problems.append(f"{label} invalid protocol `{self.protocol}`")

        try:
            parse_address(self.addr)
        except ValueError as e:
            problems.append(f"{label} {e}")
        return problems


@dataclass
class ServeConfig:
    """
    A path prefix answered from a directory, or with a fixed error.

    Exactly one of `target` and `error` is set.
    """

    path: str = ""
    target: str = ""
    error: int = 0
    prevent_listing: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    def sanitise(self):
        if not self.path:
            self.path = "/"

    def check(self, label: str) -> List[str]:
        problems = []
        if not self.path:
            problems.append(f"{label} no path specified")
        if not self.error and not self.target:
            problems.append(f"{label} no target path specified")
        if self.error and self.target:
            problems.append(f"{label} error specified with target path")
        if self.error and not 100 <= self.error <= 599:
            problems.append(f"{label} invalid error status {self.error}")
        if self.target and not self.error and not os.path.isdir(self.target):
            problems.append(f"{label} target `{self.target}` is not a directory")
        return problems


@dataclass
class RedirectConfig:
    """A fixed redirect. `from` in YAML, `from_path` here."""

    from_path: str = ""
    to: str = ""
    status: int = 0

    def sanitise(self):
        if not self.status:
            self.status = 301
            logger.info(f"Defaulting status code {self.status} for redirect {self.from_path}")

    def check(self, label: str) -> List[str]:
        problems = []
        if not self.from_path:
            problems.append(f"{label} no `from` path")
        if not self.to:
            problems.append(f"{label} no `to` path")
        if self.status and not 300 <= self.status <= 399:
            problems.append(f"{label} redirect status {self.status} is not 3xx")
        return problems


@dataclass
class ErrorPageConfig:
    """A file served as the body of every response with `status`."""

    status: int = 0
    target: str = ""

    def check(self, label: str) -> List[str]:
        problems = []
        if not 100 <= self.status <= 599:
            problems.append(f"{label} invalid status {self.status}")
        if not self.target:
            problems.append(f"{label} no target file")
        elif not os.path.isfile(self.target):
            problems.append(f"{label} target file `{self.target}` does not exist")
        return problems


@dataclass
class RuntimeConfig:
    """
    Socket, thread pool and logging settings.

    These do not change what is served, only how.
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    backlog: int = 128
    buffer_size: int = 8192          # recv size and response buffer
    timeout: float = 30.0            # first request on a connection
    keep_alive: bool = True
    keep_alive_timeout: float = 5.0  # idle time between requests
    max_request_size: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY AND LOGGING
    # ─────────────────────────────────────────────────────────────────────
    server_name: str = f"staticserve/{__version__}"
    log_level: str = "INFO"
    log_format: str = "text"         # access log: text or json
    gzip_level: int = 6

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["RuntimeConfig"] = None,
    ) -> "RuntimeConfig":
        """
        Apply STATICSERVE_* environment variables on top of `base`.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STATICSERVE_BACKLOG        listen backlog
        STATICSERVE_TIMEOUT        first-request timeout, seconds
        STATICSERVE_KEEP_ALIVE     1/0, true/false
        STATICSERVE_MIN_WORKERS    threads started up front
        STATICSERVE_WORKERS        maximum worker threads
        STATICSERVE_SERVER_NAME    Server header
        STATICSERVE_LOG_LEVEL      DEBUG, INFO, ...
        STATICSERVE_LOG_FORMAT     text or json

        =====================================================================

        Raises:
            ConfigError: If a variable has an unusable value.
        """
        environ = os.environ if environ is None else environ
        config = base or cls()

        converters = {
            "STATICSERVE_BACKLOG": ("backlog", int),
            "STATICSERVE_TIMEOUT": ("timeout", float),
            "STATICSERVE_KEEP_ALIVE": ("keep_alive", _parse_bool),
            "STATICSERVE_MIN_WORKERS": ("min_workers", int),
            "STATICSERVE_WORKERS": ("max_workers", int),
            "STATICSERVE_SERVER_NAME": ("server_name", str),
            "STATICSERVE_LOG_LEVEL": ("log_level", str.upper),
            "STATICSERVE_LOG_FORMAT": ("log_format", str.lower),
        }

        changes: Dict[str, Any] = {}
        problems = []
        for variable, (name, convert) in converters.items():
            if variable not in environ:
                continue
            try:
                changes[name] = convert(environ[variable])
            except ValueError:
                problems.append(f"{variable}: invalid value `{environ[variable]}`")
        if problems:
            raise ConfigError(problems)
        return replace(config, **changes)

    def check(self) -> List[str]:
        problems = []
        if self.backlog < 1:
            problems.append(f"backlog must be >= 1, got {self.backlog}")
        if self.buffer_size < 1:
            problems.append(f"buffer_size must be >= 1, got {self.buffer_size}")
        if self.timeout <= 0 or self.keep_alive_timeout <= 0:
            problems.append("timeouts must be positive")
        if self.max_request_size < 1:
            problems.append(f"max_request_size must be >= 1, got {self.max_request_size}")
        if self.min_workers < 1:
            problems.append(f"min_workers must be >= 1, got {self.min_workers}")
        if self.max_workers < self.min_workers:
            problems.append(
                f"max_workers ({self.max_workers}) must be >= min_workers ({self.min_workers})"
            )
        if self.log_level not in LOG_LEVELS:
            problems.append(f"invalid log level `{self.log_level}`")
        if self.log_format not in LOG_FORMATS:
            problems.append(f"invalid log format `{self.log_format}`")
        if not 1 <= self.gzip_level <= 9:
            problems.append(f"gzip_level must be between 1 and 9, got {self.gzip_level}")
        return problems

    def validate(self) -> None:
        """Raises ConfigError if any setting is unusable."""
        problems = self.check()
        if problems:
            raise ConfigError(problems)


@dataclass
class ServerConfig:
    """
    The complete, explicit configuration of one server process.

    Built once at startup and passed to the router builder and to the
    listeners; nothing reads configuration from anywhere else.
    """

    listeners: List[ListenerConfig] = field(default_factory=list)
    serves: List[ServeConfig] = field(default_factory=list)
    redirects: List[RedirectConfig] = field(default_factory=list)
    errors: List[ErrorPageConfig] = field(default_factory=list)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    @classmethod
    def from_dict(cls, data: Any) -> "ServerConfig":
        """
        Build a configuration from parsed YAML.

        Raises:
            ConfigError: Listing every unknown key and mistyped value.
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")

        problems: List[str] = []
        sections = {
            "listeners": (ListenerConfig, "Listener"),
            "serves": (ServeConfig, "Serve"),
            "redirects": (RedirectConfig, "Redirect"),
            "errors": (ErrorPageConfig, "Error"),
        }

        unknown = set(data) - set(sections) - {"server"}
        for key in sorted(unknown):
            problems.append(f"unknown top-level key `{key}`")

        built: Dict[str, list] = {}
        for key, (entry_cls, label) in sections.items():
            items = data.get(key) or []
            if not isinstance(items, list):
                problems.append(f"`{key}` must be a list")
                items = []
            built[key] = [
                _build(entry_cls, item, f"{label} #{i}:", problems)
                for i, item in enumerate(items)
            ]

        runtime = _build(RuntimeConfig, data.get("server") or {}, "server:", problems)

        if problems:
            raise ConfigError(problems)
        return cls(runtime=runtime, **built)

    def sanitise(self) -> "ServerConfig":
        """Fill in defaults. Returns self."""
        for listener in self.listeners:
            listener.sanitise()
        for serve in self.serves:
            serve.sanitise()
        for redirect in self.redirects:
            redirect.sanitise()
        return self

    def check(self) -> List[str]:
        """Every problem with this configuration, labelled by entry."""
        problems = []

        if not self.listeners:
            problems.append("No listeners defined!")
        for i, listener in enumerate(self.listeners):
            problems.extend(listener.check(f"Listener #{i}:"))

        if not self.serves:
            problems.append("No serves defined!")
        for i, serve in enumerate(self.serves):
            problems.extend(serve.check(f"Serve #{i}:"))

        for i, redirect in enumerate(self.redirects):
            problems.extend(redirect.check(f"Redirect #{i}:"))

        for i, page in enumerate(self.errors):
            problems.extend(page.check(f"Error #{i}:"))

        problems.extend(self._check_duplicates())
        problems.extend(f"server: {p}" for p in self.runtime.check())
        return problems

    def validate(self) -> None:
        """
        Raises:
            ConfigError: With every problem check() found.
        """
        problems = self.check()
        if problems:
            raise ConfigError(problems)

    def _check_duplicates(self) -> List[str]:
        problems = []
        routes: Dict[str, str] = {}
        entries = [(f"Serve #{i}:", s.path) for i, s in enumerate(self.serves)]
        entries += [(f"Redirect #{i}:", r.from_path) for i, r in enumerate(self.redirects)]
        for label, path in entries:
            if not path:
                continue
            if path in routes:
                problems.append(f"{label} path `{path}` already used by {routes[path]}")
            else:
                routes[path] = label.rstrip(":")

        statuses: Dict[int, str] = {}
        for i, page in enumerate(self.errors):
            if page.status in statuses:
                problems.append(
                    f"Error #{i}: status {page.status} already handled by {statuses[page.status]}"
                )
            else:
                statuses[page.status] = f"Error #{i}"
        return problems


# ═══════════════════════════════════════════════════════════════════════════
# LOADING
# ═══════════════════════════════════════════════════════════════════════════

def load_config(path) -> ServerConfig:
    """
    Read a YAML configuration file.

    Defaults are NOT applied; call sanitise() before validate().

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Couldn't load config: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Couldn't load config: {e}") from e

    return ServerConfig.from_dict(data)


def default_config(addr: str = ":8080", target: str = ".") -> ServerConfig:
    """One http listener on `addr` serving `target` at "/"."""
    return ServerConfig(
        listeners=[ListenerConfig(protocol="http", addr=addr)],
        serves=[ServeConfig(path="/", target=target)],
    )


# ─────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────

def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(value)


def _field_name(key: str) -> str:
    """YAML key → dataclass field: "prevent-listing" → prevent_listing."""
    if key == "from":
        return "from_path"
    return key.replace("-", "_")


def _build(cls, data: Any, label: str, problems: List[str]):
    """
    Instantiate entry dataclass `cls` from a YAML mapping.

    Problems are appended to `problems`; the returned entry then holds
    defaults for the offending keys.
    """
    if not isinstance(data, dict):
        problems.append(f"{label} must be a mapping")
        return cls()

    known = {f.name: f for f in fields(cls)}
    values: Dict[str, Any] = {}

    for key, value in data.items():
        name = _field_name(str(key))
        if name not in known:
            problems.append(f"{label} unknown key `{key}`")
            continue

        f = known[name]
        default = f.default if f.default is not MISSING else f.default_factory()
        try:
            values[name] = _coerce(value, default)
        except (TypeError, ValueError):
            problems.append(f"{label} invalid value for `{key}`: {value!r}")

    return cls(**values)


def _coerce(value: Any, default: Any) -> Any:
    """Check `value` against the type of the field's default."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError(value)
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(value)
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(value)
        return float(value)
    if isinstance(default, str):
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            raise TypeError(value)
        return str(value)
    if isinstance(default, dict):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise TypeError(value)
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    raise TypeError(value)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# parse_address()   - ":8080", "[::1]:443", ":http" → (host, port)
# ListenerConfig    - protocol, addr, cert/key, headers, gzip
# ServeConfig       - path → target directory or fixed error
# RedirectConfig    - from → to with a 3xx status
# ErrorPageConfig   - status → page file
# RuntimeConfig     - sockets, workers, logging; from_env() overrides
# ServerConfig      - from_dict(), sanitise(), check(), validate()
# load_config()     - YAML file → ServerConfig (yaml.safe_load)
# default_config()  - single listener, single serve
# =============================================================================
