"""Constants used in the project."""

import json
import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    INSTALL_ERROR = 4


class RepositoryTypes(Enum):
    """Repository manager names, also the scheme of a package locator.

    Args:
        Enum (string): Manager names registered with the repository system.
    """

    GIT = "git"
    SCP = "scp"
    URL = "url"
    MAVEN = "mvn"
    MAVEN_DEPS = "mvndeps"
    GIT_MAVEN = "git-mvn"


class MessageTypes(Enum):
    """Severity of a message sent to the installer's message handler."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PACKAGE_ROOT = os.path.join(os.path.expanduser("~"), ".depfetch", "packages")
    PACKAGE_INDEX_ROOT: Optional[str] = None
    REPLACED_DIR_NAME = ".replacedPackages"
    TAG_FILE_EXTENSION = "json"
    TAG_FILE_FORMAT = 1

    MAVEN_REPOSITORIES = ["https://repo1.maven.org/maven2/"]
    MAVEN_LOCAL_REPOSITORY = os.path.join(os.path.expanduser("~"), ".m2", "repository")
    USE_LOCAL_REPOSITORY = True
    POM_XML_FILE = "pom.xml"
    NOT_FOUND_SUFFIX = ".notFound"
    MAVEN_METADATA_FILE = "maven-metadata.xml"
    DEFAULT_SCOPE = "compile"
    DEFAULT_TYPE = "jar"

    GIT_COMMAND = "git"
    SCP_COMMAND = "scp"
    PROCESS_TIMEOUT = 600  # Timeout in seconds for git/scp subprocesses

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "DEPFETCH_LOG_LEVEL"
    ENV_CONFIG = "DEPFETCH_CONFIG"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    HTTP_RETRY_MAX = 3
    HTTP_CACHE_TTL_SEC = 300


def _default_config_paths():
    """Candidate config file locations, most specific first."""
    paths = []
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        paths.append(env_path)
    xdg = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    paths.append(os.path.join(xdg, "depfetch", "depfetch.yml"))
    paths.append(os.path.join(xdg, "depfetch", "depfetch.yaml"))
    paths.append(os.path.join(os.getcwd(), "depfetch.yml"))
    return paths


def _read_config_file(path: str) -> Dict[str, Any]:
    """Read one YAML (or JSON, by extension) config file into a dict."""
    with open(path, "r", encoding="utf-8") as fh:
        if path.lower().endswith(".json"):
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return data


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first config file found and return its contents.

    Args:
        path: Explicit config path; when given, only this file is considered.

    Returns:
        dict: Parsed configuration, empty when no file exists.
    """
    candidates = [path] if path else _default_config_paths()
    for candidate in candidates:
        if candidate and os.path.isfile(candidate):
            try:
                cfg = _read_config_file(candidate)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                logger.warning("Ignoring unreadable config file %s: %s", candidate, exc)
                return {}
            logger.debug("Loaded config from %s", candidate)
            return cfg
        if path:
            logger.warning("Config file not found: %s", path)
    return {}


def apply_config(cfg: Dict[str, Any]) -> None:
    """Overlay recognized config keys onto Constants.

    Recognized layout::

        package_root: /path/to/packages
        index_root: /path/to/index
        maven:
          repositories: [https://repo1.maven.org/maven2/]
          local_repository: ~/.m2/repository
          use_local_repository: true
        http:
          request_timeout: 30
          retry_max: 3
        process_timeout: 600
    """
    if not cfg:
        return
    if cfg.get("package_root"):
        Constants.PACKAGE_ROOT = os.path.expanduser(str(cfg["package_root"]))
    if cfg.get("index_root"):
        Constants.PACKAGE_INDEX_ROOT = os.path.expanduser(str(cfg["index_root"]))
    if cfg.get("process_timeout") is not None:
        Constants.PROCESS_TIMEOUT = int(cfg["process_timeout"])

    maven = cfg.get("maven") or {}
    if isinstance(maven, dict):
        repos = maven.get("repositories")
        if isinstance(repos, list) and repos:
            Constants.MAVEN_REPOSITORIES = [str(r) for r in repos]
        if maven.get("local_repository"):
            Constants.MAVEN_LOCAL_REPOSITORY = os.path.expanduser(str(maven["local_repository"]))
        if maven.get("use_local_repository") is not None:
            Constants.USE_LOCAL_REPOSITORY = bool(maven["use_local_repository"])

    http = cfg.get("http") or {}
    if isinstance(http, dict):
        if http.get("request_timeout") is not None:
            Constants.REQUEST_TIMEOUT = int(http["request_timeout"])
        if http.get("retry_max") is not None:
            Constants.HTTP_RETRY_MAX = int(http["retry_max"])
