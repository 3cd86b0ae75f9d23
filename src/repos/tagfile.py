"""Persisted snapshot of an installed package.

After a successful install a small JSON document is written next to the
package (or under the index root). On the next run it is compared with the
freshly computed package description to decide whether a re-fetch is needed.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from constants import Constants

logger = logging.getLogger(__name__)


@dataclass
class PackageInfo:
    """Serializable state of a RepositoryPackage."""
    package_name: str
    installed_time: int = 0
    package_alias: Optional[str] = None
    file_names: List[str] = field(default_factory=list)
    defines_classes: bool = True
    defines_src: bool = False
    build_from_src: bool = False
    include_tests: bool = False
    include_runtime: bool = False
    sources: List[Dict[str, Any]] = field(default_factory=list)
    current_source: Optional[Dict[str, Any]] = None
    parent_pkg_url: Optional[str] = None
    sub_pkg_urls: Optional[List[str]] = None
    dep_pkg_urls: Optional[List[str]] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    format: int = Constants.TAG_FILE_FORMAT

    @property
    def current_url(self) -> Optional[str]:
        return self.current_source.get("url") if self.current_source else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageInfo":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "package_name" not in known:
            raise ValueError("missing package_name")
        return cls(**known)


def write_package_info(path: str, info: PackageInfo) -> None:
    """Write ``info`` to ``path`` atomically."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(asdict(info), fh, indent=2, sort_keys=True)
        os.replace(tmp_path, path)
    except OSError as exc:
        logger.error("Unable to write package info file: %s: %s", path, exc)


def read_package_info(path: str) -> Optional[PackageInfo]:
    """Read a tag file; an unreadable or stale-format file is deleted and None returned."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict) or data.get("format") != Constants.TAG_FILE_FORMAT:
            raise ValueError("package info format changed")
        return PackageInfo.from_dict(data)
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Failed to read package info file %s: %s", path, exc)
        remove_package_info(path)
    return None


def remove_package_info(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Unable to remove package info file %s: %s", path, exc)
