"""A single location a package can be installed from."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from repos.context import DependencyContext

if TYPE_CHECKING:
    from repos.managers.base import AbstractRepositoryManager
    from repos.package import RepositoryPackage


def url_file_name(url: str) -> str:
    """Last path segment of a locator, without any ``#ref`` fragment."""
    path = url.split("#", 1)[0].rstrip("/")
    return path.rsplit("/", 1)[-1].rsplit(":", 1)[-1]


class RepositorySource:
    """Locator plus the manager that understands it.

    A package may be reachable from several sources (different versions,
    different managers); two sources are the same source when their urls match.
    """

    def __init__(self, manager: "AbstractRepositoryManager", url: str, unzip: bool = False,
                 parent_pkg: Optional["RepositoryPackage"] = None,
                 ctx: Optional[DependencyContext] = None):
        self.repository = manager
        self.manager_name = manager.manager_name
        self.url = url
        self.unzip = unzip
        self.parent_pkg = parent_pkg
        self.ctx = ctx
        self.pkg: Optional["RepositoryPackage"] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositorySource):
            return NotImplemented
        return other.url == self.url

    def __hash__(self) -> int:
        return hash(self.url)

    def __str__(self) -> str:
        return self.url

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r}, depth={DependencyContext.val(self.ctx)})"

    def get_class_path_file_names(self) -> List[str]:
        return self.pkg.file_names if self.pkg is not None else []

    def merge_source(self, other: "RepositorySource") -> bool:
        """Merge details of ``other`` (same url) into this source.

        Returns:
            True when the package's dependency list must be recomputed.
        """
        return self.merge_exclusions(other)

    def merge_exclusions(self, other: "RepositorySource") -> bool:  # pylint: disable=unused-argument
        return False

    def get_default_package_name(self) -> Optional[str]:
        """Package name to use when a package is created from this url only."""
        if not self.url:
            return None
        name = url_file_name(self.url)
        for ext in (".git", ".zip", ".jar", ".tar.gz", ".tgz"):
            if name.endswith(ext):
                return name[: -len(ext)]
        return name

    def get_default_file_name(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict:
        return {"manager": self.manager_name, "url": self.url, "unzip": self.unzip}
