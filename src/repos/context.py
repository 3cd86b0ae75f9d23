"""Dependency context: where in the dependency tree a reference was found.

A context chain records the depth of a reference and the package that
introduced it. Lower depth wins when the same package is reached through
several paths ("nearest wins").
"""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from repos.package import RepositoryPackage
    from repos.system import RepositorySystem


class DependencyContext:
    """One edge of the dependency tree.

    ``from_pkg`` is the *name* of the including package, resolved through the
    repository system when needed, so contexts never keep packages alive.
    """

    __slots__ = ("depth", "from_pkg", "from_pkg_url", "parent")

    def __init__(self, depth: int, from_pkg: Optional[str], parent: Optional["DependencyContext"],
                 from_pkg_url: Optional[str] = None):
        self.depth = depth
        self.from_pkg = from_pkg
        self.from_pkg_url = from_pkg_url
        self.parent = parent

    def child(self, from_pkg: "RepositoryPackage") -> "DependencyContext":
        return DependencyContext(self.depth + 1, from_pkg.package_name, self, from_pkg.get_package_url())

    @staticmethod
    def child_of(prev: Optional["DependencyContext"], pkg: "RepositoryPackage") -> "DependencyContext":
        """Return the context one level below ``prev``; depth 1 under the root."""
        if prev is None:
            return DependencyContext(1, pkg.package_name, None, pkg.get_package_url())
        return prev.child(pkg)

    @staticmethod
    def val(ctx: Optional["DependencyContext"]) -> int:
        return 0 if ctx is None else ctx.depth

    @staticmethod
    def merge(ctx1: Optional["DependencyContext"], ctx2: Optional["DependencyContext"]) -> Optional["DependencyContext"]:
        """Pick the context with the lower depth, preferring ``ctx1`` on ties."""
        return ctx1 if DependencyContext.val(ctx1) <= DependencyContext.val(ctx2) else ctx2

    @staticmethod
    def has_priority(ctx1: Optional["DependencyContext"], ctx2: Optional["DependencyContext"]) -> bool:
        return DependencyContext.val(ctx1) < DependencyContext.val(ctx2)

    def including_package_names(self) -> List[str]:
        """Names of the packages that led to this dependency, root first."""
        names: List[str] = []
        ctx: Optional[DependencyContext] = self
        while ctx is not None:
            if ctx.from_pkg is not None:
                names.append(ctx.from_pkg)
            ctx = ctx.parent
        names.reverse()
        return names

    def get_including_packages(self, system: "RepositorySystem") -> List["RepositoryPackage"]:
        """Resolve ``including_package_names`` through the package registry."""
        res = []
        for name in self.including_package_names():
            pkg = system.get_repository_package(name)
            if pkg is not None:
                res.append(pkg)
        return res

    def to_dict(self) -> dict:
        return {
            "depth": self.depth,
            "from_pkg": self.from_pkg,
            "from_pkg_url": self.from_pkg_url,
            "parent": self.parent.to_dict() if self.parent is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["DependencyContext"]:
        if not data:
            return None
        return cls(int(data.get("depth", 0)), data.get("from_pkg"),
                   cls.from_dict(data.get("parent")), data.get("from_pkg_url"))

    def __str__(self) -> str:
        return " -> ".join(self.including_package_names())

    def __repr__(self) -> str:
        return f"DependencyContext(depth={self.depth}, from_pkg={self.from_pkg!r})"
