"""Frontier of packages discovered during one round of dependency collection."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional

from repos.context import DependencyContext

if TYPE_CHECKING:
    from repos.package import RepositoryPackage


@dataclass
class PackageDependency:
    """A package reached through a particular context."""
    pkg: "RepositoryPackage"
    ctx: Optional[DependencyContext]


@dataclass
class DependencyCollection:
    """Ordered list of dependencies still to be pre-installed."""
    needed_deps: List[PackageDependency] = field(default_factory=list)

    def add_dependency(self, pkg: "RepositoryPackage", ctx: Optional[DependencyContext]) -> None:
        self.needed_deps.append(PackageDependency(pkg, ctx))

    def __iter__(self) -> Iterator[PackageDependency]:
        return iter(self.needed_deps)

    def __len__(self) -> int:
        return len(self.needed_deps)
