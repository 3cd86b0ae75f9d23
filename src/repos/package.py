"""Packages: the nodes of the dependency graph.

A package is identified by its name and may be reachable from several
sources. Sources are kept ordered by the depth at which they were found, so
the nearest reference is tried first; one of them becomes ``current_source``
once the package is installed.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, List, Optional, Set

from constants import Constants
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.source import RepositorySource
from repos.tagfile import PackageInfo

if TYPE_CHECKING:
    from repos.managers.base import AbstractRepositoryManager

logger = logging.getLogger(__name__)


class RepositoryPackage:  # pylint: disable=too-many-instance-attributes, too-many-public-methods
    """A software component installed from one of its sources."""

    def __init__(self, mgr: "AbstractRepositoryManager", pkg_name: str, file_name: Optional[str],
                 src: Optional[RepositorySource], parent_pkg: Optional["RepositoryPackage"] = None):
        self.package_name = pkg_name
        self.package_alias: Optional[str] = None
        self.installed_time = 0
        self.install_error: Optional[str] = None
        self.installed = False
        self.defines_classes = True
        self.defines_src = False
        self.build_from_src = False
        self._include_tests = False
        self._include_runtime = False

        self.sources: List[RepositorySource] = []
        self.current_source: Optional[RepositorySource] = None
        self.installed_source: Optional[RepositorySource] = None
        self.parent_pkg: Optional[RepositoryPackage] = None
        self.sub_packages: Optional[List[RepositoryPackage]] = None
        self.dependencies: Optional[List[RepositoryPackage]] = None
        self.installed_root: Optional[str] = None
        self.file_names: List[str] = []

        self.mgr = mgr
        self.replaced_by_pkg: Optional[RepositoryPackage] = None
        self.rebuild_reason: Optional[str] = None
        # True once this package and its dependency list were restored from a tag file
        self.pre_installed = False
        # Set when the tag check found the package stale: files on disk are replaced
        self.refetch = False
        self.inited_sources: List[RepositorySource] = []
        self._computed_class_path: Optional[List[str]] = None

        if file_name is not None:
            self.add_file_name(file_name)
        if src is not None:
            src.pkg = self
            self.sources.append(src)
        self.set_parent_pkg(parent_pkg)
        self.update_install_root(mgr)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryPackage):
            return NotImplemented
        return other.package_name == self.package_name

    def __hash__(self) -> int:
        return hash(self.package_name)

    def __str__(self) -> str:
        return self.package_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.package_name!r}, installed={self.installed})"

    @property
    def include_tests(self) -> bool:
        return self._include_tests

    @include_tests.setter
    def include_tests(self, value: bool) -> None:
        # Turning tests on for an installed package needs the test dependencies
        if value and not self._include_tests and self.installed:
            self.installed = False
        self._include_tests = value

    @property
    def include_runtime(self) -> bool:
        return self._include_runtime

    @include_runtime.setter
    def include_runtime(self, value: bool) -> None:
        if value and not self._include_runtime and self.installed:
            self.installed = False
        self._include_runtime = value

    def set_parent_pkg(self, parent: Optional["RepositoryPackage"]) -> None:
        self.parent_pkg = parent
        if parent is not None and parent.build_from_src:
            self.build_from_src = True

    def add_file_name(self, file_name: str) -> None:
        self.file_names.append(file_name)

    def add_sub_package(self, pkg: "RepositoryPackage") -> None:
        if self.sub_packages is None:
            self.sub_packages = []
        if pkg not in self.sub_packages:
            self.sub_packages.append(pkg)

    def install(self, ctx: Optional[DependencyContext] = None) -> Optional[str]:
        """Install this package and everything it depends on.

        Returns:
            None on success, otherwise the aggregated error text.
        """
        if self.replaced_by_pkg is not None:
            return self.replaced_by_pkg.install(ctx)

        system = self.mgr.system
        if system.get_repository_package(self.package_name) is not self:
            logger.warning("Installing package that is not registered: %s", self.package_name)

        all_deps: List[RepositoryPackage] = []
        dep_col = DependencyCollection()
        err = self.pre_install(ctx, dep_col)
        if err is None:
            self._install_sub_packages(ctx)
            err = system.install_deps(dep_col, all_deps)
        self.mgr.complete_install(self)
        system.complete_install_deps(all_deps)
        return err

    def pre_install(self, ctx: Optional[DependencyContext], dep_col: DependencyCollection) -> Optional[str]:
        """Fetch this package from the first source that works.

        Newly discovered dependencies are added to ``dep_col`` rather than
        installed here.
        """
        self.installed = False
        errors: List[str] = []
        if not self.sources and self.current_source is not None:
            self.sources = [self.current_source]
            self.update_current_file_names(self.current_source)

        for src in list(self.sources):
            if not src.repository.active:
                continue
            # Marked before the manager runs so cyclic references stop here
            self.installed = True
            err = src.repository.pre_install(src, ctx, dep_col)
            if err is None:
                self.installed = True
                if self.current_source is None or self.current_source != src:
                    self.update_current_source(src, True)
                else:
                    self.update_current_file_names(self.current_source)
                break
            self.installed = False
            errors.append(err)

        if self.installed:
            return None
        if not errors:
            errors.append(f"No active repository manager to install package: {self.package_name}")
        return "; ".join(errors)

    def _install_sub_packages(self, ctx: Optional[DependencyContext]) -> None:
        system = self.mgr.system
        for sub_pkg in self.sub_packages or []:
            system.install_package(sub_pkg, ctx)
            sub_pkg._install_sub_packages(ctx)  # pylint: disable=protected-access

    def update(self) -> Optional[str]:
        if self.replaced_by_pkg is not None:
            return self.replaced_by_pkg.update()
        if not self.installed or self.current_source is None:
            return f"Package: {self.package_name} not installed - skipping update"
        return self.current_source.repository.update(self.current_source)

    def update_install_root(self, mgr: "AbstractRepositoryManager") -> None:
        self.mgr = mgr
        # Source modules live inside their parent's checkout
        if self.parent_pkg is not None and self.build_from_src and self.parent_pkg.installed_root:
            self.installed_root = os.path.join(self.parent_pkg.installed_root, self.get_module_base_name())
        elif not self.file_names:
            self.installed_root = mgr.package_root
        else:
            self.installed_root = os.path.join(mgr.package_root, *self.package_name.split("/"))

    def get_index_file_name(self) -> str:
        name = self.package_name
        suffix = self.get_version_suffix()
        if suffix:
            name = f"{name}-{suffix}"
        return f"{name.replace('/', '__')}.{Constants.TAG_FILE_EXTENSION}"

    def get_module_base_name(self) -> str:
        return self.package_name.rsplit("/", 1)[-1]

    def add_new_source(self, repo_src: RepositorySource) -> RepositorySource:
        """Merge another reference to this package into its source list.

        Returns:
            The canonical source instance for ``repo_src``'s url.
        """
        if self.current_source is not None and repo_src == self.current_source:
            # Exclusions changed: the dependency list has to be recomputed
            if self.current_source.merge_source(repo_src):
                self._reset_dependencies()
            self._merge_context(self.current_source, repo_src)
            return self.current_source

        for old_src in self.sources:
            if repo_src == old_src:
                if old_src.merge_source(repo_src) and old_src is self.current_source:
                    self._reset_dependencies()
                self._merge_context(old_src, repo_src)
                return old_src

        ix = len(self.sources)
        for i, old_src in enumerate(self.sources):
            if DependencyContext.has_priority(repo_src.ctx, old_src.ctx):
                ix = i
                break
        self.sources.insert(ix, repo_src)
        repo_src.pkg = self
        return repo_src

    def _reset_dependencies(self) -> None:
        self.dependencies = None
        self._computed_class_path = None
        # Queued again by the reference that widened the list, then re-collected
        self.installed = False
        self.pre_installed = False

    def _merge_context(self, kept: RepositorySource, other: RepositorySource) -> None:
        new_ctx = DependencyContext.merge(kept.ctx, other.ctx)
        if new_ctx is not kept.ctx:
            kept.ctx = new_ctx
            self.sources.sort(key=lambda s: DependencyContext.val(s.ctx))

    def get_class_path(self) -> Optional[List[str]]:
        """Class path entries contributed by this package and its dependencies.

        Returns:
            Ordered, de-duplicated entries, or None when not installed.
        """
        if self.replaced_by_pkg is not None:
            return self.replaced_by_pkg.get_class_path()
        if self._computed_class_path is not None:
            return self._computed_class_path
        if not self.installed:
            return None
        entries: List[str] = []
        self._add_to_class_path(entries, set())
        self._computed_class_path = entries
        return entries

    def _add_to_class_path(self, entries: List[str], visited: Set[str]) -> None:
        if self.package_name in visited or not self.installed:
            return
        visited.add(self.package_name)
        files = self.get_class_path_file_names()
        if files and self.defines_classes:
            for file_name in files:
                entry = os.path.join(self.get_version_root(), file_name)
                self.mgr.system.add_class_path_entry(entry)
                if entry not in entries:
                    entries.append(entry)
        for sub_pkg in self.sub_packages or []:
            sub_pkg._add_to_class_path(entries, visited)  # pylint: disable=protected-access
        for dep_pkg in self.dependencies or []:
            dep_pkg._add_to_class_path(entries, visited)  # pylint: disable=protected-access

    def update_from_saved(self, mgr: "AbstractRepositoryManager", saved: PackageInfo,
                          ctx: Optional[DependencyContext]) -> bool:
        """Adopt the state of a previous install if the description is unchanged.

        Returns:
            False when anything that affects the install differs.
        """
        # pylint: disable=too-many-return-statements, too-many-branches
        if not self.same_packages(saved.package_name, saved.package_alias):
            return False
        if not saved.sources:
            return False

        saved_current = saved.current_url
        if len(self.sources) > len(saved.sources):
            if self.current_source is None or saved_current is None or self.current_source.url != saved_current:
                return False

        # Tests or runtime scopes newly switched on need a reinstall; switching them off does not
        if self.include_tests and not saved.include_tests:
            return False
        if self.include_runtime and not saved.include_runtime:
            return False

        if self.current_source is None or saved_current is None:
            for i, src in enumerate(self.sources):
                if i >= len(saved.sources) or src.url != saved.sources[i].get("url"):
                    return False

        system = mgr.system
        if saved.parent_pkg_url is not None:
            if self.parent_pkg is not None:
                if not self.parent_pkg.same_url(saved.parent_pkg_url):
                    logger.info("Parent of %s changed - reinstalling", self.package_name)
                    return False
            else:
                parent_mgr = system.get_manager_from_url(saved.parent_pkg_url, report=False) or mgr
                self.set_parent_pkg(parent_mgr.get_or_create_package(saved.parent_pkg_url, None, False))

        self.file_names = list(saved.file_names)
        self.defines_classes = saved.defines_classes
        self.defines_src = saved.defines_src
        self.build_from_src = saved.build_from_src

        self._init_sub_packages(saved)
        if saved.dep_pkg_urls is not None:
            deps = []
            for dep_url in saved.dep_pkg_urls:
                dep_mgr = system.get_manager_from_url(dep_url, report=False) or mgr
                dep_pkg = dep_mgr.get_or_create_package(dep_url, None, False)
                if dep_pkg is not None:
                    deps.append(dep_pkg)
            self.dependencies = deps

        if saved.package_alias is not None:
            system.register_alternate_name(self, saved.package_alias)

        # Restored sources carry details (exclusions, classifier) a bare url does not
        restored = []
        for data in saved.sources:
            src_mgr = system.get_repository_manager(data.get("manager")) or mgr
            src = src_mgr.restore_source(data, self)
            src.pkg = self
            restored.append(src)
        self.sources = restored
        current = next((s for s in restored if s.url == saved_current), None)
        if current is not None:
            self.update_current_source(current, True)
        self.restore_extra(saved.extra)
        return True

    def _init_sub_packages(self, saved: PackageInfo) -> None:
        if not saved.sub_pkg_urls:
            return
        system = self.mgr.system
        for sub_url in saved.sub_pkg_urls:
            if any(sub.same_url(sub_url) for sub in self.sub_packages or []):
                continue
            sub_mgr = system.get_manager_from_url(sub_url, report=False)
            if sub_mgr is None:
                logger.warning("No manager for sub package url: %s", sub_url)
                continue
            sub_pkg = sub_mgr.get_or_create_package(sub_url, self, False)
            if sub_pkg is None:
                logger.warning("Failed to create sub package: %s", sub_url)
                continue
            self.add_sub_package(sub_pkg)

    def restore_extra(self, extra: dict) -> None:
        """Hook for subclasses to restore manager-specific tag file fields."""

    def save_extra(self) -> dict:
        return {}

    def to_info(self) -> PackageInfo:
        return PackageInfo(
            package_name=self.package_name,
            installed_time=self.installed_time,
            package_alias=self.package_alias,
            file_names=list(self.file_names),
            defines_classes=self.defines_classes,
            defines_src=self.defines_src,
            build_from_src=self.build_from_src,
            include_tests=self.include_tests,
            include_runtime=self.include_runtime,
            sources=[src.to_dict() for src in self.sources],
            current_source=self.current_source.to_dict() if self.current_source is not None else None,
            parent_pkg_url=self.parent_pkg.get_package_url() if self.parent_pkg is not None else None,
            sub_pkg_urls=[p.get_package_url() for p in self.sub_packages] if self.sub_packages is not None else None,
            dep_pkg_urls=[p.get_package_url() for p in self.dependencies] if self.dependencies is not None else None,
            extra=self.save_extra(),
        )

    def get_version_suffix(self) -> Optional[str]:
        return None

    def get_version_root(self) -> str:
        return self.get_installed_root()

    def get_installed_root(self) -> str:
        if self.replaced_by_pkg is not None:
            return self.replaced_by_pkg.get_installed_root()
        return self.installed_root

    def get_class_path_file_names(self) -> List[str]:
        if self.current_source is not None:
            return self.current_source.get_class_path_file_names()
        return self.file_names

    def update_current_source(self, src: RepositorySource, reset_file_names: bool) -> None:
        src.pkg = self
        self.set_current_source(src)
        if reset_file_names:
            self.update_current_file_names(src)

    def update_current_file_names(self, src: Optional[RepositorySource]) -> None:
        if src is None:
            return
        for file_name in list(src.get_class_path_file_names()):
            if file_name not in self.file_names:
                self.add_file_name(file_name)

    def set_current_source(self, src: Optional[RepositorySource]) -> None:
        self.current_source = src
        self._computed_class_path = None

    def get_package_url(self) -> str:
        if self.replaced_by_pkg is not None:
            return self.replaced_by_pkg.get_package_url()
        if self.current_source is None:
            return self.package_name
        return self.current_source.url

    def get_reuse_package_directory(self) -> bool:
        """True when an existing directory should not be backed up before reinstalling."""
        return False

    def same_packages(self, other_name: str, other_alias: Optional[str]) -> bool:
        return (other_name == self.package_name or
                (other_alias is not None and other_alias == self.package_name) or
                (self.package_alias is not None and self.package_alias in (other_name, other_alias)))

    def same_url(self, url: str) -> bool:
        return self.get_package_url() == url
