"""The repository system: package registry, manager dispatch and the install loop."""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Tuple

from constants import Constants, RepositoryTypes
from repos import messages
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.managers.base import AbstractRepositoryManager
from repos.managers.git import GitRepositoryManager
from repos.managers.scp import ScpRepositoryManager
from repos.managers.url import UrlRepositoryManager
from repos.messages import MessageHandler
from repos.mvn.manager import MvnRepositoryManager
from repos.package import RepositoryPackage
from repos.source import RepositorySource

logger = logging.getLogger(__name__)


class RepositorySystem:  # pylint: disable=too-many-instance-attributes
    """Registry of managers and packages for one install run.

    Every package is stored once under its name (and any alias). References to
    an existing package from other paths are merged into it as extra sources.

    Args:
        package_root: Directory packages are installed under.
        handler: Receives progress and error messages; defaults to logging.
        info: Report install progress at info level.
        reinstall: Back up and re-fetch every package.
        update: Run the backend update (e.g. ``git pull``) for installed packages.
        install_existing: Re-initialize packages from directories already on disk.
        pkg_index_root: Shared directory for tag files instead of each version root.
    """

    def __init__(self, package_root: Optional[str] = None, handler: Optional[MessageHandler] = None,
                 info: bool = False, reinstall: bool = False, update: bool = False,
                 install_existing: bool = False, pkg_index_root: Optional[str] = None):
        self.package_root = package_root or Constants.PACKAGE_ROOT
        self.pkg_index_root = pkg_index_root if pkg_index_root is not None else Constants.PACKAGE_INDEX_ROOT
        self.msg = handler
        self.info_enabled = info
        self.reinstall_system = reinstall
        self.update_system = update
        self.install_existing = install_existing

        # Guards the package table, the class path and the shared POM cache
        self.lock = threading.RLock()
        self.packages: Dict[str, RepositoryPackage] = {}
        self.managers: Dict[str, AbstractRepositoryManager] = {}
        # Insertion ordered set of class path entries across all packages
        self.class_path: Dict[str, None] = {}

        root = self.package_root
        self.add_repository_manager(ScpRepositoryManager(self, RepositoryTypes.SCP.value, root, handler, info))
        self.add_repository_manager(GitRepositoryManager(self, RepositoryTypes.GIT.value, root, handler, info))
        self.add_repository_manager(UrlRepositoryManager(self, RepositoryTypes.URL.value, root, handler, info))
        # "mvn" first: the other maven managers share its POM cache and repositories
        self.add_repository_manager(MvnRepositoryManager(self, RepositoryTypes.MAVEN.value, root, handler, info))
        self.add_repository_manager(MvnRepositoryManager(self, RepositoryTypes.MAVEN_DEPS.value, root, handler, info))
        git_mvn = RepositoryTypes.GIT_MAVEN.value
        self.add_repository_manager(MvnRepositoryManager(
            self, git_mvn, root, handler, info,
            install_repository=GitRepositoryManager(self, git_mvn, root, handler, info)))

    def get_repository_manager(self, name: Optional[str]) -> Optional[AbstractRepositoryManager]:
        if name is None:
            return None
        return self.managers.get(name)

    def add_repository_manager(self, mgr: AbstractRepositoryManager) -> Optional[AbstractRepositoryManager]:
        """Register ``mgr`` under its name, returning the manager it replaced."""
        old = self.managers.get(mgr.manager_name)
        self.managers[mgr.manager_name] = mgr
        return old

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self.msg = handler
        for mgr in self.managers.values():
            mgr.set_message_handler(handler)
            inner = getattr(mgr, "install_repository", None)
            if inner is not None:
                inner.set_message_handler(handler)

    def get_manager_from_url(self, url: str, report: bool = True) -> Optional[AbstractRepositoryManager]:
        """Select the manager from the locator scheme: ``git+https://...`` -> ``git``."""
        ix = url.find(":")
        if ix <= 0:
            if report:
                messages.error(self.msg, f"Invalid package url: {url} - missing type://values")
            return None
        name = url[:ix].split("+", 1)[0]
        mgr = self.get_repository_manager(name)
        if mgr is None:
            if report:
                messages.error(self.msg, f"No repository with name: {name} for package url: {url}")
            return None
        if not mgr.active:
            if report:
                messages.error(self.msg, f"Repository manager: {name} is not active for package url: {url}")
            return None
        return mgr

    def add_package(self, url: str, install: bool = False,
                    ctx: Optional[DependencyContext] = None) -> Optional[RepositoryPackage]:
        """Register the package for ``url``, merging it into an existing package of the same name."""
        mgr = self.get_manager_from_url(url)
        if mgr is None:
            return None
        pkg = mgr.create_package(url)
        if pkg is None:
            return None
        with self.lock:
            old_pkg = self.packages.get(pkg.package_name)
            if old_pkg is not None:
                old_pkg.add_new_source(pkg.sources[0])
                if old_pkg.installed:
                    return old_pkg
                pkg = old_pkg
            else:
                self.packages[pkg.package_name] = pkg
        if install:
            self.install_package(pkg, ctx)
        return pkg

    def add_package_source(self, mgr: AbstractRepositoryManager, pkg_name: str, file_name: Optional[str],
                           repo_src: RepositorySource, install: bool,
                           parent_pkg: Optional[RepositoryPackage]) -> RepositoryPackage:
        """Find or create the package ``pkg_name`` and add ``repo_src`` to its sources."""
        with self.lock:
            pkg = self.packages.get(pkg_name)
            if pkg is None:
                pkg = mgr.new_package(pkg_name, file_name, repo_src, parent_pkg)
                pkg.set_current_source(repo_src)
                self.packages[pkg_name] = pkg
            else:
                repo_src = pkg.add_new_source(repo_src)
                # First reached as an independent package, now known to be a module
                if parent_pkg is not None and pkg.parent_pkg is None:
                    pkg.set_parent_pkg(parent_pkg)
                    pkg.update_install_root(mgr)
                # An install request is a stronger reference than a module listing
                if not pkg.installed and install:
                    pkg.update_current_source(repo_src, True)
        if install:
            self.install_package(pkg, None)
        return pkg

    def add_repository_package(self, pkg: RepositoryPackage) -> RepositoryPackage:
        """Register a package built by a caller; an existing package of that name wins."""
        with self.lock:
            existing = self.packages.get(pkg.package_name)
            if existing is None:
                self.packages[pkg.package_name] = pkg
                return pkg
            for src in pkg.sources:
                existing.add_new_source(src)
            pkg.replaced_by_pkg = existing
            return existing

    def register_alternate_name(self, pkg: RepositoryPackage, alt_name: Optional[str]) -> RepositoryPackage:
        """Make ``pkg`` reachable as ``alt_name``; returns the package already using that name if any."""
        with self.lock:
            if pkg.package_alias is not None and alt_name != pkg.package_alias:
                logger.warning("Replacing package alias: %s with: %s for: %s",
                               pkg.package_alias, alt_name, pkg.package_name)
            pkg.package_alias = alt_name
            if alt_name is None:
                return pkg
            old_pkg = self.packages.get(alt_name)
            if old_pkg is None:
                self.packages[alt_name] = pkg
                return pkg
            return old_pkg

    def get_repository_package(self, pkg_name: str) -> Optional[RepositoryPackage]:
        with self.lock:
            return self.packages.get(pkg_name)

    def install_deps(self, dep_col: DependencyCollection, all_deps: List[RepositoryPackage]) -> Optional[str]:
        """Pre-install rounds of dependencies until a round discovers nothing new.

        Args:
            dep_col: First round of dependencies.
            all_deps: Receives every package visited, for ``complete_install_deps``.

        Returns:
            None when every dependency installed, otherwise the joined errors.
        """
        errors: List[str] = []
        failed = set()
        while True:
            next_col = DependencyCollection()
            for pkg_dep in dep_col:
                pkg = pkg_dep.pkg
                if not pkg.installed and pkg.package_name not in failed:
                    err = pkg.pre_install(pkg_dep.ctx, next_col)
                    if err is not None:
                        failed.add(pkg.package_name)
                        errors.append(f"{pkg.package_name}: {err}")
                        messages.error(self.msg, f"Failed to install repository package: {pkg.package_name}"
                                                 f" error: {err}")
                    elif self.update_system:
                        self._update_package(pkg)
                if pkg not in all_deps:
                    all_deps.append(pkg)
            if not next_col:
                break
            dep_col = next_col
        return "; ".join(errors) if errors else None

    @staticmethod
    def complete_install_deps(all_deps: List[RepositoryPackage]) -> None:
        for pkg in all_deps:
            pkg.mgr.complete_install(pkg)

    def install_package(self, pkg: RepositoryPackage, ctx: Optional[DependencyContext]) -> Optional[str]:
        """Install ``pkg`` (and its dependencies) unless it is already installed."""
        if not pkg.installed:
            err = pkg.install(ctx)
            if err is not None:
                messages.error(self.msg, f"Failed to install repository package: {pkg.package_name} error: {err}")
                return err
        elif self.update_system:
            self._update_package(pkg)
        return None

    def _update_package(self, pkg: RepositoryPackage) -> None:
        err = pkg.update()
        if err is not None:
            messages.warning(self.msg, f"Update of package: {pkg.package_name} failed: {err}")

    def install(self, url: str) -> Tuple[List[str], Optional[str]]:
        """Install the package at ``url``.

        Returns:
            Tuple of (class path entries of the package and its dependencies, error or None).
        """
        pkg = self.add_package(url)
        if pkg is None:
            return [], f"Unable to add package: {url}"
        err = self.install_package(pkg, None)
        return list(pkg.get_class_path() or []), err

    def add_class_path_entry(self, entry: str) -> None:
        with self.lock:
            self.class_path[entry] = None

    def get_class_path(self) -> List[str]:
        """Every class path entry registered so far, in first-seen order."""
        with self.lock:
            return list(self.class_path)

    def get_package_root(self) -> str:
        return self.package_root
