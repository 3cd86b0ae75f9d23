"""Common install flow shared by every repository manager backend."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from constants import Constants, MessageTypes
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from repos import messages
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.messages import MessageHandler
from repos.package import RepositoryPackage
from repos.source import RepositorySource
from repos.tagfile import read_package_info, remove_package_info, write_package_info

if TYPE_CHECKING:
    from repos.system import RepositorySystem

logger = logging.getLogger(__name__)


def is_empty_dir(path: str) -> bool:
    """True when ``path`` holds nothing but dot files."""
    try:
        return all(name.startswith(".") for name in os.listdir(path))
    except OSError:
        return True


class AbstractRepositoryManager(ABC):
    """Base class for the git, scp, url and maven backends.

    Subclasses implement ``do_install``; everything around it (tag file
    checks, backups of replaced directories, error reporting) lives here.
    """

    # Packages from this manager are sources to build rather than runtime files
    src_repository = False

    def __init__(self, system: "RepositorySystem", manager_name: str, package_root: str,
                 handler: Optional[MessageHandler] = None, info: bool = False):
        self.system = system
        self.manager_name = manager_name
        self.package_root = package_root
        self.msg = handler
        self.info_enabled = info
        self.active = True

    def __str__(self) -> str:
        return self.manager_name

    def is_src_repository(self) -> bool:
        return self.src_repository

    def create_repository_source(self, url: str, unzip: bool = False,
                                 parent_pkg: Optional[RepositoryPackage] = None) -> RepositorySource:
        return RepositorySource(self, url, unzip, parent_pkg)

    def restore_source(self, data: dict, pkg: RepositoryPackage) -> RepositorySource:
        """Rebuild a source saved in a tag file."""
        return self.create_repository_source(data["url"], bool(data.get("unzip")), pkg.parent_pkg)

    def new_package(self, pkg_name: str, file_name: Optional[str], src: RepositorySource,
                    parent_pkg: Optional[RepositoryPackage] = None) -> RepositoryPackage:
        return RepositoryPackage(self, pkg_name, file_name, src, parent_pkg)

    def create_package(self, url: str) -> Optional[RepositoryPackage]:
        """Build an unregistered package for a locator handled by this manager."""
        src = self.create_repository_source(url)
        pkg_name = src.get_default_package_name()
        if not pkg_name:
            self.error(f"Unable to derive a package name from: {url}")
            return None
        file_name = src.get_default_file_name() or pkg_name
        return self.new_package(pkg_name, file_name, src)

    def get_or_create_package(self, url: str, parent: Optional[RepositoryPackage],
                              install: bool) -> Optional[RepositoryPackage]:
        src = self.create_repository_source(url, False, parent)
        pkg_name = src.get_default_package_name()
        if not pkg_name:
            return None
        return self.system.add_package_source(self, pkg_name, src.get_default_file_name() or pkg_name,
                                              src, install, parent)

    def get_tag_file(self, pkg: RepositoryPackage) -> str:
        index_root = self.system.pkg_index_root
        # Kept in the version root by default so removing the directory also drops the tag
        if index_root is None:
            return os.path.join(pkg.get_version_root(), pkg.get_index_file_name())
        return os.path.join(index_root, pkg.get_index_file_name())

    def get_deps_info(self, ctx: Optional[DependencyContext]) -> str:
        return "" if ctx is None or not self.info_enabled else f" from: {ctx}"

    def pre_install_package(self, pkg: RepositoryPackage, ctx: Optional[DependencyContext]) -> None:
        """Decide whether ``pkg`` is up to date and back up a directory about to be replaced."""
        # pylint: disable=too-many-branches
        src = pkg.current_source
        if src is None:
            self.error(f"No source for package init: {pkg.package_name}")
            return
        if src in pkg.inited_sources:
            return
        pre_installed = True if not pkg.inited_sources else pkg.pre_installed
        pkg.inited_sources.append(src)
        pkg.rebuild_reason = None

        system = self.system
        tag_file = self.get_tag_file(pkg)
        root = pkg.get_version_root()
        root_exists = os.path.isdir(root)
        root_parent = os.path.dirname(root)
        if root_parent:
            os.makedirs(root_parent, exist_ok=True)

        installed_time = -1
        if root_exists and os.path.isfile(tag_file):
            saved = read_package_info(tag_file)
            if saved is None:
                pkg.rebuild_reason = f"failed to read {tag_file}"
            elif system.reinstall_system:
                pkg.rebuild_reason = "reinstalling system - clean install"
            elif system.install_existing:
                pkg.rebuild_reason = "reinitializing from previous install"
            elif not pkg.update_from_saved(self, saved, ctx):
                pkg.rebuild_reason = "package description changed"
            if pkg.rebuild_reason is None:
                installed_time = saved.installed_time
        else:
            pkg.rebuild_reason = f"No cached package info for: {tag_file}"

        package_time = self.get_last_modified_time(src)
        # Unknown remote time: trust a previous install
        if package_time == -1:
            if installed_time != -1:
                if not system.install_existing:
                    self.info(f"Package: {pkg.package_name} up-to-date{self.get_deps_info(ctx)}")
                    pkg.pre_installed = pre_installed
                else:
                    pkg.rebuild_reason = (pkg.rebuild_reason or "") + ": found existing directory"
        elif installed_time > package_time:
            if not system.install_existing:
                self.info(f"Package: {pkg.package_name} up-to-date{self.get_deps_info(ctx)}")
                pkg.pre_installed = pre_installed
            else:
                pkg.rebuild_reason = ": forced reinstall from existing directory"
        else:
            pkg.rebuild_reason = (pkg.rebuild_reason or "") + ": files out of date"

        pkg.refetch = not pkg.pre_installed and not system.install_existing

        if (not pkg.pre_installed and root_exists and not is_empty_dir(root) and system.reinstall_system
                and pkg.parent_pkg is None and not pkg.get_reuse_package_directory()):
            self._backup_package_dir(pkg, root)

    def _backup_package_dir(self, pkg: RepositoryPackage, root: str) -> None:
        now = datetime.now()
        backup_dir = os.path.join(self.package_root, Constants.REPLACED_DIR_NAME,
                                  f"{pkg.package_name}.{now.hour}.{now.minute}")
        candidate, n = backup_dir, 1
        while os.path.exists(candidate):
            candidate = f"{backup_dir}.{n}"
            n += 1
        os.makedirs(os.path.dirname(candidate), exist_ok=True)
        self.info(f"Backing up package: {pkg.package_name} into: {candidate}")
        shutil.move(root, candidate)
        os.makedirs(root, exist_ok=True)

    def pre_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                    deps: DependencyCollection) -> Optional[str]:
        """Install ``src`` unless its tag file shows it is current.

        Dependencies found along the way are appended to ``deps``.
        """
        pkg = src.pkg
        # Needed so get_version_root reflects this source
        if pkg.current_source is not src:
            pkg.set_current_source(src)

        self.pre_install_package(pkg, ctx)
        pkg.installed_source = pkg.current_source

        if pkg.pre_installed:
            for sub_pkg in pkg.sub_packages or []:
                deps.add_dependency(sub_pkg, ctx)
            for dep_pkg in pkg.dependencies or []:
                deps.add_dependency(dep_pkg, DependencyContext.child_of(ctx, pkg))
            return None

        reason = f": {pkg.rebuild_reason}" if pkg.rebuild_reason else ""
        self.info(f"{'  ' * DependencyContext.val(ctx)}Installing package: {pkg.package_name}{reason}"
                  f" src url: {src}{self.get_deps_info(ctx)}")
        with Timer() as t:
            pkg.install_error = self.do_install(src, ctx, deps)
        if is_debug_enabled(logger):
            logger.debug(
                "Package install attempt",
                extra=extra_context(
                    event="install",
                    component=self.manager_name,
                    action="do_install",
                    outcome="success" if pkg.install_error is None else "error",
                    target=safe_url(src.url),
                    duration_ms=t.duration_ms(),
                )
            )
        return pkg.install_error

    def complete_install(self, pkg: RepositoryPackage) -> None:
        """Persist the tag file of a finished package, or drop it after a failure."""
        tag_file = self.get_tag_file(pkg)
        if pkg.install_error is not None:
            remove_package_info(tag_file)
            self.error(f"Installing package: {pkg.package_name} failed: {pkg.install_error}")
        elif pkg.installed and not pkg.pre_installed:
            pkg.installed_time = int(time.time() * 1000)
            write_package_info(tag_file, pkg.to_info())
        for sub_pkg in pkg.sub_packages or []:
            sub_pkg.mgr.complete_install(sub_pkg)

    @abstractmethod
    def do_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                   deps: DependencyCollection) -> Optional[str]:
        """Fetch ``src`` into its package's version root.

        Returns:
            None on success, otherwise an error description.
        """

    def get_last_modified_time(self, src: RepositorySource) -> int:  # pylint: disable=unused-argument
        """Remote modification time in epoch milliseconds, -1 when unknown."""
        return -1

    def update(self, src: RepositorySource) -> Optional[str]:  # pylint: disable=unused-argument
        return None

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self.msg = handler

    def info(self, message: str) -> None:
        if self.info_enabled:
            messages.send(self.msg, MessageTypes.INFO, message)
        else:
            messages.send(self.msg, MessageTypes.DEBUG, message)

    def warning(self, message: str) -> None:
        messages.send(self.msg, MessageTypes.WARNING, message)

    def error(self, message: str) -> None:
        messages.send(self.msg, MessageTypes.ERROR, message)

    def run_command(self, args: List[str], cwd: Optional[str] = None) -> Optional[str]:
        """Run an external command for a fetch.

        Returns:
            None on success, otherwise a description including stderr.
        """
        command = " ".join(args)
        self.info(f"Running: {command}" + (f" in: {cwd}" if cwd else ""))
        try:
            result = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=Constants.PROCESS_TIMEOUT,
                check=False,
            )
        except FileNotFoundError:
            return f"Command not found: {args[0]}"
        except subprocess.TimeoutExpired:
            return f"Command timed out after {Constants.PROCESS_TIMEOUT} seconds: {command}"
        if result.returncode != 0:
            details = (result.stderr or result.stdout or "").strip()
            return f"Command failed ({result.returncode}): {command}" + (f": {details}" if details else "")
        return None
