"""Git backend: clones (or refreshes) a repository into the package root."""
from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

from constants import Constants
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.managers.base import AbstractRepositoryManager
from repos.source import RepositorySource

logger = logging.getLogger(__name__)


def parse_git_url(url: str) -> Tuple[str, Optional[str]]:
    """Split a locator into the remote git url and an optional ref.

    ``git+https://host/repo.git#v1`` -> (``https://host/repo.git``, ``v1``);
    ``git://host/repo`` keeps the git protocol.
    """
    remote, _, ref = url.partition("#")
    scheme, sep, rest = remote.partition(":")
    if sep and "+" in scheme and rest.startswith("//"):
        remote = scheme.split("+", 1)[1] + ":" + rest
    return remote, (ref or None)


class GitRepositoryManager(AbstractRepositoryManager):
    """Handles ``git://`` and ``git+<transport>://`` locators."""

    src_repository = True

    def do_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                   deps: DependencyCollection) -> Optional[str]:
        pkg = src.pkg
        root = pkg.get_version_root()
        remote, ref = parse_git_url(src.url)
        git = Constants.GIT_COMMAND

        if os.path.isdir(os.path.join(root, ".git")):
            err = self.run_command([git, "fetch", "--tags", "origin"], cwd=root)
            if err is None and ref:
                err = self.run_command([git, "checkout", ref], cwd=root)
            elif err is None:
                err = self.run_command([git, "pull", "--ff-only"], cwd=root)
            return err

        if os.path.isdir(root) and os.listdir(root):
            return f"Unable to clone {remote}: {root} exists and is not a git checkout"

        os.makedirs(os.path.dirname(root) or ".", exist_ok=True)
        args = [git, "clone"]
        if ref:
            args += ["--branch", ref]
        args += [remote, root]
        err = self.run_command(args)
        if err is not None and ref:
            # --branch does not accept commit ids: clone then check out
            err = self.run_command([git, "clone", remote, root])
            if err is None:
                err = self.run_command([git, "checkout", ref], cwd=root)
        return err

    def update(self, src: RepositorySource) -> Optional[str]:
        root = src.pkg.get_version_root()
        if not os.path.isdir(os.path.join(root, ".git")):
            return f"Package: {src.pkg.package_name} is not a git checkout - skipping update"
        return self.run_command([Constants.GIT_COMMAND, "pull", "--ff-only"], cwd=root)
