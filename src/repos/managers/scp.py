"""scp backend: copies a remote file or directory with the scp executable."""
from __future__ import annotations

import os
from typing import Optional

from constants import Constants
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.managers.base import AbstractRepositoryManager
from repos.managers.url import unzip_into
from repos.source import RepositorySource


def scp_remote(url: str) -> str:
    """``scp://user@host:path`` -> ``user@host:path``."""
    return url[len("scp://"):] if url.startswith("scp://") else url.split(":", 1)[1]


class ScpRepositoryManager(AbstractRepositoryManager):
    """Handles ``scp://[user@]host:path`` locators."""

    def do_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                   deps: DependencyCollection) -> Optional[str]:
        root = src.pkg.get_version_root()
        os.makedirs(root, exist_ok=True)
        remote = scp_remote(src.url)
        err = self.run_command([Constants.SCP_COMMAND, "-r", "-q", remote, root])
        if err is not None or not src.unzip:
            return err
        archive = os.path.join(root, os.path.basename(remote.rsplit(":", 1)[-1].rstrip("/")))
        return unzip_into(archive, root)
