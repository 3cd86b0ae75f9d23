"""URL backend: downloads a single file over HTTP(S), optionally unzipping it.

Locators look like ``url:https://host/path/lib.jar``; append ``#unzip`` to
extract a zip/jar archive into a directory named after the file.
"""
from __future__ import annotations

import logging
import os
import zipfile
from typing import Optional

from common.http_client import download_file, last_modified_ms
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.managers.base import AbstractRepositoryManager
from repos.package import RepositoryPackage
from repos.source import RepositorySource, url_file_name

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".zip", ".jar", ".war")


def unzip_into(archive: str, dest_dir: str) -> Optional[str]:
    """Extract ``archive`` into ``dest_dir``, refusing entries that escape it."""
    if not archive.lower().endswith(ARCHIVE_SUFFIXES):
        return f"Zip files must have a suffix of {', '.join(ARCHIVE_SUFFIXES)}: {archive}"
    dest_real = os.path.realpath(dest_dir)
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                target = os.path.realpath(os.path.join(dest_real, member))
                if target != dest_real and not target.startswith(dest_real + os.sep):
                    return f"Refusing to unzip entry outside of {dest_dir}: {member}"
            zf.extractall(dest_real)
    except (OSError, zipfile.BadZipFile) as exc:
        return f"Failed to unzip: {archive} into: {dest_dir}: {exc}"
    return None


def remote_url(url: str) -> str:
    """Strip the ``url:`` prefix and the ``#`` options from a locator."""
    remote = url[len("url:"):] if url.startswith("url:") else url
    return remote.split("#", 1)[0]


class UrlRepositorySource(RepositorySource):
    """Source whose file name comes from the last segment of the url."""

    def get_default_file_name(self) -> Optional[str]:
        name = url_file_name(remote_url(self.url))
        if self.unzip:
            return os.path.splitext(name)[0]
        return name


class UrlRepositoryManager(AbstractRepositoryManager):
    """Handles ``url:<http(s) url>[#unzip]`` locators."""

    def create_repository_source(self, url: str, unzip: bool = False,
                                 parent_pkg: Optional[RepositoryPackage] = None) -> RepositorySource:
        unzip = unzip or url.endswith("#unzip")
        return UrlRepositorySource(self, url, unzip, parent_pkg)

    def do_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                   deps: DependencyCollection) -> Optional[str]:
        root = src.pkg.get_version_root()
        remote = remote_url(src.url)
        file_name = url_file_name(remote)
        if not file_name:
            return f"Bad url: {src.url} - no file name"
        dest = os.path.join(root, file_name)
        self.info(f"Downloading url: {remote} into: {dest}")
        err = download_file(remote, dest, context=self.manager_name)
        if err is not None or not src.unzip:
            return err
        err = unzip_into(dest, os.path.join(root, os.path.splitext(file_name)[0]))
        if err is None:
            os.remove(dest)
        return err

    def get_last_modified_time(self, src: RepositorySource) -> int:
        return last_modified_ms(remote_url(src.url), context=self.manager_name)
