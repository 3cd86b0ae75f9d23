"""Maven package: a RepositoryPackage whose sources carry Maven descriptors."""
from __future__ import annotations

import os
from typing import TYPE_CHECKING, List, Optional

from repos.mvn.descriptor import MvnDescriptor
from repos.mvn.source import TEST_JAR_TYPE, MvnRepositorySource
from repos.package import RepositoryPackage
from repos.source import RepositorySource

if TYPE_CHECKING:
    from repos.managers.base import AbstractRepositoryManager
    from repos.mvn.pom import POMFile


def _install_file_type(src: Optional[RepositorySource]) -> Optional[str]:
    """The artifact type a source asks for; None stands for the POM's packaging."""
    file_type = src.desc.type if isinstance(src, MvnRepositorySource) else None
    return None if file_type == "jar" else file_type


class MvnRepositoryPackage(RepositoryPackage):  # pylint: disable=too-many-instance-attributes
    """Package installed from a Maven repository or built from a POM checkout.

    Args:
        mgr: Manager that created the package.
        pkg_name: ``groupId/artifactId`` (or the module path before the POM is read).
        file_name: Default jar file name.
        src: First source.
        parent_pkg: Enclosing package for modules of a source checkout.
    """

    def __init__(self, mgr: "AbstractRepositoryManager", pkg_name: str, file_name: Optional[str],
                 src: Optional[RepositorySource], parent_pkg: Optional[RepositoryPackage] = None):
        self.pom_file: Optional["POMFile"] = None
        self.include_optional = False
        # "provided" dependencies normally come from the runtime environment
        self.include_provided = False
        # Add <repositories> declared in POM files to the search list
        self.use_repositories = False
        self.install_file_types: List[Optional[str]] = []
        self.include_modules: Optional[List[str]] = None
        self.exclude_modules: Optional[List[str]] = None
        super().__init__(mgr, pkg_name, file_name, src, parent_pkg)
        self._add_install_file_type(src)

    def _add_install_file_type(self, src: Optional[RepositorySource]) -> None:
        file_type = _install_file_type(src)
        if file_type not in self.install_file_types:
            self.install_file_types.append(file_type)

    def add_new_source(self, repo_src: RepositorySource) -> RepositorySource:
        res = super().add_new_source(repo_src)
        self._add_install_file_type(repo_src)
        return res

    def get_version_suffix(self) -> Optional[str]:
        # Modules live in their parent's directory, which already carries the version
        if self.parent_pkg is not None or not isinstance(self.current_source, MvnRepositorySource):
            return None
        return self.current_source.desc.version

    def get_version_root(self) -> str:
        suffix = self.get_version_suffix()
        root = self.get_installed_root()
        return os.path.join(root, suffix) if suffix else root

    def get_group_id(self) -> Optional[str]:
        if isinstance(self.current_source, MvnRepositorySource):
            return self.current_source.desc.group_id
        return self.pom_file.get_group_id() if self.pom_file is not None else None

    def update_current_file_names(self, src: Optional[RepositorySource]) -> None:
        if not isinstance(src, MvnRepositorySource):
            super().update_current_file_names(src)
            return
        if not self.install_file_types:
            self.install_file_types.append(None)
        self.file_names = []
        for file_type in self.install_file_types:
            if file_type is None:
                self.add_file_name(src.desc.get_jar_file_name())
            elif file_type == TEST_JAR_TYPE:
                self.add_file_name(src.desc.get_test_jar_file_name())

    def get_reuse_package_directory(self) -> bool:
        """A version directory holding only the POM (or its marker) is reused as is."""
        root = self.get_version_root()
        if not os.path.isdir(root):
            return False
        for name in os.listdir(root):
            if name.startswith(".") or name in ("pom.xml", "pom.xml.notFound"):
                continue
            return False
        return True

    def save_extra(self) -> dict:
        return {
            "install_file_types": list(self.install_file_types),
            "include_optional": self.include_optional,
            "include_provided": self.include_provided,
        }

    def restore_extra(self, extra: dict) -> None:
        if extra.get("install_file_types") is not None:
            self.install_file_types = list(extra["install_file_types"])

    def get_descriptor(self) -> Optional[MvnDescriptor]:
        if isinstance(self.current_source, MvnRepositorySource):
            return self.current_source.desc
        for src in self.sources:
            if isinstance(src, MvnRepositorySource):
                return src.desc
        return None

    def has_sub_package(self, dep_desc: MvnDescriptor) -> bool:
        """True when ``dep_desc`` names one of this package's (nested) modules."""
        for sub_pkg in self.sub_packages or []:
            if not isinstance(sub_pkg, MvnRepositoryPackage):
                continue
            sub_desc = sub_pkg.get_descriptor()
            if sub_desc is not None and sub_desc.matches(dep_desc):
                return True
            if sub_pkg.has_sub_package(dep_desc):
                return True
        return False

    def get_module_base_name(self) -> str:
        desc = self.get_descriptor()
        if desc is not None:
            name = desc.module_path if desc.module_path is not None else desc.artifact_id
            if name:
                return name
        return super().get_module_base_name()

    def same_url(self, url: str) -> bool:
        if self.get_package_url() == url:
            return True
        desc = self.get_descriptor()
        if desc is None:
            return False
        try:
            other_desc = MvnDescriptor.from_url(url)
        except ValueError:
            return False
        return desc.matches(other_desc)

    def override_version(self, desc: MvnDescriptor) -> bool:
        """Apply this package's dependency management to ``desc``."""
        if self.pom_file is not None:
            return self.pom_file.override_version(desc)
        return False

    def excludes_module(self, module_name: str) -> bool:
        if self.exclude_modules is not None and module_name in self.exclude_modules:
            self.mgr.info(f" Module: {module_name} excluded from the parent: {self.package_name}"
                          " package exclude_modules setting")
            return True
        if self.include_modules is not None:
            excluded = module_name not in self.include_modules
            self.mgr.info(f" Module: {module_name} {'not included' if excluded else 'included'}"
                          f" by the parent: {self.package_name} package include_modules setting")
            return excluded
        return False
