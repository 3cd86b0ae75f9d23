"""Maven source: a locator plus the descriptor (and exclusions) it was reached with."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from repos.context import DependencyContext
from repos.mvn.descriptor import MvnDescriptor
from repos.source import RepositorySource

if TYPE_CHECKING:
    from repos.managers.base import AbstractRepositoryManager
    from repos.package import RepositoryPackage

TEST_JAR_TYPE = "test-jar"


class MvnRepositorySource(RepositorySource):
    """Source for ``mvn://`` and ``mvndeps://`` locators."""

    def __init__(self, manager: "AbstractRepositoryManager", url: str, unzip: bool,
                 parent_pkg: Optional["RepositoryPackage"], desc: MvnDescriptor,
                 ctx: Optional[DependencyContext] = None):
        super().__init__(manager, url, unzip, parent_pkg, ctx)
        self.desc = desc

    def get_class_path_file_names(self) -> List[str]:
        # By maven convention the version is part of the file name
        if self.pkg is not None:
            return self.pkg.file_names
        if self.desc.type == TEST_JAR_TYPE:
            return [self.desc.get_test_jar_file_name()]
        return [self.desc.get_jar_file_name()]

    def merge_source(self, other: RepositorySource) -> bool:
        changed = super().merge_source(other)
        if isinstance(other, MvnRepositorySource):
            desc, other_desc = self.desc, other.desc
            if desc.parent_path is None and other_desc.parent_path is not None:
                desc.parent_path = other_desc.parent_path
            if desc.module_path is None and other_desc.module_path is not None:
                desc.module_path = other_desc.module_path
            if desc.artifact_id is None and other_desc.artifact_id is not None:
                desc.artifact_id = other_desc.artifact_id
        return changed

    def merge_exclusions(self, other: RepositorySource) -> bool:
        """Keep only the exclusions present on both references.

        If one module excludes commons-logging from spring-core and another
        module depends on spring-core without that exclusion, commons-logging
        must still be installed.

        Returns:
            True when the exclusion list shrank, so dependencies need recomputing.
        """
        if not isinstance(other, MvnRepositorySource):
            return False
        desc, other_desc = self.desc, other.desc
        if not desc.reference and desc.exclusions is None:
            return False

        if desc.reference:
            # A bare reference declared nothing: adopt the other side's list as is
            if not other_desc.reference:
                desc.exclusions = other_desc.exclusions
                desc.reference = False
            return False

        if other_desc.reference:
            return False
        if other_desc.exclusions is None:
            desc.exclusions = None
            return True

        kept = [excl for excl in desc.exclusions
                if any(other_excl.matches(excl, check_version=False) for other_excl in other_desc.exclusions)]
        changed = len(kept) != len(desc.exclusions)
        desc.exclusions = kept
        return changed

    def get_default_package_name(self) -> Optional[str]:
        return self.desc.package_name

    def get_default_file_name(self) -> Optional[str]:
        return self.desc.get_jar_file_name()

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["desc"] = self.desc.to_dict()
        return data
