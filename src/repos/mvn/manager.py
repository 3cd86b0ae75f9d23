"""Maven backend for ``mvn://``, ``mvndeps://`` and ``git-mvn+`` locators.

``mvn://groupId/artifactId/version`` downloads the POM and the artifact;
``mvndeps://`` only reads the POM and installs the dependencies. A manager
created with an ``install_repository`` (``git-mvn``) delegates the raw fetch to
that manager and then reads the ``pom.xml`` of the checkout.
"""
from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

from constants import Constants, RepositoryTypes
from repos.collection import DependencyCollection
from repos.context import DependencyContext
from repos.managers.base import AbstractRepositoryManager
from repos.messages import MessageHandler
from repos.mvn.descriptor import MvnDescriptor
from repos.mvn.package import MvnRepositoryPackage
from repos.mvn.pom import (
    ALL_SCOPES,
    DEFAULT_SCOPES,
    PROVIDED_SCOPE,
    RUNTIME_SCOPES,
    TEST_SCOPES,
    POMFile,
    POMResolutionError,
)
from repos.mvn.repository import MvnRepository, is_version_range, pick_version
from repos.mvn.source import TEST_JAR_TYPE, MvnRepositorySource
from repos.package import RepositoryPackage
from repos.source import RepositorySource
from common.http_client import download_file

if TYPE_CHECKING:
    from repos.system import RepositorySystem

logger = logging.getLogger(__name__)

# Packagings whose artifact is a jar of classes
CLASS_PACKAGINGS = ("jar", "bundle", "orbit", "war", "pom")
SRC_PACKAGINGS = ("jar", "bundle", "orbit", "war")
MAVEN_SCHEMES = (RepositoryTypes.MAVEN.value, RepositoryTypes.MAVEN_DEPS.value)


class MvnRepositoryManager(AbstractRepositoryManager):
    """Resolves POMs and installs artifacts from Maven repositories.

    Args:
        system: Owning repository system.
        manager_name: ``mvn``, ``mvndeps`` or ``git-mvn``.
        package_root: Directory packages are installed under.
        handler: Message handler for progress output.
        info: Report progress at info level.
        install_repository: Manager doing the raw fetch (git for ``git-mvn``).
    """

    def __init__(self, system: "RepositorySystem", manager_name: str, package_root: str,
                 handler: Optional[MessageHandler] = None, info: bool = False,
                 install_repository: Optional[AbstractRepositoryManager] = None):
        super().__init__(system, manager_name, package_root, handler, info)
        self.install_repository = install_repository
        self.use_local_repository = Constants.USE_LOCAL_REPOSITORY
        self.local_repository_dir = Constants.MAVEN_LOCAL_REPOSITORY
        # Every Maven flavored manager shares the POM cache and repository list of "mvn"
        if manager_name == RepositoryTypes.MAVEN.value:
            self.pom_cache: Dict[str, Optional[POMFile]] = {}
            self.repositories: List[MvnRepository] = [MvnRepository(url) for url in Constants.MAVEN_REPOSITORIES]
        else:
            mvn_mgr = system.get_repository_manager(RepositoryTypes.MAVEN.value)
            self.pom_cache = mvn_mgr.pom_cache
            self.repositories = mvn_mgr.repositories

    def is_src_repository(self) -> bool:
        return self.install_repository is not None

    def get_child_manager(self) -> "MvnRepositoryManager":
        """Dependencies are always fetched with the plain ``mvn`` manager."""
        return self.system.get_repository_manager(RepositoryTypes.MAVEN.value)

    def add_repository(self, url: str) -> None:
        repo = MvnRepository(url)
        with self.system.lock:
            if repo not in self.repositories:
                self.info(f"Adding maven repository: {repo}")
                self.repositories.append(repo)

    def get_cached_pom(self, file_name: str) -> Tuple[bool, Optional[POMFile]]:
        """Returns (found, pom); a found None means the POM is known to be missing."""
        with self.system.lock:
            if file_name in self.pom_cache:
                return True, self.pom_cache[file_name]
        return False, None

    def put_cached_pom(self, file_name: str, pom: Optional[POMFile]) -> None:
        with self.system.lock:
            self.pom_cache[file_name] = pom

    def create_repository_source(self, url: str, unzip: bool = False,
                                 parent_pkg: Optional[RepositoryPackage] = None) -> RepositorySource:
        if url.split(":", 1)[0] not in MAVEN_SCHEMES:
            return super().create_repository_source(url, unzip, parent_pkg)
        desc = MvnDescriptor.from_url(url)
        # Only points at the package: adopts the exclusions of whichever path reached it
        desc.reference = True
        if is_version_range(desc.version):
            resolved = self.resolve_version(desc)
            if resolved is not None:
                desc.version = resolved
                url = desc.url
        return MvnRepositorySource(self, url, False, parent_pkg, desc)

    def restore_source(self, data: dict, pkg: RepositoryPackage) -> RepositorySource:
        if data.get("desc") is None:
            return super().restore_source(data, pkg)
        return MvnRepositorySource(self, data["url"], False, pkg.parent_pkg, MvnDescriptor.from_dict(data["desc"]))

    def new_package(self, pkg_name: str, file_name: Optional[str], src: RepositorySource,
                    parent_pkg: Optional[RepositoryPackage] = None) -> RepositoryPackage:
        return MvnRepositoryPackage(self, pkg_name, file_name, src, parent_pkg)

    def create_package(self, url: str) -> Optional[RepositoryPackage]:
        try:
            src = self.create_repository_source(url)
        except ValueError as exc:
            self.error(str(exc))
            return None
        if not isinstance(src, MvnRepositorySource):
            return super().create_package(url)
        # A requested package excludes nothing, which empties any merged exclusion list
        src.desc.reference = False
        src.desc.exclusions = []
        return self.new_package(src.desc.package_name, src.desc.get_jar_file_name(), src)

    def get_or_create_package(self, url: str, parent: Optional[RepositoryPackage],
                              install: bool) -> Optional[RepositoryPackage]:
        try:
            return super().get_or_create_package(url, parent, install)
        except ValueError as exc:
            self.error(str(exc))
            return None

    def resolve_version(self, desc: MvnDescriptor) -> Optional[str]:
        """Pick the highest version matching a range such as ``[1.0,2.0)``."""
        for repo in list(self.repositories):
            picked = pick_version(desc.version, repo.fetch_versions(desc.group_id, desc.use_artifact_id))
            if picked is not None:
                self.info(f"Resolved version range: {desc.version} for: {desc.package_name} to: {picked}")
                return picked
        return None

    def get_pom_file_name(self, pkg: RepositoryPackage) -> str:
        return os.path.join(pkg.get_version_root(), Constants.POM_XML_FILE)

    def get_pom_file(self, desc: MvnDescriptor, pkg: RepositoryPackage, ctx: Optional[DependencyContext],
                     required: bool, parent_pom: Optional[POMFile],
                     included_from_pom: Optional[POMFile]) -> Optional[POMFile]:
        """Return the (cached) POM of ``pkg``, downloading it if needed."""
        found, pom = self.get_cached_pom(self.get_pom_file_name(pkg))
        if found:
            return pom
        res = self.install_pom(desc, pkg, ctx, True, required, parent_pom, included_from_pom)
        if isinstance(res, str):
            if required:
                self.error(res)
            else:
                self.info(res)
            return None
        return res

    def install_pom(self, desc: MvnDescriptor, pkg: RepositoryPackage, ctx: Optional[DependencyContext],
                    check_exists: bool, required: bool, parent_pom: Optional[POMFile],
                    included_from_pom: Optional[POMFile]) -> Union[POMFile, str]:
        """Download (unless present) and parse the POM of ``pkg``.

        Returns:
            The parsed POMFile, or an error description.
        """
        pom_file_name = self.get_pom_file_name(pkg)
        not_found_file = pom_file_name + Constants.NOT_FOUND_SUFFIX
        if not self.system.reinstall_system and os.path.isfile(not_found_file):
            return f"POM file: {pom_file_name} did not exist when last checked."

        if not check_exists or not os.path.isfile(pom_file_name):
            if desc.version is None:
                return f"No version for maven package: {desc.package_name}"
            if not self.install_mvn_file(desc, pom_file_name, "", "pom", force=pkg.refetch):
                self.put_cached_pom(pom_file_name, None)
                os.makedirs(os.path.dirname(not_found_file), exist_ok=True)
                with open(not_found_file, "w", encoding="utf-8") as fh:
                    fh.write("does not exist")
                if os.path.isfile(pom_file_name):
                    os.remove(pom_file_name)
                return (f"Maven pom file: {desc.group_id}/{desc.use_artifact_id}/{desc.version}"
                        f" not found in repositories: {self.repositories}")
            if os.path.isfile(not_found_file):
                os.remove(not_found_file)

        try:
            return POMFile.read_pom(pom_file_name, self, ctx, pkg, required, parent_pom, included_from_pom)
        except POMResolutionError as exc:
            return f"Failed to parse maven POM: {pom_file_name}: {exc}"

    def install_mvn_file(self, desc: MvnDescriptor, res_file_name: str, remote_suffix: str,
                         remote_ext: str, use_classifier: bool = True, force: bool = False) -> bool:
        """Fetch one artifact file: already present, local ~/.m2 copy, then each remote repository.

        With ``force`` an existing file is fetched again.
        """
        if not (self.system.reinstall_system or force) and os.path.isfile(res_file_name):
            self.info(f"File already downloaded: {res_file_name}")
            return True
        classifier = desc.classifier if use_classifier and desc.classifier and remote_ext == "jar" else None
        artifact_id = desc.use_artifact_id

        if self.use_local_repository and desc.group_id:
            local_dir = os.path.join(self.local_repository_dir, *desc.group_id.split("."), artifact_id, desc.version)
            classifier_ext = f"-{classifier}" if classifier else ""
            local_file = os.path.join(local_dir, f"{artifact_id}-{desc.version}{classifier_ext}{remote_suffix}.{remote_ext}")
            if os.path.isfile(local_file):
                try:
                    os.makedirs(os.path.dirname(res_file_name), exist_ok=True)
                    shutil.copyfile(local_file, res_file_name)
                    return True
                except OSError as exc:
                    self.info(f"Failed to copy from local repository: {local_file} to: {res_file_name}: {exc}")

        for repo in list(self.repositories):
            remote_url = repo.get_file_url(desc.group_id, desc.artifact_id, desc.module_path, desc.version,
                                           classifier, remote_suffix, remote_ext)
            err = download_file(remote_url, res_file_name, context=self.manager_name)
            if err is None:
                return True
            logger.debug("Maven file not available: %s", err)
        if force and os.path.isfile(res_file_name):
            self.warning(f"Unable to fetch again, keeping: {res_file_name}")
            return True
        return False

    def do_install(self, src: RepositorySource, ctx: Optional[DependencyContext],
                   deps: DependencyCollection) -> Optional[str]:
        pkg = src.pkg
        parent_pom = pkg.parent_pkg.pom_file if isinstance(pkg.parent_pkg, MvnRepositoryPackage) else None
        desc: Optional[MvnDescriptor] = None

        if self.install_repository is not None:
            err = self.install_repository.do_install(src, ctx, deps)
            if err is not None:
                return err
            # A source checkout: its modules contribute src, not classes
            pkg.build_from_src = True
            pkg.defines_classes = False
            pkg.defines_src = True
            try:
                pom = POMFile.read_pom(self.get_pom_file_name(pkg), self, ctx, pkg, True, parent_pom, None)
            except POMResolutionError as exc:
                return f"Failed to read pom file for package: {pkg.package_name}: {exc}"
        else:
            if pkg.parent_pkg is not None and pkg.parent_pkg.mgr.is_src_repository():
                pkg.build_from_src = True
            desc = src.desc if isinstance(src, MvnRepositorySource) else MvnDescriptor.from_url(src.url)
            # Needed so the version root reflects this source
            pkg.set_current_source(src)
            pom_file_name = self.get_pom_file_name(pkg)
            pom = getattr(pkg, "pom_file", None)
            if pom is not None and pom.file_name != pom_file_name:
                # Read earlier for a different version of the package
                pom = None
            if pom is None:
                pom = self.get_cached_pom(pom_file_name)[1]
            if pom is None:
                res = self.install_pom(desc, pkg, ctx, pkg.parent_pkg is not None, True, parent_pom, None)
                if isinstance(res, str):
                    return res
                pom = res
            if isinstance(pkg, MvnRepositoryPackage):
                pkg.pom_file = pom
            self._init_package_kind(pkg, pom)

        err = self.collect_dependencies(src, ctx, deps)
        if err is not None:
            return err
        if desc is None:
            return None
        if desc.deps_only or desc.pom_only:
            pkg.defines_classes = False
            return None
        return self._install_artifacts(pkg, desc, pom)

    @staticmethod
    def _init_package_kind(pkg: RepositoryPackage, pom: POMFile) -> None:
        if not pkg.build_from_src:
            pkg.defines_classes = pom.packaging in CLASS_PACKAGINGS
            pkg.defines_src = False
        else:
            pkg.defines_src = pom.packaging in SRC_PACKAGINGS
            pkg.defines_classes = False

    def _install_artifacts(self, pkg: RepositoryPackage, desc: MvnDescriptor, pom: POMFile) -> Optional[str]:
        """Download the jar/war (and test jar) files the package asks for."""
        root = pkg.get_version_root()
        file_types = getattr(pkg, "install_file_types", None) or [None]
        for file_type in file_types:
            if file_type == TEST_JAR_TYPE:
                file_name = desc.get_test_jar_file_name()
                if not self.install_mvn_file(desc, os.path.join(root, file_name), "-tests", "jar", False,
                                             force=pkg.refetch):
                    return f"Maven test-jar file: {desc.url} not found in repositories: {self.repositories}"
                continue
            if file_type is not None:
                self.warning(f"Unable to install artifact type: {file_type} for: {desc}")
                continue

            optional_file = False
            if pom.packaging == "war":
                # A "classes" classifier refers to the jar built from the war's classes
                ext = "jar" if desc.classifier == "classes" else "war"
            elif pom.packaging in ("jar", "bundle", "orbit"):
                ext = "jar"
            elif pom.packaging == "pom":
                # Some pom packaged artifacts still ship a jar
                ext = "jar"
                optional_file = True
            else:
                self.warning(f"Unrecognized packaging type: {pom.packaging} for: {desc}")
                continue
            if not pkg.defines_classes:
                continue
            file_name = desc.get_jar_file_name(ext)
            if not self.install_mvn_file(desc, os.path.join(root, file_name), "", ext, force=pkg.refetch):
                if optional_file:
                    pkg.defines_classes = False
                else:
                    return f"Maven {ext} file: {desc.url} not found in repositories: {self.repositories}"
        pkg.refetch = False
        return None

    def collect_dependencies(self, src: RepositorySource, ctx: Optional[DependencyContext],
                             deps: DependencyCollection) -> Optional[str]:
        """Queue the dependencies of ``src.pkg``; they are installed by the next round."""
        pkg = src.pkg
        if pkg.dependencies is None:
            err = self.init_dependencies(src, ctx)
            if err is not None:
                return err
        dep_ctx = DependencyContext.child_of(ctx, pkg)
        for dep_pkg in pkg.dependencies or []:
            deps.add_dependency(dep_pkg, dep_ctx)
        return None

    def init_dependencies(self, src: RepositorySource, ctx: Optional[DependencyContext]) -> Optional[str]:
        """Build ``src.pkg.dependencies`` from its POM, applying exclusions."""
        pkg = src.pkg
        pom = getattr(pkg, "pom_file", None)
        if pom is None:
            return None
        try:
            dep_descs = pom.get_dependencies(self.get_scopes_to_build(pkg), True, pkg.parent_pkg is None, False, ctx)
        except POMResolutionError as exc:
            return f"Failed to resolve dependencies of: {pkg.package_name}: {exc}"

        indent = "  " * DependencyContext.val(ctx)
        self.info(f"{indent}Initializing dependencies for: {pkg.package_name}")
        exclusions = src.desc.exclusions if isinstance(src, MvnRepositorySource) else None
        dep_ctx = DependencyContext.child_of(ctx, pkg)
        child_mgr = self.get_child_manager()
        dep_pkgs: List[RepositoryPackage] = []
        for dep_desc in dep_descs:
            if dep_desc.version is None:
                self.warning(f"No version number found for maven dependency: {dep_desc.package_name}"
                             f" from package: {pkg.package_name}")
                continue
            if is_version_range(dep_desc.version):
                resolved = self.resolve_version(dep_desc)
                if resolved is None:
                    self.warning(f"No version in range: {dep_desc.version} for maven dependency:"
                                 f" {dep_desc.package_name} from package: {pkg.package_name}")
                    continue
                dep_desc.version = resolved
            if dep_desc.is_excluded_by(exclusions):
                continue
            if ctx is not None and self.excluded_context(ctx, dep_desc):
                continue
            if isinstance(pkg, MvnRepositoryPackage) and pkg.has_sub_package(dep_desc):
                continue
            dep_pkg = dep_desc.get_or_create_package(child_mgr, False, dep_ctx)
            if dep_pkg is not pkg and dep_pkg not in dep_pkgs:
                dep_pkgs.append(dep_pkg)
        pkg.dependencies = dep_pkgs
        self.info(f"{indent}Done initializing dependencies for: {pkg.package_name}")
        return None

    def excluded_context(self, ctx: Optional[DependencyContext], desc: MvnDescriptor) -> bool:
        """True when an edge on the path to this dependency excludes ``desc``."""
        while ctx is not None:
            if ctx.from_pkg is not None:
                from_pkg = self.system.get_repository_package(ctx.from_pkg)
                from_src = from_pkg.current_source if from_pkg is not None else None
                if isinstance(from_src, MvnRepositorySource) and desc.is_excluded_by(from_src.desc.exclusions):
                    return True
            ctx = ctx.parent
        return False

    @staticmethod
    def get_scopes_to_build(pkg: RepositoryPackage) -> Tuple[str, ...]:
        if pkg.include_tests:
            scopes = ALL_SCOPES if pkg.include_runtime else TEST_SCOPES
        else:
            scopes = RUNTIME_SCOPES if pkg.include_runtime else DEFAULT_SCOPES
        if isinstance(pkg, MvnRepositoryPackage) and pkg.include_provided:
            scopes = scopes + (PROVIDED_SCOPE,)
        return scopes

    def register_name_for_package(self, pkg: RepositoryPackage, name: str) -> RepositoryPackage:
        """Make a module found by path reachable under its ``groupId/artifactId`` name too."""
        if not isinstance(pkg, MvnRepositoryPackage):
            return pkg
        group_id = pkg.get_group_id()
        if group_id is None:
            return pkg
        new_name = f"{group_id}/{name}"
        if pkg.package_name == new_name:
            return pkg
        return self.system.register_alternate_name(pkg, new_name)

    def update(self, src: RepositorySource) -> Optional[str]:
        if self.install_repository is not None:
            return self.install_repository.update(src)
        return None
