"""Parsing and data model of Maven POM files.

A POMFile wraps the parsed ``<project>`` element and resolves what Maven
inherits: properties and dependency management from the parent POM,
dependency management from ``<scope>import</scope>`` POMs and the dependency
list of modules for aggregate source builds. Property lookups are resolved
lazily so that mutually referencing documents terminate.
"""
from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Tuple

from constants import Constants
from repos.context import DependencyContext
from repos.mvn.descriptor import MvnDescriptor
from repos.mvn.package import MvnRepositoryPackage

if TYPE_CHECKING:
    from repos.mvn.manager import MvnRepositoryManager
    from repos.package import RepositoryPackage

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = (Constants.DEFAULT_SCOPE,)
TEST_SCOPES = (Constants.DEFAULT_SCOPE, "test")
ALL_SCOPES = (Constants.DEFAULT_SCOPE, "test", "runtime")
RUNTIME_SCOPES = (Constants.DEFAULT_SCOPE, "runtime")
PROVIDED_SCOPE = "provided"
IMPORT_SCOPE = "import"

# Variables that name a tag of the project rather than a <properties> entry
_TAG_VARIABLE_PREFIXES = ("project", "pom")
_TAG_VARIABLE_NAMES = ("version", "artifactId", "groupId")
_BASEDIR_NAMES = ("baseDir", "basedir", "project.basedir", "project.baseDir")


class POMResolutionError(ValueError):
    """A POM could not be read or one of its required values could not be resolved."""


def _strip_ns(elem: ET.Element) -> None:
    """Drop the ``{namespace}`` prefix from every tag in place."""
    for node in elem.iter():
        if isinstance(node.tag, str) and node.tag.startswith("{"):
            node.tag = node.tag.split("}", 1)[1]


def _child_text(elem: Optional[ET.Element], name: str) -> Optional[str]:
    if elem is None:
        return None
    child = elem.find(name)
    if child is None or child.text is None:
        return None
    return child.text.strip()


class POMFile:  # pylint: disable=too-many-instance-attributes
    """One pom.xml and the documents it inherits from."""

    def __init__(self, file_name: str, mgr: "MvnRepositoryManager", ctx: Optional[DependencyContext],
                 pom_pkg: Optional["RepositoryPackage"], required: bool = True,
                 included_from_pom: Optional["POMFile"] = None):
        self.file_name = file_name
        self.mgr = mgr
        self.dep_ctx = ctx
        self.pom_pkg = pom_pkg
        self.required = required
        # The chain of POMs that pulled this one in, used for variable resolution
        self.included_from_pom = included_from_pom
        self.parent_pom: Optional[POMFile] = None
        self.module_poms: Optional[List[POMFile]] = None
        self.imported_poms: Optional[List[POMFile]] = None
        self.properties: Dict[str, str] = {}
        self.dependency_management: Optional[List[MvnDescriptor]] = None
        self.proj_element: Optional[ET.Element] = None
        self.packaging: Optional[str] = None
        self.artifact_id: Optional[str] = None
        self._property_cache: Dict[Tuple[str, bool, bool], str] = {}
        if isinstance(pom_pkg, MvnRepositoryPackage):
            pom_pkg.pom_file = self

    def __str__(self) -> str:
        return self.file_name

    def __repr__(self) -> str:
        return f"POMFile({self.file_name!r})"

    @classmethod
    def read_pom(cls, file_name: str, mgr: "MvnRepositoryManager", ctx: Optional[DependencyContext],
                 pom_pkg: Optional["RepositoryPackage"], required: bool, parent_pom: Optional["POMFile"],
                 included_from_pom: Optional["POMFile"]) -> "POMFile":
        """Parse ``file_name`` and register it in the manager's POM cache.

        Raises:
            POMResolutionError: The file is not a readable POM.
        """
        pom = cls(file_name, mgr, ctx, pom_pkg, required, included_from_pom)
        pom.parent_pom = parent_pom
        # Cached before parsing: parsing may reach this same file again through a parent or import
        mgr.put_cached_pom(file_name, pom)
        try:
            pom.parse()
        except POMResolutionError:
            mgr.put_cached_pom(file_name, None)
            raise
        return pom

    def parse(self) -> None:
        try:
            root = ET.parse(self.file_name).getroot()
        except (ET.ParseError, OSError) as exc:
            raise POMResolutionError(f"Failed to read POM file: {self.file_name}: {exc}") from exc
        _strip_ns(root)
        if root.tag != "project":
            raise POMResolutionError(f"POM file: {self.file_name} contains tag: <{root.tag}> expected <project>")
        self.proj_element = root

        self.packaging = _child_text(root, "packaging") or Constants.DEFAULT_TYPE
        self._init_properties()
        # Modules are created with their parent already set
        if self.parent_pom is None:
            self._init_parent()
        self._init_canonical_name()
        if self._use_repositories():
            self._init_repositories()
        if self.required:
            self.init_modules()
        self.init_dependency_management()

    def _init_properties(self) -> None:
        prop_root = self.proj_element.find("properties")
        if prop_root is None:
            return
        for prop in prop_root:
            if isinstance(prop.tag, str):
                self.properties[prop.tag] = (prop.text or "").strip()

    def _init_parent(self) -> None:
        parent = self.proj_element.find("parent")
        if parent is None:
            return
        parent_desc = MvnDescriptor.from_tag(self, parent, False, False, True)
        # Only the POM of a parent is needed, not its jar or dependencies
        parent_desc.pom_only = True
        parent_ctx = DependencyContext.child_of(self.dep_ctx, self.pom_pkg) if self.pom_pkg is not None else self.dep_ctx
        child_mgr = self.mgr.get_child_manager()
        parent_pkg = parent_desc.get_or_create_package(child_mgr, False, parent_ctx)
        self.parent_pom = child_mgr.get_pom_file(parent_desc, parent_pkg, parent_ctx, False, None, self)

    def _init_canonical_name(self) -> None:
        """Record the real artifactId of a package first known by its module path."""
        desc = self.get_descriptor()
        if desc is not None and desc.group_id is None:
            desc.group_id = self.get_group_id()
        self.artifact_id = _child_text(self.proj_element, "artifactId")
        if not self.artifact_id:
            return
        if self.pom_pkg is not None:
            self.mgr.register_name_for_package(self.pom_pkg, self.artifact_id)
        if desc is not None and desc.artifact_id != self.artifact_id:
            desc.artifact_id = self.artifact_id

    def _use_repositories(self) -> bool:
        return isinstance(self.pom_pkg, MvnRepositoryPackage) and self.pom_pkg.use_repositories

    def _init_repositories(self) -> None:
        repos = self.proj_element.findall("repositories")
        if not repos:
            return
        if len(repos) > 1:
            self.mgr.error(f"Multiple repositories tags in: {self} - only using the first one")
        for repo_tag in repos[0].findall("repository"):
            repo_url = _child_text(repo_tag, "url")
            if not repo_url:
                self.mgr.error(f"repository in POM: {self} - missing url")
                continue
            self.mgr.add_repository(repo_url)

    def get_descriptor(self) -> Optional[MvnDescriptor]:
        if isinstance(self.pom_pkg, MvnRepositoryPackage):
            return self.pom_pkg.get_descriptor()
        return None

    def init_modules(self) -> None:
        """Create a package (and read the POM) for each ``<module>``.

        Modules of a source checkout are nested inside the parent package;
        otherwise they are independent packages fetched from the repository.
        """
        if self.module_poms is not None or self.proj_element is None:
            return
        self.module_poms = []
        modules_root = self.proj_element.find("modules")
        if modules_root is None:
            return
        parent_name = self.get_property("project.artifactId")
        pom_pkg = self.pom_pkg
        if isinstance(pom_pkg, MvnRepositoryPackage):
            base_name = pom_pkg.get_module_base_name()
            if base_name:
                parent_name = base_name
        is_src = pom_pkg is not None and pom_pkg.build_from_src
        group_id = self.get_property("project.groupId")
        version = self.get_property("project.version")
        child_mgr = self.mgr.get_child_manager()

        for module in modules_root.findall("module"):
            module_name = (module.text or "").strip().rstrip("/")
            while module_name.startswith("../"):
                module_name = module_name[3:]
            if not module_name:
                continue
            if isinstance(pom_pkg, MvnRepositoryPackage) and pom_pkg.excludes_module(module_name):
                continue
            # Known only by path until its POM is read
            desc = MvnDescriptor(group_id=group_id, parent_path=parent_name, module_path=module_name,
                                 version=version, reference=True)
            mod_parent = pom_pkg if is_src and isinstance(pom_pkg, MvnRepositoryPackage) else None
            pkg = desc.get_or_create_package(child_mgr, False, self.dep_ctx, mod_parent)
            mod_pom = child_mgr.get_pom_file(desc, pkg, self.dep_ctx, is_src,
                                             self if is_src else None, None)
            if mod_pom is not None:
                self.module_poms.append(mod_pom)

        if pom_pkg is not None:
            for mod_pom in self.module_poms:
                if mod_pom.pom_pkg is not None:
                    pom_pkg.add_sub_package(mod_pom.pom_pkg)

    def get_property(self, name: str, up: bool = True, down: bool = True,
                     visited: Optional[Set[Tuple[int, str]]] = None) -> Optional[str]:
        """Resolve ``name`` as used in ``${name}``.

        Lookup order: this POM's ``<properties>``, then project tags
        (``project.version``, ``pom.groupId``, ``baseDir``...), then the parent
        chain (``up``), then the chain of POMs this one was included from
        (``down``). ``visited`` stops lookups that loop through the same POM.
        """
        key = (name, up, down)
        cached = self._property_cache.get(key)
        if cached is not None:
            return cached
        top_level = visited is None
        if visited is None:
            visited = set()
        marker = (id(self), name)
        if marker in visited:
            return None
        visited.add(marker)

        val = self.properties.get(name)
        if val is None:
            val = self._get_tag_variable(name)
        if val is None and up and self.parent_pom is not None:
            val = self.parent_pom.get_property(name, True, False, visited)
        if val is None and down and self.included_from_pom is not None:
            val = self.included_from_pom.get_property(name, False, True, visited)

        # Only complete lookups are memoized; nested ones may have been cut short by ``visited``
        if val is not None and top_level:
            self._property_cache[key] = val
        return val

    def _get_tag_variable(self, name: str) -> Optional[str]:
        if self.proj_element is None:
            return None
        if name in _BASEDIR_NAMES:
            return os.path.dirname(self.file_name)
        path = name.split(".")
        if len(path) == 1:
            return _child_text(self.proj_element, name) if name in _TAG_VARIABLE_NAMES else None
        if path[0] not in _TAG_VARIABLE_PREFIXES:
            return None
        if path[0] == "pom" and path[1:] == ["groupId"]:
            return self.get_group_id()
        elem: Optional[ET.Element] = self.proj_element
        for part in path[1:-1]:
            elem = elem.find(part)
            if elem is None:
                return None
        return _child_text(elem, path[-1])

    def replace_variables(self, text: str, required: bool) -> str:
        """Substitute every ``${name}`` in ``text`` once.

        Raises:
            POMResolutionError: ``required`` is set and a variable has no value.
        """
        res = []
        pos = 0
        while True:
            ix = text.find("${", pos)
            if ix == -1:
                res.append(text[pos:])
                return "".join(res)
            end_ix = text.find("}", ix)
            if end_ix == -1:
                self.mgr.error(f"Misformed variable name: {text} missing close }} in: {self}")
                res.append(text[pos:])
                return "".join(res)
            var_name = text[ix + 2:end_ix]
            value = self.get_property(var_name)
            if value is None:
                if required:
                    raise POMResolutionError(f"No value for POM variable: {var_name} in: {self}")
                value = text[ix:end_ix + 1]
            res.append(text[pos:ix])
            res.append(value)
            pos = end_ix + 1

    def get_tag_value(self, tag: ET.Element, name: str, required: bool) -> Optional[str]:
        """Text of ``tag``'s child ``name`` with variables expanded."""
        value = _child_text(tag, name)
        if value is None:
            return None
        seen = {value}
        while "${" in value:
            new_value = self.replace_variables(value, required)
            if new_value == value:
                break
            if new_value in seen:
                raise POMResolutionError(f"Circular variable reference in: {name} = {value} in: {self}")
            seen.add(new_value)
            value = new_value
        return value

    def get_dependencies(self, scopes: Sequence[str], add_children: bool, add_parent: bool,
                         parent_defines_src: bool, ctx: Optional[DependencyContext]) -> List[MvnDescriptor]:
        """Dependencies of this POM whose scope is in ``scopes``.

        Args:
            scopes: Scopes to include (``compile``, ``test``, ``runtime``, ``provided``).
            add_children: Merge in the dependencies of modules for source builds.
            add_parent: Merge in the dependencies declared by the parent POM.
            parent_defines_src: The enclosing package is a source build.
            ctx: Context of the package; its including packages may override versions.
        """
        res: List[MvnDescriptor] = []
        if self.proj_element is None:
            return res
        deps_roots = self.proj_element.findall("dependencies")
        if len(deps_roots) > 1:
            self.mgr.error(f"Multiple tags with dependencies in: {self} - should be only one")
        including_pkgs = ctx.get_including_packages(self.mgr.system) if ctx is not None else []
        include_optional = isinstance(self.pom_pkg, MvnRepositoryPackage) and self.pom_pkg.include_optional
        if deps_roots:
            for dep_tag in deps_roots[0].findall("dependency"):
                dep_scope = _child_text(dep_tag, "scope") or Constants.DEFAULT_SCOPE
                if dep_scope not in scopes:
                    continue
                desc = MvnDescriptor.from_tag(self, dep_tag, True, True, True)
                # Root first: the nearest package to the root decides the version
                for inc_pkg in including_pkgs:
                    if isinstance(inc_pkg, MvnRepositoryPackage) and inc_pkg.override_version(desc):
                        break
                if not desc.optional or include_optional:
                    res.append(desc)

        if self.parent_pom is not None and add_parent:
            self._add_pom_ref_dependencies(self.parent_pom, res, scopes, False, True, False, ctx)
        pom_pkg = self.pom_pkg
        if (add_children and isinstance(pom_pkg, MvnRepositoryPackage)
                and (pom_pkg.defines_src or parent_defines_src)):
            self.init_modules()
            for module_pom in self.module_poms or []:
                self._add_pom_ref_dependencies(module_pom, res, scopes, True, False, True, ctx)
        return res

    @staticmethod
    def _add_pom_ref_dependencies(ref_pom: "POMFile", res: List[MvnDescriptor], scopes: Sequence[str],
                                  check_children: bool, check_parent: bool, parent_defines_src: bool,
                                  ctx: Optional[DependencyContext]) -> None:
        for ref_desc in ref_pom.get_dependencies(scopes, check_children, check_parent, parent_defines_src, ctx):
            existing = next((d for d in res if d.matches(ref_desc)), None)
            if existing is not None:
                existing.merge_from(ref_desc)
            else:
                res.append(ref_desc)

    def init_dependency_management(self) -> None:
        if self.dependency_management is not None or self.proj_element is None:
            return
        self.dependency_management = []
        deps_root = self.proj_element.find("dependencyManagement/dependencies")
        if deps_root is None:
            return
        for dep in deps_root.findall("dependency"):
            if _child_text(dep, "scope") == IMPORT_SCOPE:
                self._import_dependency_management(dep)
            else:
                self.dependency_management.append(MvnDescriptor.from_tag(self, dep, True, False, False))

    def _import_dependency_management(self, dep: ET.Element) -> None:
        """Merge the dependencyManagement of a ``<scope>import</scope>`` POM."""
        import_desc = MvnDescriptor.from_tag(self, dep, False, False, False)
        import_desc.pom_only = True
        import_ctx = DependencyContext.child_of(self.dep_ctx, self.pom_pkg) if self.pom_pkg is not None else self.dep_ctx
        child_mgr = self.mgr.get_child_manager()
        import_pkg = import_desc.get_or_create_package(child_mgr, False, import_ctx)
        import_pom = child_mgr.get_pom_file(import_desc, import_pkg, import_ctx, True, None, None)
        if import_pom is None:
            self.mgr.warning(f"Failed to read POM file: {import_desc} for scope=import in: {self}")
            return
        if self.imported_poms is None:
            self.imported_poms = []
        if all(p.file_name != import_pom.file_name for p in self.imported_poms):
            import_pom.init_dependency_management()
            self.imported_poms.append(import_pom)

    def append_inherited_atts(self, desc: MvnDescriptor, visited: Optional[Set[int]] = None) -> None:
        """Back-fill a missing version or classifier from dependency management."""
        if visited is None:
            visited = set()
        if id(self) in visited:
            return
        visited.add(id(self))
        if desc.version is None or desc.classifier is None:
            self.init_dependency_management()
            for dep in self.dependency_management or []:
                if not desc.matches(dep):
                    continue
                if desc.version is None and dep.version is not None:
                    desc.version = dep.version
                    if "${" in desc.version:
                        self.mgr.error(f"Reference to dependencyManagement entry with unresolved version: {self}: {desc}")
                if desc.classifier is None and dep.classifier is not None:
                    desc.classifier = dep.classifier
            if self.parent_pom is not None:
                self.parent_pom.append_inherited_atts(desc, visited)
            for import_pom in self.imported_poms or []:
                import_pom.append_inherited_atts(desc, visited)
        # Modules already read share their management; unread ones are not fetched for this
        for module_pom in self.module_poms or []:
            module_pom.append_inherited_atts(desc, visited)

    def get_group_id(self) -> Optional[str]:
        pom: Optional[POMFile] = self
        seen: Set[int] = set()
        while pom is not None and id(pom) not in seen:
            seen.add(id(pom))
            group_id = _child_text(pom.proj_element, "groupId")
            if group_id:
                return group_id
            pom = pom.parent_pom
        return None

    def override_version(self, desc: MvnDescriptor, visited: Optional[Set[int]] = None) -> bool:
        """Force ``desc`` to the version managed by this POM or its parents.

        Returns:
            True when a managed entry applied.
        """
        if visited is None:
            visited = set()
        if id(self) in visited:
            return False
        visited.add(id(self))
        self.init_dependency_management()
        for managed in self.dependency_management or []:
            if managed.version is not None and managed.matches(desc, check_version=False):
                if desc.version != managed.version:
                    desc.version = managed.version
                return True
        if self.parent_pom is not None:
            return self.parent_pom.override_version(desc, visited)
        return False
