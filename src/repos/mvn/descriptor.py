"""Maven coordinates with wildcard matching and exclusions."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from constants import Constants, RepositoryTypes

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

    from repos.context import DependencyContext
    from repos.mvn.manager import MvnRepositoryManager
    from repos.mvn.package import MvnRepositoryPackage
    from repos.mvn.pom import POMFile
    from repos.package import RepositoryPackage

WILDCARD = "*"


def str_matches(a: Optional[str], b: Optional[str]) -> bool:
    """Equal, or either side is the ``*`` wildcard; None only matches None."""
    if a == b:
        return True
    if a is None or b is None:
        return False
    return a == WILDCARD or b == WILDCARD


def _join(*parts: Optional[str]) -> str:
    return "/".join(p.strip("/") for p in parts if p)


@dataclass(eq=False)
class MvnDescriptor:  # pylint: disable=too-many-instance-attributes
    """groupId/artifactId/version plus the reference details of a dependency.

    Modules discovered through a parent's ``<modules>`` list are first known
    only by ``parent_path``/``module_path``; ``artifact_id`` is filled in once
    their POM has been read.
    """
    group_id: Optional[str] = None
    artifact_id: Optional[str] = None
    version: Optional[str] = None
    type: Optional[str] = None
    classifier: Optional[str] = None
    optional: bool = False
    scope: Optional[str] = None
    parent_path: Optional[str] = None
    module_path: Optional[str] = None
    # Only read the POM and its dependencies, not the artifact itself
    deps_only: bool = False
    pom_only: bool = False
    # A reference that did not declare its own exclusions
    reference: bool = False
    exclusions: Optional[List["MvnDescriptor"]] = field(default=None)

    @staticmethod
    def url_type(deps_only: bool) -> str:
        return RepositoryTypes.MAVEN_DEPS.value if deps_only else RepositoryTypes.MAVEN.value

    @classmethod
    def to_url(cls, group_id: Optional[str], parent_path: Optional[str], module_path: Optional[str],
               artifact_id: Optional[str], version: Optional[str], deps_only: bool) -> str:
        if artifact_id is None:
            artifact_id = _join(parent_path, module_path)
        return f"{cls.url_type(deps_only)}://{_join(group_id, artifact_id, version)}"

    @classmethod
    def from_url(cls, url: str) -> "MvnDescriptor":
        """Parse ``mvn://group/artifact/version``.

        The first segment is the group, the last the version; everything in
        between is the artifact (which may contain ``/`` for sub-modules).
        """
        scheme, sep, rest = url.partition("://")
        if not sep:
            rest, scheme = url, RepositoryTypes.MAVEN.value
        rest = rest.strip("/")
        parts = rest.split("/")
        if len(parts) < 3:
            raise ValueError(f"Maven url must be mvn://groupId/artifactId/version: {url}")
        return cls(group_id=parts[0], artifact_id="/".join(parts[1:-1]), version=parts[-1],
                   deps_only=scheme == RepositoryTypes.MAVEN_DEPS.value)

    @property
    def url(self) -> str:
        return self.to_url(self.group_id, self.parent_path, self.module_path, self.artifact_id,
                           self.version, self.deps_only)

    @property
    def package_name(self) -> str:
        return f"{self.group_id}/{self.use_artifact_id}"

    @property
    def use_artifact_id(self) -> Optional[str]:
        return self.artifact_id if self.artifact_id is not None else self.module_path

    def get_jar_file_name(self, ext: str = "jar") -> str:
        """``artifact-version[-classifier].ext``, relative to the version directory."""
        classifier = f"-{self.classifier}" if self.classifier else ""
        return f"{self.use_artifact_id}-{self.version}{classifier}.{ext}"

    def get_test_jar_file_name(self) -> str:
        return f"{self.use_artifact_id}-{self.version}-tests.jar"

    @classmethod
    def from_tag(cls, pom: "POMFile", tag: "Element", dependency: bool, append_inherited: bool,
                 required: bool) -> "MvnDescriptor":
        """Build a descriptor from a ``<dependency>``/``<parent>``/``<exclusion>`` element."""
        desc = cls(
            group_id=pom.get_tag_value(tag, "groupId", required),
            artifact_id=pom.get_tag_value(tag, "artifactId", required),
            version=pom.get_tag_value(tag, "version", required),
            type=pom.get_tag_value(tag, "type", required),
            classifier=pom.get_tag_value(tag, "classifier", required),
            scope=pom.get_tag_value(tag, "scope", False),
        )
        if append_inherited:
            pom.append_inherited_atts(desc)
        elif pom.parent_pom is not None:
            pom.parent_pom.append_inherited_atts(desc)
        if dependency:
            excl_root = tag.find("exclusions")
            if excl_root is not None:
                # Only explicitly listed values take part in matching
                desc.exclusions = [cls.from_tag(pom, excl, False, False, required)
                                   for excl in excl_root.findall("exclusion")]
            optional = pom.get_tag_value(tag, "optional", False)
            desc.optional = optional is not None and optional.lower() == "true"
        return desc

    def get_or_create_package(self, mgr: "MvnRepositoryManager", install: bool,
                              ctx: Optional["DependencyContext"],
                              parent_pkg: Optional["MvnRepositoryPackage"] = None) -> "RepositoryPackage":
        """Register (or find) the package for these coordinates.

        The POM is not read here; that happens when the package is installed.
        """
        # pylint: disable=import-outside-toplevel
        from repos.mvn.source import MvnRepositorySource

        dep_src = MvnRepositorySource(mgr, self.url, False, parent_pkg, self, ctx)
        pkg = mgr.system.add_package_source(mgr, self.package_name, self.get_jar_file_name(),
                                            dep_src, install, parent_pkg)
        if pkg.parent_pkg is None and parent_pkg is not None:
            pkg.set_parent_pkg(parent_pkg)
        return pkg

    def same_artifact(self, other: "MvnDescriptor") -> bool:
        if str_matches(other.artifact_id, self.artifact_id):
            return True
        return (other.module_path is not None and self.module_path is not None
                and str_matches(other.module_path, self.module_path))

    def matches(self, other: "MvnDescriptor", check_version: bool = True) -> bool:
        """Whether ``other`` is covered by this descriptor.

        group and artifact must match. A missing version on this side matches
        any version. Type is strict, except that no type only matches ``jar``.
        A missing classifier on either side matches.
        """
        return (str_matches(other.group_id, self.group_id) and self.same_artifact(other)
                and (not check_version or self.version is None or str_matches(self.version, other.version))
                and (str_matches(self.type, other.type)
                     or (self.type is None and other.type == Constants.DEFAULT_TYPE))
                and (self.classifier is None or other.classifier is None
                     or str_matches(self.classifier, other.classifier)))

    def is_excluded_by(self, exclusions: Optional[List["MvnDescriptor"]]) -> bool:
        return any(excl.matches(self, check_version=False) for excl in exclusions or [])

    def merge_from(self, other: "MvnDescriptor") -> None:
        if self.version is None and other.version is not None:
            self.version = other.version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MvnDescriptor):
            return NotImplemented
        return (self.group_id == other.group_id and self.same_artifact(other)
                and self.version == other.version and self.classifier == other.classifier
                and self.type == other.type)

    def __hash__(self) -> int:
        return hash((self.group_id, self.use_artifact_id))

    def __str__(self) -> str:
        return self.url

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "group_id": self.group_id,
            "artifact_id": self.artifact_id,
            "version": self.version,
            "type": self.type,
            "classifier": self.classifier,
            "optional": self.optional,
            "scope": self.scope,
            "parent_path": self.parent_path,
            "module_path": self.module_path,
            "deps_only": self.deps_only,
            "pom_only": self.pom_only,
            "reference": self.reference,
        }
        if self.exclusions is not None:
            data["exclusions"] = [e.to_dict() for e in self.exclusions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MvnDescriptor":
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != "exclusions"}
        desc = cls(**fields)
        if data.get("exclusions") is not None:
            desc.exclusions = [cls.from_dict(e) for e in data["exclusions"]]
        return desc
