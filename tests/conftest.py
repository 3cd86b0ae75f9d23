"""Shared fixtures: an offline Maven setup backed by a local repository in tmp_path."""

import os
from unittest.mock import patch

import pytest

from common import http_client
from constants import Constants
from repos.system import RepositorySystem

POM_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<project xmlns="http://maven.apache.org/POM/4.0.0">\n'
    "  <modelVersion>4.0.0</modelVersion>\n"
)


def dep(group, artifact, version=None, scope=None, exclusions=(), optional=False, type_=None):
    """XML for one <dependency> element."""
    parts = [f"<groupId>{group}</groupId>", f"<artifactId>{artifact}</artifactId>"]
    if version is not None:
        parts.append(f"<version>{version}</version>")
    if type_ is not None:
        parts.append(f"<type>{type_}</type>")
    if scope is not None:
        parts.append(f"<scope>{scope}</scope>")
    if optional:
        parts.append("<optional>true</optional>")
    if exclusions:
        excl = "".join(
            f"<exclusion><groupId>{g}</groupId><artifactId>{a}</artifactId></exclusion>" for g, a in exclusions
        )
        parts.append(f"<exclusions>{excl}</exclusions>")
    return "<dependency>" + "".join(parts) + "</dependency>"


def pom(group, artifact, version, deps=(), parent=None, properties=None, packaging=None,
        managed=(), extra=""):
    """Build a pom.xml document."""
    body = [POM_HEADER]
    if parent is not None:
        pg, pa, pv = parent
        body.append(f"  <parent><groupId>{pg}</groupId><artifactId>{pa}</artifactId>"
                    f"<version>{pv}</version></parent>\n")
    if group is not None:
        body.append(f"  <groupId>{group}</groupId>\n")
    body.append(f"  <artifactId>{artifact}</artifactId>\n")
    if version is not None:
        body.append(f"  <version>{version}</version>\n")
    if packaging is not None:
        body.append(f"  <packaging>{packaging}</packaging>\n")
    if properties:
        props = "".join(f"<{k}>{v}</{k}>" for k, v in properties.items())
        body.append(f"  <properties>{props}</properties>\n")
    if managed:
        body.append(f"  <dependencyManagement><dependencies>{''.join(managed)}</dependencies></dependencyManagement>\n")
    if deps:
        body.append(f"  <dependencies>{''.join(deps)}</dependencies>\n")
    body.append(extra)
    body.append("</project>\n")
    return "".join(body)


class LocalMavenRepo:
    """Writes artifacts in the ~/.m2/repository layout."""

    def __init__(self, root):
        self.root = root

    def artifact_dir(self, group, artifact, version):
        return os.path.join(self.root, *group.split("."), artifact, version)

    def add(self, group, artifact, version, deps=(), jar=True, **kwargs):
        """Add a POM (and by default a jar) for group:artifact:version."""
        art_dir = self.artifact_dir(group, artifact, version)
        os.makedirs(art_dir, exist_ok=True)
        with open(os.path.join(art_dir, f"{artifact}-{version}.pom"), "w", encoding="utf-8") as fh:
            fh.write(pom(group, artifact, version, deps=deps, **kwargs))
        if jar:
            with open(os.path.join(art_dir, f"{artifact}-{version}.jar"), "wb") as fh:
                fh.write(b"PK\x03\x04 fake jar")
        return art_dir


@pytest.fixture
def m2(tmp_path, monkeypatch):
    """Local maven repository; remote repositories are unreachable."""
    root = tmp_path / "m2"
    root.mkdir()
    monkeypatch.setattr(Constants, "MAVEN_LOCAL_REPOSITORY", str(root))
    monkeypatch.setattr(Constants, "USE_LOCAL_REPOSITORY", True)
    monkeypatch.setattr(Constants, "MAVEN_REPOSITORIES", ["https://repo.invalid/maven2/"])
    monkeypatch.setattr(Constants, "PACKAGE_INDEX_ROOT", None)
    return LocalMavenRepo(str(root))


@pytest.fixture(autouse=True)
def _clear_http_cache():
    http_client.clear_cache()
    yield
    http_client.clear_cache()


@pytest.fixture
def offline():
    """Remote maven downloads always report 404."""
    with patch("repos.mvn.manager.download_file", return_value="HTTP 404 downloading") as mock_download:
        yield mock_download


@pytest.fixture
def pkg_root(tmp_path):
    return str(tmp_path / "packages")


@pytest.fixture
def system(pkg_root, m2, offline):  # pylint: disable=unused-argument,redefined-outer-name
    return RepositorySystem(package_root=pkg_root)


def jar_path(pkg_root, group, artifact, version):
    """Class path entry of an installed maven jar."""
    return os.path.join(pkg_root, group, artifact, version, f"{artifact}-{version}.jar")
