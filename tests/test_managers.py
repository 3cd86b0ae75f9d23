"""Tests for the git, scp, url and git-mvn backends with subprocess and HTTP mocked."""

import os
import subprocess
import zipfile
from unittest.mock import patch

import pytest

from conftest import dep, jar_path, pom
from repos.managers.git import parse_git_url
from repos.managers.scp import scp_remote
from repos.managers.url import remote_url, unzip_into
from repos.system import RepositorySystem


def _ok(args, **_kwargs):
    return subprocess.CompletedProcess(args, 0, "", "")


class TestGitManager:
    @pytest.mark.parametrize("url,expected", [
        ("git+https://host/repo.git#v1", ("https://host/repo.git", "v1")),
        ("git+ssh://git@host/repo.git", ("ssh://git@host/repo.git", None)),
        ("git://host/repo", ("git://host/repo", None)),
        ("git-mvn+https://host/proj.git#main", ("https://host/proj.git", "main")),
    ])
    def test_parse_git_url(self, url, expected):
        assert parse_git_url(url) == expected

    def test_clone_with_ref(self, tmp_path):
        root = str(tmp_path / "packages")
        system = RepositorySystem(package_root=root)
        with patch("repos.managers.base.subprocess.run", side_effect=_ok) as run:
            entries, err = system.install("git+https://host/repo.git#v1")

        assert err is None
        args = run.call_args_list[0].args[0]
        assert args == ["git", "clone", "--branch", "v1", "https://host/repo.git", os.path.join(root, "repo")]
        assert entries == [os.path.join(root, "repo", "repo")]

    def test_existing_checkout_is_fetched(self, tmp_path):
        root = str(tmp_path / "packages")
        os.makedirs(os.path.join(root, "repo", ".git"))
        system = RepositorySystem(package_root=root)
        with patch("repos.managers.base.subprocess.run", side_effect=_ok) as run:
            _, err = system.install("git+https://host/repo.git")

        assert err is None
        commands = [call.args[0][:2] for call in run.call_args_list]
        assert commands == [["git", "fetch"], ["git", "pull"]]

    def test_clone_failure_reports_stderr(self, tmp_path):
        system = RepositorySystem(package_root=str(tmp_path / "packages"))
        failed = subprocess.CompletedProcess([], 128, "", "fatal: repository not found")
        with patch("repos.managers.base.subprocess.run", return_value=failed):
            _, err = system.install("git+https://host/missing.git")

        assert "repository not found" in err
        assert not system.get_repository_package("missing").installed

    def test_missing_git_executable(self, tmp_path):
        system = RepositorySystem(package_root=str(tmp_path / "packages"))
        with patch("repos.managers.base.subprocess.run", side_effect=FileNotFoundError("git")):
            _, err = system.install("git://host/repo")
        assert "Command not found: git" in err

    def test_update_pulls_installed_checkout(self, tmp_path):
        root = str(tmp_path / "packages")
        system = RepositorySystem(package_root=root, update=True)
        with patch("repos.managers.base.subprocess.run", side_effect=_ok):
            pkg = system.add_package("git+https://host/repo.git")
            system.install_package(pkg, None)
        os.makedirs(os.path.join(root, "repo", ".git"))

        with patch("repos.managers.base.subprocess.run", side_effect=_ok) as run:
            assert system.install_package(pkg, None) is None
        assert run.call_args_list[-1].args[0] == ["git", "pull", "--ff-only"]


class TestScpManager:
    def test_scp_remote(self):
        assert scp_remote("scp://user@host:/srv/lib.jar") == "user@host:/srv/lib.jar"

    def test_copies_with_scp(self, tmp_path):
        root = str(tmp_path / "packages")
        system = RepositorySystem(package_root=root)
        with patch("repos.managers.base.subprocess.run", side_effect=_ok) as run:
            _, err = system.install("scp://user@host:/srv/lib.jar")

        assert err is None
        assert run.call_args.args[0] == ["scp", "-r", "-q", "user@host:/srv/lib.jar", os.path.join(root, "lib")]


class TestUrlManager:
    def test_remote_url(self):
        assert remote_url("url:https://host/a/lib.zip#unzip") == "https://host/a/lib.zip"

    def test_downloads_file(self, tmp_path):
        root = str(tmp_path / "packages")
        system = RepositorySystem(package_root=root)

        def fake_download(url, dest, *, context):
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(dest, "wb") as fh:
                fh.write(b"data")

        with patch("repos.managers.url.download_file", side_effect=fake_download) as download, \
                patch("repos.managers.url.last_modified_ms", return_value=-1):
            entries, err = system.install("url:https://host/libs/lib.jar")

        assert err is None
        assert download.call_args.args[0] == "https://host/libs/lib.jar"
        assert entries == [os.path.join(root, "lib", "lib.jar")]
        assert os.path.isfile(entries[0])

    def test_unzip_option(self, tmp_path):
        archive = tmp_path / "src.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("pkg/Main.class", b"cafebabe")
        root = str(tmp_path / "packages")
        system = RepositorySystem(package_root=root)

        def fake_download(url, dest, *, context):
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(archive, "rb") as src, open(dest, "wb") as fh:
                fh.write(src.read())

        with patch("repos.managers.url.download_file", side_effect=fake_download), \
                patch("repos.managers.url.last_modified_ms", return_value=-1):
            entries, err = system.install("url:https://host/libs/lib.zip#unzip")

        assert err is None
        assert entries == [os.path.join(root, "lib", "lib")]
        assert os.path.isfile(os.path.join(root, "lib", "lib", "pkg", "Main.class"))
        assert not os.path.exists(os.path.join(root, "lib", "lib.zip"))

    def test_newer_remote_is_fetched_again(self, tmp_path):
        root = str(tmp_path / "packages")

        def fake_download(url, dest, *, context):
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(dest, "wb") as fh:
                fh.write(b"data")

        with patch("repos.managers.url.download_file", side_effect=fake_download) as download, \
                patch("repos.managers.url.last_modified_ms", return_value=0):
            RepositorySystem(package_root=root).install("url:https://host/libs/lib.jar")
            RepositorySystem(package_root=root).install("url:https://host/libs/lib.jar")
            assert download.call_count == 1

        # Remote modified after the previous install
        with patch("repos.managers.url.download_file", side_effect=fake_download) as download, \
                patch("repos.managers.url.last_modified_ms", return_value=2 ** 62):
            RepositorySystem(package_root=root).install("url:https://host/libs/lib.jar")
            assert download.call_count == 1

    def test_unzip_refuses_escaping_entries(self, tmp_path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../escape.txt", b"x")
        err = unzip_into(str(archive), str(tmp_path / "out"))
        assert err is not None
        assert not (tmp_path / "escape.txt").exists()

    def test_unzip_requires_archive_suffix(self, tmp_path):
        assert "suffix" in unzip_into(str(tmp_path / "file.txt"), str(tmp_path / "out"))


class TestGitMvnManager:
    def test_checkout_pom_dependencies_installed(self, system, m2, pkg_root):
        m2.add("com.example", "b", "1.0")
        checkout_pom = pom("com.example", "proj-core", "1.0", deps=[dep("com.example", "b", "1.0")])

        def fake_git(args, **_kwargs):
            if args[1] == "clone":
                os.makedirs(args[-1], exist_ok=True)
                with open(os.path.join(args[-1], "pom.xml"), "w", encoding="utf-8") as fh:
                    fh.write(checkout_pom)
            return _ok(args)

        with patch("repos.managers.base.subprocess.run", side_effect=fake_git):
            pkg = system.add_package("git-mvn+https://host/proj.git")
            err = system.install_package(pkg, None)

        assert err is None
        assert pkg.defines_src
        assert not pkg.defines_classes
        assert pkg.get_class_path() == [jar_path(pkg_root, "com.example", "b", "1.0")]
        # Reachable under the groupId/artifactId read from the POM
        assert system.get_repository_package("com.example/proj-core") is pkg

    @staticmethod
    def _aggregator_git(args, **_kwargs):
        if args[1] == "clone":
            checkout = args[-1]
            os.makedirs(os.path.join(checkout, "core"), exist_ok=True)
            with open(os.path.join(checkout, "pom.xml"), "w", encoding="utf-8") as fh:
                fh.write(pom("com.example", "proj", "1.0", packaging="pom",
                             extra="  <modules><module>core</module></modules>\n"))
            with open(os.path.join(checkout, "core", "pom.xml"), "w", encoding="utf-8") as fh:
                fh.write(pom(None, "core", None, parent=("com.example", "proj", "1.0"),
                             deps=[dep("com.example", "b", "1.0")]))
        return _ok(args)

    def test_module_dependencies_installed(self, system, m2, pkg_root):
        m2.add("com.example", "b", "1.0")

        with patch("repos.managers.base.subprocess.run", side_effect=self._aggregator_git):
            pkg = system.add_package("git-mvn+https://host/proj.git")
            err = system.install_package(pkg, None)

        assert err is None
        core = system.get_repository_package("com.example/core")
        assert core is not None
        assert core in pkg.sub_packages
        assert core.get_installed_root() == os.path.join(pkg.get_installed_root(), "core")
        assert core.defines_src and not core.defines_classes
        assert pkg.get_class_path() == [jar_path(pkg_root, "com.example", "b", "1.0")]
        assert os.path.isfile(jar_path(pkg_root, "com.example", "b", "1.0"))

    def test_include_modules_skips_unlisted_module(self, system, m2, pkg_root):
        m2.add("com.example", "b", "1.0")

        with patch("repos.managers.base.subprocess.run", side_effect=self._aggregator_git):
            pkg = system.add_package("git-mvn+https://host/proj.git")
            pkg.include_modules = ["other"]
            err = system.install_package(pkg, None)

        assert err is None
        assert system.get_repository_package("com.example/core") is None
        assert not pkg.get_class_path()
        assert not os.path.exists(jar_path(pkg_root, "com.example", "b", "1.0"))
