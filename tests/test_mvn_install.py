"""End-to-end maven installs against a local repository (no network)."""

import os
import shutil
from unittest.mock import patch

from conftest import dep, jar_path
from repos.mvn.repository import MvnRepository
from repos.system import RepositorySystem


G = "com.example"


def _install(system, url, include_tests=False, include_runtime=False):
    pkg = system.add_package(url)
    assert pkg is not None
    pkg.include_tests = include_tests
    pkg.include_runtime = include_runtime
    err = system.install_package(pkg, None)
    return pkg, err, pkg.get_class_path() or []


class TestBasicInstall:
    def test_installs_artifact_and_transitive_dependencies(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0", deps=[dep(G, "c", "2.0")])
        m2.add(G, "c", "2.0")

        pkg, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert pkg.installed
        assert class_path == [
            jar_path(pkg_root, G, "a", "1.0"),
            jar_path(pkg_root, G, "b", "1.0"),
            jar_path(pkg_root, G, "c", "2.0"),
        ]
        for entry in class_path:
            assert os.path.isfile(entry)
        assert system.get_class_path() == class_path

    def test_install_api_returns_entries_and_error(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0")

        entries, err = system.install(f"mvn://{G}/a/1.0")

        assert err is None
        assert entries == [jar_path(pkg_root, G, "a", "1.0")]

    def test_dependency_cycle_terminates(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0", deps=[dep(G, "a", "1.0")])

        pkg, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert sorted(class_path) == sorted([
            jar_path(pkg_root, G, "a", "1.0"),
            jar_path(pkg_root, G, "b", "1.0"),
        ])
        b_pkg = system.get_repository_package(f"{G}/b")
        assert b_pkg.dependencies == [pkg]

    def test_mvndeps_installs_dependencies_but_not_artifact(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0")

        pkg, err, class_path = _install(system, f"mvndeps://{G}/a/1.0")

        assert err is None
        assert not pkg.defines_classes
        assert class_path == [jar_path(pkg_root, G, "b", "1.0")]
        assert not os.path.exists(jar_path(pkg_root, G, "a", "1.0"))

    def test_missing_pom_fails_and_leaves_marker(self, system, m2, pkg_root, offline):
        m2.add(G, "a", "1.0", deps=[dep(G, "missing", "1.0"), dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0")

        pkg, err, _ = _install(system, f"mvn://{G}/a/1.0")

        assert err is not None
        assert f"{G}/missing" in err
        # Siblings of the failed package are still installed
        assert system.get_repository_package(f"{G}/b").installed
        assert not system.get_repository_package(f"{G}/missing").installed
        assert pkg.installed
        marker = os.path.join(pkg_root, G, "missing", "1.0", "pom.xml.notFound")
        assert os.path.isfile(marker)

        offline.reset_mock()
        second = RepositorySystem(package_root=pkg_root)
        _, err2, _ = _install(second, f"mvn://{G}/a/1.0")
        assert "did not exist when last checked" in err2
        requested = [call.args[0] for call in offline.call_args_list]
        assert not any("missing" in url for url in requested)

    def test_unknown_scheme_returns_none(self, system):
        assert system.add_package("svn://example.com/repo") is None
        assert system.add_package("no-scheme-here") is None


class TestScopes:
    def _setup(self, m2):
        m2.add(G, "a", "1.0", deps=[
            dep(G, "compiled", "1.0"),
            dep(G, "tested", "1.0", scope="test"),
            dep(G, "run", "1.0", scope="runtime"),
            dep(G, "prov", "1.0", scope="provided"),
            dep(G, "opt", "1.0", optional=True),
        ])
        for name in ("compiled", "tested", "run", "prov", "opt"):
            m2.add(G, name, "1.0")

    def test_default_scope_is_compile_only(self, system, m2, pkg_root):
        self._setup(m2)
        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")
        assert err is None
        assert class_path == [jar_path(pkg_root, G, "a", "1.0"), jar_path(pkg_root, G, "compiled", "1.0")]

    def test_include_tests_adds_test_scope(self, system, m2, pkg_root):
        self._setup(m2)
        _, err, class_path = _install(system, f"mvn://{G}/a/1.0", include_tests=True)
        assert err is None
        assert jar_path(pkg_root, G, "tested", "1.0") in class_path
        assert jar_path(pkg_root, G, "run", "1.0") not in class_path

    def test_include_runtime_adds_runtime_scope(self, system, m2, pkg_root):
        self._setup(m2)
        _, err, class_path = _install(system, f"mvn://{G}/a/1.0", include_runtime=True)
        assert err is None
        assert jar_path(pkg_root, G, "run", "1.0") in class_path
        assert jar_path(pkg_root, G, "tested", "1.0") not in class_path
        assert jar_path(pkg_root, G, "prov", "1.0") not in class_path


class TestPomInheritance:
    def test_version_from_parent_property_and_management(self, system, m2, pkg_root):
        m2.add(G, "parent", "1.0", jar=False, packaging="pom",
               properties={"b.version": "2.0"}, managed=[dep(G, "c", "3.0")])
        m2.add(G, "a", "1.0", parent=(G, "parent", "1.0"),
               deps=[dep(G, "b", "${b.version}"), dep(G, "c")])
        m2.add(G, "b", "2.0")
        m2.add(G, "c", "3.0")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "b", "2.0") in class_path
        assert jar_path(pkg_root, G, "c", "3.0") in class_path
        # The parent contributes its POM only
        assert jar_path(pkg_root, G, "parent", "1.0") not in class_path
        assert os.path.isfile(os.path.join(pkg_root, G, "parent", "1.0", "pom.xml"))

    def test_project_version_variable(self, system, m2, pkg_root):
        m2.add(G, "a", "1.5", deps=[dep(G, "b", "${project.version}")])
        m2.add(G, "b", "1.5")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.5")

        assert err is None
        assert jar_path(pkg_root, G, "b", "1.5") in class_path

    def test_undefined_variable_fails_the_package(self, system, m2):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "${undefined.version}")])

        pkg, err, _ = _install(system, f"mvn://{G}/a/1.0")

        assert err is not None
        assert "undefined.version" in err
        assert not pkg.installed

    def test_import_scope_pins_version(self, system, m2, pkg_root):
        bom_import = dep(G, "bom", "1.0", scope="import", type_="pom")
        m2.add(G, "bom", "1.0", jar=False, packaging="pom", managed=[dep(G, "c", "3.0")])
        # The same document imported twice is merged once
        m2.add(G, "a", "1.0", deps=[dep(G, "c")], managed=[bom_import, bom_import])
        m2.add(G, "c", "3.0")

        pkg, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert class_path == [jar_path(pkg_root, G, "a", "1.0"), jar_path(pkg_root, G, "c", "3.0")]
        assert [p.file_name for p in pkg.pom_file.imported_poms] == [
            os.path.join(pkg_root, G, "bom", "1.0", "pom.xml")
        ]

    def test_repositories_added_when_enabled(self, system, m2):
        extra = "  <repositories><repository><url>https://extra.example/m2/</url></repository></repositories>\n"
        m2.add(G, "a", "1.0", extra=extra)
        m2.add(G, "b", "1.0", extra=extra.replace("extra.example", "other.example"))

        pkg = system.add_package(f"mvn://{G}/a/1.0")
        pkg.use_repositories = True
        assert system.install_package(pkg, None) is None
        _, err, _ = _install(system, f"mvn://{G}/b/1.0")

        assert err is None
        repositories = system.get_repository_manager("mvn").repositories
        assert MvnRepository("https://extra.example/m2/") in repositories
        # Only packages that ask for it contribute repositories
        assert MvnRepository("https://other.example/m2/") not in repositories


class TestArtifactTypes:
    def test_test_jar_dependency(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0", type_="test-jar")])
        art_dir = m2.add(G, "b", "1.0", jar=False)
        with open(os.path.join(art_dir, "b-1.0-tests.jar"), "wb") as fh:
            fh.write(b"PK\x03\x04 fake test jar")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        tests_jar = os.path.join(pkg_root, G, "b", "1.0", "b-1.0-tests.jar")
        assert class_path == [jar_path(pkg_root, G, "a", "1.0"), tests_jar]
        assert os.path.isfile(tests_jar)

    def test_missing_test_jar_fails_the_dependency(self, system, m2):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0", type_="test-jar")])
        m2.add(G, "b", "1.0")

        _, err, _ = _install(system, f"mvn://{G}/a/1.0")

        assert err is not None
        assert "test-jar" in err


class TestNearestWins:
    def test_shallower_version_wins(self, system, m2, pkg_root):
        # c (depth 1) asks for b 2.0 before b 1.0 (depth 1) is installed
        m2.add(G, "a", "1.0", deps=[dep(G, "c", "1.0"), dep(G, "b", "1.0")])
        m2.add(G, "c", "1.0", deps=[dep(G, "b", "2.0")])
        m2.add(G, "b", "1.0")
        m2.add(G, "b", "2.0")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "b", "1.0") in class_path
        assert jar_path(pkg_root, G, "b", "2.0") not in class_path
        b_pkg = system.get_repository_package(f"{G}/b")
        assert [src.desc.version for src in b_pkg.sources] == ["1.0", "2.0"]

    def test_root_dependency_management_pins_transitive_version(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "c", "1.0")], managed=[dep(G, "b", "1.0")])
        m2.add(G, "c", "1.0", deps=[dep(G, "b", "2.0")])
        m2.add(G, "b", "1.0")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "b", "1.0") in class_path


class TestExclusions:
    def test_exclusion_applies_to_whole_subtree(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0", exclusions=[(G, "c")])])
        m2.add(G, "b", "1.0", deps=[dep(G, "d", "1.0")])
        m2.add(G, "d", "1.0", deps=[dep(G, "c", "1.0")])
        m2.add(G, "c", "1.0")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "d", "1.0") in class_path
        assert jar_path(pkg_root, G, "c", "1.0") not in class_path

    def test_exclusion_dropped_when_another_path_needs_it(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0", exclusions=[(G, "c")]), dep(G, "x", "1.0")])
        m2.add(G, "x", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0", deps=[dep(G, "c", "1.0")])
        m2.add(G, "c", "1.0")

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "c", "1.0") in class_path
        b_src = system.get_repository_package(f"{G}/b").current_source
        assert b_src.desc.exclusions is None

    def _excluding_edge(self, m2):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0", exclusions=[(G, "c")])])
        m2.add(G, "b", "1.0", deps=[dep(G, "c", "1.0")])
        m2.add(G, "c", "1.0")

    def test_requested_package_drops_exclusions_of_earlier_edge(self, system, m2, pkg_root):
        self._excluding_edge(m2)
        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")
        assert err is None
        assert jar_path(pkg_root, G, "c", "1.0") not in class_path

        entries, err = system.install(f"mvn://{G}/b/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "c", "1.0") in entries
        assert os.path.isfile(jar_path(pkg_root, G, "c", "1.0"))

    def test_requested_package_keeps_dependencies_for_later_edge(self, system, m2, pkg_root):
        self._excluding_edge(m2)
        entries, err = system.install(f"mvn://{G}/b/1.0")
        assert err is None
        assert jar_path(pkg_root, G, "c", "1.0") in entries

        _, err, class_path = _install(system, f"mvn://{G}/a/1.0")

        assert err is None
        assert jar_path(pkg_root, G, "c", "1.0") in class_path
        assert system.get_repository_package(f"{G}/b").current_source.desc.exclusions == []


class TestTagFiles:
    def test_up_to_date_package_is_not_fetched_again(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0")
        _, err, first = _install(system, f"mvn://{G}/a/1.0")
        assert err is None
        assert os.path.isfile(os.path.join(pkg_root, G, "a", "1.0", f"{G}__a-1.0.json"))

        # Nothing can be fetched any more: the second run must rely on the tag files
        shutil.rmtree(m2.root)
        second = RepositorySystem(package_root=pkg_root)
        pkg, err2, class_path = _install(second, f"mvn://{G}/a/1.0")

        assert err2 is None
        assert pkg.pre_installed
        assert class_path == first

    def test_deleted_package_directory_is_fetched_again(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0")
        _install(system, f"mvn://{G}/a/1.0")
        shutil.rmtree(os.path.join(pkg_root, G, "b"))

        second = RepositorySystem(package_root=pkg_root)
        with patch("repos.mvn.manager.shutil.copyfile", wraps=shutil.copyfile) as copy:
            _, err, class_path = _install(second, f"mvn://{G}/a/1.0")

        assert err is None
        assert os.path.isfile(jar_path(pkg_root, G, "b", "1.0"))
        copied = [call.args[1] for call in copy.call_args_list]
        assert copied
        assert all(os.path.join(pkg_root, G, "b") in dest for dest in copied)
        assert jar_path(pkg_root, G, "b", "1.0") in class_path

    def test_deleted_tag_file_forces_fetch(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0", deps=[dep(G, "b", "1.0")])
        m2.add(G, "b", "1.0")
        _install(system, f"mvn://{G}/a/1.0")
        os.remove(os.path.join(pkg_root, G, "a", "1.0", f"{G}__a-1.0.json"))

        second = RepositorySystem(package_root=pkg_root)
        with patch("repos.mvn.manager.shutil.copyfile", wraps=shutil.copyfile) as copy:
            pkg, err, class_path = _install(second, f"mvn://{G}/a/1.0")

        assert err is None
        assert not pkg.pre_installed
        assert not pkg.refetch
        copied = [call.args[1] for call in copy.call_args_list]
        assert jar_path(pkg_root, G, "a", "1.0") in copied
        assert os.path.join(pkg_root, G, "a", "1.0", "pom.xml") in copied
        assert not any(os.path.join(pkg_root, G, "b") in dest for dest in copied)
        assert jar_path(pkg_root, G, "b", "1.0") in class_path
        assert os.path.isfile(os.path.join(pkg_root, G, "a", "1.0", f"{G}__a-1.0.json"))

    def test_failed_fetch_keeps_existing_files(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0")
        _install(system, f"mvn://{G}/a/1.0")
        os.remove(os.path.join(pkg_root, G, "a", "1.0", f"{G}__a-1.0.json"))
        shutil.rmtree(m2.root)

        second = RepositorySystem(package_root=pkg_root)
        _, err, class_path = _install(second, f"mvn://{G}/a/1.0")

        assert err is None
        assert class_path == [jar_path(pkg_root, G, "a", "1.0")]

    def test_reinstall_backs_up_existing_directory(self, system, m2, pkg_root):
        m2.add(G, "a", "1.0")
        _install(system, f"mvn://{G}/a/1.0")

        second = RepositorySystem(package_root=pkg_root, reinstall=True)
        pkg, err, _ = _install(second, f"mvn://{G}/a/1.0")

        assert err is None
        assert not pkg.pre_installed
        assert os.path.isdir(os.path.join(pkg_root, ".replacedPackages"))
        assert os.path.isfile(jar_path(pkg_root, G, "a", "1.0"))
