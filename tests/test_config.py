"""Tests for the project configuration model."""

import pytest

from depsync.config import ProjectConfig
from depsync.constants import Constants
from depsync.errors import ConfigError
from depsync.package import Repository
from depsync.versioning import RequirementKind, Version


@pytest.fixture
def project():
    """A parsed [project] table."""
    return {
        "name": "analysis",
        "r_version": "4.3",
        "repositories": [
            {"alias": "CRAN", "url": "https://cran.example.org/"},
            {"alias": "Extra", "url": "https://extra.example.org"},
        ],
        "dependencies": [
            "dplyr",
            "ggplot2 (>= 3.4)",
            {"name": "data.table", "version": "^1.14", "repository": "Extra"},
            {"name": "mypkg", "git": "https://example.org/mypkg.git", "tag": "v1.0"},
        ],
    }


class TestProjectConfig:
    """Test ProjectConfig.from_dict."""

    def test_full_project(self, project):
        """Repositories keep their order; dependencies come from strings and tables."""
        config = ProjectConfig.from_dict(project)

        assert config.name == "analysis"
        assert config.toolchain_version == "4.3"
        assert config.repositories == (
            Repository("CRAN", "https://cran.example.org"),
            Repository("Extra", "https://extra.example.org"),
        )
        assert config.dependency_names() == ["dplyr", "ggplot2", "data.table", "mypkg"]

        deps = {dep.name: dep for dep in config.dependencies}
        assert deps["dplyr"].requirement.kind is RequirementKind.ANY
        assert deps["ggplot2"].requirement.satisfies(Version("3.4.1"))
        assert deps["data.table"].repository == "Extra"
        assert not deps["data.table"].requirement.satisfies(Version("2.0"))
        assert deps["mypkg"].requirement.ref == "v1.0"
        assert deps["mypkg"].git == "https://example.org/mypkg.git"
        assert deps["dplyr"].git is None
        assert all(dep.requested_by == frozenset([Constants.ROOT_REQUIRER]) for dep in config.dependencies)
        assert config.repository("Extra").url == "https://extra.example.org"

    def test_numeric_version_in_table(self, project):
        """YAML/TOML numbers are accepted as version text."""
        project["dependencies"] = [{"name": "x", "version": 2}]
        dep = ProjectConfig.from_dict(project).dependencies[0]
        assert dep.requirement.version == Version("2")

    @pytest.mark.parametrize(
        "mutate, field",
        [
            (lambda p: p.pop("name"), "project.name"),
            (lambda p: p["repositories"].append({"alias": "CRAN", "url": "https://x"}), "project.repositories[2].alias"),
            (lambda p: p["repositories"].append({"alias": "NoUrl"}), "project.repositories[2].url"),
            (lambda p: p["dependencies"].append("dplyr (>= 1.0)"), "project.dependencies[4]"),
            (lambda p: p["dependencies"].append({"name": "z", "repository": "Nope"}), "project.dependencies[4].repository"),
            (lambda p: p["dependencies"].append({"name": "z", "version": ">= nope"}), "project.dependencies[4].version"),
            (lambda p: p["dependencies"].append(42), "project.dependencies[4]"),
            (lambda p: p["dependencies"].append({"name": "z", "git": ""}), "project.dependencies[4].git"),
            (
                lambda p: p["dependencies"].append({"name": "z", "git": "https://x.git", "repository": "CRAN"}),
                "project.dependencies[4]",
            ),
            (lambda p: p.update(dependencies="dplyr"), "project.dependencies"),
        ],
    )
    def test_invalid_projects(self, project, mutate, field):
        """Malformed configuration is rejected with the failing field."""
        mutate(project)
        with pytest.raises(ConfigError) as excinfo:
            ProjectConfig.from_dict(project)
        assert excinfo.value.field == field
