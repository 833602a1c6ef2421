"""Tests for scanning R sources for package usage."""

from depsync.scan import packages_in_text, scan_r_files_for_packages


class TestScan:
    """Test library()/require() detection."""

    def test_packages_in_text(self):
        """Quoted and bare names are found; comment lines are ignored."""
        text = (
            "library(dplyr)\n"
            "require('data.table')\n"
            '  library( "ggplot2" )\n'
            "# library(commented)\n"
            "x <- 1  # trailing library(trailing) still counts\n"
        )
        assert packages_in_text(text) == {"dplyr", "data.table", "ggplot2", "trailing"}

    def test_walks_directories(self, tmp_path):
        """Nested *.R files are scanned; hidden and rv folders are skipped."""
        (tmp_path / "R").mkdir()
        (tmp_path / "R" / "main.R").write_text("library(dplyr)\nlibrary(tidyr)\n", encoding="utf-8")
        (tmp_path / "analysis.r").write_text("require(dplyr)\n", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("library(ignored)\n", encoding="utf-8")
        (tmp_path / ".cache").mkdir()
        (tmp_path / ".cache" / "x.R").write_text("library(hidden)\n", encoding="utf-8")
        (tmp_path / "rv" / "library").mkdir(parents=True)
        (tmp_path / "rv" / "library" / "y.R").write_text("library(vendored)\n", encoding="utf-8")

        assert scan_r_files_for_packages(tmp_path) == ["dplyr", "tidyr"]

    def test_empty_directory(self, tmp_path):
        """No R files means no packages."""
        assert scan_r_files_for_packages(tmp_path) == []
