"""Unit tests for artifacts module."""

import pytest

from repo_signer.artifacts import (
    ArtifactInspector,
    artifact_format,
    collect_artifacts,
    list_candidates,
    parse_edition,
    parse_tarball_name,
)
from repo_signer.models import FORMAT_DEB, FORMAT_RPM, FORMAT_TARBALL


class TestArtifactFormat:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("webmin_2.300_all.deb", FORMAT_DEB),
            ("webmin-2.300-1.noarch.rpm", FORMAT_RPM),
            ("virtualmin-7.10.0.pro.tar.gz", FORMAT_TARBALL),
            ("install.sh", None),
            ("Release", None),
        ],
    )
    def test_extension_classes(self, filename, expected):
        assert artifact_format(filename) == expected


class TestParseEdition:
    @pytest.mark.parametrize(
        "text,fmt,expected",
        [
            ("7.10.0-gpl-1", FORMAT_DEB, "gpl"),
            ("7.10.0+pro", FORMAT_DEB, "pro"),
            ("7.10.0~gpl~1", FORMAT_DEB, "gpl"),
            ("2.300", FORMAT_DEB, ""),
            ("1.pro", FORMAT_RPM, "pro"),
            ("1.gpl.el9", FORMAT_RPM, "gpl"),
            ("gpl", FORMAT_RPM, "gpl"),
            ("7.10.0-gpl", FORMAT_RPM, ""),
            ("1.program", FORMAT_RPM, ""),
        ],
    )
    def test_editions(self, text, fmt, expected):
        assert parse_edition(text, fmt) == expected


class TestParseTarballName:
    def test_with_edition(self):
        assert parse_tarball_name("virtualmin-7.10.0.pro.tar.gz") == ("virtualmin", "pro")

    def test_without_edition(self):
        assert parse_tarball_name("webmin-2.300.tar.gz") == ("webmin", "")

    def test_hyphenated_name(self):
        assert parse_tarball_name("authentic-theme-21.09.tar.gz") == ("authentic-theme", "")

    def test_unparseable(self):
        assert parse_tarball_name("snapshot.tar.gz") is None


class TestArtifactInspector:
    def test_inspects_deb(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "virtualmin_7.10.0-gpl-1_all.deb", mtime=1000)
        artifact = ArtifactInspector(fake_runner).inspect(path)
        assert artifact.name == "virtualmin"
        assert artifact.arch == "all"
        assert artifact.version == "7.10.0-gpl"
        assert artifact.release == "1"
        assert artifact.edition == "gpl"
        assert artifact.mtime == 1000
        assert artifact.is_neutral_arch

    def test_inspects_rpm(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "virtualmin-7.10.0-1.pro.x86_64.rpm")
        artifact = ArtifactInspector(fake_runner).inspect(path)
        assert (artifact.name, artifact.version, artifact.release) == ("virtualmin", "7.10.0", "1.pro")
        assert artifact.arch == "x86_64"
        assert artifact.edition == "pro"
        assert not artifact.is_neutral_arch

    def test_rpm_edition_from_version(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "foo-1.2.pro-1.noarch.rpm")
        assert ArtifactInspector(fake_runner).inspect(path).edition == "pro"

    def test_inspects_tarball_without_tools(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "virtualmin-7.10.0.gpl.tar.gz")
        artifact = ArtifactInspector(fake_runner).inspect(path)
        assert (artifact.name, artifact.edition, artifact.arch) == ("virtualmin", "gpl", "")
        assert artifact.version == "7.10.0.gpl"
        assert fake_runner.calls == []

    def test_caches_queries(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "webmin_2.300_all.deb")
        inspector = ArtifactInspector(fake_runner)
        inspector.inspect(path)
        inspector.inspect(path)
        assert len(fake_runner.commands("dpkg-deb")) == 1

    def test_changed_file_queried_again(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "webmin_2.300_all.deb", mtime=1000)
        inspector = ArtifactInspector(fake_runner)
        inspector.inspect(path)
        make_artifact(path, mtime=2000)
        assert inspector.inspect(path).mtime == 2000
        assert len(fake_runner.commands("dpkg-deb")) == 2

    def test_tool_failure_skips_artifact(self, tmp_path, fake_runner, make_artifact):
        path = make_artifact(tmp_path / "broken-1.0-1.noarch.rpm")
        fake_runner.fail_on.add("rpm")
        assert ArtifactInspector(fake_runner).inspect(path) is None

    def test_dangling_symlink(self, tmp_path, fake_runner):
        link = tmp_path / "gone_1.0_all.deb"
        link.symlink_to(tmp_path / "missing.deb")
        assert ArtifactInspector(fake_runner).inspect(link) is None

    def test_symlink_reports_target_mtime(self, tmp_path, fake_runner, make_artifact):
        source = make_artifact(tmp_path / "rc" / "webmin_2.300_all.deb", mtime=1234)
        link = tmp_path / "webmin_2.300_all.deb"
        link.symlink_to(source)
        assert ArtifactInspector(fake_runner).inspect(link).mtime == 1234


class TestListCandidates:
    def test_filters_class_and_latest_links(self, tmp_path, make_artifact):
        make_artifact(tmp_path / "b-1.0-1.noarch.rpm")
        make_artifact(tmp_path / "a-1.0-1.noarch.rpm")
        make_artifact(tmp_path / "a_1.0_all.deb")
        (tmp_path / "a-latest.rpm").symlink_to("a-1.0-1.noarch.rpm")
        (tmp_path / "subdir.rpm").mkdir()

        names = [p.name for p in list_candidates(tmp_path, FORMAT_RPM)]
        assert names == ["a-1.0-1.noarch.rpm", "b-1.0-1.noarch.rpm"]

    def test_symlinks_optional(self, tmp_path, make_artifact):
        source = make_artifact(tmp_path / "rc" / "a_1.0_all.deb")
        repo = tmp_path / "stable"
        repo.mkdir()
        (repo / source.name).symlink_to(source)
        (repo / "dangling_1.0_all.deb").symlink_to(tmp_path / "nowhere.deb")

        assert [p.name for p in list_candidates(repo, FORMAT_DEB)] == ["a_1.0_all.deb"]
        assert list_candidates(repo, FORMAT_DEB, include_symlinks=False) == []

    def test_collect_artifacts(self, tmp_path, fake_runner, make_artifact):
        make_artifact(tmp_path / "webmin_2.300_all.deb")
        make_artifact(tmp_path / "usermin_2.200_all.deb")
        artifacts = collect_artifacts(tmp_path, FORMAT_DEB, ArtifactInspector(fake_runner))
        assert [a.name for a in artifacts] == ["usermin", "webmin"]
