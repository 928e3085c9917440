"""Unit tests for apt_generator module."""

import gzip
import hashlib
import os
from datetime import datetime, UTC

import pytest

from repo_signer.apt_generator import AptMetadataGenerator, write_gzip
from repo_signer.build_type import STABLE, TESTING
from repo_signer.exceptions import ToolFailureError
from repo_signer.tools import GpgSigner


@pytest.fixture
def generator(repo_context, fake_runner):
    gpg = GpgSigner(fake_runner, repo_context.gpg_key)
    return AptMetadataGenerator(repo_context, fake_runner, gpg)


class TestPoolSymlinks:
    def test_links_every_deb_in_tree(self, generator, repo_context, make_artifact):
        repo = repo_context.repo_dir
        make_artifact(repo / "webmin_2.300_all.deb")
        make_artifact(repo / "legacy" / "usermin_2.200_all.deb")
        make_artifact(repo / "webmin-2.300-1.noarch.rpm")
        generator.pool_dir.mkdir(parents=True)

        assert generator.update_pool_symlinks() == 2
        link = generator.pool_dir / "usermin_2.200_all.deb"
        assert link.is_symlink()
        assert os.path.isabs(os.readlink(link))
        assert link.resolve() == (repo / "legacy" / "usermin_2.200_all.deb").resolve()

    def test_replaces_stale_links(self, generator, repo_context, make_artifact):
        generator.pool_dir.mkdir(parents=True)
        (generator.pool_dir / "removed_1.0_all.deb").symlink_to(repo_context.repo_dir / "gone.deb")
        make_artifact(repo_context.repo_dir / "webmin_2.300_all.deb")

        generator.update_pool_symlinks()

        assert sorted(p.name for p in generator.pool_dir.iterdir()) == ["webmin_2.300_all.deb"]

    def test_duplicate_basename_linked_once(self, generator, repo_context, make_artifact, caplog):
        repo = repo_context.repo_dir
        make_artifact(repo / "webmin_2.300_all.deb")
        make_artifact(repo / "old" / "webmin_2.300_all.deb")
        generator.pool_dir.mkdir(parents=True)

        assert generator.update_pool_symlinks() == 1
        assert "Duplicate package" in caplog.text


class TestGenerate:
    def test_writes_signed_release(self, generator, repo_context, fake_runner, make_artifact):
        make_artifact(repo_context.repo_dir / "webmin_2.300_all.deb")

        release_file = generator.generate()

        dists = repo_context.repo_dir / "dists" / "virtualmin"
        assert release_file == dists / "Release"
        assert (dists / "InRelease").read_text().startswith("-----BEGIN PGP SIGNED MESSAGE-----")
        assert (dists / "Release.gpg").exists()
        packages = (dists / "main" / "binary-all" / "Packages").read_text()
        assert "Filename: pool/main/webmin_2.300_all.deb" in packages
        with gzip.open(dists / "main" / "binary-all" / "Packages.gz", "rt") as f:
            assert f.read() == packages

    def test_scans_whole_pool_for_each_architecture(self, generator, repo_context, fake_runner):
        generator.generate()
        scans = fake_runner.commands("dpkg-scanpackages")
        assert len(scans) == 2
        assert all(c == ["dpkg-scanpackages", "--multiversion", os.path.join("pool", "main")] for c in scans)

    def test_indexes_packages_with_unconventional_names(self, generator, repo_context, make_artifact):
        make_artifact(repo_context.repo_dir / "custom-package.deb")
        generator.generate()

        dists = repo_context.repo_dir / "dists" / "virtualmin" / "main"
        for arch in ("all", "amd64"):
            assert "pool/main/custom-package.deb" in (dists / f"binary-{arch}" / "Packages").read_text()

    def test_release_lists_checksums(self, generator, repo_context, make_artifact):
        make_artifact(repo_context.repo_dir / "webmin_2.300_all.deb")
        release = generator.generate().read_text()

        packages = repo_context.repo_dir / "dists/virtualmin/main/binary-amd64/Packages"
        data = packages.read_bytes()
        sha256_line = f" {hashlib.sha256(data).hexdigest()} {len(data)} main/binary-amd64/Packages"
        sha512_line = f" {hashlib.sha512(data).hexdigest()} {len(data)} main/binary-amd64/Packages"
        assert sha256_line in release.split("SHA512:")[0]
        assert sha512_line in release.split("SHA512:")[1]
        assert "main/binary-all/Packages.gz" in release

    def test_release_is_stable_for_plain_builds(self, generator, repo_context, make_artifact):
        make_artifact(repo_context.repo_dir / "webmin_2.300_all.deb")
        release = generator.generate().read_text()
        assert "Label: Stable Releases\n" in release
        assert "Suite: stable\n" in release

    def test_release_is_testing_for_timestamped_builds(self, generator, repo_context, make_artifact):
        make_artifact(repo_context.repo_dir / "webmin_2.300.202503141530_all.deb")
        assert "Suite: testing\n" in generator.generate().read_text()

    def test_metadata_is_reproducible(self, generator, repo_context, make_artifact):
        make_artifact(repo_context.repo_dir / "webmin_2.300_all.deb")
        gz = repo_context.repo_dir / "dists/virtualmin/main/binary-all/Packages.gz"
        generator.generate()
        first = gz.read_bytes()
        generator.generate()
        assert gz.read_bytes() == first

    def test_signing_failure_is_fatal(self, generator, fake_runner):
        fake_runner.fail_on.add("gpg")
        with pytest.raises(ToolFailureError):
            generator.generate()

    def test_old_inrelease_removed_before_signing(self, generator, repo_context, fake_runner):
        dists = repo_context.repo_dir / "dists" / "virtualmin"
        dists.mkdir(parents=True)
        (dists / "InRelease").write_text("stale signature")
        fake_runner.fail_on.add("gpg")
        with pytest.raises(ToolFailureError):
            generator.generate()
        assert not (dists / "InRelease").exists()


class TestReleaseFile:
    def test_field_order(self, generator):
        now = datetime(2025, 3, 14, 15, 30, 0, tzinfo=UTC)
        content = generator.generate_release_file(
            TESTING, [" aa 1 main/binary-all/Packages"], [" bb 1 main/binary-all/Packages"], now=now
        )
        assert content.splitlines() == [
            "Origin: Virtualmin Developers",
            "Label: Testing Builds",
            "Suite: testing",
            "Codename: virtualmin",
            "Version: 1.0",
            "Architectures: all amd64",
            "Components: main",
            "Description: Automatically generated development builds of Virtualmin",
            "Date: Fri, 14 Mar 2025 15:30:00 UTC",
            "SHA256:",
            " aa 1 main/binary-all/Packages",
            "SHA512:",
            " bb 1 main/binary-all/Packages",
        ]

    def test_empty_tables(self, generator):
        content = generator.generate_release_file(STABLE, [], [])
        assert content.endswith("SHA256:\nSHA512:\n")


class TestWriteGzip:
    def test_deterministic_header(self, tmp_path):
        first, second = tmp_path / "a.gz", tmp_path / "b.gz"
        write_gzip(first, b"Package: webmin\n")
        write_gzip(second, b"Package: webmin\n")
        assert first.read_bytes() == second.read_bytes()
        assert gzip.decompress(first.read_bytes()) == b"Package: webmin\n"
