"""Shared fixtures: a fake tool runner standing in for gpg, rpm and dpkg."""

import os
import subprocess
from pathlib import Path

import pytest

from repo_signer.exceptions import ToolFailureError
from repo_signer.models import TargetConfig, RepoContext


def rpm_fields_from_filename(filename: str) -> tuple[str, str, str, str]:
    """``name-version-release.arch.rpm`` -> (name, arch, version, release)."""
    nvr, _, arch = filename[: -len(".rpm")].rpartition(".")
    name, version, release = nvr.rsplit("-", 2)
    return name, arch, version, release


def deb_fields_from_filename(filename: str) -> tuple[str, str, str]:
    """``name_version_arch.deb`` -> (name, arch, version)."""
    parts = filename[: -len(".deb")].split("_")
    if len(parts) != 3:
        return parts[0], "all", "0"
    name, version, arch = parts
    return name, arch, version


class FakeRunner:
    """Records argv vectors and imitates the external tools on the filesystem."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.fail_on: set[str] = set()

    def commands(self, tool: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == tool]

    def signed_rpms(self) -> list[str]:
        return [Path(c[-1]).name for c in self.commands("rpm") if "--addsign" in c]

    def run(self, cmd, cwd=None, input=None, text=True):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        tool = cmd[0]
        if tool in self.fail_on or (tool == "rpm" and "rpm-addsign" in self.fail_on and "--addsign" in cmd):
            raise ToolFailureError(cmd, 2, f"{tool} failed")

        handler = getattr(self, "_" + tool.replace("-", "_"), None)
        stdout = handler(cmd, cwd) if handler else ""
        if not text and isinstance(stdout, str):
            stdout = stdout.encode()
        return subprocess.CompletedProcess(cmd, 0, stdout, b"" if not text else "")

    def _dpkg_deb(self, cmd, cwd):
        name, arch, version = deb_fields_from_filename(Path(cmd[2]).resolve().name)
        return f"Package: {name}\nArchitecture: {arch}\nVersion: {version}\n"

    def _rpm(self, cmd, cwd):
        target = Path(cmd[-1])
        if "-qp" in cmd:
            name, arch, version, release = rpm_fields_from_filename(target.resolve().name)
            return f"{name}|{arch}|{version}|{release}\n"
        if "--addsign" in cmd:
            with open(target, "ab") as f:
                f.write(b"SIGNED")
        return ""

    def _dpkg_scanpackages(self, cmd, cwd):
        pool = Path(cwd) / cmd[-1]
        entries = []
        for link in sorted(pool.iterdir()):
            name, arch, version = deb_fields_from_filename(link.name)
            entries.append(
                f"Package: {name}\nVersion: {version}\nArchitecture: {arch}\n"
                f"Filename: {cmd[-1]}/{link.name}\n"
            )
        return "\n".join(entries)

    def _createrepo_c(self, cmd, cwd):
        repodata = Path(cmd[-1]) / "repodata"
        repodata.mkdir(exist_ok=True)
        rpms = sorted(p.name for p in Path(cmd[-1]).glob("*.rpm"))
        (repodata / "repomd.xml").write_text("<repomd>" + ",".join(rpms) + "</repomd>\n")
        return ""

    def _gpg(self, cmd, cwd):
        output = Path(cmd[cmd.index("-o") + 1])
        source = Path(cmd[-1])
        output.write_text(
            "-----BEGIN PGP SIGNED MESSAGE-----\n"
            + source.read_text()
            + "-----BEGIN PGP SIGNATURE-----\n"
        )
        return ""

    def _xmllint(self, cmd, cwd):
        return ""


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_artifact():
    """Create a file with given content and modification time."""

    def _make(path: Path, mtime: float = 1_700_000_000, content: bytes | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if content is not None else path.name.encode())
        os.utime(path, (mtime, mtime))
        return path

    return _make


@pytest.fixture
def target():
    return TargetConfig(
        name="virtualmin.dev",
        origin="Virtualmin Developers",
        description="Automatically generated development builds of Virtualmin",
        codename="virtualmin",
        architectures=["all", "amd64"],
    )


@pytest.fixture
def repo_context(tmp_path, target):
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    return RepoContext(
        repo_dir=repo_dir,
        target=target,
        gpg_key="developers@example.com",
        config_dir=tmp_path / "config",
    )
