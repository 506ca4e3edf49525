"""End to end tests for the git sync engine against local repositories."""

from pathlib import Path

import git
import pytest

from buildfetch.command import Command, SubprocessExecutor
from buildfetch.config import BuildEnvironment
from buildfetch.exceptions import SyncError
from buildfetch.git import GitSync, SyncStep
from buildfetch.version import ToolVersion

GIT_VERSION = git.Git().version_info


class RecordingExecutor(SubprocessExecutor):
    """Executor that runs real commands and records them."""

    def __init__(self) -> None:
        self.commands: list[Command] = []

    def count(self, prefix: list[str]) -> int:
        return sum(1 for cmd in self.commands if cmd.cmd[: len(prefix)] == prefix)

    async def run(self, cmd: Command) -> str:
        self.commands.append(cmd)
        return await super().run(cmd)


@pytest.fixture(name="remotes_dir")
def remotes_dir_fixture(tmp_path: Path) -> Path:
    """Directory that stands in for the remote git host."""
    path = tmp_path / "remotes"
    path.mkdir()
    return path


@pytest.fixture(name="remote_repo")
def remote_repo_fixture(remotes_dir: Path) -> git.Repo:
    """Create a local repository at `acme/libfoo.git` with two files."""
    repo_path = remotes_dir / "acme" / "libfoo.git"
    repo_path.mkdir(parents=True)

    repo = git.Repo.init(repo_path)
    repo.config_writer().set_value("user", "name", "myusername").release()
    repo.config_writer().set_value("user", "email", "myemail").release()

    (repo_path / "README.md").write_text("libfoo\n")
    (repo_path / "src").mkdir()
    (repo_path / "src" / "foo.c").write_text("int foo(void) { return 1; }\n")

    repo.git.add(".")
    repo.git.commit(m="Initial commit")
    repo.git.tag("v1.0.0")
    return repo


@pytest.fixture(name="executor")
def executor_fixture() -> RecordingExecutor:
    """Fixture for an executor running real git commands."""
    return RecordingExecutor()


@pytest.fixture(name="git_sync")
def git_sync_fixture(remotes_dir: Path, executor: RecordingExecutor) -> GitSync:
    """Fixture for a GitSync using the local remotes directory."""
    config = BuildEnvironment(git_remote_base=f"file://{remotes_dir}")
    return GitSync(config, executor)


def commit_file(repo: git.Repo, name: str, content: str) -> str:
    """Commit a file change to the repository, returning the commit sha."""
    assert repo.working_tree_dir is not None
    (Path(repo.working_tree_dir) / name).write_text(content)
    repo.git.add(name)
    repo.git.commit(m=f"Update {name}")
    return repo.head.commit.hexsha


async def test_clone_and_resync(
    git_sync: GitSync,
    executor: RecordingExecutor,
    remote_repo: git.Repo,
    tmp_path: Path,
) -> None:
    """Test a fresh clone followed by an idempotent resync."""
    workdir = tmp_path / "libfoo"
    sha = remote_repo.head.commit.hexsha

    await git_sync.sync("acme", "libfoo", sha, workdir)

    local = git.Repo(workdir)
    assert local.head.commit.hexsha == sha
    assert (workdir / "src" / "foo.c").exists()
    assert executor.count(["git", "clone"]) == 1

    await git_sync.sync("acme", "libfoo", sha, workdir)

    assert local.head.commit.hexsha == sha
    assert executor.count(["git", "clone"]) == 1
    assert executor.count(["git", "fetch"]) == 0
    assert not local.is_dirty(untracked_files=True)
    assert local.git.config("--get", "remote.origin.tagOpt") == "--no-tags"


async def test_resync_discards_local_changes(
    git_sync: GitSync, remote_repo: git.Repo, tmp_path: Path
) -> None:
    """Test a dirty working tree is hard reset to the ref."""
    workdir = tmp_path / "libfoo"
    sha = remote_repo.head.commit.hexsha
    await git_sync.sync("acme", "libfoo", sha, workdir)

    (workdir / "README.md").write_text("modified by a failed build\n")
    assert git.Repo(workdir).is_dirty()

    await git_sync.sync("acme", "libfoo", sha, workdir)

    assert (workdir / "README.md").read_text() == "libfoo\n"
    assert not git.Repo(workdir).is_dirty()


async def test_resync_fetches_new_commit(
    git_sync: GitSync,
    executor: RecordingExecutor,
    remote_repo: git.Repo,
    tmp_path: Path,
) -> None:
    """Test a ref not present locally is fetched from the remote."""
    workdir = tmp_path / "libfoo"
    await git_sync.sync("acme", "libfoo", "v1.0.0", workdir)

    new_sha = commit_file(remote_repo, "README.md", "libfoo 2\n")
    await git_sync.sync("acme", "libfoo", new_sha, workdir)

    assert executor.count(["git", "fetch"]) == 1
    assert git.Repo(workdir).head.commit.hexsha == new_sha
    assert (workdir / "README.md").read_text() == "libfoo 2\n"


async def test_unknown_ref(
    git_sync: GitSync, remote_repo: git.Repo, tmp_path: Path
) -> None:
    """Test checking out a ref that does not exist on the remote."""
    workdir = tmp_path / "libfoo"
    with pytest.raises(SyncError) as exc_info:
        await git_sync.sync("acme", "libfoo", "does-not-exist", workdir)
    assert exc_info.value.step == SyncStep.CHECKOUT


async def test_missing_repository(git_sync: GitSync, tmp_path: Path) -> None:
    """Test cloning a repository that does not exist."""
    with pytest.raises(SyncError) as exc_info:
        await git_sync.sync("acme", "missing", "main", tmp_path / "missing")
    assert exc_info.value.step == SyncStep.CLONE
    assert exc_info.value.repository == "acme/missing"


async def test_clone_relative_workdir(
    git_sync: GitSync,
    remote_repo: git.Repo,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a working directory given relative to the current directory."""
    monkeypatch.chdir(tmp_path)
    sha = remote_repo.head.commit.hexsha

    await git_sync.sync("acme", "libfoo", sha, Path("deps/libfoo"))

    workdir = tmp_path / "deps" / "libfoo"
    assert (workdir / ".git").is_dir()
    assert not (workdir / "deps").exists()
    assert git.Repo(workdir).head.commit.hexsha == sha

    await git_sync.sync("acme", "libfoo", sha, Path("deps/libfoo"))
    assert git.Repo(workdir).head.commit.hexsha == sha


@pytest.mark.skipif(GIT_VERSION < (2, 27), reason="git is too old for blobless clones")
async def test_sparse_clone(
    remotes_dir: Path,
    executor: RecordingExecutor,
    remote_repo: git.Repo,
    tmp_path: Path,
) -> None:
    """Test a blobless sparse clone only materializes the requested paths."""
    assert remote_repo.working_tree_dir is not None
    (Path(remote_repo.working_tree_dir) / "docs").mkdir()
    sha = commit_file(remote_repo, "docs/guide.md", "# Guide\n")
    with remote_repo.config_writer() as writer:
        writer.set_value("uploadpack", "allowFilter", "true")
        writer.set_value("uploadpack", "allowAnySHA1InWant", "true")
    config = BuildEnvironment(
        ci=True,
        git_version=ToolVersion(2, 30, 0),
        git_remote_base=f"file://{remotes_dir}",
    )
    workdir = tmp_path / "libfoo"

    await GitSync(config, executor).sync(
        "acme", "libfoo", sha, workdir, sparse_paths=["src"]
    )

    assert executor.count(["git", "clone", "--filter=blob:none"]) == 1
    assert executor.count(["git", "sparse-checkout", "set", "src"]) == 1
    assert git.Repo(workdir).head.commit.hexsha == sha
    assert (workdir / "src" / "foo.c").read_text() == "int foo(void) { return 1; }\n"
    assert not (workdir / "docs").exists()
