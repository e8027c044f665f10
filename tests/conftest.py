import shutil
import subprocess

import pytest
from github.GithubException import GithubException

from github_host import PullRequestInfo, PullRequestMeta

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd, *args):
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


def ref_exists(repo, ref):
    result = subprocess.run(
        ["git", "show-ref", "--verify", "--quiet", ref],
        cwd=repo,
    )
    return result.returncode == 0


def branch_exists(repo, name):
    return ref_exists(repo, f"refs/heads/{name}")


def commit_file(repo, path, content, message):
    target = repo / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", path)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def init_repo(path):
    path.mkdir()
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/develop")
    return path


class GitRepos:
    """A source repo with pull request refs, a destination repo and a clone of it."""

    def __init__(self, root):
        self.source = init_repo(root / "spack")
        commit_file(self.source, "lib/spack/core.py", "core = 1\n", "core library")
        commit_file(self.source, "packages/zlib/package.py", "version 1\n", "add zlib")

        self.dest = init_repo(root / "spack-packages")
        commit_file(self.dest, "packages/zlib/package.py", "version 1\n", "add zlib")
        commit_file(self.dest, "packages/bzip2/package.py", "version 1\n", "add bzip2")

        git(root, "clone", "-q", str(self.dest), "clone")
        self.clone = root / "clone"

    def make_pr(self, number, changes):
        """Create refs/pull/<number>/head in the source repo with one commit per change."""
        branch = f"pr-{number}"
        git(self.source, "checkout", "-q", "-b", branch, "develop")
        for path, content, message in changes:
            commit_file(self.source, path, content, message)
        git(self.source, "update-ref", f"refs/pull/{number}/head", "HEAD")
        git(self.source, "checkout", "-q", "develop")

    def package_pr(self, number, version="2"):
        self.make_pr(number, [
            ("packages/zlib/package.py", f"version 1\nversion {version}\n", f"zlib: add version {version}"),
        ])

    def core_pr(self, number):
        self.make_pr(number, [
            ("lib/spack/core.py", f"core = {number}\n", f"core: change {number}"),
        ])

    def merge_only_pr(self, number):
        """A pull request whose only commit relative to develop is a merge."""
        branch = f"pr-{number}"
        git(self.source, "checkout", "-q", "-b", branch, "develop")
        git(self.source, "checkout", "-q", "develop")
        commit_file(self.source, "lib/spack/util.py", "util = 1\n", "util")
        git(self.source, "checkout", "-q", branch)
        git(self.source, "merge", "-q", "--no-ff", "-m", "Merge develop", "develop")
        git(self.source, "update-ref", f"refs/pull/{number}/head", "HEAD")
        git(self.source, "checkout", "-q", "develop")

    def cli_args(self, *extra, output_dir=None):
        args = [
            "--repo-dir", str(self.clone),
            "--dest-remote", "origin",
            "--source-url", str(self.source),
        ]
        if output_dir is not None:
            args += ["--output-dir", str(output_dir)]
        return args + list(extra)


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Migration Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "migration@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Migration Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "migration@example.com")
    return home


@pytest.fixture
def repos(tmp_path, git_env):
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    return GitRepos(tmp_path)


def github_error(status, message):
    return GithubException(status, {"message": message}, None)


class FakeHost:

    def __init__(self, titles=None, login="octocat", open_pulls=None,
                 fail_login=False, fail_create=False):
        self.titles = dict(titles or {})
        self.login = login
        self.open_pulls = dict(open_pulls or {})
        self.fail_login = fail_login
        self.fail_create = fail_create
        self.looked_up = []
        self.listed = []
        self.created = []

    def authenticated_login(self):
        if self.fail_login:
            raise github_error(401, "Bad credentials")
        return self.login

    def get_pull(self, repo, number):
        self.looked_up.append(number)
        if number not in self.titles:
            raise github_error(404, "Not Found")
        return PullRequestMeta(
            number=number,
            title=self.titles[number],
            body=f"Body of {number}",
            url=f"https://github.com/{repo}/pull/{number}",
            author="contributor",
        )

    def list_open_pull_numbers(self, repo, author, limit=100):
        self.listed.append((repo, author, limit))
        return list(self.open_pulls.get(author, []))

    def create_pull(self, repo, title, body, head, base):
        if self.fail_create:
            raise github_error(422, "Validation Failed")
        number = 1000 + len(self.created)
        self.created.append({"repo": repo, "title": title, "body": body, "head": head, "base": base})
        return PullRequestInfo(url=f"https://github.com/{repo}/pull/{number}", number=number)
