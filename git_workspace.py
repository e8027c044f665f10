"""
Thin wrapper around the git working tree used for the migration.

The working tree is shared by every pull request processed in a run, so the
driver hands the same Workspace to each item and resets it before replaying.
"""

import re
import shlex
import shutil
import subprocess


GITHUB_REMOTE_PATTERNS = (
    re.compile(r"^https?://(?:[^@/]+@)?github\.com/(?P<slug>[^/]+/[^/]+?)(?:\.git)?/?$", re.IGNORECASE),
    re.compile(r"^(?:ssh://)?git@github\.com[:/](?P<slug>[^/]+/[^/]+?)(?:\.git)?/?$", re.IGNORECASE),
)

PREFERRED_REMOTES = ("upstream", "origin")


class GitError(RuntimeError):

    def __init__(self, args, returncode, stderr):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        super().__init__(
            f"git {shlex.join(self.args_list)} failed ({returncode}): {self.stderr}"
        )


def git_available():
    return shutil.which("git") is not None


# =============================
# Remote helpers
# =============================

def github_slug(url):
    """Return ``owner/name`` for a GitHub remote URL, or None."""
    url = (url or "").strip()
    for pattern in GITHUB_REMOTE_PATTERNS:
        match = pattern.match(url)
        if match:
            return match.group("slug")
    return None


def github_owner(url):
    slug = github_slug(url)
    return slug.split("/")[0] if slug else None


def find_destination_remote(remotes, repo_slug):
    matches = [
        name for name, url in remotes.items()
        if (github_slug(url) or "").lower() == repo_slug.lower()
    ]
    if not matches:
        return None
    for preferred in PREFERRED_REMOTES:
        if preferred in matches:
            return preferred
    return sorted(matches)[0]


# =============================
# Workspace
# =============================

class Workspace:

    def __init__(self, repo_dir="."):
        self.repo_dir = repo_dir

    def run(self, args, check=True):
        result = subprocess.run(
            ["git", *args],
            cwd=self.repo_dir,
            capture_output=True,
            text=True,
        )
        if check and result.returncode != 0:
            raise GitError(args, result.returncode, result.stderr)
        return result

    def output(self, args):
        return self.run(args).stdout.strip()

    # ---------- state ----------

    def is_repository(self):
        result = self.run(["rev-parse", "--is-inside-work-tree"], check=False)
        return result.returncode == 0 and result.stdout.strip() == "true"

    def is_clean(self):
        return self.output(["status", "--porcelain", "--untracked-files=no"]) == ""

    def current_ref(self):
        """Branch name when on a branch, otherwise the commit id."""
        result = self.run(["symbolic-ref", "--quiet", "--short", "HEAD"], check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return self.output(["rev-parse", "HEAD"])

    def remotes(self):
        remotes = {}
        for line in self.output(["remote", "-v"]).splitlines():
            parts = line.split()
            if len(parts) >= 2:
                remotes.setdefault(parts[0], parts[1])
        return remotes

    def rev_parse(self, ref):
        return self.output(["rev-parse", "--verify", f"{ref}^{{commit}}"])

    # ---------- fetching ----------

    def fetch(self, source, refspec):
        self.run(["fetch", "--quiet", "--no-tags", source, refspec])

    def fetch_reference(self, source, branch, local_branch):
        self.fetch(source, f"+refs/heads/{branch}:refs/heads/{local_branch}")

    def fetch_pull_head(self, source, number):
        self.fetch(source, f"pull/{number}/head")
        return self.rev_parse("FETCH_HEAD")

    # ---------- history ----------

    def merge_base(self, first, second):
        return self.output(["merge-base", first, second])

    def commit_range(self, base, head):
        """Non-merge commits in base..head, oldest first."""
        out = self.output(["rev-list", "--reverse", "--topo-order", "--no-merges", f"{base}..{head}"])
        return [sha for sha in out.splitlines() if sha]

    # ---------- working tree ----------

    def reset_to(self, ref):
        self.run(["checkout", "--quiet", "--detach"])
        self.run(["reset", "--quiet", "--hard", ref])

    def cherry_pick(self, commits):
        """Apply commits in order; on any failure abort and return False."""
        if not commits:
            return True
        result = self.run(["cherry-pick", *commits], check=False)
        if result.returncode == 0:
            return True
        self.run(["cherry-pick", "--abort"], check=False)
        if self.cherry_pick_in_progress():
            raise GitError(["cherry-pick", "--abort"], result.returncode, "cherry-pick still in progress after abort")
        return False

    def cherry_pick_in_progress(self):
        result = self.run(["rev-parse", "--verify", "--quiet", "CHERRY_PICK_HEAD"], check=False)
        return result.returncode == 0

    def restore(self, ref):
        self.run(["checkout", "--quiet", ref])

    # ---------- branches ----------

    def branch_exists(self, name):
        result = self.run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
        return result.returncode == 0

    def delete_branch(self, name):
        self.run(["branch", "-D", name])

    def create_branch(self, name, start="HEAD"):
        self.run(["branch", name, start])

    def replace_branch(self, name):
        if self.branch_exists(name):
            self.delete_branch(name)
        self.create_branch(name)

    def push(self, remote, branch):
        self.run(["push", "--quiet", "--force", remote, f"refs/heads/{branch}:refs/heads/{branch}"])
