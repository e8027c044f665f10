#!/usr/bin/env python3
"""
Copy open pull requests from spack/spack into spack/spack-packages.

Run from a clone of the destination repository. For every selected pull
request the non-merge commits between its merge base with the source default
branch and its head are cherry-picked onto the destination default branch and
stored on a local branch ``<prefix>-<number>``. With --create-prs the branch is
pushed and a pull request is opened in the destination repository.

Pull requests that touch files outside the destination repository fail to
cherry-pick and are skipped.
"""

import argparse
import datetime
import logging
import os
import sys
from dataclasses import dataclass

from github.GithubException import GithubException
from rich.console import Console

from git_workspace import (
    GitError,
    Workspace,
    find_destination_remote,
    git_available,
    github_owner,
    github_slug,
)
from github_host import build_migration_body, connect_github, describe_github_error
from migration_errors import MigrationError, PreconditionError, PublishError, SetupError
from migration_outcomes import (
    MigrationOutcome,
    OutcomeKind,
    summarize,
    write_excel_report,
    write_migration_summary,
)
from migration_selection import resolve_numbers, selection_from_args

DEFAULT_SOURCE_REPO = "spack/spack"
DEFAULT_DEST_REPO = "spack/spack-packages"
DEFAULT_BRANCH = "develop"
DEFAULT_BRANCH_PREFIX = "spack-pr"

SOURCE_BASE_BRANCH = "migrate-source-base"
DEST_BASE_BRANCH = "migrate-destination-base"

CURRENT_DATETIME = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

LEVEL_STYLES = {
    "info": None,
    "success": "green",
    "warning": "yellow",
    "error": "bold red",
}


# =============================
# Utility
# =============================

def log_and_print(message, level="info"):
    timestamp = datetime.datetime.now().strftime("%H:%M:%S")
    line = f"[{level.upper()} {timestamp}] {message}"
    target = err_console if level == "error" else console
    target.print(line, style=LEVEL_STYLES.get(level), markup=False, emoji=False, soft_wrap=True)

    if level == "error":
        logging.error(message)
    elif level == "warning":
        logging.warning(message)
    else:
        logging.info(message)


def setup_logging(output_dir):
    os.makedirs(output_dir, exist_ok=True)

    logging.basicConfig(
        filename=os.path.join(output_dir, f"pr_migration_{CURRENT_DATETIME}.log"),
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        force=True
    )


def branch_name(prefix, number):
    return f"{prefix}-{number}"


def pull_request_head(push_remote_url, dest_repo, branch):
    """``owner:branch`` when pushing to a fork, the bare branch otherwise."""
    slug = github_slug(push_remote_url)
    if slug is None or slug.lower() == dest_repo.lower():
        return branch
    return f"{github_owner(push_remote_url)}:{branch}"


@dataclass(frozen=True)
class MigrationConfig:
    source_repo: str
    source_url: str
    source_branch: str
    dest_repo: str
    dest_remote: str
    dest_branch: str
    push_remote: str
    push_remote_url: str
    branch_prefix: str
    publish: bool


# =============================
# Preconditions
# =============================

def check_environment(args, workspace):

    if not git_available():
        raise PreconditionError("git executable not found on PATH")

    if not workspace.is_repository():
        raise PreconditionError(f"{os.path.abspath(args.repo_dir)} is not inside a git clone")

    remotes = workspace.remotes()

    dest_remote = args.dest_remote or find_destination_remote(remotes, args.dest_repo)
    if dest_remote is None:
        raise PreconditionError(
            f"no remote points at {args.dest_repo}; run from a {args.dest_repo} clone or pass --dest-remote"
        )
    if dest_remote not in remotes:
        raise PreconditionError(f"remote '{dest_remote}' does not exist")

    if args.create_prs and args.push_remote not in remotes:
        raise PreconditionError(f"push remote '{args.push_remote}' does not exist")

    if not workspace.is_clean():
        raise PreconditionError("working tree has uncommitted changes; commit or stash them first")

    return MigrationConfig(
        source_repo=args.source_repo,
        source_url=args.source_url or f"https://github.com/{args.source_repo}.git",
        source_branch=args.source_branch,
        dest_repo=args.dest_repo,
        dest_remote=dest_remote,
        dest_branch=args.dest_branch,
        push_remote=args.push_remote,
        push_remote_url=remotes.get(args.push_remote, ""),
        branch_prefix=args.branch_prefix,
        publish=args.create_prs,
    )


# =============================
# Reference branches
# =============================

def fetch_reference_branches(workspace, config):

    log_and_print(f"Fetching {config.dest_repo} {config.dest_branch} from '{config.dest_remote}'")
    try:
        workspace.fetch_reference(config.dest_remote, config.dest_branch, DEST_BASE_BRANCH)
    except GitError as e:
        raise SetupError(f"could not fetch {config.dest_repo} {config.dest_branch}: {e.stderr}") from e

    log_and_print(f"Fetching {config.source_repo} {config.source_branch}")
    try:
        workspace.fetch_reference(config.source_url, config.source_branch, SOURCE_BASE_BRANCH)
    except GitError as e:
        raise SetupError(f"could not fetch {config.source_repo} {config.source_branch}: {e.stderr}") from e


def cleanup_workspace(workspace, start_ref):
    try:
        workspace.restore(start_ref)
    except GitError as e:
        log_and_print(f"Could not check out {start_ref} again: {e.stderr}", "warning")

    for branch in (SOURCE_BASE_BRANCH, DEST_BASE_BRANCH):
        if workspace.branch_exists(branch):
            try:
                workspace.delete_branch(branch)
            except GitError as e:
                log_and_print(f"Could not delete {branch}: {e.stderr}", "warning")


# =============================
# Per pull request migration
# =============================

def publish_branch(number, meta, branch, workspace, host, config):
    if meta is None:
        try:
            meta = host.get_pull(config.source_repo, number)
        except GithubException as e:
            raise PublishError(number, f"could not read pull request: {describe_github_error(e)}") from e

    try:
        workspace.push(config.push_remote, branch)
    except GitError as e:
        raise PublishError(meta.number, f"could not push {branch} to '{config.push_remote}': {e.stderr}") from e

    head = pull_request_head(config.push_remote_url, config.dest_repo, branch)

    try:
        info = host.create_pull(
            config.dest_repo,
            title=meta.title,
            body=build_migration_body(meta, config.source_repo),
            head=head,
            base=config.dest_branch,
        )
    except GithubException as e:
        raise PublishError(meta.number, f"could not create pull request: {describe_github_error(e)}") from e

    return info.url


def migrate_pull_request(number, workspace, host, config):
    """Replay one pull request onto the destination base branch.

    Returns a MigrationOutcome. Raises PublishError when publishing fails; the
    run must stop in that case. A branch created before the failure is kept
    and described by the error's ``outcome``.
    """
    meta = None
    title = "?"
    try:
        meta = host.get_pull(config.source_repo, number)
        title = meta.title
    except GithubException as e:
        logging.warning("Could not read title of #%s: %s", number, describe_github_error(e))

    def outcome(kind, **kwargs):
        return MigrationOutcome(number=number, title=title, kind=kind, **kwargs)

    try:
        head = workspace.fetch_pull_head(config.source_url, number)
    except GitError as e:
        return outcome(OutcomeKind.FETCH_FAILED, detail=e.stderr)

    try:
        base = workspace.merge_base(SOURCE_BASE_BRANCH, head)
        commits = workspace.commit_range(base, head)
    except GitError as e:
        return outcome(OutcomeKind.FETCH_FAILED, detail=f"no merge base with {config.source_branch}: {e.stderr}")

    workspace.reset_to(DEST_BASE_BRANCH)

    if not commits:
        return outcome(OutcomeKind.NO_COMMITS)

    if not workspace.cherry_pick(commits):
        return outcome(OutcomeKind.CONFLICTED, detail=f"{len(commits)} commits")

    branch = branch_name(config.branch_prefix, number)
    try:
        workspace.replace_branch(branch)
    except GitError as e:
        return outcome(OutcomeKind.BRANCH_FAILED, branch=branch, detail=e.stderr)

    if not config.publish:
        return outcome(OutcomeKind.LOCAL_ONLY, branch=branch, detail=f"{len(commits)} commits")

    try:
        url = publish_branch(number, meta, branch, workspace, host, config)
    except PublishError as e:
        e.outcome = outcome(OutcomeKind.PUBLISH_FAILED, branch=branch, detail=str(e))
        raise
    return outcome(OutcomeKind.PUBLISHED, branch=branch, url=url, detail=f"{len(commits)} commits")


def report_outcome(index, total, outcome):
    level = "success" if outcome.succeeded else "warning"
    log_and_print(f"[{index}/{total}] '{outcome.title}' (#{outcome.number}): {outcome.description}", level)
    if outcome.detail and not outcome.succeeded:
        logging.info("#%s detail: %s", outcome.number, outcome.detail)


# =============================
# Run
# =============================

def run_migration(args, selection):

    workspace = Workspace(args.repo_dir)
    config = check_environment(args, workspace)
    host = connect_github(args)

    numbers = resolve_numbers(selection, host, config.source_repo, log=log_and_print)
    if not numbers:
        log_and_print("No matching pull requests, nothing to do", "success")
        return 0

    log_and_print(f"Copying {len(numbers)} pull requests from {config.source_repo} to {config.dest_repo}")

    summary_file = os.path.join(args.output_dir, f"pr_summary_{CURRENT_DATETIME}.csv")
    start_ref = workspace.current_ref()
    outcomes = []

    try:
        fetch_reference_branches(workspace, config)

        for index, number in enumerate(numbers, 1):
            try:
                outcome = migrate_pull_request(number, workspace, host, config)
            except PublishError as e:
                if e.outcome is not None:
                    outcomes.append(e.outcome)
                    report_outcome(index, len(numbers), e.outcome)
                    write_migration_summary(summary_file, e.outcome)
                log_and_print(f"Stopped after {summarize(outcomes).line()}", "warning")
                raise
            outcomes.append(outcome)
            report_outcome(index, len(numbers), outcome)
            write_migration_summary(summary_file, outcome)
    finally:
        cleanup_workspace(workspace, start_ref)

    summary = summarize(outcomes)
    log_and_print(f"Done: {summary.line()}", "success")

    if args.generate_report:
        report_path = os.path.join(args.output_dir, f"pr_migration_{CURRENT_DATETIME}.xlsx")
        write_excel_report(report_path, outcomes)
        log_and_print(f"Excel report generated: {report_path}", "success")

    return 0


# =============================
# MAIN
# =============================

def build_parser():

    parser = argparse.ArgumentParser(
        description="Copy open pull requests from spack/spack to spack/spack-packages"
    )

    parser.add_argument("pull_requests", nargs="*", metavar="PR",
                        help="pull request numbers or URLs (default: open PRs of the author)")
    parser.add_argument("-a", "--author",
                        help="copy all open pull requests of this GitHub user")
    parser.add_argument("-c", "--create-prs", action="store_true",
                        help="push the branches and open pull requests in the destination repository")

    parser.add_argument("--source-repo", default=DEFAULT_SOURCE_REPO)
    parser.add_argument("--source-url", help="URL to fetch source pull requests from")
    parser.add_argument("--source-branch", default=DEFAULT_BRANCH)
    parser.add_argument("--dest-repo", default=DEFAULT_DEST_REPO)
    parser.add_argument("--dest-remote", help="remote of the destination repository (default: detected)")
    parser.add_argument("--dest-branch", default=DEFAULT_BRANCH)
    parser.add_argument("--push-remote", default="origin")
    parser.add_argument("--branch-prefix", default=DEFAULT_BRANCH_PREFIX)

    parser.add_argument("--repo-dir", default=".")
    parser.add_argument("--output-dir", default="output")
    parser.add_argument("--generate-report", action="store_true")

    auth_group = parser.add_mutually_exclusive_group()
    auth_group.add_argument("--github-token", help="default: $GITHUB_TOKEN or $GH_TOKEN")
    auth_group.add_argument("--use-app", action="store_true")

    parser.add_argument("--github-app-id")
    parser.add_argument("--github-installation-id")
    parser.add_argument("--github-private-key")

    return parser


def main(argv=None):

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        selection = selection_from_args(args.pull_requests, args.author)
    except MigrationError as e:
        parser.error(str(e))

    if args.use_app:
        if not (args.github_app_id and args.github_installation_id and args.github_private_key):
            parser.error("--use-app requires app id, installation id, private key")

    setup_logging(args.output_dir)

    try:
        return run_migration(args, selection)
    except MigrationError as e:
        log_and_print(str(e), "error")
        return e.exit_code
    except GitError as e:
        log_and_print(f"Migration failed: {e}", "error")
        return 1
    except GithubException as e:
        log_and_print(f"Migration failed: {describe_github_error(e)}", "error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
