"""
GitHub access for the pull request migration: authentication, pull request
metadata, listing open pull requests by author, and creating pull requests.
"""

import os
import time
from dataclasses import dataclass

import jwt
import requests
from github import Auth, Github
from github.GithubException import GithubException

from migration_errors import PreconditionError

GITHUB_API = "https://api.github.com"
TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

MIGRATION_NOTICE = (
    "> [!NOTE]\n"
    "> This pull request was migrated from {source_repo}#{number} ({url}).\n"
    "> Original author: @{author}. Please continue the discussion here."
)


@dataclass(frozen=True)
class PullRequestMeta:
    number: int
    title: str
    body: str
    url: str
    author: str


@dataclass(frozen=True)
class PullRequestInfo:
    url: str
    number: int


# =============================
# GitHub App Token
# =============================

def generate_github_app_token(app_id, installation_id, private_key_path):

    with open(private_key_path, "r") as f:
        private_key = f.read()

    now = int(time.time())
    payload = {
        "iat": now - 60,
        "exp": now + (10 * 60),
        "iss": str(app_id)
    }

    encoded_jwt = jwt.encode(payload, private_key, algorithm="RS256")

    headers = {
        "Authorization": f"Bearer {encoded_jwt}",
        "Accept": "application/vnd.github+json"
    }

    url = f"{GITHUB_API}/app/installations/{installation_id}/access_tokens"
    response = requests.post(url, headers=headers)

    if response.status_code != 201:
        raise PreconditionError(f"GitHub App token error: {response.text}")

    return response.json()["token"]


def token_from_environment():
    for name in TOKEN_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def connect_github(args):
    """Build a GitHubHost from the parsed command line arguments."""
    if args.use_app:
        token = generate_github_app_token(
            args.github_app_id,
            args.github_installation_id,
            args.github_private_key
        )
    else:
        token = args.github_token or token_from_environment()

    if not token:
        raise PreconditionError(
            "GitHub credentials required: pass --github-token, set GITHUB_TOKEN, or use --use-app"
        )

    return GitHubHost(Github(auth=Auth.Token(token)))


# =============================
# Host
# =============================

class GitHubHost:

    def __init__(self, client):
        self.client = client

    def authenticated_login(self):
        return self.client.get_user().login

    def get_pull(self, repo, number):
        pr = self.client.get_repo(repo).get_pull(number)
        return PullRequestMeta(
            number=pr.number,
            title=pr.title,
            body=pr.body or "",
            url=pr.html_url,
            author=pr.user.login if pr.user else "ghost",
        )

    def list_open_pull_numbers(self, repo, author, limit=100):
        query = f"repo:{repo} is:pr is:open author:{author}"
        numbers = []
        for issue in self.client.search_issues(query):
            numbers.append(issue.number)
            if len(numbers) >= limit:
                break
        return numbers

    def create_pull(self, repo, title, body, head, base):
        pr = self.client.get_repo(repo).create_pull(
            title=title,
            body=body,
            head=head,
            base=base,
        )
        return PullRequestInfo(url=pr.html_url, number=pr.number)


def build_migration_body(meta, source_repo):
    notice = MIGRATION_NOTICE.format(
        source_repo=source_repo,
        number=meta.number,
        url=meta.url,
        author=meta.author,
    )
    body = (meta.body or "").strip()
    if not body:
        return notice + "\n"
    return f"{notice}\n\n---\n\n{body}\n"


def describe_github_error(exc):
    if isinstance(exc, GithubException):
        message = exc.data.get("message") if isinstance(exc.data, dict) else exc.data
        return f"GitHub API error {exc.status}: {message}"
    return str(exc)
