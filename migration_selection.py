"""
Which pull requests a run migrates.

Exactly one of: an explicit list of numbers, every open pull request of a
given author, or every open pull request of the authenticated user.
"""

import re
from dataclasses import dataclass
from typing import Tuple, Union

from github.GithubException import GithubException

from migration_errors import PreconditionError, UsageError

OPEN_PR_PAGE_SIZE = 100

_PULL_URL = re.compile(r"/pull/(\d+)")
_PULL_NUMBER = re.compile(r"^#?(\d+)$")


@dataclass(frozen=True)
class ExplicitNumbers:
    numbers: Tuple[int, ...]


@dataclass(frozen=True)
class AuthorFilter:
    author: str


@dataclass(frozen=True)
class AuthenticatedUser:
    pass


Selection = Union[ExplicitNumbers, AuthorFilter, AuthenticatedUser]


def parse_pr_number(text):
    """Accept ``123``, ``#123`` or a pull request URL."""
    value = str(text).strip()
    match = _PULL_URL.search(value) or _PULL_NUMBER.match(value)
    if not match:
        raise UsageError(f"not a pull request number: {text!r}")
    number = int(match.group(1))
    if number <= 0:
        raise UsageError(f"pull request numbers must be positive: {text!r}")
    return number


def selection_from_args(pull_requests, author) -> Selection:
    if pull_requests and author:
        raise UsageError("pull request numbers and --author are mutually exclusive")

    if pull_requests:
        numbers = []
        for item in pull_requests:
            number = parse_pr_number(item)
            if number not in numbers:
                numbers.append(number)
        return ExplicitNumbers(tuple(numbers))

    if author is not None:
        author = author.strip().lstrip("@")
        if not author:
            raise UsageError("--author must not be empty")
        return AuthorFilter(author)

    return AuthenticatedUser()


def resolve_numbers(selection, host, source_repo, log=None):
    if isinstance(selection, ExplicitNumbers):
        return list(selection.numbers)

    if isinstance(selection, AuthorFilter):
        author = selection.author
    else:
        try:
            author = host.authenticated_login()
        except GithubException as e:
            raise PreconditionError(f"could not determine the authenticated GitHub user: {e}") from e
        if log:
            log(f"Using open pull requests of authenticated user '{author}'")

    return host.list_open_pull_numbers(source_repo, author, limit=OPEN_PR_PAGE_SIZE)
