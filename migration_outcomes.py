"""
Per pull request results and the reports built from them.
"""

import csv
import enum
import os
from dataclasses import dataclass
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font


class OutcomeKind(enum.Enum):
    FETCH_FAILED = "fetch-failed"
    NO_COMMITS = "no-commits"
    CONFLICTED = "conflicted"
    BRANCH_FAILED = "branch-failed"
    PUBLISH_FAILED = "publish-failed"
    LOCAL_ONLY = "local-only"
    PUBLISHED = "published"


SUCCESS_KINDS = frozenset({OutcomeKind.LOCAL_ONLY, OutcomeKind.PUBLISHED})

DESCRIPTIONS = {
    OutcomeKind.FETCH_FAILED: "skipped, could not fetch pull request",
    OutcomeKind.NO_COMMITS: "skipped, no commits to copy",
    OutcomeKind.CONFLICTED: "skipped, cherry-pick failed (non-package PR?)",
    OutcomeKind.BRANCH_FAILED: "skipped, could not create branch",
    OutcomeKind.PUBLISH_FAILED: "kept {branch}, could not publish",
    OutcomeKind.LOCAL_ONLY: "copied to {branch}",
    OutcomeKind.PUBLISHED: "copied to {branch}, opened {url}",
}


@dataclass(frozen=True)
class MigrationOutcome:
    number: int
    title: str
    kind: OutcomeKind
    branch: Optional[str] = None
    url: Optional[str] = None
    detail: str = ""

    @property
    def succeeded(self):
        return self.kind in SUCCESS_KINDS

    @property
    def description(self):
        return DESCRIPTIONS[self.kind].format(branch=self.branch, url=self.url)


@dataclass(frozen=True)
class MigrationSummary:
    processed: int
    copied: int
    skipped: int
    published: int

    def line(self):
        text = f"copied {self.copied}, skipped {self.skipped}"
        if self.published:
            text += f", opened {self.published} pull requests"
        return text


def summarize(outcomes):
    outcomes = list(outcomes)
    copied = sum(1 for o in outcomes if o.succeeded)
    published = sum(1 for o in outcomes if o.kind is OutcomeKind.PUBLISHED)
    return MigrationSummary(
        processed=len(outcomes),
        copied=copied,
        skipped=len(outcomes) - copied,
        published=published,
    )


# =============================
# Reports
# =============================

SUMMARY_FIELDS = ["PR", "Title", "Status", "Branch", "Destination PR", "Detail"]


def _summary_row(outcome):
    return {
        "PR": outcome.number,
        "Title": outcome.title,
        "Status": outcome.kind.value,
        "Branch": outcome.branch or "",
        "Destination PR": outcome.url or "",
        "Detail": outcome.detail,
    }


def write_migration_summary(path, outcome):
    file_exists = os.path.isfile(path)

    with open(path, "a", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=SUMMARY_FIELDS)

        if not file_exists:
            writer.writeheader()

        writer.writerow(_summary_row(outcome))


def write_excel_report(path, outcomes):
    wb = Workbook()
    ws = wb.active
    ws.title = "PR Migration"

    ws.append(SUMMARY_FIELDS)
    for col in ws[1]:
        col.font = Font(bold=True)

    for outcome in outcomes:
        row = _summary_row(outcome)
        ws.append([row[field] for field in SUMMARY_FIELDS])

    summary = summarize(outcomes)
    ws.append([])
    ws.append(["Processed", summary.processed])
    ws.append(["Copied", summary.copied])
    ws.append(["Skipped", summary.skipped])

    wb.save(path)
    return path
