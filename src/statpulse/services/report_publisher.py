"""
Report publishers.

A publisher receives a finished title and Markdown body and delivers it
somewhere: stdout, a file, or a GitHub issue. Credentials are checked when
the publisher is built so a misconfigured run fails before any work is done.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Protocol, TextIO

import httpx
from opentelemetry import trace

from statpulse.exceptions import ConfigurationError, PublishError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

GITHUB_API_URL = "https://api.github.com"
REPORT_LABEL = "weekly-report"


class ReportPublisher(Protocol):
    def publish(self, title: str, body: str) -> str:
        """Deliver the report and return where it went."""
        ...


class StdoutReportPublisher:
    """Print the report; useful for local runs and CI logs."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def publish(self, title: str, body: str) -> str:
        stream = self.stream or sys.stdout
        stream.write(f"# {title}\n\n{body}\n")
        stream.flush()
        return "stdout"


class FileReportPublisher:
    """Write the report as Markdown into a directory, one file per week."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def publish(self, title: str, body: str) -> str:
        with tracer.start_as_current_span("report.publish.file"):
            slug = title.rsplit(" ", 1)[-1]
            path = self.directory / f"weekly-report-{slug}.md"
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                path.write_text(f"# {title}\n\n{body}\n", encoding="utf-8")
            except OSError as e:
                raise PublishError(f"Could not write report to {path}: {e}") from e
            logger.info("Report written to %s", path)
            return str(path)


class GitHubIssuePublisher:
    """
    Open a GitHub issue for the report.

    Args:
        token: Token with issues:write on the repository.
        repository: "owner/name".
    """

    def __init__(
        self,
        token: str,
        repository: str,
        api_url: str = GITHUB_API_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        if not token:
            raise ConfigurationError("GITHUB_TOKEN not set: publishing to GitHub requires a token")
        if not repository or "/" not in repository:
            raise ConfigurationError(
                "GITHUB_REPOSITORY not set: expected 'owner/name' to publish the report"
            )
        self.token = token
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self._client = client
        self.timeout = timeout

    def publish(self, title: str, body: str) -> str:
        with tracer.start_as_current_span("report.publish.github") as span:
            span.set_attribute("github.repository", self.repository)
            url = f"{self.api_url}/repos/{self.repository}/issues"
            headers = {
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github.v3+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
            payload = {"title": title, "body": body, "labels": [REPORT_LABEL]}

            logger.info('Creating issue: "%s"', title)
            try:
                if self._client is not None:
                    response = self._client.post(url, json=payload, headers=headers)
                else:
                    with httpx.Client(timeout=self.timeout) as client:
                        response = client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                raise PublishError(f"Could not reach GitHub: {e}") from e

            if not response.is_success:
                raise PublishError(
                    f"Failed to create issue: HTTP {response.status_code}: {response.text[:200]}"
                )

            issue_url = response.json().get("html_url", "")
            logger.info("Issue created successfully: %s", issue_url)
            return issue_url


def build_publisher(kind: str, settings) -> ReportPublisher:
    """Construct the publisher named on the command line from settings."""
    if kind == "stdout":
        return StdoutReportPublisher()
    if kind == "file":
        return FileReportPublisher(settings.report_dir)
    if kind == "github":
        return GitHubIssuePublisher(
            token=settings.github_token,
            repository=settings.github_repository,
            api_url=settings.github_api_url,
        )
    raise ConfigurationError(f"Unknown publisher: {kind!r}")
