# tests/services/test_report_publisher.py

"""Tests for report publishers."""

import io
import json
from types import SimpleNamespace

import httpx
import pytest

from statpulse.exceptions import ConfigurationError, PublishError
from statpulse.services.report_publisher import (
    FileReportPublisher,
    GitHubIssuePublisher,
    StdoutReportPublisher,
    build_publisher,
)

TITLE = "Weekly Platform Health Report — week of 2026-10-19"


def _settings(**overrides):
    values = {
        "report_dir": "reports",
        "github_token": "ghp_test",
        "github_repository": "siscc/statpulse",
        "github_api_url": "https://api.github.example",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_stdout_publisher_writes_title_and_body():
    stream = io.StringIO()

    location = StdoutReportPublisher(stream).publish(TITLE, "body")

    assert location == "stdout"
    assert stream.getvalue() == f"# {TITLE}\n\nbody\n"


def test_file_publisher_names_file_by_week(tmp_path):
    location = FileReportPublisher(tmp_path / "reports").publish(TITLE, "## body")

    path = tmp_path / "reports" / "weekly-report-2026-10-19.md"
    assert location == str(path)
    assert path.read_text(encoding="utf-8").startswith(f"# {TITLE}")


def test_file_publisher_write_failure(tmp_path):
    blocker = tmp_path / "reports"
    blocker.write_text("")

    with pytest.raises(PublishError):
        FileReportPublisher(blocker).publish(TITLE, "body")


class TestGitHubIssuePublisher:
    """Tests for publishing to GitHub issues."""

    def test_creates_labelled_issue(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(201, json={"html_url": "https://github.com/siscc/statpulse/issues/7"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        publisher = GitHubIssuePublisher("ghp_test", "siscc/statpulse", client=client)

        location = publisher.publish(TITLE, "## body")

        request = seen["request"]
        assert location == "https://github.com/siscc/statpulse/issues/7"
        assert request.method == "POST"
        assert str(request.url) == "https://api.github.com/repos/siscc/statpulse/issues"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        assert request.headers["Accept"] == "application/vnd.github.v3+json"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert json.loads(request.content) == {
            "title": TITLE,
            "body": "## body",
            "labels": ["weekly-report"],
        }

    def test_error_response_raises(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="Resource not accessible"))
        )
        publisher = GitHubIssuePublisher("ghp_test", "siscc/statpulse", client=client)

        with pytest.raises(PublishError, match="HTTP 403"):
            publisher.publish(TITLE, "body")

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        publisher = GitHubIssuePublisher("ghp_test", "siscc/statpulse", client=client)

        with pytest.raises(PublishError):
            publisher.publish(TITLE, "body")

    def test_missing_token(self):
        with pytest.raises(ConfigurationError, match="GITHUB_TOKEN"):
            GitHubIssuePublisher(None, "siscc/statpulse")

    def test_repository_must_be_owner_and_name(self):
        with pytest.raises(ConfigurationError, match="GITHUB_REPOSITORY"):
            GitHubIssuePublisher("ghp_test", "statpulse")


class TestBuildPublisher:

    def test_stdout(self):
        assert isinstance(build_publisher("stdout", _settings()), StdoutReportPublisher)

    def test_file_uses_report_dir(self):
        publisher = build_publisher("file", _settings(report_dir="out"))
        assert str(publisher.directory) == "out"

    def test_github_uses_settings(self):
        publisher = build_publisher("github", _settings())
        assert publisher.repository == "siscc/statpulse"
        assert publisher.api_url == "https://api.github.example"

    def test_github_without_token(self):
        with pytest.raises(ConfigurationError):
            build_publisher("github", _settings(github_token=None))

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            build_publisher("slack", _settings())
