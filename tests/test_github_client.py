"""Tests for the GitHub REST client."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from clients.github_client import GithubApiError, GithubAuthError, GithubClient, owner_and_repo_from_url


def _response(status_code, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


class TestOwnerAndRepo:
    """Test repository URL parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/example-org/example-repo",
            "https://github.com/example-org/example-repo/",
            "git@github.com:example-org/example-repo.git",
        ],
    )
    def test_github_urls(self, url):
        assert owner_and_repo_from_url(url) == ("example-org", "example-repo")

    def test_other_host(self):
        with pytest.raises(ValueError):
            owner_and_repo_from_url("https://gitlab.com/example-org/example-repo")


class TestGithubClient:
    """Test label lookups with a mocked HTTP session."""

    def test_token_is_required(self):
        with patch("clients.github_client.Config.get_github_config", return_value={"token": None, "timeout_s": 5, "api_url": "https://api.github.com"}):
            with pytest.raises(GithubAuthError):
                GithubClient()

    def test_labels(self):
        client = GithubClient(token="t", timeout_s=5, api_url="https://api.github.com")
        client.session = MagicMock()
        client.session.get.return_value = _response(200, {"labels": [{"name": "bug"}, {"name": "no-changelog"}]})

        assert client.get_pull_request_labels("o", "r", 3) == ["bug", "no-changelog"]
        client.session.get.assert_called_once_with("https://api.github.com/repos/o/r/pulls/3", timeout=5)

    @pytest.mark.parametrize("status,error", [(401, GithubAuthError), (404, GithubApiError), (500, GithubApiError)])
    def test_http_errors(self, status, error):
        client = GithubClient(token="t", timeout_s=5)
        client.session = MagicMock()
        client.session.get.return_value = _response(status)

        with pytest.raises(error):
            client.get_pull_request_labels("o", "r", 3)

    def test_network_error(self):
        client = GithubClient(token="t", timeout_s=5)
        client.session = MagicMock()
        client.session.get.side_effect = requests.ConnectionError("down")

        with pytest.raises(GithubApiError) as exc_info:
            client.get_pull_request_labels("o", "r", 3)

        assert exc_info.value.code == "HTTP"

    def test_fetch_labels_concurrently(self):
        client = GithubClient(token="t", timeout_s=5)
        client.get_pull_request_labels = MagicMock(side_effect=lambda owner, repo, number: [f"label-{number}"])

        labels = asyncio.run(client.fetch_labels("o", "r", [1, 2, 1]))

        assert labels == {1: ["label-1"], 2: ["label-2"]}
