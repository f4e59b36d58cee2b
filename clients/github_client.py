#!/usr/bin/env python3
"""GitHub REST client for the PR metadata the changelog agent needs.

Only PR labels are used today: a PR labeled ``no-changelog`` is left out of the
changelog when explicit changelog entries are enabled.
"""

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from changelog.errors import CollaboratorFailure
from configs.config import Config

# Set up logging
logger = logging.getLogger(__name__)

GITHUB_REPO_URL_RE = re.compile(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$")


class GithubAuthError(CollaboratorFailure):
    """Raised when GitHub API authentication fails."""
    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code="AUTH", cause=cause)


class GithubApiError(CollaboratorFailure):
    """Raised when GitHub API operations fail."""
    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code="HTTP", cause=cause)


def owner_and_repo_from_url(repo_url: str) -> Tuple[str, str]:
    """Split ``https://github.com/<owner>/<repo>`` into its parts.

    Raises:
        ValueError: If the URL does not point at a GitHub repository
    """
    match = GITHUB_REPO_URL_RE.search(repo_url.strip())
    if not match:
        raise ValueError(f"Not a GitHub repository URL: '{repo_url}'")
    return match.group(1), match.group(2)


class GithubClient:
    """Minimal GitHub REST client with retries for transient failures."""

    def __init__(self, token: Optional[str] = None, timeout_s: Optional[int] = None, api_url: Optional[str] = None):
        """Initialize GitHub client.

        Args:
            token: GitHub Personal Access Token (defaults to Config.GITHUB_TOKEN)
            timeout_s: Request timeout in seconds (defaults to Config.HTTP_TIMEOUT_S)
            api_url: API base URL (defaults to Config.GITHUB_API_URL)

        Raises:
            GithubAuthError: If no valid token is provided
        """
        github_config = Config.get_github_config()
        self.token = token or github_config["token"]
        self.timeout_s = timeout_s or github_config["timeout_s"]
        self.base_url = (api_url or github_config["api_url"]).rstrip("/")

        if not self.token:
            raise GithubAuthError("GitHub token is required (GITHUB_TOKEN or GITHUB_PAT env var)")

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'changelog-agent/1.0'
        })

        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=1,
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)

        logger.info("GitHub client initialized")

    def get_pull_request_labels(self, owner: str, repo: str, number: int) -> List[str]:
        """Fetch the label names of a pull request.

        Raises:
            GithubAuthError: On HTTP 401
            GithubApiError: If the PR does not exist or the request fails
        """
        url = f"{self.base_url}/repos/{owner}/{repo}/pulls/{number}"

        try:
            logger.info(f"Fetching PR labels: {owner}/{repo}#{number}")
            response = self.session.get(url, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise GithubApiError(f"Failed to fetch PR {owner}/{repo}#{number}: {e}", cause=e) from e

        if response.status_code == 401:
            raise GithubAuthError("Invalid GitHub token or insufficient permissions")
        elif response.status_code == 404:
            raise GithubApiError(f"Pull request {owner}/{repo}#{number} not found")
        elif response.status_code != 200:
            raise GithubApiError(f"GitHub API error: HTTP {response.status_code}")

        data = response.json()
        labels = [label.get("name", "") for label in data.get("labels") or []]
        logger.debug(f"✓ PR #{number} labels: {labels}")
        return labels

    async def fetch_labels(self, owner: str, repo: str, numbers: Iterable[int]) -> Dict[int, List[str]]:
        """Fetch labels of several PRs concurrently."""
        unique = list(dict.fromkeys(numbers))
        results = await asyncio.gather(*(
            asyncio.to_thread(self.get_pull_request_labels, owner, repo, number) for number in unique
        ))
        return dict(zip(unique, results))

    def close(self) -> None:
        """Close the HTTP session."""
        if hasattr(self, 'session'):
            self.session.close()
