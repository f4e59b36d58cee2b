import os
from typing import Dict, Any

class Config:
	"""Configuration for the changelog agent."""

	# Changelog file and conventions
	CHANGELOG_FILE = os.getenv("CHANGELOG_FILE", "CHANGELOG.md")
	TAG_PREFIX = os.getenv("TAG_PREFIX", "v")
	REPO_URL = os.getenv("REPO_URL", "")
	MANIFEST_FILE = os.getenv("MANIFEST_FILE", "package.json")
	DEFAULT_CATEGORY = os.getenv("DEFAULT_CATEGORY", "Changed")
	NO_CHANGELOG_LABEL = os.getenv("NO_CHANGELOG_LABEL", "no-changelog")

	# GitHub REST Configuration
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip('/')
	GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT")
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))

	# Git command runner
	COMMAND_TIMEOUT_S = int(os.getenv("COMMAND_TIMEOUT_S", "60"))
	COMMAND_MAX_CONCURRENCY = int(os.getenv("COMMAND_MAX_CONCURRENCY", "8"))
	GIT_FETCH_TAGS = bool(int(os.getenv("GIT_FETCH_TAGS", "1")))
	GIT_REMOTE = os.getenv("GIT_REMOTE", "origin")
	BASE_BRANCH = os.getenv("BASE_BRANCH", "main")

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub configuration for the REST client."""
		return {
			"api_url": cls.GITHUB_API_URL,
			"token": cls.GITHUB_TOKEN,
			"timeout_s": cls.HTTP_TIMEOUT_S
		}

	@classmethod
	def get_git_config(cls) -> Dict[str, Any]:
		return {
			"timeout_s": cls.COMMAND_TIMEOUT_S,
			"max_concurrency": cls.COMMAND_MAX_CONCURRENCY,
			"fetch_tags": cls.GIT_FETCH_TAGS,
			"remote": cls.GIT_REMOTE,
			"base_branch": cls.BASE_BRANCH,
		}

	@classmethod
	def get_changelog_config(cls) -> Dict[str, Any]:
		"""Get changelog defaults.

		Returns:
			Mapping with file path, tag prefix, repository URL, manifest path,
			default category for conventional commits and the opt-out label.
		"""
		return {
			"file": cls.CHANGELOG_FILE,
			"tag_prefix": cls.TAG_PREFIX,
			"repo_url": cls.REPO_URL,
			"manifest": cls.MANIFEST_FILE,
			"default_category": cls.DEFAULT_CATEGORY,
			"no_changelog_label": cls.NO_CHANGELOG_LABEL,
		}
