#!/usr/bin/env python3
"""Changelog agent for keeping a Keep a Changelog file in sync with git.

This agent gathers commits, tags and package manifests through git, hands them
to the pure changelog core (update, validate, dependency bump checks) and
writes the result back to disk.
"""

import asyncio
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from changelog.api import (
	create_empty_changelog,
	fix_dependency_bump_entries,
	fix_formatting,
	update_changelog,
	validate_changelog,
)
from changelog.changelog_models import ChangeCategory, CommitRecord, PackageRename
from changelog.commit_history import exclude_labeled
from changelog.dependency_bumps import DependencyCheckResult, detect_dependency_bumps, parse_manifest
from changelog.diff_formatter import generate_diff
from changelog.errors import ChangelogError
from changelog.reconciliation import UpdateOptions
from changelog.validator import ValidateOptions, ValidationReport, ViolationKind
from changelog.versioning import is_semver
from clients.file_store import read_text, repository_url_from_manifest, version_from_manifest, write_text
from clients.git_repository import GitRepository
from clients.github_client import GithubClient, owner_and_repo_from_url
from configs.config import Config

load_dotenv()

# Set up logging
logger = logging.getLogger(__name__)


class ChangelogAgent:
	"""Agent that reads git history and maintains the changelog file."""

	def __init__(
		self,
		changelog_path: Optional[str] = None,
		repo_url: Optional[str] = None,
		tag_prefix: Optional[str] = None,
		package_rename: Optional[PackageRename] = None,
		repository: Optional[GitRepository] = None,
		github: Optional[GithubClient] = None,
	):
		"""Initialize the changelog agent.

		Args:
			changelog_path: Changelog file (defaults to Config.CHANGELOG_FILE)
			repo_url: Repository URL used for links (defaults to Config.REPO_URL)
			tag_prefix: Release tag prefix (defaults to Config.TAG_PREFIX)
			package_rename: Optional tag prefix rule for versions before a rename
			repository: Optional GitRepository. If None, creates a new one.
			github: Optional GithubClient. If None, one is created on demand.
		"""
		changelog_config = Config.get_changelog_config()
		self.changelog_path = changelog_path or changelog_config["file"]
		self.repo_url = repo_url or changelog_config["repo_url"]
		self.tag_prefix = tag_prefix if tag_prefix is not None else changelog_config["tag_prefix"]
		self.package_rename = package_rename
		self.repository = repository or GitRepository()
		# Lazy-init GitHub client to avoid requiring a token unless labels are needed
		self._github = github
		logger.info("Changelog agent initialized")

	def _tag_prefixes(self) -> List[str]:
		prefixes = [self.tag_prefix]
		if self.package_rename is not None:
			prefixes.append(self.package_rename.tag_prefix_before_rename)
		return prefixes

	def _github_client(self) -> Optional[GithubClient]:
		if self._github is None and Config.GITHUB_TOKEN:
			self._github = GithubClient()
		return self._github

	async def gather_new_commits(
		self,
		*,
		current_version: Optional[str] = None,
		is_release_candidate: bool = False,
		project_root: Optional[str] = None,
		use_changelog_entry: bool = False,
	) -> List[CommitRecord]:
		"""Commits since the most recent release tag, newest first.

		Raises:
			ValueError: If a release candidate is requested for an already tagged version
			CollaboratorFailure: If a git or GitHub call fails
		"""
		await self.repository.fetch_tags()
		most_recent_tag = await self.repository.most_recent_tag(self._tag_prefixes())
		if is_release_candidate and most_recent_tag == f"{self.tag_prefix}{current_version}":
			raise ValueError(
				f"Current version already has a tag ('{most_recent_tag}'), which is unexpected for a release candidate."
			)
		logger.info(f"Reading commits since {most_recent_tag or 'the beginning of history'}")
		commits = await self.repository.commits_since(most_recent_tag, project_root)
		logger.debug(f"✓ Found {len(commits)} commit(s)")
		if use_changelog_entry:
			commits = await self._exclude_labeled(commits)
		return commits

	async def _exclude_labeled(self, commits: List[CommitRecord]) -> List[CommitRecord]:
		github = self._github_client()
		numbers = [c.pr_number for c in commits if c.pr_number is not None]
		if github is None or not numbers:
			if numbers:
				logger.warning("No GitHub token configured; PR labels are not checked")
			return commits
		owner, repo = owner_and_repo_from_url(self.repo_url)
		labels = await github.fetch_labels(owner, repo, numbers)
		return exclude_labeled(commits, labels, Config.NO_CHANGELOG_LABEL)

	async def update(self, options: UpdateOptions, *, project_root: Optional[str] = None, dry_run: bool = False) -> Optional[str]:
		"""Add new commits to the changelog.

		Returns:
			The updated text, or None when there was nothing to add
		"""
		text = read_text(self.changelog_path)
		commits = await self.gather_new_commits(
			current_version=options.current_version,
			is_release_candidate=options.is_release_candidate,
			project_root=project_root,
			use_changelog_entry=options.use_changelog_entry,
		)
		new_text = update_changelog(text, commits, options)
		if new_text is None:
			return None
		if dry_run:
			logger.info("Dry run: changelog not written")
		else:
			write_text(self.changelog_path, new_text)
			logger.info(f"✓ Updated {self.changelog_path}")
		return new_text

	async def check_dependencies(
		self,
		*,
		from_ref: Optional[str] = None,
		to_ref: str = "HEAD",
		base_branch: Optional[str] = None,
		manifest_path: Optional[str] = None,
	) -> DependencyCheckResult:
		"""Detect dependency bumps between two references.

		``from_ref`` defaults to the merge base of ``to_ref`` with the remote base branch.
		"""
		manifest = manifest_path or Config.MANIFEST_FILE
		if from_ref is None:
			base = f"{self.repository.remote}/{base_branch or Config.BASE_BRANCH}"
			from_ref = await self.repository.merge_base(to_ref, base)
		logger.info(f"Checking dependency bumps in {manifest} between {from_ref[:12]} and {to_ref}")

		before_text, after_text, touching, tags = await asyncio.gather(
			self.repository.show_file(from_ref, manifest),
			self.repository.show_file(to_ref, manifest),
			self.repository.commits_touching(from_ref, to_ref, manifest),
			self.repository.tags_between(from_ref, to_ref),
		)
		snapshots = await asyncio.gather(*(self.repository.show_file(c.sha, manifest) for c in touching))
		intermediate = [parse_manifest(snapshot, c.pr_number) for snapshot, c in zip(snapshots, touching)]
		return detect_dependency_bumps(
			parse_manifest(before_text),
			parse_manifest(after_text),
			intermediate=intermediate,
			tags_in_range=tags,
			tag_prefix=self.tag_prefix,
		)

	def fix_dependencies(self, result: DependencyCheckResult, *, pr_number: Optional[int], use_short_pr_link: bool = False) -> Optional[str]:
		text = read_text(self.changelog_path)
		new_text = fix_dependency_bump_entries(
			text,
			result,
			repo_url=self.repo_url,
			pr_number=pr_number,
			use_short_pr_link=use_short_pr_link,
		)
		if new_text is not None:
			write_text(self.changelog_path, new_text)
			logger.info(f"✓ Updated dependency bump entries in {self.changelog_path}")
		return new_text

	async def validate(
		self,
		*,
		current_version: Optional[str] = None,
		is_release_candidate: bool = False,
		require_pr_links: bool = False,
		check_tags: bool = False,
		check_traceability: bool = False,
		dependency_result: Optional[DependencyCheckResult] = None,
		fix: bool = False,
	) -> ValidationReport:
		"""Validate the changelog file, optionally rewriting its formatting.

		With ``check_traceability``, PR references in the prepared release must
		appear in the commits since the most recent release tag.
		"""
		text = read_text(self.changelog_path)
		tags = None
		commits = None
		if check_tags:
			await self.repository.fetch_tags()
			tag_lists = await asyncio.gather(*(self.repository.list_tags(f"{p}*") for p in self._tag_prefixes()))
			tags = [tag for tag_list in tag_lists for tag in tag_list]
		if check_traceability:
			if not check_tags:
				await self.repository.fetch_tags()
			most_recent_tag = await self.repository.most_recent_tag(self._tag_prefixes())
			commits = await self.repository.commits_since(most_recent_tag)
			logger.debug(f"✓ Tracing entries against {len(commits)} commit(s)")

		options = ValidateOptions(
			repo_url=self.repo_url or None,
			current_version=current_version,
			is_release_candidate=is_release_candidate,
			tag_prefix=self.tag_prefix,
			package_rename=self.package_rename,
			tags=tags,
			require_pr_links=require_pr_links,
			commits=commits,
			dependency_result=dependency_result,
		)
		report = validate_changelog(text, options)
		formatting = report.of_kind(ViolationKind.FORMATTING)
		if fix and formatting and not report.of_kind(ViolationKind.GRAMMAR):
			write_text(self.changelog_path, fix_formatting(text))
			logger.info(f"✓ Rewrote {self.changelog_path} with canonical formatting")
			report.violations = [v for v in report.violations if v.kind != ViolationKind.FORMATTING]
		return report

	def init(self) -> str:
		"""Write an empty changelog.

		Raises:
			ValueError: If the changelog file already exists
		"""
		if os.path.exists(self.changelog_path):
			raise ValueError(f"{self.changelog_path} already exists")
		text = create_empty_changelog(self.repo_url, self.tag_prefix)
		write_text(self.changelog_path, text)
		logger.info(f"✓ Created {self.changelog_path}")
		return text


def _friendly_message_from_code(code: str, *, fallback: str) -> str:
	mapping = {
		"TIMEOUT": f"{fallback}. Please retry or increase COMMAND_TIMEOUT_S.",
		"AUTH": "Access denied. Please check your GitHub token and its scopes.",
	}
	return mapping.get(code, fallback)


def print_report(report: ValidationReport) -> None:
	"""Print every violation, with diffs where available."""
	for violation in report.violations:
		print(f"- [{violation.kind.value}] {violation.message}", file=sys.stderr)
		if violation.detail:
			print(violation.detail, file=sys.stderr)


def _resolve_repo_url(args) -> str:
	repo_url = args.repo or Config.REPO_URL
	if not repo_url:
		manifest = os.path.join(os.path.dirname(os.path.abspath(args.file)), Config.MANIFEST_FILE)
		repo_url = repository_url_from_manifest(manifest) or ""
	if not repo_url:
		raise ValueError("Repository URL not found; pass --repo or set REPO_URL")
	return repo_url


def _resolve_current_version(args) -> Optional[str]:
	version = args.current_version
	if version is None:
		manifest = os.path.join(os.path.dirname(os.path.abspath(args.file)), Config.MANIFEST_FILE)
		version = version_from_manifest(manifest)
		if version is not None:
			logger.debug(f"Current version {version} read from {manifest}")
	if version is not None and not is_semver(version):
		raise ValueError(f"Current version is not valid SemVer: '{version}'")
	return version


def _package_rename(args) -> Optional[PackageRename]:
	version = args.version_before_package_rename
	prefix = args.tag_prefix_before_package_rename
	if version is None and prefix is None:
		return None
	if version is None or prefix is None:
		raise ValueError(
			"--version-before-package-rename and --tag-prefix-before-package-rename must be given together"
		)
	return PackageRename(version_before_rename=version, tag_prefix_before_rename=prefix)


async def _run(args) -> int:
	agent = ChangelogAgent(
		changelog_path=args.file,
		repo_url=_resolve_repo_url(args),
		tag_prefix=args.tag_prefix,
		package_rename=_package_rename(args),
	)

	if args.command == "init":
		agent.init()
		print(f"Created {agent.changelog_path}")
		return 0

	if args.command == "update":
		options = UpdateOptions(
			repo_url=agent.repo_url,
			is_release_candidate=args.rc,
			current_version=_resolve_current_version(args),
			auto_categorize=args.auto_categorize,
			use_changelog_entry=args.use_changelog_entry,
			require_pr_numbers=args.require_pr_numbers,
			use_short_pr_link=args.use_short_pr_link,
			tag_prefix=agent.tag_prefix,
			package_rename=agent.package_rename,
			default_category=ChangeCategory(Config.DEFAULT_CATEGORY),
		)
		before = read_text(agent.changelog_path) if args.dry_run else None
		new_text = await agent.update(options, project_root=args.project_root, dry_run=args.dry_run)
		if new_text is None:
			print("There are no new commits to add to the changelog.")
		elif args.dry_run:
			print(generate_diff(before, new_text, before_label=agent.changelog_path, after_label=f"{agent.changelog_path} (updated)"))
		return 0

	if args.command == "check-deps":
		if args.fix and args.current_pr is None:
			raise ValueError("--current-pr is required together with --fix")
		result = await agent.check_dependencies(from_ref=args.from_ref, to_ref=args.to_ref, base_branch=args.base_branch)
		if not result.bumps:
			print("No dependency bumps found.")
			return 0
		if args.fix:
			new_text = agent.fix_dependencies(result, pr_number=args.current_pr, use_short_pr_link=args.use_short_pr_link)
			print("Dependency bump entries updated." if new_text else "All dependency bump entries already exist.")
			return 0
		report = await agent.validate(dependency_result=result)
		mismatches = report.of_kind(ViolationKind.DEPENDENCY_BUMP)
		for violation in mismatches:
			print(f"- {violation.message}", file=sys.stderr)
		return 1 if mismatches else 0

	if args.command == "validate":
		dependency_result = None
		if args.check_deps:
			dependency_result = await agent.check_dependencies(from_ref=args.from_ref, to_ref=args.to_ref, base_branch=args.base_branch)
			if args.fix and dependency_result.bumps:
				if args.current_pr is None:
					raise ValueError("--current-pr is required together with --check-deps and --fix")
				agent.fix_dependencies(dependency_result, pr_number=args.current_pr)
		report = await agent.validate(
			current_version=_resolve_current_version(args),
			is_release_candidate=args.rc,
			require_pr_links=args.pr_links,
			check_tags=args.check_tags,
			check_traceability=args.check_traceability,
			dependency_result=dependency_result,
			fix=args.fix,
		)
		if report.ok:
			print(f"{agent.changelog_path} is valid.")
			return 0
		print_report(report)
		return 1

	raise ValueError(f"Unknown command: {args.command}")


def main():
	"""CLI entry point for the changelog agent."""
	import argparse

	parser = argparse.ArgumentParser(
		description="Changelog Agent - Keep CHANGELOG.md in sync with git history",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  python -m agents.changelog_agent init --repo https://github.com/o/r
  python -m agents.changelog_agent update --auto-categorize
  python -m agents.changelog_agent update --rc --current-version 1.2.0
  python -m agents.changelog_agent validate --current-version 1.2.0 --rc --pr-links
  python -m agents.changelog_agent validate --check-traceability
  python -m agents.changelog_agent check-deps --fix --current-pr 123
		"""
	)
	parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

	common = argparse.ArgumentParser(add_help=False)
	common.add_argument("--file", default=Config.CHANGELOG_FILE, help="Changelog file path")
	common.add_argument("--repo", required=False, help="Repository URL (defaults to REPO_URL or package.json)")
	common.add_argument("--tag-prefix", default=Config.TAG_PREFIX, help="Release tag prefix")
	common.add_argument("--version-before-package-rename", required=False)
	common.add_argument("--tag-prefix-before-package-rename", required=False)

	deps = argparse.ArgumentParser(add_help=False)
	deps.add_argument("--from-ref", required=False, help="Base reference (defaults to merge base with the base branch)")
	deps.add_argument("--to-ref", default="HEAD")
	deps.add_argument("--base-branch", default=None)
	deps.add_argument("--current-pr", type=int, required=False, help="PR number used for fixed entries")

	sub = parser.add_subparsers(dest="command")
	sub.add_parser("init", parents=[common], help="Create an empty changelog")

	upd = sub.add_parser("update", parents=[common], help="Add new commits to the changelog")
	upd.add_argument("--rc", action="store_true", help="Add changes to the release candidate section")
	upd.add_argument("--current-version", required=False, help="Defaults to the package.json version")
	upd.add_argument("--auto-categorize", action="store_true")
	upd.add_argument("--use-changelog-entry", action="store_true")
	upd.add_argument("--use-short-pr-link", action="store_true")
	upd.add_argument("--require-pr-numbers", action="store_true")
	upd.add_argument("--project-root", required=False, help="Only consider commits touching this path")
	upd.add_argument("--dry-run", action="store_true", help="Print a diff instead of writing")

	val = sub.add_parser("validate", parents=[common, deps], help="Validate the changelog")
	val.add_argument("--rc", action="store_true")
	val.add_argument("--current-version", required=False, help="Defaults to the package.json version")
	val.add_argument("--pr-links", action="store_true", help="Require a PR link on every entry")
	val.add_argument("--check-tags", action="store_true", help="Require a git tag for every release")
	val.add_argument("--check-traceability", action="store_true", help="Require every PR in the prepared release to appear in commits since the last tag")
	val.add_argument("--check-deps", action="store_true", help="Require entries for dependency bumps")
	val.add_argument("--fix", action="store_true", help="Rewrite formatting (and dependency entries with --check-deps)")

	chk = sub.add_parser("check-deps", parents=[common, deps], help="Check dependency bump entries")
	chk.add_argument("--fix", action="store_true")
	chk.add_argument("--use-short-pr-link", action="store_true")

	args = parser.parse_args()

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)

	# Suppress verbose logs from collaborators unless in debug mode
	if not args.verbose:
		logging.getLogger("clients.command_runner").setLevel(logging.WARNING)
		logging.getLogger("clients.git_repository").setLevel(logging.WARNING)
		logging.getLogger("clients.github_client").setLevel(logging.WARNING)

	if args.command is None:
		parser.print_help()
		sys.exit(1)

	try:
		sys.exit(asyncio.run(_run(args)))
	except ChangelogError as e:
		print(f"Error: {_friendly_message_from_code(e.code, fallback=str(e))}", file=sys.stderr)
		sys.exit(1)
	except ValueError as e:
		print(f"Error: {e}", file=sys.stderr)
		sys.exit(1)


if __name__ == "__main__":
	main()
