"""
Parsers for git's textual output.

Every function here is pure: raw command output in, typed records out. Malformed
lines are either skipped or recovered on a best-effort basis; none of them raise.

"""

from __future__ import annotations

import logging
import re

from gitarbor.git.types import (
	UNKNOWN_BRANCH,
	Branch,
	Commit,
	FileEntry,
	GitStatus,
	ParseOutcome,
	ParseQuality,
	Remote,
	Stash,
	Tag,
)

logger = logging.getLogger(__name__)

FIELD_SEP = "\x00"
LOG_FORMAT = "%H%x00%h%x00%an%x00%ar%x00%s"
BRANCH_FORMAT = "%(refname)|%(upstream:short)|%(committerdate:relative)|%(HEAD)"
TAG_FORMAT = (
	"%(refname:short)|"
	"%(if)%(*objectname)%(then)%(*objectname:short)%(else)%(objectname:short)%(end)|"
	"%(creatordate:short)|%(subject)|%(objecttype)"
)

UNTRACKED_STATUS = "untracked"

_LOCAL_PREFIX = "refs/heads/"
_REMOTE_PREFIX = "refs/remotes/"
_REMOTE_NAME_PREFIX = "remotes/"

_STASH_PATTERN = re.compile(r"^(stash@\{(\d+)\}):\s*(?:WIP on|On) ([^:]+):\s?(.*)$")
_STASH_INDEX = re.compile(r"\{(\d+)\}")
_REMOTE_LINE = re.compile(r"^(\S+)\s+(\S+)\s+\((fetch|push)\)\s*$")


def _unquote_path(path: str) -> str:
	"""Undo git's C-style quoting of paths with unusual characters."""
	if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):  # noqa: PLR2004
		return path
	inner = path[1:-1]
	try:
		return inner.encode("latin-1", "backslashreplace").decode("unicode_escape").encode("latin-1").decode("utf-8")
	except (UnicodeDecodeError, UnicodeEncodeError):
		logger.debug("Could not unquote path %s, using it verbatim", path)
		return inner


def porcelain_path(raw: str) -> str:
	"""Path of a porcelain status entry, taking the new name of renames."""
	# Renames and copies are reported as "old -> new"
	if " -> " in raw:
		raw = raw.split(" -> ", 1)[1]
	return _unquote_path(raw)


def parse_status(output: str, branch: str = "", ahead: int = 0, behind: int = 0) -> GitStatus:
	"""
	Parse ``git status --porcelain`` output.

	The first status column is the index state, the second the worktree state.
	A path that is both staged and modified lands in both collections.

	Args:
	    output: Raw porcelain output
	    branch: Name of the checked-out branch
	    ahead: Commits ahead of upstream
	    behind: Commits behind upstream

	Returns:
	    GitStatus with independent staged, unstaged and untracked views

	"""
	status = GitStatus(branch=branch, ahead=ahead, behind=behind)
	for line in output.splitlines():
		if len(line) < 4:  # noqa: PLR2004
			continue
		index_code, worktree_code = line[0], line[1]
		path = porcelain_path(line[3:])
		if index_code == "?" and worktree_code == "?":
			status.untracked.append(FileEntry(path=path, status=UNTRACKED_STATUS, staged=False))
			continue
		if index_code not in {" ", "?"}:
			status.staged.append(FileEntry(path=path, status=index_code, staged=True))
		if worktree_code not in {" ", "?"}:
			status.unstaged.append(FileEntry(path=path, status=worktree_code, staged=False))
	return status


def parse_ahead_behind(output: str) -> tuple[int, int]:
	"""
	Parse ``git rev-list --left-right --count HEAD...@{upstream}``.

	Returns:
	    (ahead, behind), zeros for anything unreadable

	"""
	parts = output.split()
	try:
		ahead = int(parts[0]) if parts else 0
		behind = int(parts[1]) if len(parts) > 1 else 0
	except ValueError:
		return 0, 0
	return ahead, behind


def parse_log_line(line: str) -> ParseOutcome[Commit] | None:
	"""Parse one NUL-delimited log line; ``None`` when it holds no hash."""
	fields = line.split(FIELD_SEP)
	if not fields[0].strip():
		return None
	if len(fields) < 5:  # noqa: PLR2004
		fields += [""] * (5 - len(fields))
		quality = ParseQuality.RECOVERED
	else:
		quality = ParseQuality.PARSED
	commit_hash, short_hash, author, date = fields[:4]
	# The subject is last, so any stray separators belong to it
	message = FIELD_SEP.join(fields[4:])
	return ParseOutcome(
		Commit(hash=commit_hash, short_hash=short_hash, author=author, date=date, message=message),
		quality,
	)


def parse_log(output: str) -> list[Commit]:
	"""Parse ``git log`` output produced with :data:`LOG_FORMAT`."""
	commits = []
	for line in output.splitlines():
		outcome = parse_log_line(line)
		if outcome is None:
			continue
		if outcome.recovered:
			logger.debug("Log line had missing fields: %r", line)
		commits.append(outcome.value)
	return commits


def parse_branch_line(line: str) -> Branch | None:
	"""Parse one ``git for-each-ref`` line produced with :data:`BRANCH_FORMAT`."""
	fields = line.split("|")
	refname = fields[0].strip()
	if not refname:
		return None
	upstream = fields[1].strip() if len(fields) > 1 else ""
	date = fields[2].strip() if len(fields) > 2 else ""  # noqa: PLR2004
	head = fields[3].strip() if len(fields) > 3 else ""  # noqa: PLR2004

	if refname.startswith(_REMOTE_PREFIX):
		name = _REMOTE_NAME_PREFIX + refname[len(_REMOTE_PREFIX) :]
	elif refname.startswith(_LOCAL_PREFIX):
		name = refname[len(_LOCAL_PREFIX) :]
	else:
		name = refname
	remote = name.startswith(_REMOTE_NAME_PREFIX)
	# Symbolic remote HEAD pointers are not branches
	if remote and name.endswith("/HEAD"):
		return None
	return Branch(
		name=name,
		current=head == "*",
		remote=remote,
		upstream=upstream or None,
		last_commit_date=date or None,
	)


def parse_branches(output: str) -> list[Branch]:
	"""Parse the local and remote branch listing."""
	branches = []
	for line in output.splitlines():
		branch = parse_branch_line(line)
		if branch is not None:
			branches.append(branch)
	return branches


def parse_stash_line(line: str, position: int = 0) -> ParseOutcome[Stash] | None:
	"""
	Parse one ``git stash list`` line.

	Lines that do not match ``stash@{N}: WIP on <branch>: <message>`` (or the
	``On <branch>:`` form) are recovered: the index comes from ``{N}`` and the
	message is everything after the first colon, with the branch unknown.

	Args:
	    line: A single stash line
	    position: Line position, used as the index when the line has no ``{N}``

	Returns:
	    Tagged outcome, or None for a blank line

	"""
	line = line.strip()
	if not line:
		return None
	match = _STASH_PATTERN.match(line)
	if match:
		name, index, branch, message = match.groups()
		return ParseOutcome(Stash(index=int(index), name=name, branch=branch.strip(), message=message))

	index_match = _STASH_INDEX.search(line)
	index = int(index_match.group(1)) if index_match else position
	_, sep, rest = line.partition(":")
	message = rest.strip() if sep else line
	return ParseOutcome(
		Stash(index=index, name=f"stash@{{{index}}}", branch=UNKNOWN_BRANCH, message=message),
		ParseQuality.RECOVERED,
	)


def parse_stashes(output: str) -> list[Stash]:
	"""Parse ``git stash list`` output."""
	stashes = []
	for position, line in enumerate(output.splitlines()):
		outcome = parse_stash_line(line, position)
		if outcome is None:
			continue
		if outcome.recovered:
			logger.debug("Recovered malformed stash line: %r", line)
		stashes.append(outcome.value)
	return stashes


def parse_tag_line(line: str) -> Tag | None:
	"""Parse one ``git for-each-ref refs/tags`` line produced with :data:`TAG_FORMAT`."""
	fields = line.split("|")
	if len(fields) < 5 or not fields[0].strip():  # noqa: PLR2004
		return None
	name, commit, date = (f.strip() for f in fields[:3])
	object_type = fields[-1].strip()
	# Subjects may contain the separator themselves
	subject = "|".join(fields[3:-1]).strip()
	is_annotated = object_type == "tag"
	return Tag(
		name=name,
		commit=commit,
		date=date,
		message=(subject or None) if is_annotated else None,
		is_annotated=is_annotated,
	)


def parse_tags(output: str) -> list[Tag]:
	"""Parse the tag listing."""
	tags = []
	for line in output.splitlines():
		tag = parse_tag_line(line)
		if tag is not None:
			tags.append(tag)
	return tags


def parse_remotes(output: str) -> list[Remote]:
	"""
	Parse ``git remote -v`` output.

	Fetch and push lines for the same name are folded into one record, in
	whichever order they appear. A remote without a push line has an empty push URL.

	"""
	urls: dict[str, dict[str, str]] = {}
	for line in output.splitlines():
		match = _REMOTE_LINE.match(line.strip())
		if not match:
			continue
		name, url, kind = match.groups()
		urls.setdefault(name, {})[kind] = url
	return [
		Remote(name=name, fetch_url=kinds.get("fetch", ""), push_url=kinds.get("push", ""))
		for name, kinds in urls.items()
	]
