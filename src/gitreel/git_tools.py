"""
Read-only git extraction: commits, staged/unstaged diffs, and tracked files.

Every command goes through ``run_git`` which shells out to the git CLI with
an argument list (never a shell string). Refs and paths supplied by callers
are validated first so they can't be smuggled in as options.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from gitreel.errors import GitError

logger = logging.getLogger(__name__)

MAX_GIT_OUTPUT = 2 * 1024 * 1024   # per-command stdout cap
MAX_FILE_DIFF = 20_000             # chars of diff kept per file
GIT_TIMEOUT = 60

# Conservative: branch names, tags, hashes, HEAD~N, HEAD^, @{u}
_REF_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/~^@{}-]*$")
_DIFF_HEADER = re.compile(r"^diff --git a/(.+?) b/(.+)$", re.MULTILINE)

LANGUAGES: dict[str, str] = {
    ".js": "JavaScript", ".jsx": "JavaScript",
    ".ts": "TypeScript", ".tsx": "TypeScript",
    ".py": "Python",
    ".java": "Java",
    ".c": "C",
    ".cpp": "C++", ".cc": "C++", ".cxx": "C++",
    ".h": "C/C++ Header", ".hpp": "C++ Header",
    ".cs": "C#",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".scala": "Scala",
    ".sh": "Shell", ".bash": "Bash",
    ".yml": "YAML", ".yaml": "YAML",
    ".json": "JSON",
    ".toml": "TOML",
    ".xml": "XML",
    ".html": "HTML",
    ".css": "CSS", ".scss": "SCSS", ".sass": "Sass",
    ".md": "Markdown",
    ".sql": "SQL",
    ".r": "R",
    ".m": "Objective-C",
    ".dart": "Dart",
    ".lua": "Lua",
    ".pl": "Perl",
    ".vim": "VimScript",
}


@dataclass
class FileChange:
    path: str
    status: str  # added | modified | deleted | binary
    additions: int = 0
    deletions: int = 0
    diff: str = ""


@dataclass
class CommitInfo:
    hash: str
    author: str
    date: str
    message: str
    files: list[FileChange] = field(default_factory=list)


@dataclass
class DiffInfo:
    kind: str  # staged | unstaged
    files: list[FileChange] = field(default_factory=list)

    @property
    def total_stats(self) -> dict[str, int]:
        return {
            "additions": sum(f.additions for f in self.files),
            "deletions": sum(f.deletions for f in self.files),
            "filesChanged": len(self.files),
        }


@dataclass
class CodebaseFile:
    path: str
    relative_path: str
    language: str
    size: int
    lines: int


@dataclass
class CodebaseInfo:
    root_path: str
    files: list[CodebaseFile] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)


# ─────────────────────────────────────────────────────────────────────────────
# Validation & execution
# ─────────────────────────────────────────────────────────────────────────────


def _validate_ref(ref: str) -> str | None:
    """Return an error message if ``ref`` is unsafe, else None."""
    if not ref:
        return "Error: ref cannot be empty."
    if ref.startswith("-"):
        return f"Error: ref '{ref}' may not start with '-'."
    if not _REF_PATTERN.fullmatch(ref) or ".." in ref:
        return f"Error: ref '{ref}' contains invalid characters."
    return None


def _validate_repo(repo_path: str | Path) -> Path:
    repo = Path(repo_path).expanduser().resolve()
    if not repo.is_dir():
        raise GitError(f"Repository path '{repo_path}' is not a directory")
    return repo


def run_git(repo_path: str | Path, *args: str, limit: int | None = MAX_GIT_OUTPUT) -> str:
    """Run a git command in ``repo_path`` and return stdout."""
    repo = _validate_repo(repo_path)
    cmd = ["git", "-C", str(repo), "-c", "core.quotePath=false", *args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=GIT_TIMEOUT,
        )
    except FileNotFoundError:
        raise GitError("git is not installed or not available in PATH")
    except subprocess.TimeoutExpired:
        raise GitError(f"git {args[0]} timed out after {GIT_TIMEOUT}s")

    if proc.returncode != 0:
        raise GitError(f"git {args[0]} failed: {proc.stderr.strip()}")

    output = proc.stdout
    if limit is not None and len(output) > limit:
        output = output[:limit] + "\n... (truncated)"
    return output


# ─────────────────────────────────────────────────────────────────────────────
# Parsing helpers
# ─────────────────────────────────────────────────────────────────────────────


def _split_diff(full_diff: str) -> dict[str, str]:
    """Map each file path to its own ``diff --git`` section."""
    headers = list(_DIFF_HEADER.finditer(full_diff))
    sections: dict[str, str] = {}
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(full_diff)
        sections[header.group(2)] = full_diff[header.start():end][:MAX_FILE_DIFF]
    return sections


def _parse_changes(numstat: str, name_status: str, full_diff: str) -> list[FileChange]:
    statuses: dict[str, str] = {}
    for line in name_status.splitlines():
        parts = line.split("\t")
        if len(parts) >= 2:
            code = parts[0][:1]
            statuses[parts[-1]] = {"A": "added", "D": "deleted"}.get(code, "modified")

    diffs = _split_diff(full_diff)
    files: list[FileChange] = []
    for line in numstat.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        added, deleted, path = parts[0], parts[1], parts[2]
        if added == "-" and deleted == "-":
            files.append(FileChange(path, "binary"))
            continue
        files.append(FileChange(
            path=path,
            status=statuses.get(path, "modified"),
            additions=int(added),
            deletions=int(deleted),
            diff=diffs.get(path, ""),
        ))
    return files


# ─────────────────────────────────────────────────────────────────────────────
# Extractors
# ─────────────────────────────────────────────────────────────────────────────


def extract_commit_info(repo_path: str | Path, ref: str) -> CommitInfo:
    """Metadata and per-file changes for one commit (root commits included)."""
    err = _validate_ref(ref)
    if err:
        raise GitError(err.removeprefix("Error: "))

    header = run_git(repo_path, "show", "-s", "--format=%H%n%an%n%aI%n%B", ref, "--")
    lines = header.split("\n")
    if len(lines) < 3:
        raise GitError(f"Could not read commit '{ref}'")

    tree_args = ("diff-tree", "--root", "-r", "--no-commit-id", "--no-renames")
    numstat = run_git(repo_path, *tree_args, "--numstat", ref, "--", limit=None)
    name_status = run_git(repo_path, *tree_args, "--name-status", ref, "--", limit=None)
    full_diff = run_git(repo_path, "show", "--format=", "--unified=3", "--no-renames", ref, "--")

    info = CommitInfo(
        hash=lines[0].strip(),
        author=lines[1].strip(),
        date=lines[2].strip(),
        message="\n".join(lines[3:]).strip(),
        files=_parse_changes(numstat, name_status, full_diff),
    )
    logger.info(f"Commit {info.hash[:12]}: {len(info.files)} files changed")
    return info


def extract_diff_info(repo_path: str | Path, staged: bool) -> DiffInfo:
    """Changes in the index (``staged``) or the working tree."""
    base = ("diff", "--no-renames") + (("--cached",) if staged else ())
    numstat = run_git(repo_path, *base, "--numstat", limit=None)
    name_status = run_git(repo_path, *base, "--name-status", limit=None)
    full_diff = run_git(repo_path, *base, "--unified=3")

    info = DiffInfo(
        kind="staged" if staged else "unstaged",
        files=_parse_changes(numstat, name_status, full_diff),
    )
    logger.info(f"{info.kind.capitalize()} changes: {len(info.files)} files")
    return info


def language_for(path: str) -> str:
    return LANGUAGES.get(Path(path).suffix.lower(), "Unknown")


def _count_lines(path: Path) -> int:
    try:
        return path.read_bytes().count(b"\n") + 1
    except OSError:
        return 0


def extract_codebase_info(repo_path: str | Path) -> CodebaseInfo:
    """Every tracked file with its language, size, and line count."""
    repo = _validate_repo(repo_path)
    tracked = [p for p in run_git(repo, "ls-files", limit=None).splitlines() if p.strip()]

    info = CodebaseInfo(root_path=str(repo))
    languages: set[str] = set()
    for relative in tracked:
        full = repo / relative
        try:
            size = full.stat().st_size
        except OSError:
            # deleted from the working tree, dangling symlink, etc.
            continue
        language = language_for(relative)
        info.files.append(CodebaseFile(
            path=str(full),
            relative_path=relative,
            language=language,
            size=size,
            lines=_count_lines(full),
        ))
        if language != "Unknown":
            languages.add(language)

    info.languages = sorted(languages)
    logger.info(f"Codebase {repo}: {info.total_files} tracked files")
    return info
