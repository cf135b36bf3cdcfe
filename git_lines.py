#!/usr/bin/env python3
# git_lines.py
# Non-interactive line-level git staging
# Usage:
#   uv run git_lines.py diff [<file> ...] [--format text|pretty|json]
#   uv run git_lines.py stage config.nix:-10,10,12..14 [<file>:<refs> ...]
#   uv run git_lines.py mcp  # Run as MCP server

import argparse
import dataclasses
import json
import logging
import os
import re
import subprocess
import sys
from typing import Any, Callable

logger = logging.getLogger(__name__)

GIT_DIFF_ARGS = ["diff", "--no-ext-diff", "-U0", "--no-color", "--relative"]  # zero context, cwd-relative paths
GIT_APPLY_ARGS = ["apply", "--cached", "--unidiff-zero", "-"]  # patch read from stdin
NO_NEWLINE_MARKER = "\\ No newline at end of file"

LinePredicate = Callable[[int], bool]
PathLinePredicate = Callable[[str, int], bool]

# ---------- Errors ----------

class GitLinesError(Exception):
    """Base class for every error reported to the user."""


class NoChangesError(GitLinesError):
    def __init__(self, file: str):
        super().__init__(f"No changes found in {file}")
        self.file = file


class NoMatchingLinesError(GitLinesError):
    def __init__(self, file: str):
        super().__init__(f"No matching lines found for {file}")
        self.file = file


class GitCommandError(GitLinesError):
    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class RefSyntaxError(GitLinesError, ValueError):
    """A FILE:REFS argument that does not follow the selector grammar."""

# ---------- Utility ----------

def run(cmd: list[str], input_text: str | None = None) -> str:
    # bytes, not text mode: content lines may end in '\r'
    env = os.environ.copy()
    env.setdefault("LC_ALL", "C")
    env.setdefault("LANG", "C")
    logger.debug("run: %s", " ".join(cmd))
    stdin = input_text.encode("utf-8", errors="surrogateescape") if input_text is not None else None
    p = subprocess.run(cmd, capture_output=True, input=stdin, env=env)
    stdout = p.stdout.decode("utf-8", errors="surrogateescape")
    if p.returncode != 0:
        raise subprocess.CalledProcessError(p.returncode, cmd, stdout, p.stderr.decode("utf-8", errors="replace"))
    return stdout

def split_lines(text: str) -> list[str]:
    """Split diff text on '\\n' only, so a trailing '\\r' stays part of the line."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines

_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}
_OCTAL_ESCAPE_RE = re.compile(r"[0-3][0-7]{2}")

def _unquote_git_path(raw: str) -> str:
    """Undo git's C-quoting of paths, e.g. "b/na\\303\\257ve.txt".

    Bytes that are not UTF-8 come back as surrogates, like everything read through run().
    """
    if len(raw) < 2 or raw[0] != '"' or raw[-1] != '"':
        return raw
    body = raw[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        nxt = body[i + 1:i + 2]
        if ch == "\\" and nxt in _C_ESCAPES:
            out.append(_C_ESCAPES[nxt])
            i += 2
        elif ch == "\\" and _OCTAL_ESCAPE_RE.fullmatch(body[i + 1:i + 4]):
            out.append(int(body[i + 1:i + 4], 8))
            i += 4
        else:
            out += ch.encode("utf-8", errors="surrogateescape")
            i += 1
    return out.decode("utf-8", errors="surrogateescape")

# ---------- Hunk ----------

HUNK_HEADER_RE = re.compile(r'^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@')


@dataclasses.dataclass(frozen=True)
class ModifiedLines:
    """One side of a hunk: the deleted lines (old) or the added lines (new).

    Line ``i`` of ``lines`` is absolute line ``start + i`` in that side's numbering.
    """
    start: int  # 0 only for an empty old side at the top of the file
    lines: list[str] = dataclasses.field(default_factory=list)
    missing_final_newline: bool = False  # last line had no trailing newline in the source file

    def __post_init__(self):
        # The flag describes the last line; an empty side has none.
        if not self.lines and self.missing_final_newline:
            object.__setattr__(self, "missing_final_newline", False)

    def numbered(self) -> list[tuple[int, str]]:
        return [(self.start + i, line) for i, line in enumerate(self.lines)]

    @property
    def last_line_number(self) -> int:
        return self.start + len(self.lines) - 1


@dataclasses.dataclass(frozen=True)
class FilteredContent:
    """Lines of one hunk that survived filtering, before positions are rebuilt.

    Deletions keep their old line numbers. Additions carry none: all additions
    of a hunk share the hunk's insertion point in the old file.
    """
    insertion_point: int
    deletions: list[tuple[int, str]]
    additions: list[str]
    old_missing_final_newline: bool = False
    new_missing_final_newline: bool = False


@dataclasses.dataclass(frozen=True)
class Hunk:
    """One contiguous block of deletions and/or additions of a zero-context diff."""
    old: ModifiedLines
    new: ModifiedLines

    @classmethod
    def parse(cls, text: str) -> "Hunk | None":
        """Parse one hunk: header, '-' lines, optional marker, '+' lines, optional marker.

        Returns None when the header is malformed, when a line falls outside that
        grammar (context lines included), or when the header counts disagree with
        the number of lines.
        """
        lines = split_lines(text)
        if not lines:
            return None
        m = HUNK_HEADER_RE.match(lines[0])
        if not m:
            return None
        old_count = int(m.group(2)) if m.group(2) is not None else 1
        new_count = int(m.group(4)) if m.group(4) is not None else 1

        body = lines[1:]
        old_lines, pos = _take_signed(body, 0, "-")
        old_missing, pos = _take_marker(body, pos)
        new_lines, pos = _take_signed(body, pos, "+")
        new_missing, pos = _take_marker(body, pos)
        if pos != len(body):
            return None
        if len(old_lines) != old_count or len(new_lines) != new_count:
            return None

        return cls(
            old=ModifiedLines(int(m.group(1)), old_lines, old_missing),
            new=ModifiedLines(int(m.group(3)), new_lines, new_missing),
        )

    def render(self) -> str:
        out = [f"@@ {_header_range('-', self.old)} {_header_range('+', self.new)} @@"]
        out.extend("-" + line for line in self.old.lines)
        if self.old.missing_final_newline:
            out.append(NO_NEWLINE_MARKER)
        out.extend("+" + line for line in self.new.lines)
        if self.new.missing_final_newline:
            out.append(NO_NEWLINE_MARKER)
        return "\n".join(out) + "\n"

    def __str__(self) -> str:
        return self.render()

    def filter(self, keep_old: LinePredicate, keep_new: LinePredicate) -> FilteredContent | None:
        """Keep only the lines whose absolute numbers the predicates accept.

        Args:
            keep_old: Predicate over old line numbers (deletions)
            keep_new: Predicate over new line numbers (additions)

        Returns:
            FilteredContent, or None when neither side kept anything.

        Note:
            When the old side lacks a final newline and the kept additions do not
            start at the first addition, the old last line is forced into the
            deletions and copied in front of the additions. Without that bridge
            the kept additions would be glued onto the unterminated last line.
        """
        deletions, _, kept_old_last = _select(self.old, keep_old)
        kept_new, kept_new_first, kept_new_last = _select(self.new, keep_new)
        if not deletions and not kept_new:
            return None

        additions = [line for _, line in kept_new]
        if self.old.missing_final_newline and additions and not kept_new_first:
            bridge = self.old.lines[-1]
            if not kept_old_last:
                deletions = deletions + [(self.old.last_line_number, bridge)]
                kept_old_last = True
            additions = [bridge] + additions

        return FilteredContent(
            insertion_point=self.old.start,
            deletions=deletions,
            additions=additions,
            old_missing_final_newline=kept_old_last and self.old.missing_final_newline,
            new_missing_final_newline=kept_new_last and self.new.missing_final_newline,
        )


def _header_range(sign: str, side: ModifiedLines) -> str:
    if len(side.lines) == 1:
        return f"{sign}{side.start}"
    return f"{sign}{side.start},{len(side.lines)}"

def _take_signed(body: list[str], pos: int, sign: str) -> tuple[list[str], int]:
    taken: list[str] = []
    while pos < len(body) and body[pos].startswith(sign):
        taken.append(body[pos][1:])
        pos += 1
    return taken, pos

def _take_marker(body: list[str], pos: int) -> tuple[bool, int]:
    # git localises the marker text, so any '\' line counts
    if pos < len(body) and body[pos].startswith("\\"):
        return True, pos + 1
    return False, pos

def _select(side: ModifiedLines, keep: LinePredicate) -> tuple[list[tuple[int, str]], bool, bool]:
    """Return the kept (number, line) pairs and whether the first/last line survived."""
    kept = [(num, line) for num, line in side.numbered() if keep(num)]
    if not kept:
        return kept, False, False
    return kept, kept[0][0] == side.start, kept[-1][0] == side.last_line_number

# ---------- FileDiff ----------

@dataclasses.dataclass(frozen=True)
class FileDiff:
    """All hunks of one file, in ascending position."""
    path: str
    hunks: list[Hunk] = dataclasses.field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "FileDiff | None":
        """Parse one file section (optional 'diff --git' header, '---'/'+++' pair, hunks).

        Returns None when there is no '+++ b/<path>' line or any hunk is malformed.
        """
        lines = split_lines(text)
        path = None
        pos = 0
        while pos < len(lines):
            line = lines[pos]
            pos += 1
            if line.startswith("+++ "):
                target = _unquote_git_path(line[4:].rstrip("\t"))
                if target.startswith("b/"):
                    path = target[2:]
                break
        if not path:
            return None

        hunks: list[Hunk] = []
        chunk: list[str] = []
        for line in lines[pos:] + ["@@"]:
            if line.startswith("@@"):
                if chunk:
                    hunk = Hunk.parse("\n".join(chunk) + "\n")
                    if hunk is None:
                        return None
                    hunks.append(hunk)
                chunk = [line]
            elif chunk and line[:1] in ("-", "+", "\\"):
                chunk.append(line)
            else:
                return None

        return cls(path, hunks)

    def render(self) -> str:
        return f"--- a/{self.path}\n+++ b/{self.path}\n" + "".join(h.render() for h in self.hunks)

    def __str__(self) -> str:
        return self.render()

    def filter(self, keep_old: LinePredicate, keep_new: LinePredicate) -> "FileDiff | None":
        """Filter every hunk and rebuild positions so the result applies on its own.

        A hunk that keeps only additions stays one hunk anchored at its insertion
        point. A hunk that keeps only deletions splits into one hunk per run of
        consecutive old lines. A hunk that keeps both stays one hunk.

        Every emitted hunk shifts the new-file start of the ones after it by its
        own net line count, since earlier hunks may now contribute fewer lines.
        """
        hunks: list[Hunk] = []
        delta = 0  # net lines added by hunks emitted so far
        original_delta = 0  # net lines added by input hunks seen so far
        for hunk in self.hunks:
            content = hunk.filter(keep_old, keep_new)
            if content is not None:
                offset = hunk.new.start - hunk.old.start - original_delta
                for out in _rebuild_hunks(content, offset, delta):
                    hunks.append(out)
                    delta += len(out.new.lines) - len(out.old.lines)
            original_delta += len(hunk.new.lines) - len(hunk.old.lines)

        if not hunks:
            return None
        return FileDiff(self.path, hunks)


def _rebuild_hunks(content: FilteredContent, offset: int, delta: int) -> list[Hunk]:
    if not content.deletions:
        start = content.insertion_point
        return [Hunk(
            old=ModifiedLines(start),
            new=ModifiedLines(start + 1 + delta, content.additions, content.new_missing_final_newline),
        )]

    if not content.additions:
        hunks: list[Hunk] = []
        runs = _consecutive_runs(content.deletions)
        for i, run_lines in enumerate(runs):
            start = run_lines[0][0]
            last = i == len(runs) - 1
            hunks.append(Hunk(
                old=ModifiedLines(start, [line for _, line in run_lines], last and content.old_missing_final_newline),
                new=ModifiedLines(start - 1 + delta),
            ))
            delta -= len(run_lines)
        return hunks

    # Mixed: one hunk, even if the kept lines are not contiguous.
    start = content.deletions[0][0]
    return [Hunk(
        old=ModifiedLines(start, [line for _, line in content.deletions], content.old_missing_final_newline),
        new=ModifiedLines(start + offset + delta, content.additions, content.new_missing_final_newline),
    )]

def _consecutive_runs(numbered: list[tuple[int, str]]) -> list[list[tuple[int, str]]]:
    runs: list[list[tuple[int, str]]] = []
    for num, line in numbered:
        if runs and runs[-1][-1][0] + 1 == num:
            runs[-1].append((num, line))
        else:
            runs.append([(num, line)])
    return runs

# ---------- Diff ----------

@dataclasses.dataclass(frozen=True)
class Diff:
    """A multi-file zero-context diff, files in source order."""
    files: list[FileDiff] = dataclasses.field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "Diff":
        """Parse raw diff text. Malformed file sections are skipped, never fatal."""
        files: list[FileDiff] = []
        for section in _file_sections(split_lines(text)):
            file_diff = FileDiff.parse("\n".join(section) + "\n")
            if file_diff is None:
                logger.debug("skipping malformed diff section starting %r", section[0])
                continue
            files.append(file_diff)
        return cls(files)

    def render(self) -> str:
        return "".join(f.render() for f in self.files)

    def __str__(self) -> str:
        return self.render()

    def filter(self, keep_old: PathLinePredicate, keep_new: PathLinePredicate) -> "Diff":
        files: list[FileDiff] = []
        for file_diff in self.files:
            filtered = file_diff.filter(
                lambda line, path=file_diff.path: keep_old(path, line),
                lambda line, path=file_diff.path: keep_new(path, line),
            )
            if filtered is not None:
                files.append(filtered)
        return Diff(files)


def _file_sections(lines: list[str]) -> list[list[str]]:
    # With git headers present, only 'diff --git' opens a section; plain diffs open
    # one at each '---' line directly followed by '+++'.
    git_headers = any(line.startswith("diff --git ") for line in lines)
    sections: list[list[str]] = []
    for i, line in enumerate(lines):
        if git_headers:
            opens = line.startswith("diff --git ")
        else:
            # Ambiguous by construction: a deleted "-- x" before an added "++ y" also opens one.
            opens = line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ ")
        if opens:
            sections.append([line])
        elif sections:
            sections[-1].append(line)
    return sections

# ---------- Line references (FILE:REFS) ----------

_NUMBER_RE = re.compile(r"\d+")


@dataclasses.dataclass(frozen=True)
class LineRef:
    """A selected addition (side '+', new numbering) or deletion (side '-', old numbering)."""
    side: str
    start: int
    end: int
    is_range: bool = False

    @property
    def is_deletion(self) -> bool:
        return self.side == "-"

    def covers(self, line: int) -> bool:
        return self.start <= line <= self.end

    def __str__(self) -> str:
        prefix = "-" if self.is_deletion else ""
        if self.is_range:
            return f"{prefix}{self.start}..{prefix}{self.end}"
        return f"{prefix}{self.start}"


@dataclasses.dataclass(frozen=True)
class FileLineRefs:
    file: str
    refs: list[LineRef]

    def keeps_old(self, line: int) -> bool:
        return any(r.is_deletion and r.covers(line) for r in self.refs)

    def keeps_new(self, line: int) -> bool:
        return any(not r.is_deletion and r.covers(line) for r in self.refs)

    def __str__(self) -> str:
        return f"{self.file}:{','.join(str(r) for r in self.refs)}"


def parse_file_refs(text: str) -> FileLineRefs:
    """Parse 'FILE:REFS' where REFS is a comma list of N, -N, N..M, -N..-M.

    Raises:
        RefSyntaxError: If the text does not follow that grammar
    """
    if ":" not in text:
        raise RefSyntaxError(f"Invalid format '{text}': expected 'file:refs'")
    file, refs_text = text.split(":", 1)
    file = file.strip()
    if not file:
        raise RefSyntaxError(f"Invalid format '{text}': file name cannot be empty")

    refs = [_parse_ref(tok.strip()) for tok in refs_text.split(",") if tok.strip()]
    if not refs:
        raise RefSyntaxError("No line references provided")
    return FileLineRefs(file, refs)

def _parse_ref(token: str) -> LineRef:
    if ".." in token:
        start_text, end_text = token.split("..", 1)
        if start_text.startswith("-"):
            side, start, end = "-", _parse_delete_number(start_text), _parse_delete_number(end_text)
        else:
            side, start, end = "+", _parse_line_number(start_text), _parse_line_number(end_text)
        if start > end:
            raise RefSyntaxError(f"Invalid range {start}..{end}: start must be <= end")
        return LineRef(side, start, end, is_range=True)
    if token.startswith("-"):
        n = _parse_delete_number(token)
        return LineRef("-", n, n)
    n = _parse_line_number(token)
    return LineRef("+", n, n)

def _parse_line_number(text: str) -> int:
    if not _NUMBER_RE.fullmatch(text) or int(text) == 0:
        raise RefSyntaxError(f"Invalid line number '{text}'")
    return int(text)

def _parse_delete_number(text: str) -> int:
    if not text.startswith("-"):
        raise RefSyntaxError(f"Delete reference must start with '-', got '{text}'")
    if not _NUMBER_RE.fullmatch(text[1:]) or int(text[1:]) == 0:
        raise RefSyntaxError(f"Invalid line number '{text}'")
    return int(text[1:])

def selection_predicates(selectors: list[FileLineRefs]) -> tuple[PathLinePredicate, PathLinePredicate]:
    """Compile per-file selectors into the (path, line) predicates taken by Diff.filter."""
    by_path: dict[str, list[FileLineRefs]] = {}
    for sel in selectors:
        by_path.setdefault(os.path.normpath(sel.file), []).append(sel)

    def keep_old(path: str, line: int) -> bool:
        return any(sel.keeps_old(line) for sel in by_path.get(os.path.normpath(path), []))

    def keep_new(path: str, line: int) -> bool:
        return any(sel.keeps_new(line) for sel in by_path.get(os.path.normpath(path), []))

    return keep_old, keep_new

# ---------- Display ----------

ANSI_RED = "\033[31m"
ANSI_GREEN = "\033[32m"
ANSI_CYAN = "\033[36m"
ANSI_RESET = "\033[0m"
ANSI_BOLD = "\033[1m"

def file_lines_with_numbers(file_diff: FileDiff) -> list[str]:
    """Number each changed line: '  -N:' for old line N, '  +N:' for new line N.

    Hunks are separated by an empty entry.
    """
    out: list[str] = []
    for i, hunk in enumerate(file_diff.hunks):
        if i:
            out.append("")
        out.extend(f"  -{num}:\t{line}" for num, line in hunk.old.numbered())
        out.extend(f"  +{num}:\t{line}" for num, line in hunk.new.numbered())
    return out

def format_listing(diff: Diff) -> str:
    blocks = []
    for file_diff in diff.files:
        blocks.append("\n".join([f"{file_diff.path}:"] + file_lines_with_numbers(file_diff)) + "\n")
    return "\n".join(blocks)

def format_pretty(diff: Diff) -> str:
    """Format the listing as colored plain text.

    Returns:
        Colored plain text string with:
        - Green for added lines (+)
        - Red for deleted lines (-)
        - Cyan for file headers
    """
    lines: list[str] = []
    for file_diff in diff.files:
        lines.append(f"{ANSI_CYAN}{ANSI_BOLD}{file_diff.path}:{ANSI_RESET}")
        for line in file_lines_with_numbers(file_diff):
            if line.startswith("  +"):
                lines.append(f"{ANSI_GREEN}{line}{ANSI_RESET}")
            elif line.startswith("  -"):
                lines.append(f"{ANSI_RED}{line}{ANSI_RESET}")
            else:
                lines.append(line)
        lines.append("")

    stats = diff_stats(diff)
    lines.append(f"--- {stats['files']} file(s), +{stats['additions']} -{stats['deletions']}")
    return "\n".join(lines)

def file_line_stats(file_diff: FileDiff) -> dict[str, int]:
    """Count added and deleted lines of one file.

    Returns:
        Dictionary with keys:
        - additions: Number of lines added
        - deletions: Number of lines deleted
        - changes: Total number of changed lines (additions + deletions)
    """
    additions = sum(len(h.new.lines) for h in file_diff.hunks)
    deletions = sum(len(h.old.lines) for h in file_diff.hunks)
    return {
        "additions": additions,
        "deletions": deletions,
        "changes": additions + deletions
    }

def diff_stats(diff: Diff) -> dict[str, int]:
    per_file = [file_line_stats(f) for f in diff.files]
    additions = sum(s["additions"] for s in per_file)
    deletions = sum(s["deletions"] for s in per_file)
    return {
        "files": len(per_file),
        "additions": additions,
        "deletions": deletions,
        "changes": additions + deletions
    }

def diff_to_dict(diff: Diff) -> dict[str, Any]:
    files = []
    for file_diff in diff.files:
        stats = file_line_stats(file_diff)
        files.append({
            "path": file_diff.path,
            "lines": file_lines_with_numbers(file_diff),
            "additions": stats["additions"],
            "deletions": stats["deletions"],
        })
    return {"files": files, "stats": diff_stats(diff)}

# ---------- git boundary ----------

class GitLines:
    """Reads the unstaged zero-context diff of a repository and stages selected lines."""

    def __init__(self, repo_path: str = "."):
        self.repo_path = repo_path

    def _git(self, args: list[str], action: str, input_text: str | None = None) -> str:
        cmd = ["git", "-C", self.repo_path, *args]
        try:
            return run(cmd, input_text=input_text)
        except FileNotFoundError as e:
            raise GitCommandError(f"Failed to run {action}: {e}") from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr or ""
            raise GitCommandError(f"{action} failed: {stderr.strip()}", stderr) from e

    def raw_diff(self, files: list[str] | None = None) -> str:
        args = list(GIT_DIFF_ARGS)
        if files:
            args += ["--", *files]
        return self._git(args, "git diff")

    def diff(self, files: list[str] | None = None) -> Diff:
        return Diff.parse(self.raw_diff(files))

    def apply_patch(self, patch: str) -> None:
        logger.debug("applying patch:\n%s", patch)
        self._git(GIT_APPLY_ARGS, "git apply", input_text=patch)

    def stage(self, *file_refs: str) -> Diff:
        """Stage the lines named by one or more FILE:REFS arguments.

        Every argument is parsed before git is touched, and all selections are
        filtered out of one diff and applied as one patch, so line numbers always
        refer to the diff the caller looked at.

        Args:
            file_refs: Arguments such as "config.nix:-10,10,12..14"

        Returns:
            The staged part of the diff

        Raises:
            RefSyntaxError: If an argument is malformed
            NoChangesError: If a named file has no unstaged changes
            NoMatchingLinesError: If no selected line exists in a file's diff
            GitCommandError: If git diff or git apply fails
        """
        return self.stage_selection([parse_file_refs(r) for r in file_refs])

    def stage_selection(self, selectors: list[FileLineRefs]) -> Diff:
        files = list(dict.fromkeys(sel.file for sel in selectors))
        raw = self.raw_diff(files)
        if not raw.strip():
            raise NoChangesError(", ".join(files))

        full = Diff.parse(raw)
        changed = {os.path.normpath(f.path) for f in full.files}
        for file in files:
            if os.path.normpath(file) not in changed:
                raise NoChangesError(file)

        staged = full.filter(*selection_predicates(selectors))
        matched = {os.path.normpath(f.path) for f in staged.files}
        for file in files:
            if os.path.normpath(file) not in matched:
                raise NoMatchingLinesError(file)

        self.apply_patch(staged.render())
        stats = diff_stats(staged)
        logger.info("staged %d addition(s), %d deletion(s) in %d file(s)", stats["additions"], stats["deletions"], stats["files"])
        return staged

# ---------- MCP Server ----------

def create_mcp_server(repo_path: str = "."):
    """Create and configure MCP server with FastMCP."""
    try:
        from fastmcp import FastMCP
        from mcp.types import ToolAnnotations
    except ImportError:
        print("Error: fastmcp package not found. Install with: pip install fastmcp", file=sys.stderr)
        sys.exit(1)

    mcp = FastMCP("git-lines")
    git = GitLines(repo_path)

    @mcp.tool(annotations=ToolAnnotations(
        readOnlyHint=True,
        openWorldHint=True
    ))
    def diff(paths: list[str] | None = None) -> str:
        """View unstaged git changes with the line numbers used for staging.

        Each changed line is listed as "  -N:" (old line N, a deletion) or "  +N:"
        (new line N, an addition). Pass these numbers to `stage` to stage
        individual lines, even from inside one contiguous change.

        Args:
            paths: Optional list of file paths to show (default: all changed files)

        Returns:
            JSON string with format: {files: [{path, lines, additions, deletions}], stats}
        """
        try:
            result = diff_to_dict(git.diff(paths or []))
        except GitLinesError as e:
            return json.dumps({"error": str(e)}, ensure_ascii=False)
        return json.dumps(result, ensure_ascii=False, indent=2)

    @mcp.tool(annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        openWorldHint=True
    ))
    def stage(file_refs: list[str]) -> str:
        """Stage selected lines to the git index (alternative to `git add -p`).

        Reference format, per file: FILE:REFS
        - "config.nix:12"         addition at new line 12
        - "config.nix:-10"        deletion of old line 10
        - "config.nix:10..15"     range of additions
        - "config.nix:-10..-12"   range of deletions
        - "config.nix:-10,10,14"  any combination

        All references are staged together as one patch, so use the numbers from
        a single `diff` call.

        Args:
            file_refs: One or more FILE:REFS strings

        Returns:
            JSON string with format: {staged: {files, stats}} or {error}
        """
        try:
            staged = git.stage(*file_refs)
        except GitLinesError as e:
            return json.dumps({"error": str(e)}, ensure_ascii=False)
        return json.dumps({"staged": diff_to_dict(staged)}, ensure_ascii=False, indent=2)

    return mcp

# ---------- CLI ----------

def parse_args(argv: list[str] | None = None):
    p = argparse.ArgumentParser(prog="git-lines", description="Non-interactive line-level git staging")
    p.add_argument("-C", dest="repo", default=".", help="Run as if started in <path>")
    p.add_argument("-v", "--verbose", action="store_true", help="Log git invocations")
    sub = p.add_subparsers(dest="cmd", required=True)

    d = sub.add_parser("diff", help="Show unstaged changes with line numbers for staging")
    d.add_argument("files", nargs="*", help="Files to show (default: all changed files)")
    d.add_argument("--format", choices=["text", "pretty", "json"], default="text", help="Output format (default: text)")

    s = sub.add_parser("stage", help="Stage specific lines from unstaged changes")
    s.add_argument("file_refs", nargs="+", metavar="FILE:REFS", help="N, -N, N..M, -N..-M, comma separated")
    s.add_argument("-q", "--quiet", action="store_true", help="Do not print what was staged")

    sub.add_parser("mcp", help="Run as MCP server (stdio)")

    return p.parse_args(argv)

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    git = GitLines(args.repo)

    if args.cmd == "diff":
        try:
            diff = git.diff(args.files)
        except GitLinesError as e:
            print(f"error: Failed to get diff: {e}", file=sys.stderr)
            return 1
        if args.format == "json":
            json.dump(diff_to_dict(diff), sys.stdout, ensure_ascii=False)
            sys.stdout.write("\n")
        elif args.format == "pretty":
            print(format_pretty(diff))
        else:
            sys.stdout.write(format_listing(diff))
        return 0

    if args.cmd == "stage":
        try:
            staged = git.stage(*args.file_refs)
        except RefSyntaxError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
        except GitLinesError as e:
            print(f"error: Failed to stage '{' '.join(args.file_refs)}': {e}", file=sys.stderr)
            return 1
        if not args.quiet:
            sys.stdout.write("Staged:\n" + format_listing(staged))
        return 0

    if args.cmd == "mcp":
        mcp = create_mcp_server(args.repo)
        mcp.run()
        return 0

    return 2

if __name__ == "__main__":
    sys.exit(main())
