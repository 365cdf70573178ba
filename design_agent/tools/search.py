"""Directory search tools: ``glob`` matches paths, ``grep`` matches file contents."""

import asyncio
import os
import re
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from design_agent.errors import ToolError
from design_agent.models.results import ErrorKind, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path
from design_agent.tools.utils import handle_tool_error, tool_success, validate_directory_exists
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

RECENT_WINDOW_SECONDS = 24 * 60 * 60

SKIPPED_DIRECTORIES = frozenset(
    {"node_modules", ".git", ".svn", ".hg", ".vscode", "dist", "build", "coverage", ".nyc_output", ".next", ".cache"}
)
SKIPPED_FILE_NAMES = frozenset({".DS_Store", "Thumbs.db"})
SKIPPED_FILE_SUFFIXES = (".log", ".tmp", ".temp")

TEXT_EXTENSIONS = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".json", ".html", ".htm", ".css", ".scss", ".sass",
        ".py", ".java", ".cpp", ".c", ".h", ".hpp", ".cs", ".php", ".rb", ".go",
        ".rs", ".swift", ".kt", ".scala", ".clj", ".hs", ".elm", ".ml", ".f",
        ".txt", ".md", ".rst", ".asciidoc", ".xml", ".yaml", ".yml", ".toml",
        ".ini", ".cfg", ".conf", ".properties", ".env", ".gitignore", ".gitattributes",
        ".dockerfile", ".makefile", ".sh", ".bat", ".ps1", ".sql", ".graphql",
        ".vue", ".svelte", ".astro", ".prisma", ".proto", ".svg",
    }
)  # fmt: skip


def glob_to_regex(pattern: str, case_sensitive: bool = False) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression.

    Supports ``{a,b}`` alternation, ``**`` for any depth (``**/`` also
    matches zero directories), and ``*`` / ``?`` within one path segment.
    """
    out: list[str] = []
    i = 0
    depth = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        match char:
            case "*":
                out.append("[^/]*")
            case "?":
                out.append("[^/]")
            case "{":
                depth += 1
                out.append("(?:")
            case "}" if depth:
                depth -= 1
                out.append(")")
            case "," if depth:
                out.append("|")
            case _:
                out.append(re.escape(char))
        i += 1

    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(f"^{''.join(out)}$", flags)


def _is_hidden(relative_path: str) -> bool:
    return any(part.startswith(".") for part in relative_path.split("/"))


def _should_skip_dir(name: str) -> bool:
    return name in SKIPPED_DIRECTORIES


def _relative(path: str, base: str) -> str:
    return Path(os.path.relpath(path, base)).as_posix()


# glob


class GlobInput(BaseModel):
    """Input schema for the glob tool."""

    pattern: str = Field(..., description='Glob pattern to match (e.g., "*.js", "src/**/*.ts", "**/*.{js,ts}")')
    path: str = Field(default=".", description="Directory to search in, relative to the workspace root")
    case_sensitive: bool = Field(default=False, description="Whether the search should be case-sensitive")
    include_dirs: bool = Field(default=False, description="Whether to include directories in results")
    show_hidden: bool = Field(default=False, description="Whether to include hidden files/directories")
    max_results: int = Field(default=500, ge=1, description="Maximum number of results to return")
    sort_by_time: bool = Field(default=False, description="Sort results by modification time, newest first")


@dataclass
class GlobMatch:
    path: str
    absolute_path: str
    is_directory: bool
    size: int
    modified_time: float
    extension: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["modified_time"] = datetime.fromtimestamp(self.modified_time, UTC).isoformat()
        return data


def find_glob_matches(
    search_dir: Path, regex: re.Pattern[str], include_dirs: bool, show_hidden: bool, max_results: int
) -> list[GlobMatch]:
    """Walk ``search_dir`` collecting entries whose relative path matches ``regex``."""
    results: list[GlobMatch] = []
    base = str(search_dir)

    for current, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if not _should_skip_dir(d))
        if not show_hidden:
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]

        entries = [(name, True) for name in dirnames] + [(name, False) for name in sorted(filenames)]
        for name, is_directory in entries:
            if len(results) >= max_results:
                return results

            full_path = os.path.join(current, name)
            relative_path = _relative(full_path, base)
            if not show_hidden and _is_hidden(relative_path):
                continue
            if not regex.match(relative_path) or (is_directory and not include_dirs):
                continue

            try:
                stat = os.stat(full_path)
            except OSError:
                continue
            results.append(
                GlobMatch(
                    path=relative_path,
                    absolute_path=full_path,
                    is_directory=is_directory,
                    size=0 if is_directory else stat.st_size,
                    modified_time=stat.st_mtime,
                    extension=None if is_directory else Path(name).suffix.lstrip(".") or None,
                )
            )

    return results


def sort_glob_matches(matches: list[GlobMatch], sort_by_time: bool) -> list[GlobMatch]:
    """Order matches directories-first then by path, or recent-first when ``sort_by_time``."""
    if not sort_by_time:
        return sorted(matches, key=lambda m: (not m.is_directory, m.path.lower()))

    cutoff = time.time() - RECENT_WINDOW_SECONDS

    def key(match: GlobMatch) -> tuple[int, float, str]:
        if match.modified_time > cutoff:
            return (0, -match.modified_time, match.path.lower())
        return (1, 0.0, match.path.lower())

    return sorted(matches, key=key)


async def glob_handler(params: GlobInput, context: SandboxContext) -> ToolResult:
    """Find files and directories matching a glob pattern."""
    try:
        search_dir = resolve_workspace_path(params.path, context)
        validate_directory_exists(search_dir, params.path)
        logger.info(f'[glob] Finding files matching pattern "{params.pattern}" in {params.path}')

        regex = glob_to_regex(params.pattern, params.case_sensitive)
        matches = await asyncio.to_thread(
            find_glob_matches, search_dir, regex, params.include_dirs, params.show_hidden, params.max_results
        )
        matches = sort_glob_matches(matches, params.sort_by_time)

        file_count = sum(1 for m in matches if not m.is_directory)
        dir_count = len(matches) - file_count
        truncated = len(matches) >= params.max_results

        summary = f'Found {len(matches)} match(es) for pattern "{params.pattern}"'
        if file_count and dir_count:
            summary += f" ({file_count} files, {dir_count} directories)"
        elif file_count:
            summary += f" ({file_count} files)"
        elif dir_count:
            summary += f" ({dir_count} directories)"
        if truncated:
            summary += f" - results truncated at {params.max_results}"
        logger.info(f"[glob] {summary}")

        return tool_success(
            pattern=params.pattern,
            search_path=params.path,
            matches=[m.as_dict() for m in matches],
            total_matches=len(matches),
            file_count=file_count,
            directory_count=dir_count,
            summary=summary,
            truncated=truncated,
            sorted_by_time=params.sort_by_time,
        )
    except ToolError as e:
        return handle_tool_error(e)
    except Exception as e:
        return handle_tool_error(e, "Glob tool execution")


# grep


class GrepInput(BaseModel):
    """Input schema for the grep tool."""

    pattern: str = Field(..., description='Regular expression to search for (e.g., "function\\s+\\w+", "import.*from")')
    path: str = Field(default=".", description="Directory to search in, relative to the workspace root")
    include: str | None = Field(default=None, description='File pattern to include (e.g., "*.js", "*.{ts,tsx}")')
    case_sensitive: bool = Field(default=False, description="Whether the search should be case-sensitive")
    max_files: int = Field(default=1000, ge=1, description="Maximum number of files to search")
    max_matches: int = Field(default=100, ge=1, description="Maximum number of matches to return")


def is_text_file(path: str) -> bool:
    """Extension based text check; extensionless files count as text."""
    suffix = Path(path).suffix.lower()
    return not suffix or suffix in TEXT_EXTENSIONS


def _should_skip_file(name: str) -> bool:
    return name in SKIPPED_FILE_NAMES or name.endswith(SKIPPED_FILE_SUFFIXES)


def find_files_to_search(search_dir: Path, include: str | None, max_files: int) -> list[str]:
    """Collect text files below ``search_dir`` matching the optional include glob."""
    include_regex = glob_to_regex(include, case_sensitive=True) if include else None
    base = str(search_dir)
    files: list[str] = []

    for current, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if not _should_skip_dir(d))
        for name in sorted(filenames):
            if len(files) >= max_files:
                return files
            if _should_skip_file(name):
                continue

            full_path = os.path.join(current, name)
            relative_path = _relative(full_path, base)
            if include_regex and not (include_regex.match(relative_path) or include_regex.match(name)):
                continue
            if is_text_file(full_path):
                files.append(full_path)

    return files


def search_file(path: str, regex: re.Pattern[str], max_matches: int) -> list[dict[str, Any]]:
    """Return up to ``max_matches`` matches in one file; unreadable files yield none."""
    matches: list[dict[str, Any]] = []
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError):
        return matches

    for line_number, line in enumerate(text.splitlines(), start=1):
        for match in regex.finditer(line):
            matches.append(
                {
                    "file_path": path,
                    "line_number": line_number,
                    "line": line,
                    "match_start": match.start(),
                    "match_end": match.end(),
                }
            )
            if len(matches) >= max_matches:
                return matches
    return matches


def _grep(search_dir: Path, regex: re.Pattern[str], params: GrepInput) -> dict[str, Any]:
    files = find_files_to_search(search_dir, params.include, params.max_files)
    if not files:
        return {"files": 0}

    all_matches: list[dict[str, Any]] = []
    files_searched = 0
    files_with_matches = 0
    for path in files:
        if len(all_matches) >= params.max_matches:
            break
        file_matches = search_file(path, regex, params.max_matches - len(all_matches))
        files_searched += 1
        if file_matches:
            relative_path = _relative(path, str(search_dir))
            for match in file_matches:
                match["file_path"] = relative_path
            all_matches.extend(file_matches)
            files_with_matches += 1

    return {
        "files": len(files),
        "files_searched": files_searched,
        "files_with_matches": files_with_matches,
        "matches": all_matches,
    }


async def grep_handler(params: GrepInput, context: SandboxContext) -> ToolResult:
    """Search file contents for a regular expression."""
    try:
        try:
            regex = re.compile(params.pattern, 0 if params.case_sensitive else re.IGNORECASE)
        except re.error as e:
            raise ToolError(f"Invalid regular expression pattern: {e}", ErrorKind.VALIDATION) from e

        search_dir = resolve_workspace_path(params.path, context)
        validate_directory_exists(search_dir, params.path)
        logger.info(f'[grep] Searching for pattern "{params.pattern}" in {params.path}')

        found = await asyncio.to_thread(_grep, search_dir, regex, params)
        if not found["files"]:
            suffix = f" matching {params.include}" if params.include else ""
            return tool_success(
                pattern=params.pattern,
                search_path=params.path,
                include_pattern=params.include,
                files_searched=0,
                matches=[],
                total_matches=0,
                message=f"No files found to search in {params.path}{suffix}",
            )

        matches = found["matches"]
        summary = (
            f'Found {len(matches)} match(es) for "{params.pattern}" in {found["files_with_matches"]} file(s)'
        )
        if found["files_searched"] < found["files"]:
            summary += f" (searched {found['files_searched']}/{found['files']} files)"

        matches_by_file: dict[str, list[dict[str, Any]]] = {}
        for match in matches:
            matches_by_file.setdefault(match["file_path"], []).append(match)
        logger.info(f"[grep] {summary}")

        return tool_success(
            pattern=params.pattern,
            search_path=params.path,
            include_pattern=params.include,
            files_searched=found["files_searched"],
            files_with_matches=found["files_with_matches"],
            matches=matches,
            matches_by_file=matches_by_file,
            total_matches=len(matches),
            summary=summary,
            truncated=len(matches) >= params.max_matches,
        )
    except ToolError as e:
        return handle_tool_error(e)
    except Exception as e:
        return handle_tool_error(e, "Grep tool execution")


def create_glob_tool() -> ToolDefinition:
    return ToolDefinition(
        name="glob",
        description=(
            'Find files and directories matching glob patterns (e.g., "*.js", "src/**/*.ts"). '
            "Efficient for locating files by name or path structure."
        ),
        input_model=GlobInput,
        handler=glob_handler,
    )


def create_grep_tool() -> ToolDefinition:
    return ToolDefinition(
        name="grep",
        description=(
            "Search for text patterns within file contents using regular expressions. "
            "Can filter by file types and paths."
        ),
        input_model=GrepInput,
        handler=grep_handler,
    )
