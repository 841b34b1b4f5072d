"""Context attachment: files sent along with the first turn of a task."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .logger import get_logger
from .models import ContextItem

_log = get_logger(__name__)

__all__ = [
    "language_for",
    "resolve_context",
    "format_context",
    "attach_context",
    "generate_project_map",
]

SKIP_DIRS = {
    ".git", ".svn", ".hg", ".venv", "venv", "env",
    "node_modules", "__pycache__", ".mypy_cache",
    ".pytest_cache", ".tox", "dist", "build",
    ".next", ".cache", "target", "out",
}

_LANGUAGES = {
    "ts": "typescript", "js": "javascript", "tsx": "typescriptreact",
    "jsx": "javascriptreact", "py": "python", "java": "java", "cpp": "cpp",
    "c": "c", "cs": "csharp", "go": "go", "rs": "rust", "php": "php",
    "rb": "ruby", "swift": "swift", "kt": "kotlin", "md": "markdown",
    "json": "json", "xml": "xml", "html": "html", "css": "css",
    "scss": "scss", "yaml": "yaml", "yml": "yaml", "sh": "shellscript",
    "sql": "sql",
}


def language_for(file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    return _LANGUAGES.get(ext, ext)


def resolve_context(paths: Iterable[str], project_root: str = ".") -> List[ContextItem]:
    """Load files as context items. Unreadable files are skipped."""
    root = Path(project_root).resolve()
    items: List[ContextItem] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = root / path
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            _log.warning("Skipping context file %s: %s", raw, e)
            continue
        items.append(ContextItem(
            path=str(path),
            content=content,
            kind="file",
            file_name=path.name,
            language_id=language_for(path.name),
        ))
    return items


def format_context(items: List[ContextItem]) -> str:
    if not items:
        return ""
    parts = ["\n[Context Files]\n"]
    for item in items:
        name = item.file_name or Path(item.path).name or "unknown"
        header = f"\n[File: {name}]"
        if item.language_id:
            header += f" ({item.language_id})"
        if item.line_range:
            start, end = item.line_range
            header += f" [Lines: {start}-{end}]"
        parts.append(header + "\n```\n" + item.content + "\n```\n")
    return "".join(parts) + "\n"


def attach_context(messages: List[Dict[str, str]],
                   items: Optional[List[ContextItem]]) -> List[Dict[str, str]]:
    """Return a copy of ``messages`` with context prepended to the last user message."""
    result = [dict(m) for m in messages]
    block = format_context(items or [])
    if not block or not result or result[-1].get("role") != "user":
        return result
    result[-1]["content"] = block + "User Query: " + result[-1]["content"]
    return result


def generate_project_map(project_root: str = ".", max_depth: int = 3, max_entries: int = 300) -> str:
    """Indented tree of the project, skipping VCS, caches and build output."""
    root = Path(project_root).resolve()
    lines = [f"{root.name}/"]

    def _walk(directory: Path, depth: int):
        if depth > max_depth or len(lines) >= max_entries:
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
        except OSError:
            return
        for entry in entries:
            if len(lines) >= max_entries:
                return
            if entry.name in SKIP_DIRS or entry.name.endswith(".egg-info"):
                continue
            if entry.is_dir():
                lines.append("  " * depth + f"{entry.name}/")
                _walk(entry, depth + 1)
            else:
                lines.append("  " * depth + entry.name)

    _walk(root, 1)
    if len(lines) >= max_entries:
        lines.append("  ...")
    return "\n".join(lines)
