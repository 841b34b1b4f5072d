"""File operations used by the ``read_file`` and ``write_file`` actions."""

from pathlib import Path

from ..extractor import strip_file_path_comment


class FileOperationError(Exception):
    pass


class FileOps:
    def __init__(self, project_root: str, restrict_to_root: bool = True):
        self.project_root = Path(project_root).resolve()
        self.restrict_to_root = restrict_to_root

    def _resolve(self, path: str) -> Path:
        if not path or not str(path).strip():
            raise FileOperationError("Empty file path")
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        if self.restrict_to_root:
            try:
                p.relative_to(self.project_root)
            except ValueError:
                raise FileOperationError(
                    f"Access denied: '{path}' is outside project root ({self.project_root})"
                )
        return p

    def read_file(self, path: str) -> str:
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f"File not found: {path}")
        if not fp.is_file():
            raise FileOperationError(f"Not a file: {path}")
        try:
            return fp.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise FileOperationError(f"Cannot read binary file: {path}")
        except OSError as e:
            raise FileOperationError(f"{e.strerror or e}: {path}")

    def write_file(self, path: str, content: str) -> str:
        if not isinstance(content, str):
            raise FileOperationError("content must be a string")
        fp = self._resolve(path)
        if fp.is_dir():
            raise FileOperationError(f"Is a directory: {path}")
        clean = strip_file_path_comment(content)
        try:
            fp.parent.mkdir(parents=True, exist_ok=True)
            fp.write_text(clean, encoding="utf-8")
        except OSError as e:
            raise FileOperationError(f"{e.strerror or e}: {path}")
        return f"File written: {path}"
