from .executor import ToolExecutor
from .file_ops import FileOps, FileOperationError
from .shell import ShellExecutor, CommandOutcome
__all__ = ["ToolExecutor", "FileOps", "FileOperationError", "ShellExecutor", "CommandOutcome"]
