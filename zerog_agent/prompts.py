"""System prompts per mode, task prompts and slash commands."""

from typing import List, Optional, Tuple

from .models import PlanTask, TaskStatus

__all__ = [
    "MODES",
    "get_system_prompt",
    "build_system_prompt",
    "build_task_prompt",
    "render_plan",
    "process_slash_command",
    "tool_result_message",
    "REJECTED_TOOL_RESULT",
]

MODES = ("ask", "planner", "agent", "debug")

_NO_PATH_COMMENT = (
    'When providing code, do NOT add a file path comment (like "// File: path" '
    'or "# File: path") at the top of code blocks.'
)

PLANNER_PROMPT = """\
You are a Tech Lead. Do not write code. Analyze the user request and break it down into a structured plan.
You MUST always return your plan inside a <plan> tag as a JSON array. Each item must have an "id", "task", and "status" field.
Example:
<plan>
[
  {"id": 1, "task": "Analyze src/main.py", "status": "pending"},
  {"id": 2, "task": "Refactor login function", "status": "pending"}
]
</plan>

You may include explanatory text before or after the <plan> block, but the <plan> block is REQUIRED."""

AGENT_PROMPT = """\
You are an AI Developer. Execute tasks by writing code and running commands.

Authorized Tools: read_file, write_file, run_command.

IMPORTANT: When writing file content, do NOT include a file path comment (like "// File: path/to/file.py" or "# File: script.py") at the top. The file path is already specified in the tool call arguments.

CRITICAL: Structure ALL output using ONLY these tags. Any text outside these tags is discarded.

<thinking>Your internal reasoning, analysis, and planning goes here. This is hidden from the user.</thinking>

<tool_call>{"name": "read_file", "arguments": {"file_path": "path/to/file.py"}}</tool_call>

<tool_call>{"name": "write_file", "arguments": {"file_path": "path/to/file.py", "content": "full file content"}}</tool_call>

<tool_call>{"name": "run_command", "arguments": {"command": "pip install requests"}}</tool_call>

<message>Brief user-facing summary of what you did.</message>

Rules:
- You may ONLY emit ONE <tool_call> per response, then STOP and wait for the <tool_result>.
- "read_file" returns a file's content; "write_file" creates or overwrites a file with the COMPLETE content; "run_command" runs a terminal command.
- Keep <message> concise: describe what you did and why, do not repeat file contents.
- A <message> without a <tool_call> means you are DONE with the current task."""

MODE_PROMPTS = {
    "ask": "You are a helpful assistant. Answer questions directly. " + _NO_PATH_COMMENT,
    "planner": PLANNER_PROMPT,
    "agent": AGENT_PROMPT,
    "debug": "You are a Bug Hunter. Analyze the provided error logs and find the root cause.",
}

DEFAULT_ASK_PROMPT = "You are a helpful coding assistant."

REJECTED_TOOL_RESULT = (
    "<tool_result>\nStatus: Rejected\nThe user rejected this tool call.\n</tool_result>"
)

SLASH_COMMANDS = {
    "/fix": "Fix the bugs in this code and explain what was wrong and how you fixed it.",
    "/explain": "Explain what this code does in simple terms. Break down the logic step by step.",
    "/refactor": ("Refactor this code for better readability, performance, and maintainability. "
                  "Explain the improvements you made."),
    "/optimize": "Optimize this code for better performance. Identify bottlenecks and suggest improvements.",
    "/document": ("Add comprehensive documentation to this code including docstrings, comments, "
                  "and usage examples."),
    "/test": "Generate unit tests for this code. Include edge cases and error handling.",
}


def get_system_prompt(mode: str) -> str:
    """Prompt for ``mode``; unknown modes fall back to ask."""
    return MODE_PROMPTS.get(mode, MODE_PROMPTS["ask"])


def build_system_prompt(mode: str, custom_prompt: Optional[str] = None,
                        project_map: Optional[str] = None) -> str:
    if mode == "ask":
        prompt = custom_prompt or DEFAULT_ASK_PROMPT
    else:
        prompt = get_system_prompt(mode)
    if project_map:
        prompt += (
            "\n\nYou have access to the following project file structure:\n\n"
            f"{project_map}\n\n"
            "Use this structure to understand the codebase organization."
        )
    return prompt


_PLAN_MARKERS = {
    TaskStatus.DONE: "[x]",
    TaskStatus.IN_PROGRESS: "[>]",
    TaskStatus.PENDING: "[ ]",
}


def render_plan(plan: List[PlanTask]) -> str:
    return "\n".join(
        f"  {_PLAN_MARKERS[task.status]} {task.id}. {task.description}" for task in plan
    )


def build_task_prompt(task: PlanTask, plan: List[PlanTask]) -> str:
    """First user message of a task: the whole plan plus the task at hand."""
    return (
        f"## Current Plan\n{render_plan(plan)}\n\n"
        f"## Current Task\nTask #{task.id}: {task.description}\n\n"
        "Please implement this task. Use tool calls to read, write files and run commands. "
        "Remember: ONE tool call per response, then STOP and wait for the result."
    )


def tool_result_message(output: str, ok: bool) -> str:
    status = "Success" if ok else "Error"
    return f"<tool_result>\nOutput: {output}\nStatus: {status}\n</tool_result>"


def process_slash_command(message: str) -> Tuple[str, str]:
    """Expand a leading slash command. Returns ``(processed, display)``."""
    if not message.startswith("/"):
        return message, message

    command = message.split(" ")[0].lower()
    args = message[len(command):].strip()
    expansion = SLASH_COMMANDS.get(command)
    if expansion is None:
        return message, message

    processed = f"{expansion} {args}" if args else expansion
    return processed, command
