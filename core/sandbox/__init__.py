"""
Tool execution sandbox.

Path confinement to the working directory, the shell runner with
process-group lifecycle, and shell command safety classification.
"""

from .paths import is_path_within, normalize_path, resolve_secure_path
from .safety import SafetyVerdict, classify_command, is_dangerous_bash_command
from .shell import ShellResult, run_shell, terminate_process_group

__all__ = [
    "is_path_within",
    "normalize_path",
    "resolve_secure_path",
    "SafetyVerdict",
    "classify_command",
    "is_dangerous_bash_command",
    "ShellResult",
    "run_shell",
    "terminate_process_group",
]
