"""File classification and backup naming."""

from datetime import datetime
from pathlib import Path

from taskforge.core.models import utc_now

CODE_EXTENSIONS = frozenset(
    {
        ".py",
        ".js",
        ".jsx",
        ".ts",
        ".tsx",
        ".mjs",
        ".cjs",
        ".java",
        ".go",
        ".rb",
        ".rs",
        ".php",
        ".c",
        ".h",
        ".cpp",
        ".hpp",
        ".cs",
        ".swift",
        ".kt",
        ".vue",
        ".svelte",
        ".sh",
    }
)

IGNORED_DIRECTORIES = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "__pycache__",
        ".venv",
        "venv",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        "dist",
        "build",
        "coverage",
        ".next",
        ".idea",
        ".vscode",
    }
)

CONFIGURATION_FILES = (
    "package.json",
    "tsconfig.json",
    "pyproject.toml",
    "setup.cfg",
    "requirements.txt",
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "Makefile",
    ".env",
    ".env.example",
    ".eslintrc",
    ".eslintrc.json",
    ".prettierrc",
    "jest.config.js",
    "pytest.ini",
    "webpack.config.js",
    "vite.config.js",
    "vite.config.ts",
)

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rb": "ruby",
    ".rs": "rust",
    ".php": "php",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".swift": "swift",
    ".kt": "kotlin",
    ".vue": "vue",
    ".svelte": "svelte",
    ".sh": "shell",
}


def is_code_file(path: str | Path) -> bool:
    """Whether the file extension belongs to a known source language."""
    return Path(path).suffix.lower() in CODE_EXTENSIONS


def backup_path_for(path: str | Path, now: datetime | None = None) -> str:
    """Timestamped sibling path used for a backup copy."""
    stamp = (now or utc_now()).strftime("%Y%m%dT%H%M%S%f")
    return f"{path}.backup-{stamp}"
