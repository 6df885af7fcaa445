"""Local-disk implementation of the file system service."""

import asyncio
import fnmatch
import json
import os
import shutil
import tomllib
from collections import Counter
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import anyio
import anyio.to_thread
from loguru import logger

from taskforge.core.errors import NotFoundError
from taskforge.utils.files import (
    CONFIGURATION_FILES,
    IGNORED_DIRECTORIES,
    LANGUAGE_BY_EXTENSION,
    backup_path_for,
    is_code_file,
)


def _walk(root: Path) -> list[Path]:
    """All files under ``root``, skipping ignored directories, sorted."""
    if root.is_file():
        return [root]
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRECTORIES)
        for name in sorted(filenames):
            files.append(Path(dirpath) / name)
    return files


def _top_level(root: Path) -> list[str]:
    if not root.is_dir():
        return []
    return sorted(
        p.name + ("/" if p.is_dir() else "")
        for p in root.iterdir()
        if p.name not in IGNORED_DIRECTORIES
    )


def _count_lines(path: Path) -> tuple[int, int]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return 0, 0
    lines = text.splitlines()
    return len(lines), sum(1 for line in lines if line.strip())


class LocalFileSystemService:
    """
    File system service over the local disk.

    File contents go through ``anyio.Path``; directory walks and line counts
    run in worker threads. VCS, dependency and build directories are skipped.
    """

    # =========================================================================
    # FILES
    # =========================================================================

    async def read_file(self, path: str) -> str:
        try:
            return await anyio.Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e

    async def write_file(self, path: str, content: str) -> None:
        target = anyio.Path(path)
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {len(content)} characters to {path}")

    async def exists(self, path: str) -> bool:
        return await anyio.Path(path).exists()

    def is_code_file(self, path: str) -> bool:
        return is_code_file(path)

    async def create_backup(self, path: str) -> str:
        """
        Copy ``path`` to a timestamped sibling.

        Returns:
            The backup path.

        Raises:
            NotFoundError: ``path`` does not exist.
        """
        if not await self.exists(path):
            raise NotFoundError(f"Cannot back up missing file: {path}")
        backup = backup_path_for(path)
        await anyio.to_thread.run_sync(shutil.copy2, path, backup)
        logger.info(f"Backed up {path} to {backup}")
        return backup

    # =========================================================================
    # TREES
    # =========================================================================

    async def get_all_files(self, root: str) -> list[str]:
        files = await anyio.to_thread.run_sync(_walk, Path(root))
        return [str(f) for f in files]

    async def find_files_by_pattern(self, root: str, patterns: Sequence[str]) -> list[str]:
        """Files under ``root`` whose name matches any glob in ``patterns``."""
        files = await anyio.to_thread.run_sync(_walk, Path(root))
        return [
            str(f) for f in files if any(fnmatch.fnmatch(f.name, pattern) for pattern in patterns)
        ]

    async def get_project_structure(self, root: str) -> dict[str, Any]:
        root_path = Path(root)
        files = await anyio.to_thread.run_sync(_walk, root_path)

        extensions = Counter(f.suffix.lower() or "<none>" for f in files)
        languages = Counter(
            LANGUAGE_BY_EXTENSION[f.suffix.lower()]
            for f in files
            if f.suffix.lower() in LANGUAGE_BY_EXTENSION
        )
        directories = {f.parent for f in files if f.parent != root_path}
        top_level = await anyio.to_thread.run_sync(_top_level, root_path)

        return {
            "root": str(root_path),
            "total_files": len(files),
            "total_directories": len(directories),
            "files_by_extension": dict(extensions.most_common()),
            "languages": dict(languages.most_common()),
            "top_level": top_level,
        }

    async def get_configuration_files(self, root: str) -> list[str]:
        found = []
        for name in CONFIGURATION_FILES:
            candidate = os.path.join(root, name)
            if await self.exists(candidate):
                found.append(candidate)
        return found

    async def calculate_project_metrics(self, root: str) -> dict[str, Any]:
        files = await anyio.to_thread.run_sync(_walk, Path(root))
        code_files = [f for f in files if is_code_file(f)]

        def count() -> list[tuple[str, int, int]]:
            return [(str(f), *_count_lines(f)) for f in code_files]

        counts = await anyio.to_thread.run_sync(count)
        total_lines = sum(c[1] for c in counts)
        code_lines = sum(c[2] for c in counts)
        largest = sorted(counts, key=lambda c: c[1], reverse=True)[:5]

        return {
            "total_files": len(files),
            "code_files": len(code_files),
            "total_lines": total_lines,
            "code_lines": code_lines,
            "average_file_lines": round(total_lines / len(code_files), 1) if code_files else 0,
            "largest_files": [{"path": path, "lines": lines} for path, lines, _ in largest],
        }

    # =========================================================================
    # PROJECT METADATA
    # =========================================================================

    async def get_dependency_info(self, root: str) -> dict[str, Any]:
        """Dependencies declared in package.json, pyproject.toml and requirements.txt."""
        info: dict[str, Any] = {
            "package_managers": [],
            "dependencies": {},
            "dev_dependencies": {},
        }

        package_json = anyio.Path(root) / "package.json"
        if await package_json.exists():
            try:
                data = json.loads(await package_json.read_text(encoding="utf-8"))
                info["package_managers"].append("npm")
                info["dependencies"].update(data.get("dependencies", {}))
                info["dev_dependencies"].update(data.get("devDependencies", {}))
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid package.json in {root}: {e}")

        pyproject = anyio.Path(root) / "pyproject.toml"
        if await pyproject.exists():
            try:
                data = tomllib.loads(await pyproject.read_text(encoding="utf-8"))
                project = data.get("project", {})
                info["package_managers"].append("pip")
                for requirement in project.get("dependencies", []):
                    info["dependencies"][_requirement_name(requirement)] = requirement
                for extra in project.get("optional-dependencies", {}).values():
                    for requirement in extra:
                        info["dev_dependencies"][_requirement_name(requirement)] = requirement
            except tomllib.TOMLDecodeError as e:
                logger.warning(f"Invalid pyproject.toml in {root}: {e}")

        requirements = anyio.Path(root) / "requirements.txt"
        if await requirements.exists():
            if "pip" not in info["package_managers"]:
                info["package_managers"].append("pip")
            for line in (await requirements.read_text(encoding="utf-8")).splitlines():
                line = line.split("#", 1)[0].strip()
                if line and not line.startswith("-"):
                    info["dependencies"][_requirement_name(line)] = line

        return info

    async def get_git_info(self, root: str) -> dict[str, Any]:
        """Branch and cleanliness of the repository at ``root``."""
        if not await (anyio.Path(root) / ".git").exists():
            return {"is_repository": False, "branch": None, "clean": None}

        branch = await self._git(root, "rev-parse", "--abbrev-ref", "HEAD")
        status = await self._git(root, "status", "--porcelain")
        return {
            "is_repository": True,
            "branch": branch.strip() if branch is not None else None,
            "clean": (status.strip() == "") if status is not None else None,
            "changed_files": len(status.splitlines()) if status else 0,
        }

    async def _git(self, root: str, *args: str) -> str | None:
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
        except FileNotFoundError:
            logger.warning("git is not installed")
            return None
        if process.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace")


def _requirement_name(requirement: str) -> str:
    for separator in ("[", "=", ">", "<", "~", "!", ";", " "):
        requirement = requirement.split(separator, 1)[0]
    return requirement.strip()
