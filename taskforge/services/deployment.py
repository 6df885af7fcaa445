"""
Deployment tasks.

A deployment runs four phases in order: build, pre-deployment checks,
deploy and post-deployment checks. A failing phase is recorded with
``passed: False`` and the remaining phases still run; the result aggregates
every phase so the caller sees the full picture.
"""

import os
import shlex
from typing import Any

from loguru import logger

from taskforge.core.constants import FALLBACK_BUILD_COMMAND, KNOWN_ENVIRONMENTS, TaskType
from taskforge.core.models import DeploymentPayload, Execution
from taskforge.services.base import TaskTypeService
from taskforge.utils.execution import build_environment

DEPLOY_COMMANDS = {
    "docker": "docker compose up -d --build",
    "npm": "npm run deploy",
    "script": "./deploy.sh",
    "make": "make deploy",
}

HEALTH_CHECK_TIMEOUT_SECONDS = 10


class DeploymentService(TaskTypeService):
    """Build, check, deploy, verify."""

    task_type = TaskType.DEPLOYMENT

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_deployment_task(execution)

    async def execute_deployment_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: DeploymentPayload = self.start(execution, "Preparing deployment")
            path = self.target_path(execution, payload.target)
            env = build_environment(
                execution.options.environment,
                payload.env_vars,
                {"DEPLOY_ENV": payload.environment},
            )
            logger.info(
                f"Execution {execution.id}: {payload.deployment_type} deployment of {path} "
                f"to {payload.environment}"
            )

            self.progress(execution, 15, "Building application")
            build = await self.build_application(execution, path, payload, env)

            self.progress(execution, 40, "Running pre-deployment checks")
            pre_checks = await self.pre_deployment_checks(path, payload, build)

            self.progress(execution, 60, "Deploying")
            deployment = await self.deploy(execution, path, payload, env)

            self.progress(execution, 80, "Running post-deployment checks")
            post_checks = await self.post_deployment_checks(execution, payload, deployment, env)

            phases = {
                "build": build["success"],
                "pre_deployment": pre_checks["passed"],
                "deployment": deployment["success"],
                "post_deployment": post_checks["passed"],
            }
            failed = [name for name, passed in phases.items() if not passed]
            if failed:
                logger.warning(f"Execution {execution.id}: deployment phases failed: {', '.join(failed)}")

            self.progress(execution, 95, "Compiling deployment report")
            return {
                "target": path,
                "environment": payload.environment,
                "deployment_type": payload.deployment_type,
                "build": build,
                "pre_deployment_checks": pre_checks,
                "deployment": deployment,
                "post_deployment_checks": post_checks,
                "summary": {
                    "success": not failed,
                    "phases_passed": len(phases) - len(failed),
                    "phases_failed": failed,
                },
                "metrics": self.metrics(execution),
            }
        except Exception as e:
            logger.error(f"Deployment failed for execution {execution.id}: {e}")
            raise

    # =========================================================================
    # PHASES
    # =========================================================================

    async def build_application(
        self,
        execution: Execution,
        path: str,
        payload: DeploymentPayload,
        env: dict[str, str],
    ) -> dict[str, Any]:
        """Run the build command; package.json projects use ``npm run build``."""
        command = payload.build_command
        if not command:
            if await self.fs.exists(os.path.join(path, "package.json")):
                command = "npm run build"
            else:
                command = FALLBACK_BUILD_COMMAND
        return await self._run(execution, command, path, env)

    async def pre_deployment_checks(
        self, path: str, payload: DeploymentPayload, build: dict[str, Any]
    ) -> dict[str, Any]:
        checks = [
            {
                "name": "build_succeeded",
                "passed": build["success"],
                "message": "Build succeeded" if build["success"] else "Build failed",
            },
            {
                "name": "known_environment",
                "passed": payload.environment in KNOWN_ENVIRONMENTS,
                "message": f"Environment '{payload.environment}'",
            },
            await self._git_check(path),
        ]
        return {"passed": all(c["passed"] for c in checks), "checks": checks}

    async def deploy(
        self,
        execution: Execution,
        path: str,
        payload: DeploymentPayload,
        env: dict[str, str],
    ) -> dict[str, Any]:
        if payload.deployment_type == "docker" and not payload.deploy_command and self.deps.docker_service:
            try:
                details = await self.deps.docker_service.deploy(
                    path, {"environment": payload.environment, "env_vars": payload.env_vars}
                )
            except Exception as e:
                logger.warning(f"Execution {execution.id}: docker deployment failed: {e}")
                return {"command": None, "success": False, "error": str(e)}
            return {"command": None, "success": bool(details.get("success", True)), "details": details}

        command = payload.deploy_command or DEPLOY_COMMANDS.get(payload.deployment_type)
        if not command:
            return {
                "command": None,
                "success": False,
                "error": f"No deploy command for deployment type '{payload.deployment_type}'",
            }
        return await self._run(execution, command, path, env)

    async def post_deployment_checks(
        self,
        execution: Execution,
        payload: DeploymentPayload,
        deployment: dict[str, Any],
        env: dict[str, str],
    ) -> dict[str, Any]:
        checks = [
            {
                "name": "deployment_succeeded",
                "passed": deployment["success"],
                "message": "Deployment succeeded" if deployment["success"] else "Deployment failed",
            }
        ]

        if payload.health_check_url:
            command = (
                f"curl -fsS --max-time {HEALTH_CHECK_TIMEOUT_SECONDS} "
                f"{shlex.quote(payload.health_check_url)}"
            )
            outcome = await self._run(execution, command, None, env)
            checks.append(
                {
                    "name": "health_check",
                    "passed": outcome["success"],
                    "message": f"GET {payload.health_check_url}",
                }
            )

        return {"passed": all(c["passed"] for c in checks), "checks": checks}

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _git_check(self, path: str) -> dict[str, Any]:
        try:
            if self.deps.git_service is not None:
                status = await self.deps.git_service.get_status(path)
            else:
                status = await self.fs.get_git_info(path)
        except Exception as e:
            logger.warning(f"Git status unavailable for {path}: {e}")
            return {"name": "git_clean", "passed": True, "message": "Git status unavailable"}

        clean = status.get("clean")
        return {
            "name": "git_clean",
            "passed": clean is not False,
            "message": "Working tree has uncommitted changes" if clean is False else "Working tree clean",
        }

    async def _run(
        self,
        execution: Execution,
        command: str,
        cwd: str | None,
        env: dict[str, str],
    ) -> dict[str, Any]:
        try:
            result = await self.scripts.execute_script(
                command, cwd=cwd, env=env, timeout=self.timeout_for(execution)
            )
        except Exception as e:
            logger.warning(f"Execution {execution.id}: '{command}' failed: {e}")
            return {"command": command, "success": False, "error": str(e)}

        return {
            "command": command,
            "success": result.success,
            "exit_code": result.exit_code,
            "output": result.output,
            "error": result.error,
        }
