"""AI service backed by the Anthropic API."""

import json
import re
from typing import Any

import anyio
from loguru import logger

from taskforge.core.config import Settings, get_settings
from taskforge.core.errors import ConfigurationError

ANALYZE_PROJECT_PROMPT = """You are reviewing a software project.

Project path: {path}
Analysis type: {analysis_type}

Project structure:
{structure}

Dependencies:
{dependencies}

Respond with a JSON object containing:
- "summary": one paragraph describing the project
- "architecture": notable architectural patterns
- "issues": list of {{"severity", "description", "location"}}
- "recommendations": list of short actionable recommendations

Return ONLY the JSON object."""

OPTIMIZE_CODE_PROMPT = """Optimize the following code for {optimization_type}.

File: {file_path}

```
{content}
```

Respond with a JSON object containing:
- "optimized_code": the complete optimized file content
- "changes": list of short descriptions of each change
- "explanation": why the changes improve {optimization_type}

If no improvement is worthwhile, return the original code unchanged.
Return ONLY the JSON object."""

SECURITY_ANALYSIS_PROMPT = """Assess the security of a project.

Target: {target}
Scan type: {scan_type}

Automated check findings:
{checks}

Respond with a JSON object containing:
- "risk_level": one of "low", "medium", "high", "critical"
- "vulnerabilities": list of {{"severity", "title", "description", "remediation"}}
- "recommendations": list of short actionable recommendations

Return ONLY the JSON object."""

TEST_RESULTS_PROMPT = """Interpret these test results.

{results}

Respond with a JSON object containing:
- "assessment": one paragraph on the health of the test suite
- "failure_causes": likely causes for any failures
- "recommendations": list of short actionable recommendations

Return ONLY the JSON object."""


def extract_json(text: str) -> dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    Markdown code fences are stripped. Other JSON values come back as
    ``{"result": value}``, unparsable text as ``{"raw": text}``.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"```(?:json)?\n?", "", cleaned)
        cleaned = cleaned.rstrip("`").strip()

    candidates = [cleaned]
    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
        return {"result": parsed}

    return {"raw": text}


class ClaudeAIService:
    """
    AI service using Claude through ``anthropic.AsyncAnthropic``.

    The client is created on first use so the service can be wired without
    an API key; calling it without one raises ``ConfigurationError``.

    Example:
        >>> ai = ClaudeAIService()
        >>> review = await ai.analyze_project("/srv/app", {"analysis_type": "full"})
        >>> review["recommendations"]
        [...]
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: Any = None,
        timeout_seconds: float = 120.0,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self.timeout_seconds = timeout_seconds

    @property
    def client(self):
        if self._client is None:
            if self.settings.anthropic_api_key is None:
                raise ConfigurationError("ANTHROPIC_API_KEY is not set")

            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(
                api_key=self.settings.anthropic_api_key.get_secret_value()
            )
        return self._client

    async def analyze_project(self, path: str, options: dict[str, Any]) -> dict[str, Any]:
        prompt = ANALYZE_PROJECT_PROMPT.format(
            path=path,
            analysis_type=options.get("analysis_type", "full"),
            structure=_dump(options.get("structure", {})),
            dependencies=_dump(options.get("dependencies", {})),
        )
        return await self._complete(prompt, options)

    async def optimize_code(
        self, content: str, spec: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        prompt = OPTIMIZE_CODE_PROMPT.format(
            optimization_type=spec.get("optimization_type", "performance"),
            file_path=spec.get("file_path", "<unknown>"),
            content=content,
        )
        return await self._complete(prompt, options)

    async def perform_security_analysis(
        self, data: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        prompt = SECURITY_ANALYSIS_PROMPT.format(
            target=data.get("target"),
            scan_type=data.get("scan_type"),
            checks=_dump(data.get("automated_checks", {})),
        )
        return await self._complete(prompt, options)

    async def analyze_test_results(
        self, results: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        prompt = TEST_RESULTS_PROMPT.format(results=_dump(results))
        return await self._complete(prompt, options)

    async def _complete(self, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        model = options.get("model") or self.settings.taskforge_ai_model
        logger.debug(f"Calling Claude ({model}) with a {len(prompt)} character prompt")

        with anyio.fail_after(self.timeout_seconds):
            response = await self.client.messages.create(
                model=model,
                max_tokens=self.settings.taskforge_ai_max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return extract_json(text)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)[:20_000]
