"""Claude Code CLI backend (headless ``claude -p``).

The CLI runs its own agent loop, so tool definitions are not forwarded and
the response never carries tool calls.  Failures are reported through
``LLMResponse.error`` instead of raising: the runner posts nothing and the
conversation simply ends for that cycle.
"""

from __future__ import annotations

import asyncio
import json

from loguru import logger

from virtualco.company_runtime.models.enums import TurnRole
from virtualco.company_runtime.models.llm import LLMRequest, LLMResponse


class ClaudeCodeBackend:
    def __init__(self, command: str = "claude", timeout: float = 300.0) -> None:
        self.command = command
        self.timeout = timeout

    def build_args(self, prompt: str, system_prompt: str = "") -> list[str]:
        args = [self.command, "-p", prompt, "--output-format", "json"]
        if system_prompt:
            args.extend(["--append-system-prompt", system_prompt])
        return args

    async def call(self, request: LLMRequest) -> LLMResponse:
        prompt = next((t.content for t in reversed(request.messages) if t.role == TurnRole.USER), None)
        if prompt is None:
            return LLMResponse(error="No user message to send to Claude Code")

        args = self.build_args(prompt, request.system_prompt)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to execute Claude Code CLI: {}", e)
            return LLMResponse(error=f"Failed to call Claude Code: {e}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError:
            logger.error("Claude Code CLI timed out after {}s", self.timeout)
            return LLMResponse(error=f"Claude Code timed out after {self.timeout}s")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        stdout = stdout_bytes.decode(errors="replace")
        stderr = stderr_bytes.decode(errors="replace")
        if process.returncode != 0:
            logger.error("Claude Code CLI exited with code {}: {}", process.returncode, stderr[:500])
            return LLMResponse(error=f"Claude Code exited with code {process.returncode}: {stderr}")

        return LLMResponse(content=parse_output(stdout))


def parse_output(stdout: str) -> str:
    """``result`` or ``message`` from the JSON envelope, else the raw text."""
    try:
        output = json.loads(stdout)
    except json.JSONDecodeError:
        return stdout
    if not isinstance(output, dict):
        return stdout
    return output.get("result") or output.get("message") or stdout
