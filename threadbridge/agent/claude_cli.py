"""Claude CLI adapter: one child process per turn, stream-json output.

This module isolates the agent CLI's argument conventions and output shape
from the continuity controller so CLI changes stay localized here.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import time
from pathlib import Path

from loguru import logger

from threadbridge.agent.progress import ActivityTracker, parse_stream_event
from threadbridge.core.ports import AgentRequest, AgentResult, ProgressCallback
from threadbridge.utils.helpers import truncate_string

STREAM_LINE_LIMIT = 16 * 1024 * 1024


class AgentInvocationError(RuntimeError):
    """The agent process failed (non-zero exit, no output, spawn error)."""

    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class AgentTimeoutError(AgentInvocationError):
    """The agent process exceeded its timeout and was killed."""


def find_claude_command(configured: str | None = None) -> str:
    """Resolve the agent CLI path: config, common install locations, then PATH."""
    if configured and configured.strip():
        return str(Path(configured.strip()).expanduser())

    home = Path.home()
    candidates = [
        home / ".local" / "bin" / "claude",
        home / ".claude" / "local" / "claude",
        Path("/usr/local/bin/claude"),
        Path("/opt/homebrew/bin/claude"),
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return shutil.which("claude") or "claude"


def parse_stream_output(output: str) -> tuple[str | None, str]:
    """Pull ``(session_id, result_text)`` out of a full stream-json transcript.

    The last ``session_id`` seen wins. The ``result`` event's text wins over
    assistant text blocks; without either, the raw output is returned.
    """
    session_id: str | None = None
    result_text = ""
    assistant_text = ""
    for line in output.strip().splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        if data.get("session_id"):
            session_id = str(data["session_id"])
        if data.get("type") == "result" and data.get("result"):
            result_text = str(data["result"])
        elif data.get("type") == "assistant":
            content = (data.get("message") or {}).get("content")
            if isinstance(content, list):
                for block in content:
                    if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                        assistant_text = str(block["text"])
    return session_id, (result_text or assistant_text or output.strip())


class ClaudeCLIAdapter:
    """Agent adapter spawning ``claude -p <prompt> [--resume <id>]``."""

    def __init__(
        self,
        *,
        command: str | None = None,
        allowed_tools: list[str] | None = None,
        skip_permissions: bool = True,
        timeout_seconds: float = 600,
        workspace: str | None = None,
        extra_args: list[str] | None = None,
        progress_interval_seconds: float = 3.0,
    ) -> None:
        self.command = find_claude_command(command)
        self.allowed_tools = list(allowed_tools or [])
        self.skip_permissions = skip_permissions
        self.timeout_seconds = max(1.0, float(timeout_seconds))
        self.workspace = str(Path(workspace).expanduser()) if workspace else None
        self.extra_args = list(extra_args or [])
        self.progress_interval_seconds = progress_interval_seconds

    def build_args(self, request: AgentRequest) -> list[str]:
        args = [self.command, "-p", request.prompt]
        if request.resume_session_id:
            args.extend(["--resume", request.resume_session_id])
        # Chat threads cannot answer interactive permission prompts.
        if self.skip_permissions:
            args.append("--dangerously-skip-permissions")
        if self.allowed_tools:
            args.extend(["--allowedTools", ",".join(self.allowed_tools)])
        args.extend(["--output-format", "stream-json", "--verbose"])
        args.extend(self.extra_args)
        return args

    async def invoke(
        self,
        request: AgentRequest,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> AgentResult:
        args = self.build_args(request)
        logger.info(
            "Invoking agent ({}) with prompt: {!r}",
            f"resume {request.resume_session_id}" if request.resume_session_id else "new session",
            truncate_string(request.prompt, 50),
        )
        started = time.monotonic()
        tracker = ActivityTracker(min_interval_seconds=self.progress_interval_seconds)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.workspace,
                env=dict(os.environ),
                limit=STREAM_LINE_LIMIT,
            )
        except OSError as e:
            raise AgentInvocationError(f"Failed to start agent CLI {self.command}: {e}") from e

        lines: list[str] = []
        try:
            async with asyncio.timeout(self.timeout_seconds):
                assert process.stdout is not None
                async for raw in process.stdout:
                    line = raw.decode("utf-8", errors="replace").rstrip("\n")
                    if not line.strip():
                        continue
                    lines.append(line)
                    text = tracker.observe(parse_stream_event(line))
                    if text and on_progress is not None:
                        await self._emit_progress(on_progress, text)
                stderr_bytes = await process.stderr.read() if process.stderr else b""
                exit_code = await process.wait()
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise AgentTimeoutError(
                f"Agent CLI timed out after {self.timeout_seconds:.0f}s", exit_code=process.returncode
            ) from e
        finally:
            # Cancellation and unexpected errors must not leave the child running.
            if process.returncode is None:
                logger.warning("Killing agent CLI (pid {}) after an interrupted turn", process.pid)
                process.kill()
                await process.wait()

        output = "\n".join(lines)
        stderr = stderr_bytes.decode("utf-8", errors="replace").strip()
        duration = time.monotonic() - started
        if exit_code != 0 or not output.strip():
            raise AgentInvocationError(
                f"Agent CLI failed (exit {exit_code}): {truncate_string(stderr or 'No output', 300)}",
                exit_code=exit_code,
                stderr=stderr,
            )

        session_id, result_text = parse_stream_output(output)
        logger.info(
            "Agent response received ({} chars, {:.0f}s, {} tools)",
            len(result_text),
            duration,
            tracker.tool_count,
        )
        return AgentResult(
            result_text=result_text,
            session_id=session_id,
            tool_count=tracker.tool_count,
            duration_seconds=duration,
        )

    @staticmethod
    async def _emit_progress(on_progress: ProgressCallback, text: str) -> None:
        try:
            await on_progress(text)
        except Exception as e:
            logger.warning("Progress update failed: {}", e)


def ensure_not_root(*, allow_root: bool = False) -> None:
    """Refuse to run as root: the agent CLI rejects skip-permissions under root."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None or allow_root:
        return
    if geteuid() == 0:
        raise AgentInvocationError(
            "Refusing to run the agent CLI as root; run as a regular user or set agent.allowRoot"
        )
