from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..supervisor import LaunchSpec

DEFAULT_MODEL = "claude-haiku-4-5"


@dataclass
class ClaudeCommand:
    """Build the argument list for one `claude -p` stream-json run."""

    claude_cmd: str = "claude"
    model: str | None = DEFAULT_MODEL
    system_prompt: str | None = None
    allowed_tools: list[str] = field(default_factory=lambda: ["Read"])
    skip_permissions: bool = True
    cwd: Path | None = None
    extra_args: list[str] = field(default_factory=list)

    def build_args(self, prompt: str) -> list[str]:
        args: list[str] = ["-p", prompt, "--output-format", "stream-json", "--verbose"]
        if self.model:
            args.extend(["--model", self.model])
        if self.system_prompt:
            args.extend(["--system-prompt", self.system_prompt])
        if self.allowed_tools:
            args.extend(["--allowedTools", ",".join(self.allowed_tools)])
        if self.skip_permissions:
            args.append("--dangerously-skip-permissions")
        args.extend(self.extra_args)
        return args

    def launch_spec(self, prompt: str, resume: str | None = None) -> LaunchSpec:
        return LaunchSpec(
            command=self.claude_cmd,
            args=tuple(self.build_args(prompt)),
            cwd=self.cwd,
            resume=resume,
        )
