from pathlib import Path

from ferry.runners.claude import DEFAULT_MODEL, ClaudeCommand


def test_default_args() -> None:
    assert ClaudeCommand().build_args("hello") == [
        "-p",
        "hello",
        "--output-format",
        "stream-json",
        "--verbose",
        "--model",
        DEFAULT_MODEL,
        "--allowedTools",
        "Read",
        "--dangerously-skip-permissions",
    ]


def test_optional_args() -> None:
    command = ClaudeCommand(
        model=None,
        system_prompt="be brief",
        allowed_tools=["Read", "Edit"],
        skip_permissions=False,
        extra_args=["--max-turns", "3"],
    )

    args = command.build_args("hi")

    assert "--model" not in args
    assert "--dangerously-skip-permissions" not in args
    assert args[args.index("--system-prompt") + 1] == "be brief"
    assert args[args.index("--allowedTools") + 1] == "Read,Edit"
    assert args[-2:] == ["--max-turns", "3"]


def test_prompt_is_a_single_argument() -> None:
    args = ClaudeCommand().build_args("two words; $(rm -rf /)")
    assert args[1] == "two words; $(rm -rf /)"


def test_launch_spec() -> None:
    command = ClaudeCommand(claude_cmd="/opt/claude", cwd=Path("/tmp"))

    spec = command.launch_spec("hi", resume="abc")

    assert spec.command == "/opt/claude"
    assert spec.cwd == Path("/tmp")
    assert spec.argv()[:3] == ["/opt/claude", "-p", "hi"]
    assert spec.argv()[-2:] == ["--resume", "abc"]
    assert command.launch_spec("hi").resume is None
