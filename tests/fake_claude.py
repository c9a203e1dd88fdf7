"""Stand-in for the claude CLI used by process tests.

Usage: fake_claude.py SCENARIO.json [claude args...]

The scenario is a JSON object:
  steps: list of {"out": str} | {"err": str} | {"sleep": float}
  exit: process exit code (default 0)
  record: optional path; argv and selected env vars are written there as JSON
  ignore_sigterm: when true, SIGTERM is ignored so only SIGKILL stops it
"""

import json
import os
import signal
import sys
import time


def main() -> int:
    with open(sys.argv[1], encoding="utf-8") as handle:
        scenario = json.load(handle)

    if scenario.get("ignore_sigterm"):
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    record = scenario.get("record")
    if record:
        with open(record, "w", encoding="utf-8") as handle:
            json.dump(
                {
                    "argv": sys.argv[2:],
                    "cwd": os.getcwd(),
                    "env": {
                        key: os.environ.get(key)
                        for key in ("CLAUDECODE", "CLAUDE_CODE", "FERRY_TEST_VAR")
                    },
                },
                handle,
            )

    for step in scenario.get("steps", []):
        if "out" in step:
            sys.stdout.buffer.write(step["out"].encode("utf-8"))
            sys.stdout.buffer.flush()
        elif "err" in step:
            sys.stderr.buffer.write(step["err"].encode("utf-8"))
            sys.stderr.buffer.flush()
        elif "sleep" in step:
            time.sleep(step["sleep"])
    return int(scenario.get("exit", 0))


if __name__ == "__main__":
    sys.exit(main())
