"""
Simulation of a coding agent driving a runbox run.

The agent (simulated here) picks tools dynamically. Runbox keeps every call
inside the workspace, blocks destructive commands, and ties the run's
cancellation flag to every command it starts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from runbox import RunRequest, open_run
from runbox.integrations import render_call

PATCH = """\
--- a/hello.py
+++ b/hello.py
@@ -1 +1 @@
-print("Hello World")
+print("Hello runbox")
"""


@dataclass
class AgentAction:
    thought: str
    tool: str
    args: dict = field(default_factory=dict)


class MockLLM:
    """Simulates an LLM acting on a user request."""

    def __init__(self):
        self.step = 0

    def next_action(self) -> AgentAction | None:
        """Returns the next tool call the 'AI' wants to make."""
        actions = [
            AgentAction("I need to see what files are here.", "run_command", {"command": "ls -la"}),
            AgentAction(
                "I'll create a python script.",
                "run_command",
                {"command": "echo 'print(\"Hello World\")' > hello.py"},
            ),
            AgentAction("Where is the greeting?", "search", {"pattern": "Hello"}),
            AgentAction("Let me change the greeting.", "apply_patch", {"patch_text": PATCH}),
            AgentAction("Let me check the file.", "read_file", {"path": "hello.py"}),
            # Mistakes the policy catches
            AgentAction("I should read the SSH keys.", "read_file", {"path": "../.ssh/id_rsa"}),
            AgentAction("Clean up everything.", "run_command", {"command": "rm -rf /"}),
            AgentAction("This will hang.", "run_command", {"command": "sleep 60", "timeout": 0.5}),
        ]

        if self.step < len(actions):
            action = actions[self.step]
            self.step += 1
            return action
        return None


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    workspace = Path("./workspace").resolve()
    workspace.mkdir(parents=True, exist_ok=True)

    llm = MockLLM()
    async with await open_run(RunRequest(task_description="say hello", workspace=workspace)) as run:
        print(f"Run {run.run_id} is {run.state.value}\n")

        while True:
            action = llm.next_action()
            if not action:
                print("Agent finished task.")
                break

            print(f"Thought: {action.thought}")
            tool = getattr(run, action.tool)
            output = await render_call(tool(**action.args))
            first_line = output.strip().splitlines()[0] if output.strip() else "(no output)"
            print(f"  -> {first_line}")
            print("-" * 50)

    print(f"Run {run.run_id} is {run.state.value}")


if __name__ == "__main__":
    asyncio.run(main())
