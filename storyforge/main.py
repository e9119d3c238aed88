"""
storyforge - Main Entry Point
Interactive novel in the terminal: the reader answers each round's options.

Usage: storyforge "<what the novel should be about>"
"""

import asyncio
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .config import create_default_config_from_env
from .core import WorkflowPhase
from .workflow import NovelWorkflow

# Load environment variables
load_dotenv()

QUIT_COMMANDS = ("q", "quit", "exit")
INPUT_POLL_SECONDS = 0.5


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


def print_event(event_type: str, data: Dict[str, Any]) -> None:
    """Console view of the workflow events."""
    if event_type == "phase_changed":
        status = data["status"]
        print(f"\n--- {getattr(status, 'value', status)} ---")
    elif event_type == "outline_added":
        outline = data["outline"]
        print(f"\n[Outline {outline['range']}]\n{outline['content']}\n")
    elif event_type == "critiques_tallied":
        print(f"Outline votes: {data['votes']}/{data['expert_count']}")
    elif event_type == "cycle_finalized":
        print(f"\n{data['text']}\n")
    elif event_type == "error_raised":
        print(f"Error: {data['message']}")


def resolve_choice(text: str, options: List[str]) -> str:
    """An option number picks that option; anything else is a free-form action."""
    text = text.strip()
    if text.isdigit() and 1 <= int(text) <= len(options):
        return options[int(text) - 1]
    return text


async def main() -> None:
    """Main entry point."""
    # Create configuration from environment
    config = create_default_config_from_env()

    # Validate configuration
    errors = config.validate_configuration()
    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        return

    workflow = NovelWorkflow(config, event_callback=print_event)

    requirements = " ".join(sys.argv[1:]).strip()
    if not requirements:
        requirements = (await _read_line("Describe the novel you want to read: ")).strip()
    if not requirements:
        print("No requirements given.")
        return

    print("Building the world...")
    worldview = await workflow.generate_worldview(requirements)
    print(f"\n{worldview}\n")

    print("Recruiting the expert panel...")
    experts = await workflow.suggest_experts(requirements)
    if not experts:
        print("No experts could be recruited; drafts will go unreviewed.")
    for expert in experts:
        print(f"  - {expert.name} ({expert.field})")

    enable_thinking = os.getenv("ENABLE_THINKING", "").strip().lower() in ("1", "true", "yes", "on")
    await workflow.create_session(requirements, worldview, experts, enable_thinking=enable_thinking)

    stopping = asyncio.Event()

    def request_stop() -> None:
        stopping.set()
        workflow.stop()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, request_stop)

    pending_input: Optional[asyncio.Task] = None
    try:
        while not stopping.is_set():
            task = workflow.task if workflow.is_running else workflow.start()
            await asyncio.gather(task, return_exceptions=True)

            state = workflow.session
            if stopping.is_set() or state.error or state.status != WorkflowPhase.SELECTING_OPTION:
                break

            print("What happens next?")
            for number, option in enumerate(state.current_options, start=1):
                print(f"  {number}. {option}")
            print(f"  (or type your own action; auto-choice in {config.workflow.choice_timeout_seconds:.0f}s)")

            if pending_input is None:
                pending_input = asyncio.create_task(_read_line("> "))
            while not pending_input.done() and workflow.session.status == WorkflowPhase.SELECTING_OPTION:
                await asyncio.wait({pending_input}, timeout=INPUT_POLL_SECONDS)

            if workflow.session.status != WorkflowPhase.SELECTING_OPTION:
                # Timed out; the workflow picked an option and is already running
                continue

            text = pending_input.result()
            pending_input = None
            if text.strip().lower() in QUIT_COMMANDS:
                break
            choice = resolve_choice(text, state.current_options)
            if choice:
                workflow.submit_choice(choice, auto_continue=False)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await workflow.wait_for_background_tasks()
        state = workflow.complete()
        workflow.tracing.shutdown()
        print(f"Session {state.id} ended after round {state.current_round} ({len(state.compiled_story)} chars).")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
