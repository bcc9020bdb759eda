"""
agentloop - Interactive Entry Point
===================================

A terminal REPL around one of the agent engines. It:
1. Loads configuration (.env + environment)
2. Creates the OpenAI-backed model
3. Registers the built-in tools (calculator, HTTP, sandboxed files)
4. Streams each answer to the terminal as it is produced

Run with:
    python -m agentloop.main --agent react

Or after installing:
    agentloop --agent conversational

Commands inside the REPL:
    /reset    start a new conversation
    /trace    show the last ReAct trace
    /quit     exit
"""

import argparse
import asyncio
import sys

from agentloop.utils.config import get_config
from agentloop.utils.logger import Logger

main_logger = Logger("Main")

AGENTS = ("function", "react", "conversational")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentloop", description="Chat with an agent in the terminal.")
    parser.add_argument("--agent", choices=AGENTS, default="conversational",
                        help="Engine to run (default: conversational)")
    parser.add_argument("--workspace", default=".",
                        help="Directory the file tool may access (default: current directory)")
    parser.add_argument("--read-only", action="store_true",
                        help="Hide the file tool's write operations")
    parser.add_argument("--no-stream", action="store_true",
                        help="Wait for complete answers instead of streaming tokens")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Deadline in seconds for each answer")
    return parser


def build_agent(args: argparse.Namespace):
    """Create the model, tools and the requested engine."""
    from agentloop.agent import ConversationalAgent, FunctionAgent, ReActAgent
    from agentloop.llm.openai_chat import OpenAIChatModel
    from agentloop.tools.calculator import Calculator
    from agentloop.tools.files import FileTool
    from agentloop.tools.http import HTTPTool

    llm = OpenAIChatModel.from_config()
    tools = [
        Calculator(),
        HTTPTool(),
        FileTool(base_dir=args.workspace, allow_write=not args.read_only),
    ]

    engine = {
        "function": FunctionAgent,
        "react": ReActAgent,
        "conversational": ConversationalAgent,
    }[args.agent]
    return engine(llm, tools=tools)


async def _answer(agent, text: str, args: argparse.Namespace) -> None:
    from agentloop.agent.streaming import EventType

    if args.no_stream:
        response = await agent.run(text)
        print(response.content)
        if response.incomplete:
            print(f"[stopped: {response.stop_reason}]")
        return

    stream = agent.run_stream(text, timeout=args.timeout)
    streamed = False
    async for event in stream:
        if event.type is EventType.TOKEN and args.agent != "react":
            print(event.content, end="", flush=True)
            streamed = True
        elif event.type is EventType.THOUGHT:
            print(f"\n💭 {event.content}")
        elif event.type is EventType.TOOL_START:
            print(f"\n🔧 {event.content}({event.metadata.get('args')})")
        elif event.type is EventType.TOOL_END:
            print(f"   → {event.content[:200]}")
        elif event.type is EventType.ANSWER and not streamed:
            print(event.content)
        elif event.type is EventType.COMPLETE:
            if event.metadata.get("stop_reason") != "final_answer":
                print(f"\n[stopped: {event.metadata.get('stop_reason')}]")
            print()
        elif event.type is EventType.ERROR:
            print(f"\n[error ({event.metadata.get('phase')}): {event.content}]")


async def main(argv: list[str] | None = None) -> int:
    """
    Main async entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
        main_logger.set_level(config.log_level)
        main_logger.info(f"Starting {args.agent} agent with model {config.openai.model}")
        agent = build_agent(args)
    except Exception as e:
        main_logger.error("Failed to start agent", e)
        return 1

    print("Type a message, /reset, /trace or /quit.")
    while True:
        try:
            text = (await asyncio.to_thread(input, "\n> ")).strip()
        except EOFError:
            break

        if not text:
            continue
        if text == "/quit":
            break
        if text == "/reset":
            agent.reset()
            print("Conversation cleared.")
            continue
        if text == "/trace":
            for step in getattr(agent, "get_trace", list)():
                print(step.to_dict())
            continue

        try:
            await _answer(agent, text, args)
        except Exception as e:
            main_logger.error("Run failed", e)

    main_logger.info("Bye")
    return 0


def run():
    """
    Synchronous entry point.

    This is called when running with the `agentloop` command.
    """
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
