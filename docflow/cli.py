"""
Docflow CLI.

Commands:
    info       Show the configuration store and runtime settings
    extract    Print the text extracted from a document
    run        Run the core agents over a document and write Markdown
    agents     List and manage the agent catalog
    models     List and manage model configurations
    web        Start the web interface

Examples:
    docflow models add openrouter openai/gpt-4o --key sk-... --id gpt4o
    docflow extract lecture.pdf
    docflow run lecture.pdf -m gpt4o -o lecture.md -v
    docflow agents promote 3
"""

from __future__ import annotations

import argparse
import sys


def _open_store(args: argparse.Namespace):
    from docflow.runtime import get_global_config
    from docflow.storage import init_db, seed_default_agents

    path = args.db or get_global_config().resolved_db_path
    conn = init_db(path)
    seed_default_agents(conn)
    return conn


def cmd_info(args: argparse.Namespace) -> int:
    """Handle info command."""
    from docflow.runtime import get_global_config
    from docflow.storage import get_all_metadata, get_stats

    config = get_global_config()
    conn = _open_store(args)
    try:
        stats = get_stats(conn)
        metadata = get_all_metadata(conn)
    finally:
        conn.close()

    print(f"Database: {args.db or config.resolved_db_path}")
    if "format_version" in metadata:
        print(f"Format: {metadata['format_version']}")
    if "docflow_version" in metadata:
        print(f"Created by: docflow {metadata['docflow_version']}")

    print()
    print("Stats:")
    print(f"  Agents: {stats['agents']} ({stats['core_agents']} core)")
    print(f"  Models: {stats['model_configs']}")
    print(f"  Artifacts: {stats['artifacts']}")

    print()
    print("Runtime:")
    print(f"  Chunk size: {config.max_chunk_chars:,} chars")
    print(f"  Request timeout: {config.request_timeout:g}s")
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    """Handle extract command."""
    from docflow.errors import ExtractionError
    from docflow.extract import extract_file

    try:
        doc = extract_file(args.file)
    except ExtractionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"Characters: {doc.char_count:,}", file=sys.stderr)
        if doc.page_count is not None:
            print(f"Pages: {doc.page_count}", file=sys.stderr)
        for key, value in doc.metadata.items():
            print(f"{key.title()}: {value}", file=sys.stderr)
        print(file=sys.stderr)

    print(doc.text)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle run command - extract a document and run the agent workflow."""
    import asyncio
    from dataclasses import replace
    from pathlib import Path

    from docflow.errors import DocflowError
    from docflow.extract import extract_file
    from docflow.runtime import get_global_config
    from docflow.storage import NotFoundError, get_core_agents, get_model_config, save_artifact
    from docflow.workflow import PipelineRunner, ProgressEvent, RunStatus

    conn = _open_store(args)
    try:
        try:
            target = get_model_config(conn, args.model)
        except NotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            print("Add one with: docflow models add PROVIDER MODEL --key KEY", file=sys.stderr)
            return 1

        config = get_global_config()
        if args.chunk_size is not None:
            if args.chunk_size <= 0:
                print("Error: --chunk-size must be positive", file=sys.stderr)
                return 1
            config = replace(config, max_chunk_chars=args.chunk_size)

        try:
            doc = extract_file(args.file)
            runner = PipelineRunner(get_core_agents(conn), doc.text, target, config=config)
        except DocflowError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if args.verbose:
            print(f"Document: {args.file} ({doc.char_count:,} chars)", file=sys.stderr)
            print(f"Model: {target.label}", file=sys.stderr)
            print(f"Agents: {', '.join(a.name for a in runner.agents)}", file=sys.stderr)
            print(file=sys.stderr)

            def show_progress(event: ProgressEvent) -> None:
                print(f"  [{event.overall_percent:3d}%] {event.stage_message}", file=sys.stderr)

            runner.subscribe(show_progress)

        attempts = 0
        while True:
            try:
                state = asyncio.run(runner.run())
            except KeyboardInterrupt:
                print("Workflow stopped.", file=sys.stderr)
                return 1

            if state.status is not RunStatus.FAILED or state.error is None:
                break

            error = state.error
            print(f"Error: {error.title}. {error.message}", file=sys.stderr)
            if error.details:
                print(f"  {error.details}", file=sys.stderr)
            if not error.retryable or attempts >= args.retries:
                return 1
            attempts += 1
            print(f"Retrying from the start ({attempts}/{args.retries})...", file=sys.stderr)
            runner = runner.retry()

        if state.status is not RunStatus.COMPLETED or state.final_artifact is None:
            print("Workflow stopped.", file=sys.stderr)
            return 1

        name = Path(args.file).stem + ".md"
        save_artifact(conn, name, state.final_artifact, run_id=state.run_id)

        if args.output:
            Path(args.output).write_text(state.final_artifact, encoding="utf-8")
            print(f"Created: {args.output}")
        else:
            print(state.final_artifact)
        return 0
    finally:
        conn.close()


def cmd_agents(args: argparse.Namespace) -> int:
    """Handle agents command."""
    from docflow.storage import (
        IntegrityError,
        NotFoundError,
        delete_agent,
        get_all_agents,
        insert_agent,
        reorder_agents,
        update_agent,
    )

    conn = _open_store(args)
    try:
        if args.agents_command == "add":
            prompt = args.prompt
            if args.prompt_file:
                from pathlib import Path

                prompt = Path(args.prompt_file).read_text(encoding="utf-8")
            if not prompt:
                print("Error: provide --prompt or --prompt-file", file=sys.stderr)
                return 1
            try:
                agent = insert_agent(
                    conn,
                    args.name,
                    prompt,
                    kind="core" if args.core else "optional",
                    description=args.description,
                    temperature=args.temperature,
                )
            except IntegrityError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"Added agent {agent.id}: {agent.name}")
            return 0

        if args.agents_command == "remove":
            if not delete_agent(conn, args.id):
                print(f"Error: Agent {args.id} not found", file=sys.stderr)
                return 1
            print(f"Removed agent {args.id}")
            return 0

        if args.agents_command in ("promote", "demote"):
            kind = "core" if args.agents_command == "promote" else "optional"
            try:
                agent = update_agent(conn, args.id, kind=kind)
            except NotFoundError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"{agent.name} is now {agent.kind.value}")
            return 0

        if args.agents_command == "order":
            try:
                reorder_agents(conn, args.ids)
            except NotFoundError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

        agents = get_all_agents(conn)
        if not agents:
            print("No agents configured.")
            return 0
        for agent in agents:
            marker = "*" if agent.is_core else " "
            print(f"{marker} [{agent.id}] {agent.name} (t={agent.temperature:.2f}, {agent.kind.value})")
            if agent.description:
                print(f"      {agent.description}")
        return 0
    finally:
        conn.close()


def cmd_models(args: argparse.Namespace) -> int:
    """Handle models command."""
    from docflow.storage import (
        IntegrityError,
        delete_model_config,
        get_all_model_configs,
        insert_model_config,
    )
    from docflow.workflow.llm import available_providers

    conn = _open_store(args)
    try:
        if args.models_command == "add":
            if args.provider not in available_providers():
                print(
                    f"Error: Unknown provider '{args.provider}'. "
                    f"Available: {', '.join(available_providers())}",
                    file=sys.stderr,
                )
                return 1
            try:
                target = insert_model_config(
                    conn,
                    args.provider,
                    args.model_name,
                    args.key or "",
                    display_name=args.name,
                    config_id=args.id,
                )
            except IntegrityError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"Added model {target.id}: {target.label}")
            return 0

        if args.models_command == "remove":
            if not delete_model_config(conn, args.id):
                print(f"Error: Model config '{args.id}' not found", file=sys.stderr)
                return 1
            print(f"Removed model {args.id}")
            return 0

        targets = get_all_model_configs(conn)
        if not targets:
            print("No models configured.")
            return 0
        for target in targets:
            key = "key set" if target.api_key else "no key"
            print(f"[{target.id}] {target.label} - {target.provider}/{target.model} ({key})")
        return 0
    finally:
        conn.close()


def cmd_web(args: argparse.Namespace) -> int:
    """Handle web command - start the web server."""
    from pathlib import Path

    from docflow.web import run_server, state

    if args.db:
        state.db_path = Path(args.db)

    try:
        run_server(
            host=args.host,
            port=args.port,
            open_browser=not args.no_browser,
        )
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docflow",
        description="Turn documents into structured Markdown with a chain of LLM agents.",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Configuration database (default: ~/.docflow/docflow.db or $DOCFLOW_DB_PATH)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # info
    subparsers.add_parser("info", help="Show the configuration store and runtime settings")

    # extract
    extract_parser = subparsers.add_parser(
        "extract",
        help="Print the text extracted from a document",
    )
    extract_parser.add_argument(
        "file",
        help="PDF, DOCX, PPTX, XLSX, TXT or MD file",
    )
    extract_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print document details to stderr",
    )

    # run
    run_parser = subparsers.add_parser(
        "run",
        help="Run the core agents over a document",
    )
    run_parser.add_argument(
        "file",
        help="PDF, DOCX, PPTX, XLSX, TXT or MD file",
    )
    run_parser.add_argument(
        "-m",
        "--model",
        required=True,
        help="Model config ID (see: docflow models list)",
    )
    run_parser.add_argument(
        "-o",
        "--output",
        help="Write Markdown here instead of stdout",
    )
    run_parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Maximum characters per model call (default: 15000)",
    )
    run_parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Restart a failed run up to N times when the error is retryable",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress on stderr",
    )

    # agents
    agents_parser = subparsers.add_parser("agents", help="List and manage agents")
    agents_sub = agents_parser.add_subparsers(dest="agents_command")
    agents_sub.add_parser("list", help="List agents (* marks core agents)")
    add_agent = agents_sub.add_parser("add", help="Add an agent")
    add_agent.add_argument("name", help="Agent name")
    add_agent.add_argument("--prompt", default="", help="System prompt")
    add_agent.add_argument("--prompt-file", help="Read the system prompt from a file")
    add_agent.add_argument("--description", default="", help="Short description")
    add_agent.add_argument("-t", "--temperature", type=float, default=0.2, help="0.0 - 1.0")
    add_agent.add_argument("--core", action="store_true", help="Add to the core workflow")
    for name, text in (
        ("remove", "Delete an agent"),
        ("promote", "Make an agent part of the core workflow"),
        ("demote", "Move an agent back to the optional catalog"),
    ):
        sub = agents_sub.add_parser(name, help=text)
        sub.add_argument("id", type=int, help="Agent ID")
    order_agents = agents_sub.add_parser("order", help="Set the workflow order")
    order_agents.add_argument("ids", type=int, nargs="+", help="Agent IDs in execution order")

    # models
    models_parser = subparsers.add_parser("models", help="List and manage model configs")
    models_sub = models_parser.add_subparsers(dest="models_command")
    models_sub.add_parser("list", help="List model configs")
    add_model = models_sub.add_parser("add", help="Add a model config")
    add_model.add_argument("provider", help="google, openrouter or ollama")
    add_model.add_argument("model_name", help="Model ID, e.g. gemini-2.5-flash or openai/gpt-4o")
    add_model.add_argument("--key", help="API key")
    add_model.add_argument("--name", help="Display name")
    add_model.add_argument("--id", help="Config ID (default: random)")
    remove_model = models_sub.add_parser("remove", help="Delete a model config")
    remove_model.add_argument("id", help="Config ID")

    # web
    web_parser = subparsers.add_parser(
        "web",
        help="Start the web interface",
    )
    web_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    web_parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    web_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entrypoint."""
    from docflow.runtime import configure_logging, get_runtime_config, set_global_config

    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_runtime_config(verbose=getattr(args, "verbose", False), db_path=args.db)
    set_global_config(config)
    configure_logging(config)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "info":
        return cmd_info(args)
    elif args.command == "extract":
        return cmd_extract(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "agents":
        return cmd_agents(args)
    elif args.command == "models":
        return cmd_models(args)
    elif args.command == "web":
        return cmd_web(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
