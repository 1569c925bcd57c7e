"""
Command-line entry point for the Document Compiler.

Subcommands:
    compile   Stream a compilation of a template through the configured
              provider, retrying while placeholders remain, and store the
              result in the session's snapshot file.
    merge     Replay a set of user edits onto a compiled document and print
              the merged text.
"""
import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from .completeness import contains_placeholders
from .config_loader import load_config
from .document_merge import get_merge_stats, merge_user_edits
from .entities import parse_entities
from .exceptions import DocumentCompilerError, FileReadError, FileWriteError
from .llm_client_selector import PROVIDER_MAP, make_stream_factory
from .logger_setup import setup_logging
from .models import Message
from .prompts.prompt_builder import DocumentContext
from .session import DocumentSession
from .spreadsheet import merge_cell_edits_into_text, split_edits
from .stream_controller import CompilationController

logger = logging.getLogger(__name__)


def _read_text(path: str) -> str:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError as e:
        raise FileReadError(f"Could not read {path}: {e}") from e


def _read_json(path: str) -> Any:
    try:
        return json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        raise FileReadError(f"Invalid JSON in {path}: {e}") from e


def _write_output(text: str, output_file: Optional[str]) -> None:
    if not output_file:
        print(text)
        return
    try:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(text)
        logger.info(f"Wrote output to {output_file}")
    except OSError as e:
        raise FileWriteError(f"Could not write {output_file}: {e}") from e


async def compile_workflow(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Runs one compilation request and stores the result. Returns the exit status."""
    template_text = _read_text(args.template)
    file_name = os.path.basename(args.template)
    session_id = args.session or os.path.splitext(file_name)[0]

    session = DocumentSession.from_config(session_id, config)
    document_context = DocumentContext(
        file_name=file_name,
        file_type=os.path.splitext(file_name)[1].lstrip('.') or 'txt',
        extracted_text=template_text,
        compiled_content=session.compiled_content or None,
    )
    entities = parse_entities(_read_json(args.entities)) if args.entities else []

    stream_factory = make_stream_factory(config, document_context, entities, provider=args.provider)
    controller = CompilationController.from_config(
        config,
        stream_factory,
        store=session.store,
        on_progress=lambda line: print(f"... {line}", file=sys.stderr),
        on_notice=lambda notice: print(notice, file=sys.stderr),
    )

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.abort)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will not abort gracefully")

    messages: List[Message] = [Message('user', args.message)]
    outcome = await controller.run(messages)
    logger.info(f"Compilation finished: {outcome!r}")

    if outcome.body:
        session.update_compiled_content(outcome.body)
        merged = session.get_merged_content().merged_content
        _write_output(merged, args.output_file)
        if not contains_placeholders(merged):
            logger.info("Document is fully compiled")
    return 0


def merge_workflow(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Applies an edits file onto a compiled document. Returns the exit status."""
    compiled = _read_text(args.compiled)
    edits = _read_json(args.edits)
    if not isinstance(edits, dict):
        raise FileReadError(f"Edits file {args.edits} must contain a JSON object")
    structure = _read_json(args.structure) if args.structure else None
    require_unique = args.require_unique or config.get('merge', {}).get('require_unique_match', False)

    if args.spreadsheet:
        buckets = split_edits(edits)
        result = merge_user_edits(compiled, buckets['fields'], structure, require_unique_match=require_unique)
        merged = merge_cell_edits_into_text(result.merged_content, buckets['cells'])
        logger.info(f"Applied {len(buckets['cells'])} cell edits")
    else:
        result = merge_user_edits(compiled, edits, structure, require_unique_match=require_unique)
        merged = result.merged_content

    _write_output(merged, args.output_file)
    stats = get_merge_stats(result)
    print(f"Applied {stats['total_applied']}/{stats['total_fields']} edits "
          f"({stats['percentage']}%), content changed: {stats['content_changed']}", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compile document templates with an AI model and merge user edits.")
    parser.add_argument(
        "--config",
        type=str,
        default='config/config.yaml',
        help="Path to the YAML configuration file, relative to the package directory (default: config/config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile a template through the configured provider.")
    compile_parser.add_argument("template", help="Path to the template text to compile.")
    compile_parser.add_argument("--message", "-m", required=True, help="Instruction sent to the model.")
    compile_parser.add_argument("--session", help="Session id for snapshots (default: template file name).")
    compile_parser.add_argument("--entities", help="JSON file with entity registry records.")
    compile_parser.add_argument(
        "--provider",
        type=str,
        choices=sorted(PROVIDER_MAP),
        help="LLM provider to use. Defaults to default_provider from the config."
    )
    compile_parser.add_argument("--output-file", help="Write the compiled document here instead of stdout.")

    merge_parser = subparsers.add_parser("merge", help="Apply user edits onto a compiled document.")
    merge_parser.add_argument("compiled", help="Path to the compiled document text.")
    merge_parser.add_argument("edits", help="JSON file mapping field ids (or Sheet:Ref keys) to edits.")
    merge_parser.add_argument("--structure", help="JSON file with the document structure the edits refer to.")
    merge_parser.add_argument("--spreadsheet", action="store_true", help="Treat Sheet:Ref keys as cell edits.")
    merge_parser.add_argument("--require-unique", action="store_true",
                              help="Skip edits whose original text occurs more than once.")
    merge_parser.add_argument("--output-file", help="Write the merged document here instead of stdout.")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        setup_logging(config)
    except DocumentCompilerError as e:
        print(f"CRITICAL: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "compile":
            status = asyncio.run(compile_workflow(args, config))
        else:
            status = merge_workflow(args, config)
    except DocumentCompilerError as e:
        logger.critical(f"Application error during {args.command}: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.critical(f"Unhandled exception during {args.command}: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
