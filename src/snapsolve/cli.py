"""Command line front end.

Usage examples:
- Show / change the stored configuration:
  snapsolve config show
  snapsolve config set model_provider=gemini gemini_api_key=...

- Check an OpenAI key:
  snapsolve check-key sk-...

- Solve from screenshots, then debug with extra ones:
  snapsolve solve problem1.png problem2.png --debug attempt.png --pretty

Notes:
- Results are printed as JSON on stdout, progress goes to stderr.
- Ctrl-C cancels the running pipeline instead of killing the process.
"""
import argparse
import asyncio
import json
import signal
import sys
from typing import Any, Dict, List, Optional

from .adapters.openai_style import check_api_key, is_valid_api_key_format
from .config import ConfigStore
from .errors import ConfigurationError
from .logging_util import get_logger, key_fingerprint
from .pipeline import ListScreenshotQueue, Processor
from .types import ProgressUpdate

logger = get_logger(__name__)

SECRET_FIELDS = ("api_key", "gemini_api_key")

def _print_json(obj: Any, pretty: bool) -> None:
    if pretty:
        print(json.dumps(obj, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(obj, ensure_ascii=False))

def _masked(config: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(config)
    for k in SECRET_FIELDS:
        if out.get(k):
            out[k] = key_fingerprint(out[k])
    return out

def _parse_assignments(items: List[str]) -> Dict[str, str]:
    changes: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"expected KEY=VALUE, got {item!r}")
        changes[key.strip()] = value
    return changes

def cmd_config(args, store: ConfigStore) -> int:
    if args.action == "set":
        try:
            store.update(_parse_assignments(args.assignments))
        except ConfigurationError as e:
            logger.error("Failed to update config: %s", e)
            return 2
    _print_json(_masked(store.load().to_dict()), args.pretty)
    return 0

def cmd_check_key(args, store: ConfigStore) -> int:
    if not is_valid_api_key_format(args.key):
        _print_json({"valid": False, "error": "Invalid API key format"}, args.pretty)
        return 1
    valid, error = check_api_key(args.key)
    _print_json({"valid": valid, "error": error}, args.pretty)
    return 0 if valid else 1

def _progress_to_stderr(update: ProgressUpdate) -> None:
    print(f"[{update.progress:3d}%] {update.message}", file=sys.stderr)

async def _solve(processor: Processor, debug_images: Optional[List[str]]) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, processor.cancel_ongoing_requests)
    except (NotImplementedError, RuntimeError, ValueError):
        # no signal handlers on this platform/loop; Ctrl-C falls back to KeyboardInterrupt
        pass

    out: Dict[str, Any] = {"ok": False}
    try:
        result = await processor.run_initial()
        if not result.ok:
            out.update(failure=result.failure.value if result.failure else None, error=result.message)
            return out

        out.update(
            ok=True,
            problem=processor.state.problem_info.to_dict(),
            solution=result.data.to_dict(),
        )
        if debug_images:
            debug = await processor.run_debug()
            if debug.ok:
                out["debug"] = debug.data.to_dict()
            else:
                out.update(ok=False, failure=debug.failure.value if debug.failure else None, error=debug.message)
        return out
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError, ValueError):
            pass
        processor.close()

def cmd_solve(args, store: ConfigStore) -> int:
    if args.language:
        try:
            store.set_language(args.language)
        except ConfigurationError as e:
            logger.error("Failed to set language: %s", e)
            return 2

    queue = ListScreenshotQueue(current=args.images, extra=args.debug or [])
    processor = Processor(store, queue, on_progress=_progress_to_stderr)
    out = asyncio.run(_solve(processor, args.debug))

    _print_json(out, args.pretty)
    if out.get("failure") == "canceled":
        return 130
    return 0 if out.get("ok") else 1

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--pretty", action="store_true", help="Pretty print the output JSON")

    ap = argparse.ArgumentParser(prog="snapsolve")
    ap.add_argument("--config", help="Path to config.json (default: $SNAPSOLVE_CONFIG_PATH or ~/.snapsolve/config.json)")
    sub = ap.add_subparsers(dest="command", required=True)

    p_config = sub.add_parser("config", parents=[common], help="Show or change the stored configuration")
    p_config.add_argument("action", choices=("show", "set"))
    p_config.add_argument("assignments", nargs="*", metavar="KEY=VALUE")
    p_config.set_defaults(func=cmd_config)

    p_key = sub.add_parser("check-key", parents=[common], help="Validate an OpenAI API key")
    p_key.add_argument("key")
    p_key.set_defaults(func=cmd_check_key)

    p_solve = sub.add_parser("solve", parents=[common], help="Extract and solve a problem from screenshots")
    p_solve.add_argument("images", nargs="+", help="Problem screenshots, in order")
    p_solve.add_argument("--debug", nargs="+", metavar="IMG", help="Screenshots of your attempt, for a debug pass")
    p_solve.add_argument("--language", help="Target language (saved to config)")
    p_solve.set_defaults(func=cmd_solve)

    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = ConfigStore(args.config)
    return args.func(args, store)

if __name__ == "__main__":
    sys.exit(main())
