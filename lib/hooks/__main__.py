"""Entry point for the memory sync hooks.

Usage:
    python -m lib.hooks session-start < event.json
    python -m lib.hooks session-end < event.json
    python -m lib.hooks pre-push < event.json
    python -m lib.hooks redact
    python -m lib.hooks resolve-conflicts

Environment variables:
    MEMSYNC_ROOT: Memory repository root (default: ~/.claude-memory-cloud)
    REDIS_URL: Optional Redis URL for the hook activity log
"""

import argparse
import sys
from typing import List, Optional

from lib.sync.conflicts import ConflictResolver
from lib.sync.constants import Defaults, ExitCode
from lib.sync.redaction import RedactionEngine, RedactionError
from lib.sync.store import GitStore

from .config import HookTrigger
from .runner import HookRunner


HOOK_COMMANDS = {trigger.value: trigger for trigger in HookTrigger}


def redact(runner: HookRunner) -> int:
    """Regenerate .safe.md / .quick.md files for every memory file."""
    engine = RedactionEngine(runner.paths.root, runner.logger('Redaction'))
    try:
        reports = engine.process_tree()
    except RedactionError as e:
        runner.logger('Redaction').error(str(e))
        return ExitCode.FAILED
    runner.logger('Redaction').info(f"PII redaction complete ({len(reports)} file(s) processed)")
    return ExitCode.OK


def resolve_conflicts(runner: HookRunner) -> int:
    """Resolve conflicted files; exit 1 when anything still needs a human."""
    log = runner.logger('Conflicts')
    config = runner.config
    store = GitStore(
        runner.paths.root,
        local_timeout=config.local_timeout if config else Defaults.LOCAL_TIMEOUT
    )
    summary = ConflictResolver(runner.paths, store, log).resolve_all()

    if not summary.results:
        log.info("No conflicts found")
        return ExitCode.OK

    log.info(f"Total conflicts: {len(summary.results)}")
    log.info(f"Auto-resolved: {len(summary.resolved)}")
    log.info(f"Manual resolution needed: {len(summary.manual)}")
    log.info(f"Failed: {len(summary.failed)}")

    if summary.manual or summary.failed:
        log.warn("After resolving manually: git add <file> && git commit -m \"Resolve conflicts\"")
        return ExitCode.FAILED

    log.info("All conflicts resolved automatically - commit to conclude the merge")
    return ExitCode.OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m lib.hooks",
        description="Memory sync hooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "command",
        choices=[*HOOK_COMMANDS, "redact", "resolve-conflicts"],
        help="Hook or maintenance command to run"
    )
    parser.add_argument("--root", type=str, help="Memory repository root")
    parser.add_argument("--quiet", action="store_true", help="Only report warnings and errors")

    args = parser.parse_args(argv)
    runner = HookRunner(root=args.root, quiet=args.quiet)

    if args.command == "redact":
        return redact(runner)
    if args.command == "resolve-conflicts":
        return resolve_conflicts(runner)

    event = runner.read_event(sys.stdin)
    return runner.run(HOOK_COMMANDS[args.command], event).exit_code


if __name__ == "__main__":
    sys.exit(main())
