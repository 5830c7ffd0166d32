#!/usr/bin/env python3
"""Pre-Push Hook - Block unredacted PII before it leaves the device

Scans derived memory artifacts (.safe.md / .quick.md) for:
- Email addresses and phone numbers
- OpenAI / AWS / GitHub credentials and JWTs
- Credit-card-like and SSN-like digit groups

Exit codes:
    0 - push allowed (also when checking is disabled or the scanner fails)
    2 - push blocked
"""

import sys
from typing import Optional

from lib.sync.constants import ExitCode, SyncPaths
from lib.sync.detection import Blocked, PreTransmissionGate, format_report
from lib.sync.output import HookLogger


def run_gate(paths: SyncPaths, config, logger: Optional[HookLogger] = None) -> int:
    """Run the pre-transmission gate and translate its result to an exit code."""
    log = logger or HookLogger('PrePush')

    if config is None or not config.redact_pii:
        log.info("PII checking disabled in config")
        return ExitCode.OK

    try:
        log.info("Checking for unredacted PII...")
        result = PreTransmissionGate(paths.root, logger=log).check()
    except Exception as e:
        log.log_error(type(e).__name__, "pre_push_scan", str(e))
        log.error(f"Scanner error - allowing push: {e}")
        return ExitCode.OK

    if isinstance(result, Blocked):
        log.error("PII DETECTED - PUSH BLOCKED")
        print(format_report(result), file=sys.stderr)
        return ExitCode.BLOCKED

    if result.files_checked == 0:
        log.info("No files to check")
    else:
        log.info(f"All files PII-safe ({result.files_checked} checked)")
    return ExitCode.OK


def main() -> int:
    """Run the gate against the configured memory root."""
    from lib.hooks.config import HookTrigger
    from lib.hooks.runner import HookRunner

    runner = HookRunner()
    event = runner.read_event(sys.stdin)
    return runner.run(HookTrigger.PRE_PUSH, event).exit_code


if __name__ == "__main__":
    sys.exit(main())
