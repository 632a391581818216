#!/usr/bin/env python
"""Open a session, submit one payload and print the result.

Usage:
    python scripts/run_session.py --payload-file input.bin
    python scripts/run_session.py --payload 0102 --session-id <existing-session>

Connection settings come from ClientSettings (GRIDSESSION_* environment
variables or a client.yaml config file).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--payload", help="Payload as a hex string (e.g. 0102).")
    source.add_argument("--payload-file", type=Path, help="File whose bytes are the payload.")
    parser.add_argument("--session-id", help="Bind to an existing session instead of creating one.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the result (default: wait indefinitely).",
    )
    return parser.parse_args()


def read_payload(args: argparse.Namespace) -> bytes:
    if args.payload_file is not None:
        return args.payload_file.read_bytes()
    return bytes.fromhex(args.payload)


def main() -> Optional[int]:
    args = parse_args()

    from gridsession import GridSessionError, get_settings, open_session_service

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("gridsession.run_session")

    try:
        service = open_session_service(settings, session=args.session_id)
    except GridSessionError:
        logger.exception("Unable to open a session on %s", settings.endpoint)
        return 1

    try:
        task_id = service.submit_task(read_payload(args))
        logger.info("Submitted task %s in session %s", task_id, service)
        result = service.get_result(task_id, timeout=args.timeout)
    except GridSessionError:
        logger.exception("Task failed in session %s", service)
        return 1
    finally:
        service.channel_pool.close()

    sys.stdout.write(result.hex() + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
