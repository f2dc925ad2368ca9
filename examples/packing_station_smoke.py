from __future__ import annotations

import argparse
import json
import logging
import os

from packstation_sdk import (
    ApiError,
    PackingActor,
    PackingWorkflowError,
    StationSession,
    load_config,
    to_user_facing_error,
)
from packstation_sdk.packing_validation import ClientValidationError


class ConsolePrompt:
    def confirm(self, title: str, message: str) -> bool:
        answer = input(f"{title}\n{message}\n[y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    def request_text(self, title: str, message: str) -> str | None:
        answer = input(f"{title}\n{message}\n> ")
        return answer or None


def main() -> None:
    parser = argparse.ArgumentParser(description="Packing station smoke CLI")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--order-id", required=True)
    parser.add_argument("--user-id", default=os.getenv("PACKSTATION_USER_ID", "packer-1"))
    parser.add_argument("--role", default=os.getenv("PACKSTATION_ROLE", "PACKER"))
    parser.add_argument("--token", default=os.getenv("PACKSTATION_ACCESS_TOKEN"))
    parser.add_argument("--scan", action="append", default=[], help="Scan token; repeat for several units")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.env_file)
    station = StationSession(config, PackingActor(user_id=args.user_id, role=args.role), access_token=args.token)
    session = station.packing_session(args.order_id, ConsolePrompt())

    try:
        with session:
            outcome = session.open()
            for token in args.scan:
                session.scan(token)
            progress = session.progress()
            print(
                json.dumps(
                    {
                        "order_id": args.order_id,
                        "claim": outcome.value,
                        "phase": session.phase.value,
                        "verified_items": progress.verified_items,
                        "total_items": progress.total_items,
                        "ready_to_finalize": progress.ready_to_finalize,
                        "notices": [notice.message for notice in session.drain_notices()],
                    },
                    indent=2,
                )
            )
    except (ApiError, PackingWorkflowError, ClientValidationError) as exc:
        error = to_user_facing_error(exc)
        print(json.dumps({"error": error.message, "details": error.details, "trace_id": error.trace_id}, indent=2))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
