"""Tail the PME notification feed in a terminal.

Connects to the dashboard backend, replays whatever the server still
buffers, then prints live events one line each.

    pip install pme-notify

    python examples/notifications_tail.py --page-url https://pme.example.com/
    python examples/notifications_tail.py --host localhost:8080 --resume from-cursor
"""

import argparse
import asyncio
import logging
import signal

from pme_notify import (
    FileStore,
    NotificationSession,
    ResumeMode,
    SessionConfig,
    format_event,
)


class TerminalSink:
    def on_status_change(self, status):
        print(f"-- {status.value}")

    def on_event(self, event):
        print(format_event(event))

    def on_control(self, message):
        if message.type == "recovery_complete" and message.count is not None:
            print(f"-- replayed {message.count} buffered events")


async def main(config: SessionConfig, cursor_path: str):
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    session = NotificationSession(config, store=FileStore(cursor_path), sinks=[TerminalSink()])
    print(f"Connecting to {config.url} (cursor {session.cursor})")
    session.on_activate("notifications")

    await stop.wait()
    await session.disconnect()
    print(f"Stopped at seq {session.cursor}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="PME notification tail")
    parser.add_argument("--host", default="localhost:8080", help="Backend host[:port]")
    parser.add_argument("--secure", action="store_true", help="Use wss://")
    parser.add_argument("--page-url", help="Dashboard URL; overrides --host/--secure")
    parser.add_argument(
        "--resume",
        choices=[m.value for m in ResumeMode],
        default=ResumeMode.REPLAY_ALL.value,
    )
    parser.add_argument("--dedupe", action="store_true", help="Skip already seen seqs")
    parser.add_argument("--cursor-file", default="pme_cursor.json")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    options = {"resume_mode": ResumeMode(args.resume), "deduplicate": args.dedupe}
    if args.page_url:
        config = SessionConfig.from_page_url(args.page_url, **options)
    else:
        config = SessionConfig(host=args.host, secure=args.secure, **options)

    asyncio.run(main(config, args.cursor_file))
