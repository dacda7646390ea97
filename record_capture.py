#!/usr/bin/env python3
"""
Voice Capture — terminal recorder

Records from the local microphone, uploads to the capture service and
prints the structured result.

Usage:
    python record_capture.py --user me
    python record_capture.py --user me --mode autosave --device 2
    python record_capture.py --list-devices
"""

import sys
import asyncio
import argparse
import logging

from client.errors import CaptureClientError
from client.recorder import CancellationSignal, CaptureState, RecordingController
from client.sounddevice_backend import SoundDeviceBackend
from client.transport import DEFAULT_ENDPOINT, CaptureTransport


def print_result(response: dict):
    """Render a successful capture response."""
    structured = response.get("structured") or {}
    print(f"\n📝 Transcript: {response.get('rawText')}")
    print(f"🕐 Local day: {response.get('todayLocalYmd')} ({response.get('timezone')})")

    for key in ("summary", "note", "reflection", "emotional_state", "grounding"):
        if structured.get(key):
            print(f"   {key}: {structured[key]}")

    for action in structured.get("actions") or []:
        print(f"   • {action}")

    for task in structured.get("tasks") or []:
        due = task.get("due_iso") or task.get("due_natural") or "no due date"
        priority = f" [{task['priority']}]" if task.get("priority") else ""
        print(f"   ☐ {task['title']} — {due}{priority}")

    reminder = structured.get("reminder")
    if reminder and (reminder.get("time_iso") or reminder.get("time_natural") or reminder.get("reason")):
        when = reminder.get("time_iso") or reminder.get("time_natural") or "unspecified time"
        print(f"   ⏰ Reminder: {when} — {reminder.get('reason') or ''}")

    if response.get("noteId"):
        print(f"✅ Saved as note {response['noteId']}")


def print_error(error: CaptureClientError | None):
    if error is not None:
        print(f"❌ {error.code}: {error.message}")


async def run(args) -> int:
    cancel_signal = CancellationSignal()
    controller = RecordingController(
        backend=SoundDeviceBackend(),
        transport=CaptureTransport(args.endpoint, timezone=args.timezone),
        user_id=args.user,
        mode=args.mode,
        cancel_signal=cancel_signal,
        max_duration_seconds=args.max_seconds,
    )

    if args.list_devices:
        for device in await controller.list_devices():
            print(f"  {device.device_id:>3}  {device.label}")
        return 0

    if args.device:
        controller.select_device(args.device)

    try:
        while True:
            choice = await asyncio.to_thread(input, "\nPress Enter to record (q to quit): ")
            if choice.strip().lower() == "q":
                return 0

            await controller.start()
            if controller.state is not CaptureState.RECORDING:
                print_error(controller.error)
                controller.reset()
                continue

            key = await asyncio.to_thread(
                input, f"🎙️  Recording (max {args.max_seconds:g}s)... Enter to stop, c+Enter to cancel: "
            )
            if key.strip().lower() == "c":
                cancel_signal.fire("cancel_key")
            else:
                controller.stop()

            print("⏳ Processing...")
            result = await controller.wait_processed()
            if controller.state is CaptureState.COMPLETED and result:
                print_result(result)
            else:
                print_error(controller.error)
            controller.reset()
    finally:
        controller.dispose()


def main():
    parser = argparse.ArgumentParser(description="Record a voice capture and structure it")
    parser.add_argument("--user", default="", help="User id sent with each capture")
    parser.add_argument("--mode", default="review", choices=["review", "autosave", "psych"])
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT)
    parser.add_argument("--timezone", default=None, help="IANA zone (default: host timezone)")
    parser.add_argument("--device", default=None, help="Input device id (see --list-devices)")
    parser.add_argument("--max-seconds", type=float, default=120.0)
    parser.add_argument("--list-devices", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not args.user and not args.list_devices:
        parser.error("--user is required")

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\n👋 Bye!")


if __name__ == "__main__":
    main()
