"""
RescueHQ command line.

    python main.py submit --name "A. Perera" --phone 0771234567 --type flood \
        --description "Water rising fast" --lat 6.93 --lon 79.86
    python main.py queue list
    python main.py sync
    python main.py alerts --region kandy
    python main.py daemon
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from alerts import AlertSnapshot
from config import Settings
from daemon import build_services, run_daemon
from errors import RescueError
from loaders import resolve_region
from loaders.geocoder import Geocoder
from sos import Delivered, Failed, GeoPoint, ImageAttachment, IncidentType, Queued
from stores import SqliteIncidentStore

log = logging.getLogger("main")


def _print_snapshot(snapshot: AlertSnapshot, as_json: bool = False):
    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
        return
    if snapshot.error:
        print(f"Could not fetch weather: {snapshot.error}")
        return
    if not snapshot.alerts:
        print("No weather alerts.")
        return
    print(f"=== WEATHER ALERTS ({snapshot.source.value}) ===")
    for alert in snapshot.alerts:
        print(f"{alert.icon} [{alert.severity.value.upper()}] {alert.title}")
        print(f"    {alert.message}")
        if alert.affected_areas:
            print(f"    Areas: {', '.join(alert.affected_areas)}")
    if snapshot.analysis and snapshot.analysis.summary:
        print(f"\n{snapshot.analysis.summary}")


async def cmd_submit(args, settings: Settings) -> int:
    services = build_services(settings)

    location = None
    if args.lat is not None and args.lon is not None:
        location = GeoPoint(args.lat, args.lon)

    address = args.address or ""
    if location and not address and not args.no_geocode and services.monitor.is_online:
        geocoder = Geocoder(cache_path=settings.path("geocode_cache.db"))
        address = (await asyncio.to_thread(geocoder.reverse_geocode, location.latitude, location.longitude)).address

    image = None
    if args.image:
        path = Path(args.image)
        image = ImageAttachment(data=path.read_bytes(), filename=path.name)

    outcome = await services.pipeline.submit({
        "name": args.name,
        "phone": args.phone,
        "type": args.type,
        "description": args.description,
        "location": location,
        "address": address,
        "image": image,
    })

    if isinstance(outcome, Delivered):
        print(f"SOS Request Sent! Help is on the way. (ID: {outcome.server_id})")
        return 0
    if isinstance(outcome, Queued):
        print("You're offline or the network failed. Your SOS request has been saved "
              f"and will be sent automatically when you're back online. (Queue ID: {outcome.local_id})")
        return 0
    if outcome.reason == "timeout":
        print("Submission is taking too long. Your request may still be saved. "
              "Please check the incident list before sending it again.")
    else:
        print(f"Failed to send request: {outcome.detail or outcome.reason}")
    return 1


async def cmd_queue(args, settings: Settings) -> int:
    services = build_services(settings)
    if args.action == "clear":
        services.queue.clear()
        print("Offline queue cleared.")
        return 0

    items = services.queue.list_items()
    if not items:
        print("Offline queue is empty.")
        return 0
    for item in items:
        report = item.report
        print(f"{item.id}  {item.queued_at}  [{report.type.value}] {report.name} "
              f"({report.phone}) @ {report.location_label()}")
    return 0


async def cmd_sync(args, settings: Settings) -> int:
    services = build_services(settings)
    if not services.monitor.is_online:
        print("Still offline; nothing was sent.")
        return 1
    result = await services.sync.drain()
    print(f"Synced {result.synced}, failed {result.failed}.")
    return 0 if result.failed == 0 else 1


async def cmd_alerts(args, settings: Settings) -> int:
    if args.region:
        name, settings.latitude, settings.longitude = resolve_region(args.region)
        print(f"Region: {name}")
    if args.ai:
        settings.ai_enabled = True
    services = build_services(settings)
    _print_snapshot(await services.orchestrator.refresh(), as_json=args.json)
    return 0


async def cmd_incidents(args, settings: Settings) -> int:
    store = SqliteIncidentStore(settings.path(settings.incident_db))
    counts = store.status_counts()
    print("  ".join(f"{status}: {count}" for status, count in counts.items()))
    for doc in store.list_incidents(status=args.status):
        flag = "" if doc.get("location") else "  [NO LOCATION]"
        print(f"{doc['id']}  {doc['createdAt']}  {doc['status']:<11} [{doc['type']}] "
              f"{doc['name']} ({doc['phone']}){flag}")
    return 0


async def cmd_status(args, settings: Settings) -> int:
    store = SqliteIncidentStore(settings.path(settings.incident_db))
    await store.update(args.incident_id, {"status": args.status})
    print(f"Incident {args.incident_id} is now {args.status}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rescuehq", description="RescueHQ emergency reporting")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Send an SOS report")
    submit.add_argument("--name", required=True)
    submit.add_argument("--phone", required=True)
    submit.add_argument("--type", default=IncidentType.FLOOD.value,
                        choices=[t.value for t in IncidentType])
    submit.add_argument("--description", required=True)
    submit.add_argument("--lat", type=float)
    submit.add_argument("--lon", type=float)
    submit.add_argument("--address")
    submit.add_argument("--image", help="Path to a photo to attach")
    submit.add_argument("--no-geocode", action="store_true", help="Don't resolve an address")
    submit.set_defaults(handler=cmd_submit)

    queue = sub.add_parser("queue", help="Inspect or clear the offline queue")
    queue.add_argument("action", choices=["list", "clear"])
    queue.set_defaults(handler=cmd_queue)

    sync = sub.add_parser("sync", help="Send queued reports now")
    sync.set_defaults(handler=cmd_sync)

    alerts = sub.add_parser("alerts", help="Show weather risk alerts")
    alerts.add_argument("--ai", action="store_true", help="Try Gemini analysis first")
    alerts.add_argument("--region", help="Named region, e.g. kandy")
    alerts.add_argument("--json", action="store_true")
    alerts.set_defaults(handler=cmd_alerts)

    incidents = sub.add_parser("incidents", help="List incidents in the local store")
    incidents.add_argument("--status", choices=["pending", "in-progress", "completed"])
    incidents.set_defaults(handler=cmd_incidents)

    status = sub.add_parser("status", help="Change an incident's status")
    status.add_argument("incident_id")
    status.add_argument("status", choices=["pending", "in-progress", "completed"])
    status.set_defaults(handler=cmd_status)

    daemon = sub.add_parser("daemon", help="Run sync + alert refresh until stopped")
    daemon.set_defaults(handler=None)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = Settings.from_env()

    if args.command == "daemon":
        asyncio.run(run_daemon(settings))
        return 0

    try:
        return asyncio.run(args.handler(args, settings))
    except (RescueError, KeyError, OSError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
