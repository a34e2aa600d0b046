"""
RescueHQ Daemon: keeps queued SOS reports flowing and weather alerts fresh.

Runs on a single asyncio event loop:
- Checks connectivity every few seconds and feeds the ConnectivityMonitor
- Drains the offline queue on every went-online transition
- Drains again on a periodic timer as a safety net
- Refreshes weather risk alerts immediately and every 30 minutes
"""

import asyncio
import logging
import signal
import socket
from dataclasses import dataclass
from typing import Callable, Optional

from alerts import AIAlertClient, AlertOrchestrator, AlertSnapshot, AnalysisCache
from config import Settings
from loaders.weather import WeatherLoader
from sos import ConnectivityMonitor, DurableQueue, LocalStorage, SubmissionPipeline, SyncEngine
from stores import DirectoryBlobStore, HttpBlobStore, HttpIncidentStore, SqliteIncidentStore

log = logging.getLogger("daemon")

CONNECTIVITY_POLL_SECONDS = 5
CHECK_TIMEOUT_SECONDS = 2.0


def tcp_check(host: str, port: int, timeout: float = CHECK_TIMEOUT_SECONDS) -> Callable[[], bool]:
    """Connectivity signal: can we open a TCP connection to host:port?"""
    def check() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False
    return check


@dataclass
class Services:
    """Everything wired together for one process."""
    settings: Settings
    monitor: ConnectivityMonitor
    queue: DurableQueue
    store: object
    blobs: object
    pipeline: SubmissionPipeline
    sync: SyncEngine
    orchestrator: AlertOrchestrator


def build_services(settings: Settings, monitor: Optional[ConnectivityMonitor] = None) -> Services:
    """Construct the component graph from settings."""
    if monitor is None:
        monitor = ConnectivityMonitor(signal=tcp_check(settings.check_host, settings.check_port))

    queue = DurableQueue(LocalStorage(settings.path(settings.queue_db)))

    if settings.store_url:
        store = HttpIncidentStore(settings.store_url)
        log.info(f"Delivering incidents to {settings.store_url}")
    else:
        store = SqliteIncidentStore(settings.path(settings.incident_db))

    if settings.blob_url:
        blobs = HttpBlobStore(settings.blob_url)
    else:
        blobs = DirectoryBlobStore(settings.path(settings.blob_dir))

    ai_client = None
    if settings.has_gemini_key:
        ai_client = AIAlertClient(settings.gemini_api_key, cache=AnalysisCache(), model=settings.gemini_model)

    orchestrator = AlertOrchestrator(
        WeatherLoader(),
        settings.latitude,
        settings.longitude,
        ai_client=ai_client,
        ai_enabled=settings.ai_enabled,
        incidents_provider=store.recent,
    )

    return Services(
        settings=settings,
        monitor=monitor,
        queue=queue,
        store=store,
        blobs=blobs,
        pipeline=SubmissionPipeline(monitor, queue, store, blobs),
        sync=SyncEngine(queue, store, interval=settings.sync_interval),
        orchestrator=orchestrator,
    )


def log_snapshot(snapshot: AlertSnapshot):
    if snapshot.error:
        log.warning(f"Alert refresh failed: {snapshot.error}")
        return
    log.info(f"{len(snapshot.alerts)} live alert(s) from {snapshot.source.value} engine")
    for alert in snapshot.alerts[:5]:
        log.info(f"   └─ {alert.icon} [{alert.severity.value.upper()}] {alert.title}")


async def poll_connectivity(monitor: ConnectivityMonitor, check: Callable[[], bool], stop: asyncio.Event):
    """Run the blocking check off-loop and push the result into the monitor."""
    while not stop.is_set():
        online = await asyncio.to_thread(check)
        monitor.set_online(online)
        try:
            await asyncio.wait_for(stop.wait(), timeout=CONNECTIVITY_POLL_SECONDS)
        except asyncio.TimeoutError:
            pass


async def run_daemon(settings: Optional[Settings] = None):
    """Main daemon loop."""
    settings = settings or Settings.from_env()
    check = tcp_check(settings.check_host, settings.check_port)

    # The monitor is fed by poll_connectivity rather than probing on every read
    monitor = ConnectivityMonitor()
    monitor.set_online(await asyncio.to_thread(check))
    services = build_services(settings, monitor=monitor)

    log.info("┌────────────────────────────────────────┐")
    log.info("│        RESCUEHQ DAEMON STARTING        │")
    log.info("└────────────────────────────────────────┘")
    log.info(f"Queue: {len(services.queue)} pending | online: {monitor.is_online}")
    log.info(f"Alerts for ({settings.latitude:.4f}, {settings.longitude:.4f}) | AI: "
             f"{'on' if settings.ai_enabled and settings.has_gemini_key else 'off'}")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    services.sync.attach(monitor)
    if monitor.is_online:
        await services.sync.drain()

    tasks = [
        asyncio.create_task(poll_connectivity(monitor, check, stop)),
        asyncio.create_task(services.sync.run_periodic(stop, monitor)),
        asyncio.create_task(services.orchestrator.run(stop, on_refresh=log_snapshot)),
    ]
    try:
        await stop.wait()
    finally:
        log.info("Shutdown requested, waiting for running work...")
        stop.set()
        await asyncio.gather(*tasks, return_exceptions=True)
        await services.sync.wait_idle()
        services.sync.detach()
        log.info("Daemon shutdown complete.")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s │ %(name)-20s │ %(levelname)-8s │ %(message)s',
        datefmt='%H:%M:%S',
    )
    asyncio.run(run_daemon())


if __name__ == "__main__":
    main()
