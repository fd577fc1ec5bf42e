"""Main orchestrator for classvoice - classroom voice capture."""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Optional

import uvicorn

from .capture import CaptureController, CaptureState, Scheduler, ThreadingScheduler
from .config import Config, load_config
from .engine import ContinuousSpeechEngine, build_engine
from .exceptions import EngineError
from .notify import NoticeBoard
from .sink import IngestionClient, TranscriptSink
from .web.api import create_app, set_service_instance

logger = logging.getLogger(__name__)


class CaptureService:
    """Wires the capture pipeline to its collaborators."""

    def __init__(
        self,
        config: Config,
        engine: Optional[ContinuousSpeechEngine] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config
        self._running = False

        logger.info("Initializing capture pipeline...")
        self.notices = NoticeBoard(config.notices.max_notices)
        self.client = IngestionClient(config.ingestion)
        self.sink = TranscriptSink(
            self.client, self.notices, max_pending=config.ingestion.max_pending_chunks
        )
        self.engine = engine or build_engine(config.engine)
        self.controller = CaptureController(
            self.engine,
            self.sink,
            self.notices,
            scheduler=scheduler or ThreadingScheduler(),
            config=config,
        )

        # Web server
        self._web_thread: Optional[threading.Thread] = None
        self._web_server: Optional[uvicorn.Server] = None

    def _start_web_server(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """Start the web server in a background thread."""
        logger.info(f"Starting web server on {host}:{port}...")

        set_service_instance(self)
        app = create_app()

        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._web_server = uvicorn.Server(config)

        self._web_thread = threading.Thread(target=self._web_server.run, daemon=True)
        self._web_thread.start()

        logger.info(f"Web server started at http://{host}:{port}")

    def _stop_web_server(self) -> None:
        if self._web_server is not None:
            logger.info("Stopping web server...")
            self._web_server.should_exit = True
            if self._web_thread is not None:
                self._web_thread.join(timeout=5.0)

    def start(self, enable_web: bool = True, web_port: int = 8080) -> None:
        """Start delivery and, optionally, the web API."""
        if self._running:
            logger.warning("Capture service already running")
            return

        self._running = True
        self.sink.start()

        try:
            self.engine.warm_up()
        except EngineError as e:
            logger.warning(f"Speech engine not ready, will retry on first start: {e}")

        if enable_web:
            self._start_web_server(port=web_port)

        logger.info("Capture service started")

    def stop(self) -> None:
        """Stop capture, drain pending deliveries and shut down."""
        if not self._running:
            return

        logger.info("Stopping capture service...")
        self._running = False

        self._stop_web_server()
        self.controller.shutdown()
        self.sink.stop()
        self.client.close()

        logger.info("Capture service stopped")

    def toggle_pause(self) -> None:
        """Pause when listening, resume when paused."""
        state = self.controller.state
        if state is CaptureState.LISTENING:
            self.controller.pause()
        elif state is CaptureState.PAUSED:
            self.controller.resume()
        else:
            logger.info(f"Nothing to pause or resume (state: {state.value})")

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "capture": self.controller.status(),
            "sink": self.sink.get_stats(),
        }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="classvoice - classroom voice capture")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: $CLASSVOICE_CONFIG or config/settings.yaml)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=8080,
        help="Web server port (default: 8080)",
    )
    parser.add_argument(
        "--no-web",
        action="store_true",
        help="Disable web server",
    )
    parser.add_argument(
        "--list-audio",
        action="store_true",
        help="List available audio devices",
    )
    parser.add_argument(
        "--session",
        help="Start capturing for this session id immediately",
    )
    parser.add_argument(
        "--role",
        default="professor",
        help="Role used with --session (default: professor)",
    )
    args = parser.parse_args()

    if args.list_audio:
        from .engine.microphone import MicrophoneStream

        print("Available audio devices:")
        for dev in MicrophoneStream.list_devices():
            print(f"  [{dev['id']}] {dev['name']} ({dev['channels']}ch)")
        return

    config = load_config(args.config)
    config.setup_logging()

    logger.info("=" * 50)
    logger.info("classvoice - classroom voice capture")
    logger.info("=" * 50)

    service = CaptureService(config)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        service.stop()
        sys.exit(0)

    def usr1_handler(signum, frame):
        logger.info("USR1 received - toggling pause")
        service.toggle_pause()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # USR1 for pause/resume (Unix only)
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, usr1_handler)

    service.start(enable_web=not args.no_web, web_port=args.port)

    if args.session:
        if not service.controller.start(args.session, args.role):
            logger.error(f"Could not start capture for session {args.session}")

    if not args.no_web:
        logger.info(f"Control API available at http://localhost:{args.port}")

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        service.stop()


if __name__ == "__main__":
    main()
