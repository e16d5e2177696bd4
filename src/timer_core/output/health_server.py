"""
Health Monitoring HTTP Server for timer-core.

Exposes the state of a running Timer for monitoring systems and simple
health checks.

Endpoints:
    GET /health     - Basic health check (200 OK if running)
    GET /status     - JSON timer status
    GET /metrics    - Prometheus-compatible metrics

Usage:
    from timer_core.output.health_server import HealthServer

    server = HealthServer(port=8080)
    server.set_timer(timer)
    server.start()
"""

import json
import logging
import threading
import time
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

STATE_VALUES = {'RESET': 1, 'RUNNING': 2, 'PAUSED': 3, 'STOPPED': 4}


class HealthRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for health endpoints."""

    # Class-level reference to status callback
    get_status: Optional[Callable[[], Dict[str, Any]]] = None

    def log_message(self, format, *args):
        """Route HTTP access logging to DEBUG."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        """Handle GET requests."""
        if self.path == '/health':
            self._handle_health()
        elif self.path == '/status':
            self._handle_status()
        elif self.path == '/metrics':
            self._handle_metrics()
        else:
            self.send_error(404, "Not Found")

    def _handle_health(self):
        """Basic health check - returns 200 if server is running."""
        self._respond(200, 'text/plain', b'OK\n')

    def _handle_status(self):
        """Return JSON status of the timer."""
        if not self.get_status:
            self._respond(503, 'application/json',
                          json.dumps({'error': 'No timer connected'}).encode())
            return
        try:
            status = self.get_status()
        except Exception as e:
            logger.error(f"Status collection failed: {e}")
            self._respond(500, 'application/json', json.dumps({'error': str(e)}).encode())
            return
        self._respond(200, 'application/json', json.dumps(status, indent=2).encode())

    def _handle_metrics(self):
        """Return Prometheus-compatible metrics."""
        if not self.get_status:
            self._respond(503, 'text/plain', b'# No timer connected\n')
            return
        try:
            metrics = self._format_prometheus_metrics(self.get_status())
        except Exception as e:
            logger.error(f"Metrics collection failed: {e}")
            self._respond(500, 'text/plain', f'# Error: {e}\n'.encode())
            return
        self._respond(200, 'text/plain; version=0.0.4', metrics.encode())

    def _respond(self, code: int, content_type: str, body: bytes):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.end_headers()
        self.wfile.write(body)

    def _format_prometheus_metrics(self, status: Dict[str, Any]) -> str:
        """Format status as Prometheus metrics."""
        lines = [
            '# HELP timer_core_elapsed_seconds Elapsed running time excluding pauses',
            '# TYPE timer_core_elapsed_seconds gauge',
            f'timer_core_elapsed_seconds {status.get("elapsed_seconds", 0):.6f}',
            '',
            '# HELP timer_core_update_interval_ms Configured update cadence in milliseconds',
            '# TYPE timer_core_update_interval_ms gauge',
            f'timer_core_update_interval_ms {status.get("update_interval_ms", 0)}',
            '',
            '# HELP timer_core_updates_total Total elapsed-time updates handed to the consumer',
            '# TYPE timer_core_updates_total counter',
            f'timer_core_updates_total {status.get("updates_emitted", 0)}',
            '',
            '# HELP timer_core_runs_total Total timer starts',
            '# TYPE timer_core_runs_total counter',
            f'timer_core_runs_total {status.get("runs", 0)}',
            '',
            '# HELP timer_core_uptime_seconds Health server uptime in seconds',
            '# TYPE timer_core_uptime_seconds gauge',
            f'timer_core_uptime_seconds {status.get("uptime_seconds", 0):.1f}',
            '',
            '# HELP timer_core_state Timer state (1=RESET, 2=RUNNING, 3=PAUSED, 4=STOPPED)',
            '# TYPE timer_core_state gauge',
            f'timer_core_state {STATE_VALUES.get(status.get("state"), 0)}',
        ]

        subtimers = status.get('subtimers', {})
        lines.extend([
            '',
            '# HELP timer_core_subtimers Number of registered subtimers',
            '# TYPE timer_core_subtimers gauge',
            f'timer_core_subtimers {len(subtimers)}',
        ])
        if subtimers:
            lines.extend([
                '',
                '# HELP timer_core_subtimer_elapsed_seconds Recorded time of each subtimer',
                '# TYPE timer_core_subtimer_elapsed_seconds gauge',
            ])
            for sub_id, sub in subtimers.items():
                lines.append(
                    f'timer_core_subtimer_elapsed_seconds{{id="{sub_id}",state="{sub.get("state")}"}} '
                    f'{sub.get("elapsed", 0):.6f}'
                )

        lines.append('')
        return '\n'.join(lines)


class HealthServer:
    """
    HTTP server for health monitoring.

    Runs in a background thread and reports on one Timer.
    """

    def __init__(self, port: int = 8080, bind_address: str = '0.0.0.0'):
        """
        Initialize the health server.

        Args:
            port: HTTP port to listen on
            bind_address: Address to bind to (default: all interfaces)
        """
        self.port = port
        self.bind_address = bind_address
        self.server: Optional[HTTPServer] = None
        self.thread: Optional[threading.Thread] = None
        self.timer = None
        self._running = False
        self._started_at = time.time()

    def set_timer(self, timer):
        """
        Connect to a Timer for status reporting.

        Args:
            timer: Timer instance
        """
        self.timer = timer
        HealthRequestHandler.get_status = self._get_status

    def _get_status(self) -> Dict[str, Any]:
        """Get current status from the timer."""
        if not self.timer:
            return {'error': 'No timer connected'}

        status = self.timer.get_status().to_dict()
        status['timestamp'] = time.time()
        status['uptime_seconds'] = time.time() - self._started_at
        return status

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the health server in a background thread."""
        if self._running:
            logger.warning("Health server already running")
            return

        try:
            self.server = HTTPServer(
                (self.bind_address, self.port),
                HealthRequestHandler
            )
        except OSError as e:
            logger.error(f"Failed to start health server: {e}")
            return

        # Set timeout so handle_request doesn't block forever
        self.server.timeout = 1.0
        self._running = True
        self._started_at = time.time()

        self.thread = threading.Thread(
            target=self._serve,
            name="HealthServer",
            daemon=True
        )
        self.thread.start()

        logger.info(f"Health server started on http://{self.bind_address}:{self.port}")
        logger.info("  GET /health  - Health check")
        logger.info("  GET /status  - JSON status")
        logger.info("  GET /metrics - Prometheus metrics")

    def _serve(self):
        """Server loop (runs in background thread)."""
        while self._running:
            try:
                self.server.handle_request()
            except OSError as e:
                if self._running:
                    logger.debug(f"Health server request failed: {e}")

    def stop(self):
        """Stop the health server."""
        if not self._running:
            return
        self._running = False
        if self.thread:
            self.thread.join(timeout=2.0)
            self.thread = None
        if self.server:
            self.server.server_close()
            self.server = None
        logger.info("Health server stopped")
