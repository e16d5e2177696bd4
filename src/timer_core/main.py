#!/usr/bin/env python3
"""
timer-core demo: drive a Timer and print its update stream

Main entry point for the timer-core command-line demo. It:
1. Builds a Timer from the [timer] section of the configuration
2. Registers subtimers 1..N and starts the timer
3. Pauses and resumes it from a background thread
4. Stops one subtimer every --split-every seconds
5. Prints every elapsed-time update until --duration expires or the
   timer stops on its own

Usage:
    # Run with defaults (10 s, pause after 2 s for 3 s)
    timer-core

    # Config file plus overrides
    timer-core --config timer.toml --duration 20 --subtimers 3 --split-every 4

    # Stop the timer when the last subtimer finishes
    timer-core --subtimers 2 --split-every 1 --stop-on-subtimers
"""

import argparse
import copy
import logging
import queue
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import toml

# Set up logging before imports that use it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('timer-core')

from .engine.timer_engine import Timer
from .interfaces.timer_types import TimerConfig, TimerError, TimerState


DEFAULT_CONFIG: Dict[str, Any] = {
    'timer': {
        'allow_resume_after_stop': False,
        'continue_counting_when_stopped': False,
        'stop_on_subtimers_finish': False,
        'tick_interval_ms': 10,
        'update_interval_ms': 10,
    },
    'demo': {
        'duration': 10.0,
        'pause_after': 2.0,
        'pause_for': 3.0,
        'subtimers': 0,
        'split_every': 1.0,
    },
    'output': {
        'health_port': 0,
    },
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file.

    Sections missing from the file are filled in from DEFAULT_CONFIG.
    Without a path, or if the file does not exist, the defaults are returned.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path:
        return config

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return config

    with open(path, 'r') as f:
        loaded = toml.load(f)

    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    logger.info(f"Loaded configuration from {path}")
    return config


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides on top of the loaded configuration."""
    demo = config.setdefault('demo', {})
    for key in ('duration', 'pause_after', 'pause_for', 'subtimers', 'split_every'):
        value = getattr(args, key, None)
        if value is not None:
            demo[key] = value

    if args.stop_on_subtimers:
        config.setdefault('timer', {})['stop_on_subtimers_finish'] = True
    if args.health_port is not None:
        config.setdefault('output', {})['health_port'] = args.health_port
    return config


class TimerDemo:
    """
    Consumer of a single Timer.

    The main thread reads updates; a control thread issues the pause,
    resume and subtimer stops the way an interactive client would.
    """

    def __init__(self, config: Dict[str, Any], update_interval_ms: Optional[int] = None):
        """
        Initialize the demo.

        Args:
            config: Configuration dictionary (see DEFAULT_CONFIG)
            update_interval_ms: Override applied through Timer.set_update_interval
        """
        self.config = config
        demo = config.get('demo', {})
        self.duration = float(demo.get('duration', 10.0))
        self.pause_after = float(demo.get('pause_after', 0.0))
        self.pause_for = float(demo.get('pause_for', 0.0))
        self.n_subtimers = int(demo.get('subtimers', 0))
        self.split_every = float(demo.get('split_every', 1.0))

        self.timer = Timer(TimerConfig.from_dict(config.get('timer')))
        if update_interval_ms is not None:
            self.timer.set_update_interval(update_interval_ms)

        self.splits: Dict[int, float] = {}
        self.updates_received = 0
        self.last_value: Optional[float] = None

        self._shutdown = threading.Event()
        self._control_thread: Optional[threading.Thread] = None

    def setup(self):
        """Reset the timer and register subtimers 1..N."""
        self.timer.reset_timer()
        for sub_id in range(1, self.n_subtimers + 1):
            self.timer.add_sub_timer(sub_id)

    def run(self, out=None):
        """Run the demo (blocking). Returns when the duration expires or the timer stops."""
        out = out or sys.stdout
        self.setup()
        self.timer.start_timer()

        self._control_thread = threading.Thread(
            target=self._control,
            name="DemoControl",
            daemon=True
        )
        self._control_thread.start()

        try:
            self._read_updates(out)
        finally:
            self.shutdown()

        logger.info(f"Received {self.updates_received} updates, final elapsed {self.timer.elapsed:.3f}s")
        for sub_id, elapsed in sorted(self.splits.items()):
            logger.info(f"  Subtimer {sub_id}: {elapsed:.3f}s")

    def request_shutdown(self):
        """Ask run() to return. Safe to call from a signal handler."""
        self._shutdown.set()

    def shutdown(self):
        """Stop the control thread and the timer."""
        self._shutdown.set()
        if self._control_thread and self._control_thread is not threading.current_thread():
            self._control_thread.join(timeout=2)
        if self.timer.state in (TimerState.RUNNING, TimerState.PAUSED):
            self.timer.stop_timer()

    def _read_updates(self, out):
        deadline = time.monotonic() + self.duration
        while not self._shutdown.is_set() and time.monotonic() < deadline:
            try:
                value = self.timer.updates.get(timeout=0.25)
            except queue.Empty:
                if self.timer.state == TimerState.STOPPED:
                    logger.info("Timer stopped")
                    break
                continue
            self.updates_received += 1
            self.last_value = value
            print(f"{value:.3f}", file=out, flush=True)

    def _control(self):
        """Pause, resume and split on a schedule (runs in background thread)."""
        try:
            if self.pause_after > 0:
                if self._shutdown.wait(self.pause_after):
                    return
                self.timer.pause_timer()
                if self._shutdown.wait(self.pause_for):
                    return
                self.timer.resume_timer()

            for sub_id in range(1, self.n_subtimers + 1):
                if self._shutdown.wait(self.split_every):
                    return
                self.splits[sub_id] = self.timer.stop_sub_timer(sub_id)
                logger.info(f"Split {sub_id}: {self.splits[sub_id]:.3f}s")
        except TimerError as e:
            # The main thread may have stopped the timer under us
            logger.warning(f"Control thread stopped: {e}")


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='timer-core: count-up timer demo',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Default run
    timer-core

    # Three subtimers, one split every 2 seconds, stop when all are done
    timer-core --subtimers 3 --split-every 2 --stop-on-subtimers

    # Serve status on port 8080 while running
    timer-core --health-port 8080 --duration 60
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--duration', '-t',
        type=float,
        help='Seconds to read updates before exiting (default: 10)'
    )
    parser.add_argument(
        '--pause-after',
        dest='pause_after',
        type=float,
        help='Pause the timer after this many seconds, 0 to disable (default: 2)'
    )
    parser.add_argument(
        '--pause-for',
        dest='pause_for',
        type=float,
        help='Resume the timer after this many seconds paused (default: 3)'
    )
    parser.add_argument(
        '--subtimers', '-n',
        type=int,
        help='Number of subtimers to register (default: 0)'
    )
    parser.add_argument(
        '--split-every',
        dest='split_every',
        type=float,
        help='Seconds between subtimer stops (default: 1)'
    )
    parser.add_argument(
        '--update-interval',
        dest='update_interval',
        type=int,
        help='Update interval in milliseconds, 0 for the default'
    )
    parser.add_argument(
        '--stop-on-subtimers',
        action='store_true',
        help='Stop the timer when every subtimer has stopped'
    )
    parser.add_argument(
        '--health-port',
        type=int,
        help='HTTP port for the health endpoint (default: disabled)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = apply_overrides(load_config(args.config), args)

    try:
        demo = TimerDemo(config, update_interval_ms=args.update_interval)
    except TimerError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    health_server = None
    health_port = config.get('output', {}).get('health_port', 0)
    if health_port > 0:
        from .output.health_server import HealthServer
        health_server = HealthServer(port=health_port)
        health_server.set_timer(demo.timer)
        health_server.start()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        demo.request_shutdown()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    try:
        demo.run()
    except TimerError as e:
        logger.error(f"Timer error: {e}")
        return 1
    finally:
        if health_server:
            health_server.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
