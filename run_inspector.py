#!/usr/bin/env python3
"""
Assembly Line Inspector - Entry Point
=====================================

This script starts the linecheck inspector, which:
- Reads frames from a camera or a video file
- Measures the part in view and flags out-of-bounds areas as defects
- Shows the frames with a "Defect: 0/1" overlay
- Publishes {"Defect": "0|1"} to MQTT every --rate seconds
- Logs messages received on the MQTT control topic

Usage:
    python run_inspector.py --input data/videos/line.mp4 --min-area 10000 --max-area 30000
    python run_inspector.py --device 0 --rate 2
    python run_inspector.py --config config/inspector_config.yaml --no-display

Architecture:
    - InspectorService: Lifecycle controller (linecheck_inspector)
    - MQTTControlPlane: Control topic + status (linecheck_control)
    - DefectPublisher: Telemetry messages (linecheck_mqtt)

Signals:
    - SIGTERM: Graceful shutdown
    - Ctrl+C: Graceful shutdown (KeyboardInterrupt)

Environment:
    MQTT_SERVER (host or host:port), MQTT_CLIENT_ID, MQTT_USERNAME, MQTT_PASSWORD

Logs:
    - Console: INFO level (see --log-level)
    - File: logs/inspector.log
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from linecheck_control import MQTTControlPlane
from linecheck_inspector import (
    CaptureError,
    HeadlessDisplay,
    InspectorConfig,
    InspectorService,
    PipelineContext,
    StopReason,
    VideoSource,
    WindowDisplay,
)
from linecheck_mqtt import DefectPublisher, create_logger


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Setup logging for the inspector.

    Args:
        log_file: Optional path to log file
        level: Root log level

    Returns:
        Logger instance for the entry point
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Application
# ─────────────────────────────────────────────────────────────────────────────

class InspectorApp:
    """
    Application wrapper for InspectorService.

    Handles:
    - Component initialization (capture, display, MQTT clients)
    - Signal handler installation
    - Exit status
    """

    def __init__(self, config: InspectorConfig, log_file: Optional[Path] = None, log_level: int = logging.INFO):
        self.config = config
        self.logger = setup_logging(log_file, log_level)
        self.service: Optional[InspectorService] = None

    def setup(self) -> None:
        """
        Build all components and open the capture source.

        Raises:
            CaptureError: If the video source cannot be opened
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 linecheck Assembly Line Inspector - Starting")
        self.logger.info("=" * 80)

        mqtt_config = self.config.mqtt_config

        publisher = None
        if self.config.telemetry_enabled:
            publisher = DefectPublisher(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                topic=mqtt_config.topic,
                logger=create_logger(component="telemetry"),
                client_id=f"{mqtt_config.client_id}_telemetry",
                username=mqtt_config.username,
                password=mqtt_config.password,
                qos=mqtt_config.qos,
            )
            self.logger.info(f"  - Telemetry topic: {mqtt_config.topic} (every {self.config.publish_rate_seconds}s)")

        control_plane = MQTTControlPlane(
            broker_host=mqtt_config.broker,
            broker_port=mqtt_config.port,
            control_topic=mqtt_config.control_topic,
            status_topic=mqtt_config.status_topic,
            client_id=f"{mqtt_config.client_id}_control",
            username=mqtt_config.username,
            password=mqtt_config.password,
        )
        self.logger.info(f"  - Control topic: {mqtt_config.control_topic}")

        context = PipelineContext(bounds=self.config.bounds)
        capture = VideoSource(self.config.source)
        if self.config.display_enabled:
            display = WindowDisplay(self.config.window_name)
        else:
            display = HeadlessDisplay(context.token)

        self.service = InspectorService(
            config=self.config,
            capture=capture,
            display=display,
            publisher=publisher,
            control_plane=control_plane,
            context=context,
        )

        self.service.setup()
        self.logger.info("=" * 80)

    def run(self) -> int:
        """
        Run until the stream ends or a stop is requested.

        Returns:
            Process exit status
        """
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        self.service.install_signal_handler()

        try:
            self.service.start()
            self.logger.info("Press any key in the video window (or Ctrl+C) to stop")
            reason = self.service.run()
        except KeyboardInterrupt:
            self.logger.info("⚠️  KeyboardInterrupt received")
            self.service.stop()
            return 0

        self.logger.info(f"✅ Shutdown complete (reason={reason.value if reason else 'unknown'})")

        if reason == StopReason.ERROR:
            return 1
        # A key press or SIGTERM before the first frame is still a normal stop
        if reason == StopReason.END_OF_STREAM and self.service.frames_captured == 0:
            self.logger.error("❌ Video source produced no frames")
            return 1
        return 0


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="linecheck - assembly line defect inspector (OpenCV + MQTT)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Inspect a recorded video
  python run_inspector.py --input data/videos/line.mp4

  # Camera 0, custom bounds, publish every 2 seconds
  python run_inspector.py --device 0 --min-area 12000 --max-area 28000 --rate 2

  # YAML config, no window (server)
  python run_inspector.py --config config/inspector_config.yaml --no-display
        """
    )

    parser.add_argument('--config', type=Path, help='Path to inspector configuration YAML file')
    parser.add_argument('-d', '--device', type=int, help='Camera device number (default: 0)')
    parser.add_argument('-i', '--input', dest='input_path',
                        help='Path to input video file. Skip this argument to capture frames from a camera.')
    parser.add_argument('--min-area', '--minarea', dest='min_area', type=int,
                        help='Minimum part area of assembly object (default: 10000)')
    parser.add_argument('--max-area', '--maxarea', dest='max_area', type=int,
                        help='Maximum part area of assembly object (default: 30000)')
    parser.add_argument('-r', '--rate', dest='publish_rate_seconds', type=int,
                        help='Number of seconds between data updates to MQTT server (default: 1)')
    parser.add_argument('--no-telemetry', action='store_true', help='Do not publish defect telemetry')
    parser.add_argument('--no-display', action='store_true', help='Run without a video window')
    parser.add_argument('--broker', help='MQTT broker host (overrides config and MQTT_SERVER)')
    parser.add_argument('--port', type=int, help='MQTT broker port')
    parser.add_argument('--log-file', type=Path, default=Path('logs/inspector.log'),
                        help='Path to log file (default: logs/inspector.log)')
    parser.add_argument('--no-log-file', action='store_true', help='Disable file logging (console only)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Console log level')

    return parser


def build_config(args: argparse.Namespace) -> InspectorConfig:
    """
    Merge YAML config, environment and CLI flags (CLI wins).

    Raises:
        FileNotFoundError: If --config points to a missing file
        ValueError: If the merged configuration is invalid
    """
    config = InspectorConfig.from_yaml(args.config) if args.config else InspectorConfig()

    mqtt_config = config.mqtt_config.with_env_overrides()
    mqtt_changes = {k: v for k, v in (('broker', args.broker), ('port', args.port)) if v is not None}
    if mqtt_changes:
        mqtt_config = replace(mqtt_config, **mqtt_changes)

    config = config.with_overrides(
        device=args.device,
        input_path=args.input_path,
        min_area=args.min_area,
        max_area=args.max_area,
        publish_rate_seconds=args.publish_rate_seconds,
        mqtt_config=mqtt_config,
    )

    if args.no_telemetry:
        config = replace(config, telemetry_enabled=False)
    if args.no_display:
        config = replace(config, display_enabled=False)

    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Workflow:
    1. Parse CLI arguments (no arguments prints help)
    2. Build configuration
    3. Create InspectorApp, setup, run
    """
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()

    if not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    log_file = None if args.no_log_file else args.log_file
    app = InspectorApp(config=config, log_file=log_file, log_level=getattr(logging, args.log_level))

    try:
        app.setup()
    except CaptureError as e:
        app.logger.error(f"❌ {e}")
        print(f"ERROR! {e}", file=sys.stderr)
        if app.service:
            app.service.stop()
        return 1
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        return 1

    return app.run()


if __name__ == '__main__':
    sys.exit(main())
