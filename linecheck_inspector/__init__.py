"""
linecheck_inspector - Assembly line defect inspection pipeline

This package captures frames from a camera or video file, measures the
part in view, classifies it as defective when its area is out of bounds,
and shares the verdict with the on-screen overlay and the MQTT telemetry
loop.

Architecture:
- InspectorService: Lifecycle controller
- AcquisitionLoop: Capture → hand-off → overlay → display (main thread)
- DefectWorker: Frame analysis (own thread)
- TelemetryPublisher: Periodic verdict publication (own thread)
- PipelineContext: FrameSlot + VerdictState + ShutdownToken
- InspectorConfig: Configuration management
"""

from linecheck_inspector.config import AreaBounds, InspectorConfig, MQTTConfig
from linecheck_inspector.context import (
    CapturedFrame,
    ClassificationVerdict,
    FrameSlot,
    PipelineContext,
    ShutdownToken,
    StopReason,
    VerdictState,
)
from linecheck_inspector.detection import PartDetector, classify_part_area
from linecheck_inspector.acquisition import (
    AcquisitionLoop,
    CaptureError,
    HeadlessDisplay,
    VideoSource,
    WindowDisplay,
)
from linecheck_inspector.worker import DefectWorker
from linecheck_inspector.telemetry import TelemetryPublisher
from linecheck_inspector.service import InspectorService, LifecycleState

__all__ = [
    "AreaBounds",
    "InspectorConfig",
    "MQTTConfig",
    "CapturedFrame",
    "ClassificationVerdict",
    "FrameSlot",
    "PipelineContext",
    "ShutdownToken",
    "StopReason",
    "VerdictState",
    "PartDetector",
    "classify_part_area",
    "AcquisitionLoop",
    "CaptureError",
    "HeadlessDisplay",
    "VideoSource",
    "WindowDisplay",
    "DefectWorker",
    "TelemetryPublisher",
    "InspectorService",
    "LifecycleState",
]
