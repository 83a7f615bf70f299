"""
Overlay Renderer
================

Pure visualization layer for the inspection display.

Design:
- Stateless rendering (no business logic)
- Configurable styles
- Uses supervision drawing utilities

Dependencies:
- supervision (draw utilities, Color, Point, Rect)
- numpy (arrays)
"""

from typing import Iterable, Tuple

import numpy as np
import supervision as sv

from linecheck_inspector.context import ClassificationVerdict


class OverlayRenderer:
    """
    Draws the defect label and the detected part boxes on a frame.

    Usage:
        renderer = OverlayRenderer()
        frame = renderer.draw_part_boxes(frame, snapshot.boxes)
        frame = renderer.draw_verdict(frame, snapshot.verdict)
    """

    def __init__(
        self,
        text_color: sv.Color = sv.Color(r=255, g=0, b=0),
        box_color: sv.Color = sv.Color(r=255, g=0, b=0),
        text_anchor: Tuple[int, int] = (60, 30),
        text_scale: float = 0.5,
        text_thickness: int = 1,
        text_padding: int = 10,
        box_thickness: int = 1,
    ):
        """
        Args:
            text_color: Color of the "Defect: n" label
            box_color: Color of the part bounding boxes
            text_anchor: (x, y) center of the label
            text_scale: Scale factor for text
            text_thickness: Thickness for text
            text_padding: Padding around the label
            box_thickness: Line thickness for boxes
        """
        self.text_color = text_color
        self.box_color = box_color
        self.text_anchor = sv.Point(x=text_anchor[0], y=text_anchor[1])
        self.text_scale = text_scale
        self.text_thickness = text_thickness
        self.text_padding = text_padding
        self.box_thickness = box_thickness

    def draw_verdict(self, frame: np.ndarray, verdict: ClassificationVerdict) -> np.ndarray:
        """Draw 'Defect: 0' or 'Defect: 1' in the top-left corner."""
        return sv.draw_text(
            scene=frame,
            text=verdict.label,
            text_anchor=self.text_anchor,
            text_color=self.text_color,
            text_scale=self.text_scale,
            text_thickness=self.text_thickness,
            text_padding=self.text_padding,
        )

    def draw_part_boxes(
        self,
        frame: np.ndarray,
        boxes: Iterable[Tuple[int, int, int, int]],
    ) -> np.ndarray:
        """Outline every (x, y, w, h) box found by the detector."""
        for x, y, w, h in boxes:
            frame = sv.draw_rectangle(
                scene=frame,
                rect=sv.Rect(x=x, y=y, width=w, height=h),
                color=self.box_color,
                thickness=self.box_thickness,
            )
        return frame
