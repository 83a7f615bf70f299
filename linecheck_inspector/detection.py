"""
Part detection - image pipeline and area-based defect rule.

The detector isolates the bright part on a dark conveyor background and
measures the largest bounding box among the external contours:

    BGR → gray → 3x3 Gaussian blur → open → close → open (3x3 ellipse)
        → threshold(200) → external contours → max bounding box area

classify_part_area() turns that area into a defect verdict.
"""

from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

from linecheck_inspector.config import AreaBounds

KERNEL_SIZE = (3, 3)
THRESHOLD_CUTOFF = 200
THRESHOLD_MAX = 255


@dataclass(frozen=True)
class PartMeasurement:
    """Result of running the pipeline on one frame."""
    part_area: int
    boxes: Tuple[Tuple[int, int, int, int], ...] = ()

    @property
    def part_present(self) -> bool:
        return self.part_area > 0


def classify_part_area(part_area: int, bounds: AreaBounds) -> bool:
    """
    Decide whether a measured part is defective.

    An empty scene (area 0) is never a defect. Otherwise the part is
    defective when its area is strictly below min_area or strictly above
    max_area; oversize and undersize are not distinguished.
    """
    if part_area == 0:
        return False
    return part_area > bounds.max_area or part_area < bounds.min_area


class PartDetector:
    """
    Stateless OpenCV pipeline measuring the dominant part in a frame.

    Safe to share between threads (the structuring element is read-only).
    """

    def __init__(self, threshold: int = THRESHOLD_CUTOFF):
        self.threshold = threshold
        self._kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, KERNEL_SIZE)

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """Return the binary foreground mask for a BGR (or gray) frame."""
        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image

        gray = cv2.GaussianBlur(gray, KERNEL_SIZE, sigmaX=0, sigmaY=0)

        gray = cv2.morphologyEx(gray, cv2.MORPH_OPEN, self._kernel)
        gray = cv2.morphologyEx(gray, cv2.MORPH_CLOSE, self._kernel)
        gray = cv2.morphologyEx(gray, cv2.MORPH_OPEN, self._kernel)

        _, mask = cv2.threshold(gray, self.threshold, THRESHOLD_MAX, cv2.THRESH_BINARY)
        return mask

    def measure(self, image: np.ndarray) -> PartMeasurement:
        """
        Measure the largest part in the frame.

        Args:
            image: Frame as uint8 array (H, W, 3) BGR or (H, W) gray

        Returns:
            PartMeasurement with the largest box area (0 if nothing found)
            and every external contour's bounding box
        """
        mask = self.preprocess(image)
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)

        boxes: List[Tuple[int, int, int, int]] = []
        part_area = 0
        for contour in contours:
            x, y, w, h = cv2.boundingRect(contour)
            boxes.append((int(x), int(y), int(w), int(h)))
            part_area = max(part_area, int(w) * int(h))

        return PartMeasurement(part_area=part_area, boxes=tuple(boxes))
