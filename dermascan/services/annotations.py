"""
Bounding-box annotations for detections.

Boxes arrive as [ymin, xmin, ymax, xmax] on a 1000x1000 grid. Overlays are
expressed as percentages of the displayed image, and drawn boxes are scaled
separately along each axis so non-square images keep their geometry.
"""
import io
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from dermascan.models.schemas import BOX_SCALE, Detection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Overlay:
    label: str
    top: float
    left: float
    height: float
    width: float

    def as_css(self) -> dict:
        return {
            "top": f"{self.top:g}%",
            "left": f"{self.left:g}%",
            "height": f"{self.height:g}%",
            "width": f"{self.width:g}%",
        }


def to_overlay(detection: Detection) -> Overlay:
    ymin, xmin, ymax, xmax = detection.box_2d
    return Overlay(
        label=detection.label,
        top=ymin / BOX_SCALE * 100,
        left=xmin / BOX_SCALE * 100,
        height=(ymax - ymin) / BOX_SCALE * 100,
        width=(xmax - xmin) / BOX_SCALE * 100,
    )


def overlays(detections: Sequence[Detection], visible: bool = True) -> List[Overlay]:
    if not visible:
        return []
    return [to_overlay(detection) for detection in detections]


def sanitize_detections(detections: Sequence[Detection]) -> List[Detection]:
    """Clamp boxes into the grid and drop the ones with no area left."""
    kept = []
    for detection in detections:
        ymin, xmin, ymax, xmax = (min(max(float(v), 0.0), float(BOX_SCALE)) for v in detection.box_2d)
        if ymin >= ymax or xmin >= xmax:
            logger.warning(f"Dropping detection '{detection.label}' with empty box {detection.box_2d}")
            continue
        kept.append(detection.model_copy(update={"box_2d": [ymin, xmin, ymax, xmax]}))
    return kept


def pixel_box(detection: Detection, size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    """Convert a detection to (x_min, y_min, x_max, y_max) pixels for an image of ``size``."""
    width, height = size
    ymin, xmin, ymax, xmax = detection.box_2d
    return (
        round(xmin / BOX_SCALE * width),
        round(ymin / BOX_SCALE * height),
        round(xmax / BOX_SCALE * width),
        round(ymax / BOX_SCALE * height),
    )


def draw_detections(image: Image.Image, detections: Sequence[Detection], outline_width: int = 3) -> bytes:
    """Draw labelled boxes on ``image`` and return PNG bytes."""
    img = image.convert("RGBA")
    outline_color = (14, 165, 233, 255)
    fill_color = (14, 165, 233, 40)

    overlay = Image.new("RGBA", img.size, (255, 255, 255, 0))
    overlay_draw = ImageDraw.Draw(overlay)
    for detection in detections:
        overlay_draw.rectangle(pixel_box(detection, img.size), fill=fill_color)
    img = Image.alpha_composite(img, overlay)

    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    for detection in detections:
        x_min, y_min, x_max, y_max = pixel_box(detection, img.size)
        draw.rectangle([x_min, y_min, x_max, y_max], outline=outline_color, width=outline_width)

        text_box = draw.textbbox((0, 0), detection.label, font=font)
        text_w, text_h = text_box[2] - text_box[0], text_box[3] - text_box[1]
        text_y = max(0, y_min - text_h - 4)
        draw.rectangle([x_min, text_y, x_min + text_w + 4, text_y + text_h + 4], fill=outline_color)
        draw.text((x_min + 2, text_y + 2), detection.label, fill=(255, 255, 255, 255), font=font)

    buffer = io.BytesIO()
    img.convert("RGB").save(buffer, format="PNG")
    return buffer.getvalue()
