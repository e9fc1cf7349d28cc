"""
Static data loaded at startup and local storage initialization.
"""
import logging
from typing import Dict, List

from dermascan.core.config import get_settings
from dermascan.models.schemas import ConcernTag

logger = logging.getLogger(__name__)

SKIN_CONCERNS: List[ConcernTag] = [
    ConcernTag(id="acne", label="Acne & Blemishes", icon="fa-circle-dot"),
    ConcernTag(id="dark-circles", label="Dark Circles", icon="fa-eye"),
    ConcernTag(id="dryness", label="Dryness / Flakiness", icon="fa-droplet-slash"),
    ConcernTag(id="redness", label="Redness / Irritation", icon="fa-face-angry"),
    ConcernTag(id="wrinkles", label="Fine Lines & Wrinkles", icon="fa-minus"),
    ConcernTag(id="pigmentation", label="Pigmentation / Spots", icon="fa-certificate"),
    ConcernTag(id="oiliness", label="Oily Skin", icon="fa-sun"),
    ConcernTag(id="pores", label="Large Pores", icon="fa-border-none"),
]

CONCERNS_BY_ID: Dict[str, ConcernTag] = {concern.id: concern for concern in SKIN_CONCERNS}


def init_storage() -> None:
    """Create the local storage directory."""
    settings = get_settings()

    try:
        settings.STORAGE_DIR.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using storage directory: {settings.STORAGE_DIR}")
    except OSError as e:
        # History degrades to in-memory only
        logger.error(f"Failed to create directory {settings.STORAGE_DIR}: {e}")

if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    init_storage()
