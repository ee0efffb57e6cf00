from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Dict, List, Union


IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})


def gallery_files(directory: Union[str, Path]) -> List[str]:
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(
        entry.name
        for entry in root.iterdir()
        if entry.is_file() and entry.suffix.lstrip(".").lower() in IMAGE_EXTENSIONS
    )


def list_images(directory: Union[str, Path], page: int = 1, per_page: int = 12) -> Dict[str, Any]:
    """Return one page of gallery filenames with pagination metadata.

    ``page`` is clamped to ``[1, totalPages]``; an empty gallery reports page 1
    of 0.
    """

    if per_page < 1:
        raise ValueError("per_page must be positive")

    images = gallery_files(directory)
    total_images = len(images)
    total_pages = math.ceil(total_images / per_page)
    current = max(1, min(page, total_pages))

    offset = (current - 1) * per_page
    return {
        "images": images[offset : offset + per_page],
        "pagination": {
            "currentPage": current,
            "totalPages": total_pages,
            "imagesPerPage": per_page,
            "totalImages": total_images,
        },
    }
