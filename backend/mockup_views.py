"""Mockup view labels and preferred-view selection."""

import re
from dataclasses import dataclass, asdict
from typing import List
from urllib.parse import unquote

from config import DEFAULT_CAMERA_LABEL, MAX_MOCKUP_VIEWS, PREFERRED_LABELS

_CAMERA_LABEL_RE = re.compile(r"camera_label=([^&#]+)")


@dataclass(frozen=True)
class MockupImage:
    url: str
    label: str  # provider-assigned, e.g. "front", "back", "lifestyle"

    def to_dict(self) -> dict:
        return asdict(self)


def extract_camera_label(url: str) -> str:
    match = _CAMERA_LABEL_RE.search(url)
    if match:
        return unquote(match.group(1))
    return DEFAULT_CAMERA_LABEL


def select_preferred_views(
    images: List[MockupImage],
    max_views: int = MAX_MOCKUP_VIEWS,
) -> List[MockupImage]:
    """Pick up to max_views images, preferring PREFERRED_LABELS in list order.

    Each preferred label claims its first unclaimed match. Remaining slots are
    filled with unclaimed images in their original order.
    """
    selected: List[MockupImage] = []
    used = set()

    for label in PREFERRED_LABELS:
        if len(selected) >= max_views:
            break
        for i, img in enumerate(images):
            if i not in used and img.label == label:
                selected.append(img)
                used.add(i)
                break

    for i, img in enumerate(images):
        if len(selected) >= max_views:
            break
        if i not in used:
            selected.append(img)
            used.add(i)

    return selected
