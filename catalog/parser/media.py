"""
Media classification and file-derived metadata.

Classification is by extension only. Dimension/duration probing is
best-effort: Pillow for images, ffprobe for videos.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}
VIDEO_EXTENSIONS = {'.mp4', '.mov'}

# Keys refreshed from disk on every add/change; everything else in
# metadata belongs to the user and survives re-indexing.
FILE_DERIVED_KEYS = ('fileSize', 'width', 'height', 'duration')

_FFPROBE_TIMEOUT_S = 15


@dataclass(frozen=True)
class FileInfo:
    size: int
    created_at: int   # ms, birth time when the platform exposes it
    modified_at: int  # ms


def _configured_extensions():
    from catalog.utils.config import get_config
    cfg = get_config()
    images = cfg.get("indexer.extensions.image") or IMAGE_EXTENSIONS
    videos = cfg.get("indexer.extensions.video") or VIDEO_EXTENSIONS
    return {e.lower() for e in images}, {e.lower() for e in videos}


def classify(path) -> Optional[str]:
    """Return 'image', 'video' or None for non-media files."""
    ext = Path(path).suffix.lower()
    images, videos = _configured_extensions()
    if ext in videos:
        return 'video'
    if ext in images:
        return 'image'
    return None


def is_hidden(path, root) -> bool:
    """True if any component below root starts with a dot."""
    try:
        rel = Path(path).relative_to(root)
    except ValueError:
        rel = Path(path)
    return any(part.startswith('.') for part in rel.parts)


def read_file_info(path) -> FileInfo:
    """Stat a file. Raises OSError when unreadable."""
    st = os.stat(path)
    birth = getattr(st, 'st_birthtime', None)
    if birth is None:
        # Linux has no birth time through os.stat; take the oldest we have
        birth = min(st.st_ctime, st.st_mtime)
    return FileInfo(
        size=st.st_size,
        created_at=int(birth * 1000),
        modified_at=int(st.st_mtime * 1000),
    )


def _probe_image(path) -> Dict[str, Any]:
    with Image.open(path) as im:
        return {'width': im.width, 'height': im.height}


def _probe_video(path) -> Dict[str, Any]:
    proc = subprocess.run(
        [
            'ffprobe', '-v', 'error', '-print_format', 'json',
            '-show_streams', '-show_format', str(path),
        ],
        capture_output=True, text=True, timeout=_FFPROBE_TIMEOUT_S, check=True,
    )
    data = json.loads(proc.stdout or '{}')
    info: Dict[str, Any] = {}
    stream = next(
        (s for s in data.get('streams', []) if s.get('codec_type') == 'video'), None
    )
    if stream:
        if stream.get('width'):
            info['width'] = int(stream['width'])
        if stream.get('height'):
            info['height'] = int(stream['height'])
    duration = (data.get('format') or {}).get('duration')
    if duration:
        info['duration'] = float(duration)
    return info


def extract_metadata(path, media_type: str, file_size: int) -> Dict[str, Any]:
    """
    Build file-derived metadata for an asset.

    Args:
        path: Absolute file path
        media_type: 'image' or 'video'
        file_size: Size in bytes from read_file_info()

    Returns:
        Dict with fileSize and whatever dimensions could be probed
    """
    metadata: Dict[str, Any] = {'fileSize': file_size}
    try:
        if media_type == 'image':
            metadata.update(_probe_image(path))
        elif media_type == 'video':
            metadata.update(_probe_video(path))
    except (OSError, UnidentifiedImageError, subprocess.SubprocessError, ValueError) as e:
        # Partial copies and non-decodable files are expected during bursts
        logger.debug(f"Metadata probe skipped for {Path(path).name}: {e}")
    return metadata
