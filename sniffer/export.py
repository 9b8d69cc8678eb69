"""
Export of decoded trames to CSV or JSON files.
"""
import csv
import json
import logging
from pathlib import Path
from typing import Sequence, Union

logger = logging.getLogger(__name__)

CSV_HEADER = ["bits", "hex", "text"]

FORMATS = ("csv", "json")


def export_csv(frames: Sequence, path: Union[str, Path]) -> int:
    """
    Write frames as CSV: a bits,hex,text header then one quoted row per frame

    Returns:
        Number of frames written
    """
    with open(path, "w", newline="", encoding="utf-8") as f:
        csv.writer(f, lineterminator="\n").writerow(CSV_HEADER)
        writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for frame in frames:
            writer.writerow([frame.bits, frame.hex, frame.text])

    logger.info(f"Exported {len(frames)} frames to {path}")
    return len(frames)


def export_json(frames: Sequence, path: Union[str, Path]) -> int:
    """Write frames as a JSON array of {bits, hex, text} objects"""
    payload = [{"bits": frame.bits, "hex": frame.hex, "text": frame.text} for frame in frames]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")

    logger.info(f"Exported {len(frames)} frames to {path}")
    return len(frames)


def export_frames(frames: Sequence, path: Union[str, Path], fmt: str = "csv") -> int:
    """Export frames in the given format ("csv" or "json")"""
    fmt = fmt.lower()
    if fmt == "csv":
        return export_csv(frames, path)
    if fmt == "json":
        return export_json(frames, path)
    raise ValueError(f"Unknown export format: {fmt}")
