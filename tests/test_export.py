import json

import pytest

from sniffer.export import export_csv, export_frames, export_json
from sniffer.frames import FrameEntry

FRAMES = [
    FrameEntry("01000001", "41", "A"),
    FrameEntry("0010001001011100", "22 5C", '"\\'),
]


def test_export_csv(tmp_path):
    path = tmp_path / "frames.csv"
    assert export_csv(FRAMES, path) == 2

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "bits,hex,text"
    assert lines[1] == '"01000001","41","A"'
    assert lines[2] == '"0010001001011100","22 5C","""\\"'


def test_export_json_escapes(tmp_path):
    path = tmp_path / "frames.json"
    assert export_json(FRAMES, path) == 2

    raw = path.read_text(encoding="utf-8")
    assert '"text": "\\"\\\\"' in raw
    assert json.loads(raw) == [
        {"bits": "01000001", "hex": "41", "text": "A"},
        {"bits": "0010001001011100", "hex": "22 5C", "text": '"\\'},
    ]


def test_export_empty(tmp_path):
    path = tmp_path / "empty.json"
    assert export_frames([], path, "JSON") == 0
    assert json.loads(path.read_text(encoding="utf-8")) == []


def test_export_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        export_frames(FRAMES, tmp_path / "frames.xml", "xml")
