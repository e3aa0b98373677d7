from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "probes"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from hwglance_core import FrameBuilder, RenderTargetUnavailable, normalize
from hwglance_probes import MetricKind, PollingCost, ProbeDescriptor, RawSample, RawUnit, SensorId
from hwglance_renderer import PlainRenderer, TerminalRenderer, format_frame, select_renderer, strip_ansi
from hwglance_renderer.layout import CLR_GRN, CLR_RED, CLR_RESET, CLR_YEL, HIDE_CURSOR, SHOW_CURSOR, fit_width

T = MetricKind.TEMPERATURE
U = MetricKind.UTILIZATION


def _descriptor(category: str, instance: str, label: str, kinds, seq: int) -> ProbeDescriptor:
    return ProbeDescriptor(
        sensor_id=SensorId(category, instance),
        label=label,
        category=category,
        capabilities=frozenset(kinds),
        cost=PollingCost.CHEAP,
        order=(0 if category == "cpu" else 1, seq),
        source="test",
    )


PKG = _descriptor("cpu", "package0", "CPU Package id 0", {T}, 0)
LOAD = _descriptor("cpu", "total0", "CPU Total", {U}, 1)
EDGE = _descriptor("gpu", "edge0", "GPU Edge", {T}, 2)


def _frame(builder: FrameBuilder, descriptors, temps=None, load=None):
    metrics = {}
    for d in descriptors:
        if T in d.capabilities and temps and d.sensor_id in temps:
            metrics[d.sensor_id] = {T: normalize(d.sensor_id, T, RawSample(temps[d.sensor_id], RawUnit.CELSIUS))}
        if U in d.capabilities and load is not None:
            metrics[d.sensor_id] = {U: normalize(d.sensor_id, U, RawSample(load, RawUnit.PERCENT))}
    return builder.build(descriptors, metrics)


class FakeTty(io.StringIO):
    def isatty(self) -> bool:
        return True


class BrokenStream(FakeTty):
    def write(self, text: str) -> int:
        raise BrokenPipeError("closed by peer")


def test_format_frame_aligns_columns() -> None:
    frame = _frame(FrameBuilder(), [PKG, LOAD, EDGE], {PKG.sensor_id: 55.0, EDGE.sensor_id: 61.5}, load=7)
    assert format_frame(frame) == [
        "CPU Package id 0  55.0°C",
        "CPU Total" + " " * 17 + "7%",
        "GPU Edge" + " " * 10 + "61.5°C",
    ]


def test_plain_renderer_writes_one_block_per_frame() -> None:
    out = io.StringIO()
    renderer = PlainRenderer(out)
    builder = FrameBuilder()
    renderer.emit(_frame(builder, [PKG, EDGE]))
    renderer.emit(_frame(builder, [PKG, EDGE]))
    blocks = out.getvalue().split("\n\n")
    assert blocks[0].splitlines() == ["CPU Package id 0  --", "GPU Edge" + " " * 10 + "--"]
    assert "\x1b" not in out.getvalue()


def test_select_renderer_falls_back_when_not_a_tty(monkeypatch) -> None:
    monkeypatch.setenv("TERM", "xterm-256color")
    assert isinstance(select_renderer(io.StringIO()), PlainRenderer)
    assert isinstance(select_renderer(FakeTty()), TerminalRenderer)
    assert isinstance(select_renderer(FakeTty(), plain=True), PlainRenderer)
    monkeypatch.setenv("TERM", "dumb")
    assert isinstance(select_renderer(FakeTty()), PlainRenderer)


def test_select_renderer_rejects_closed_stream() -> None:
    stream = io.StringIO()
    stream.close()
    with pytest.raises(RenderTargetUnavailable):
        select_renderer(stream)


def test_terminal_redraws_in_place() -> None:
    out = FakeTty()
    renderer = TerminalRenderer(out, color=False)
    builder = FrameBuilder()

    renderer.emit(_frame(builder, [PKG, EDGE], {PKG.sensor_id: 50.0}))
    first = out.getvalue()
    assert first.startswith(HIDE_CURSOR)
    assert first.count("\n") == 2

    out.seek(0)
    out.truncate()
    renderer.emit(_frame(builder, [PKG, EDGE], {PKG.sensor_id: 51.0}))
    second = out.getvalue()
    assert second.startswith("\x1b[2A\r")
    assert second.count("\n") == 2
    assert renderer.lines_drawn == 2

    renderer.close()
    assert out.getvalue().endswith(SHOW_CURSOR)


def test_terminal_clears_rows_of_removed_sensors() -> None:
    out = FakeTty()
    renderer = TerminalRenderer(out, color=False)
    builder = FrameBuilder()
    renderer.emit(_frame(builder, [PKG, LOAD, EDGE]))
    out.seek(0)
    out.truncate()
    renderer.emit(_frame(builder, [PKG]))
    text = out.getvalue()
    assert text.startswith("\x1b[3A\r")
    assert text.endswith("\x1b[2A")
    assert renderer.lines_drawn == 1


def test_temperature_colours_follow_category_thresholds() -> None:
    out = FakeTty()
    thresholds = {"cpu": (90.0, 100.0), "gpu": (85.0, 95.0)}
    renderer = TerminalRenderer(out, thresholds=thresholds, width=120)
    frame = _frame(FrameBuilder(), [PKG, EDGE], {PKG.sensor_id: 92.0, EDGE.sensor_id: 96.0})
    renderer.emit(frame)
    lines = [strip_ansi(line) for line in out.getvalue().split("\n")[:2]]
    assert lines == format_frame(frame)
    cpu_line, gpu_line = out.getvalue().split("\n")[:2]
    assert CLR_YEL in cpu_line
    assert CLR_RED in gpu_line


def test_write_failure_is_render_target_unavailable() -> None:
    renderer = TerminalRenderer(BrokenStream())
    with pytest.raises(RenderTargetUnavailable):
        renderer.emit(_frame(FrameBuilder(), [PKG]))


def test_fit_width_counts_only_visible_characters() -> None:
    coloured = f"CPU {CLR_GRN}55.0°C{CLR_RESET}"
    assert fit_width(coloured, 40) == coloured
    clipped = fit_width(coloured, 6)
    assert strip_ansi(clipped) == "CPU 55"
    assert clipped.endswith(CLR_RESET)
    assert fit_width("GPU Edge  61.5°C", 8) == "GPU Edge"


def test_terminal_clips_rows_to_its_width() -> None:
    out = FakeTty()
    renderer = TerminalRenderer(out, color=False, width=10)
    renderer.emit(_frame(FrameBuilder(), [PKG, EDGE], {PKG.sensor_id: 50.0}))
    rows = [strip_ansi(line) for line in out.getvalue().split("\n")[:2]]
    assert rows == ["CPU Packag", "GPU Edge" + " " * 2]
    assert renderer.lines_drawn == 2
