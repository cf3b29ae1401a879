import logging

import pytest
from PIL import Image

from qrstudio.logging import AUDIT, audit, describe, get_logger, trace
from qrstudio.state import GeneratorState


def test_describe_render_objects(symbol):
    assert describe(Image.new("RGBA", (12, 8))) == "<Image 12x8 RGBA>"
    assert describe(symbol) == f"<EncodedSymbol v2 {symbol.size}x{symbol.size} ecc={symbol.ecc}>"
    state = GeneratorState(pixel_style="dot", seed=-3)
    assert "style=dot" in describe(state)
    assert "seed=-3" in describe(state)
    assert describe("plain text") is None


def test_audit_carries_event_and_context(caplog):
    log = get_logger("test")
    with caplog.at_level(AUDIT, logger="qrstudio"):
        audit("qr.encoded", logger=log, version=3, ecc="M")
    record = caplog.records[-1]
    assert record.levelname == "AUDIT"
    assert record.event == "qr.encoded"
    assert record.ctx == {"version": 3, "ecc": "M"}


def test_trace_summarizes_images(caplog):
    @trace(logger_name="test")
    def make(w, h):
        return Image.new("RGB", (w, h))

    with caplog.at_level(logging.INFO, logger="qrstudio"):
        make(5, 4)
    done = [r for r in caplog.records if getattr(r, "event", "") == "make.done"]
    assert done[0].ctx == {"result": "<Image 5x4 RGB>"}


def test_trace_logs_and_reraises(caplog):
    @trace(logger_name="test")
    def boom():
        raise RuntimeError("nope")

    with caplog.at_level(logging.INFO, logger="qrstudio"):
        with pytest.raises(RuntimeError):
            boom()
    errors = [r for r in caplog.records if getattr(r, "event", "") == "boom.error"]
    assert errors and errors[0].levelno == logging.ERROR
