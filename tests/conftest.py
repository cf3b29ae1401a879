import base64
import io

import numpy as np
import pytest
from PIL import Image

from qrstudio.encoder import SegnoEncoder
from qrstudio.state import GeneratorState

URL = "https://ishortn.ink"


def to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def pixels(img: Image.Image) -> np.ndarray:
    return np.asarray(img.convert("RGBA"))


@pytest.fixture
def state():
    return GeneratorState(text=URL)


@pytest.fixture
def symbol():
    """Version-2 symbol: one alignment pattern centred on (18, 18)."""
    return SegnoEncoder().encode(URL, min_version=2, max_version=40, ecc="M")


@pytest.fixture
def png_data_url():
    def make(color=(0, 0, 255), size=(10, 10)):
        payload = base64.b64encode(to_png_bytes(Image.new("RGB", size, color))).decode()
        return f"data:image/png;base64,{payload}"

    return make
