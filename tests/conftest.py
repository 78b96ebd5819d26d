"""
Shared fixtures for the classifier tests.
"""

import io
import threading
import time

import numpy as np
import pytest
from PIL import Image


def encode_image(image: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


def build_graph(input_shape=(1, 4, 4, 3)) -> bytes:
    """Frozen graph: x -> per-channel mean -> softmax -> Identity (3 classes)."""
    import tensorflow as tf

    graph = tf.Graph()
    with graph.as_default():
        x = tf.compat.v1.placeholder(tf.float32, shape=input_shape, name="x")
        logits = tf.reduce_mean(x, axis=[1, 2]) / 255.0 * 10.0
        scores = tf.nn.softmax(logits, name="scores")
        tf.identity(scores, name="Identity")
    return graph.as_graph_def().SerializeToString()


class FakeEngine:
    """Records calls and fails if two forward passes overlap."""

    def __init__(self, scores=None, delay: float = 0.0):
        self.scores = np.asarray(scores if scores is not None else [0.7, 0.2, 0.1], dtype=np.float32)
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()
        self.closed = False

    def run(self, tensor):
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            assert self.active == 1, "concurrent forward pass"
        try:
            if self.delay:
                time.sleep(self.delay)
            self.calls += 1
            return self.scores
        finally:
            with self._counter_lock:
                self.active -= 1

    def close(self):
        self.closed = True


@pytest.fixture
def rgb_png():
    return encode_image(Image.new("RGB", (300, 200), color=(255, 0, 0)))


@pytest.fixture
def gray_png():
    return encode_image(Image.new("L", (120, 80), color=128))


@pytest.fixture
def graph_bytes():
    return build_graph()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_model(fake_engine):
    from app.model import Model

    return Model(fake_engine, ("cat", "dog", "bird"))
