import logging
from pathlib import Path

import numpy as np
import tensorflow as tf
from google.protobuf.message import DecodeError as ProtobufDecodeError

from app.errors import (
    GraphLoadError,
    InferenceError,
    ModelInitError,
    NodeNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_INPUT_NODE = "x"
DEFAULT_OUTPUT_NODE = "Identity"

NAMED = "named"
POSITIONAL = "positional"
RESOLUTION_STRATEGIES = (NAMED, POSITIONAL)


def parse_labels(text: str) -> tuple[str, ...]:
    """One class name per line; line index is the output position."""
    if not text:
        return ()
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return tuple(line[:-1] if line.endswith("\r") else line for line in lines)


def _parse_graph_def(graph_bytes: bytes) -> tf.compat.v1.GraphDef:
    graph_def = tf.compat.v1.GraphDef()
    try:
        graph_def.ParseFromString(graph_bytes)
    except ProtobufDecodeError as e:
        raise GraphLoadError(f"Failed to parse frozen graph: {e}") from e
    return graph_def


class InferenceEngine:
    """A frozen TensorFlow graph bound to one session.

    The input and output nodes are resolved by name ("x" / "Identity" unless
    configured otherwise). Positional resolution, first declared operation as
    input and last as output, is still accepted but operation order is not
    stable across exporters.
    """

    def __init__(
        self,
        graph_bytes: bytes,
        input_node: str = DEFAULT_INPUT_NODE,
        output_node: str = DEFAULT_OUTPUT_NODE,
        resolution: str = NAMED,
    ):
        if resolution not in RESOLUTION_STRATEGIES:
            raise ValueError(
                f"Unknown node resolution {resolution!r}, expected one of {RESOLUTION_STRATEGIES}"
            )

        graph_def = _parse_graph_def(graph_bytes)
        self._graph = tf.Graph()
        with self._graph.as_default():
            try:
                tf.import_graph_def(graph_def, name="")
            except (ValueError, TypeError) as e:
                raise GraphLoadError(f"Failed to import frozen graph: {e}") from e

        if resolution == POSITIONAL:
            logger.warning("Resolving graph nodes by position; set INPUT_NODE/OUTPUT_NODE instead")
            input_node, output_node = self._positional_nodes()

        self._input = self._resolve(input_node)
        self._output = self._resolve(output_node)
        logger.info("found %s as input layer", self._input.op.name)
        logger.info("found %s as output layer", self._output.op.name)

        try:
            self._session = tf.compat.v1.Session(graph=self._graph)
        except (tf.errors.OpError, RuntimeError, ValueError) as e:
            raise ModelInitError(f"Failed to create session: {e}") from e

    def _positional_nodes(self) -> tuple[str, str]:
        ops = self._graph.get_operations()
        if not ops:
            raise NodeNotFoundError("No operations found in the graph")
        return ops[0].name, ops[-1].name

    def _resolve(self, name: str) -> tf.Tensor:
        try:
            op = self._graph.get_operation_by_name(name)
        except KeyError as e:
            raise NodeNotFoundError(f"Operation '{name}' not found in graph") from e
        if not op.outputs:
            raise NodeNotFoundError(f"Operation '{name}' has no outputs")
        return op.outputs[0]

    @property
    def input_name(self) -> str:
        return self._input.op.name

    @property
    def output_name(self) -> str:
        return self._output.op.name

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """One forward pass. Returns the output tensor flattened to float32 scores."""
        try:
            output = self._session.run(self._output, feed_dict={self._input: tensor})
        except (tf.errors.OpError, ValueError, TypeError) as e:
            raise InferenceError(f"Inference failed: {e}") from e
        return np.asarray(output, dtype=np.float32).ravel()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


class Model:
    """Process-wide model: the engine plus its label list."""

    def __init__(self, engine: InferenceEngine, labels: tuple[str, ...]):
        self.engine = engine
        self.labels = labels

    @classmethod
    def from_bytes(
        cls,
        graph_bytes: bytes,
        labels_text: str,
        input_node: str = DEFAULT_INPUT_NODE,
        output_node: str = DEFAULT_OUTPUT_NODE,
        resolution: str = NAMED,
    ) -> "Model":
        engine = InferenceEngine(
            graph_bytes,
            input_node=input_node,
            output_node=output_node,
            resolution=resolution,
        )
        labels = parse_labels(labels_text)
        logger.info("Loaded %d class labels", len(labels))
        return cls(engine, labels)

    @classmethod
    def load(cls, model_path: str | Path, labels_path: str | Path, **kwargs) -> "Model":
        """Read both artifacts from disk. Missing or unreadable files raise GraphLoadError."""
        logger.info("Loading model from %s (labels %s)", model_path, labels_path)
        try:
            graph_bytes = Path(model_path).read_bytes()
            labels_text = Path(labels_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise GraphLoadError(f"Failed to read model artifacts: {e}") from e
        return cls.from_bytes(graph_bytes, labels_text, **kwargs)

    def close(self) -> None:
        self.engine.close()
