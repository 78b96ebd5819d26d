import logging
import threading
import time

from app.errors import EmptyInputError
from app.model import Model
from app.preprocessing import ImagePreprocessor
from app.ranking import Prediction, PredictionRanker

logger = logging.getLogger(__name__)


class InferenceService:
    """Serializes every prediction on one lock.

    The TensorFlow session is shared by all requests and is not treated as
    safe for concurrent runs, so the lock covers preprocessing, the forward
    pass and ranking. At most one inference is in flight per process.
    """

    def __init__(
        self,
        model: Model,
        preprocessor: ImagePreprocessor | None = None,
        ranker: PredictionRanker | None = None,
    ):
        self.model = model
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.ranker = ranker or PredictionRanker()
        self._lock = threading.Lock()

    def predict(self, data: bytes) -> list[Prediction]:
        if not data:
            raise EmptyInputError()

        with self._lock:
            start = time.perf_counter()
            tensor = self.preprocessor.prepare(data)
            scores = self.model.engine.run(tensor)
            predictions = self.ranker.rank(scores, self.model.labels)
            elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug("Classified %d bytes in %.1f ms", len(data), elapsed_ms)
        if predictions:
            top = predictions[0]
            logger.info("Top class %s (%.2f%%)", top.class_label, top.probability)
        else:
            logger.info("No class above the noise floor")
        return predictions

    def close(self) -> None:
        self.model.close()
