from dataclasses import dataclass
from typing import Sequence

import numpy as np

UNKNOWN_LABEL = "Unknown"

# Scores are dropped unless round(score * NOISE_SCALE) > 0.
NOISE_SCALE = np.float32(10000.0)
PERCENT = np.float32(100.0)


@dataclass(frozen=True)
class Prediction:
    class_label: str
    probability: float


class PredictionRanker:
    def rank(self, scores: np.ndarray, labels: Sequence[str]) -> list[Prediction]:
        """Drop classes under the noise floor and return the rest as percentages, highest first.

        Equal probabilities keep their output-index order.
        """
        scores = np.asarray(scores, dtype=np.float32).ravel()
        scaled = (scores * NOISE_SCALE).astype(np.float64)
        # round half away from zero is positive exactly when the value is >= 0.5
        keep = np.flatnonzero(np.floor(scaled + 0.5) > 0)

        predictions = [
            Prediction(
                class_label=labels[i] if i < len(labels) else UNKNOWN_LABEL,
                probability=float(scores[i] * PERCENT),
            )
            for i in keep
        ]
        return sorted(predictions, key=lambda p: p.probability, reverse=True)
