"""
Turning predicted probabilities into categorical values.

``most_likely_*`` are the deterministic policies (``mod_cat=True``),
``sample_*`` draw from the predictive distribution (``mod_cat=False``).
"""
from typing import Sequence

import numpy as np


def most_likely_binary(probabilities: np.ndarray, levels: Sequence) -> np.ndarray:
    """Second level where its probability exceeds 0.5, first level otherwise."""
    index = (np.asarray(probabilities) > 0.5).astype(int)
    return np.asarray(levels, dtype=object)[index]


def sample_binary(probabilities: np.ndarray, levels: Sequence, random_state: np.random.RandomState) -> np.ndarray:
    """Draw one Bernoulli outcome per row with P(second level) = probability."""
    p = np.clip(np.asarray(probabilities, dtype=float), 0.0, 1.0)
    index = random_state.binomial(1, p)
    return np.asarray(levels, dtype=object)[index]


def most_likely_class(probabilities: np.ndarray, labels: Sequence) -> np.ndarray:
    """Label of the largest probability in each row."""
    index = np.argmax(np.asarray(probabilities), axis=1)
    return np.asarray(labels, dtype=object)[index]


def sample_class(probabilities: np.ndarray, labels: Sequence, random_state: np.random.RandomState) -> np.ndarray:
    """Draw one label per row from the row's class distribution."""
    probabilities = np.clip(np.asarray(probabilities, dtype=float), 0.0, None)
    probabilities = probabilities / probabilities.sum(axis=1, keepdims=True)
    index = [random_state.choice(probabilities.shape[1], p=row) for row in probabilities]
    return np.asarray(labels, dtype=object)[np.asarray(index, dtype=int)]


def resolve_outcomes(kind: str, predictions: np.ndarray, labels: Sequence, mod_cat: bool,
                     random_state: np.random.RandomState) -> np.ndarray:
    """
    Apply the draw policy for a categorical target.

    Parameters
    ----------
    kind : str
        'binary' or 'multinomial'.
    predictions : ndarray
        P(second level) for binary targets, per-class probabilities for
        multinomial ones.
    labels : sequence
        Levels (binary) or the labels of the probability columns (multinomial).
    mod_cat : bool
        True for the most likely value, False to sample.
    random_state : RandomState
        Source of randomness for sampling.
    """
    if kind == 'binary':
        if mod_cat:
            return most_likely_binary(predictions, labels)
        return sample_binary(predictions, labels, random_state)
    if mod_cat:
        return most_likely_class(predictions, labels)
    return sample_class(predictions, labels, random_state)
