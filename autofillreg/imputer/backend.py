"""
Model fitting and prediction on top of statsmodels.

The imputation driver only sees :func:`fit_model` and :func:`predict_model`;
everything statsmodels-specific (target encoding, routine dispatch, captured
optimiser output) lives here.
"""
import contextlib
import io
import sys
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from ..exceptions import ModelFitFailure
from .families import BINARY, MULTINOMIAL, ModelPlan

import logging
logger = logging.getLogger(__name__)

# Value written into the target column of the prediction frame.
PLACEHOLDER = 1.0


@contextlib.contextmanager
def redirect_stdout_to_file(file_path: str):
    """
    Context manager for redirecting standard output to a file.

    Parameters
    ----------
    file_path : str
        The path to the file where the standard output will be redirected.
        The file is opened in append mode.

    Yields
    ------
    None
    """
    original_stdout = sys.stdout
    file = open(file_path, 'a')
    sys.stdout = file

    try:
        yield
    finally:
        sys.stdout = original_stdout
        file.close()


@contextlib.contextmanager
def fit_output_sink(fit_output: str):
    """
    Route text printed by a model fit.

    Parameters
    ----------
    fit_output : str
        'discard' to capture and drop the output, 'surface' to let it through
        to standard output, anything else is a log file path to append to.
    """
    if fit_output == 'surface':
        yield
    elif fit_output == 'discard':
        buffer = io.StringIO()
        with contextlib.redirect_stdout(buffer):
            yield
        if buffer.tell():
            logger.debug(f"Discarded {buffer.tell()} characters of fit output")
    else:
        with redirect_stdout_to_file(fit_output):
            yield


@dataclass
class FittedModel:
    """
    Fitted model for one target variable.

    Parameters
    ----------
    plan : ModelPlan
        Plan the model was fitted with.
    target : str
        Target column.
    result : object
        statsmodels results instance.
    classes : ndarray, optional
        Level codes matching the probability columns of a multinomial fit.
    """

    plan: ModelPlan
    target: str
    result: object
    classes: Optional[np.ndarray] = None


def model_frame(data: pd.DataFrame, target: str, predictors: Iterable[str], plan: ModelPlan) -> pd.DataFrame:
    """
    Copy the model columns with the target encoded numerically.

    Binary targets become 1.0 for the second level and 0.0 for the first,
    multinomial targets become level codes; missing values stay NaN.
    """
    frame = data[[target] + [p for p in predictors if p != target]].copy()
    column = data[target]

    if plan.kind == BINARY:
        encoded = (column == plan.levels[1]).astype(float)
        frame[target] = encoded.where(column.notna())
    elif plan.kind == MULTINOMIAL:
        codes = pd.Categorical(column, categories=list(plan.levels)).codes
        frame[target] = np.where(codes < 0, np.nan, codes).astype(float)
    else:
        frame[target] = column.astype(float)

    return frame


def fit_robust_glm(formula: str, data: pd.DataFrame, family, tuning: float = 1.345,
                   maxiter: int = 50, tol: float = 1e-6):
    """
    Fit a GLM with Huber weights on the standardized Pearson residuals.

    The weights are re-estimated from the previous fit and passed back as
    variance weights until they stop changing. Residuals are standardized by
    their MAD, or taken as they are for Binomial and Poisson families whose
    scale is fixed at one.

    Parameters
    ----------
    formula : str
        Model formula.
    data : DataFrame
        Complete rows to fit on.
    family : Family
        statsmodels family.
    tuning : float, default=1.345
        Huber tuning constant.
    maxiter : int, default=50
        Maximum number of reweighting steps.
    tol : float, default=1e-6
        Convergence threshold on the largest weight change.

    Returns
    -------
    GLMResults
    """
    norm = sm.robust.norms.HuberT(t=tuning)
    result = smf.glm(formula, data=data, family=family).fit()
    weights = np.ones(len(data))

    fixed_scale = isinstance(family, (sm.families.Binomial, sm.families.Poisson))

    for _ in range(maxiter):
        endog = np.asarray(result.model.endog, dtype=float)
        mu = np.asarray(result.fittedvalues, dtype=float)
        resid = (endog - mu) / np.sqrt(family.variance(mu))
        if not fixed_scale:
            scale = sm.robust.scale.mad(resid, center=0.0)
            if scale <= 0:
                break
            resid = resid / scale
        new_weights = norm.weights(resid)
        if np.max(np.abs(new_weights - weights)) < tol:
            break
        weights = new_weights
        result = smf.glm(formula, data=data, family=family, var_weights=weights).fit()
    else:
        logger.warning(f"Robust GLM did not converge after {maxiter} reweighting steps")

    return result


def fit_model(plan: ModelPlan, target: str, formula: str, frame: pd.DataFrame,
              fit_output: str = 'discard') -> FittedModel:
    """
    Fit the model described by ``plan`` on ``frame``.

    Parameters
    ----------
    plan : ModelPlan
        Routine and family to use.
    target : str
        Target column of ``frame`` (already encoded, see :func:`model_frame`).
    formula : str
        statsmodels formula.
    frame : DataFrame
        Fit-eligible rows only.
    fit_output : str, default='discard'
        Where optimiser output goes, see :func:`fit_output_sink`.

    Raises
    ------
    ModelFitFailure
        If statsmodels cannot fit the model.
    """
    logger.debug(f"Fitting {plan.describe()} for {target} on {len(frame)} rows: {formula}")
    classes = None

    try:
        with fit_output_sink(fit_output):
            if plan.routine == 'ols':
                result = smf.ols(formula, data=frame).fit()
            elif plan.routine == 'rlm':
                result = smf.rlm(formula, data=frame, M=sm.robust.norms.HuberT()).fit()
            elif plan.routine == 'glm':
                result = smf.glm(formula, data=frame, family=plan.family).fit()
            elif plan.routine == 'robust_glm':
                result = fit_robust_glm(formula, frame, plan.family)
            elif plan.routine == 'mnlogit':
                classes = np.unique(frame[target].to_numpy()).astype(int)
                result = smf.mnlogit(formula, data=frame).fit(disp=fit_output != 'discard')
            else:
                raise ValueError(f"Unknown routine '{plan.routine}'")
    except Exception as e:
        raise ModelFitFailure(f"Fitting {plan.describe()} for {target} failed: {e}") from e

    return FittedModel(plan=plan, target=target, result=result, classes=classes)


def predict_model(model: FittedModel, newdata: pd.DataFrame) -> np.ndarray:
    """
    Predict on ``newdata`` on the response scale.

    Returns
    -------
    ndarray
        Point predictions for numeric targets, probabilities of the second
        level for binary targets, and an (n_rows, n_classes) probability
        matrix ordered like ``model.classes`` for multinomial targets.

    Raises
    ------
    ModelFitFailure
        If statsmodels cannot predict.
    """
    newdata = newdata.copy()
    newdata[model.target] = PLACEHOLDER

    try:
        predicted = np.asarray(model.result.predict(newdata), dtype=float)
    except Exception as e:
        raise ModelFitFailure(f"Predicting {model.target} failed: {e}") from e

    if model.plan.kind == MULTINOMIAL:
        return predicted.reshape(len(newdata), -1)
    return predicted.reshape(-1)
