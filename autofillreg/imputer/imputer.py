# Standard library imports
import copy
from typing import Dict, List, Optional, Union

# Third-party imports
import pandas as pd
import numpy as np
from sklearn.utils import check_random_state

from ..survey import SurveyDesign
from ..utils import add_missingness_at_random, evaluate_imputation_accuracy
from .backend import fit_model, model_frame, predict_model
from .draws import resolve_outcomes
from .families import ModelPlan, as_family_selector, resolve_plan
from .formula import FormulaSpec, complete_predictors, parse_formula

import logging
logger = logging.getLogger(__name__)

RandomStateLike = Union[None, int, np.random.RandomState]


class RegressionImputer:
    """
    Imputer filling missing values with predictions of regression models.

    Each target variable on the left-hand side of the formula is regressed on
    the right-hand side variables, using only rows where all of them are
    observed, and its missing values are replaced by predictions.

    Parameters
    ----------
    formula : str
        Imputation formula, e.g. ``"y1 + y2 ~ x1 + x2"``.
    family : str or statsmodels Family, default='AUTO'
        'AUTO' picks ordinary/robust linear regression for numeric targets,
        binomial regression for two-level and multinomial regression for
        multi-level categorical targets. A statsmodels family fits a GLM with
        that family instead.
    robust : bool, default=False
        Use outlier-resistant fits (not available for multi-level targets).
    imp_var : bool, default=True
        Add a boolean ``<target>_<imp_suffix>`` column marking imputed cells.
    imp_suffix : str, default='imp'
        Suffix of the imputation status columns.
    mod_cat : bool, default=False
        If True, categorical targets get their most likely level, otherwise
        the level is sampled from the predicted probabilities.
    random_state : int, RandomState or None, default=None
        Randomness for sampled levels. None uses numpy's global generator.
    fit_output : str, default='discard'
        What happens to text printed while fitting: 'discard', 'surface',
        or the path of a log file to append it to.
    """

    def __init__(
        self,
        formula: str,
        family='AUTO',
        robust: bool = False,
        imp_var: bool = True,
        imp_suffix: str = 'imp',
        mod_cat: bool = False,
        random_state: RandomStateLike = None,
        fit_output: str = 'discard'
    ):
        self.formula = formula
        self.family = as_family_selector(family)
        self.robust = robust
        self.imp_var = imp_var
        self.imp_suffix = imp_suffix
        self.mod_cat = mod_cat
        self.random_state = random_state
        self.fit_output = fit_output
        self.formula_spec: FormulaSpec = parse_formula(formula)
        self.missing_cells: Optional[pd.DataFrame] = None
        self.colsummary: Dict[str, Dict] = {}

    def dataset_overview(self, data: pd.DataFrame) -> None:
        """
        Log basic information about the imputation task.

        Parameters
        ----------
        data : DataFrame
            Dataset to impute.
        """
        logger.info(f"Data shape: {data.shape}")
        logger.info(f"Target variables: {', '.join(self.formula_spec.targets)}")
        logger.info(f"Predictor variables: {', '.join(self.formula_spec.predictors)}")

    def describe_call(self) -> str:
        """Text recorded as the call of an imputed survey design."""
        return (
            f"regression_imp({self.formula!r}, family={self.family}, robust={self.robust}, "
            f"imp_var={self.imp_var}, imp_suffix={self.imp_suffix!r}, mod_cat={self.mod_cat})"
        )

    def impute(self, data):
        """
        Impute the target variables of ``data`` in place.

        Parameters
        ----------
        data : DataFrame, SurveyDesign or anything DataFrame() accepts
            Data with missing values.

        Returns
        -------
        DataFrame or SurveyDesign
            ``data`` with imputed targets and status columns. Other input
            types are converted to a new DataFrame first.

        Raises
        ------
        InvalidFormula
            If the formula does not match the data.
        UnsupportedFamily
            If a target cannot be modelled with the requested family.
        ModelFitFailure
            If fitting or predicting fails; earlier targets stay imputed.
        """
        if isinstance(data, SurveyDesign):
            data.variables = self._impute_frame(data.variables)
            data.call = self.describe_call()
            return data
        if not isinstance(data, pd.DataFrame):
            data = pd.DataFrame(data)
        return self._impute_frame(data)

    def _impute_frame(self, data: pd.DataFrame) -> pd.DataFrame:
        spec = parse_formula(self.formula, data.columns)
        formulas = spec.model_formulas()
        self.formula_spec = spec
        self.dataset_overview(data)

        random_state = check_random_state(self.random_state)
        self.missing_cells = data[list(spec.targets)].isnull()
        self.colsummary = {}

        # Predictors that are also targets change during the call and are
        # checked per target instead.
        shared = [p for p in spec.predictors if p not in spec.targets]
        base_complete = complete_predictors(data, shared)

        for target in spec.targets:
            imputed_predictors = [p for p in spec.predictors_for(target) if p in spec.targets]
            complete = base_complete
            if imputed_predictors:
                complete = base_complete & complete_predictors(data, imputed_predictors)
            self._impute_target(data, target, formulas[target], complete, random_state)

        return data

    def _impute_target(
        self,
        data: pd.DataFrame,
        target: str,
        formula: str,
        complete: pd.Series,
        random_state: np.random.RandomState
    ) -> None:
        """
        Impute a single target variable.

        Parameters
        ----------
        data : DataFrame
            Dataset (modified in-place).
        target : str
            Column to impute.
        formula : str
            statsmodels formula of the target.
        complete : Series of bool
            Rows whose predictors are all observed.
        random_state : RandomState
            Randomness for sampled categorical values.
        """
        missing = data[target].isna()
        n_missing = int(missing.sum())

        if n_missing == 0:
            logger.info(f"No missing values in {target}.")
            self.colsummary[target] = {'model': None, 'n_missing': 0, 'n_imputed': 0, 'n_remaining': 0}
            return

        plan = resolve_plan(self.family, data[target], self.robust)
        fit_rows = complete & ~missing
        impute_rows = complete & missing
        n_imputed = int(impute_rows.sum())
        self.colsummary[target] = {
            'model': plan.describe(),
            'n_missing': n_missing,
            'n_imputed': n_imputed,
            'n_remaining': n_missing - n_imputed
        }

        if n_imputed == 0:
            self._update_status_column(data, target, missing)
            logger.info(f"No missing values in {target} with valid values in the predictor variables.")
            return

        predictors = self.formula_spec.predictors_for(target)
        model = fit_model(
            plan,
            target,
            formula,
            model_frame(data.loc[fit_rows], target, predictors, plan),
            self.fit_output
        )
        predictions = predict_model(model, model_frame(data.loc[impute_rows], target, predictors, plan))
        values = self._resolve_values(plan, model.classes, predictions, random_state)

        self._update_status_column(data, target, missing)
        if not plan.categorical and pd.api.types.is_integer_dtype(data[target].dtype):
            data[target] = data[target].astype('Float64')
        data.loc[impute_rows, target] = values

        if n_missing > n_imputed:
            logger.warning(
                f"There are still {n_missing - n_imputed} missing values in {target}, "
                f"probably due to missing values in the predictor variables."
            )

    def _resolve_values(
        self,
        plan: ModelPlan,
        classes: Optional[np.ndarray],
        predictions: np.ndarray,
        random_state: np.random.RandomState
    ) -> np.ndarray:
        if not plan.categorical:
            return predictions
        labels = plan.levels
        if classes is not None:
            labels = [plan.levels[code] for code in classes]
        return resolve_outcomes(plan.kind, predictions, labels, self.mod_cat, random_state)

    def _update_status_column(self, data: pd.DataFrame, target: str, missing: pd.Series) -> None:
        """
        Create or overwrite the imputation status column of a target.

        Parameters
        ----------
        data : DataFrame
            Dataset (modified in-place).
        target : str
            Imputed column.
        missing : Series of bool
            Missingness of the target before imputation.
        """
        if not self.imp_var:
            return
        name = f"{target}_{self.imp_suffix}"
        if name in data.columns:
            logger.warning(f"The following TRUE/FALSE imputation status variables will be updated: {name}")
        data[name] = missing.to_numpy(dtype=bool)

    def evaluate_imputation(
        self,
        data: pd.DataFrame,
        percentage: float,
        ntimes: int = 10
    ) -> Dict[int, Dict[str, Dict[str, float]]]:
        """
        Evaluate imputation performance by introducing and imputing random missingness.

        Parameters
        ----------
        data : DataFrame
            Dataset; observed target values are masked and re-imputed.
        percentage : float
            Share of the observed values of each target to hide (0-1).
        ntimes : int, default=10
            Number of evaluation iterations.

        Returns
        -------
        dict
            Nested dictionary with evaluation metrics per iteration and column.
            Format: {iteration: {column: {metric: value}}}
        """
        spec = parse_formula(self.formula, data.columns)
        random_state = check_random_state(self.random_state)
        accuracies = {}

        for rep in range(ntimes):
            modified_data, missingness_indices = add_missingness_at_random(
                data, percentage, columns=spec.targets, random_state=random_state
            )
            logger.info(f"Introduced missingness in {percentage*100}% of target values")

            imputed_data = self.impute(modified_data)
            accuracies[rep] = evaluate_imputation_accuracy(data, imputed_data, missingness_indices)

        logger.info("Imputation evaluation completed")
        return accuracies


def regression_imp(
    formula: str,
    data,
    family='AUTO',
    robust: bool = False,
    imp_var: bool = True,
    imp_suffix: str = 'imp',
    mod_cat: bool = False,
    random_state: RandomStateLike = None,
    fit_output: str = 'discard'
):
    """
    Impute missing values based on regression models.

    Parameters
    ----------
    formula : str
        Imputation formula, e.g. ``"y1 + y2 ~ x1 + x2"``.
    data : DataFrame or SurveyDesign
        Data with missing values, modified in-place.
    family, robust, imp_var, imp_suffix, mod_cat, random_state, fit_output
        Imputer options, see :class:`RegressionImputer`.

    Returns
    -------
    DataFrame or SurveyDesign
        The imputed data.

    Examples
    --------
    >>> regression_imp("Dream + NonD ~ BodyWgt + BrainWgt", data=sleep)
    >>> regression_imp("x1 ~ x2", data=testdata, robust=True)
    """
    imputer = RegressionImputer(
        formula,
        family=family,
        robust=robust,
        imp_var=imp_var,
        imp_suffix=imp_suffix,
        mod_cat=mod_cat,
        random_state=random_state,
        fit_output=fit_output
    )
    return imputer.impute(data)


def multiple_imputation(
    formula: str,
    data,
    n_imputations: int = 5,
    random_state: RandomStateLike = None,
    **kwargs
) -> List:
    """
    Perform multiple imputation on a dataset.

    Every imputation works on its own copy of ``data`` and all of them share
    one random stream, so sampled categorical values differ between copies.

    Parameters
    ----------
    formula : str
        Imputation formula.
    data : DataFrame or SurveyDesign
        Dataset with missing values; left unchanged.
    n_imputations : int, default=5
        Number of imputations to perform.
    random_state : int, RandomState or None, default=None
        Seed or generator shared by all imputations.
    **kwargs
        Additional arguments passed to RegressionImputer.

    Returns
    -------
    list
        Imputed copies of ``data``.
    """
    imputer = RegressionImputer(formula, random_state=check_random_state(random_state), **kwargs)
    if imputer.mod_cat:
        logger.warning("mod_cat=True: categorical values are not sampled, imputations will be identical")

    imputed_datasets = []
    for i in range(n_imputations):
        logger.debug(f"Performing imputation {i+1}/{n_imputations}")
        imputed_datasets.append(imputer.impute(copy.deepcopy(data)))

    return imputed_datasets
