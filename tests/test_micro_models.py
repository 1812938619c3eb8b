"""
Micro tests for model selection, draw policies and failure handling
in the imputation driver.
"""
import contextlib
import io
import os
import tempfile
import unittest
from unittest import mock

import pandas as pd
import numpy as np
import statsmodels.api as sm
import statsmodels.formula.api as smf
from autofillreg import (
    regression_imp,
    multiple_imputation,
    RegressionImputer,
    InvalidFormula,
    UnsupportedFamily,
    ModelFitFailure,
)


class TestMicroModels(unittest.TestCase):
    """Test the model families used by the imputer."""

    def setUp(self):
        """Set up test data."""
        rng = np.random.RandomState(42)
        n_samples = 60
        x1 = rng.normal(0, 1, n_samples)
        x2 = rng.normal(0, 1, n_samples)
        self.df = pd.DataFrame({
            'x1': x1,
            'x2': x2,
            'y': 3 + x1 - 2 * x2 + rng.normal(0, 0.5, n_samples),
            'b1': pd.Categorical(rng.choice(['no', 'yes'], n_samples), categories=['no', 'yes']),
            'm1': pd.Categorical(rng.choice(['a', 'b', 'c'], n_samples), categories=['a', 'b', 'c'])
        })
        self.missing_rows = [0, 5, 11, 30, 47]

    def test_multinomial_most_likely_class(self):
        """Multi-level targets get the class with the highest probability."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan
        missing_mask = df['m1'].isnull()

        fit_data = df[~missing_mask].assign(m1=lambda d: d['m1'].cat.codes.astype(float))
        model = smf.mnlogit('m1 ~ x1 + x2', data=fit_data).fit(disp=0)
        probabilities = np.asarray(model.predict(df[missing_mask].assign(m1=1.0)))
        expected = np.array(['a', 'b', 'c'])[probabilities.argmax(axis=1)]

        result = regression_imp('m1 ~ x1 + x2', data=df, mod_cat=True)

        self.assertEqual(result['m1'].isnull().sum(), 0)
        self.assertEqual(list(result.loc[missing_mask, 'm1']), list(expected))
        self.assertEqual(list(result.index[result['m1_imp']]), self.missing_rows)

    def test_multinomial_sampling(self):
        """Sampled multi-level values come from the declared levels."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        result = regression_imp('m1 ~ x1 + x2', data=df, random_state=0)

        self.assertEqual(result['m1'].isnull().sum(), 0)
        self.assertTrue(set(result.loc[self.missing_rows, 'm1']).issubset({'a', 'b', 'c'}))
        self.assertEqual(list(result['m1'].cat.categories), ['a', 'b', 'c'])

    def test_fit_output_is_discarded_by_default(self):
        """Optimizer output of the multinomial fit does not reach stdout."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        buffer = io.StringIO()
        with contextlib.redirect_stdout(buffer):
            regression_imp('m1 ~ x1 + x2', data=df, mod_cat=True)

        self.assertEqual(buffer.getvalue(), '')

    def test_fit_output_can_be_surfaced(self):
        """fit_output='surface' lets the optimizer output through."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        buffer = io.StringIO()
        with contextlib.redirect_stdout(buffer):
            regression_imp('m1 ~ x1 + x2', data=df, mod_cat=True, fit_output='surface')

        self.assertIn('Current function value', buffer.getvalue())

    def test_fit_output_to_file(self):
        """A path as fit_output appends the optimizer output to that file."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = os.path.join(temp_dir, 'fit.log')
            regression_imp('m1 ~ x1 + x2', data=df, mod_cat=True, fit_output=log_path)

            with open(log_path) as f:
                self.assertIn('Current function value', f.read())

    def test_robust_numeric(self):
        """Robust fitting imputes numeric targets despite an outlier."""
        df = self.df.copy()
        df.loc[1, 'y'] = 500.0
        df.loc[self.missing_rows, 'y'] = np.nan

        imputer = RegressionImputer('y ~ x1 + x2', robust=True)
        result = imputer.impute(df)

        self.assertEqual(result['y'].isnull().sum(), 0)
        self.assertEqual(imputer.colsummary['y']['model'], 'rlm')
        truth = 3 + self.df.loc[self.missing_rows, 'x1'] - 2 * self.df.loc[self.missing_rows, 'x2']
        self.assertLess(np.max(np.abs(result.loc[self.missing_rows, 'y'] - truth)), 5.0)

    def test_robust_binary(self):
        """Robust fitting is available for two-level targets."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'b1'] = np.nan

        imputer = RegressionImputer('b1 ~ x1 + x2', robust=True, mod_cat=True)
        result = imputer.impute(df)

        self.assertEqual(result['b1'].isnull().sum(), 0)
        self.assertEqual(imputer.colsummary['b1']['model'], 'robust_glm(Binomial)')

    def test_robust_multinomial_is_unsupported(self):
        """There is no robust model for multi-level targets."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        with self.assertRaises(UnsupportedFamily):
            regression_imp('m1 ~ x1 + x2', data=df, robust=True)

        self.assertEqual(df['m1'].isnull().sum(), len(self.missing_rows))
        self.assertNotIn('m1_imp', df.columns)

    def test_explicit_gaussian_family(self):
        """A Gaussian GLM reproduces ordinary least squares predictions."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'y'] = np.nan
        ols = smf.ols('y ~ x1 + x2', data=df.dropna()).fit()
        expected = ols.predict(df.loc[self.missing_rows])

        imputer = RegressionImputer('y ~ x1 + x2', family=sm.families.Gaussian())
        result = imputer.impute(df)

        np.testing.assert_allclose(result.loc[self.missing_rows, 'y'], expected, rtol=1e-6)
        self.assertEqual(imputer.colsummary['y']['model'], 'glm(Gaussian)')

    def test_explicit_family_class(self):
        """A family class is instantiated."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'b1'] = np.nan

        result = regression_imp('b1 ~ x1 + x2', data=df, family=sm.families.Binomial, mod_cat=True)

        self.assertEqual(result['b1'].isnull().sum(), 0)

    def test_explicit_family_on_multilevel_target(self):
        """Explicit families cannot model multi-level targets."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'm1'] = np.nan

        with self.assertRaises(UnsupportedFamily):
            regression_imp('m1 ~ x1 + x2', data=df, family=sm.families.Binomial())

    def test_invalid_family(self):
        """Families must be 'AUTO' or statsmodels families."""
        for family in ['gaussian', 'auto', 3, None]:
            with self.subTest(family=family):
                with self.assertRaises(UnsupportedFamily):
                    regression_imp('y ~ x1', data=self.df.copy(), family=family)

    def test_invalid_formula(self):
        """Bad formulas fail before any model is fitted."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'y'] = np.nan

        for formula in ['y ~ x1 + z', 'y x1', 'y ~ ', ' ~ x1', 'y ~ x1 ~ x2', 'y ~ y', 'y + x1 ~ x1']:
            with self.subTest(formula=formula):
                with mock.patch('autofillreg.imputer.imputer.fit_model') as fit:
                    with self.assertRaises(InvalidFormula):
                        regression_imp(formula, data=df)
                    fit.assert_not_called()

    def test_fit_failure_keeps_earlier_targets(self):
        """A failing fit raises ModelFitFailure after earlier targets were imputed."""
        df = self.df.copy()
        df['y2'] = df['y'] * 2
        df.loc[self.missing_rows, 'y'] = np.nan
        df.loc[[2, 3], 'y2'] = np.nan
        real_ols = smf.ols

        def failing_ols(formula, data=None, *args, **kwargs):
            if formula.startswith('y2'):
                raise np.linalg.LinAlgError('Singular matrix')
            return real_ols(formula, data, *args, **kwargs)

        with mock.patch('autofillreg.imputer.backend.smf.ols', side_effect=failing_ols):
            with self.assertRaises(ModelFitFailure) as ctx:
                regression_imp('y + y2 ~ x1 + x2', data=df)

        self.assertIsInstance(ctx.exception.__cause__, np.linalg.LinAlgError)
        self.assertEqual(df['y'].isnull().sum(), 0)
        self.assertIn('y_imp', df.columns)
        self.assertEqual(df['y2'].isnull().sum(), 2)
        self.assertNotIn('y2_imp', df.columns)

    def test_existing_status_column_is_overwritten(self):
        """An existing status column is coerced to bool and overwritten."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'y'] = np.nan
        df['y_imp'] = 0

        with self.assertLogs('autofillreg', level='WARNING') as logs:
            result = regression_imp('y ~ x1 + x2', data=df)

        self.assertEqual(result['y_imp'].dtype, bool)
        self.assertEqual(list(result.index[result['y_imp']]), self.missing_rows)
        self.assertTrue(any('y_imp' in line for line in logs.output))

    def test_status_column_options(self):
        """imp_suffix renames the status column, imp_var=False drops it."""
        df = self.df.copy()
        df.loc[self.missing_rows, 'y'] = np.nan

        result = regression_imp('y ~ x1 + x2', data=df.copy(), imp_suffix='flag')
        self.assertIn('y_flag', result.columns)
        self.assertNotIn('y_imp', result.columns)

        result = regression_imp('y ~ x1 + x2', data=df.copy(), imp_var=False)
        self.assertEqual(list(result.columns), list(df.columns))
        self.assertEqual(result['y'].isnull().sum(), 0)

    def test_sampling_follows_predicted_probability(self):
        """Sampled binary values are 'yes' about as often as predicted."""
        df = self.df.copy()
        df.loc[7, 'b1'] = np.nan

        fit_data = df.drop(index=7).assign(b1=lambda d: (d['b1'] == 'yes').astype(float))
        model = smf.glm('b1 ~ x1 + x2', data=fit_data, family=sm.families.Binomial()).fit()
        probability = float(np.asarray(model.predict(df.loc[[7]]))[0])

        imputations = multiple_imputation('b1 ~ x1 + x2', df, n_imputations=300, random_state=0)
        frequency = np.mean([imp.loc[7, 'b1'] == 'yes' for imp in imputations])

        self.assertTrue(pd.isnull(df.loc[7, 'b1']))
        self.assertAlmostEqual(frequency, probability, delta=0.1)


if __name__ == '__main__':
    unittest.main(verbosity=2)
