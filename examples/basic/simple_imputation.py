"""
Simple imputation example showing basic usage of AutoFillReg.
"""
import pandas as pd
import numpy as np

from autofillreg import RegressionImputer, regression_imp, multiple_imputation
from autofillreg.utils import calculate_missingness_statistics

# Set random seed for reproducibility
np.random.seed(42)

def load_and_prepare_data(n_rows=200):
    """Create a dataset with numeric and categorical variables and add missing values."""
    x1 = np.random.normal(10, 2, n_rows)
    x2 = np.random.normal(50, 10, n_rows)
    logit = -8 + 0.5 * x1 + 0.05 * x2
    df_complete = pd.DataFrame({
        'x1': x1,
        'x2': x2,
        'income': 1000 + 150 * x1 + 20 * x2 + np.random.normal(0, 100, n_rows),
        'owner': pd.Categorical(
            np.where(np.random.rand(n_rows) < 1 / (1 + np.exp(-logit)), 'yes', 'no'),
            categories=['no', 'yes']
        ),
        'region': pd.Categorical(np.random.choice(['north', 'south', 'west'], n_rows))
    })

    # Introduce missingness artificially to demonstrate and evaluate the imputer.
    # In a real-world scenario, you would use your dataset that already has missing values.
    df_missing = df_complete.copy()
    for col in ['income', 'owner', 'region']:
        df_missing.loc[np.random.rand(n_rows) < 0.15, col] = np.nan
    df_missing.loc[np.random.rand(n_rows) < 0.05, 'x2'] = np.nan

    return df_missing, df_complete

def main():
    print("Loading and preparing example data...")
    df_missing, df_complete = load_and_prepare_data()

    missing_stats = calculate_missingness_statistics(df_missing)
    print("\nMissingness statistics:")
    for col, stats in missing_stats.items():
        print(f"{col}: {stats['count_missing']} missing values ({stats['percent_missing']:.1f}%)")

    print("\nImputing income, owner and region from x1 and x2...")
    imputer = RegressionImputer('income + owner + region ~ x1 + x2', mod_cat=True)
    df_imputed = imputer.impute(df_missing.copy())

    for col, summary in imputer.colsummary.items():
        print(f"{col}: {summary['model']}, imputed {summary['n_imputed']} of {summary['n_missing']} "
              f"({summary['n_remaining']} left because x2 is missing)")

    # Mean absolute error for the numeric variable
    mask = df_imputed['income_imp'] & df_imputed['income'].notnull()
    mae = np.abs(df_complete.loc[mask, 'income'] - df_imputed.loc[mask, 'income']).mean()
    print(f"\nMean absolute error for income: {mae:.1f}")

    # Accuracy for the categorical variables
    for col in ['owner', 'region']:
        mask = df_imputed[f'{col}_imp'] & df_imputed[col].notnull()
        accuracy = (df_complete.loc[mask, col] == df_imputed.loc[mask, col]).mean()
        print(f"Accuracy for {col}: {accuracy:.4f}")

    print("\nRobust regression for income...")
    df_robust = regression_imp('income ~ x1 + x2', data=df_missing.copy(), robust=True)
    print(df_robust.loc[df_robust['income_imp'], ['income', 'income_imp']].head())

    print("\nMultiple imputation with sampled categories...")
    imputations = multiple_imputation('owner ~ x1 + x2', df_missing, n_imputations=5, random_state=1)
    shares = [(imp['owner'] == 'yes').mean() for imp in imputations]
    print("Share of owners per imputation: " + ", ".join(f"{s:.3f}" for s in shares))

    print("\nExample complete!")

if __name__ == "__main__":
    main()
