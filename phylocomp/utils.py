import numpy as np
import pandas as pd
from scipy import stats
from phylocomp import config as pcconf


def default_logger(*args, **kwargs):
    """standard logging function if none provided"""
    if pcconf.DEBUG:
        print(*args)


def aic(lnL, k):
    """Akaike information criterion"""
    return 2.0*k - 2.0*lnL


def aicc(lnL, k, n):
    """
    small sample corrected Akaike information criterion. Infinite if the
    number of observations does not exceed the number of parameters plus one.
    """
    if n - k - 1 <= 0:
        return np.inf
    return aic(lnL, k) + 2.0*k*(k+1.0)/(n - k - 1.0)


def likelihood_ratio_test(lnL0, lnL1, df=1):
    """
    likelihood ratio test of a nested null model (lnL0) against an
    alternative (lnL1) with df additional parameters.

    Returns
    -------
    tuple
        test statistic and p-value
    """
    statistic = max(0.0, 2.0*(lnL1 - lnL0))
    return statistic, stats.chi2.sf(statistic, df)


def compare_models(fits, logger=None):
    """
    Tabulate a set of model fits ranked by AICc.

    Parameters
    ----------
     fits : dict, list
        dictionary name->fit or list of fits. Each fit needs attributes
        lnL, k, aic and aicc. Fits in a list are named by their model
        attribute, with the position in the list appended to names that
        occur more than once.
     logger : callable, optional
        function with arguments (msg, level, warn=False)

    Returns
    -------
    pandas.DataFrame
        columns lnL, k, AIC, AICc, dAICc and weight (Akaike weights), sorted
        by AICc. If AICc is infinite for any model (too few observations),
        models are ranked by AIC instead and the difference column is dAIC.
    """
    logger = logger or default_logger
    if not isinstance(fits, dict):
        fits = list(fits)
        names = [str(f.model) for f in fits]
        names = [n if names.count(n)==1 else "%s_%d"%(n, i) for i, n in enumerate(names)]
        fits = dict(zip(names, fits))
    if len(fits)==0:
        raise ValueError("compare_models: no fits to compare")

    table = pd.DataFrame({'lnL': [f.lnL for f in fits.values()],
                          'k': [f.k for f in fits.values()],
                          'AIC': [f.aic for f in fits.values()],
                          'AICc': [f.aicc for f in fits.values()]},
                         index=list(fits.keys()))
    criterion = 'AICc'
    if not np.isfinite(table['AICc']).all():
        criterion = 'AIC'
        logger("***WARNING: compare_models: AICc is undefined for models with as many parameters"
               " as observations, models are ranked by AIC", 1, warn=True)
    delta = 'd'+criterion
    table[delta] = table[criterion] - table[criterion].min()
    rel_lh = np.exp(-0.5*table[delta])
    table['weight'] = rel_lh/rel_lh.sum()
    return table.sort_values(delta)
