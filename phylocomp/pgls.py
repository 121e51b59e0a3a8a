import numpy as np
import statsmodels.formula.api as smf
from scipy.optimize import minimize
from phylocomp import config as pcconf
from phylocomp import MissingDataError, PhyloCompUnknownError
from .treedata import TreeData
from .continuous import transform_vcv
from .tree_utils import vcv
from .utils import default_logger

branch_parameters = ['lambda', 'kappa', 'delta']
parameter_bounds = {'lambda': pcconf.PGLS_LAMBDA_BOUNDS,
                    'kappa': pcconf.PGLS_KAPPA_BOUNDS,
                    'delta': pcconf.PGLS_DELTA_BOUNDS}


class PGLSResult(object):
    """
    Result of a phylogenetic generalized least squares regression. Wraps
    the statsmodels regression results and the branch length parameters
    used to construct the residual covariance.
    """

    def __init__(self, formula, results, branch_params, estimated, tree, optimizer=None):
        self.formula = formula
        self.results = results
        self.branch_params = branch_params
        self.estimated = estimated
        self.tree = tree
        self.optimizer = optimizer or {}

    @property
    def params(self):
        return self.results.params

    @property
    def bse(self):
        return self.results.bse

    @property
    def pvalues(self):
        return self.results.pvalues

    @property
    def rsquared(self):
        return self.results.rsquared

    @property
    def lnL(self):
        return self.results.llf

    @property
    def n(self):
        return int(self.results.nobs)

    @property
    def k(self):
        # regression coefficients, residual variance and estimated branch parameters
        return len(self.results.params) + 1 + len(self.estimated)

    @property
    def aic(self):
        return 2.0*self.k - 2.0*self.lnL

    def summary(self):
        """statsmodels summary table with the branch length parameters as title"""
        title = "PGLS " + ", ".join(["%s=%1.3f%s"%(p, v, ' (ML)' if p in self.estimated else '')
                                     for p,v in self.branch_params.items()])
        return self.results.summary(title=title)

    def __str__(self):
        return str(self.summary())


def _gls(formula, data, C):
    return smf.gls(formula, data=data, sigma=C).fit()


def pgls(formula, data, tree=None, name_column=None, lambda_=1.0, kappa=1.0, delta=1.0, logger=None):
    """
    Phylogenetic generalized least squares regression.

    Parameters
    ----------
    formula : str
        regression formula such as 'log_mass ~ log_length'
    data : TreeData, pandas.DataFrame
        trait data. If a DataFrame is passed, the tree is required.
    tree : str, Bio.Phylo.BaseTree.Tree, optional
        tree (or file, URL) to match the data frame to
    name_column : str, optional
        column with taxon names in the data frame
    lambda_, kappa, delta : float, str
        branch length transformations. Set to 'ML' to estimate the parameter
        by maximum likelihood.
    logger : callable, optional

    Returns
    -------
    PGLSResult

    Raises
    ------
    MissingDataError
        if the data frame is given without a tree or too few complete rows remain
    """
    logger = logger or default_logger
    if not isinstance(data, TreeData):
        if tree is None:
            raise MissingDataError("pgls: a tree is required when data is passed as a table")
        data = TreeData(tree, data, name_column=name_column, verbose=0)

    # restrict to taxa with complete data for the variables in the formula
    ols = smf.ols(formula, data=data.data)
    rows = list(ols.data.row_labels)
    if len(rows)<len(data):
        logger("pgls: %d taxa with missing data were removed"%(len(data)-len(rows)), 2, warn=True)
        data = TreeData(data.tree, data.data.loc[rows].reset_index(), name_column=data.name_column, verbose=0)
    if len(data) <= len(ols.exog_names)+1:
        raise MissingDataError("pgls: not enough taxa (%d) to fit %d coefficients"%(len(data), len(ols.exog_names)))

    tree = data.tree
    df = data.data
    C = vcv(tree).values
    fixed = {}
    estimated = []
    for p, value in zip(branch_parameters, [lambda_, kappa, delta]):
        if isinstance(value, str):
            if value.upper()!='ML':
                raise ValueError("pgls: %s must be a number or 'ML', got '%s'"%(p, value))
            estimated.append(p)
        else:
            fixed[p] = float(value)

    def covariance(values):
        params = dict(fixed)
        params.update(values)
        return transform_vcv(tree, lambda_=params['lambda'], kappa=params['kappa'],
                             delta=params['delta'], C=C)

    optimizer = {}
    if estimated:
        def neg_loglik(x):
            try:
                return -_gls(formula, df, covariance(dict(zip(estimated, x)))).llf
            except (np.linalg.LinAlgError, ValueError):
                return pcconf.BIG_NUMBER

        bounds = [parameter_bounds[p] for p in estimated]
        x0 = np.array([0.5*(lower+upper) if p!='lambda' else upper*0.9 for p,(lower, upper) in zip(estimated, bounds)])
        sol = minimize(neg_loglik, x0, method='L-BFGS-B', bounds=bounds)
        if not np.isfinite(sol.fun) or sol.fun>=pcconf.BIG_NUMBER:
            raise PhyloCompUnknownError("pgls: maximum likelihood estimation of %s failed"%(", ".join(estimated)))
        # the bounds are often optimal, compare with the values at the bounds explicitly
        best_x, best_f = sol.x, sol.fun
        for p_i in range(len(estimated)):
            for b in bounds[p_i]:
                x = np.array(best_x)
                x[p_i] = b
                f = neg_loglik(x)
                if f<best_f:
                    best_x, best_f = x, f
        optimizer = {'success': bool(sol.success), 'message': str(sol.message), 'nfev': int(sol.nfev)}
        if not sol.success:
            logger("***WARNING: pgls: optimization of %s did not converge: %s"%(", ".join(estimated), sol.message), 1, warn=True)
        ml_values = dict(zip(estimated, [float(v) for v in best_x]))
    else:
        ml_values = {}

    branch_params = dict(fixed)
    branch_params.update(ml_values)
    branch_params = {p:branch_params[p] for p in branch_parameters}
    results = _gls(formula, df, covariance(ml_values))
    logger("pgls: %s with %s, lnL=%1.4f"%(formula, str(branch_params), results.llf), 1)
    return PGLSResult(formula, results, branch_params, estimated, tree, optimizer=optimizer)
