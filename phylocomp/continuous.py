"""
Models of continuous trait evolution on a phylogeny. All models are
multivariate normal with covariance sigma^2 V(theta) where V is derived from
the phylogenetic variance-covariance matrix of the tips. The root state z0
and (without measurement error) the rate sigma^2 have closed form maximum
likelihood estimates given V, the model parameter theta is optimized
numerically.
"""
import numpy as np
import pandas as pd
from scipy.linalg import cho_factor, cho_solve
from scipy.optimize import minimize, minimize_scalar
from phylocomp import config as pcconf
from phylocomp import MissingDataError, UnknownMethodError
from .tree_utils import prepare_tree, vcv, tip_order
from .utils import aic, aicc, default_logger, likelihood_ratio_test

continuous_models = ['BM', 'OU', 'EB', 'lambda', 'kappa', 'delta', 'white']
model_parameter = {'OU':'alpha', 'EB':'a', 'lambda':'lambda', 'kappa':'kappa', 'delta':'delta'}
# parameters optimized on log scale
log_scale_parameters = ['OU']


def default_bounds(model, height):
    """bounds of the model parameter given the height of the tree"""
    if model=='OU':
        return (pcconf.OU_MIN_ALPHA, pcconf.OU_MAX_ALPHA/height)
    elif model=='EB':
        return (np.log(pcconf.EB_MIN_RATE_FRACTION)/height, pcconf.EB_MAX_A)
    elif model=='lambda':
        return pcconf.LAMBDA_BOUNDS
    elif model=='kappa':
        return pcconf.KAPPA_BOUNDS
    elif model=='delta':
        return pcconf.DELTA_BOUNDS
    return None


def transform_vcv(tree, lambda_=1.0, kappa=1.0, delta=1.0, C=None):
    """
    Apply Pagel's branch length transformations to the phylogenetic
    covariance. kappa raises each branch length to a power, delta raises
    node depths to a power (keeping the height of the tree), and lambda
    scales the covariances between tips.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree
     lambda_, kappa, delta : float
        transformation parameters, 1.0 leaves the covariance unchanged
     C : numpy.array, optional
        untransformed covariance matrix of the tree if already computed

    Returns
    -------
    numpy.array
    """
    if kappa!=1.0:
        C = vcv(tree, branch_value=lambda n:n.branch_length**kappa if n.branch_length>0 else 0.0).values
    elif C is None:
        C = vcv(tree).values
    else:
        C = np.array(C, dtype=float)

    if delta!=1.0:
        height = np.diag(C).max()
        C = height*(C/height)**delta

    if lambda_!=1.0:
        diag = np.diag(C).copy()
        C = C*lambda_
        np.fill_diagonal(C, diag)
    return C


def model_vcv(model, C, theta=None, tree=None):
    """
    Covariance matrix (in units of sigma^2) of the tip values under a given model.

    Parameters
    ----------
     model : str
        one of 'BM', 'OU', 'EB', 'lambda', 'kappa', 'delta', 'white'
     C : numpy.array
        phylogenetic variance-covariance matrix
     theta : float
        model parameter (alpha, a, lambda, kappa or delta)
     tree : Bio.Phylo.BaseTree.Tree
        required for kappa which transforms individual branches
    """
    if model=='BM':
        return C
    elif model=='OU':
        # OU process with fixed root state, t_i are root-to-tip distances
        t = np.diag(C)
        if theta<pcconf.TINY_NUMBER:
            return C
        return np.exp(-theta*(t[:,None] + t[None,:] - 2*C))*(-np.expm1(-2*theta*C))/(2*theta)
    elif model=='EB':
        if abs(theta)<pcconf.TINY_NUMBER:
            return C
        return np.expm1(theta*C)/theta
    elif model=='lambda':
        return transform_vcv(tree, lambda_=theta, C=C)
    elif model=='kappa':
        return transform_vcv(tree, kappa=theta, C=C)
    elif model=='delta':
        return transform_vcv(tree, delta=theta, C=C)
    elif model=='white':
        return np.eye(C.shape[0])
    raise UnknownMethodError("model_vcv: unknown model '%s', valid choices are %s"%(model, ", ".join(continuous_models)))


def continuous_loglik(V, x, se2=None, sigsq=None):
    """
    log-likelihood of tip values under a multivariate normal model with
    covariance sigsq*V + diag(se2). The root state is set to its generalized
    least squares estimate. Without measurement error, sigsq is set to its
    maximum likelihood estimate unless specified.

    Parameters
    ----------
     V : numpy.array
        covariance matrix in units of sigsq
     x : numpy.array
        tip values
     se2 : numpy.array, optional
        squared standard errors of the tip values
     sigsq : float, optional
        rate of evolution, required if se2 is given

    Returns
    -------
    tuple
        log-likelihood, root state, sigsq
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    if se2 is not None:
        if sigsq is None:
            raise ValueError("continuous_loglik: sigsq needs to be specified with measurement error")
        W = sigsq*V + np.diag(se2)
        scale = 1.0
    else:
        W = V
    cho = cho_factor(W, lower=True)
    ones = np.ones(n)
    z0 = ones.dot(cho_solve(cho, x))/ones.dot(cho_solve(cho, ones))
    r = x - z0
    quad = r.dot(cho_solve(cho, r))
    logdet = 2.0*np.sum(np.log(np.diag(cho[0])))
    if se2 is None:
        if sigsq is None:
            sigsq = max(quad/n, pcconf.MIN_SIGSQ)
        scale = sigsq
        logdet += n*np.log(sigsq)
    lnL = -0.5*(n*np.log(2*np.pi) + logdet + quad/scale)
    return lnL, z0, sigsq


def _prepare_continuous_data(tree, trait, se=None):
    from .treedata import TreeData
    if isinstance(tree, TreeData):
        if isinstance(trait, str):
            trait = tree.trait(trait, numeric=True)
        if isinstance(se, str):
            se = tree.trait(se, numeric=True)
        tree = tree.tree
    prepare_tree(tree)
    names = tip_order(tree)

    def align(values, label):
        values = pd.Series(values, dtype=object) if isinstance(values, dict) else pd.Series(values)
        values.index = values.index.astype(str)
        missing = [n for n in names if n not in values.index]
        if missing:
            raise MissingDataError("continuous: no %s for taxa: "%label + ", ".join(missing))
        values = pd.to_numeric(values.loc[names], errors='coerce')
        if values.isna().any():
            raise MissingDataError("continuous: non-numeric or missing %s for taxa: "%label
                                   + ", ".join(values.index[values.isna()]))
        return values.values.astype(float)

    x = align(trait, 'trait values')
    se2 = align(se, 'standard errors')**2 if se is not None else None
    return tree, names, x, se2


class ContinuousFit(object):
    """
    Result of a maximum likelihood fit of a continuous trait model.
    """

    def __init__(self, model, params, lnL, k, n, optimizer=None, bounds=None):
        self.model = model
        self.params = params
        self.lnL = lnL
        self.k = k
        self.n = n
        self.optimizer = optimizer or {}
        self.bounds = bounds
        self.aic = aic(lnL, k)
        self.aicc = aicc(lnL, k, n)

    @property
    def sigsq(self):
        return self.params['sigsq']

    @property
    def z0(self):
        return self.params['z0']

    def at_bound(self, rel_tol=1e-3):
        """check whether the model parameter was estimated at the boundary of its range"""
        if self.model not in model_parameter or self.bounds is None:
            return False
        theta = self.params[model_parameter[self.model]]
        lower, upper = self.bounds
        span = max(abs(upper - lower), pcconf.TINY_NUMBER)
        return abs(theta - lower)/span<rel_tol or abs(upper - theta)/span<rel_tol

    def __str__(self):
        outstr = "Continuous trait model '%s'\n"%self.model
        for p, v in self.params.items():
            outstr += ' --%s:\t%1.4e\n'%(p, v)
        outstr += " --lnL:\t%1.4f\n --k:\t%d\n --AIC:\t%1.4f\n --AICc:\t%1.4f\n"%(self.lnL, self.k, self.aic, self.aicc)
        return outstr


def _bounded_scalar_optimum(func, bounds, log_scale=False, n_grid=12):
    """
    Minimize a function of one variable on an interval: evaluate it on a grid,
    refine around the best grid point, and compare with the boundaries.
    Returns (x, f(x), success).
    """
    lower, upper = bounds
    if log_scale:
        tf = lambda y:np.exp(y)
        lower, upper = np.log(lower), np.log(upper)
    else:
        tf = lambda y:y
    f = lambda y:func(tf(y))

    grid = np.linspace(lower, upper, n_grid)
    values = np.array([f(y) for y in grid])
    ii = np.argmin(values)
    best_x, best_f, success = grid[ii], values[ii], True
    bracket = (grid[max(0, ii-1)], grid[min(n_grid-1, ii+1)])
    sol = minimize_scalar(f, bounds=bracket, method='bounded')
    if sol.success and sol.fun<=best_f:
        best_x, best_f = sol.x, sol.fun
    elif not sol.success:
        success = False
    return float(np.clip(tf(best_x), *bounds)), best_f, success


def fit_continuous(tree, trait, model='BM', se=None, bounds=None, logger=None):
    """
    Fit a model of continuous trait evolution by maximum likelihood.

    Parameters
    ----------
    tree : Bio.Phylo.BaseTree.Tree, TreeData
        tree with branch lengths, or a TreeData object
    trait : dict, pandas.Series, str
        trait values of the tips, or the name of a column when a TreeData is passed
    model : str
        'BM' (Brownian motion), 'OU' (Ornstein-Uhlenbeck with fixed root),
        'EB' (early burst), 'lambda', 'kappa', 'delta' (Pagel's tree
        transformations) or 'white' (white noise, no phylogenetic structure)
    se : dict, pandas.Series, str, optional
        standard errors of the tip values (measurement error)
    bounds : tuple, optional
        bounds for the model parameter, defaults depend on the tree height
    logger : callable, optional
        function with arguments (msg, level, warn=False)

    Returns
    -------
    ContinuousFit
        with params sigsq, z0 and the model parameter

    Raises
    ------
    UnknownMethodError
        for unknown models
    MissingDataError
        if trait values are missing or non-numeric
    """
    logger = logger or default_logger
    if model not in continuous_models:
        raise UnknownMethodError("fit_continuous: unknown model '%s', valid choices are %s"
                                 %(model, ", ".join(continuous_models)))
    tree, names, x, se2 = _prepare_continuous_data(tree, trait, se=se)
    n = len(x)
    C = vcv(tree).values
    height = np.diag(C).max()
    if height<=0:
        raise MissingDataError("fit_continuous: tree has no branch lengths")
    param = model_parameter.get(model)
    bounds = (bounds or default_bounds(model, height)) if param else None
    k = 3 if param else 2

    def profile_neg_loglik(theta, sigsq=None):
        try:
            V = model_vcv(model, C, theta, tree)
            return -continuous_loglik(V, x, se2=se2, sigsq=sigsq)[0]
        except (np.linalg.LinAlgError, ValueError, FloatingPointError):
            return pcconf.BIG_NUMBER

    optimizer = {'success': True}
    theta = None
    if param and se2 is None:
        theta, fval, success = _bounded_scalar_optimum(profile_neg_loglik, bounds,
                                                       log_scale=model in log_scale_parameters)
        optimizer = {'success': success}
    elif se2 is not None:
        # measurement error: sigsq no longer has a closed form and is optimized jointly
        V0 = model_vcv('BM', C)
        sigsq0 = continuous_loglik(V0, x)[2]
        x0 = [np.log(sigsq0)]
        opt_bounds = [(np.log(pcconf.MIN_SIGSQ), np.log(sigsq0)+20)]
        if param:
            lower, upper = bounds
            if model in log_scale_parameters:
                x0.append(0.5*(np.log(lower)+np.log(upper)))
                opt_bounds.append((np.log(lower), np.log(upper)))
            else:
                x0.append(0.5*(lower+upper))
                opt_bounds.append((lower, upper))

        def neg_loglik(p):
            th = None
            if param:
                th = np.exp(p[1]) if model in log_scale_parameters else p[1]
            return profile_neg_loglik(th, sigsq=np.exp(p[0]))

        sol = minimize(neg_loglik, np.array(x0), method='L-BFGS-B', bounds=opt_bounds)
        optimizer = {'success': bool(sol.success), 'message': str(sol.message), 'nfev': int(sol.nfev)}
        if param:
            theta = np.exp(sol.x[1]) if model in log_scale_parameters else sol.x[1]
            theta = float(np.clip(theta, *bounds))
        sigsq_fixed = np.exp(sol.x[0])

    V = model_vcv(model, C, theta, tree)
    if se2 is None:
        lnL, z0, sigsq = continuous_loglik(V, x)
    else:
        lnL, z0, sigsq = continuous_loglik(V, x, se2=se2, sigsq=sigsq_fixed)

    if not optimizer['success']:
        logger("***WARNING: fit_continuous: optimization of model %s did not converge"%model, 1, warn=True)

    params = {'sigsq': float(sigsq), 'z0': float(z0)}
    if param:
        params[param] = float(theta)
    fit = ContinuousFit(model, params, float(lnL), k, n, optimizer=optimizer, bounds=bounds)
    if fit.at_bound():
        logger("***WARNING: fit_continuous: parameter %s of model %s was estimated at the bounds of"
               " its range %s. Consider changing the bounds."%(param, model, str(bounds)), 2, warn=True)
    logger("fit_continuous: model %s, lnL=%1.4f, AICc=%1.4f"%(model, fit.lnL, fit.aicc), 1)
    return fit


def blombergs_k(C, x):
    """Blomberg's K statistic of phylogenetic signal"""
    n = len(x)
    cho = cho_factor(C, lower=True)
    ones = np.ones(n)
    sum_invC = ones.dot(cho_solve(cho, ones))
    a = ones.dot(cho_solve(cho, x))/sum_invC
    r = x - a
    observed_ratio = r.dot(r)/r.dot(cho_solve(cho, r))
    expected_ratio = (np.trace(C) - n/sum_invC)/(n-1)
    return observed_ratio/expected_ratio


def phylo_signal(tree, trait, method='lambda', nsim=pcconf.N_SIM, rng_seed=None, logger=None):
    """
    Quantify phylogenetic signal in a continuous trait.

    Parameters
    ----------
    tree : Bio.Phylo.BaseTree.Tree, TreeData
    trait : dict, pandas.Series, str
        trait values, or a column name when a TreeData is passed
    method : str
        'lambda' estimates Pagel's lambda and tests it against lambda=0 with a
        likelihood ratio test. 'K' calculates Blomberg's K and a p-value from
        randomly shuffling the values across tips.
    nsim : int
        number of permutations for 'K'
    rng_seed : int, optional
        seed of the permutations

    Returns
    -------
    dict
    """
    logger = logger or default_logger
    if method=='lambda':
        fit = fit_continuous(tree, trait, model='lambda', logger=logger)
        tree, names, x, se2 = _prepare_continuous_data(tree, trait)
        C = vcv(tree).values
        lnL0 = continuous_loglik(model_vcv('lambda', C, 0.0, tree), x)[0]
        statistic, pval = likelihood_ratio_test(lnL0, fit.lnL, df=1)
        return {'method':'lambda', 'lambda':fit.params['lambda'], 'lnL':fit.lnL,
                'lnL0':lnL0, 'statistic':statistic, 'p_value':pval}
    elif method=='K':
        tree, names, x, se2 = _prepare_continuous_data(tree, trait)
        C = vcv(tree).values
        K = blombergs_k(C, x)
        rng = np.random.default_rng(rng_seed)
        sim = np.array([blombergs_k(C, rng.permutation(x)) for i in range(nsim)])
        pval = (1.0 + np.sum(sim>=K))/(nsim + 1.0)
        logger("phylo_signal: Blomberg's K=%1.4f, p=%1.4f"%(K, pval), 2)
        return {'method':'K', 'K':K, 'p_value':pval, 'nsim':nsim}
    raise UnknownMethodError("phylo_signal: unknown method '%s', valid choices are 'lambda' and 'K'"%method)


def ancestral_states_bm(tree, trait):
    """
    Maximum likelihood estimates of ancestral states under Brownian motion,
    i.e. the expectation of the values at internal nodes conditional on the
    tip values with the root state set to its GLS estimate.

    Parameters
    ----------
    tree : Bio.Phylo.BaseTree.Tree, TreeData
    trait : dict, pandas.Series, str

    Returns
    -------
    pandas.Series
        values of all nodes (internal nodes in preorder followed by tips) indexed by name
    """
    tree, names, x, se2 = _prepare_continuous_data(tree, trait)
    nodes = tree.get_nonterminals(order='preorder')
    all_nodes = nodes + tree.get_terminals()
    node_index = {n:i for i,n in enumerate(all_nodes)}
    for n in tree.find_clades(order='postorder'):
        n._all = np.concatenate([[node_index[n]]] + [c._all for c in n]).astype(int)
    # covariance among all nodes: shared path length from the root
    M = np.zeros((len(all_nodes), len(all_nodes)))
    for n in tree.find_clades():
        if n==tree.root:
            continue
        M[np.ix_(n._all, n._all)] += n.branch_length

    n_int = len(nodes)
    C_tt = M[n_int:, n_int:]
    C_at = M[:n_int, n_int:]
    lnL, z0, sigsq = continuous_loglik(C_tt, x)
    cho = cho_factor(C_tt, lower=True)
    anc = z0 + C_at.dot(cho_solve(cho, x - z0))
    return pd.Series(np.concatenate([anc, x]), index=[n.name for n in all_nodes])
