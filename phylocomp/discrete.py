import numpy as np
import pandas as pd
from scipy.linalg import expm
from scipy.optimize import minimize
from phylocomp import config as pcconf
from phylocomp import MissingDataError, UnknownMethodError, NotReadyError
from .tree_utils import prepare_tree
from .utils import aic, aicc, default_logger

standard_models = ['ER', 'SYM', 'ARD']
root_priors = ['flat', 'stationary', 'obs']


def model_index(n_states, model='ER'):
    """
    Build the integer matrix that assigns a rate parameter to each transition.
    Entry 0 marks forbidden transitions (and the diagonal), entry k>0 means
    the transition rate is the k-th free parameter.

    Parameters
    ----------
     n_states : int
        number of discrete states

     model : str, numpy.array
        'ER' (equal rates), 'SYM' (symmetric rates), 'ARD' (all rates
        different) or a custom n_states x n_states integer matrix.

    Returns
    -------
    numpy.array
        index matrix with parameters numbered 1..k
    """
    if isinstance(model, str):
        if model=='ER':
            idx = np.ones((n_states, n_states), dtype=int)
        elif model=='SYM':
            idx = np.zeros((n_states, n_states), dtype=int)
            rows, cols = np.triu_indices(n_states, k=1)
            idx[rows, cols] = np.arange(1, len(rows)+1)
            idx = idx + idx.T
        elif model=='ARD':
            idx = np.zeros((n_states, n_states), dtype=int)
            off_diag = ~np.eye(n_states, dtype=bool)
            idx[off_diag] = np.arange(1, off_diag.sum()+1)
        else:
            raise UnknownMethodError("model_index: unknown model '%s', valid choices are %s or an index matrix"
                                     %(model, ", ".join(standard_models)))
    else:
        idx = np.array(model, dtype=int)
        if idx.shape!=(n_states, n_states):
            raise ValueError("model_index: index matrix of shape %s does not match %d states"%(str(idx.shape), n_states))
        if (idx<0).any():
            raise ValueError("model_index: negative entries in index matrix")
        # renumber parameters consecutively
        used = sorted(set(idx[idx>0]))
        renumber = {v:i+1 for i,v in enumerate(used)}
        idx = np.vectorize(lambda x:renumber.get(x,0))(idx)
    np.fill_diagonal(idx, 0)
    return idx


class MkModel(object):
    """
    Continuous-time Markov model of discrete character evolution (Mk model).
    The rate matrix Q follows the convention Q[i,j] = rate from state i to
    state j with rows summing to zero, hence P(t)=exp(Qt) has rows that are
    probability distributions over the end state.
    """

    def __init__(self, states, Q, logger=None):
        """
        Parameters
        ----------
         states : list
            names of the discrete states
         Q : numpy.array
            rate matrix. The diagonal is recomputed from the off-diagonal entries.
         logger : callable, optional
            logging function with arguments (msg, level, warn=False)
        """
        self.states = np.array(states)
        self.n_states = len(self.states)
        self.logger = logger or default_logger
        Q = np.array(Q, dtype=float)
        if Q.shape!=(self.n_states, self.n_states):
            raise ValueError("MkModel: rate matrix of shape %s does not match %d states"%(str(Q.shape), self.n_states))
        if (Q[~np.eye(self.n_states, dtype=bool)]<0).any():
            raise ValueError("MkModel: negative off-diagonal rates")
        np.fill_diagonal(Q, 0.0)
        np.fill_diagonal(Q, -Q.sum(axis=1))
        self._Q = Q


    @classmethod
    def from_rates(cls, states, rates, model='ER', **kwargs):
        """
        Create a model from a vector of rate parameters.

        Parameters
        ----------
         rates : array-like
            rate parameters, the k-th entry is used where the index matrix equals k
         model : str, numpy.array
            model type or index matrix as accepted by model_index
        """
        idx = model_index(len(states), model)
        rates = np.atleast_1d(np.array(rates, dtype=float))
        if len(rates)!=idx.max():
            raise ValueError("MkModel.from_rates: model requires %d rates, got %d"%(idx.max(), len(rates)))
        Q = np.zeros(idx.shape, dtype=float)
        Q[idx>0] = rates[idx[idx>0]-1]
        return cls(states, Q, **kwargs)


    @property
    def Q(self):
        return self._Q


    @property
    def rate_table(self):
        return pd.DataFrame(self._Q, index=self.states, columns=self.states)


    def expQt(self, t):
        '''
        Parameters
        ----------

         t : float
            Time to propagate

        Returns
        --------

         expQt : numpy.array
            Matrix exponential exp(Qt), entry [i,j] is P(j at time t | i at time 0)
        '''
        return np.maximum(0, expm(self._Q*t))


    def stationary(self):
        """
        stationary distribution pi of the chain, solving pi Q = 0 with sum(pi)=1
        """
        A = np.vstack([self._Q.T, np.ones(self.n_states)])
        b = np.zeros(self.n_states+1)
        b[-1] = 1.0
        pi = np.linalg.lstsq(A, b, rcond=None)[0]
        pi = np.maximum(pi, 0)
        return pi/pi.sum()


    def __str__(self):
        '''
        String representation of the Mk model for pretty printing
        '''
        Q_str = "Rates from i->j (Q_ij):\n"
        Q_str+='\t'+'\t'.join(map(str, self.states))+'\n'
        for a,Qi in zip(self.states, self._Q):
            Q_str+= '  '+str(a)+'\t'+'\t'.join([str(np.round(p,4)) for p in Qi])+'\n'
        return Q_str


def _prepare_discrete_data(tree, traits, states=None, logger=default_logger):
    """
    sort out states and assign a likelihood vector to each tip. Tips without
    data or with the missing state are compatible with all states.
    """
    from .treedata import TreeData
    if isinstance(tree, TreeData):
        if isinstance(traits, str):
            traits = tree.trait(traits, numeric=False)
        tree = tree.tree
    prepare_tree(tree)
    if isinstance(traits, pd.Series):
        traits = traits.to_dict()
    traits = {str(k):str(v) for k,v in traits.items()
              if v is not None and not (isinstance(v, float) and np.isnan(v))}
    tip_names = {l.name for l in tree.get_terminals()}
    not_in_tree = [k for k in traits if k not in tip_names]
    if not_in_tree:
        logger("discrete: %d taxa with traits are not in the tree and are ignored"%len(not_in_tree), 2, warn=True)

    observed = {v for k,v in traits.items() if k in tip_names and v!=pcconf.MISSING_STATE}
    if states is None:
        states = sorted(observed)
    else:
        states = list(states)
        unknown = observed - set(states)
        if unknown:
            raise MissingDataError("discrete: observed states not in the list of states: "+", ".join(sorted(unknown)))
    if len(states)<2:
        raise MissingDataError("discrete: only one or zero states found -- need at least two states to fit a model")

    state_index = {s:i for i,s in enumerate(states)}
    tip_partials = {}
    n_obs = 0
    for l in tree.get_terminals():
        v = traits.get(l.name, pcconf.MISSING_STATE)
        if v==pcconf.MISSING_STATE:
            tip_partials[l.name] = np.ones(len(states))
        else:
            tip_partials[l.name] = np.zeros(len(states))
            tip_partials[l.name][state_index[v]] = 1.0
            n_obs += 1
    logger("discrete: assigned discrete traits to %d out of %d taxa."%(n_obs, len(tip_partials)), 2)
    return tree, states, tip_partials, n_obs


def _postorder_pass(tree, model, tip_partials):
    """
    Felsenstein pruning: calculate for each node the likelihood of the data
    in its subtree conditional on its state. Partial likelihoods are stored
    rescaled, the log of the total scale factor is returned.
    Each non-root node also keeps the message it sends to its parent.
    """
    log_scale = 0.0
    for n in tree.find_clades(order='postorder'):
        if n.is_terminal():
            n._mk_partial = tip_partials[n.name]
            continue
        L = np.ones(model.n_states)
        for c in n:
            c._mk_Pt = model.expQt(c.branch_length)
            c._mk_msg = c._mk_Pt.dot(c._mk_partial)
            L *= c._mk_msg
        s = L.max()
        if s<=0:
            n._mk_partial = L
            return -np.inf
        n._mk_partial = L/s
        log_scale += np.log(s)
    return log_scale


def _root_distribution(model, root_partial, root_prior):
    if root_prior=='flat':
        return np.ones(model.n_states)/model.n_states
    elif root_prior=='stationary':
        return model.stationary()
    elif root_prior=='obs':
        return root_partial/root_partial.sum()
    else:
        raise UnknownMethodError("discrete: unknown root prior '%s', valid choices are %s"
                                 %(root_prior, ", ".join(root_priors)))


def _loglik(tree, model, tip_partials, root_prior):
    log_scale = _postorder_pass(tree, model, tip_partials)
    if not np.isfinite(log_scale):
        return pcconf.MIN_LOG
    root_partial = tree.root._mk_partial
    pi = _root_distribution(model, root_partial, root_prior)
    lh = pi.dot(root_partial)
    if lh<=0:
        return pcconf.MIN_LOG
    return np.log(lh) + log_scale


def discrete_loglik(tree, traits, Q, states=None, root_prior='flat'):
    """
    Log-likelihood of discrete tip states given a rate matrix.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree, TreeData
     traits : dict, pandas.Series, str
        states of the tips, or the name of a column if tree is a TreeData
     Q : numpy.array, MkModel
        rate matrix or model
     states : list, optional
        order of states in Q. Defaults to the sorted observed states.
     root_prior : str
        'flat', 'stationary' or 'obs'

    Returns
    -------
    float
    """
    if isinstance(Q, MkModel):
        states = list(Q.states) if states is None else states
    tree, states, tip_partials, n_obs = _prepare_discrete_data(tree, traits, states=states)
    model = Q if isinstance(Q, MkModel) else MkModel(states, Q)
    return _loglik(tree, model, tip_partials, root_prior)


def fitch_changes(tree, tip_partials):
    """
    minimal number of state changes on the tree (Fitch parsimony), used to
    initialize the rate optimization
    """
    changes = 0
    state_sets = {}
    for n in tree.find_clades(order='postorder'):
        if n.is_terminal():
            state_sets[n] = set(np.where(tip_partials[n.name]>0)[0])
            continue
        child_sets = [state_sets[c] for c in n]
        common = set.intersection(*child_sets)
        if common:
            state_sets[n] = common
        else:
            state_sets[n] = set.union(*child_sets)
            changes += 1
    return changes


class DiscreteFit(object):
    """
    Result of a maximum likelihood fit of an Mk model to discrete tip states.
    """

    def __init__(self, tree, tip_partials, states, model_name, index, mk_model,
                 lnL, n, root_prior, optimizer):
        self.tree = tree
        self._tip_partials = tip_partials
        self.states = list(states)
        self.model = model_name
        self.index = index
        self.Q = mk_model
        self.lnL = lnL
        self.k = int(index.max())
        self.n = n
        self.root_prior = root_prior
        self.optimizer = optimizer
        self.aic = aic(lnL, self.k)
        self.aicc = aicc(lnL, self.k, n)


    @property
    def rates(self):
        """estimated rate matrix as a table with rows 'from' and columns 'to'"""
        return self.Q.rate_table


    @property
    def params(self):
        rates = np.zeros(self.k)
        for ki in range(1, self.k+1):
            rates[ki-1] = self.Q.Q[self.index==ki][0]
        return {'q%d'%(ki+1):r for ki,r in enumerate(rates)}


    def ancestral_states(self, include_tips=False):
        """
        Marginal posterior probabilities of the states at the internal nodes.
        These are obtained by combining the partial likelihoods of the
        postorder pass with the likelihood of the rest of the tree propagated
        from the root towards the tips.

        Parameters
        ----------
         include_tips : bool
            also report the posterior at the tips, useful for tips with missing data

        Returns
        -------
        pandas.DataFrame
            node names as index, states as columns, rows sum to one
        """
        if self.Q is None:
            raise NotReadyError("DiscreteFit.ancestral_states: model has not been fitted")
        tree = self.tree
        log_scale = _postorder_pass(tree, self.Q, self._tip_partials)
        if not np.isfinite(log_scale):
            raise NotReadyError("DiscreteFit.ancestral_states: data have zero likelihood under the fitted model")
        tree.root._mk_outside = _root_distribution(self.Q, tree.root._mk_partial, self.root_prior)
        for n in tree.get_nonterminals(order='preorder'):
            for c in n:
                others = n._mk_outside.copy()
                for s in n:
                    if s is not c:
                        others *= s._mk_msg
                others /= others.sum()
                c._mk_outside = others.dot(c._mk_Pt)

        nodes = [n for n in tree.find_clades(order='preorder') if include_tips or not n.is_terminal()]
        marginal = np.array([n._mk_outside*n._mk_partial for n in nodes])
        marginal /= marginal.sum(axis=1)[:,None]
        return pd.DataFrame(marginal, index=[n.name for n in nodes], columns=self.states)


    def __str__(self):
        outstr = "Mk model '%s' (root prior: %s)\n"%(self.model if isinstance(self.model, str) else 'custom', self.root_prior)
        outstr += " --lnL:\t%1.4f\n --k:\t%d\n --AIC:\t%1.4f\n --AICc:\t%1.4f\n\n"%(self.lnL, self.k, self.aic, self.aicc)
        return outstr + str(self.Q)


def fit_discrete(tree, traits, model='ER', root_prior='flat', states=None,
                 n_starts=pcconf.N_STARTS, rng_seed=None, logger=None):
    """
    Fit an Mk model of discrete character evolution by maximum likelihood.

    Parameters
    ----------
    tree : Bio.Phylo.BaseTree.Tree, TreeData
        tree with branch lengths, or a TreeData object
    traits : dict, pandas.Series, str
        dictionary linking tip names to states, or the name of a column
        when a TreeData is passed. Missing data are coded as config.MISSING_STATE
    model : str, numpy.array
        'ER', 'SYM', 'ARD' or a custom index matrix (see model_index)
    root_prior : str
        'flat' (equal probabilities), 'stationary' (equilibrium of the
        model) or 'obs' (weighted by conditional likelihoods at the root)
    states : list, optional
        set of states to model, defaults to the observed states
    n_starts : int
        number of optimizations from different starting values
    rng_seed : int, optional
        seed for the random starting values
    logger : callable, optional
        function with arguments (msg, level, warn=False)

    Returns
    -------
    DiscreteFit

    Raises
    ------
    MissingDataError
        if fewer than two states are observed
    UnknownMethodError
        for unknown models or root priors
    """
    logger = logger or default_logger
    if root_prior not in root_priors:
        raise UnknownMethodError("fit_discrete: unknown root prior '%s', valid choices are %s"
                                 %(root_prior, ", ".join(root_priors)))
    tree, states, tip_partials, n_obs = _prepare_discrete_data(tree, traits, states=states, logger=logger)
    idx = model_index(len(states), model)
    k = idx.max()
    if k==0:
        raise ValueError("fit_discrete: the model has no free rate parameters")

    height = max(l.dist2root for l in tree.get_terminals())
    total_length = sum(n.branch_length for n in tree.find_clades() if n!=tree.root)
    if height<=0:
        raise MissingDataError("fit_discrete: tree has no branch lengths")
    bounds = [(np.log(pcconf.MK_MIN_RATE), np.log(pcconf.MK_MAX_RATE/height))]*k

    def neg_loglik(log_rates):
        mk = MkModel.from_rates(states, np.exp(log_rates), idx)
        return -_loglik(tree, mk, tip_partials, root_prior)

    rng = np.random.default_rng(rng_seed)
    q0 = max(1, fitch_changes(tree, tip_partials))/total_length
    starts = [np.full(k, np.log(q0))]
    for si in range(1, max(1, n_starts)):
        starts.append(np.log(q0) + rng.normal(0, 1, size=k))

    best = None
    for x0 in starts:
        x0 = np.clip(x0, bounds[0][0], bounds[0][1])
        sol = minimize(neg_loglik, x0, method='L-BFGS-B', bounds=bounds)
        logger("fit_discrete: start %s -> lnL=%1.4f (%s)"%(str(np.round(np.exp(x0),5)), -sol.fun, sol.message), 3)
        if best is None or sol.fun<best.fun:
            best = sol

    if not best.success:
        logger("***WARNING: fit_discrete: optimization of model %s did not converge: %s"%(str(model), best.message), 1, warn=True)

    mk = MkModel.from_rates(states, np.exp(best.x), idx, logger=logger)
    optimizer = {'success': bool(best.success), 'message': str(best.message),
                 'nfev': int(best.nfev), 'n_starts': len(starts)}
    fit = DiscreteFit(tree, tip_partials, states, model, idx, mk, -best.fun, n_obs, root_prior, optimizer)
    logger("fit_discrete: model %s, lnL=%1.4f, AICc=%1.4f"%(model if isinstance(model, str) else 'custom', fit.lnL, fit.aicc), 1)
    return fit
