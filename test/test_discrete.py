from io import StringIO
import numpy as np
import pytest
from Bio import Phylo


def get_tree(nwk="((A:1,B:1):1,(C:1,D:1):1);"):
    return Phylo.read(StringIO(nwk), 'newick')


def test_model_index():
    from phylocomp.discrete import model_index
    from phylocomp import UnknownMethodError
    assert model_index(3, 'ER').max()==1
    sym = model_index(3, 'SYM')
    assert sym.max()==3
    assert np.all(sym==sym.T)
    ard = model_index(3, 'ARD')
    assert ard.max()==6
    assert np.all(np.diag(ard)==0)
    custom = model_index(2, [[0, 5], [0, 0]])
    assert custom.max()==1 and custom[1,0]==0
    with pytest.raises(UnknownMethodError):
        model_index(3, 'GTR')


def test_mk_model():
    from phylocomp import MkModel
    mk = MkModel.from_rates(['a', 'b', 'c'], [0.5], 'ER')
    assert np.allclose(mk.Q.sum(axis=1), 0)
    assert np.allclose(mk.expQt(0.3).sum(axis=1), 1)
    assert np.allclose(mk.expQt(0), np.eye(3))
    assert np.allclose(mk.stationary(), 1.0/3)

    mk = MkModel.from_rates(['a', 'b'], [1.0, 3.0], 'ARD')
    # pi_a q_ab = pi_b q_ba
    assert np.allclose(mk.stationary(), [0.75, 0.25])
    assert mk.rate_table.loc['a', 'b']==1.0
    with pytest.raises(ValueError):
        MkModel(['a', 'b'], [[0, -1], [1, 0]])


def test_two_state_likelihood():
    from phylocomp.discrete import discrete_loglik
    tree = get_tree("(A:1,B:1);")
    traits = {'A':'0', 'B':'1'}
    for q in [0.1, 1.0, 3.0]:
        Q = np.array([[-q, q], [q, -q]])
        # P(different states after total time 2) = 0.5*(1-exp(-4q)), flat root
        expected = np.log(0.25*(1 - np.exp(-4*q)))
        assert abs(discrete_loglik(tree, traits, Q) - expected)<1e-10
        assert abs(discrete_loglik(tree, traits, Q, root_prior='stationary') - expected)<1e-10


def test_obs_root_prior():
    from phylocomp.discrete import discrete_loglik
    tree = get_tree("(A:1,B:1);")
    traits = {'A':'0', 'B':'0'}
    for q in [0.1, 1.0, 3.0]:
        Q = np.array([[-q, q], [q, -q]])
        p_same = 0.5*(1 + np.exp(-2*q))
        L = np.array([p_same**2, (1 - p_same)**2])
        # root weighted by its own conditional likelihoods
        expected = np.log(L.dot(L)/L.sum())
        assert abs(discrete_loglik(tree, traits, Q, states=['0', '1'], root_prior='obs') - expected)<1e-10
        flat = discrete_loglik(tree, traits, Q, states=['0', '1'], root_prior='flat')
        assert abs(flat - np.log(L.mean()))<1e-10
        assert discrete_loglik(tree, traits, Q, states=['0', '1'], root_prior='obs')>flat


def test_missing_states():
    from phylocomp.discrete import discrete_loglik
    tree = get_tree()
    Q = np.array([[-1.0, 1.0], [1.0, -1.0]])
    full = discrete_loglik(tree, {'A':'x', 'B':'x', 'C':'y', 'D':'y'}, Q)
    missing = discrete_loglik(tree, {'A':'x', 'B':'x', 'C':'y', 'D':'?'}, Q)
    # summing over the state of D can only increase the likelihood
    assert missing>full


def test_fit_discrete():
    from phylocomp import fit_discrete, MissingDataError
    traits = {'A':'x', 'B':'x', 'C':'y', 'D':'y'}
    fit = fit_discrete(get_tree(), traits, model='ER', rng_seed=1)
    assert fit.k==1
    assert fit.states==['x', 'y']
    q = fit.params['q1']
    assert q>0
    assert np.allclose(fit.Q.Q, [[-q, q], [q, -q]])

    from phylocomp.discrete import discrete_loglik
    for q_test in [0.5*q, 2*q]:
        Q = np.array([[-q_test, q_test], [q_test, -q_test]])
        assert fit.lnL >= discrete_loglik(get_tree(), traits, Q) - 1e-8

    ard = fit_discrete(get_tree(), traits, model='ARD', rng_seed=1)
    assert ard.k==2
    assert ard.lnL >= fit.lnL - 1e-4

    with pytest.raises(MissingDataError):
        fit_discrete(get_tree(), {'A':'x', 'B':'x'}, model='ER')


def test_ancestral_states():
    from phylocomp import fit_discrete
    traits = {'A':'x', 'B':'x', 'C':'y', 'D':'y'}
    fit = fit_discrete(get_tree(), traits, model='ER', rng_seed=1)
    anc = fit.ancestral_states()
    assert list(anc.columns)==['x', 'y']
    assert anc.shape==(3, 2)
    assert np.allclose(anc.sum(axis=1), 1)
    # symmetric data: root is equally likely in both states
    assert np.allclose(anc.loc['NODE_0000000'].values, [0.5, 0.5])
    assert anc.loc['NODE_0000001', 'x']>0.5
    assert anc.loc['NODE_0000002', 'y']>0.5

    with_tips = fit.ancestral_states(include_tips=True)
    assert with_tips.shape==(7, 2)
    assert np.allclose(with_tips.loc['A'].values, [1, 0])


def test_fit_discrete_treedata():
    import pandas as pd
    from phylocomp import TreeData, fit_discrete
    from phylocomp.utils import compare_models
    data = pd.DataFrame({'species':list('ABCD'), 'diet':['herb', 'herb', 'carn', 'carn']})
    td = TreeData(get_tree(), data, verbose=0)
    fits = [fit_discrete(td, 'diet', model=m, rng_seed=2) for m in ['ER', 'ARD']]
    table = compare_models(fits)
    assert set(table.index)=={'ER', 'ARD'}
    assert abs(table['weight'].sum() - 1)<1e-10
    print(fits[0])
