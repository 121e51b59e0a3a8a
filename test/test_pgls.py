from io import StringIO
import numpy as np
import pandas as pd
import pytest
from Bio import Phylo

ultrametric_nwk = "((A:1,B:1):2,((C:1.5,D:1.5):0.5,(E:1,F:1):1):1);"


def get_tree():
    return Phylo.read(StringIO(ultrametric_nwk), 'newick')


def get_data():
    return pd.DataFrame({'species': list('FEDCBA'),
                         'length': [2.1, 1.9, 3.0, 2.8, 1.1, 0.9],
                         'mass': [5.5, 4.6, 7.1, 6.9, 3.4, 2.5]})


def gls_by_hand(tree, data):
    from phylocomp.tree_utils import vcv
    C = vcv(tree)
    data = data.set_index('species').loc[C.index]
    X = np.vstack([np.ones(len(data)), data['length'].values]).T
    y = data['mass'].values
    Cinv = np.linalg.inv(C.values)
    return np.linalg.solve(X.T.dot(Cinv).dot(X), X.T.dot(Cinv).dot(y))


def test_pgls_brownian():
    from phylocomp import pgls
    res = pgls('mass ~ length', get_data(), tree=get_tree())
    beta = gls_by_hand(get_tree(), get_data())
    assert np.allclose(res.params.values, beta)
    assert res.n==6
    assert res.k==3
    assert res.branch_params=={'lambda':1.0, 'kappa':1.0, 'delta':1.0}
    assert 'length' in res.pvalues.index
    print(res)


def test_pgls_star_is_ols():
    import statsmodels.formula.api as smf
    from phylocomp import pgls
    res = pgls('mass ~ length', get_data(), tree=get_tree(), lambda_=0.0)
    ols = smf.ols('mass ~ length', data=get_data()).fit()
    assert np.allclose(res.params.values, ols.params.values)


def test_pgls_intercept_is_bm():
    from phylocomp import pgls, fit_continuous, TreeData
    td = TreeData(get_tree(), get_data(), verbose=0)
    res = pgls('mass ~ 1', td)
    bm = fit_continuous(td, 'mass', model='BM')
    assert abs(res.lnL - bm.lnL)<1e-8
    assert abs(res.params['Intercept'] - bm.z0)<1e-8


def test_pgls_ml_lambda():
    from phylocomp import pgls
    res1 = pgls('mass ~ length', get_data(), tree=get_tree())
    res = pgls('mass ~ length', get_data(), tree=get_tree(), lambda_='ML')
    assert res.estimated==['lambda']
    assert 1e-6<=res.branch_params['lambda']<=1.0
    assert res.lnL >= res1.lnL - 1e-8
    assert res.k==4


def test_pgls_missing_data():
    from phylocomp import pgls, MissingDataError
    data = get_data()
    data.loc[0, 'mass'] = np.nan
    res = pgls('mass ~ length', data, tree=get_tree())
    assert res.n==5
    assert res.tree.count_terminals()==5

    with pytest.raises(MissingDataError):
        pgls('mass ~ length', data)
    with pytest.raises(ValueError):
        pgls('mass ~ length', get_data(), tree=get_tree(), kappa='REML')
