from io import StringIO
import numpy as np
import pandas as pd
import pytest
from Bio import Phylo

ultrametric_nwk = "((A:1,B:1):2,((C:1.5,D:1.5):0.5,(E:1,F:1):1):1);"


def get_tree():
    return Phylo.read(StringIO(ultrametric_nwk), 'newick')


def get_data():
    return pd.DataFrame({'species': ['E', 'A', 'B', 'C', 'D', 'G'],
                         'mass': [2.0, 1.0, 1.2, 2.9, np.nan, 5.0],
                         'habitat': ['forest', 'forest', 'forest', 'open', 'open', 'open']})


def test_name_check():
    from phylocomp import name_check
    mismatch = name_check(get_tree(), get_data())
    assert mismatch['tree_not_data']==['F']
    assert mismatch['data_not_tree']==['G']

    mismatch = name_check(get_tree(), pd.Series(1.0, index=list('ABCDEF')))
    assert mismatch=={'tree_not_data': [], 'data_not_tree': []}


def test_unlabeled_tips():
    from phylocomp import name_check, TreeData, MissingDataError
    nwk = "((A:1,B:1):2,((C:1.5,:1.5):0.5,(E:1,F:1):1):1);"
    with pytest.raises(MissingDataError):
        name_check(Phylo.read(StringIO(nwk), 'newick'), get_data())
    with pytest.raises(MissingDataError):
        TreeData(Phylo.read(StringIO(nwk), 'newick'), get_data(), verbose=0)


def test_guess_name_column():
    from phylocomp import MissingDataError
    from phylocomp.treedata import guess_name_column
    assert guess_name_column(get_data())=='species'
    assert guess_name_column(pd.DataFrame({'id':['A'], 'mass':[1]}))=='id'
    with pytest.raises(MissingDataError):
        guess_name_column(get_data(), 'taxon')


def test_treedata_matching():
    from phylocomp import TreeData
    td = TreeData(get_tree(), get_data(), verbose=0)
    assert td.dropped_tips==['F']
    assert td.dropped_rows==['G']
    assert len(td)==5
    assert td.tip_labels==list('ABCDE')
    assert list(td.data.index)==td.tip_labels
    assert td.tree.count_terminals()==5
    # the input tree is not modified
    assert get_tree().count_terminals()==6


def test_treedata_traits():
    from phylocomp import TreeData, MissingDataError
    td = TreeData(get_tree(), get_data(), verbose=0)
    habitat = td.trait('habitat', numeric=False)
    assert habitat['C']=='open'
    assert td.trait('mass', numeric=False)['D']=='?'
    with pytest.raises(MissingDataError):
        td.trait('mass', numeric=True)
    with pytest.raises(MissingDataError):
        td.trait('color')

    sub = td.subset('mass')
    assert sub.tip_labels==list('ABCE')
    assert np.allclose(sub.trait('mass', numeric=True).values, [1.0, 1.2, 2.9, 2.0])
    C = sub.vcv()
    assert list(C.index)==list('ABCE')
    assert C.loc['C','E']==1.0


def test_treedata_errors():
    from phylocomp import TreeData, MissingDataError
    data = get_data()
    data.loc[5, 'species'] = 'A'
    with pytest.raises(MissingDataError):
        TreeData(get_tree(), data, verbose=0)

    with pytest.raises(MissingDataError):
        TreeData(get_tree(), pd.DataFrame({'species':['A','B','X'], 'mass':[1,2,3]}), verbose=0)


def test_treedata_from_files(tmp_path):
    from phylocomp import TreeData
    tree_file = tmp_path/"tree.nwk"
    tree_file.write_text(ultrametric_nwk+"\n")
    data_file = tmp_path/"traits.tsv"
    get_data().rename(columns={'species':'taxon'}).to_csv(data_file, sep='\t', index=False)
    td = TreeData(str(tree_file), str(data_file), verbose=0)
    assert td.name_column=='taxon'
    assert len(td)==5
