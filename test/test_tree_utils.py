from io import StringIO
import numpy as np
import pytest
from Bio import Phylo

ultrametric_nwk = "((A:1,B:1):2,((C:1.5,D:1.5):0.5,(E:1,F:1):1):1);"


def get_tree(nwk=ultrametric_nwk):
    return Phylo.read(StringIO(nwk), 'newick')


def test_import_short():
    print("testing short imports")
    from phylocomp import TreeData, read_tree, fit_discrete, fit_continuous, pgls, OpenTreeClient


def test_prepare_tree():
    from phylocomp.tree_utils import prepare_tree
    tree = prepare_tree(get_tree())
    internal = [n.name for n in tree.get_nonterminals(order='preorder')]
    assert internal[0]=="NODE_0000000"
    assert len(set(internal))==5
    assert tree.root.up is None
    for l in tree.get_terminals():
        assert abs(l.dist2root - 3.0)<1e-12
    assert list(tree.root._ii)==list(range(6))


def test_tree_summary():
    from phylocomp.tree_utils import tree_summary
    summary = tree_summary(get_tree())
    assert summary['n_tips']==6
    assert summary['n_internal']==5
    assert summary['is_binary'] and summary['is_rooted'] and summary['is_ultrametric']
    assert abs(summary['total_length'] - 11.5)<1e-12
    assert abs(summary['height'] - 3.0)<1e-12
    assert summary['tip_labels']==list('ABCDEF')


def test_not_ultrametric():
    from phylocomp.tree_utils import is_ultrametric, branching_times
    tree = get_tree("((A:1,B:2):1,C:2);")
    assert not is_ultrametric(tree)
    with pytest.raises(ValueError):
        branching_times(tree)


def test_branching_times():
    from phylocomp.tree_utils import branching_times
    bt = branching_times(get_tree())
    assert np.allclose(bt.values, [3.0, 1.0, 2.0, 1.5, 1.0])
    assert bt.index[0]=="NODE_0000000"


def test_vcv():
    from phylocomp.tree_utils import vcv, cophenetic
    C = vcv(get_tree())
    assert list(C.index)==list('ABCDEF')
    assert np.allclose(np.diag(C.values), 3.0)
    assert C.loc['A','B']==2.0
    assert C.loc['A','C']==0.0
    assert C.loc['C','D']==1.5
    assert C.loc['C','E']==1.0
    assert C.loc['E','F']==2.0
    assert np.allclose(C.values, C.values.T)

    D = cophenetic(get_tree())
    assert D.loc['A','B']==2.0
    assert D.loc['A','C']==6.0
    assert np.allclose(np.diag(D.values), 0)


def test_drop_tips():
    from phylocomp.tree_utils import drop_tips, is_ultrametric
    tree = get_tree()
    pruned = drop_tips(tree, ['A'])
    assert tree.count_terminals()==6
    assert [l.name for l in pruned.get_terminals()]==list('BCDEF')
    assert is_ultrametric(pruned)
    with pytest.raises(ValueError):
        drop_tips(tree, ['Z'])


def test_grafen_branch_lengths():
    from phylocomp.tree_utils import grafen_branch_lengths, is_ultrametric, tree_height
    tree = grafen_branch_lengths(get_tree("((A,B),(C,D));"))
    assert is_ultrametric(tree)
    assert abs(tree_height(tree) - 1.0)<1e-12
    A = [l for l in tree.get_terminals() if l.name=='A'][0]
    assert abs(A.branch_length - 1.0/3)<1e-12
    assert abs(A.up.branch_length - 2.0/3)<1e-12


def test_ladderize_and_depths():
    from phylocomp.tree_utils import ladderize, node_depths, tip_order
    tree = ladderize(get_tree("((A:1,(B:0.5,C:0.5):0.5):1,D:2);"))
    assert tip_order(tree)==['D', 'A', 'B', 'C']
    depths = {n.name:d for n,d in node_depths(tree).items()}
    assert depths['B']==2.0 and depths['D']==2.0
