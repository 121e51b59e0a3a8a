"""
Helper functions to inspect and transform Bio.Phylo trees: parent links,
node depths, the phylogenetic variance-covariance matrix and branch length
transformations used by the comparative models.
"""
from copy import deepcopy
import numpy as np
import pandas as pd
from Bio import Phylo
from phylocomp import config as pcconf


def prepare_tree(tree):
    """
    Set link to parent, distance to root and the indices of descendant
    tips for all tree nodes, and name unnamed internal nodes. Should be run
    once the tree is read and after every change of topology or branch lengths.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree

    Returns
    -------
    Bio.Phylo.BaseTree.Tree
        the same tree object, decorated in place
    """
    for n in tree.find_clades():
        n.branch_length = n.branch_length if n.branch_length else 0.0

    name_set = {n.name for n in tree.find_clades() if n.name}
    internal_node_count = 0
    for clade in tree.get_nonterminals(order='preorder'):
        if clade.name is None:
            tmp = "NODE_" + format(internal_node_count, '07d')
            while tmp in name_set:
                internal_node_count += 1
                tmp = "NODE_" + format(internal_node_count, '07d')
            clade.name = tmp
            name_set.add(clade.name)
        internal_node_count += 1

    tree.root.up = None
    tree.root.dist2root = 0.0
    for n in tree.get_nonterminals(order='preorder'):
        for c in n:
            c.up = n
            c.dist2root = n.dist2root + c.branch_length

    for li, l in enumerate(tree.get_terminals()):
        l._ii = np.array([li])
    for n in tree.get_nonterminals(order='postorder'):
        n._ii = np.concatenate([c._ii for c in n])
        n._ii.sort()
    return tree


def node_depths(tree):
    """dictionary mapping each clade to its distance from the root"""
    prepare_tree(tree)
    return {n:n.dist2root for n in tree.find_clades()}


def tree_height(tree):
    return max(node_depths(tree).values())


def is_ultrametric(tree, tol=None):
    '''
    Check whether all tips are equidistant from the root.

    Parameters
    ----------
     tol : float, optional
        relative tolerance on the spread of root-to-tip distances
    '''
    tol = pcconf.ULTRAMETRIC_TOL if tol is None else tol
    prepare_tree(tree)
    d2r = np.array([l.dist2root for l in tree.get_terminals()])
    if d2r.max()<=0:
        return False
    return (d2r.max()-d2r.min())/d2r.max() <= tol


def is_binary(tree):
    """
    True if every internal node has two children. A basal trichotomy
    (the usual representation of an unrooted tree) is accepted.
    """
    for n in tree.get_nonterminals():
        if len(n.clades)!=2 and not (n==tree.root and len(n.clades)==3):
            return False
    return True


def is_rooted(tree):
    return len(tree.root.clades)==2


def tree_summary(tree):
    """
    Summary of a tree: number of tips and internal nodes, whether the tree
    is binary, rooted and ultrametric, its total length, height and tip labels.
    """
    prepare_tree(tree)
    tips = tree.get_terminals()
    return {'n_tips': len(tips),
            'n_internal': len(tree.get_nonterminals()),
            'is_binary': is_binary(tree),
            'is_rooted': is_rooted(tree),
            'is_ultrametric': is_ultrametric(tree),
            'total_length': float(sum(n.branch_length for n in tree.find_clades() if n!=tree.root)),
            'height': float(max(l.dist2root for l in tips)),
            'tip_labels': [l.name for l in tips]}


def branching_times(tree):
    """
    Heights of internal nodes above the tips of an ultrametric tree.

    Returns
    -------
    pandas.Series
        branching times indexed by the names of internal nodes

    Raises
    ------
    ValueError
        if the tree is not ultrametric
    """
    if not is_ultrametric(tree):
        raise ValueError("branching_times: the tree is not ultrametric")
    height = max(l.dist2root for l in tree.get_terminals())
    nodes = tree.get_nonterminals(order='preorder')
    return pd.Series([height - n.dist2root for n in nodes], index=[n.name for n in nodes])


def vcv(tree, branch_value=None):
    """
    calculate the phylogenetic variance-covariance matrix of the tips, i.e.
    the length of the path shared by each pair of tips from the root to their
    most recent common ancestor. The matrix is accumulated by adding each
    branch to the block of tips that descend from it.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree

     branch_value : callable, optional
        function that returns for each node the length of the branch leading
        to it. Defaults to the branch length. Used for branch length transforms
        such as kappa.

    Returns
    -------
    pandas.DataFrame
        covariance matrix with tips in the order of tree.get_terminals()
    """
    prepare_tree(tree)
    if branch_value is None:
        branch_value = lambda x:x.branch_length
    tips = tree.get_terminals()
    N = len(tips)
    M = np.zeros((N, N))
    for n in tree.find_clades():
        if n == tree.root:
            continue
        M[np.ix_(n._ii, n._ii)] += branch_value(n)
    names = [l.name for l in tips]
    return pd.DataFrame(M, index=names, columns=names)


def cophenetic(tree):
    """pairwise patristic distances between tips"""
    C = vcv(tree).values
    d = np.diag(C)
    names = [l.name for l in tree.get_terminals()]
    return pd.DataFrame(d[:,None] + d[None,:] - 2*C, index=names, columns=names)


def drop_tips(tree, names):
    """
    Return a copy of the tree with the named tips removed. Nodes left with a
    single child are collapsed and their branch lengths are merged.

    Parameters
    ----------
     names : iterable of str
        names of the tips to remove
    """
    new_tree = deepcopy(tree)
    lookup = {l.name:l for l in new_tree.get_terminals()}
    for name in names:
        if name not in lookup:
            raise ValueError("drop_tips: tip %s not found in tree"%name)
        new_tree.prune(lookup[name])
    prepare_tree(new_tree)
    return new_tree


def grafen_branch_lengths(tree, power=1.0):
    """
    Assign branch lengths following Grafen (1989): the height of each node is
    the number of tips it subtends minus one, rescaled such that the root has
    height one and raised to the given power. Useful for trees without branch
    lengths such as the synthetic trees returned by the Open Tree of Life.

    Parameters
    ----------
     power : float
        exponent applied to the relative node heights

    Returns
    -------
    Bio.Phylo.BaseTree.Tree
        the input tree with new branch lengths
    """
    n_root = tree.count_terminals()
    if n_root<2:
        raise ValueError("grafen_branch_lengths: tree needs at least two tips")
    height = {}
    for n in tree.find_clades(order='postorder'):
        height[n] = 0.0 if n.is_terminal() else ((n.count_terminals()-1.0)/(n_root-1.0))**power

    tree.root.branch_length = 0.0
    for n in tree.get_nonterminals(order='preorder'):
        for c in n:
            c.branch_length = height[n] - height[c]
    prepare_tree(tree)
    return tree


def ladderize(tree, reverse=False):
    tree.ladderize(reverse=reverse)
    prepare_tree(tree)
    return tree


def tip_order(tree):
    return [l.name for l in tree.get_terminals()]


def tree_from_newick(newick):
    """parse a newick string into a Bio.Phylo tree"""
    from io import StringIO
    return Phylo.read(StringIO(newick), 'newick')
