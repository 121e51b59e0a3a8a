from io import StringIO
import numpy as np
import pandas as pd
from Bio import Phylo
import matplotlib.pyplot as plt

ultrametric_nwk = "((A:1,B:1):2,((C:1.5,D:1.5):0.5,(E:1,F:1):1):1);"


def get_treedata():
    from phylocomp import TreeData
    tree = Phylo.read(StringIO(ultrametric_nwk), 'newick')
    data = pd.DataFrame({'species': list('ABCDEF'),
                         'mass': [1.0, 1.2, 2.9, 3.1, 2.0, 2.6],
                         'habitat': ['forest', 'forest', 'open', 'open', 'forest', '?']})
    return TreeData(tree, data, verbose=0)


def test_node_coordinates():
    from phylocomp.plotting import node_coordinates, tip_coordinates
    tree = get_treedata().tree
    coords = node_coordinates(tree)
    tips = tip_coordinates(tree)
    assert [tips[n][1] for n in 'ABCDEF']==[1, 2, 3, 4, 5, 6]
    assert np.allclose([tips[n][0] for n in 'ABCDEF'], 3.0)
    assert coords[tree.root]==(0, 0.5*(1.5 + 0.5*(3.5 + 5.5)))


def test_plot_tip_traits(tmp_path):
    from phylocomp.plotting import plot_tip_traits
    td = get_treedata()
    ax = plot_tip_traits(td, 'mass')
    assert len(ax.collections)>0
    ax = plot_tip_traits(td, 'habitat')
    assert ax.get_legend() is not None
    plt.savefig(str(tmp_path/"tips.png"))
    plt.close('all')


def test_plot_continuous_map():
    from phylocomp.plotting import plot_continuous_map
    ax = plot_continuous_map(get_treedata(), 'mass')
    # one vertical and two horizontal segments per internal node
    assert len(ax.collections[0].get_segments())==15
    plt.close('all')


def test_plot_discrete_and_comparison():
    from phylocomp import fit_discrete
    from phylocomp.utils import compare_models
    from phylocomp.plotting import plot_discrete_ancestral, plot_model_comparison
    td = get_treedata()
    fits = [fit_discrete(td, 'habitat', model=m, rng_seed=3) for m in ['ER', 'ARD']]
    ax = plot_discrete_ancestral(fits[0])
    assert ax.get_legend() is not None
    plt.close('all')
    ax = plot_model_comparison(compare_models(fits))
    assert len(ax.patches)==2
    plt.close('all')
