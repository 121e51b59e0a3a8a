"""
Figures of trees, traits and model comparisons drawn with matplotlib. All
functions draw into the provided axes (or a new figure) and return the axes.
"""
import numpy as np
import pandas as pd
from Bio import Phylo
from phylocomp import config as pcconf
from .continuous import ancestral_states_bm
from .tree_utils import prepare_tree


def _get_axes(ax, figsize=(8,10)):
    import matplotlib.pyplot as plt
    if ax is None:
        plt.figure(figsize=figsize)
        ax = plt.subplot(111)
    return ax


def node_coordinates(tree):
    """
    Positions of all nodes as drawn by Bio.Phylo.draw: x is the depth of the
    node, tips are placed at y=1..n in the order of tree.get_terminals() and
    internal nodes halfway between their outermost children.

    Returns
    -------
    dict
        clade -> (x, y)
    """
    depths = tree.depths()
    if not max(depths.values()):
        depths = tree.depths(unit_branch_lengths=True)
    heights = {tip:i+1.0 for i, tip in enumerate(tree.get_terminals())}
    for n in tree.get_nonterminals(order='postorder'):
        heights[n] = 0.5*(heights[n.clades[0]] + heights[n.clades[-1]])
    return {n:(depths[n], heights[n]) for n in tree.find_clades()}


def tip_coordinates(tree):
    """positions (x, y) of the tips indexed by tip name"""
    coords = node_coordinates(tree)
    return {l.name:coords[l] for l in tree.get_terminals()}


def plot_tree(tree, ax=None, tip_labels=None, **kwargs):
    '''
    Draw a phylogenetic tree.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree

     ax : matplotlib axes
        Axes to be used to plot, will create new axis if None

     tip_labels : bool, optional
        show tip labels. By default, labels are shown for trees with fewer than 30 tips

     **kwargs : dict
        Key word arguments that are passed down to Phylo.draw
    '''
    ax = _get_axes(ax)
    nleafs = tree.count_terminals()
    show_labels = (nleafs<30) if tip_labels is None else tip_labels
    if "label_func" not in kwargs:
        kwargs["label_func"] = lambda x:x.name if (x.is_terminal() and show_labels) else ""
    Phylo.draw(tree, axes=ax, do_show=False, **kwargs)
    return ax


def _category_colors(categories, cmap='tab10'):
    import matplotlib.pyplot as plt
    colormap = plt.get_cmap(cmap)
    return {c:colormap(i%colormap.N) for i,c in enumerate(categories)}


def plot_tip_traits(tree, values, ax=None, cmap=None, marker_size=60, tip_labels=None, **kwargs):
    """
    Draw the tree with the trait values as colored markers next to the tips.
    Numeric traits are colored on a continuous scale with a colorbar,
    other traits get one color per category and a legend.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree, TreeData
     values : dict, pandas.Series, str
        trait values by tip name, or the name of a column if tree is a TreeData
     cmap : str, optional
        colormap, default 'viridis' for numeric and 'tab10' for categorical traits
    """
    import matplotlib.pyplot as plt
    from matplotlib.lines import Line2D
    from .treedata import TreeData
    if isinstance(tree, TreeData):
        if isinstance(values, str):
            values = tree.trait(values)
        tree = tree.tree
    values = pd.Series(values)
    values = values[values.notna() & (values.astype(str)!=pcconf.MISSING_STATE)]

    ax = plot_tree(tree, ax=ax, tip_labels=tip_labels, **kwargs)
    coords = tip_coordinates(tree)
    max_x = max(x for x,y in coords.values())
    offset = 0.02*max_x if max_x>0 else 0.1
    names = [n for n in coords if n in values.index]
    xs = np.array([coords[n][0] + offset for n in names])
    ys = np.array([coords[n][1] for n in names])

    numeric = pd.to_numeric(values.loc[names], errors='coerce')
    if len(names) and numeric.notna().all():
        sc = ax.scatter(xs, ys, c=numeric.values, cmap=cmap or 'viridis', s=marker_size, zorder=3)
        plt.colorbar(sc, ax=ax, label=str(values.name) if values.name is not None else None)
    else:
        categories = sorted(set(values.loc[names].astype(str)))
        colors = _category_colors(categories, cmap or 'tab10')
        ax.scatter(xs, ys, c=[colors[str(values[n])] for n in names], s=marker_size, zorder=3)
        handles = [Line2D([0], [0], marker='o', color='w', markerfacecolor=colors[c],
                          markersize=8, label=c) for c in categories]
        ax.legend(handles=handles, loc='best', fontsize='small')
    return ax


def plot_continuous_map(tree, trait, ax=None, cmap='viridis', linewidth=3, tip_labels=None):
    """
    Draw the tree with branches colored by the value of a continuous trait.
    Values of internal nodes are the maximum likelihood estimates under
    Brownian motion, each branch is colored by the mean of the values at its ends.

    Parameters
    ----------
     tree : Bio.Phylo.BaseTree.Tree, TreeData
     trait : dict, pandas.Series, str
        trait values by tip name, or the name of a column if tree is a TreeData
    """
    import matplotlib.pyplot as plt
    from matplotlib.collections import LineCollection
    from .treedata import TreeData
    if isinstance(tree, TreeData):
        if isinstance(trait, str):
            trait = tree.trait(trait, numeric=True)
        tree = tree.tree
    prepare_tree(tree)
    states = ancestral_states_bm(tree, trait)
    coords = node_coordinates(tree)
    ax = _get_axes(ax)

    segments, seg_values = [], []
    for n in tree.get_nonterminals():
        x, y = coords[n]
        ys = [coords[c][1] for c in n]
        segments.append([(x, min(ys)), (x, max(ys))])
        seg_values.append(states[n.name])
        for c in n:
            segments.append([(x, coords[c][1]), coords[c]])
            seg_values.append(0.5*(states[n.name] + states[c.name]))

    lines = LineCollection(segments, cmap=cmap, linewidths=linewidth)
    lines.set_array(np.array(seg_values))
    ax.add_collection(lines)
    plt.colorbar(lines, ax=ax, label=trait.name if isinstance(trait, pd.Series) and trait.name else 'trait')

    nleafs = tree.count_terminals()
    show_labels = (nleafs<30) if tip_labels is None else tip_labels
    max_x = max(x for x,y in coords.values())
    if show_labels:
        for l in tree.get_terminals():
            ax.text(coords[l][0] + 0.02*max_x, coords[l][1], ' '+l.name, va='center', fontsize='small')
    ax.set_xlim(-0.02*max_x, max_x*(1.3 if show_labels else 1.05))
    ax.set_ylim(nleafs + 0.8, 0.2)
    ax.set_xlabel('branch length')
    ax.set_yticks([])
    return ax


def plot_discrete_ancestral(fit, ax=None, cmap='tab10', marker_size=80, tip_labels=None):
    """
    Draw the tree of a fitted discrete model with internal nodes colored by
    their most probable state and tips colored by the observed state.

    Parameters
    ----------
     fit : discrete.DiscreteFit
    """
    from matplotlib.lines import Line2D
    tree = fit.tree
    ax = plot_tree(tree, ax=ax, tip_labels=tip_labels)
    coords = node_coordinates(tree)
    colors = _category_colors(fit.states, cmap)
    anc = fit.ancestral_states()
    for n in tree.get_nonterminals():
        best = anc.loc[n.name].idxmax()
        ax.scatter([coords[n][0]], [coords[n][1]], color=colors[best], s=marker_size*anc.loc[n.name].max(),
                   edgecolors='k', zorder=3)
    for l in tree.get_terminals():
        partial = fit._tip_partials[l.name]
        color = colors[fit.states[int(np.argmax(partial))]] if partial.sum()==1 else 'lightgrey'
        ax.scatter([coords[l][0]], [coords[l][1]], color=color, s=marker_size*0.5, zorder=3)
    handles = [Line2D([0], [0], marker='o', color='w', markerfacecolor=colors[s],
                      markersize=8, label=s) for s in fit.states]
    ax.legend(handles=handles, loc='best', fontsize='small')
    return ax


def plot_model_comparison(table, ax=None):
    """bar chart of Akaike weights of a table returned by utils.compare_models"""
    ax = _get_axes(ax, figsize=(6,4))
    ax.bar(list(map(str, table.index)), table['weight'].values, color='steelblue')
    ax.set_ylabel('Akaike weight')
    ax.set_ylim(0, 1)
    return ax
