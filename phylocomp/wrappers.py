import sys
from textwrap import fill
import numpy as np
import pandas as pd
from . import TreeData, PhyloCompError, MissingDataError, UnknownMethodError, TaxonomyError
from .io import read_tree, read_traits
from .treedata import name_check
from .tree_utils import tree_summary, grafen_branch_lengths
from .discrete import fit_discrete
from .continuous import fit_continuous, phylo_signal
from .pgls import pgls
from .taxonomy import OpenTreeClient
from .utils import compare_models
from .CLI_io import *


def assure_tree_data(params):
    """
    Read tree and trait table and match them. Returns None if loading fails.
    """
    try:
        td = TreeData(params.tree, params.data, name_column=params.name_column,
                      verbose=params.verbose)
    except (ValueError, FileNotFoundError, PhyloCompError) as e:
        print(e, file=sys.stderr)
        print("Loading and matching of tree and trait table failed.", file=sys.stderr)
        return None
    return td


def match_data(params):
    """
    the function implementing phylocomp match
    """
    try:
        tree = read_tree(params.tree)
        data = read_traits(params.data)
    except (ValueError, FileNotFoundError) as e:
        print(e, file=sys.stderr)
        return 1

    summary = tree_summary(tree)
    print("read tree from %s with %d tips (binary: %s, ultrametric: %s)"
          %(params.tree, summary['n_tips'], summary['is_binary'], summary['is_ultrametric']))
    print("read table from %s with %d rows and columns: %s\n"
          %(params.data, data.shape[0], ", ".join(map(str, data.columns))))
    try:
        mismatch = name_check(tree, data, name_column=params.name_column)
    except MissingDataError as e:
        print(e, file=sys.stderr)
        return 1
    print_mismatch(mismatch)

    td = assure_tree_data(params)
    if td is None:
        return 1
    outdir = get_outdir(params, '_match')
    export_tree(td.tree, outdir+'matched_tree.nwk')
    export_table(td.data, outdir+'matched_data.tsv')
    return 0


def parse_model(model):
    """
    Model names are passed on, custom models are given as index matrix with
    rows separated by semicolons, e.g. '0,1;2,0'.
    """
    if ';' in model:
        return np.array([[int(x) for x in row.split(',')] for row in model.split(';')])
    return model


def discrete(params):
    """
    the function implementing phylocomp discrete
    """
    td = assure_tree_data(params)
    if td is None:
        return 1

    fits = {}
    for model in params.models:
        try:
            fits[model] = fit_discrete(td, params.trait, model=parse_model(model), root_prior=params.root_prior,
                                       n_starts=params.n_starts, rng_seed=params.rng_seed,
                                       logger=td.logger)
        except (MissingDataError, UnknownMethodError, ValueError) as e:
            print(e, file=sys.stderr)
            print("Fitting of discrete model %s failed."%model, file=sys.stderr)
            return 1
        print(fits[model])

    table = compare_models(fits, logger=td.logger)
    print("\nComparison of discrete models of '%s':\n"%params.trait)
    print(table.to_string(float_format=lambda x:'%1.4f'%x))
    print('\n'+fill("Models are ranked by %s. The weight is the relative support "
                    "of each model among the models compared."%table.columns[-2][1:])+'\n')

    outdir = get_outdir(params, '_discrete')
    export_table(table, outdir+'model_comparison.tsv')
    best = fits[table.index[0]]
    with open(outdir+'rates.txt', 'w', encoding='utf-8') as ofile:
        for model, fit in fits.items():
            ofile.write(str(fit)+'\n\n')
    if params.confidence:
        export_table(best.ancestral_states(), outdir+'ancestral_states.tsv')
    if params.plot:
        from .plotting import plot_discrete_ancestral
        plot_discrete_ancestral(best)
        save_plot(outdir+params.plot)
    return 0


def continuous(params):
    """
    the function implementing phylocomp continuous
    """
    td = assure_tree_data(params)
    if td is None:
        return 1

    fits = {}
    for model in params.models:
        try:
            fits[model] = fit_continuous(td, params.trait, model=model, se=params.se, logger=td.logger)
        except (MissingDataError, UnknownMethodError) as e:
            print(e, file=sys.stderr)
            print("Fitting of continuous model %s failed."%model, file=sys.stderr)
            return 1
        print(fits[model])

    table = compare_models(fits, logger=td.logger)
    print("\nComparison of continuous models of '%s':\n"%params.trait)
    print(table.to_string(float_format=lambda x:'%1.4f'%x))

    outdir = get_outdir(params, '_continuous')
    export_table(table, outdir+'model_comparison.tsv')
    params_table = pd.DataFrame({m:f.params for m,f in fits.items()}).T
    export_table(params_table, outdir+'model_parameters.tsv')
    if params.plot:
        from .plotting import plot_continuous_map
        plot_continuous_map(td, params.trait)
        save_plot(outdir+params.plot)
    return 0


def signal(params):
    """
    the function implementing phylocomp signal
    """
    td = assure_tree_data(params)
    if td is None:
        return 1
    try:
        res = phylo_signal(td, params.trait, method=params.method, nsim=params.nsim,
                           rng_seed=params.rng_seed, logger=td.logger)
    except (MissingDataError, UnknownMethodError) as e:
        print(e, file=sys.stderr)
        return 1

    if res['method']=='lambda':
        print("\nPagel's lambda of '%s': %1.4f"%(params.trait, res['lambda']))
        print(" --lnL:\t%1.4f\n --lnL(lambda=0):\t%1.4f\n --LR:\t%1.4f\n --p-value:\t%1.4g\n"
              %(res['lnL'], res['lnL0'], res['statistic'], res['p_value']))
    else:
        print("\nBlomberg's K of '%s': %1.4f"%(params.trait, res['K']))
        print(" --p-value:\t%1.4g (%d permutations)\n"%(res['p_value'], res['nsim']))
    return 0


def ml_or_float(value):
    if isinstance(value, str) and value.upper()=='ML':
        return 'ML'
    return float(value)


def regression(params):
    """
    the function implementing phylocomp pgls
    """
    td = assure_tree_data(params)
    if td is None:
        return 1
    try:
        res = pgls(params.formula, td, lambda_=ml_or_float(params.lambda_),
                   kappa=ml_or_float(params.kappa), delta=ml_or_float(params.delta),
                   logger=td.logger)
    except (MissingDataError, ValueError) as e:
        print(e, file=sys.stderr)
        print("PGLS regression failed.", file=sys.stderr)
        return 1

    summary = str(res.summary())
    print(summary)
    outdir = get_outdir(params, '_pgls')
    with open(outdir+'pgls_summary.txt', 'w', encoding='utf-8') as ofile:
        ofile.write(summary+'\n')
    print("--- summary saved as \n\t %s\n"%(outdir+'pgls_summary.txt'))
    coefficients = pd.DataFrame({'estimate':res.params, 'std_err':res.bse, 'p_value':res.pvalues})
    export_table(coefficients, outdir+'pgls_coefficients.tsv')
    return 0


def tnrs(params):
    """
    the function implementing phylocomp tnrs
    """
    names = list(params.names or [])
    if params.names_file:
        try:
            table = read_traits(params.names_file)
        except FileNotFoundError as e:
            print(e, file=sys.stderr)
            return 1
        column = params.name_column or table.columns[0]
        if column not in table.columns:
            print("column '%s' not found in %s"%(column, params.names_file), file=sys.stderr)
            return 1
        names.extend([str(x) for x in table[column].dropna()])
    if len(names)==0:
        print("no names to resolve, specify --names or --names-file", file=sys.stderr)
        return 1

    client = OpenTreeClient(base_url=params.api_url, timeout=params.timeout)
    try:
        if params.tree_out:
            matches, tree = client.resolve_tree(names, context_name=params.context,
                                                do_approximate_matching=params.approximate)
        else:
            matches = client.match_names(names, context_name=params.context,
                                         do_approximate_matching=params.approximate)
            tree = None
    except (TaxonomyError, MissingDataError) as e:
        print(e, file=sys.stderr)
        return 1

    print(matches.to_string())
    outdir = get_outdir(params, '_tnrs')
    export_table(matches, outdir+'tnrs_matches.tsv', index=False)
    if tree is not None:
        if params.grafen:
            grafen_branch_lengths(tree)
        export_tree(tree, outdir+params.tree_out)
    return 0


def plot(params):
    """
    the function implementing phylocomp plot
    """
    td = assure_tree_data(params)
    if td is None:
        return 1
    from .plotting import plot_tip_traits, plot_continuous_map
    try:
        if params.kind=='contmap':
            plot_continuous_map(td, params.trait)
        else:
            plot_tip_traits(td, params.trait)
    except MissingDataError as e:
        print(e, file=sys.stderr)
        return 1
    fname = get_outdir(params, '_plot')+params.plot if params.outdir else params.plot
    save_plot(fname)
    return 0
