#!/usr/bin/env python
import argparse
from phylocomp.wrappers import match_data, discrete, continuous, signal, regression, tnrs, plot
from phylocomp.discrete import standard_models, root_priors
from phylocomp.continuous import continuous_models
import phylocomp

phylocomp_description = \
    "phylocomp: phylogenetic comparative methods\n\n"\
    "phylocomp implements several sub-commands:\n\n"\
    "\t match\t\tmatch a tree to a table of traits and report mismatched names.\n"\
    "\t discrete\tfit Mk models of discrete character evolution and compare them.\n"\
    "\t continuous\tfit BM, OU, EB and related models to a continuous trait.\n"\
    "\t signal\t\tmeasure phylogenetic signal using Pagel's lambda or Blomberg's K.\n"\
    "\t pgls\t\tphylogenetic generalized least squares regression.\n"\
    "\t tnrs\t\tresolve taxon names and fetch a tree from the Open Tree of Life.\n"\
    "\t plot\t\tplot trait values on the tree.\n\n"\
    "To print a description and argument list of the individual sub-commands, type:\n\n"\
    "\t phylocomp <subcommand> -h\n\n"

tree_description = "Name of file containing the tree in newick or nexus format, "\
    "a URL, or a newick string."

data_description = "csv or tsv file (or URL) with one row per taxon. The column "\
    "with taxon names is guessed (name, species, taxon, tip_label, strain) unless specified "\
    "with --name-column.\n#species,body_mass,habitat\ntaxon1,3.2,forest\n..."

match_description = \
    "Reads a tree and a table of traits, reports names present in only one of them, "\
    "and writes the tree pruned to the taxa with data ('matched_tree.nwk') "\
    "together with the table in tip order ('matched_data.tsv')."

discrete_description = \
    "Fits continuous-time Markov (Mk) models of discrete character evolution "\
    "by maximum likelihood. Models are compared by AICc and the rate estimates "\
    "of all models are written to 'rates.txt'."

continuous_description = \
    "Fits models of continuous trait evolution (Brownian motion, Ornstein-Uhlenbeck, "\
    "early burst and Pagel's branch length transformations) by maximum likelihood "\
    "and compares them by AICc."

signal_description = \
    "Quantifies phylogenetic signal of a continuous trait, either by Pagel's lambda "\
    "with a likelihood ratio test against lambda=0, or by Blomberg's K "\
    "with a permutation test."

pgls_description = \
    "Phylogenetic generalized least squares regression. The residuals are assumed "\
    "to be correlated according to Brownian motion along the (transformed) tree. "\
    "Each of --lambda, --kappa and --delta can be fixed to a number or estimated with 'ML'."

tnrs_description = \
    "Matches taxon names to the Open Tree Taxonomy. With --tree-out, the induced "\
    "subtree of the synthetic tree of life for the matched taxa is written as well."

plot_description = "Draws the tree with trait values at the tips or mapped onto the branches."


def add_data_args(parser, trait=True):
    parser.add_argument('--tree', required=True, type=str, help=tree_description)
    parser.add_argument('--data', required=True, type=str, help=data_description)
    parser.add_argument('--name-column', type=str, help="column of the table with taxon names")
    if trait:
        parser.add_argument('--trait', required=True, type=str, help="column of the table to analyze")


def add_common_args(parser):
    parser.add_argument('--verbose', default=1, type=int,  help='verbosity of output 0-6')
    parser.add_argument('--outdir', type=str,  help='directory to write the output to')


def make_parser():
    parser = argparse.ArgumentParser(description = "",
                                     usage=phylocomp_description)

    subparsers = parser.add_subparsers()

    ## MATCH
    t_parser = subparsers.add_parser('match', description=match_description)
    add_data_args(t_parser, trait=False)
    add_common_args(t_parser)
    t_parser.set_defaults(func=match_data)

    ## DISCRETE
    d_parser = subparsers.add_parser('discrete', description=discrete_description)
    add_data_args(d_parser)
    d_parser.add_argument('--models', nargs='+', default=list(standard_models),
                          help="models to fit: %s or a custom model as comma separated matrix "
                               "rows, e.g. '0,1;1,0'. Default: %s"%(", ".join(standard_models), " ".join(standard_models)))
    d_parser.add_argument('--root-prior', choices=root_priors, default='flat',
                          help="distribution of states at the root, default flat")
    d_parser.add_argument('--n-starts', type=int, default=3,
                          help="number of starting points of the rate optimization")
    d_parser.add_argument('--rng-seed', type=int, help="random seed for the starting points")
    d_parser.add_argument('--confidence', action="store_true",
                          help="write marginal probabilities of ancestral states of the best model")
    d_parser.add_argument('--plot', type=str,
                          help="filename to save a plot of the ancestral states of the best model to. "
                               "Suffix will determine format (pdf, png, svg)")
    add_common_args(d_parser)
    d_parser.set_defaults(func=discrete)

    ## CONTINUOUS
    c_parser = subparsers.add_parser('continuous', description=continuous_description)
    add_data_args(c_parser)
    c_parser.add_argument('--models', nargs='+', choices=continuous_models, default=['BM', 'OU', 'EB'],
                          help="models to fit, default BM OU EB")
    c_parser.add_argument('--se', type=str, help="column with standard errors of the trait values")
    c_parser.add_argument('--plot', type=str,
                          help="filename to save a plot of the trait mapped on the tree to")
    add_common_args(c_parser)
    c_parser.set_defaults(func=continuous)

    ## SIGNAL
    s_parser = subparsers.add_parser('signal', description=signal_description)
    add_data_args(s_parser)
    s_parser.add_argument('--method', choices=['lambda', 'K'], default='lambda',
                          help="Pagel's lambda or Blomberg's K, default lambda")
    s_parser.add_argument('--nsim', type=int, default=1000, help="number of permutations for the test of K")
    s_parser.add_argument('--rng-seed', type=int, help="random seed for the permutations")
    add_common_args(s_parser)
    s_parser.set_defaults(func=signal)

    ## PGLS
    p_parser = subparsers.add_parser('pgls', description=pgls_description)
    add_data_args(p_parser, trait=False)
    p_parser.add_argument('--formula', required=True, type=str,
                          help="regression formula, e.g. 'log_mass ~ log_length'")
    p_parser.add_argument('--lambda', dest='lambda_', default='1', help="Pagel's lambda or 'ML', default 1")
    p_parser.add_argument('--kappa', default='1', help="Pagel's kappa or 'ML', default 1")
    p_parser.add_argument('--delta', default='1', help="Pagel's delta or 'ML', default 1")
    add_common_args(p_parser)
    p_parser.set_defaults(func=regression)

    ## TNRS
    n_parser = subparsers.add_parser('tnrs', description=tnrs_description)
    n_parser.add_argument('--names', nargs='+', help="taxon names to resolve")
    n_parser.add_argument('--names-file', type=str, help="csv or tsv file with taxon names")
    n_parser.add_argument('--name-column', type=str,
                          help="column of --names-file with the names, default first column")
    n_parser.add_argument('--context', type=str, help="taxonomic context, e.g. 'Mammals'")
    n_parser.add_argument('--approximate', action='store_true', help="allow approximate matching of names")
    n_parser.add_argument('--tree-out', type=str,
                          help="filename to write the induced subtree of the matched taxa to")
    n_parser.add_argument('--grafen', action='store_true',
                          help="assign Grafen branch lengths to the induced subtree")
    n_parser.add_argument('--api-url', type=str, help="root of the Open Tree API")
    n_parser.add_argument('--timeout', type=float, help="seconds to wait for the API to respond")
    add_common_args(n_parser)
    n_parser.set_defaults(func=tnrs)

    ## PLOT
    g_parser = subparsers.add_parser('plot', description=plot_description)
    add_data_args(g_parser)
    g_parser.add_argument('--kind', choices=['tips', 'contmap'], default='tips',
                          help="trait values as markers at the tips or mapped onto the branches")
    g_parser.add_argument('--plot', default="tree_traits.pdf",
                          help="filename to save the plot to. Suffix will determine format"
                               " (choices pdf, png, svg, default=pdf)")
    add_common_args(g_parser)
    g_parser.set_defaults(func=plot)

    # make a version subcommand
    v_parser = subparsers.add_parser('version', description='print version')
    v_parser.set_defaults(func=lambda x: print(phylocomp.version))

    def toplevel(params):
        parser.print_help()
        return 0
    parser.set_defaults(func=toplevel)

    return parser
