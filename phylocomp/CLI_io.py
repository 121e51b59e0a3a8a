import os, sys
from datetime import datetime
from .io import write_tree


def get_outdir(params, suffix='_phylocomp'):
    if params.outdir:
        if os.path.exists(params.outdir):
            if os.path.isdir(params.outdir):
                return params.outdir.rstrip('/') + '/'
            else:
                print("designated output location %s is not a directory"%params.outdir, file=sys.stderr)
        else:
            os.makedirs(params.outdir)
            return params.outdir.rstrip('/') + '/'

    outdir_stem = datetime.now().date().isoformat()
    outdir = outdir_stem + suffix.rstrip('/')+'/'
    count = 1
    while os.path.exists(outdir):
        outdir = outdir_stem + '-%04d'%count + suffix.rstrip('/')+'/'
        count += 1

    os.makedirs(outdir)
    return outdir


def export_table(table, fname, index=True):
    table.to_csv(fname, sep='\t', index=index)
    print("--- table saved as \n\t %s\n"%fname)
    return fname


def export_tree(tree, fname, fmt='newick'):
    write_tree(tree, fname, fmt)
    print("--- tree saved in %s format as \n\t %s\n"%(fmt, fname))
    return fname


def save_plot(fname):
    from matplotlib import pyplot as plt
    plt.savefig(fname)
    plt.close()
    print("--- plot saved to \n\t"+fname)
    return fname


def print_mismatch(mismatch):
    if mismatch['tree_not_data']:
        print("Tips in the tree without data (%d):\n\t"%len(mismatch['tree_not_data'])
              + "\n\t".join(mismatch['tree_not_data']))
    if mismatch['data_not_tree']:
        print("Taxa in the table that are not in the tree (%d):\n\t"%len(mismatch['data_not_tree'])
              + "\n\t".join(mismatch['data_not_tree']))
    if not (mismatch['tree_not_data'] or mismatch['data_not_tree']):
        print("Names in tree and table match.")
