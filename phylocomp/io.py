import os
from io import StringIO
import pandas as pd
import requests
from Bio import Phylo
from phylocomp import config as pcconf

nexus_suffixes = ['nex', 'nexus', 'tre', 'trees']


def is_url(source):
    return isinstance(source, str) and source.split('://')[0].lower() in ['http', 'https']


def fetch_text(url, timeout=None):
    """
    Download a text file (e.g. a tree or a trait table from a public
    archive) and return its content as a string.

    Parameters
    ----------
     url : str
        http(s) address of the file

     timeout : float, optional
        seconds to wait for the server, defaults to config.HTTP_TIMEOUT

    Raises
    ------
    requests.HTTPError
        if the server responds with an error status
    """
    response = requests.get(url, timeout=timeout or pcconf.HTTP_TIMEOUT)
    response.raise_for_status()
    return response.text


def _parse_tree_string(tree_str, fmt):
    try:
        return Phylo.read(StringIO(tree_str), fmt)
    except Exception:
        if fmt=='newick':
            return Phylo.read(StringIO(tree_str), 'nexus')
        raise


def read_tree(source, fmt=None):
    '''
    Load a phylogenetic tree.

    Parameters
    ----------
     source : str, Bio.Phylo.BaseTree.Tree
        a tree object (returned as is), the name of a newick or nexus file,
        an http(s) URL pointing to such a file, or a newick string.

     fmt : str, optional
        'newick' or 'nexus'. If not given, the format is guessed from the
        suffix with newick as default and nexus as fallback.

    Returns
    -------
    Bio.Phylo.BaseTree.Tree
    '''
    if isinstance(source, Phylo.BaseTree.Tree):
        return source
    if not isinstance(source, str):
        raise ValueError('read_tree: could not load tree! input was '+str(source))

    if fmt is None:
        fmt = 'nexus' if source.split('?')[0].split('.')[-1].lower() in nexus_suffixes else 'newick'

    if is_url(source):
        return _parse_tree_string(fetch_text(source), fmt)
    elif os.path.isfile(source):
        try:
            return Phylo.read(source, fmt)
        except Exception:
            if fmt=='newick':
                try:
                    return Phylo.read(source, 'nexus')
                except Exception:
                    pass
            raise ValueError('read_tree: could not load tree, format needs to be nexus or newick! input was '+source)
    elif source.strip().endswith(';'):
        return Phylo.read(StringIO(source.strip()), 'newick')
    else:
        raise ValueError('read_tree: could not load tree! input was '+str(source))


def read_traits(source, sep=None, **kwargs):
    """
    Read a table of species traits from a csv/tsv file or URL.

    Parameters
    ----------
     source : str
        file name or http(s) URL
     sep : str, optional
        column separator. Tab for files ending in .tsv or .txt, comma otherwise
     **kwargs
        passed on to pandas.read_csv

    Returns
    -------
    pandas.DataFrame
    """
    if sep is None:
        sep = '\t' if source.split('?')[0].split('.')[-1].lower() in ['tsv', 'txt', 'tab'] else ','
    kwargs.setdefault('skipinitialspace', True)
    if is_url(source):
        return pd.read_csv(StringIO(fetch_text(source)), sep=sep, **kwargs)
    if not os.path.isfile(source):
        raise FileNotFoundError("file with traits does not exist: "+source)
    return pd.read_csv(source, sep=sep, **kwargs)


def write_tree(tree, fname, fmt='newick', **kwargs):
    """write tree to file, internal auxiliary attributes are ignored by Bio.Phylo"""
    Phylo.write(tree, fname, fmt, **kwargs)
    return fname
