import time, sys
from copy import deepcopy
import numpy as np
import pandas as pd
from phylocomp import config as pcconf
from phylocomp import MissingDataError
from .io import read_tree, read_traits
from .tree_utils import prepare_tree, drop_tips, vcv

name_column_candidates = ['name', 'species', 'taxon', 'tip_label', 'strain']


def guess_name_column(data, name_column=None):
    '''
    determine the column of the trait table that holds the taxon names.
    An explicitly specified column takes precedence, otherwise the first of
    the standard names found is used, and otherwise the first column.
    '''
    if name_column:
        if name_column in data.columns:
            return name_column
        raise MissingDataError("specified column '%s' for taxon name not found in table with columns: "%name_column
                               + " ".join(map(str, data.columns)))
    for c in name_column_candidates:
        if c in data.columns:
            return c
    return data.columns[0]


def _data_names(data, name_column=None):
    if isinstance(data, pd.Series):
        return [str(x) for x in data.index]
    col = guess_name_column(data, name_column)
    return [str(x) for x in data[col]]


def name_check(tree, data, name_column=None):
    """
    Compare tip labels of a tree with the taxon names in a trait table.

    Parameters
    ----------
     tree : str, Bio.Phylo.BaseTree.Tree
        tree or file/URL to read it from
     data : pandas.DataFrame, pandas.Series
        trait table. For a Series, names are taken from the index
     name_column : str, optional
        column with taxon names

    Returns
    -------
    dict
        sorted lists 'tree_not_data' and 'data_not_tree'. Both are empty if
        the names match perfectly.
    """
    tree = read_tree(tree)
    tips = [l.name for l in tree.get_terminals()]
    if not all(tips):
        raise MissingDataError("name_check: %d tips of the tree have no label"%(len(tips) - len([t for t in tips if t])))
    tips = set(tips)
    names = set(_data_names(data, name_column))
    return {'tree_not_data': sorted(tips - names),
            'data_not_tree': sorted(names - tips)}


class TreeData(object):
    """
    Class that joins a phylogenetic tree and a table of species traits.
    Tips without data are pruned from the tree, rows without a tip are
    removed from the table, and the table is reordered to match the order
    of tips in the tree.
    """

    def __init__(self, tree, data, name_column=None, verbose=pcconf.VERBOSE, log=None):
        """
        TreeData constructor.

        Parameters
        ----------
        tree : str, Bio.Phylo.Tree
           Phylogenetic tree. A string is interpreted as file name, URL, or
           newick string as accepted by io.read_tree.

        data : str, pandas.DataFrame
           Trait table. A string is interpreted as file name or URL.

        name_column : str, optional
           Column holding the taxon names. Guessed if not given.

        verbose : int
           Verbosity level as number from 0 (lowest) to 10 (highest).

        Raises
        ------
        MissingDataError
            if taxon names are duplicated or fewer than three tips remain
        """
        self.t_start = time.time()
        self.verbose = verbose
        self.log = log
        self.log_messages = set()
        self.logger("TreeData: set-up",1)
        self._vcv = None

        if isinstance(data, str):
            data = read_traits(data)
        self.name_column = guess_name_column(data, name_column)
        self.logger("TreeData: using column '%s' as taxon name. This needs to match the taxa in the tree!"%self.name_column, 2)

        tmp_data = data.copy()
        tmp_data[self.name_column] = tmp_data[self.name_column].astype(str)
        duplicated = tmp_data[self.name_column].duplicated()
        if duplicated.any():
            raise MissingDataError("TreeData: duplicated taxon names in trait table: "
                                   + ", ".join(sorted(set(tmp_data.loc[duplicated, self.name_column]))))
        tmp_data = tmp_data.set_index(self.name_column)

        in_tree = deepcopy(read_tree(tree))
        tips = [l.name for l in in_tree.get_terminals()]
        if not all(tips):
            raise MissingDataError("TreeData: %d tips of the tree have no label"%(len(tips) - len([t for t in tips if t])))
        if len(set(tips))<len(tips):
            raise MissingDataError("TreeData: tip labels of the tree are not unique")

        mismatch = name_check(in_tree, pd.Series(np.nan, index=tmp_data.index))
        self.dropped_tips = mismatch['tree_not_data']
        self.dropped_rows = mismatch['data_not_tree']
        if len(tips) - len(self.dropped_tips) < 3:
            raise MissingDataError("TreeData: only %d tips of the tree have matching rows in the trait table."
                                   " Are you sure the data belong to the tree?"%(len(tips) - len(self.dropped_tips)))

        if self.dropped_tips:
            self.logger("***WARNING: TreeData: %d tips without data were dropped from the tree: %s"
                        %(len(self.dropped_tips), ", ".join(self.dropped_tips)), 1, warn=True)
            self._tree = drop_tips(in_tree, self.dropped_tips)
        else:
            self._tree = prepare_tree(in_tree)
        if self.dropped_rows:
            self.logger("***WARNING: TreeData: %d rows of the trait table are not in the tree and were dropped: %s"
                        %(len(self.dropped_rows), ", ".join(self.dropped_rows)), 1, warn=True)

        self._data = tmp_data.loc[self.tip_labels]
        self.logger("TreeData: matched %d taxa."%len(self.tip_labels), 1)


    def logger(self, msg, level, warn=False, only_once=False):
        """
        Print log message *msg* to stdout.

        Parameters
        -----------

         msg : str
            String to print on the screen

         level : int
            Log-level. Only the messages with a level higher than the
            current verbose level will be shown.

         warn : bool
            Warning flag. If True, the message will be displayed
            regardless of its log-level.

        """
        if only_once and msg in self.log_messages:
            return

        self.log_messages.add(msg)

        lw=80
        if level<self.verbose or (warn and level<=self.verbose):
            from textwrap import fill
            dt = time.time() - self.t_start
            outstr = '\n' if level<2 else ''
            initial_indent = format(dt, '4.2f')+'\t' + level*'-'
            subsequent_indent = " "*len(format(dt, '4.2f')) + "\t" + " "*level
            outstr += fill(msg, width=lw, initial_indent=initial_indent, subsequent_indent=subsequent_indent)
            print(outstr, file=sys.stdout)


    @property
    def tree(self):
        """the tree pruned to taxa present in the trait table"""
        return self._tree

    @property
    def data(self):
        """the trait table indexed by taxon name in the order of the tree tips"""
        return self._data

    @property
    def tip_labels(self):
        return [l.name for l in self._tree.get_terminals()]

    def __len__(self):
        return len(self.tip_labels)


    def trait(self, column, numeric=None):
        """
        Return a trait aligned with the tips of the tree.

        Parameters
        ----------
         column : str
            name of the column in the trait table
         numeric : bool, optional
            if True, convert to numbers and require complete data. If False,
            convert to strings with missing values replaced by config.MISSING_STATE.
            If None, the column is returned as is.

        Returns
        -------
        pandas.Series
        """
        if column not in self._data.columns:
            raise MissingDataError("TreeData.trait: column '%s' not found. Available columns are: "%column
                                   + ", ".join(map(str, self._data.columns)))
        values = self._data[column]
        if numeric:
            values = pd.to_numeric(values, errors='coerce')
            if values.isna().any():
                raise MissingDataError("TreeData.trait: non-numeric or missing values of '%s' for taxa: "%column
                                       + ", ".join(values.index[values.isna()]))
            return values.astype(float)
        elif numeric is False:
            return values.where(values.notna(), pcconf.MISSING_STATE).astype(str)
        return values


    def vcv(self):
        """phylogenetic variance-covariance matrix of the matched tree"""
        if self._vcv is None:
            self._vcv = vcv(self._tree)
        return self._vcv


    def subset(self, columns):
        """
        Return a new TreeData restricted to taxa with complete data for the given columns.
        """
        if isinstance(columns, str):
            columns = [columns]
        complete = self._data[columns].dropna()
        data = self._data.loc[complete.index].reset_index()
        return TreeData(self._tree, data, name_column=self.name_column,
                        verbose=self.verbose, log=self.log)
