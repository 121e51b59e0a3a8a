version="0.1.0"
## Here we define an error class for phylocomp errors, MissingData, UnknownMethod and NotReady errors
## are all due to incorrect calling of phylocomp functions or input data that does not fit our base assumptions.
## Errors marked as PhyloCompUnknownError might be due to data not fulfilling base assumptions or due
## to bugs in phylocomp. Please report them to the developers if they persist.
class PhyloCompError(Exception):
    """
    PhyloCompError class
    Parent class for more specific errors
    Raised when phylocomp is used incorrectly in contrast with `PhyloCompUnknownError`
    `PhyloCompUnknownError` is raised when the reason of the error is unknown, could indicate bug
    """
    pass

class MissingDataError(PhyloCompError):
    """MissingDataError class raised when tree or trait data are missing or don't match"""
    pass

class UnknownMethodError(PhyloCompError):
    """UnknownMethodError class raised when an unknown model or method is requested"""
    pass

class NotReadyError(PhyloCompError):
    """NotReadyError class raised when results are requested before inference"""
    pass

class TaxonomyError(PhyloCompError):
    """TaxonomyError class raised when the taxonomic name resolution service returns an error"""
    def __init__(self, msg, status_code=None):
        super(TaxonomyError, self).__init__(msg)
        self.status_code = status_code

class PhyloCompUnknownError(Exception):
    """PhyloCompUnknownError class raised when model fitting fails for an unknown reason. This might be due to data not fulfilling base assumptions or due to bugs in phylocomp. Please report them to the developers if they persist."""
    pass

import os, sys
recursion_limit = os.environ.get("PHYLOCOMP_RECURSION_LIMIT")
if recursion_limit:
    sys.setrecursionlimit(int(recursion_limit))
else:
    sys.setrecursionlimit(max(sys.getrecursionlimit(), 10000))

from .io import read_tree, read_traits, write_tree
from .treedata import TreeData, name_check
from .discrete import MkModel, fit_discrete
from .continuous import fit_continuous, phylo_signal, ancestral_states_bm
from .pgls import pgls
from .taxonomy import OpenTreeClient
from .utils import compare_models
from .argument_parser import make_parser
