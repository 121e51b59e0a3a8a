import os

VERBOSE = 3
DEBUG = False

BIG_NUMBER = 1e10
TINY_NUMBER = 1e-12
MIN_LOG = -1e8 # minimal log value

# relative spread of root-to-tip distances tolerated for an ultrametric tree
ULTRAMETRIC_TOL = 1e-6

# state string used for tips without trait information
MISSING_STATE = '?'

# discrete (Mk) models: transition rates are optimized on log scale. The upper
# bound is expressed in multiples of 1/tree height.
MK_MIN_RATE = 1e-9
MK_MAX_RATE = 1e3
N_STARTS = 3

# continuous models
OU_MIN_ALPHA = 1e-8
OU_MAX_ALPHA = 100      # in units of 1/tree height
EB_MIN_RATE_FRACTION = 1e-5  # maximal decay of the rate across the height of the tree
EB_MAX_A = -1e-6
LAMBDA_BOUNDS = (0.0, 1.0)
KAPPA_BOUNDS = (0.0, 1.0)
DELTA_BOUNDS = (1e-4, 3.0)
MIN_SIGSQ = 1e-12

# pgls branch length transformations (bounds as in caper)
PGLS_LAMBDA_BOUNDS = (1e-6, 1.0)
PGLS_KAPPA_BOUNDS = (1e-6, 3.0)
PGLS_DELTA_BOUNDS = (1e-6, 3.0)

# phylogenetic signal
N_SIM = 1000

# Open Tree of Life
OTOL_API_URL = os.environ.get("PHYLOCOMP_OTOL_URL", "https://api.opentreeoflife.org/v3").rstrip('/')
HTTP_TIMEOUT = float(os.environ.get("PHYLOCOMP_HTTP_TIMEOUT", 30))

