#!/usr/bin/env python
"""
Stub function and module used as a setuptools entry point.
"""
import sys
from phylocomp import make_parser


# Entry point for setuptools-installed script
def main(args=None):
    parser = make_parser()

    params = parser.parse_args(args)

    # Import matplotlib after parsing cli args
    # to speed up time till error if there's an arg error
    import matplotlib
    matplotlib.use("AGG")

    return_code = params.func(params)

    sys.exit(return_code)


# Run when called as `python -m phylocomp`
if __name__ == "__main__":
    main()
