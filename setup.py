from setuptools import setup

def get_version():
    v = "0.0.0"
    with open('phylocomp/__init__.py') as ifile:
        for line in ifile:
            if line[:7]=='version':
                v = line.split('=')[-1].strip()[1:-1]
                break
    return v

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
        name = "phylocomp",
        version = get_version(),
        description = ("Phylogenetic comparative methods: trait evolution models, "
                       "phylogenetic signal, PGLS and Open Tree of Life taxonomy"),
        long_description = long_description,
        long_description_content_type="text/markdown",
        license = "MIT",
        keywords = "phylogenetic comparative methods, trait evolution, PGLS, Mk model, Brownian motion",
        packages=['phylocomp'],
        install_requires = [
            'biopython>=1.66',
            'numpy>=1.17',
            'pandas>=1.0',
            'scipy>=1.4',
            'matplotlib>=2.0',
            'statsmodels>=0.12',
            'requests>=2.20'
        ],
        extras_require = {
            'test':['pytest'],
        },
        classifiers=[
            "Development Status :: 3 - Alpha",
            "Topic :: Scientific/Engineering :: Bio-Informatics",
            "License :: OSI Approved :: MIT License",
            "Programming Language :: Python :: 3",
            ],
        entry_points = {
            'console_scripts': ['phylocomp=phylocomp.__main__:main'],
        }
    )
