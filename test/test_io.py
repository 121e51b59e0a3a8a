import pandas as pd
import pytest
import requests
from Bio import Phylo


class FakeResponse(object):
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code>=400:
            raise requests.HTTPError("status %d"%self.status_code)


def test_read_tree_string_and_file(tmp_path):
    from phylocomp.io import read_tree, write_tree
    tree = read_tree("((A:1,B:1):1,C:2);")
    assert tree.count_terminals()==3
    assert read_tree(tree) is tree

    fname = str(tmp_path/"tree.nwk")
    write_tree(tree, fname)
    tree2 = read_tree(fname)
    assert [l.name for l in tree2.get_terminals()]==['A', 'B', 'C']

    fname = str(tmp_path/"tree.nexus")
    write_tree(tree, fname, fmt='nexus')
    assert read_tree(fname).count_terminals()==3

    with pytest.raises(ValueError):
        read_tree("not_a_file.nwk")


def test_read_traits(tmp_path):
    from phylocomp.io import read_traits
    fname = tmp_path/"traits.tsv"
    fname.write_text("species\tmass\nA\t1.0\nB\t2.0\n")
    data = read_traits(str(fname))
    assert list(data.columns)==['species', 'mass']
    assert data.shape==(2,2)

    fname = tmp_path/"traits.csv"
    fname.write_text("species, mass\nA, 1.0\nB, 2.0\n")
    data = read_traits(str(fname))
    assert list(data['species'])==['A', 'B']

    with pytest.raises(FileNotFoundError):
        read_traits(str(tmp_path/"missing.csv"))


def test_read_from_url(monkeypatch):
    from phylocomp import io
    pages = {"https://example.org/tree.nwk": "((A:1,B:1):1,C:2);",
             "https://example.org/traits.csv": "species,mass\nA,1\nB,2\nC,3\n"}
    monkeypatch.setattr(requests, 'get', lambda url, timeout=None: FakeResponse(pages[url]))
    tree = io.read_tree("https://example.org/tree.nwk")
    assert tree.count_terminals()==3
    data = io.read_traits("https://example.org/traits.csv")
    assert list(data['mass'])==[1, 2, 3]


def test_fetch_text_error(monkeypatch):
    from phylocomp import io
    monkeypatch.setattr(requests, 'get', lambda url, timeout=None: FakeResponse("not found", 404))
    with pytest.raises(requests.HTTPError):
        io.fetch_text("https://example.org/missing.nwk")
