"""
Client for the taxonomic name resolution service (TNRS) and the synthetic
tree of the Open Tree of Life (https://opentreeoflife.github.io/).
"""
import re
import numpy as np
import pandas as pd
import requests
from phylocomp import config as pcconf
from phylocomp import TaxonomyError, MissingDataError
from .tree_utils import tree_from_newick, prepare_tree
from .utils import default_logger

ott_suffix = re.compile(r'[_ ]?ott(\d+)$')
match_columns = ['search_string', 'unique_name', 'approximate_match', 'ott_id',
                 'is_synonym', 'flags', 'number_matches']


class OpenTreeClient(object):
    """
    Minimal client of the Open Tree of Life web services (API v3). All
    requests are blocking JSON POST requests without retries.
    """

    def __init__(self, base_url=None, timeout=None, session=None, logger=None):
        """
        Parameters
        ----------
         base_url : str, optional
            root of the API, defaults to config.OTOL_API_URL
         timeout : float, optional
            seconds to wait for a response, defaults to config.HTTP_TIMEOUT
         session : requests.Session, optional
            session to use for the requests
         logger : callable, optional
        """
        self.base_url = (base_url or pcconf.OTOL_API_URL).rstrip('/')
        self.timeout = timeout or pcconf.HTTP_TIMEOUT
        self.session = session or requests.Session()
        self.logger = logger or default_logger


    def _post(self, endpoint, payload):
        url = self.base_url + '/' + endpoint.lstrip('/')
        self.logger("OpenTreeClient: POST %s"%url, 3)
        response = self.session.post(url, json=payload, timeout=self.timeout)
        if not response.ok:
            try:
                msg = response.json().get('message', response.text)
            except ValueError:
                msg = response.text
            raise TaxonomyError("OpenTreeClient: request to %s failed with status %d: %s"
                                %(endpoint, response.status_code, msg), status_code=response.status_code)
        return response.json()


    def about(self):
        """description of the current synthetic tree"""
        return self._post('tree_of_life/about', {})


    def match_names(self, names, context_name=None, do_approximate_matching=False,
                    include_suppressed=False):
        """
        Match taxon names to the Open Tree Taxonomy.

        Parameters
        ----------
         names : list of str
            names to resolve
         context_name : str, optional
            taxonomic context to restrict the search to, e.g. 'Mammals'
         do_approximate_matching : bool
            allow fuzzy matching of misspelled names
         include_suppressed : bool
            include taxa that are suppressed in the synthetic tree

        Returns
        -------
        pandas.DataFrame
            one row per input name (in input order) with columns search_string,
            unique_name, approximate_match, ott_id, is_synonym, flags and
            number_matches. Unmatched names have no ott_id and zero matches.
        """
        names = [str(n) for n in names]
        if len(names)==0:
            raise MissingDataError("OpenTreeClient.match_names: no names to match")
        payload = {'names': names,
                   'do_approximate_matching': bool(do_approximate_matching),
                   'include_suppressed': bool(include_suppressed)}
        if context_name:
            payload['context_name'] = context_name
        res = self._post('tnrs/match_names', payload)

        by_name = {r['name']:r.get('matches', []) for r in res.get('results', [])}
        rows = []
        for name in names:
            matches = by_name.get(name, [])
            if len(matches)==0:
                rows.append({'search_string':name.lower(), 'unique_name':None, 'approximate_match':None,
                             'ott_id':np.nan, 'is_synonym':None, 'flags':'', 'number_matches':0})
                continue
            # prefer exact over approximate matches, keep the service's order otherwise
            best = sorted(matches, key=lambda m:bool(m.get('is_approximate_match', False)))[0]
            taxon = best.get('taxon', {})
            rows.append({'search_string':name.lower(),
                         'unique_name':taxon.get('unique_name') or taxon.get('name'),
                         'approximate_match':bool(best.get('is_approximate_match', False)),
                         'ott_id':taxon.get('ott_id'),
                         'is_synonym':bool(best.get('is_synonym', False)),
                         'flags':', '.join(taxon.get('flags', [])),
                         'number_matches':len(matches)})

        unmatched = [r['search_string'] for r in rows if r['number_matches']==0]
        if unmatched:
            self.logger("***WARNING: OpenTreeClient.match_names: no match for %s"%(", ".join(unmatched)), 1, warn=True)
        table = pd.DataFrame(rows, columns=match_columns)
        table['ott_id'] = table['ott_id'].astype('Int64')
        return table


    def taxon_info(self, ott_id, include_lineage=False):
        """information on a taxon of the Open Tree Taxonomy"""
        return self._post('taxonomy/taxon_info', {'ott_id': int(ott_id),
                                                  'include_lineage': bool(include_lineage)})


    def induced_subtree(self, ott_ids=None, node_ids=None, label_format='name_and_id',
                        strip_ott_ids=True, underscores=True):
        """
        Fetch the subtree of the synthetic tree of life connecting a set of taxa.

        Parameters
        ----------
         ott_ids : list of int, optional
            Open Tree Taxonomy identifiers
         node_ids : list of str, optional
            identifiers of nodes of the synthetic tree
         label_format : str
            'name', 'id' or 'name_and_id'
         strip_ott_ids : bool
            remove the '_ott<id>' suffix from tip names. The id is kept as attribute ott_id.
         underscores : bool
            if False, underscores in tip names are replaced by spaces

        Returns
        -------
        Bio.Phylo.BaseTree.Tree
            tree without branch lengths, see tree_utils.grafen_branch_lengths
        """
        payload = {'label_format': label_format}
        if ott_ids is not None:
            payload['ott_ids'] = [int(x) for x in ott_ids]
        if node_ids is not None:
            payload['node_ids'] = list(node_ids)
        if len(payload.get('ott_ids', []))+len(payload.get('node_ids', []))<2:
            raise MissingDataError("OpenTreeClient.induced_subtree: at least two taxa are required")
        res = self._post('tree_of_life/induced_subtree', payload)
        if res.get('broken'):
            self.logger("***WARNING: OpenTreeClient.induced_subtree: taxa not monophyletic in the synthetic tree: %s"
                        %(", ".join(res['broken'].keys())), 2, warn=True)

        tree = tree_from_newick(res['newick'])
        for l in tree.get_terminals():
            if l.name is None:
                continue
            name = l.name.strip("'")
            m = ott_suffix.search(name)
            l.ott_id = int(m.group(1)) if m else None
            if strip_ott_ids and m and len(name)>len(m.group(0)):
                name = name[:m.start()]
            l.name = name if underscores else name.replace('_', ' ')
        return tree


    def resolve_tree(self, names, context_name=None, do_approximate_matching=False,
                     use_input_names=True):
        """
        Match names to the taxonomy and fetch the induced subtree of all matched taxa.

        Parameters
        ----------
         names : list of str
         use_input_names : bool
            label tips with the names as passed in instead of the taxonomy names,
            such that they match the trait table

        Returns
        -------
        tuple
            table of matches and tree
        """
        names = [str(n) for n in names]
        matches = self.match_names(names, context_name=context_name,
                                   do_approximate_matching=do_approximate_matching)
        matches['input_name'] = names
        found = matches.dropna(subset=['ott_id'])
        tree = self.induced_subtree(ott_ids=list(found['ott_id']), label_format='name_and_id')
        if use_input_names:
            ott_to_name = dict(zip(found['ott_id'].astype(int), found['input_name']))
            for l in tree.get_terminals():
                if getattr(l, 'ott_id', None) in ott_to_name:
                    l.name = ott_to_name[l.ott_id]
        prepare_tree(tree)
        return matches, tree
