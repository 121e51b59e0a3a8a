import pytest

match_response = {'results': [
    {'name': 'Homo sapiens',
     'matches': [{'is_approximate_match': False, 'is_synonym': False,
                  'taxon': {'ott_id': 770315, 'unique_name': 'Homo sapiens', 'flags': []}}]},
    {'name': 'Pan troglodites',
     'matches': [{'is_approximate_match': True, 'is_synonym': False,
                  'taxon': {'ott_id': 417950, 'unique_name': 'Pan troglodytes', 'flags': ['sibling_higher']}}]},
    {'name': 'Gorilla gorilla',
     'matches': [{'is_approximate_match': False, 'is_synonym': False,
                  'taxon': {'ott_id': 417969, 'unique_name': 'Gorilla gorilla', 'flags': []}}]}],
    'unmatched_names': ['Unicornus magicus']}

subtree_response = {'newick': "((Homo_sapiens_ott770315,Pan_troglodytes_ott417950)mrcaott770315ott417950,"
                              "Gorilla_gorilla_ott417969)mrcaott312031ott417969;",
                    'broken': {}}


class FakeResponse(object):
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code<400
        self.text = str(payload)

    def json(self):
        return self.payload


class FakeSession(object):
    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append((url, json, timeout))
        return self.responses[url.split('/v3/')[-1]]


def get_client(responses=None):
    from phylocomp.taxonomy import OpenTreeClient
    session = FakeSession(responses or {'tnrs/match_names': FakeResponse(match_response),
                                        'tree_of_life/induced_subtree': FakeResponse(subtree_response)})
    return OpenTreeClient(base_url="https://api.opentreeoflife.org/v3/", timeout=5, session=session), session


def test_match_names():
    client, session = get_client()
    names = ['Homo sapiens', 'Pan troglodites', 'Gorilla gorilla', 'Unicornus magicus']
    matches = client.match_names(names, context_name='Mammals', do_approximate_matching=True)
    url, payload, timeout = session.requests[0]
    assert url=="https://api.opentreeoflife.org/v3/tnrs/match_names"
    assert payload['context_name']=='Mammals'
    assert payload['do_approximate_matching'] is True
    assert timeout==5

    assert list(matches['search_string'])==[n.lower() for n in names]
    assert list(matches['ott_id'][:3])==[770315, 417950, 417969]
    assert matches['ott_id'].isna().iloc[3]
    assert matches['approximate_match'].iloc[1]
    assert matches['unique_name'].iloc[1]=='Pan troglodytes'
    assert matches['flags'].iloc[1]=='sibling_higher'
    assert list(matches['number_matches'])==[1, 1, 1, 0]


def test_induced_subtree():
    client, session = get_client()
    tree = client.induced_subtree(ott_ids=[770315, 417950, 417969])
    assert [l.name for l in tree.get_terminals()]==['Homo_sapiens', 'Pan_troglodytes', 'Gorilla_gorilla']
    assert [l.ott_id for l in tree.get_terminals()]==[770315, 417950, 417969]
    assert session.requests[0][1]=={'label_format':'name_and_id', 'ott_ids':[770315, 417950, 417969]}

    tree = client.induced_subtree(ott_ids=[770315, 417950, 417969], underscores=False)
    assert tree.get_terminals()[0].name=='Homo sapiens'

    from phylocomp import MissingDataError
    with pytest.raises(MissingDataError):
        client.induced_subtree(ott_ids=[770315])


def test_resolve_tree():
    client, session = get_client()
    names = ['Homo sapiens', 'Pan troglodites', 'Gorilla gorilla', 'Unicornus magicus']
    matches, tree = client.resolve_tree(names)
    assert list(matches['input_name'])==names
    assert [l.name for l in tree.get_terminals()]==['Homo sapiens', 'Pan troglodites', 'Gorilla gorilla']
    assert session.requests[1][1]['ott_ids']==[770315, 417950, 417969]


def test_service_error():
    from phylocomp import TaxonomyError
    client, session = get_client({'taxonomy/taxon_info': FakeResponse({'message':'ott_id not found'}, 400)})
    with pytest.raises(TaxonomyError) as err:
        client.taxon_info(1)
    assert err.value.status_code==400
    assert 'ott_id not found' in str(err.value)


def test_about_and_taxon_info():
    client, session = get_client({'tree_of_life/about': FakeResponse({'synth_id': 'opentree15.1'}),
                                  'taxonomy/taxon_info': FakeResponse({'ott_id': 770315, 'rank': 'species'})})
    assert client.about()['synth_id']=='opentree15.1'
    info = client.taxon_info(770315, include_lineage=True)
    assert info['rank']=='species'
    assert session.requests[1][1]=={'ott_id': 770315, 'include_lineage': True}
