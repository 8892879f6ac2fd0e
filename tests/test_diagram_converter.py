"""
Tests for DFDIR to threat model conversion.
"""
import json

import pytest

from models.dfd_models import DFDIR, DFDElement, DFDFlow
from services.diagram_converter import ConversionError, DiagramConverter, get_stroke_color


@pytest.fixture
def converter():
    return DiagramConverter()


def cells_by_id(threat_model):
    return {cell['id']: cell for cell in threat_model['detail']['diagrams'][0]['cells']}


class TestConvert:
    def test_document_shape(self, converter, sample_dfdir):
        model = converter.convert(sample_dfdir, {'project_name': 'Mission One', 'project_owner': 'Blue Team'})

        assert model['version'] == '2.5.0'
        assert model['summary']['title'] == 'Mission One'
        assert model['summary']['owner'] == 'Blue Team'
        diagram = model['detail']['diagrams'][0]
        assert diagram['id'] == 0
        assert diagram['diagramType'] == 'STRIDE'
        assert diagram['title'] == 'Imported Topology'
        assert len(diagram['cells']) == 5

    def test_node_cells(self, converter, sample_dfdir):
        cells = cells_by_id(converter.convert(sample_dfdir))

        attacker = cells['attacker']
        assert attacker['shape'] == 'actor'
        assert attacker['position'] == {'x': 700, 'y': 100}
        assert attacker['size'] == {'width': 160, 'height': 80}
        assert attacker['zIndex'] == 1
        assert attacker['attrs']['text']['text'] == 'Kali-01'
        assert attacker['data']['type'] == 'tm.Actor'
        assert cells['db']['data']['type'] == 'tm.Store'

    def test_confidence_colours(self, converter, sample_dfdir):
        cells = cells_by_id(converter.convert(sample_dfdir))

        assert cells['attacker']['attrs']['body']['stroke'] == '#333333'
        assert cells['web']['attrs']['body']['stroke'] == '#FFA726'
        assert cells['db']['attrs']['body']['stroke'] == '#E53935'

    def test_flow_cells(self, converter, sample_dfdir):
        cells = cells_by_id(converter.convert(sample_dfdir))

        encrypted = cells['flow-1']
        assert encrypted['shape'] == 'flow'
        assert encrypted['zIndex'] == 10
        assert encrypted['source'] == {'id': 'attacker'}
        assert encrypted['target'] == {'id': 'web'}
        assert encrypted['attrs']['line']['stroke'] == '#2E7D32'
        assert encrypted['attrs']['line']['strokeDasharray'] == '5 5'
        assert encrypted['labels'][0]['attrs']['text']['text'] == 'HTTPS'
        assert encrypted['data']['description'] == 'Protocol: HTTPS | Encrypted | Public Network'

        plain = cells['flow-2']
        assert plain['attrs']['line']['stroke'] == '#333333'
        assert 'strokeDasharray' not in plain['attrs']['line']

    def test_metadata_included_by_default(self, converter, sample_dfdir):
        cells = cells_by_id(converter.convert(sample_dfdir))

        metadata = cells['attacker']['data']['metadata']
        assert metadata['ipAddress'] == '192.168.100.10'
        assert metadata['confidence'] == 95
        assert metadata['role'] == 'Attacker'
        assert cells['flow-1']['data']['metadata']['sourceNode'] == 'Kali-01'

    def test_metadata_can_be_omitted(self, converter, sample_dfdir):
        cells = cells_by_id(converter.convert(sample_dfdir, {'include_metadata': False}))

        assert all('metadata' not in cell['data'] for cell in cells.values())

    def test_imported_flags_carried_over(self, converter):
        dfdir = DFDIR('flags')
        dfdir.add_element(DFDElement(
            id='a', name='Admin', type='actor',
            metadata={'privilegeLevel': 'admin', 'outOfScope': True, 'threats': [{'title': 'Spoofing'}]}
        ))

        data = cells_by_id(converter.convert(dfdir))['a']['data']

        assert data['privilegeLevel'] == 'admin'
        assert data['outOfScope'] is True
        assert data['threats'] == [{'title': 'Spoofing'}]

    def test_project_description_has_statistics(self, converter, sample_dfdir):
        description = converter.convert(sample_dfdir)['summary']['description']

        assert 'Extraction Statistics:' in description
        assert '- Elements: 3 (1 actors, 1 processes, 1 stores)' in description
        assert '- Elements Missing IP: 1' in description

    def test_element_descriptions(self, sample_dfdir):
        web = sample_dfdir.get_element_by_id('web')
        db = sample_dfdir.get_element_by_id('db')

        assert DiagramConverter.build_element_description(web) == 'IP: 10.0.1.100 | Services: web, https'
        assert DiagramConverter.build_element_description(db) == 'Data store'


class TestConversionErrors:
    def test_dangling_flow_aborts(self, converter):
        dfdir = DFDIR('broken')
        dfdir.add_element(DFDElement(id='a', name='A', type='process'))
        dfdir.add_flow(DFDFlow(id='f', source_id='missing-id', target_id='a'))

        with pytest.raises(ConversionError) as excinfo:
            converter.convert(dfdir)

        message = str(excinfo.value)
        assert message.startswith('DFDIR validation failed')
        assert 'Flow 0' in message
        assert 'missing-id' in message
        assert excinfo.value.errors == ['Flow 0: Source element missing-id not found']

    def test_empty_dfdir_aborts(self, converter):
        with pytest.raises(ConversionError, match='DFDIR contains no elements'):
            converter.convert(DFDIR('empty'))


class TestValidationAndSerialization:
    def test_convert_and_validate(self, converter, sample_dfdir):
        outcome = converter.convert_and_validate(sample_dfdir)

        assert outcome['validation'].valid
        assert outcome['threat_model']['detail']['diagrams'][0]['cells']

    def test_export_import_json(self, converter, sample_dfdir):
        model = converter.convert(sample_dfdir)

        compact = DiagramConverter.export_json(model, pretty=False)

        assert '\n' not in compact
        assert DiagramConverter.import_json(compact) == model
        assert json.loads(DiagramConverter.export_json(model)) == model

    def test_import_invalid_json(self):
        with pytest.raises(ConversionError, match='JSON parsing failed'):
            DiagramConverter.import_json('{not json')


@pytest.mark.parametrize('confidence, colour', [
    (100, '#333333'),
    (85, '#333333'),
    (84, '#FFA726'),
    (70, '#FFA726'),
    (69, '#E53935'),
    (0, '#E53935'),
])
def test_stroke_colour_tiers(confidence, colour):
    assert get_stroke_color(confidence) == colour
