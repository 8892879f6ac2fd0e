"""
Tests for the command-line import and its file helpers.
"""
import json

import pytest

from t2t_import import main
from utils.file_utils import allowed_file, default_output_path, read_json_file, read_text_file


class TestCli:
    def test_text_plan_to_diagram(self, tmp_path, sample_otp_text):
        plan = tmp_path / 'mission.md'
        plan.write_text(sample_otp_text, encoding='utf-8')
        output = tmp_path / 'out' / 'mission.json'

        exit_code = main([str(plan), '--output', str(output), '--project-name', 'Mission One', '--pretty'])

        assert exit_code == 0
        model = json.loads(output.read_text(encoding='utf-8'))
        assert model['summary']['title'] == 'Mission One'
        assert model['detail']['diagrams'][0]['cells']

    def test_json_topology_with_preserved_layout(self, tmp_path):
        source = tmp_path / 'topology.json'
        source.write_text(json.dumps({
            'nodes': [{'id': 'a', 'name': 'Analyst', 'type': 'actor', 'x': 150, 'y': 250}],
            'connections': []
        }), encoding='utf-8')
        output = tmp_path / 'topology_out.json'

        assert main([str(source), '--output', str(output), '--layout', 'preserve', '--no-metadata']) == 0

        cell = json.loads(output.read_text(encoding='utf-8'))['detail']['diagrams'][0]['cells'][0]
        assert cell['position'] == {'x': 150, 'y': 250}
        assert 'metadata' not in cell['data']

    def test_unsupported_extension(self, tmp_path):
        source = tmp_path / 'plan.pdf'
        source.write_bytes(b'%PDF-1.4')

        assert main([str(source), '--output', str(tmp_path / 'x.json')]) == 1

    def test_unrecognized_json(self, tmp_path):
        source = tmp_path / 'odd.json'
        source.write_text('{"foo": "bar"}', encoding='utf-8')
        output = tmp_path / 'odd_out.json'

        assert main([str(source), '--output', str(output)]) == 1
        assert not output.exists()

    def test_plan_without_systems(self, tmp_path):
        plan = tmp_path / 'empty.txt'
        plan.write_text('Nothing but prose here.', encoding='utf-8')

        assert main([str(plan), '--output', str(tmp_path / 'empty.json')]) == 1

    def test_invalid_layout_choice(self, tmp_path):
        with pytest.raises(SystemExit):
            main([str(tmp_path / 'plan.txt'), '--layout', 'spiral'])


class TestFileUtils:
    def test_allowed_file(self):
        assert allowed_file('plan.MD')
        assert allowed_file('export.json')
        assert not allowed_file('plan.docx')
        assert not allowed_file('README')

    def test_default_output_path(self, tmp_path):
        path = default_output_path('/plans/mission.txt', str(tmp_path))

        assert path == str(tmp_path / 'mission_threatmodel.json')

    def test_read_text_missing(self, tmp_path):
        text, error = read_text_file(str(tmp_path / 'nope.txt'))

        assert text is None
        assert 'File not found' in error

    def test_read_text_latin1(self, tmp_path):
        plan = tmp_path / 'legacy.txt'
        plan.write_bytes('Café-01 (10.0.0.1)'.encode('latin-1'))

        text, error = read_text_file(str(plan))

        assert error is None
        assert text.startswith('Caf')

    def test_read_invalid_json(self, tmp_path):
        source = tmp_path / 'broken.json'
        source.write_text('{"nodes": [', encoding='utf-8')

        data, error = read_json_file(str(source))

        assert data is None
        assert error.startswith('Invalid JSON format')
