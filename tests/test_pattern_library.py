"""
Tests for the pattern library's recogniser tables and helpers.
"""
import pytest

from services.pattern_library import (
    PatternLibrary, ClassificationRuleEngine, CLASSIFICATION_RULES, TABLE_ROW_PATTERN, INLINE_NODE_PATTERN
)


@pytest.fixture
def patterns():
    return PatternLibrary()


class TestNodeShapes:
    def test_table_row_allows_extra_columns(self):
        match = TABLE_ROW_PATTERN.search('| Web-01 | Ubuntu 22.04 | x64 | 10.0.1.100 | Server | http, https |')

        assert match is not None
        assert match.groups() == ('Web-01', '10.0.1.100', 'Server', 'http, https')

    def test_table_header_is_not_a_row(self):
        assert TABLE_ROW_PATTERN.search('| Hostname | IP Address | Role | Services |') is None

    def test_inline_node(self):
        match = INLINE_NODE_PATTERN.search('stage on Kali-01 (192.168.100.10) first')

        assert match.group(1) == 'Kali-01'
        assert match.group(2) == '192.168.100.10'


class TestHelpers:
    @pytest.mark.parametrize('ip, expected', [
        ('10.0.1.100', True),
        ('255.255.255.255', True),
        ('300.1.1.1', False),
        ('10.0.1', False),
        ('', False),
        (None, False),
    ])
    def test_is_valid_ipv4(self, ip, expected):
        assert PatternLibrary.is_valid_ipv4(ip) is expected

    def test_extract_services_web_and_https(self, patterns):
        assert patterns.extract_services('http, https') == ['web', 'https']

    def test_extract_services_port_tokens(self, patterns):
        services = patterns.extract_services('ssh, port-8443')

        assert 'ssh' in services
        assert 'port-8443' in services

    def test_extract_services_empty(self, patterns):
        assert patterns.extract_services('') == []

    def test_default_port(self, patterns):
        assert patterns.default_port('ssh') == 22
        assert patterns.default_port('unknown') is None

    @pytest.mark.parametrize('context, expected', [
        ('tunnel over HTTPS', 'HTTPS'),
        ('plain http traffic', 'HTTP'),
        ('admin login via SSH', 'SSH'),
        ('queries on port 3306', 'MYSQL'),
        ('nothing specific', 'TCP'),
    ])
    def test_detect_protocol(self, patterns, context, expected):
        assert patterns.detect_protocol(context) == expected

    def test_is_encrypted_protocol(self):
        assert PatternLibrary.is_encrypted_protocol('ssh')
        assert PatternLibrary.is_encrypted_protocol('HTTPS')
        assert not PatternLibrary.is_encrypted_protocol('HTTP')
        assert not PatternLibrary.is_encrypted_protocol(None)

    def test_context_window(self, patterns):
        text = 'a' * 300 + 'Web-01' + 'b' * 300

        window = patterns.get_context_window(text, 'web-01', window_size=10)

        assert window == 'a' * 10 + 'Web-01' + 'b' * 10

    def test_context_window_missing_keyword(self, patterns):
        assert patterns.get_context_window('some text', 'DC-01') == ''

    def test_detect_role_and_enclave(self, patterns):
        assert patterns.detect_role('Domain Controller') == 'domainController'
        assert patterns.detect_role('Workstation') == 'workstation'
        assert patterns.detect_enclave('hosted in the DMZ segment') == 'dmz'
        assert patterns.detect_enclave('nothing') is None

    def test_detect_os_family(self):
        assert PatternLibrary.detect_os_family('Ubuntu 22.04') == 'linux'
        assert PatternLibrary.detect_os_family('Windows 10') == 'windows'


class TestClassification:
    def test_attacker_role_is_actor(self, patterns):
        assert patterns.classify_node_type('Host-1', 'Attacker') == 'actor'

    def test_database_context_is_store(self, patterns):
        assert patterns.classify_node_type('Host-2', '', 'runs the MySQL database') == 'store'

    def test_default_is_process(self, patterns):
        assert patterns.classify_node_type('Web-01', 'Server', 'hosts the portal') == 'process'

    def test_rule_order_attacker_wins(self):
        engine = ClassificationRuleEngine(CLASSIFICATION_RULES)

        assert engine.explain('attacker dumps the database') == ('actor', 'attacker')
        assert engine.explain('plain host') == ('process', None)

    def test_summary_counts_tables(self, patterns):
        summary = patterns.summary()

        assert summary['connectionPatterns'] == 6
        assert summary['classificationRules'] == 3
