"""
Pattern library for recognising hosts, services, roles and connections in
operational test plan text.

Everything here is read-only data plus pure matching functions, so a single
PatternLibrary instance can be shared by any number of extraction runs.
"""
import re
from dataclasses import dataclass
from typing import List, Dict, Optional, Pattern, Tuple

IPV4_FRAGMENT = r'[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}'
_NAME = r'[A-Za-z0-9_-]+'


def _compile(pattern: str, flags: int = re.IGNORECASE) -> Pattern:
    return re.compile(pattern, flags)


@dataclass(frozen=True)
class SignaturePattern:
    """Operating-system / device signature: a host-name shape plus template hint and default role."""
    pattern: Pattern
    template_hint: str
    default_role: str


@dataclass(frozen=True)
class InstrumentationPattern:
    """Security tooling that shows up as a node even when no host name is given."""
    pattern: Pattern
    name: str
    default_role: str


@dataclass(frozen=True)
class ServicePattern:
    pattern: Pattern
    canonical_name: str
    default_port: Optional[int]


@dataclass(frozen=True)
class ConnectionPattern:
    """Connection phrasing; arity 2 captures both ends, arity 1 only the target."""
    name: str
    pattern: Pattern
    arity: int


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    pattern: Pattern
    node_type: str


# Markdown/pipe table row: | Host | ...any columns... | IPv4 | Role | Services |
TABLE_ROW_PATTERN = _compile(
    r'\|[ \t]*([A-Za-z0-9_-]+)[ \t]*\|(?:[^|\n]*\|)*?[ \t]*(' + IPV4_FRAGMENT + r')[ \t]*\|'
    r'[ \t]*([A-Za-z][A-Za-z _/-]*?)[ \t]*\|[ \t]*([^|\n]+?)[ \t]*\|',
    0
)

# Name (IPv4)
INLINE_NODE_PATTERN = _compile(
    r'\b([A-Za-z][A-Za-z0-9_-]+)\s*\((' + IPV4_FRAGMENT + r')\)',
    0
)

_VALID_IPV4 = _compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$',
    0
)

OS_PATTERNS: List[SignaturePattern] = [
    SignaturePattern(_compile(r'\b(Kali[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'kali-linux', 'attacker'),
    SignaturePattern(_compile(r'\b(Parrot[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'parrot-os', 'attacker'),
    SignaturePattern(_compile(r'\b(DC[-_]?\d+[A-Za-z0-9_-]*)\b'), 'windows-server', 'domainController'),
    SignaturePattern(_compile(r'\b(WS[-_]?\d+[A-Za-z0-9_-]*)\b'), 'windows-10', 'workstation'),
    SignaturePattern(_compile(r'\b(Win(?:dows)?\d*[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'windows-10', 'workstation'),
    SignaturePattern(_compile(r'\b(WebSrv[-_]?[A-Za-z0-9_-]*[A-Za-z0-9]|Web[-_]\d+)\b'), 'ubuntu-server', 'server'),
    SignaturePattern(_compile(r'\b(Ubuntu[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'ubuntu-server', 'server'),
    SignaturePattern(_compile(r'\b(CentOS[-_][A-Za-z0-9_-]*[A-Za-z0-9]|RHEL[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'centos-server', 'server'),
    SignaturePattern(_compile(r'\b((?:DB|SQL)[-_]?\d+[A-Za-z0-9_-]*)\b'), 'ubuntu-server', 'database'),
    SignaturePattern(_compile(r'\b(Router[-_][A-Za-z0-9_-]*[A-Za-z0-9]|VyOS[-_][A-Za-z0-9_-]*[A-Za-z0-9]|RTR[-_]?\d+)'), 'vyos-router', 'router'),
    SignaturePattern(_compile(r'\b(FW[-_]?\d+[A-Za-z0-9_-]*|pfSense[-_][A-Za-z0-9_-]*[A-Za-z0-9]|Firewall[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'pfsense-firewall', 'firewall'),
    SignaturePattern(_compile(r'\b(SW[-_]?\d+[A-Za-z0-9_-]*|Switch[-_][A-Za-z0-9_-]*[A-Za-z0-9])'), 'generic-switch', 'switch'),
]

INSTRUMENTATION_PATTERNS: List[InstrumentationPattern] = [
    InstrumentationPattern(_compile(r'\bSecurity\s*Onion\b'), 'Security Onion', 'defender'),
    InstrumentationPattern(_compile(r'\bSplunk\b'), 'Splunk', 'defender'),
    InstrumentationPattern(_compile(r'\bWazuh\b'), 'Wazuh', 'defender'),
    InstrumentationPattern(_compile(r'\b(?:ELK|Elastic\s*Stack)\b'), 'Elastic Stack', 'defender'),
    InstrumentationPattern(_compile(r'\bZeek\b'), 'Zeek', 'sensor'),
    InstrumentationPattern(_compile(r'\bSuricata\b'), 'Suricata', 'sensor'),
    InstrumentationPattern(_compile(r'\bSnort\b'), 'Snort', 'sensor'),
    InstrumentationPattern(_compile(r'\bArkime\b'), 'Arkime', 'sensor'),
    InstrumentationPattern(_compile(r'\bNessus\b'), 'Nessus', 'scanner'),
]

# Coarse keywords, last resort for names nothing else recognised
SYSTEM_NAME_PATTERN = _compile(
    r'\b(?:Kali|Ubuntu|Windows|Server|Router|Firewall|pfSense|VyOS|DC-\d+|WS-\d+|WebSrv|FW-\d+)[A-Za-z0-9_-]*\b'
)

SERVICE_PATTERNS: List[ServicePattern] = [
    ServicePattern(_compile(r'\b(HTTP|HTTPS|Apache|Nginx|IIS|port\s*80|port\s*443|web\s*server)\b'), 'web', 80),
    ServicePattern(_compile(r'\b(HTTPS|TLS|SSL|port\s*443)\b'), 'https', 443),
    ServicePattern(_compile(r'\b(MySQL|PostgreSQL|MongoDB|MSSQL|Oracle|port\s*3306|port\s*5432|port\s*1433|database|db)\b'), 'database', 3306),
    ServicePattern(_compile(r'\b(SSH|port\s*22|openssh)\b'), 'ssh', 22),
    ServicePattern(_compile(r'\b(RDP|remote\s*desktop|port\s*3389)\b'), 'rdp', 3389),
    ServicePattern(_compile(r'\b(SMB|CIFS|file\s*sharing|port\s*445)\b'), 'smb', 445),
    ServicePattern(_compile(r'\b(DNS|port\s*53|name\s*resolution)\b'), 'dns', 53),
    ServicePattern(_compile(r'\b(LDAP|Active\s*Directory|AD|port\s*389)\b'), 'ldap', 389),
    ServicePattern(_compile(r'\b(OSPF|BGP)\b'), 'routing', None),
    ServicePattern(_compile(r'\b(metasploit|msfconsole|meterpreter)\b'), 'metasploit', 4444),
    ServicePattern(_compile(r'\b(burp|burpsuite)\b'), 'burpsuite', 8080),
]

PORT_TOKEN_PATTERN = _compile(r'\bport[\s-]*(\d{1,5})\b')

PROTOCOL_PATTERNS: List[Tuple[Pattern, str]] = [
    (_compile(r'\b(HTTPS|TLS|SSL|port\s*443)\b'), 'HTTPS'),
    (_compile(r'\b(HTTP(?!S)|port\s*80)\b'), 'HTTP'),
    (_compile(r'\b(SSH|port\s*22)\b'), 'SSH'),
    (_compile(r'\b(RDP|port\s*3389)\b'), 'RDP'),
    (_compile(r'\b(MySQL|port\s*3306)\b'), 'MYSQL'),
    (_compile(r'\b(PostgreSQL|port\s*5432)\b'), 'POSTGRESQL'),
    (_compile(r'\b(SMB|port\s*445)\b'), 'SMB'),
    (_compile(r'\b(LDAP|port\s*389)\b'), 'LDAP'),
    (_compile(r'\b(DNS|port\s*53)\b'), 'DNS'),
]

DEFAULT_PROTOCOL = 'TCP'
ENCRYPTED_PROTOCOLS = frozenset(['HTTPS', 'SSH', 'LDAPS', 'SMTPS', 'FTPS', 'TLS', 'SSL'])

ROLE_PATTERNS: List[Tuple[Pattern, str]] = [
    (_compile(r'\b(attacker|red\s*team|offensive|kali|penetration|pentest)\b'), 'attacker'),
    (_compile(r'\b(domain\s*controller|dc|active\s*directory|ad)\b'), 'domainController'),
    (_compile(r'\b(database|db|mysql|postgresql|mongo)\b'), 'database'),
    (_compile(r'\b(firewall|fw|pfsense|fortinet)\b'), 'firewall'),
    (_compile(r'\b(router|gateway|vyos|cisco)\b'), 'router'),
    (_compile(r'\b(workstation|ws|client|desktop|laptop)\b'), 'workstation'),
    (_compile(r'\b(server|srv|host)\b'), 'server'),
]

ENCLAVE_PATTERNS: List[Tuple[Pattern, str]] = [
    (_compile(r'\b(DMZ|demilitarized\s*zone|perimeter)\b'), 'dmz'),
    (_compile(r'\b(red\s*team|attack|offensive)\b'), 'redTeam'),
    (_compile(r'\b(blue\s*team|defense|defensive|SOC)\b'), 'blueTeam'),
    (_compile(r'\b(internal|corporate|private|intranet)\b'), 'internal'),
    (_compile(r'\b(external|internet|outside|public)\b'), 'external'),
]

OS_FAMILY_PATTERNS: List[Tuple[Pattern, str]] = [
    (_compile(r'\b(Linux|Ubuntu|Debian|RedHat|CentOS|Kali)\b'), 'linux'),
    (_compile(r'\b(Windows|Win10|Win11|Server\s*20\d{2})\b'), 'windows'),
    (_compile(r'\b(VyOS|Cisco|Juniper|MikroTik)\b'), 'router'),
    (_compile(r'\b(pfSense|Fortinet|Checkpoint)\b'), 'firewall'),
]

CONNECTION_PATTERNS: List[ConnectionPattern] = [
    ConnectionPattern('arrow', _compile(r'(' + _NAME + r')\s*(?:→|->|–>|=>)\s*(' + _NAME + r')', 0), 2),
    ConnectionPattern('from-to', _compile(r'\bfrom\s+(' + _NAME + r')\s+to\s+(' + _NAME + r')'), 2),
    ConnectionPattern('connects-to', _compile(r'\b(' + _NAME + r')\s+(?:connects?|connected)\s+(?:to|with)\s+(' + _NAME + r')'), 2),
    ConnectionPattern('pivot', _compile(r'\bpivot(?:s|ed|ing)?\s+(?:through|via|to)\s+(' + _NAME + r')'), 1),
    ConnectionPattern('access', _compile(r'\baccess(?:es|ed|ing)?\s+(?:the\s+)?(' + _NAME + r')'), 1),
    ConnectionPattern('target', _compile(r'\btarget(?:ing|s|ed)?\s+(?:the\s+)?(' + _NAME + r')'), 1),
]

# Evaluated top to bottom, first match wins
CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule('attacker', _compile(r'\b(attacker|red\s*team|offensive|kali|penetration|pentest)\b'), 'actor'),
    ClassificationRule('database', _compile(r'\b(database|db|mysql|postgresql|mongo)\b'), 'store'),
    ClassificationRule('storage', _compile(r'\b(storage|nas|san|backup)\b'), 'store'),
]


class ClassificationRuleEngine:
    """Ordered rule evaluation: the first rule whose pattern matches decides the type."""

    def __init__(self, rules: List[ClassificationRule], default_type: str = 'process'):
        self.rules = list(rules)
        self.default_type = default_type

    def evaluate(self, text: str) -> str:
        return self.explain(text)[0]

    def explain(self, text: str) -> Tuple[str, Optional[str]]:
        """Return (node_type, rule_name); rule_name is None when the default applied."""
        for rule in self.rules:
            if rule.pattern.search(text):
                return rule.node_type, rule.name
        return self.default_type, None


class PatternLibrary:
    """Read-only recogniser tables plus pure helper functions."""

    def __init__(self, context_window: int = 200):
        self.context_window = context_window
        self.table_row = TABLE_ROW_PATTERN
        self.inline_node = INLINE_NODE_PATTERN
        self.os_patterns = OS_PATTERNS
        self.instrumentation_patterns = INSTRUMENTATION_PATTERNS
        self.system_names = SYSTEM_NAME_PATTERN
        self.service_patterns = SERVICE_PATTERNS
        self.protocol_patterns = PROTOCOL_PATTERNS
        self.role_patterns = ROLE_PATTERNS
        self.enclave_patterns = ENCLAVE_PATTERNS
        self.connection_patterns = CONNECTION_PATTERNS
        self.classifier = ClassificationRuleEngine(CLASSIFICATION_RULES)

    @staticmethod
    def is_valid_ipv4(ip: Optional[str]) -> bool:
        return bool(ip) and bool(_VALID_IPV4.match(ip))

    def get_context_window(self, text: str, keyword: str, window_size: Optional[int] = None) -> str:
        """Text around the first case-insensitive mention of keyword, '' when absent."""
        if not keyword:
            return ''
        window_size = self.context_window if window_size is None else window_size
        index = text.lower().find(keyword.lower())
        if index == -1:
            return ''
        start = max(0, index - window_size)
        end = min(len(text), index + len(keyword) + window_size)
        return text[start:end]

    def classify_node_type(self, name: str, role: str = '', context: str = '') -> str:
        combined = f"{name} {role or ''} {context or ''}".lower()
        return self.classifier.evaluate(combined)

    def extract_services(self, services_text: str) -> List[str]:
        """Canonical service names plus literal port-<n> tokens, in table order."""
        if not services_text:
            return []
        services = []
        for service in self.service_patterns:
            if service.pattern.search(services_text) and service.canonical_name not in services:
                services.append(service.canonical_name)
        for match in PORT_TOKEN_PATTERN.finditer(services_text):
            token = f"port-{match.group(1)}"
            if token not in services:
                services.append(token)
        return services

    def default_port(self, service_name: str) -> Optional[int]:
        for service in self.service_patterns:
            if service.canonical_name == service_name:
                return service.default_port
        return None

    def detect_protocol(self, context: str) -> str:
        for pattern, protocol in self.protocol_patterns:
            if pattern.search(context or ''):
                return protocol
        return DEFAULT_PROTOCOL

    @staticmethod
    def is_encrypted_protocol(protocol: Optional[str]) -> bool:
        return bool(protocol) and protocol.upper() in ENCRYPTED_PROTOCOLS

    def detect_role(self, text: str) -> Optional[str]:
        for pattern, role in self.role_patterns:
            if pattern.search(text or ''):
                return role
        return None

    def detect_enclave(self, context: str) -> Optional[str]:
        for pattern, enclave in self.enclave_patterns:
            if pattern.search(context or ''):
                return enclave
        return None

    @staticmethod
    def detect_os_family(text: str) -> Optional[str]:
        for pattern, family in OS_FAMILY_PATTERNS:
            if pattern.search(text or ''):
                return family
        return None

    def summary(self) -> Dict[str, int]:
        """Table sizes, handy for diagnostics."""
        return {
            'osPatterns': len(self.os_patterns),
            'instrumentationPatterns': len(self.instrumentation_patterns),
            'servicePatterns': len(self.service_patterns),
            'protocolPatterns': len(self.protocol_patterns),
            'rolePatterns': len(self.role_patterns),
            'enclavePatterns': len(self.enclave_patterns),
            'connectionPatterns': len(self.connection_patterns),
            'classificationRules': len(self.classifier.rules),
        }
