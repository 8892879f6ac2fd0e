"""
Shared test fixtures for pytest.

Provides a sample operational test plan, a small hand-built DFDIR and a
Flask test client bound to a temporary output folder.
"""
import pytest

from config.settings import Config
from models.dfd_models import DFDIR, DFDElement, DFDFlow


SAMPLE_OTP_TEXT = """
# Sample OTP - Mission One
## Operational Test Plan v1.0

### Mission Overview
Mission One focuses on testing offensive cyber operations against a simulated
corporate network environment. The red team will utilize Kali Linux workstations
to conduct reconnaissance and exploitation against target systems.

### Network Architecture
The test environment consists of three primary enclaves:
- Red Team Enclave (attack infrastructure)
- DMZ (exposed services)
- Internal Corporate Network (target systems)

All network traffic between enclaves passes through VyOS routers configured
with appropriate firewall rules and OSPF routing.

## Table 1: Hardware Specifications

| Hostname | Operating System | Architecture | IP Address | Role | Services |
|----------|-----------------|--------------|------------|------|----------|
| Kali-01 | Kali Linux 2024.1 | x64 | 192.168.100.10 | Attacker | ssh, metasploit |
| Kali-02 | Kali Linux 2024.1 | x64 | 192.168.100.11 | Attacker | ssh, burpsuite |
| Router-01 | VyOS 1.4 | x64 | 192.168.100.1 | Router | ssh, ospf |
| Router-02 | VyOS 1.4 | x64 | 10.0.0.1 | Router | ssh, ospf |
| FW-01 | pfSense 2.7 | x64 | 10.0.0.254 | Firewall | ssh, https |
| WebSrv-01 | Ubuntu 22.04 | x64 | 10.0.1.100 | Server | ssh, http, https, mysql |
| DC-01 | Windows Server 2022 | x64 | 172.16.0.10 | Server | rdp, ldap, smb, dns |
| WS-01 | Windows 10 | x64 | 172.16.0.100 | Workstation | rdp |
| WS-02 | Windows 10 | x64 | 172.16.0.101 | Workstation | rdp |

## Mission Scenario Text

The scenario begins with the Red Team operating from the Kali-01 and Kali-02
systems in the Red Team Enclave. Initial reconnaissance will target the
DMZ segment where WebSrv-01 hosts a vulnerable web application running on
Apache with MySQL backend.

The attacker will exploit CVE-2024-XXXX to gain remote code execution on the
Ubuntu web server. From there, they will pivot through Router-02 to access
the Internal Corporate Network.

The ultimate target is DC-01, the Windows Server 2022 domain controller running
Active Directory. The Blue Team defenders will be monitoring from their Security
Operations Center using standard SIEM tools.

WS-01 and WS-02 represent typical employee Windows 10 workstations that may
be used as intermediate pivot points. These systems have RDP enabled and are
domain-joined.
"""


@pytest.fixture
def sample_otp_text() -> str:
    return SAMPLE_OTP_TEXT


@pytest.fixture
def sample_dfdir() -> DFDIR:
    """Attacker -> web server -> database, with one element per confidence tier."""
    dfdir = DFDIR('Sample Topology')
    dfdir.add_element(DFDElement(
        id='attacker', name='Kali-01', type='actor', x=700, y=100,
        ip_address='192.168.100.10', services=['ssh'],
        metadata={'extractedFrom': 'table', 'role': 'Attacker'},
        confidence=95, source='text'
    ))
    dfdir.add_element(DFDElement(
        id='web', name='WebSrv-01', type='process', x=1000, y=500,
        ip_address='10.0.1.100', services=['web', 'https'],
        metadata={'extractedFrom': 'inline'},
        confidence=75, source='text'
    ))
    dfdir.add_element(DFDElement(
        id='db', name='DB-01', type='store', x=1000, y=900,
        confidence=60, source='text'
    ))
    dfdir.add_flow(DFDFlow(
        id='flow-1', source_id='attacker', target_id='web', protocol='HTTPS',
        is_encrypted=True, is_public_network=True,
        metadata={'extractedFrom': 'text', 'sourceNode': 'Kali-01', 'targetNode': 'WebSrv-01'},
        confidence=85, source='text'
    ))
    dfdir.add_flow(DFDFlow(
        id='flow-2', source_id='web', target_id='db', protocol='MYSQL',
        confidence=68, source='text'
    ))
    return dfdir


@pytest.fixture
def runtime_config(tmp_path):
    config = Config.get_config()
    config.update({
        'output_dir': str(tmp_path / 'output'),
        'layout_algorithm': 'tiered',
        'validation_mode': 'strict',
        'grid_snap': 100,
    })
    return config


@pytest.fixture
def client(runtime_config):
    """Flask test client."""
    from app import create_app
    app = create_app(runtime_config)
    app.config['TESTING'] = True
    return app.test_client()
