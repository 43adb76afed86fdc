"""
Fixtures partagées par les tests de l'agent de diagnostic
"""

import json
import logging

import pytest

from diagagent.core.config import DiagnosticConfig
from diagagent.core.issues import IssueLedger
from diagagent.engine.registry_shapes import RegistryNode

DEVICE_KEY = '00000000-0000-0000-0000-000000000000'
USER_KEY = 'S-1-5-21-1111111111-2222222222-3333333333-1001'
APP_ID = '21e67fea-aaaa-bbbb-cccc-ddddeeeeffff'

DSREGCMD_OUTPUT = """
+----------------------------------------------------------------------+
| Device State                                                         |
+----------------------------------------------------------------------+

             AzureAdJoined : YES
          EnterpriseJoined : NO
              DomainJoined : YES
               DomainName : CONTOSO
               DeviceName : PC-042.contoso.local

+----------------------------------------------------------------------+
| Device Details                                                       |
+----------------------------------------------------------------------+

                  DeviceId : 5f6c3c1e-4b0a-4d2e-9a55-0c1d2e3f4a5b
                Thumbprint : 0123456789ABCDEF0123456789ABCDEF01234567

+----------------------------------------------------------------------+
| Tenant Details                                                       |
+----------------------------------------------------------------------+

                TenantName : Contoso Ltd
                  TenantId : 72f988bf-86f1-41af-91ab-2d7cd011db47

+----------------------------------------------------------------------+
| User State                                                           |
+----------------------------------------------------------------------+

                    NgcSet : NO
           WorkplaceJoined : NO
"""

DIAG_REPORT_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<MDMEnterpriseDiagnosticsReport Version="1.3">
  <Enrollments>
    <Enrollment>
      <EnrollmentId>00000000-1111-2222-3333-444444444444</EnrollmentId>
      <EnrollmentType>0</EnrollmentType>
    </Enrollment>
    <Enrollment>
      <EnrollmentId>9a8b7c6d-1111-2222-3333-444444444444</EnrollmentId>
      <EnrollmentType>6</EnrollmentType>
      <ProviderID>MS DM Server</ProviderID>
      <UPN>alice@contoso.com</UPN>
      <EnrollmentState>1</EnrollmentState>
      <DiscoveryServiceFullURL>https://enrollment.manage.microsoft.com/enrollmentserver/discovery.svc</DiscoveryServiceFullURL>
      <AADTenantID>72f988bf-86f1-41af-91ab-2d7cd011db47</AADTenantID>
    </Enrollment>
  </Enrollments>
  <PolicyManager>
    <Policy>
      <Area>DeviceLock</Area>
      <PolicyName>MinDevicePasswordLength</PolicyName>
      <Value>8</Value>
      <Scope>Device</Scope>
      <WinningProvider>9A8B7C6D-1111-2222-3333-444444444444</WinningProvider>
    </Policy>
    <Policy Area="Update" PolicyName="AllowAutoUpdate" Value="1" Scope="Device" />
  </PolicyManager>
  <Certificates>
    <Certificate>
      <IssuedTo>9a8b7c6d-1111-2222-3333-444444444444</IssuedTo>
      <IssuedBy>Microsoft Intune MDM Device CA</IssuedBy>
      <Thumbprint>AABBCCDDEEFF00112233445566778899AABBCCDD</Thumbprint>
      <ExpirationDate>2027-03-01T10:00:00Z</ExpirationDate>
      <Store>My\\System</Store>
    </Certificate>
  </Certificates>
</MDMEnterpriseDiagnosticsReport>
"""


class LoggerStub:
    """Remplace AgentLogger : aucun fichier de log n'est créé"""

    def get_logger(self):
        return logging.getLogger('DiagAgent.tests')


def state_message(**fields):
    return json.dumps(fields)


def app_node(name, compliance=None, enforcement=None, as_subkey=False):
    """
    Construit un nœud d'application Win32Apps

    Args:
        name: Nom de la sous-clé (GUID, éventuellement suffixé _N)
        compliance: Champs du ComplianceStateMessage
        enforcement: Champs du EnforcementStateMessage
        as_subkey: Stocker les messages dans des sous-clés plutôt que des valeurs
    """
    node = RegistryNode(name=name)
    for message, fields in (('ComplianceStateMessage', compliance),
                            ('EnforcementStateMessage', enforcement)):
        if fields is None:
            continue
        payload = fields if isinstance(fields, str) else state_message(**fields)
        if as_subkey:
            node.children.append(RegistryNode(name=message, values={message: payload}))
        else:
            node.values[message] = payload
    return node


def win32_apps(*contexts):
    """Arbre Win32Apps à partir de couples (clé de contexte, [nœuds d'application])"""
    return RegistryNode(
        name='Win32Apps',
        children=[RegistryNode(name=key, children=list(apps)) for key, apps in contexts],
    )


@pytest.fixture
def ledger():
    return IssueLedger()


@pytest.fixture
def logger_stub():
    return LoggerStub()


@pytest.fixture
def config(tmp_path):
    """Configuration par défaut pointant vers un fichier inexistant du répertoire de test"""
    cfg = DiagnosticConfig(str(tmp_path / 'config.ini'))
    cfg.set('logging', 'log_file', str(tmp_path / 'logs' / 'diagagent.log'))
    return cfg


@pytest.fixture
def dsregcmd_output():
    return DSREGCMD_OUTPUT


@pytest.fixture
def diag_report_xml():
    return DIAG_REPORT_XML
