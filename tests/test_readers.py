"""
Tests des lecteurs de sources brutes (commandes, registre, identité du poste)
"""

import subprocess
import sys
from unittest import mock

import pytest

from diagagent.collectors import base, device
from diagagent.collectors.device import DeviceInfoReader
from diagagent.collectors.join_state import JoinStateReader
from diagagent.collectors.management import ManagementReader
from diagagent.collectors.registry import RegistryReader
from diagagent.collectors.targets import display_target, is_local_target
from diagagent.core.issues import SourceUnavailableError


@pytest.fixture
def app_logger(logger_stub):
    return logger_stub.get_logger()


class TestTargets:

    @pytest.mark.parametrize('target', [None, '', 'localhost', 'LOCALHOST', '127.0.0.1', '::1', '.'])
    def test_local_aliases(self, target):
        assert is_local_target(target) is True

    def test_own_hostname_is_local(self):
        import socket
        assert is_local_target(socket.gethostname().upper()) is True

    def test_remote_target(self):
        assert is_local_target('pc-distant-inexistant-042') is False
        assert display_target(' pc-distant-inexistant-042 ') == 'pc-distant-inexistant-042'


def _completed(stdout='', returncode=0, stderr=''):
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


class TestCommands:

    def test_local_join_state_runs_dsregcmd(self, config, app_logger):
        reader = JoinStateReader(config, app_logger)

        with mock.patch.object(base.subprocess, 'run', return_value=_completed("AzureAdJoined : YES")) as run:
            output = reader.read()

        assert output == "AzureAdJoined : YES"
        assert run.call_args[0][0] == ['dsregcmd', '/status']
        assert run.call_args[1]['timeout'] == 60

    def test_remote_join_state_uses_invoke_command(self, config, app_logger):
        reader = JoinStateReader(config, app_logger, target='pc-distant-inexistant-042')

        with mock.patch.object(base.subprocess, 'run', return_value=_completed("DomainJoined : YES")) as run:
            reader.read()

        command = run.call_args[0][0]
        assert command[0] == 'powershell'
        assert "Invoke-Command -ComputerName 'pc-distant-inexistant-042'" in command[-1]
        assert 'Out-String' in command[-1]

    def test_remote_target_name_is_quoted(self, config, app_logger):
        reader = JoinStateReader(config, app_logger, target="pc'; Remove-Item C:\\Temp; '")

        with mock.patch.object(base.subprocess, 'run', return_value=_completed("")) as run:
            reader.read()

        assert "-ComputerName 'pc''; Remove-Item C:\\Temp; '''" in run.call_args[0][0][-1]

    def test_non_zero_exit_is_source_unavailable(self, config, app_logger):
        reader = JoinStateReader(config, app_logger)

        with mock.patch.object(base.subprocess, 'run', return_value=_completed(returncode=1, stderr="Accès refusé")):
            with pytest.raises(SourceUnavailableError) as excinfo:
                reader.read()

        assert "Accès refusé" in excinfo.value.message

    def test_timeout_is_source_unavailable(self, config, app_logger):
        reader = JoinStateReader(config, app_logger)

        with mock.patch.object(base.subprocess, 'run', side_effect=subprocess.TimeoutExpired('dsregcmd', 60)):
            with pytest.raises(SourceUnavailableError):
                reader.read()

    def test_missing_command_is_source_unavailable(self, config, app_logger):
        reader = JoinStateReader(config, app_logger)

        with mock.patch.object(base.subprocess, 'run', side_effect=FileNotFoundError('dsregcmd')):
            with pytest.raises(SourceUnavailableError):
                reader.read()

    def test_clean_string(self, config, app_logger):
        reader = JoinStateReader(config, app_logger)
        assert reader._clean_string("  Dell   Inc.\x00 ") == "Dell Inc."
        assert reader._clean_string(None) == ""


class FakeKey:
    def __init__(self, tree):
        self.tree = tree


class FakeWinreg:
    """Module winreg simulé sur un dictionnaire imbriqué"""

    HKEY_LOCAL_MACHINE = 'HKLM'

    def __init__(self, tree, fail_connect=False):
        self.tree = tree
        self.fail_connect = fail_connect
        self.connected_to = []
        self.closed = 0

    def ConnectRegistry(self, computer, hive):
        self.connected_to.append(computer)
        if self.fail_connect:
            raise OSError("Le chemin réseau n'a pas été trouvé")
        return FakeKey(self.tree)

    def OpenKey(self, key, path):
        node = key.tree
        for part in path.split('\\'):
            children = node.get('keys', {})
            match = next((v for k, v in children.items() if k.lower() == part.lower()), None)
            if match is None:
                raise FileNotFoundError(path)
            node = match
        return FakeKey(node)

    def EnumValue(self, key, index):
        items = list(key.tree.get('values', {}).items())
        if index >= len(items):
            raise OSError("Plus de données")
        name, data = items[index]
        return name, data, 1

    def EnumKey(self, key, index):
        names = list(key.tree.get('keys', {}))
        if index >= len(names):
            raise OSError("Plus de données")
        return names[index]

    def CloseKey(self, key):
        self.closed += 1


REGISTRY = {'keys': {'SOFTWARE': {'keys': {'Microsoft': {'keys': {
    'Enrollments': {'keys': {
        'Context': {'values': {}},
        '9A8B7C6D-1111-2222-3333-444444444444': {'values': {'ProviderID': 'MS DM Server', 'UPN': 'alice@contoso.com'}},
    }},
    'CCM': {'values': {'CoManagementFlags': 8193}},
    'IntuneManagementExtension': {'keys': {'Win32Apps': {'keys': {
        '00000000-0000-0000-0000-000000000000': {'keys': {
            '21e67fea-aaaa-bbbb-cccc-ddddeeeeffff_1': {
                'values': {'ComplianceStateMessage': '{"ComplianceState": 1}'},
                'keys': {'EnforcementStateMessage': {
                    'values': {'EnforcementStateMessage': '{"EnforcementState": 1000}'},
                }},
            },
        }},
    }}}},
}}}}}}


class TestRegistry:

    @pytest.fixture
    def winreg(self, monkeypatch):
        fake = FakeWinreg(REGISTRY)
        monkeypatch.setitem(sys.modules, 'winreg', fake)
        return fake

    def test_read_tree_builds_nodes(self, config, app_logger, winreg):
        node = RegistryReader(config, app_logger).read_tree(r"SOFTWARE\Microsoft\Enrollments", depth=1)

        assert node.name == 'Enrollments'
        assert [c.name for c in node.children] == ['Context', '9A8B7C6D-1111-2222-3333-444444444444']
        assert node.children[1].value('providerid') == 'MS DM Server'
        assert winreg.connected_to == [None]

    def test_depth_limits_descent(self, config, app_logger, winreg):
        node = RegistryReader(config, app_logger).read_tree(r"SOFTWARE\Microsoft", depth=0)

        assert node.children == []

    def test_missing_key_returns_none(self, config, app_logger, winreg):
        reader = RegistryReader(config, app_logger)

        assert reader.read_tree(r"SOFTWARE\Microsoft\SMS\Mobile Client") is None
        assert reader.key_exists(r"SOFTWARE\Microsoft\CCM") is True

    def test_remote_target_connects_over_network(self, config, app_logger, winreg):
        RegistryReader(config, app_logger, target='pc-distant-inexistant-042').read_value(
            r"SOFTWARE\Microsoft\CCM", 'CoManagementFlags')

        assert winreg.connected_to == [r"\\pc-distant-inexistant-042"]

    def test_connection_failure_is_source_unavailable(self, config, app_logger, monkeypatch):
        monkeypatch.setitem(sys.modules, 'winreg', FakeWinreg(REGISTRY, fail_connect=True))

        with pytest.raises(SourceUnavailableError):
            RegistryReader(config, app_logger, target='pc-distant-inexistant-042').read_tree('SOFTWARE')

    def test_management_reads(self, config, app_logger, winreg):
        reader = ManagementReader(config, app_logger)

        assert reader.read_sccm_installed() is True
        assert reader.read_co_management_flags() == 8193
        assert len(reader.read_enrollments().children) == 2

        apps = reader.read_win32_apps()
        app = apps.find('00000000-0000-0000-0000-000000000000', '21e67fea-aaaa-bbbb-cccc-ddddeeeeffff_1')
        assert app.child('EnforcementStateMessage').value('EnforcementStateMessage') == '{"EnforcementState": 1000}'


def test_device_info_without_wmi(config, app_logger, monkeypatch):
    monkeypatch.setitem(sys.modules, 'wmi', None)

    info = DeviceInfoReader(config, app_logger).read()

    assert info.hostname
    assert info.total_memory > 0
    assert info.boot_time


def test_device_info_remote_keeps_target_name(config, app_logger, monkeypatch):
    monkeypatch.setitem(sys.modules, 'wmi', None)

    info = DeviceInfoReader(config, app_logger, target='pc-distant-inexistant-042').read()

    assert info.hostname == 'pc-distant-inexistant-042'
    assert info.total_memory is None


def test_device_info_psutil_failure_is_reported(config, app_logger, monkeypatch):
    monkeypatch.setitem(sys.modules, 'wmi', None)
    monkeypatch.setattr(device.psutil, 'boot_time', mock.Mock(side_effect=OSError("accès refusé")))

    info, errors = DeviceInfoReader(config, app_logger).read_with_errors()

    assert info.hostname
    assert info.boot_time is None
    assert errors == ["Erreur récupération heure de démarrage: accès refusé"]


def test_device_info_wmi_failure_is_reported(config, app_logger, monkeypatch):
    pythoncom = mock.Mock()
    wmi = mock.Mock()
    wmi.WMI.side_effect = RuntimeError("Le serveur RPC n'est pas disponible")
    monkeypatch.setitem(sys.modules, 'pythoncom', pythoncom)
    monkeypatch.setitem(sys.modules, 'wmi', wmi)

    info, errors = DeviceInfoReader(config, app_logger, target='pc-distant-inexistant-042').read_with_errors()

    assert info.hostname == 'pc-distant-inexistant-042'
    assert errors == ["Erreur collecte WMI: Le serveur RPC n'est pas disponible"]
    wmi.WMI.assert_called_once_with(computer='pc-distant-inexistant-042')
    pythoncom.CoUninitialize.assert_called_once_with()
