"""
Tests de l'extraction du rapport MDMDiagReport.xml et du lanceur de l'outil
"""

import os
import subprocess
import zipfile
from unittest import mock

import pytest

from diagagent.core.issues import Severity, PHASE_DIAG_REPORT
from diagagent.engine import diag_report
from diagagent.engine.diag_report import (
    DiagnosticTool, ToolResult, collect_diagnostic_report, find_report_file,
    parse_diagnostic_report, report_from_tool_result,
)


class TestParse:

    def test_full_report(self, ledger, diag_report_xml):
        report = parse_diagnostic_report(diag_report_xml, ledger)

        assert report.schema_version == '1.3'
        assert report.enrollment.provider_id == 'MS DM Server'
        assert report.enrollment.upn == 'alice@contoso.com'
        assert report.enrollment.tenant_id == '72f988bf-86f1-41af-91ab-2d7cd011db47'
        assert report.enrollment.enrollment_type == '6'
        assert len(report.policies) == 2
        assert report.policies[0].name == 'MinDevicePasswordLength'
        assert report.policies[0].value == '8'
        assert len(report.certificates) == 1
        assert report.certificates[0].issued_by == 'Microsoft Intune MDM Device CA'
        assert ledger.is_clean()

    def test_attribute_fields(self, ledger, diag_report_xml):
        policy = parse_diagnostic_report(diag_report_xml, ledger).policies[1]

        assert policy.area == 'Update'
        assert policy.name == 'AllowAutoUpdate'
        assert policy.value == '1'
        assert policy.winning_provider is None

    def test_missing_sections_are_empty(self, ledger):
        report = parse_diagnostic_report(b"<MDMEnterpriseDiagnosticsReport />", ledger)

        assert report.enrollment is None
        assert report.policies == []
        assert report.certificates == []
        assert ledger.is_clean()

    def test_first_enrollment_used_without_provider(self, ledger):
        document = (b"<Report><Enrollments><Enrollment><EnrollmentId>a</EnrollmentId></Enrollment>"
                    b"<Enrollment><EnrollmentId>b</EnrollmentId></Enrollment></Enrollments></Report>")

        enrollment = parse_diagnostic_report(document, ledger).enrollment

        assert enrollment.enrollment_id == 'a'
        assert enrollment.provider_id is None

    def test_namespaced_elements(self, ledger):
        document = (b'<r:Report xmlns:r="urn:test"><r:PolicyManager><r:Policy>'
                    b'<r:PolicyName>X</r:PolicyName></r:Policy></r:PolicyManager></r:Report>')

        assert parse_diagnostic_report(document, ledger).policies[0].name == 'X'

    def test_invalid_xml_is_a_warning(self, ledger):
        report = parse_diagnostic_report(b"<Report><Enrollments>", ledger)

        assert report.enrollment is None
        assert len(ledger) == 1
        assert ledger.issues[0].severity == Severity.WARNING
        assert ledger.issues[0].phase == PHASE_DIAG_REPORT

    def test_empty_document(self, ledger):
        assert parse_diagnostic_report(None, ledger).policies == []
        assert ledger.is_clean()


def test_find_report_file_ignores_case(tmp_path):
    nested = tmp_path / 'MDMDiagnostics'
    nested.mkdir()
    (nested / 'mdmdiagreport.XML').write_text('<r/>')

    assert find_report_file(str(tmp_path)) == str(nested / 'mdmdiagreport.XML')
    assert find_report_file(str(nested / 'absent')) is None


def test_failed_tool_result_is_a_warning(ledger):
    report = report_from_tool_result(ToolResult(success=False, error="Code de sortie 5"), ledger)

    assert report.policies == []
    assert ledger.issues[0].message == "MdmDiagnosticsTool: Code de sortie 5"


class TestDiagnosticTool:

    @pytest.fixture
    def executable(self, tmp_path):
        path = tmp_path / 'MdmDiagnosticsTool.exe'
        path.write_bytes(b'')
        return str(path)

    @staticmethod
    def _fake_run(calls, document=None, returncode=0, write_archive=True):
        def run(command, **kwargs):
            archive = command[command.index('-zip') + 1]
            calls.append((command, kwargs, archive))
            if write_archive and returncode == 0:
                with zipfile.ZipFile(archive, 'w') as zf:
                    if document is not None:
                        zf.writestr('MDMDiagReport.xml', document)
                    zf.writestr('MDMDiagHtmlReport.html', '<html/>')
            return subprocess.CompletedProcess(command, returncode, stdout=b'', stderr=b'')
        return run

    def test_successful_run(self, executable, diag_report_xml, ledger):
        calls = []
        tool = DiagnosticTool(executable, 'DeviceEnrollment;Autopilot', timeout=30)

        with mock.patch.object(diag_report.subprocess, 'run', self._fake_run(calls, diag_report_xml)):
            result = tool.run()

        assert result.success is True
        assert result.document == diag_report_xml
        command, kwargs, archive = calls[0]
        assert command[:3] == [executable, '-area', 'DeviceEnrollment;Autopilot']
        assert kwargs['timeout'] == 30
        assert 'text' not in kwargs
        # Le répertoire de travail est supprimé en sortie
        assert not os.path.exists(os.path.dirname(archive))

        report = report_from_tool_result(result, ledger)
        assert report.enrollment.provider_id == 'MS DM Server'

    def test_missing_executable(self, tmp_path):
        result = DiagnosticTool(str(tmp_path / 'absent.exe'), 'DeviceEnrollment', timeout=30).run()

        assert result.success is False
        assert 'introuvable' in result.error

    def test_timeout(self, executable):
        calls = []

        def run(command, **kwargs):
            calls.append(command[command.index('-zip') + 1])
            raise subprocess.TimeoutExpired(command, kwargs['timeout'])

        with mock.patch.object(diag_report.subprocess, 'run', run):
            result = DiagnosticTool(executable, 'DeviceEnrollment', timeout=5).run()

        assert result.success is False
        assert '5s' in result.error
        assert not os.path.exists(os.path.dirname(calls[0]))

    def test_non_zero_exit(self, executable):
        calls = []
        with mock.patch.object(diag_report.subprocess, 'run', self._fake_run(calls, returncode=3)):
            result = DiagnosticTool(executable, 'DeviceEnrollment', timeout=5).run()

        assert result.success is False
        assert result.return_code == 3
        assert not os.path.exists(os.path.dirname(calls[0][2]))

    def test_missing_archive(self, executable):
        calls = []
        with mock.patch.object(diag_report.subprocess, 'run', self._fake_run(calls, write_archive=False)):
            result = DiagnosticTool(executable, 'DeviceEnrollment', timeout=5).run()

        assert result.success is False
        assert result.error == "Archive de diagnostic absente"

    def test_archive_without_report(self, executable):
        calls = []
        with mock.patch.object(diag_report.subprocess, 'run', self._fake_run(calls, document=None)):
            result = DiagnosticTool(executable, 'DeviceEnrollment', timeout=5).run()

        assert result.success is False
        assert 'MDMDiagReport.xml' in result.error

    def test_unreadable_report(self, executable, diag_report_xml, monkeypatch):
        def locked(path, *args, **kwargs):
            raise PermissionError(13, "Accès refusé", path)

        monkeypatch.setattr(diag_report, 'open', locked, raising=False)
        calls = []
        with mock.patch.object(diag_report.subprocess, 'run', self._fake_run(calls, diag_report_xml)):
            result = DiagnosticTool(executable, 'DeviceEnrollment', timeout=5).run()

        assert result.success is False
        assert result.error.startswith("Lecture du rapport impossible")
        assert not os.path.exists(os.path.dirname(calls[0][2]))

    def test_collect_records_failure(self, tmp_path, ledger):
        tool = DiagnosticTool(str(tmp_path / 'absent.exe'), 'DeviceEnrollment', timeout=5)

        report = collect_diagnostic_report(tool, ledger)

        assert report.enrollment is None
        assert ledger.issues[0].severity == Severity.WARNING
