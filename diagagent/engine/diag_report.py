"""
Extraction du rapport de diagnostic MDM (MDMDiagReport.xml)

Ce module fournit :
- Le lancement de MdmDiagnosticsTool.exe avec un délai maximal, dans un
  répertoire temporaire supprimé en sortie, même en cas d'erreur
- L'extraction des informations d'inscription, des stratégies et des
  certificats à partir de chemins fixes du document XML
"""

import os
import shutil
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass
from typing import List, Optional, Union
from xml.etree import ElementTree as et

from ..core.issues import IssueLedger, PHASE_DIAG_REPORT
from ..core.models import CertificateRecord, DiagnosticReport, EnrollmentInfo, PolicyRecord

REPORT_FILE_NAME = 'MDMDiagReport.xml'

_ENROLLMENT_FIELDS = {
    'enrollment_id': 'EnrollmentId',
    'enrollment_type': 'EnrollmentType',
    'provider_id': 'ProviderID',
    'upn': 'UPN',
    'enrollment_state': 'EnrollmentState',
    'server_url': 'DiscoveryServiceFullURL',
    'tenant_id': 'AADTenantID',
}

_POLICY_FIELDS = {
    'area': 'Area',
    'name': 'PolicyName',
    'value': 'Value',
    'scope': 'Scope',
    'winning_provider': 'WinningProvider',
}

_CERTIFICATE_FIELDS = {
    'issued_to': 'IssuedTo',
    'issued_by': 'IssuedBy',
    'thumbprint': 'Thumbprint',
    'expiration_date': 'ExpirationDate',
    'store': 'Store',
}


@dataclass
class ToolResult:
    """Résultat structuré d'une exécution de l'outil de diagnostic"""
    success: bool
    document: Optional[bytes] = None
    error: Optional[str] = None
    return_code: Optional[int] = None


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1] if isinstance(tag, str) else ''


def _children(element: Optional[et.Element], name: str) -> List[et.Element]:
    if element is None:
        return []
    lowered = name.lower()
    return [child for child in element if _local_name(child.tag).lower() == lowered]


def _first(element: Optional[et.Element], name: str) -> Optional[et.Element]:
    found = _children(element, name)
    return found[0] if found else None


def _field(element: et.Element, name: str) -> Optional[str]:
    """
    Lit un champ sous forme d'élément enfant, puis d'attribut

    Returns:
        str: Valeur nettoyée, ou None si absente ou vide
    """
    child = _first(element, name)
    value = child.text if child is not None else None

    if value is None:
        lowered = name.lower()
        for key, attr_value in element.attrib.items():
            if _local_name(key).lower() == lowered:
                value = attr_value
                break

    if value is None:
        return None
    value = value.strip()
    return value or None


def _extract_record(element: et.Element, fields, record_type):
    return record_type(**{attr: _field(element, name) for attr, name in fields.items()})


def _extract_enrollment(root: et.Element) -> Optional[EnrollmentInfo]:
    enrollments = _children(_first(root, 'Enrollments'), 'Enrollment')
    if not enrollments:
        return None

    # L'inscription portant un ProviderID est préférée, sinon la première
    chosen = enrollments[0]
    for enrollment in enrollments:
        if _field(enrollment, 'ProviderID'):
            chosen = enrollment
            break

    return _extract_record(chosen, _ENROLLMENT_FIELDS, EnrollmentInfo)


def parse_diagnostic_report(document: Union[str, bytes, None], ledger: IssueLedger) -> DiagnosticReport:
    """
    Analyse le rapport XML en trois collections indépendantes

    Aucun champ n'est obligatoire ; une section absente donne une
    collection vide.

    Args:
        document: Contenu XML du rapport
        ledger: Registre des problèmes

    Returns:
        DiagnosticReport: Inscription, stratégies et certificats
    """
    if not document:
        return DiagnosticReport()

    try:
        root = et.fromstring(document)
    except et.ParseError as e:
        ledger.warning(PHASE_DIAG_REPORT, f"Rapport de diagnostic XML invalide: {e}")
        return DiagnosticReport()

    policies = [
        _extract_record(policy, _POLICY_FIELDS, PolicyRecord)
        for policy in _children(_first(root, 'PolicyManager'), 'Policy')
    ]
    certificates = [
        _extract_record(cert, _CERTIFICATE_FIELDS, CertificateRecord)
        for cert in _children(_first(root, 'Certificates'), 'Certificate')
    ]

    return DiagnosticReport(
        enrollment=_extract_enrollment(root),
        policies=policies,
        certificates=certificates,
        schema_version=root.attrib.get('Version'),
    )


def find_report_file(directory: str) -> Optional[str]:
    """Cherche MDMDiagReport.xml (casse ignorée) dans un répertoire extrait"""
    for current, _dirs, files in os.walk(directory):
        for name in files:
            if name.lower() == REPORT_FILE_NAME.lower():
                return os.path.join(current, name)
    return None


class DiagnosticTool:
    """
    Lanceur de MdmDiagnosticsTool.exe

    L'outil écrit une archive dans un répertoire temporaire, l'archive est
    décompressée puis le répertoire est supprimé en sortie de run().
    """

    def __init__(self, tool_path: str, areas: str, timeout: int, logger=None):
        """
        Initialise le lanceur

        Args:
            tool_path: Chemin (ou nom dans le PATH) de l'exécutable
            areas: Zones de diagnostic, séparées par des points-virgules
            timeout: Délai maximal en secondes
            logger: Logger optionnel
        """
        self.tool_path = tool_path
        self.areas = areas
        self.timeout = timeout
        self.logger = logger

    def _resolve_executable(self) -> Optional[str]:
        if os.path.isfile(self.tool_path):
            return self.tool_path
        return shutil.which(self.tool_path)

    def _debug(self, message: str):
        if self.logger:
            self.logger.debug(message)

    def run(self) -> ToolResult:
        """
        Exécute l'outil et retourne le document XML

        Un code de sortie non nul, un dépassement de délai ou un document
        manquant produisent un échec structuré, jamais une exception.

        Returns:
            ToolResult: Résultat de l'exécution
        """
        executable = self._resolve_executable()
        if not executable:
            return ToolResult(success=False, error=f"Exécutable introuvable: {self.tool_path}")

        with tempfile.TemporaryDirectory(prefix='diagagent-') as work_dir:
            archive = os.path.join(work_dir, 'mdmdiag.zip')
            command = [executable, '-area', self.areas, '-zip', archive]
            self._debug(f"Lancement de {' '.join(command)}")

            try:
                result = subprocess.run(
                    command,
                    capture_output=True,
                    timeout=self.timeout
                )
            except subprocess.TimeoutExpired:
                return ToolResult(success=False, error=f"Délai dépassé (>{self.timeout}s)")
            except OSError as e:
                return ToolResult(success=False, error=f"Lancement impossible: {e}")

            if result.returncode != 0:
                return ToolResult(
                    success=False,
                    error=f"Code de sortie {result.returncode}",
                    return_code=result.returncode
                )

            if not os.path.isfile(archive):
                return ToolResult(success=False, error="Archive de diagnostic absente", return_code=0)

            extract_dir = os.path.join(work_dir, 'extract')
            try:
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(extract_dir)
            except (zipfile.BadZipFile, OSError) as e:
                return ToolResult(success=False, error=f"Archive illisible: {e}", return_code=0)

            report_path = find_report_file(extract_dir)
            if not report_path:
                return ToolResult(success=False, error=f"{REPORT_FILE_NAME} absent de l'archive", return_code=0)

            try:
                with open(report_path, 'rb') as f:
                    document = f.read()
            except OSError as e:
                return ToolResult(success=False, error=f"Lecture du rapport impossible: {e}", return_code=0)

        return ToolResult(success=True, document=document, return_code=0)


def report_from_tool_result(result: ToolResult, ledger: IssueLedger) -> DiagnosticReport:
    """
    Extrait le rapport d'une exécution de l'outil, en signalant les échecs

    Args:
        result: Résultat de DiagnosticTool.run()
        ledger: Registre des problèmes

    Returns:
        DiagnosticReport: Rapport extrait, vide en cas d'échec
    """
    if not result.success:
        ledger.warning(PHASE_DIAG_REPORT, f"MdmDiagnosticsTool: {result.error}")
        return DiagnosticReport()

    return parse_diagnostic_report(result.document, ledger)


def collect_diagnostic_report(tool: DiagnosticTool, ledger: IssueLedger) -> DiagnosticReport:
    """Lance l'outil puis extrait le rapport"""
    return report_from_tool_result(tool.run(), ledger)
