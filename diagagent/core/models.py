"""
Modèles de données canoniques produits par une collecte de diagnostic

Chaque entité (état de jonction, application, stratégie, certificat...)
est un enregistrement typé avec des champs explicites.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from .issues import summary_counts


class ManagementType(Enum):
    """Libellés de classification de la gestion du poste"""
    CLOUD_ONLY = "Cloud-only"
    CLOUD_CO_MANAGED = "Cloud (Co-managed)"
    AZURE_AD_JOINED = "Azure AD Joined"
    ON_PREM_ONLY = "On-prem only"
    ON_PREM_GPO = "On-prem only (GPO)"
    CO_MANAGED = "Co-managed"
    HYBRID_INTUNE = "Hybrid (Intune)"
    HYBRID_SCCM = "Hybrid (SCCM)"
    HYBRID_GPO = "Hybrid (GPO only)"
    UNMANAGED = "Unmanaged"


class InstallState(Enum):
    """Vocabulaire commun des états d'installation d'application"""
    INSTALLED = "Installed"
    INSTALL_PENDING = "Install Pending"
    NOT_APPLICABLE = "Not Applicable"
    FAILED = "Failed"
    NOT_INSTALLED = "Not Installed"
    UNKNOWN = "Unknown"


class AppContext(Enum):
    """Contexte d'installation d'une application"""
    DEVICE = "Device"
    USER = "User"


@dataclass(frozen=True)
class JoinState:
    """
    État de jonction du poste, extrait de la sortie de dsregcmd /status

    Les trois indicateurs valent False par défaut : un motif absent
    signifie « non joint », pas une erreur.
    """
    azure_ad_joined: bool = False
    domain_joined: bool = False
    workplace_joined: bool = False
    device_id: Optional[str] = None
    tenant_id: Optional[str] = None
    tenant_name: Optional[str] = None
    raw_text: str = ""

    @property
    def join_type(self) -> str:
        """Libellé lisible du type de jonction"""
        if self.azure_ad_joined and self.domain_joined:
            return "Hybrid Azure AD Joined"
        if self.azure_ad_joined:
            return "Azure AD Joined"
        if self.domain_joined:
            return "Domain Joined"
        if self.workplace_joined:
            return "Workplace Joined"
        return "Workgroup"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['join_type'] = self.join_type
        return data


@dataclass(frozen=True)
class AppInstallRecord:
    """
    État réconcilié d'une application Win32 gérée par Intune

    Un seul enregistrement par identité canonique survit à la réconciliation.
    """
    app_id: str
    context: AppContext
    compliance_state: Optional[int] = None
    enforcement_state: Optional[int] = None
    error_code: Optional[int] = None
    install_state: InstallState = InstallState.UNKNOWN
    revision: Optional[int] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['context'] = self.context.value
        data['install_state'] = self.install_state.value
        return data


@dataclass(frozen=True)
class EnrollmentInfo:
    """Informations d'inscription MDM issues du rapport de diagnostic"""
    enrollment_id: Optional[str] = None
    enrollment_type: Optional[str] = None
    provider_id: Optional[str] = None
    upn: Optional[str] = None
    enrollment_state: Optional[str] = None
    server_url: Optional[str] = None
    tenant_id: Optional[str] = None


@dataclass(frozen=True)
class PolicyRecord:
    """Une stratégie MDM appliquée, telle que listée dans le rapport"""
    area: Optional[str] = None
    name: Optional[str] = None
    value: Optional[str] = None
    scope: Optional[str] = None
    winning_provider: Optional[str] = None


@dataclass(frozen=True)
class CertificateRecord:
    """Un certificat listé dans le rapport de diagnostic"""
    issued_to: Optional[str] = None
    issued_by: Optional[str] = None
    thumbprint: Optional[str] = None
    expiration_date: Optional[str] = None
    store: Optional[str] = None


@dataclass(frozen=True)
class DiagnosticReport:
    """Collections extraites du rapport XML de MdmDiagnosticsTool"""
    enrollment: Optional[EnrollmentInfo] = None
    policies: List[PolicyRecord] = field(default_factory=list)
    certificates: List[CertificateRecord] = field(default_factory=list)
    schema_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'enrollment': asdict(self.enrollment) if self.enrollment else None,
            'policies': [asdict(p) for p in self.policies],
            'certificates': [asdict(c) for c in self.certificates],
        }


@dataclass
class DeviceInfo:
    """Informations d'identité du poste (lectures simples, sans décision)"""
    hostname: Optional[str] = None
    os_caption: Optional[str] = None
    os_version: Optional[str] = None
    os_build: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    total_memory: Optional[int] = None
    boot_time: Optional[str] = None


@dataclass
class ManagementFacts:
    """Faits de posture utilisés par la classification"""
    sccm_installed: bool = False
    mdm_enrolled: bool = False
    mdm_provider_id: Optional[str] = None
    co_managed: bool = False
    management_type: ManagementType = ManagementType.UNMANAGED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['management_type'] = self.management_type.value
        return data


@dataclass
class DiagnosticSnapshot:
    """
    Instantané canonique d'une exécution de collecte

    Regroupe l'état de jonction, la classification, les applications
    réconciliées, les collections du rapport de diagnostic et le registre
    des problèmes.
    """
    target: str
    collection_timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    agent_version: str = ""
    collection_duration_seconds: Optional[float] = None
    device: DeviceInfo = field(default_factory=DeviceInfo)
    join_state: JoinState = field(default_factory=JoinState)
    management: ManagementFacts = field(default_factory=ManagementFacts)
    apps: Dict[str, AppInstallRecord] = field(default_factory=dict)
    report: DiagnosticReport = field(default_factory=DiagnosticReport)
    issues: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convertit l'instantané en dictionnaire sérialisable en JSON

        Returns:
            dict: Instantané complet
        """
        return {
            'target': self.target,
            'collection_timestamp': self.collection_timestamp,
            'agent_version': self.agent_version,
            'collection_duration_seconds': self.collection_duration_seconds,
            'device': asdict(self.device),
            'join_state': self.join_state.to_dict(),
            'management': self.management.to_dict(),
            'apps': {app_id: record.to_dict() for app_id, record in sorted(self.apps.items())},
            'report': self.report.to_dict(),
            'issues': [issue.to_dict() for issue in self.issues],
            'issue_counts': summary_counts(self.issues),
        }
