"""
Classification du type de gestion du poste

Table de décision pure sur cinq booléens de posture, plus la détection
de l'inscription MDM et de la cogestion à partir des lectures brutes.
"""

from typing import Any, Optional, Tuple

from ..core.models import ManagementType
from .registry_shapes import RegistryNode
from .state_mapper import coerce_code


def classify_management(azure_ad_joined: bool, domain_joined: bool, sccm_installed: bool,
                        mdm_enrolled: bool, co_managed: bool) -> ManagementType:
    """
    Détermine le type de gestion du poste

    Les branches « Azure AD seul » et « domaine seul » sont évaluées avant
    la branche combinée. La table couvre les 32 combinaisons d'entrée.

    Args:
        azure_ad_joined: Poste joint à Azure AD
        domain_joined: Poste joint à un domaine AD
        sccm_installed: Client ConfigMgr présent
        mdm_enrolled: Poste inscrit auprès d'un service MDM
        co_managed: Cogestion active (rapporté, sans effet sur la table)

    Returns:
        ManagementType: Libellé de classification
    """
    azure_ad_joined = bool(azure_ad_joined)
    domain_joined = bool(domain_joined)
    sccm = bool(sccm_installed)
    mdm = bool(mdm_enrolled)

    if azure_ad_joined and not domain_joined:
        if mdm and not sccm:
            return ManagementType.CLOUD_ONLY
        if mdm and sccm:
            return ManagementType.CLOUD_CO_MANAGED
        return ManagementType.AZURE_AD_JOINED

    if domain_joined and not azure_ad_joined:
        if sccm:
            return ManagementType.ON_PREM_ONLY
        return ManagementType.ON_PREM_GPO

    if azure_ad_joined and domain_joined:
        if sccm and mdm:
            return ManagementType.CO_MANAGED
        if mdm and not sccm:
            return ManagementType.HYBRID_INTUNE
        if sccm and not mdm:
            return ManagementType.HYBRID_SCCM
        return ManagementType.HYBRID_GPO

    if not azure_ad_joined and not domain_joined:
        return ManagementType.UNMANAGED

    raise AssertionError(
        f"Table de classification incomplète: aad={azure_ad_joined} domain={domain_joined} "
        f"sccm={sccm} mdm={mdm} comanaged={co_managed}"
    )


def detect_mdm_enrollment(enrollments: Optional[RegistryNode]) -> Tuple[bool, Optional[str]]:
    """
    Détecte une inscription MDM à partir de la clé Enrollments

    Le poste est inscrit seulement si une sous-clé porte une valeur
    ProviderID non vide. La première sous-clé qualifiante l'emporte.

    Args:
        enrollments: Nœud HKLM\\SOFTWARE\\Microsoft\\Enrollments (ou None)

    Returns:
        tuple: (inscrit, ProviderID ou None)
    """
    if enrollments is None:
        return False, None

    for enrollment in enrollments.children:
        provider_id = enrollment.value('ProviderID')
        if provider_id is None:
            continue
        provider_id = str(provider_id).strip()
        if provider_id:
            return True, provider_id

    return False, None


def detect_co_management(health_status: Any) -> bool:
    """
    Indique si le client ConfigMgr rapporte une cogestion active

    Seul le bit de poids faible est interprété.

    Args:
        health_status: Entier d'état de santé brut (optionnel)

    Returns:
        bool: True si le bit 0 est positionné, False si absent ou invalide
    """
    value = coerce_code(health_status)
    if value is None or value < 0:
        return False
    return value % 2 == 1
