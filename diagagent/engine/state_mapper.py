"""
Traduction des codes d'état Intune vers le vocabulaire commun

Deux systèmes indépendants alimentent le même vocabulaire :
- EnforcementState (code à quatre chiffres), prioritaire quand il donne un état
- ComplianceState (un seul chiffre), lu seulement sans EnforcementState

Les deux signaux ne sont jamais combinés.
"""

from typing import Any, Dict, Optional

from ..core.models import InstallState

_COMPLIANCE_STATES = {
    1: InstallState.INSTALLED,
    2: InstallState.NOT_INSTALLED,
    3: InstallState.FAILED,
    4: InstallState.FAILED,
    5: InstallState.UNKNOWN,
}


def coerce_code(value: Any) -> Optional[int]:
    """
    Convertit une valeur brute en code entier

    Args:
        value: Valeur brute (int, chaîne numérique, None...)

    Returns:
        int: Code entier, ou None si la valeur n'est pas exploitable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def state_from_enforcement(code: Any) -> Optional[InstallState]:
    """
    État dérivé du code EnforcementState

    Args:
        code: Code d'application (1000, 2xxx, 3xxx, >= 4000)

    Returns:
        InstallState: État correspondant, ou None hors des plages connues
    """
    code = coerce_code(code)
    if code is None or code < 0:
        return None
    if code == 1000:
        return InstallState.INSTALLED
    if 2000 <= code < 3000:
        return InstallState.INSTALL_PENDING
    if 3000 <= code < 4000:
        return InstallState.NOT_APPLICABLE
    if code >= 4000:
        return InstallState.FAILED
    return None


def state_from_compliance(code: Any) -> Optional[InstallState]:
    """
    État dérivé du code ComplianceState

    Args:
        code: Code de conformité (1 à 5)

    Returns:
        InstallState: État correspondant, ou None pour un code inconnu
    """
    code = coerce_code(code)
    if code is None:
        return None
    return _COMPLIANCE_STATES.get(code)


def resolve_install_state(enforcement_state: Any, compliance_state: Any) -> InstallState:
    """
    Détermine l'état d'installation à partir des deux systèmes de codes

    Dès qu'un code EnforcementState est présent, il décide seul, même s'il
    contredit ComplianceState. Un code présent mais hors des plages connues
    donne Unknown. ComplianceState n'est lu qu'en l'absence d'EnforcementState.

    Args:
        enforcement_state: Code EnforcementState (optionnel)
        compliance_state: Code ComplianceState (optionnel)

    Returns:
        InstallState: État final, Unknown si aucun système ne répond
    """
    if coerce_code(enforcement_state) is not None:
        return state_from_enforcement(enforcement_state) or InstallState.UNKNOWN

    state = state_from_compliance(compliance_state)
    if state is not None:
        return state

    return InstallState.UNKNOWN


def status_category(state: InstallState) -> str:
    """
    Catégorie d'affichage d'un état (success, warning, error, neutral)

    Args:
        state: État d'installation

    Returns:
        str: Catégorie utilisée pour les comptes du résumé
    """
    if state == InstallState.INSTALLED:
        return 'success'
    if state == InstallState.INSTALL_PENDING:
        return 'warning'
    if state == InstallState.FAILED:
        return 'error'
    return 'neutral'


def app_status_counts(records) -> Dict[str, int]:
    """Nombre d'applications par catégorie d'affichage"""
    counts = {'success': 0, 'warning': 0, 'error': 0, 'neutral': 0}
    for record in records:
        counts[status_category(record.install_state)] += 1
    return counts
