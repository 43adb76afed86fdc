"""
Extraction des signaux texte de la sortie de jonction (dsregcmd /status)

Chaque champ est extrait par un motif indépendant, insensible à la casse
et à l'ordre, de la forme ``<Champ> : <valeur>`` avec des espaces optionnels
autour du séparateur.
"""

import re
from typing import Callable, Iterable, Optional, Union

from ..core.issues import IssueLedger, PHASE_DEVICE_JOIN
from ..core.models import JoinState

GUID_PATTERN = r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'

_FLAG_PATTERNS = {
    'azure_ad_joined': re.compile(r'\bAzureAdJoined\s*:\s*(YES|NO)\b', re.IGNORECASE),
    'domain_joined': re.compile(r'\bDomainJoined\s*:\s*(YES|NO)\b', re.IGNORECASE),
    'workplace_joined': re.compile(r'\bWorkplaceJoined\s*:\s*(YES|NO)\b', re.IGNORECASE),
}

_GUID_PATTERNS = {
    'device_id': re.compile(r'\bDeviceId\s*:\s*(' + GUID_PATTERN + r')', re.IGNORECASE),
    'tenant_id': re.compile(r'\bTenantId\s*:\s*(' + GUID_PATTERN + r')', re.IGNORECASE),
}

# Deux orthographes du libellé, la première qui correspond l'emporte
_TENANT_NAME_PATTERNS = (
    re.compile(r'\bTenantName[ \t]*:[ \t]*([^\r\n]*)', re.IGNORECASE),
    re.compile(r'\bTenant Name[ \t]*:[ \t]*([^\r\n]*)', re.IGNORECASE),
)

RawText = Union[str, bytes, Iterable[str], None]


def flatten_text(raw: RawText) -> str:
    """
    Aplatit une sortie brute en une seule chaîne

    Une sortie sous forme de tableau de lignes ne doit jamais être
    parcourue ligne par ligne : les groupes de capture ne seraient pas
    renseignés.

    Args:
        raw: Chaîne, octets ou séquence de lignes

    Returns:
        str: Texte sur une seule chaîne
    """
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        return raw
    return "\n".join(str(line).rstrip('\r\n') for line in raw)


def _match_flag(pattern, text: str) -> bool:
    match = pattern.search(text)
    return bool(match) and match.group(1).upper() == 'YES'


def _match_value(pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def parse_join_state(raw: RawText) -> JoinState:
    """
    Extrait l'état de jonction d'un bloc de texte

    Un champ absent garde sa valeur par défaut sans affecter les autres.

    Args:
        raw: Sortie de dsregcmd /status (chaîne ou lignes)

    Returns:
        JoinState: État de jonction typé, avec le texte brut conservé
    """
    text = flatten_text(raw)

    flags = {name: _match_flag(pattern, text) for name, pattern in _FLAG_PATTERNS.items()}
    guids = {name: _match_value(pattern, text) for name, pattern in _GUID_PATTERNS.items()}

    tenant_name = None
    for pattern in _TENANT_NAME_PATTERNS:
        tenant_name = _match_value(pattern, text)
        if tenant_name:
            break

    return JoinState(
        azure_ad_joined=flags['azure_ad_joined'],
        domain_joined=flags['domain_joined'],
        workplace_joined=flags['workplace_joined'],
        device_id=guids['device_id'],
        tenant_id=guids['tenant_id'],
        tenant_name=tenant_name,
        raw_text=text,
    )


def resolve_join_state(fetch: Callable[[], RawText], ledger: IssueLedger) -> JoinState:
    """
    Récupère et analyse l'état de jonction sans jamais lever d'exception

    Args:
        fetch: Fonction qui retourne la sortie brute de dsregcmd
        ledger: Registre des problèmes de l'exécution

    Returns:
        JoinState: État analysé, ou état par défaut si la source est absente
    """
    try:
        raw = fetch()
    except Exception as e:
        ledger.error(PHASE_DEVICE_JOIN, f"Impossible d'obtenir l'état de jonction: {e}")
        return JoinState()

    return join_state_from_raw(raw, ledger)


def join_state_from_raw(raw: RawText, ledger: IssueLedger) -> JoinState:
    """
    Analyse une sortie déjà récupérée, en signalant une source vide

    Args:
        raw: Sortie brute (None si la source était inaccessible)
        ledger: Registre des problèmes de l'exécution

    Returns:
        JoinState: État analysé ou état par défaut
    """
    text = flatten_text(raw)
    if not text.strip():
        ledger.error(PHASE_DEVICE_JOIN, "Sortie de dsregcmd /status vide ou indisponible")
        return JoinState()

    return parse_join_state(text)
