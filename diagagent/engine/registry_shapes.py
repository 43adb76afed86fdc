"""
Normalisation des états d'applications Win32 stockés dans le registre

L'extension de gestion Intune (IME) enregistre l'état de chaque application
sous ``Win32Apps\\<contexte>\\<identité>``. Selon la version du client, un même
message d'état (ComplianceStateMessage, EnforcementStateMessage) est stocké :
- (a) comme valeur JSON directement sur le nœud de l'application
- (b) dans une sous-clé portant le nom du message, qui contient la même
  valeur JSON

Les formes sont sondées dans un ordre fixe, sans détection de version.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.issues import IssueLedger, ShapeMismatchError, PHASE_INTUNE_APPS
from ..core.models import AppContext, AppInstallRecord
from .state_mapper import coerce_code, resolve_install_state

GUID_RE = re.compile(
    r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'
)
INSTANCE_SUFFIX_RE = re.compile(r'^(.*)_(\d+)$')

# Clés de contexte « appareil » : objet système d'IME et LocalSystem
DEVICE_CONTEXT_KEYS = frozenset([
    '00000000-0000-0000-0000-000000000000',
    's-1-5-18',
])

COMPLIANCE_MESSAGE = 'ComplianceStateMessage'
ENFORCEMENT_MESSAGE = 'EnforcementStateMessage'
STATE_MESSAGES = (COMPLIANCE_MESSAGE, ENFORCEMENT_MESSAGE)


@dataclass
class RegistryNode:
    """
    Nœud d'un arbre de registre en mémoire

    Les lecteurs construisent cet arbre depuis winreg ; les noms de valeurs
    et de sous-clés sont comparés sans tenir compte de la casse, comme
    dans le registre Windows.
    """
    name: str
    values: Dict[str, Any] = field(default_factory=dict)
    children: List['RegistryNode'] = field(default_factory=list)

    def value(self, name: str, default: Any = None) -> Any:
        if name in self.values:
            return self.values[name]
        lowered = name.lower()
        for key, value in self.values.items():
            if key.lower() == lowered:
                return value
        return default

    def child(self, name: str) -> Optional['RegistryNode']:
        lowered = name.lower()
        for node in self.children:
            if node.name.lower() == lowered:
                return node
        return None

    def find(self, *path: str) -> Optional['RegistryNode']:
        """Descend le long d'un chemin de sous-clés"""
        node = self
        for part in path:
            node = node.child(part)
            if node is None:
                return None
        return node


@dataclass
class AppFragment:
    """Observation brute d'une application sous un contexte donné"""
    app_id: str
    context: AppContext
    user_id: str
    revision: Optional[int] = None
    messages: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def split_identity(raw: str) -> Tuple[Optional[str], Optional[int]]:
    """
    Sépare une identité brute en GUID canonique et numéro d'instance

    Args:
        raw: Nom de sous-clé, ex. ``21e67fea-...-ddddeeeeffff_2``

    Returns:
        tuple: (GUID en minuscules ou None, révision ou None)
    """
    if not raw:
        return None, None

    candidate = raw.strip()
    revision = None
    match = INSTANCE_SUFFIX_RE.match(candidate)
    if match:
        candidate = match.group(1)
        revision = int(match.group(2))

    if not GUID_RE.match(candidate):
        return None, None

    return candidate.lower(), revision


def canonical_identity(raw: str) -> Optional[str]:
    """
    Identité canonique d'une application, ou None pour une entrée de métadonnées

    L'opération est idempotente : un GUID canonique reste inchangé.
    """
    return split_identity(raw)[0]


def context_for(user_id: str) -> AppContext:
    """Contexte (Device ou User) d'une clé de contexte brute"""
    if (user_id or '').strip().lower() in DEVICE_CONTEXT_KEYS:
        return AppContext.DEVICE
    return AppContext.USER


def decode_payload(raw: Any) -> Dict[str, Any]:
    """
    Décode un message d'état JSON

    Args:
        raw: Valeur brute (chaîne JSON, octets ou dictionnaire déjà décodé)

    Returns:
        dict: Message décodé

    Raises:
        ShapeMismatchError: Si la valeur n'est pas un objet JSON valide
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8', errors='replace')
    if not isinstance(raw, str):
        raise ShapeMismatchError(f"type de valeur inattendu: {type(raw).__name__}", PHASE_INTUNE_APPS)

    try:
        payload = json.loads(raw.strip().lstrip('\ufeff'))
    except ValueError as e:
        raise ShapeMismatchError(f"JSON invalide: {e}", PHASE_INTUNE_APPS)

    if not isinstance(payload, dict):
        raise ShapeMismatchError("le message n'est pas un objet JSON", PHASE_INTUNE_APPS)

    return payload


def _probe_property(node: RegistryNode, message: str) -> Any:
    return node.value(message)


def _probe_subkey(node: RegistryNode, message: str) -> Any:
    child = node.child(message)
    if child is None:
        return None
    return child.value(message)


# Ordre de priorité des formes de stockage
SHAPE_PROBES: List[Tuple[str, Callable[[RegistryNode, str], Any]]] = [
    ('property', _probe_property),
    ('subkey', _probe_subkey),
]


def resolve_message(node: RegistryNode, message: str, ledger: IssueLedger) -> Optional[Dict[str, Any]]:
    """
    Résout un message d'état en essayant chaque forme dans l'ordre

    Une forme mal encodée est ignorée (avec un avertissement) et la
    suivante est essayée ; une forme résolue n'est jamais remplacée.

    Args:
        node: Nœud de l'application
        message: Nom du message (ComplianceStateMessage...)
        ledger: Registre des problèmes

    Returns:
        dict: Message décodé, ou None si aucune forme ne le fournit
    """
    for shape, probe in SHAPE_PROBES:
        raw = probe(node, message)
        if raw is None:
            continue
        try:
            return decode_payload(raw)
        except ShapeMismatchError as e:
            ledger.warning(PHASE_INTUNE_APPS, f"{node.name}: {message} ({shape}) ignoré: {e.message}")

    return None


def collect_fragments(root: RegistryNode, ledger: IssueLedger, include_user: bool = False) -> List[AppFragment]:
    """
    Parcourt l'arbre Win32Apps et produit un fragment par nœud d'application

    Args:
        root: Nœud Win32Apps
        ledger: Registre des problèmes
        include_user: Inclure les contextes utilisateur

    Returns:
        list: Fragments bruts, dans l'ordre de parcours
    """
    fragments = []

    for context_node in root.children:
        context = context_for(context_node.name)
        if context == AppContext.USER and not include_user:
            continue

        for app_node in context_node.children:
            app_id, revision = split_identity(app_node.name)
            if app_id is None:
                # GRS, Reporting, OperationalState... : métadonnées
                continue

            fragment = AppFragment(
                app_id=app_id,
                context=context,
                user_id=context_node.name,
                revision=revision,
            )
            for message in STATE_MESSAGES:
                payload = resolve_message(app_node, message, ledger)
                if payload is not None:
                    fragment.messages[message] = payload

            fragments.append(fragment)

    return fragments


def _payload_field(payload: Optional[Dict[str, Any]], name: str) -> Any:
    if not payload:
        return None
    if name in payload:
        return payload[name]
    lowered = name.lower()
    for key, value in payload.items():
        if key.lower() == lowered:
            return value
    return None


def select_fragment(fragments: List[AppFragment]) -> AppFragment:
    """
    Choisit un fragment entier parmi ceux d'une même identité et d'un même contexte

    La clé de contexte la plus basse (insensible à la casse) l'emporte,
    puis la révision la plus récente sous cette clé. Le fragment retenu est
    rendu tel quel : aucun message n'est repris d'un autre utilisateur ni
    d'une révision antérieure. L'ordre de parcours n'a pas d'influence.

    Args:
        fragments: Fragments non vides partageant identité et contexte

    Returns:
        AppFragment: Fragment retenu
    """
    return min(
        fragments,
        key=lambda f: (f.user_id.lower(), -(f.revision if f.revision is not None else -1)),
    )


def build_record(fragment: AppFragment) -> AppInstallRecord:
    """Construit l'enregistrement final d'une application"""
    compliance = fragment.messages.get(COMPLIANCE_MESSAGE)
    enforcement = fragment.messages.get(ENFORCEMENT_MESSAGE)

    compliance_state = coerce_code(_payload_field(compliance, 'ComplianceState'))
    enforcement_state = coerce_code(_payload_field(enforcement, 'EnforcementState'))

    error_code = coerce_code(_payload_field(enforcement, 'ErrorCode'))
    if error_code is None:
        error_code = coerce_code(_payload_field(compliance, 'ErrorCode'))

    return AppInstallRecord(
        app_id=fragment.app_id,
        context=fragment.context,
        compliance_state=compliance_state,
        enforcement_state=enforcement_state,
        error_code=error_code,
        install_state=resolve_install_state(enforcement_state, compliance_state),
        revision=fragment.revision,
        user_id=fragment.user_id,
    )


def reconcile_fragments(fragments: List[AppFragment]) -> Dict[str, AppInstallRecord]:
    """
    Réconcilie les fragments en un enregistrement par identité canonique

    Quand un fragment Device et un fragment User existent pour la même
    identité, le fragment Device est conservé tel quel et le fragment User
    est abandonné, sans fusion champ par champ. Dans un même contexte, un
    seul fragment est retenu (voir select_fragment).

    Args:
        fragments: Fragments collectés

    Returns:
        dict: Enregistrements indexés par GUID canonique
    """
    grouped: Dict[str, Dict[AppContext, List[AppFragment]]] = {}
    for fragment in fragments:
        grouped.setdefault(fragment.app_id, {}).setdefault(fragment.context, []).append(fragment)

    records = {}
    for app_id, by_context in grouped.items():
        chosen = by_context.get(AppContext.DEVICE) or by_context.get(AppContext.USER)
        records[app_id] = build_record(select_fragment(chosen))

    return records


def normalize_app_states(root: Optional[RegistryNode], ledger: IssueLedger,
                         include_user: bool = False) -> Dict[str, AppInstallRecord]:
    """
    Point d'entrée : arbre Win32Apps vers enregistrements réconciliés

    Args:
        root: Nœud Win32Apps (None si la clé est absente)
        ledger: Registre des problèmes
        include_user: Inclure les applications en contexte utilisateur

    Returns:
        dict: Enregistrements par GUID canonique (vide si la source est absente)
    """
    if root is None:
        ledger.warning(PHASE_INTUNE_APPS, "Clé Win32Apps de l'extension de gestion Intune introuvable")
        return {}

    return reconcile_fragments(collect_fragments(root, ledger, include_user=include_user))
