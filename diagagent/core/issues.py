"""
Registre des problèmes rencontrés pendant une collecte de diagnostic

Ce module fournit :
- Le type CollectionIssue (sévérité, phase, message)
- Le registre IssueLedger, en ajout seul et protégé par un verrou
- Les exceptions internes utilisées par les lecteurs et parseurs
- Le résumé final des problèmes par sévérité et par phase
"""

import threading
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any, List, Optional


class Severity(Enum):
    """Sévérités possibles d'un problème de collecte"""
    ERROR = "Error"
    WARNING = "Warning"


# Phases utilisées par les résolveurs
PHASE_DEVICE_JOIN = "Device Join"
PHASE_DEVICE_INFO = "Device Info"
PHASE_MANAGEMENT = "Management"
PHASE_INTUNE_APPS = "Intune Apps"
PHASE_DIAG_REPORT = "MDM Diagnostics"
PHASE_GROUP_POLICY = "Group Policy"
PHASE_COLLECTION = "Collection"


class DiagnosticError(Exception):
    """Erreur de base pour la collecte de diagnostic"""

    def __init__(self, message: str, phase: Optional[str] = None):
        self.message = message
        self.phase = phase
        super().__init__(f"[{phase}] {message}" if phase else message)


class SourceUnavailableError(DiagnosticError):
    """
    Levée quand une source brute est inaccessible

    Inclut les échecs de transport distant, les clés de registre absentes,
    les exécutables manquants et les dépassements de délai.
    """
    pass


class ShapeMismatchError(DiagnosticError):
    """
    Levée quand un fragment est trouvé mais dans un encodage inattendu

    Exemple : JSON embarqué mal formé dans une valeur de registre.
    """
    pass


@dataclass(frozen=True)
class CollectionIssue:
    """Un problème rencontré pendant la collecte"""
    severity: Severity
    phase: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        data['severity'] = self.severity.value
        return data


class IssueLedger:
    """
    Registre des problèmes de collecte, en ajout seul

    Une instance est créée (ou réinitialisée) au début de chaque exécution
    et passée explicitement à chaque résolveur. Les ajouts sont sérialisés
    par un verrou, ce qui permet l'usage depuis le pool de travail.
    """

    def __init__(self, logger=None):
        """
        Initialise le registre

        Args:
            logger: Logger optionnel qui reçoit aussi chaque problème
        """
        self._issues: List[CollectionIssue] = []
        self._lock = threading.Lock()
        self.logger = logger

    def reset(self):
        """Vide le registre au début d'une exécution"""
        with self._lock:
            self._issues = []

    def add(self, severity: Severity, phase: str, message: str) -> CollectionIssue:
        """
        Ajoute un problème au registre

        Args:
            severity: Sévérité du problème
            phase: Phase de collecte concernée
            message: Description du problème

        Returns:
            CollectionIssue: Le problème enregistré
        """
        issue = CollectionIssue(severity=severity, phase=phase, message=message)
        with self._lock:
            self._issues.append(issue)

        if self.logger:
            if severity == Severity.ERROR:
                self.logger.error(f"[{phase}] {message}")
            else:
                self.logger.warning(f"[{phase}] {message}")

        return issue

    def error(self, phase: str, message: str) -> CollectionIssue:
        return self.add(Severity.ERROR, phase, message)

    def warning(self, phase: str, message: str) -> CollectionIssue:
        return self.add(Severity.WARNING, phase, message)

    @property
    def issues(self) -> List[CollectionIssue]:
        """Copie des problèmes enregistrés, dans l'ordre d'ajout"""
        with self._lock:
            return list(self._issues)

    @property
    def errors(self) -> List[CollectionIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[CollectionIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def is_clean(self) -> bool:
        return not self.issues

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)

    def to_list(self) -> List[Dict[str, str]]:
        return [issue.to_dict() for issue in self.issues]


def relevant_issues(issues: List[CollectionIssue], management_type: Optional[str]) -> List[CollectionIssue]:
    """
    Filtre les problèmes non pertinents pour le type de gestion du poste

    Sur un poste cloud (pas d'AD), les avertissements de stratégie de groupe
    sont ignorés. Sur un poste on-prem, les avertissements Intune le sont.
    Les erreurs sont toujours conservées.

    Args:
        issues: Problèmes enregistrés
        management_type: Libellé de classification du poste

    Returns:
        list: Problèmes pertinents
    """
    mgmt = (management_type or '').lower()
    filtered = []

    for issue in issues:
        phase = issue.phase.lower()
        if issue.severity != Severity.ERROR:
            if mgmt in ('cloud-only', 'azure ad joined') and phase == PHASE_GROUP_POLICY.lower():
                continue
            if mgmt.startswith('on-prem') and phase in ('intune', PHASE_INTUNE_APPS.lower()):
                continue
        filtered.append(issue)

    return filtered


def build_summary(issues: List[CollectionIssue]) -> List[str]:
    """
    Construit le résumé final des problèmes, groupés par sévérité puis phase

    Args:
        issues: Problèmes à résumer

    Returns:
        list: Lignes de résumé prêtes à afficher
    """
    if not issues:
        return ["Collecte propre : aucun problème détecté"]

    lines = []
    errors = [i for i in issues if i.severity == Severity.ERROR]
    warnings = [i for i in issues if i.severity == Severity.WARNING]
    lines.append(f"Problèmes de collecte : {len(errors)} erreur(s), {len(warnings)} avertissement(s)")

    for severity, group in ((Severity.ERROR, errors), (Severity.WARNING, warnings)):
        if not group:
            continue

        lines.append(f"{severity.value}:")
        by_phase: Dict[str, List[CollectionIssue]] = {}
        for issue in group:
            by_phase.setdefault(issue.phase, []).append(issue)

        for phase, phase_issues in by_phase.items():
            lines.append(f"  {phase}:")
            for issue in phase_issues:
                lines.append(f"    - {issue.message}")

    return lines


def summary_counts(issues: List[CollectionIssue]) -> Dict[str, Any]:
    """Compte les problèmes par sévérité"""
    return {
        'total': len(issues),
        'errors': sum(1 for i in issues if i.severity == Severity.ERROR),
        'warnings': sum(1 for i in issues if i.severity == Severity.WARNING),
    }
