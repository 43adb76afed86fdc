"""
Module collecteur principal pour l'agent de diagnostic

Ce module orchestre une exécution complète :
- Lecture des sources brutes (séquentielle ou via le pool borné)
- Réconciliation par le moteur (jonction, applications, rapport MDM)
- Classification du type de gestion
- Assemblage de l'instantané canonique et du registre des problèmes
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from .. import __version__
from ..collectors.device import DeviceInfoReader
from ..collectors.join_state import JoinStateReader
from ..collectors.management import ManagementReader
from ..collectors.targets import display_target, is_local_target
from ..engine.classification import classify_management, detect_co_management, detect_mdm_enrollment
from ..engine.diag_report import DiagnosticTool, ToolResult, report_from_tool_result
from ..engine.registry_shapes import normalize_app_states
from ..engine.text_signals import join_state_from_raw
from .issues import (
    IssueLedger, Severity, SourceUnavailableError,
    PHASE_DEVICE_INFO, PHASE_DEVICE_JOIN, PHASE_DIAG_REPORT, PHASE_INTUNE_APPS, PHASE_MANAGEMENT,
)
from .models import DeviceInfo, DiagnosticReport, DiagnosticSnapshot, JoinState, ManagementFacts
from .pool import run_batch


@dataclass
class SourceResult:
    """Résultat d'une lecture brute : valeur, ou message d'erreur"""
    value: Any = None
    error: Optional[str] = None


@dataclass
class RawSource:
    """Description d'une source brute à lire"""
    name: str
    phase: str
    severity: Severity
    read: Callable[[], Any]


class DiagnosticCollector:
    """
    Collecteur principal qui orchestre une collecte de diagnostic

    Chaque appel à collect() produit un nouvel instantané ; aucun résultat
    n'est conservé d'une exécution à l'autre.
    """

    def __init__(self, config, logger):
        """
        Initialise le collecteur principal

        Args:
            config: Instance de DiagnosticConfig
            logger: Instance de AgentLogger
        """
        self.config = config
        self.logger = logger.get_logger()

        collection_config = config.get_collection_config()
        self.default_target = collection_config['target']
        self.include_user_apps = collection_config['include_user_apps']
        self.parallel = collection_config['parallel']
        self.max_workers = collection_config['max_workers']
        self.batch_timeout = collection_config['batch_timeout']

        self.diagnostics_config = config.get_diagnostics_config()

        self.ledger = IssueLedger(self.logger)

        self.logger.info("DiagnosticCollector initialisé")
        self.logger.info(f"Collecte parallèle: {self.parallel} (max {self.max_workers})")
        self.logger.info(f"Applications utilisateur: {self.include_user_apps}")

    def _guarded(self, read: Callable[[], Any]) -> Callable[[], SourceResult]:
        """Enveloppe une lecture pour convertir les échecs en SourceResult"""
        def run():
            try:
                return SourceResult(value=read())
            except SourceUnavailableError as e:
                return SourceResult(error=e.message)
            except Exception as e:
                return SourceResult(error=f"Erreur inattendue: {e}")
        return run

    def _build_sources(self, target: str, run_diagnostics: bool) -> List[RawSource]:
        """
        Liste les sources brutes à lire pour une cible

        Args:
            target: Cible de la collecte
            run_diagnostics: Lancer l'outil de diagnostic MDM

        Returns:
            list: Sources dans un ordre fixe
        """
        join_reader = JoinStateReader(self.config, self.logger, target)
        management_reader = ManagementReader(self.config, self.logger, target)
        device_reader = DeviceInfoReader(self.config, self.logger, target)

        sources = [
            RawSource('join_state', PHASE_DEVICE_JOIN, Severity.ERROR, join_reader.read),
            RawSource('device_info', PHASE_DEVICE_INFO, Severity.WARNING, device_reader.read_with_errors),
            RawSource('enrollments', PHASE_MANAGEMENT, Severity.WARNING, management_reader.read_enrollments),
            RawSource('sccm', PHASE_MANAGEMENT, Severity.WARNING, management_reader.read_sccm_installed),
            RawSource('co_management', PHASE_MANAGEMENT, Severity.WARNING,
                      management_reader.read_co_management_flags),
            RawSource('win32_apps', PHASE_INTUNE_APPS, Severity.WARNING, management_reader.read_win32_apps),
        ]

        if run_diagnostics:
            tool = DiagnosticTool(
                tool_path=self.diagnostics_config['tool_path'],
                areas=self.diagnostics_config['areas'],
                timeout=self.diagnostics_config['tool_timeout'],
                logger=self.logger
            )
            sources.append(RawSource('diag_report', PHASE_DIAG_REPORT, Severity.WARNING, tool.run))

        return sources

    def _fetch_all(self, sources: List[RawSource]) -> List[Optional[SourceResult]]:
        """
        Lit toutes les sources, en parallèle si configuré

        Returns:
            list: Un SourceResult par source (None si non terminée à temps)
        """
        tasks: List[Tuple[str, Callable[[], Any]]] = [
            (source.name, self._guarded(source.read)) for source in sources
        ]

        if self.parallel:
            return run_batch(
                tasks,
                max_workers=self.max_workers,
                timeout=self.batch_timeout,
                ledger=self.ledger,
                logger=self.logger
            )

        return [func() for _name, func in tasks]

    def _value(self, source: RawSource, result: Optional[SourceResult]) -> Tuple[Any, bool]:
        """
        Extrait la valeur d'une lecture et signale les échecs

        Returns:
            tuple: (valeur lue ou None, lecture réussie)
        """
        if result is None:
            self.ledger.add(source.severity, source.phase, f"Source '{source.name}' indisponible (délai dépassé)")
            return None, False
        if result.error is not None:
            self.ledger.add(source.severity, source.phase, result.error)
            return None, False
        return result.value, True

    def collect(self, target: Optional[str] = None, include_user_apps: Optional[bool] = None,
                run_diagnostics: Optional[bool] = None) -> DiagnosticSnapshot:
        """
        Lance une collecte complète et produit l'instantané

        Args:
            target: Poste cible (défaut: configuration, puis poste local)
            include_user_apps: Inclure les applications en contexte utilisateur
            run_diagnostics: Lancer MdmDiagnosticsTool (défaut: configuration)

        Returns:
            DiagnosticSnapshot: Instantané canonique de l'exécution
        """
        start_time = time.time()
        self.ledger.reset()

        target = self.default_target if target is None else target
        include_user = self.include_user_apps if include_user_apps is None else include_user_apps
        run_diagnostics = self.diagnostics_config['enabled'] if run_diagnostics is None else run_diagnostics

        snapshot = DiagnosticSnapshot(target=display_target(target), agent_version=__version__)
        self.logger.info(f"=== Début de collecte de diagnostic ({snapshot.target}) ===")

        if run_diagnostics and not is_local_target(target):
            # MdmDiagnosticsTool ne s'exécute que sur le poste local
            self.ledger.warning(PHASE_DIAG_REPORT, "Rapport MDM non collecté: cible distante")
            run_diagnostics = False

        sources = self._build_sources(target, run_diagnostics)
        results = self._fetch_all(sources)

        raw = {}
        failed = set()
        for source, result in zip(sources, results):
            value, ok = self._value(source, result)
            raw[source.name] = value
            if not ok:
                failed.add(source.name)

        snapshot.join_state = self._resolve_join_state(raw['join_state'], 'join_state' in failed)
        snapshot.device = self._resolve_device(raw['device_info'])
        snapshot.management = self._resolve_management(snapshot.join_state, raw)
        snapshot.apps = self._resolve_apps(raw['win32_apps'], 'win32_apps' in failed, include_user)
        snapshot.report = self._resolve_report(raw.get('diag_report'))

        snapshot.collection_duration_seconds = round(time.time() - start_time, 2)
        snapshot.issues = self.ledger.issues

        self.logger.info(f"Collecte terminée en {snapshot.collection_duration_seconds:.2f} secondes")
        self.logger.info(f"Jonction: {snapshot.join_state.join_type}, "
                         f"gestion: {snapshot.management.management_type.value}, "
                         f"{len(snapshot.apps)} application(s), {len(snapshot.issues)} problème(s)")

        return snapshot

    def _resolve_join_state(self, raw_text, failed: bool) -> JoinState:
        # Un échec de lecture a déjà été signalé par _value
        if failed:
            return JoinState()
        return join_state_from_raw(raw_text, self.ledger)

    def _resolve_device(self, raw_device) -> DeviceInfo:
        if raw_device is None:
            return DeviceInfo()
        info, errors = raw_device
        for message in errors:
            self.ledger.warning(PHASE_DEVICE_INFO, message)
        return info

    def _resolve_management(self, join_state: JoinState, raw) -> ManagementFacts:
        mdm_enrolled, provider_id = detect_mdm_enrollment(raw.get('enrollments'))
        sccm_installed = bool(raw.get('sccm'))
        co_managed = detect_co_management(raw.get('co_management'))

        management_type = classify_management(
            azure_ad_joined=join_state.azure_ad_joined,
            domain_joined=join_state.domain_joined,
            sccm_installed=sccm_installed,
            mdm_enrolled=mdm_enrolled,
            co_managed=co_managed
        )

        return ManagementFacts(
            sccm_installed=sccm_installed,
            mdm_enrolled=mdm_enrolled,
            mdm_provider_id=provider_id,
            co_managed=co_managed,
            management_type=management_type
        )

    def _resolve_apps(self, apps_tree, failed: bool, include_user: bool):
        if failed:
            return {}
        return normalize_app_states(apps_tree, self.ledger, include_user=include_user)

    def _resolve_report(self, tool_result: Optional[ToolResult]) -> DiagnosticReport:
        if tool_result is None:
            return DiagnosticReport()
        return report_from_tool_result(tool_result, self.ledger)
