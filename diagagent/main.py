"""
Point d'entrée principal de l'agent de diagnostic

Une exécution lit la posture de gestion d'un poste (local ou distant),
affiche le résumé des problèmes de collecte, et peut :
- Sauvegarder l'instantané JSON dans un fichier
- Publier l'instantané vers le serveur configuré
"""

import argparse
import json
import sys

from diagagent.core.collector import DiagnosticCollector
from diagagent.core.config import DiagnosticConfig, create_default_config
from diagagent.core.issues import build_summary, relevant_issues
from diagagent.core.logger import AgentLogger
from diagagent.core.sender import SnapshotSender
from diagagent.engine.state_mapper import app_status_counts


class DiagAgent:
    """
    Agent de diagnostic principal

    Relie la configuration, le logger, le collecteur et le sender.
    """

    def __init__(self, config_path=None):
        """
        Initialise l'agent

        Args:
            config_path: Chemin vers le fichier de configuration
        """
        self.config = DiagnosticConfig(config_path)

        self.logger = AgentLogger(self.config)
        self.app_logger = self.logger.get_logger()

        self.collector = DiagnosticCollector(self.config, self.logger)
        self.sender = SnapshotSender(self.config, self.logger)

        self.logger.log_config_info(self.config)

        self.app_logger.info("DiagAgent initialisé")

    def collect(self, target=None, include_user_apps=None, run_diagnostics=None):
        """
        Effectue une collecte de diagnostic

        Returns:
            DiagnosticSnapshot: Instantané de l'exécution
        """
        return self.collector.collect(
            target=target,
            include_user_apps=include_user_apps,
            run_diagnostics=run_diagnostics
        )

    def send(self, snapshot):
        """
        Publie l'instantané vers le serveur

        Returns:
            tuple: (success, message)
        """
        return self.sender.send_snapshot_with_retry(snapshot.to_dict(), max_retries=3)


def print_summary(snapshot):
    """Affiche la posture du poste et le résumé des problèmes pertinents"""
    print(f"Poste: {snapshot.target}")
    print(f"Jonction: {snapshot.join_state.join_type}")
    print(f"Gestion: {snapshot.management.management_type.value}")
    print(f"Applications Win32: {len(snapshot.apps)}")
    if snapshot.apps:
        counts = app_status_counts(snapshot.apps.values())
        print(f"  Installées: {counts['success']}, en attente: {counts['warning']}, "
              f"en échec: {counts['error']}, autres: {counts['neutral']}")

    issues = relevant_issues(snapshot.issues, snapshot.management.management_type.value)
    for line in build_summary(issues):
        print(line)


def main(argv=None):
    """
    Point d'entrée principal avec gestion des arguments de ligne de commande
    """
    parser = argparse.ArgumentParser(
        description='Agent de diagnostic - Posture de gestion Intune / ConfigMgr d\'un poste Windows'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Chemin vers le fichier de configuration'
    )

    parser.add_argument(
        '--target', '-t',
        type=str,
        help='Poste cible (défaut: poste local)'
    )

    parser.add_argument(
        '--include-user-apps',
        action='store_true',
        default=None,
        help='Inclut les applications installées en contexte utilisateur'
    )

    parser.add_argument(
        '--no-diag',
        action='store_true',
        help='Ne lance pas MdmDiagnosticsTool'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        help='Fichier de sortie pour l\'instantané JSON'
    )

    parser.add_argument(
        '--send',
        action='store_true',
        help='Publie l\'instantané vers le serveur configuré'
    )

    parser.add_argument(
        '--create-config',
        action='store_true',
        help='Crée un fichier de configuration par défaut'
    )

    parser.add_argument(
        '--validate-config',
        action='store_true',
        help='Valide la configuration actuelle'
    )

    args = parser.parse_args(argv)

    if args.create_config:
        if not args.config:
            print("❌ --create-config nécessite --config")
            return 1
        try:
            create_default_config(args.config)
            print(f"✅ Configuration par défaut créée: {args.config}")
            return 0
        except OSError as e:
            print(f"❌ Erreur création configuration: {e}")
            return 1

    try:
        agent = DiagAgent(args.config)
    except Exception as e:
        print(f"❌ Erreur initialisation agent: {e}")
        return 1

    if args.validate_config:
        if agent.config.validate():
            print("✅ Configuration valide")
            return 0
        print("❌ Configuration invalide")
        return 1

    try:
        snapshot = agent.collect(
            target=args.target,
            include_user_apps=args.include_user_apps,
            run_diagnostics=False if args.no_diag else None
        )
    except KeyboardInterrupt:
        print("\n🛑 Arrêt demandé par l'utilisateur")
        return 0

    print_summary(snapshot)

    if args.output:
        try:
            with open(args.output, 'w', encoding='utf-8') as f:
                json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False, default=str)
            print(f"✅ Instantané sauvegardé dans: {args.output}")
        except OSError as e:
            print(f"❌ Erreur écriture {args.output}: {e}")
            return 1

    if args.send:
        success, message = agent.send(snapshot)
        if success:
            print(f"✅ Envoi réussi: {message}")
        else:
            print(f"⚠️  Envoi: {message}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
