"""
Module de configuration pour l'agent de diagnostic

Ce module gère la configuration de l'agent, incluant :
- Lecture des fichiers de configuration
- Validation des paramètres
- Valeurs par défaut
- Configuration spécifique par plateforme
"""

import os
import sys
import configparser
from typing import Dict, Any, Optional


class DiagnosticConfig:
    """
    Gestionnaire de configuration pour l'agent de diagnostic

    Cette classe centralise la configuration de la collecte, de l'outil
    de diagnostic MDM, de l'envoi au serveur et du logging.
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialise la configuration de l'agent

        Args:
            config_file: Chemin vers le fichier de configuration (optionnel)
        """
        self.config = configparser.ConfigParser()
        self.config_file = config_file or self._get_default_config_path()

        # Définir les valeurs par défaut
        self._set_defaults()

        # Charger la configuration depuis le fichier
        self._load_config()

    def _get_default_config_path(self) -> str:
        """
        Détermine le chemin par défaut du fichier de configuration selon la plateforme

        Returns:
            str: Chemin vers le fichier de configuration
        """
        if sys.platform == "win32":
            return os.path.join(
                os.environ.get("PROGRAMDATA", "C:\\ProgramData"),
                "DiagAgent",
                "config.ini"
            )
        else:
            return "/etc/diagagent/config.ini"

    def _set_defaults(self):
        """
        Définit les valeurs de configuration par défaut

        Ces valeurs sont utilisées si aucun fichier de configuration n'est trouvé
        ou si certaines sections/clés sont manquantes.
        """
        # Configuration de collecte
        self.config.add_section('collection')
        self.config.set('collection', 'target', '')
        self.config.set('collection', 'include_user_apps', 'false')
        self.config.set('collection', 'parallel', 'false')
        self.config.set('collection', 'max_workers', '4')
        self.config.set('collection', 'batch_timeout', '330')
        self.config.set('collection', 'command_timeout', '60')

        # Configuration de l'outil de diagnostic MDM
        self.config.add_section('diagnostics')
        self.config.set('diagnostics', 'enabled', 'true')
        self.config.set('diagnostics', 'tool_path', self._get_default_tool_path())
        self.config.set('diagnostics', 'areas', 'DeviceEnrollment;DeviceProvisioning;Autopilot')
        self.config.set('diagnostics', 'tool_timeout', '300')

        # Configuration serveur (envoi optionnel de l'instantané)
        self.config.add_section('server')
        self.config.set('server', 'url', '')
        self.config.set('server', 'auth_token', '')
        self.config.set('server', 'timeout', '30')
        self.config.set('server', 'verify_ssl', 'true')

        # Configuration logging
        self.config.add_section('logging')
        self.config.set('logging', 'log_level', 'INFO')
        self.config.set('logging', 'log_file', self._get_default_log_path())
        self.config.set('logging', 'max_log_size', '10485760')  # 10MB
        self.config.set('logging', 'backup_count', '5')

    def _get_default_tool_path(self) -> str:
        """Chemin par défaut de MdmDiagnosticsTool.exe"""
        if sys.platform == "win32":
            return os.path.join(
                os.environ.get("SYSTEMROOT", "C:\\Windows"),
                "System32",
                "MdmDiagnosticsTool.exe"
            )
        return "MdmDiagnosticsTool.exe"

    def _get_default_log_path(self) -> str:
        """
        Détermine le chemin par défaut des logs selon la plateforme

        Returns:
            str: Chemin vers le fichier de log
        """
        if sys.platform == "win32":
            return os.path.join(
                os.environ.get("PROGRAMDATA", "C:\\ProgramData"),
                "DiagAgent",
                "logs",
                "diagagent.log"
            )
        else:
            return "/tmp/diagagent.log"

    def _load_config(self):
        """
        Charge la configuration depuis le fichier

        Si le fichier n'existe pas, utilise les valeurs par défaut.
        En cas d'erreur de lecture, affiche l'erreur et continue avec les défauts.
        """
        try:
            if os.path.exists(self.config_file):
                self.config.read(self.config_file, encoding='utf-8')
                print(f"Configuration chargée depuis: {self.config_file}")
            else:
                print(f"Fichier de configuration non trouvé: {self.config_file}")
                print("Utilisation des valeurs par défaut")

        except configparser.Error as e:
            print(f"Erreur lors du chargement de la configuration: {e}")
            print("Utilisation des valeurs par défaut")

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """
        Récupère une valeur de configuration

        Args:
            section: Nom de la section
            option: Nom de l'option
            fallback: Valeur par défaut si non trouvée

        Returns:
            str: Valeur de configuration
        """
        return self.config.get(section, option, fallback=fallback)

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """
        Récupère une valeur booléenne de configuration

        Args:
            section: Nom de la section
            option: Nom de l'option
            fallback: Valeur par défaut si non trouvée

        Returns:
            bool: Valeur booléenne
        """
        return self.config.getboolean(section, option, fallback=fallback)

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """
        Récupère une valeur entière de configuration

        Args:
            section: Nom de la section
            option: Nom de l'option
            fallback: Valeur par défaut si non trouvée

        Returns:
            int: Valeur entière
        """
        return self.config.getint(section, option, fallback=fallback)

    def set(self, section: str, option: str, value: str):
        """
        Définit une valeur de configuration

        Args:
            section: Nom de la section
            option: Nom de l'option
            value: Nouvelle valeur
        """
        if not self.config.has_section(section):
            self.config.add_section(section)
        self.config.set(section, option, str(value))

    def save(self):
        """
        Sauvegarde la configuration dans le fichier

        Crée les dossiers parents si nécessaire.
        """
        try:
            config_dir = os.path.dirname(self.config_file)
            if config_dir and not os.path.exists(config_dir):
                os.makedirs(config_dir, exist_ok=True)

            with open(self.config_file, 'w', encoding='utf-8') as f:
                self.config.write(f)

            print(f"Configuration sauvegardée dans: {self.config_file}")

        except OSError as e:
            print(f"Erreur lors de la sauvegarde de la configuration: {e}")
            raise

    def get_collection_config(self) -> Dict[str, Any]:
        """
        Récupère la configuration de collecte

        Returns:
            dict: Configuration de collecte
        """
        return {
            'target': self.get('collection', 'target', ''),
            'include_user_apps': self.getboolean('collection', 'include_user_apps', False),
            'parallel': self.getboolean('collection', 'parallel', False),
            'max_workers': self.getint('collection', 'max_workers', 4),
            'batch_timeout': self.getint('collection', 'batch_timeout', 330),
            'command_timeout': self.getint('collection', 'command_timeout', 60)
        }

    def get_diagnostics_config(self) -> Dict[str, Any]:
        """
        Récupère la configuration de l'outil de diagnostic MDM

        Returns:
            dict: Configuration de l'outil
        """
        return {
            'enabled': self.getboolean('diagnostics', 'enabled', True),
            'tool_path': self.get('diagnostics', 'tool_path', self._get_default_tool_path()),
            'areas': self.get('diagnostics', 'areas', 'DeviceEnrollment;DeviceProvisioning;Autopilot'),
            'tool_timeout': self.getint('diagnostics', 'tool_timeout', 300)
        }

    def get_server_config(self) -> Dict[str, Any]:
        """
        Récupère la configuration complète du serveur

        Returns:
            dict: Configuration serveur
        """
        return {
            'url': self.get('server', 'url', ''),
            'auth_token': self.get('server', 'auth_token', ''),
            'timeout': self.getint('server', 'timeout', 30),
            'verify_ssl': self.getboolean('server', 'verify_ssl', True)
        }

    def validate(self) -> bool:
        """
        Valide la configuration courante

        Returns:
            bool: True si la configuration est valide, False sinon
        """
        errors = []

        # L'URL serveur est optionnelle, mais doit être valide si renseignée
        server_url = self.get('server', 'url', '')
        if server_url and not server_url.startswith(('http://', 'https://')):
            errors.append("URL serveur invalide")

        log_level = self.get('logging', 'log_level', 'INFO')
        if log_level.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            errors.append("Niveau de log invalide")

        try:
            if self.getint('collection', 'max_workers') < 1:
                errors.append("max_workers doit être supérieur ou égal à 1")
            for section, option in (('collection', 'batch_timeout'),
                                    ('collection', 'command_timeout'),
                                    ('diagnostics', 'tool_timeout')):
                if self.getint(section, option) <= 0:
                    errors.append(f"{section}.{option} doit être strictement positif")

            # Le lot ne doit pas expirer avant les lectures qu'il attend
            batch_timeout = self.getint('collection', 'batch_timeout')
            if batch_timeout < self.getint('collection', 'command_timeout'):
                errors.append("batch_timeout doit être supérieur ou égal à command_timeout")
            if (self.getboolean('diagnostics', 'enabled', False)
                    and batch_timeout < self.getint('diagnostics', 'tool_timeout')):
                errors.append("batch_timeout doit être supérieur ou égal à tool_timeout")
        except ValueError as e:
            errors.append(f"Valeur numérique invalide: {e}")

        if errors:
            for error in errors:
                print(f"Erreur de configuration: {error}")
            return False

        return True


def create_default_config(config_path: str) -> DiagnosticConfig:
    """
    Crée un fichier de configuration par défaut

    Args:
        config_path: Chemin où créer le fichier de configuration

    Returns:
        DiagnosticConfig: Instance de configuration créée
    """
    config = DiagnosticConfig(config_path)
    config.save()
    return config
