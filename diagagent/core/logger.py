"""
Logging de l'agent de diagnostic

Un seul logger nommé (``DiagAgent``) sert toute l'exécution. Il écrit :
- dans un fichier tournant, au format détaillé
- sur stderr, au format court

La sortie standard reste réservée au résumé affiché par la ligne de commande.
"""

import os
import sys
import tempfile
import logging
import logging.handlers
from typing import Any, Dict, Optional

LOGGER_NAME = 'DiagAgent'

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
CONSOLE_FORMAT = '%(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

DEFAULT_MAX_BYTES = 10485760  # 10MB
DEFAULT_BACKUP_COUNT = 5


def default_log_file() -> str:
    """Fichier de log utilisé sans configuration (répertoire temporaire)"""
    return os.path.join(tempfile.gettempdir(), 'diagagent.log')


def mask_secret(value: str) -> str:
    """
    Masque une valeur sensible pour l'affichage dans les logs

    Args:
        value: Valeur à masquer (jeton d'authentification...)

    Returns:
        str: Début de la valeur suivi de points de suspension
    """
    if not value:
        return "Non configuré"
    return value[:4] + "..."


class AgentLogger:
    """
    Configure le logger de l'agent une fois par processus

    Une seconde instance réutilise les handlers déjà en place au lieu d'en
    ajouter de nouveaux.
    """

    def __init__(self, config=None):
        """
        Args:
            config: Instance de DiagnosticConfig (section [logging]), optionnelle
        """
        self.config = config
        self.logger = logging.getLogger(LOGGER_NAME)

        if not self.logger.handlers:
            self._configure()

    def _settings(self) -> Dict[str, Any]:
        """Paramètres de la section [logging], ou valeurs par défaut"""
        if self.config is None:
            return {
                'level': 'INFO',
                'file': default_log_file(),
                'max_bytes': DEFAULT_MAX_BYTES,
                'backup_count': DEFAULT_BACKUP_COUNT,
            }

        return {
            'level': self.config.get('logging', 'log_level', 'INFO'),
            'file': self.config.get('logging', 'log_file') or default_log_file(),
            'max_bytes': self.config.getint('logging', 'max_log_size', DEFAULT_MAX_BYTES),
            'backup_count': self.config.getint('logging', 'backup_count', DEFAULT_BACKUP_COUNT),
        }

    def _configure(self):
        settings = self._settings()
        level = getattr(logging, settings['level'].upper(), logging.INFO)
        self.logger.setLevel(level)

        file_handler = self._file_handler(settings['file'], settings['max_bytes'], settings['backup_count'])
        if file_handler is not None:
            self.logger.addHandler(file_handler)
        self.logger.addHandler(self._console_handler())

        for handler in self.logger.handlers:
            handler.setLevel(level)

        self.logger.info(f"Logging initialisé (niveau {logging.getLevelName(level)}, "
                         f"fichier {settings['file'] if file_handler else 'aucun'})")

    @staticmethod
    def _file_handler(path: str, max_bytes: int, backup_count: int) -> Optional[logging.Handler]:
        """
        Crée le handler fichier tournant

        Un fichier impossible à ouvrir est signalé sur stderr ; l'agent
        continue avec la seule sortie console.

        Returns:
            logging.Handler: Handler prêt, ou None
        """
        try:
            log_dir = os.path.dirname(path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                filename=path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
        except OSError as e:
            print(f"Fichier de log inutilisable ({path}): {e}", file=sys.stderr)
            return None

        handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        return handler

    @staticmethod
    def _console_handler() -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
        return handler

    def get_logger(self) -> logging.Logger:
        """Logger partagé par les composants de l'agent"""
        return self.logger

    def log_config_info(self, config):
        """
        Trace la configuration effective, jeton d'authentification masqué

        Args:
            config: Instance de DiagnosticConfig
        """
        sections = (
            ('Collection', config.get_collection_config()),
            ('Diagnostics', config.get_diagnostics_config()),
            ('Server', config.get_server_config()),
        )

        self.logger.info("=== Configuration de l'agent ===")
        for section, values in sections:
            for key, value in values.items():
                if key == 'auth_token':
                    value = mask_secret(value)
                self.logger.info(f"{section}.{key}: {value}")
        self.logger.info("=== Fin configuration ===")
