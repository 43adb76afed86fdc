"""
Classe de base pour tous les lecteurs de sources brutes

Ce module définit l'interface commune des lecteurs (texte, registre,
WMI) ainsi que des utilitaires partagés : exécution de commandes locales
ou distantes, exécution sécurisée et nettoyage de chaînes.
"""

import re
import subprocess
import time
from typing import List, Optional

from ..core.issues import SourceUnavailableError
from .targets import is_local_target


class BaseReader:
    """
    Classe de base pour les lecteurs de sources brutes

    Chaque lecteur reçoit la cible de la collecte. Une cible locale
    contourne toute couche de transport distante.
    """

    def __init__(self, config, logger, target: Optional[str] = None):
        """
        Initialise le lecteur de base

        Args:
            config: Instance de DiagnosticConfig
            logger: Logger de l'agent
            target: Nom du poste cible (None ou alias local pour le poste courant)
        """
        self.config = config
        self.logger = logger
        self.target = (target or '').strip()
        self.is_local = is_local_target(self.target)
        self.command_timeout = config.getint('collection', 'command_timeout', 60) if config else 60

        self.reader_name = self.__class__.__name__
        self.read_errors: List[str] = []

    def _safe_execute(self, func, error_message: str = "Erreur lors de l'exécution", default_value=None):
        """
        Exécute une fonction de manière sécurisée avec gestion d'erreur

        Args:
            func: Fonction à exécuter
            error_message: Message d'erreur personnalisé
            default_value: Valeur par défaut en cas d'erreur

        Returns:
            Résultat de la fonction ou default_value
        """
        try:
            return func()
        except Exception as e:
            error_details = f"{error_message}: {str(e)}"
            self.read_errors.append(error_details)
            self.logger.warning(error_details)
            return default_value

    def _execute_command(self, command: List[str], timeout: Optional[int] = None) -> str:
        """
        Exécute une commande et retourne sa sortie complète

        Args:
            command: Commande et arguments
            timeout: Délai maximal en secondes (défaut: command_timeout)

        Returns:
            str: Sortie standard de la commande

        Raises:
            SourceUnavailableError: Commande introuvable, en échec ou trop longue
        """
        timeout = timeout or self.command_timeout
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise SourceUnavailableError(f"Timeout pour la commande: {command[0]} (>{timeout}s)")
        except OSError as e:
            raise SourceUnavailableError(f"Commande impossible à lancer '{command[0]}': {e}")

        self.logger.debug(f"Commande {command[0]} terminée en {time.time() - start_time:.2f}s")

        if result.returncode != 0:
            stderr = (result.stderr or '').strip()[:200]
            raise SourceUnavailableError(
                f"Commande échouée: {command[0]} (code: {result.returncode}) {stderr}".strip()
            )

        return result.stdout

    def _run_powershell(self, script: str, timeout: Optional[int] = None) -> str:
        """
        Exécute un script PowerShell sur la cible

        Une cible distante passe par Invoke-Command ; son nom est inséré
        comme littéral PowerShell entre apostrophes.

        Args:
            script: Script PowerShell à exécuter
            timeout: Délai maximal en secondes

        Returns:
            str: Sortie du script
        """
        if not self.is_local:
            # Chaîne entre apostrophes : une apostrophe se double
            computer = self.target.replace("'", "''")
            script = (
                f"Invoke-Command -ComputerName '{computer}' -ErrorAction Stop "
                f"-ScriptBlock {{ {script} }}"
            )

        return self._execute_command(
            ['powershell', '-NoProfile', '-NonInteractive', '-Command', script],
            timeout=timeout
        )

    def _clean_string(self, value) -> str:
        """
        Nettoie une chaîne de caractères

        Args:
            value: Chaîne à nettoyer

        Returns:
            str: Chaîne nettoyée
        """
        if not value:
            return ""

        value = str(value).strip()
        value = ''.join(char for char in value if char.isprintable())
        return re.sub(r'\s+', ' ', value)
