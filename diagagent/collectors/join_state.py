"""
Lecteur de l'état de jonction (dsregcmd /status)
"""

from .base import BaseReader


class JoinStateReader(BaseReader):
    """
    Récupère la sortie brute de dsregcmd /status

    La sortie est toujours rendue sous forme d'une seule chaîne.
    """

    def read(self) -> str:
        """
        Lit la sortie de dsregcmd sur la cible

        Returns:
            str: Sortie complète de la commande

        Raises:
            SourceUnavailableError: Si la commande ne peut pas être exécutée
        """
        if self.is_local:
            output = self._execute_command(['dsregcmd', '/status'])
        else:
            # Out-String pour éviter un tableau de lignes côté distant
            output = self._run_powershell('dsregcmd /status | Out-String')

        self.logger.debug(f"dsregcmd: {len(output)} caractères lus")
        return output
