"""
Module de publication des instantanés de diagnostic

Envoi optionnel de l'instantané JSON vers un point de collecte HTTP,
actif seulement si [server] url est renseigné.
"""

import json
import time
from datetime import datetime
from typing import Any, Dict, Tuple

import requests

from .. import __version__


class SnapshotSender:
    """
    Publication d'un instantané vers le serveur de collecte

    Les échecs réseau sont retournés sous forme (succès, message) ; ils ne
    modifient jamais l'instantané ni son registre de problèmes.
    """

    def __init__(self, config, logger):
        """
        Initialise le sender avec la configuration

        Args:
            config: Instance de DiagnosticConfig
            logger: Instance de AgentLogger
        """
        self.config = config
        self.logger = logger.get_logger()

        server_config = config.get_server_config()
        self.server_url = server_config['url']
        self.auth_token = server_config['auth_token']
        self.timeout = server_config['timeout']
        self.verify_ssl = server_config['verify_ssl']

        self.last_successful_send = None
        self.send_attempts = 0
        self.send_failures = 0

        self.logger.debug(f"SnapshotSender initialisé (URL: {self.server_url or 'non configurée'})")

    @property
    def enabled(self) -> bool:
        return bool(self.server_url)

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': f'DiagAgent/{__version__}'
        }
        if self.auth_token:
            headers['Authorization'] = f'Bearer {self.auth_token}'
        return headers

    def _failure(self, error_msg: str) -> Tuple[bool, str]:
        self.send_failures += 1
        self.logger.error(error_msg)
        return False, error_msg

    def send_snapshot(self, snapshot_data: Dict[str, Any]) -> Tuple[bool, str]:
        """
        Envoie un instantané au serveur

        Args:
            snapshot_data: Instantané sérialisé (DiagnosticSnapshot.to_dict())

        Returns:
            Tuple[bool, str]: (Succès, Message de résultat)
        """
        if not self.enabled:
            return False, "Aucune URL serveur configurée"

        self.send_attempts += 1
        payload = {
            'timestamp': datetime.now().isoformat(),
            'agent_version': __version__,
            'data': snapshot_data
        }

        try:
            self.logger.info(f"Envoi de l'instantané vers {self.server_url}")
            self.logger.debug(f"Taille des données: {len(json.dumps(payload, default=str))} bytes")

            response = requests.post(
                url=self.server_url,
                data=json.dumps(payload, default=str),
                headers=self._headers(),
                timeout=self.timeout,
                verify=self.verify_ssl
            )

            if response.status_code in (200, 201):
                self.last_successful_send = datetime.now()
                self.logger.info("Instantané envoyé avec succès")
                try:
                    server_message = response.json().get('message', 'Succès')
                    return True, f"Envoi réussi: {server_message}"
                except ValueError:
                    return True, "Envoi réussi (réponse serveur non-JSON)"

            if response.status_code == 401:
                return self._failure("Erreur d'authentification (token invalide ou manquant)")
            if response.status_code == 403:
                return self._failure("Accès refusé par le serveur")
            if response.status_code == 400:
                return self._failure(f"Données invalides: {response.text[:200]}")
            return self._failure(f"Erreur serveur HTTP {response.status_code}: {response.text[:200]}")

        except requests.exceptions.Timeout:
            return self._failure(f"Timeout lors de l'envoi (>{self.timeout}s)")

        except requests.exceptions.SSLError as e:
            return self._failure(f"Erreur SSL: {e}")

        except requests.exceptions.ConnectionError as e:
            return self._failure(f"Erreur de connexion: {e}")

        except requests.exceptions.RequestException as e:
            return self._failure(f"Erreur HTTP: {e}")

    def send_snapshot_with_retry(self, snapshot_data: Dict[str, Any],
                                 max_retries: int = 3,
                                 retry_delay: int = 5) -> Tuple[bool, str]:
        """
        Envoie l'instantané avec nouvelles tentatives

        Args:
            snapshot_data: Instantané sérialisé
            max_retries: Nombre maximum de nouvelles tentatives
            retry_delay: Délai entre les tentatives (secondes)

        Returns:
            Tuple[bool, str]: (Succès final, Message de résultat)
        """
        last_error = ""

        for attempt in range(max_retries + 1):
            if attempt > 0:
                self.logger.info(f"Tentative {attempt + 1}/{max_retries + 1}")
                time.sleep(retry_delay)

            success, message = self.send_snapshot(snapshot_data)
            if success:
                return True, message
            if not self.enabled:
                return False, message

            last_error = message
            if attempt < max_retries:
                self.logger.warning(f"Tentative {attempt + 1} échouée: {message}")

        self.logger.error(f"Échec définitif après {max_retries + 1} tentatives")
        return False, f"Échec après {max_retries + 1} tentatives. Dernière erreur: {last_error}"

    def get_stats(self) -> Dict[str, Any]:
        """Statistiques d'envoi depuis le démarrage"""
        return {
            'last_successful_send': self.last_successful_send.isoformat() if self.last_successful_send else None,
            'total_attempts': self.send_attempts,
            'total_failures': self.send_failures,
            'server_url': self.server_url
        }
