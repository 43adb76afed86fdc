"""
Reconnaissance de la cible locale ou distante d'une collecte
"""

import socket
from typing import Optional

LOCAL_ALIASES = frozenset(['', 'localhost', '127.0.0.1', '::1', '.'])


def _own_names():
    names = set()
    try:
        hostname = socket.gethostname()
        names.add(hostname.lower())
        names.add(hostname.split('.')[0].lower())
        names.add(socket.getfqdn().lower())
    except OSError:
        pass
    return names


def is_local_target(target: Optional[str]) -> bool:
    """
    Indique si la cible désigne le poste courant

    Args:
        target: Nom de la cible (None, vide, localhost, ., nom d'hôte...)

    Returns:
        bool: True si aucune couche de transport distante n'est nécessaire
    """
    if target is None:
        return True

    normalized = target.strip().lower()
    if normalized in LOCAL_ALIASES:
        return True

    return normalized in _own_names()


def display_target(target: Optional[str]) -> str:
    """Nom affiché de la cible (nom d'hôte local pour une cible locale)"""
    if is_local_target(target):
        try:
            return socket.gethostname()
        except OSError:
            return 'localhost'
    return target.strip()
