"""
DiagAgent - Diagnostic de la posture de gestion des postes Windows

Ce module principal fournit un agent qui lit l'état de jonction, les
inscriptions MDM, le client ConfigMgr, les applications Win32 Intune et le
rapport MdmDiagnosticsTool, puis produit un instantané JSON unique avec le
registre des problèmes rencontrés pendant la collecte.

Version: 1.0.0
"""

__version__ = "1.0.0"

# Imports principaux pour faciliter l'utilisation
from .core.collector import DiagnosticCollector
from .core.config import DiagnosticConfig
from .core.logger import AgentLogger

__all__ = ['DiagnosticCollector', 'DiagnosticConfig', 'AgentLogger']
