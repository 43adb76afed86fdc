"""
Lectures brutes de la posture de gestion du poste

- Inscriptions MDM (HKLM\\SOFTWARE\\Microsoft\\Enrollments)
- Présence du client ConfigMgr (SCCM)
- Indicateurs de cogestion du client ConfigMgr
- États des applications Win32 de l'extension de gestion Intune
"""

from typing import Optional

from ..engine.registry_shapes import RegistryNode
from .registry import RegistryReader

ENROLLMENTS_PATH = r"SOFTWARE\Microsoft\Enrollments"
WIN32_APPS_PATH = r"SOFTWARE\Microsoft\IntuneManagementExtension\Win32Apps"
CCM_PATH = r"SOFTWARE\Microsoft\CCM"
SCCM_CLIENT_PATHS = (
    r"SOFTWARE\Microsoft\SMS\Mobile Client",
    CCM_PATH,
)
CO_MANAGEMENT_VALUE = 'CoManagementFlags'


class ManagementReader(RegistryReader):
    """Lecteur des clés de registre décrivant la gestion du poste"""

    def read_enrollments(self) -> Optional[RegistryNode]:
        """Clé Enrollments avec un niveau de sous-clés"""
        return self.read_tree(ENROLLMENTS_PATH, depth=1)

    def read_sccm_installed(self) -> bool:
        """Indique si une clé du client ConfigMgr est présente"""
        for path in SCCM_CLIENT_PATHS:
            if self.key_exists(path):
                self.logger.debug(f"Client ConfigMgr détecté via HKLM\\{path}")
                return True
        return False

    def read_co_management_flags(self):
        """Valeur brute CoManagementFlags (None si absente)"""
        return self.read_value(CCM_PATH, CO_MANAGEMENT_VALUE)

    def read_win32_apps(self) -> Optional[RegistryNode]:
        """
        Arbre Win32Apps : contexte, application, sous-clé de message

        Returns:
            RegistryNode: Nœud Win32Apps, ou None si IME n'est pas installé
        """
        return self.read_tree(WIN32_APPS_PATH, depth=3)
