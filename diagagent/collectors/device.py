"""
Lecteur des informations d'identité du poste

Ce module utilise :
- WMI (Win32_ComputerSystem, Win32_OperatingSystem, Win32_BIOS)
- psutil pour la mémoire et l'heure de démarrage (cible locale seulement)
"""

import platform
import socket
from datetime import datetime
from typing import List, Tuple

import psutil

from ..core.models import DeviceInfo
from .base import BaseReader


class DeviceInfoReader(BaseReader):
    """
    Lecteur des informations d'identité du poste

    Chaque propriété est une lecture simple ; une lecture en échec laisse
    le champ vide sans interrompre les autres.
    """

    def read(self) -> DeviceInfo:
        """
        Collecte les informations d'identité

        Returns:
            DeviceInfo: Informations disponibles
        """
        self.read_errors = []
        info = DeviceInfo()

        if self.is_local:
            info.hostname = self._safe_execute(socket.gethostname, "Erreur récupération hostname")
            info.total_memory = self._safe_execute(
                lambda: psutil.virtual_memory().total,
                "Erreur récupération mémoire"
            )
            info.boot_time = self._safe_execute(
                lambda: datetime.fromtimestamp(psutil.boot_time()).isoformat(),
                "Erreur récupération heure de démarrage"
            )
            info.os_caption = f"{platform.system()} {platform.release()}"
            info.os_version = platform.version()
        else:
            info.hostname = self.target

        self._read_wmi(info)
        return info

    def read_with_errors(self) -> Tuple[DeviceInfo, List[str]]:
        """
        Collecte les informations et rend les lectures en échec

        Returns:
            tuple: (DeviceInfo, messages des lectures en échec)
        """
        info = self.read()
        return info, list(self.read_errors)

    def _read_wmi(self, info: DeviceInfo):
        """
        Complète les informations via WMI

        Args:
            info: Informations à compléter
        """
        try:
            import pythoncom
            import wmi
        except ImportError:
            self.logger.debug("Module WMI non disponible")
            return

        # COM doit être initialisé dans chaque thread du pool
        pythoncom.CoInitialize()
        try:
            c = wmi.WMI() if self.is_local else wmi.WMI(computer=self.target)

            for system in c.Win32_ComputerSystem():
                info.manufacturer = self._clean_string(system.Manufacturer)
                info.model = self._clean_string(system.Model)
                if system.TotalPhysicalMemory:
                    info.total_memory = int(system.TotalPhysicalMemory)
                break

            for os_info in c.Win32_OperatingSystem():
                info.os_caption = self._clean_string(os_info.Caption)
                info.os_version = self._clean_string(os_info.Version)
                info.os_build = self._clean_string(os_info.BuildNumber)
                break

            for bios in c.Win32_BIOS():
                info.serial_number = self._clean_string(bios.SerialNumber)
                break

        except Exception as e:
            error_details = f"Erreur collecte WMI: {e}"
            self.read_errors.append(error_details)
            self.logger.warning(error_details)
        finally:
            pythoncom.CoUninitialize()
