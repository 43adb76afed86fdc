"""
Lecteur du registre Windows vers un arbre RegistryNode

Le registre local est ouvert directement ; une cible distante passe par
winreg.ConnectRegistry (service Registre à distance).
"""

from typing import Optional

from ..core.issues import SourceUnavailableError
from ..engine.registry_shapes import RegistryNode
from .base import BaseReader


class RegistryReader(BaseReader):
    """
    Lit une sous-arborescence de HKEY_LOCAL_MACHINE

    Les valeurs et sous-clés sont copiées jusqu'à une profondeur donnée.
    """

    def _connect(self):
        try:
            import winreg
        except ImportError:
            raise SourceUnavailableError("Module winreg non disponible")

        computer = None if self.is_local else f"\\\\{self.target}"
        try:
            return winreg, winreg.ConnectRegistry(computer, winreg.HKEY_LOCAL_MACHINE)
        except OSError as e:
            raise SourceUnavailableError(f"Connexion au registre impossible ({self.target or 'local'}): {e}")

    def read_tree(self, path: str, depth: int = 3) -> Optional[RegistryNode]:
        """
        Lit une clé et ses sous-clés

        Args:
            path: Chemin sous HKLM, ex. SOFTWARE\\Microsoft\\Enrollments
            depth: Nombre de niveaux de sous-clés à descendre

        Returns:
            RegistryNode: Arbre lu, ou None si la clé n'existe pas

        Raises:
            SourceUnavailableError: Registre inaccessible
        """
        winreg, hive = self._connect()
        try:
            try:
                key = winreg.OpenKey(hive, path)
            except FileNotFoundError:
                self.logger.debug(f"Clé de registre absente: HKLM\\{path}")
                return None
            except OSError as e:
                raise SourceUnavailableError(f"Lecture de HKLM\\{path} impossible: {e}")

            try:
                return self._read_node(winreg, key, path.rsplit('\\', 1)[-1], depth)
            finally:
                winreg.CloseKey(key)
        finally:
            winreg.CloseKey(hive)

    def _read_node(self, winreg, key, name: str, depth: int) -> RegistryNode:
        node = RegistryNode(name=name)

        i = 0
        while True:
            try:
                value_name, value_data, _value_type = winreg.EnumValue(key, i)
            except OSError:
                # Plus de valeurs
                break
            node.values[value_name] = value_data
            i += 1

        if depth <= 0:
            return node

        i = 0
        while True:
            try:
                subkey_name = winreg.EnumKey(key, i)
            except OSError:
                # Plus de sous-clés
                break
            i += 1

            try:
                subkey = winreg.OpenKey(key, subkey_name)
            except OSError as e:
                self.logger.debug(f"Sous-clé {subkey_name} illisible: {e}")
                continue

            try:
                node.children.append(self._read_node(winreg, subkey, subkey_name, depth - 1))
            finally:
                winreg.CloseKey(subkey)

        return node

    def read_value(self, path: str, value_name: str):
        """
        Lit une seule valeur

        Returns:
            La donnée de la valeur, ou None si la clé ou la valeur est absente
        """
        node = self.read_tree(path, depth=0)
        if node is None:
            return None
        return node.value(value_name)

    def key_exists(self, path: str) -> bool:
        return self.read_tree(path, depth=0) is not None
