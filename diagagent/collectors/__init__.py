"""
Package des lecteurs de sources brutes pour l'agent de diagnostic

Ce package contient les lecteurs qui interrogent le poste cible :
- Lecteur de base (exécution de commandes locales ou distantes)
- État de jonction (dsregcmd)
- Registre (inscriptions MDM, ConfigMgr, applications Win32 IME)
- Identité du poste (WMI, psutil)
"""
