"""
Moteur de réconciliation et de classification

Ce package transforme les signaux bruts en faits canoniques :
- Analyse du texte de jonction (dsregcmd)
- Normalisation des formes de stockage du registre
- Traduction des codes d'état
- Classification du type de gestion
- Extraction du rapport de diagnostic MDM
"""
