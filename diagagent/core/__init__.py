"""
Module Core - Composants principaux de l'agent de diagnostic

Ce module contient les fonctionnalités de base de l'agent :
- Configuration et logging
- Modèle de données et registre des problèmes
- Orchestration de la collecte et pool de lecture
- Publication optionnelle de l'instantané
"""
